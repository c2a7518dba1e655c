"""Tests for SVG rasterization."""

import base64
import io

import pytest
from PIL import Image

from phomemo_label.errors import RenderError
from phomemo_label.models.printer import DOTS_PER_MM, Orientation
from phomemo_label.models.template import LabelTemplate
from phomemo_label.templates.compositor import ResolvedDocument, TemplateCompositor
from phomemo_label.templates.rasterizer import (
    SvgRenderer,
    _path_subpaths,
    rasterize,
    render_preview,
    surface_size,
)
from phomemo_label.templates.svg import document_box, parse_document


def make_doc(svg: str) -> ResolvedDocument:
    root = parse_document(svg)
    min_x, min_y, width, height = document_box(root)
    return ResolvedDocument(root=root, min_x=min_x, min_y=min_y, width=width, height=height)


def svg(body: str, width: int = 100, height: int = 50) -> str:
    return (
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" '
        f'viewBox="0 0 {width} {height}">{body}</svg>'
    )


def grey(image: Image.Image, x: int, y: int) -> int:
    return image.convert("L").getpixel((x, y))


class TestRasterize:
    """Tests for rasterize."""

    def test_output_size_portrait(self):
        image = rasterize(make_doc(svg("")), 40, 30)
        assert image.size == (int(40 * DOTS_PER_MM), int(30 * DOTS_PER_MM))
        assert image.mode == "RGB"

    def test_output_size_landscape(self):
        """Landscape output keeps the printhead width."""
        image = rasterize(make_doc(svg("")), 40, 30, Orientation.LANDSCAPE)
        assert image.size == (int(40 * DOTS_PER_MM), int(30 * DOTS_PER_MM))

    def test_surface_size(self):
        assert surface_size(40, 30) == (319, 239)
        assert surface_size(40, 30, Orientation.LANDSCAPE) == (239, 319)

    def test_blank_document_is_white(self):
        image = rasterize(make_doc(svg("")), 10, 10)
        assert image.convert("L").getextrema() == (255, 255)

    def test_filled_rect_is_black(self):
        image = rasterize(make_doc(svg('<rect x="0" y="0" width="100" height="50" fill="black"/>')), 10, 10)
        assert image.convert("L").getextrema()[1] < 10

    def test_stretches_to_fill(self):
        """The document fills the whole surface even with a different aspect ratio."""
        doc = make_doc(svg('<rect x="50" y="0" width="50" height="50" fill="#000"/>'))
        image = rasterize(doc, 20, 20)
        width, height = image.size

        assert grey(image, width // 4, height // 2) > 240
        assert grey(image, width * 3 // 4, height // 2) < 15

    def test_landscape_rotates_clockwise(self):
        """The template's left edge ends up at the top of the label."""
        doc = make_doc(svg('<rect x="0" y="0" width="20" height="50" fill="black"/>'))
        image = rasterize(doc, 20, 40, Orientation.LANDSCAPE)
        width, height = image.size

        assert grey(image, width // 2, 2) < 15
        assert grey(image, width // 2, height - 3) > 240

    def test_viewbox_offset(self):
        doc = make_doc(
            '<svg xmlns="http://www.w3.org/2000/svg" viewBox="100 100 100 50">'
            '<rect x="100" y="100" width="50" height="50" fill="black"/></svg>'
        )
        image = rasterize(doc, 20, 10)
        assert grey(image, 20, image.height // 2) < 15
        assert grey(image, image.width - 20, image.height // 2) > 240

    def test_empty_label_size(self):
        with pytest.raises(RenderError):
            rasterize(make_doc(svg("")), 0, 10)

    def test_deterministic(self):
        doc = make_doc(
            svg('<circle cx="50" cy="25" r="20" fill="grey"/><text x="10" y="40" font-size="12">Hi</text>')
        )
        first = rasterize(doc, 20, 10)
        second = rasterize(doc, 20, 10)
        assert first.tobytes() == second.tobytes()


class TestSvgRenderer:
    """Tests for individual SVG features."""

    def render(self, body: str, width: int = 100, height: int = 50) -> Image.Image:
        return SvgRenderer().render(make_doc(svg(body, width, height)), width, height)

    def test_stroke_only_rect(self):
        image = self.render('<rect x="10" y="10" width="80" height="30" fill="none" stroke="black" stroke-width="2"/>')
        assert grey(image, 50, 25) > 240
        assert grey(image, 10, 25) < 128

    def test_style_attribute(self):
        image = self.render('<rect width="100" height="50" style="fill: #000000"/>')
        assert grey(image, 50, 25) < 15

    def test_group_inheritance_and_transform(self):
        image = self.render('<g fill="black" transform="translate(50,0)"><rect width="50" height="50"/></g>')
        assert grey(image, 25, 25) > 240
        assert grey(image, 75, 25) < 15

    def test_display_none_is_skipped(self):
        image = self.render('<rect width="100" height="50" fill="black" display="none"/>')
        assert grey(image, 50, 25) == 255

    def test_opacity_gives_grey(self):
        image = self.render('<rect width="100" height="50" fill="black" opacity="0.5"/>')
        assert 100 < grey(image, 50, 25) < 160

    def test_defs_not_rendered(self):
        image = self.render('<defs><rect width="100" height="50" fill="black"/></defs>')
        assert grey(image, 50, 25) == 255

    def test_text_draws_dark_pixels(self):
        image = self.render('<text x="5" y="40" font-size="36">HELLO</text>', 200, 50)
        assert image.convert("L").getextrema()[0] < 100

    def test_multiline_tspans(self):
        image = self.render(
            '<text x="5" font-size="20"><tspan x="5" y="20">AAAA</tspan><tspan x="5" y="45">AAAA</tspan></text>'
        )
        top = image.crop((0, 0, 100, 25)).convert("L").getextrema()[0]
        bottom = image.crop((0, 25, 100, 50)).convert("L").getextrema()[0]
        assert top < 128
        assert bottom < 128

    def test_embedded_image(self, png_bytes: bytes):
        href = "data:image/png;base64," + base64.b64encode(png_bytes).decode()
        image = self.render(
            f'<image x="0" y="0" width="100" height="50" preserveAspectRatio="none" href="{href}"/>'
        )
        r, g, b = image.getpixel((50, 25))
        assert r > 200 and g < 50 and b < 50

    def test_evenodd_path_leaves_hole(self):
        image = self.render('<path d="M0 0 H100 V50 H0 Z M40 15 H60 V35 H40 Z" fill="black"/>')
        assert grey(image, 10, 25) < 15
        assert grey(image, 50, 25) > 240

    def test_unsupported_element_is_skipped(self):
        image = self.render('<foreignObject width="100" height="50"/>')
        assert grey(image, 50, 25) == 255


class TestPathParsing:
    """Tests for path data flattening."""

    def test_relative_lines(self):
        [(points, closed)] = _path_subpaths("m10 10 l5 0 0 5 z")
        assert points[:3] == [(10, 10), (15, 10), (15, 15)]
        assert closed is True

    def test_implicit_lineto_after_move(self):
        [(points, closed)] = _path_subpaths("M0 0 10 0 10 10")
        assert points == [(0, 0), (10, 0), (10, 10)]
        assert closed is False

    def test_horizontal_vertical(self):
        [(points, _)] = _path_subpaths("M1 1 H5 V7 h-2 v-3")
        assert points == [(1, 1), (5, 1), (5, 7), (3, 7), (3, 4)]

    def test_cubic_ends_at_endpoint(self):
        [(points, _)] = _path_subpaths("M0 0 C 0 10 10 10 10 0")
        assert points[-1] == pytest.approx((10, 0))
        assert len(points) > 2

    def test_arc_approximated_by_endpoint(self):
        [(points, _)] = _path_subpaths("M0 0 A 5 5 0 0 1 10 0")
        assert points == [(0, 0), (10, 0)]


class TestRenderPreview:
    """Tests for render_preview."""

    def test_preview_is_png_of_logical_surface(self):
        png = render_preview(make_doc(svg("")), 40, 30, Orientation.LANDSCAPE)
        image = Image.open(io.BytesIO(png))
        assert image.format == "PNG"
        assert image.size == surface_size(40, 30, Orientation.LANDSCAPE)

    def test_dithered_preview_is_bilevel(self):
        png = render_preview(make_doc(svg('<rect width="50" height="50" fill="#888"/>')), 20, 10, dithered=True)
        image = Image.open(io.BytesIO(png)).convert("L")
        assert set(image.tobytes()) <= {0, 255}

    def test_composed_template_renders(self, label_svg: str, fitter):
        template = LabelTemplate.from_svg("t", label_svg)
        doc = TemplateCompositor(fitter).compose(template, {"title": "Hello"})
        png = render_preview(doc, 40, 30)
        assert png.startswith(b"\x89PNG")
