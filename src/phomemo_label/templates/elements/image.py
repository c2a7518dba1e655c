"""Image field resolver."""

import base64
import binascii
import io
import logging
import xml.etree.ElementTree as ET

from PIL import Image, ImageOps, UnidentifiedImageError

from phomemo_label.errors import CompositionError
from phomemo_label.models.template import FieldMetadata, FieldValue
from phomemo_label.templates.elements.base import BaseFieldResolver, CompositionContext
from phomemo_label.templates.elements.qrcode import png_data_uri
from phomemo_label.templates.svg import format_number, svg_tag

logger = logging.getLogger(__name__)


def decode_image_payload(value: FieldValue) -> bytes:
    """Get raw image bytes from bytes, a data URI, or base64 text.

    Raises:
        ValueError: If a text payload is not valid base64.
    """
    if isinstance(value, bytes):
        return value

    text = value.strip()
    if text.startswith("data:"):
        header, _, text = text.partition(",")
        if ";base64" not in header:
            raise ValueError("only base64 data URIs are supported")
    try:
        return base64.b64decode(text, validate=True)
    except binascii.Error as e:
        raise ValueError(f"invalid base64 image data: {e}") from e


class ImageFieldResolver(BaseFieldResolver):
    """Replaces a box placeholder with a user-supplied image.

    The image keeps its aspect ratio, is centered in the box, and has any
    transparency flattened onto white.
    """

    def resolve(
        self,
        element: ET.Element,
        field: FieldMetadata,
        value: FieldValue,
        context: CompositionContext,
    ) -> None:
        if not value:
            logger.debug(f"Field '{field.id}': no image, skipping")
            return

        x, y, width, height = self.get_box(element, field)

        try:
            payload = decode_image_payload(value)
            with Image.open(io.BytesIO(payload)) as source:
                source.load()
                image = self._flatten(ImageOps.exif_transpose(source))
        except (ValueError, UnidentifiedImageError, OSError) as e:
            raise CompositionError(f"Field '{field.id}': cannot decode image: {e}", field.id) from e

        # Fit inside the box, preserving aspect ratio
        scale = min(width / image.width, height / image.height)
        fit_width = image.width * scale
        fit_height = image.height * scale

        buffer = io.BytesIO()
        image.save(buffer, format="PNG")

        replacement = ET.Element(
            svg_tag("image", context.root),
            {
                "x": format_number(x + (width - fit_width) / 2),
                "y": format_number(y + (height - fit_height) / 2),
                "width": format_number(fit_width),
                "height": format_number(fit_height),
                "preserveAspectRatio": "none",
                "href": png_data_uri(buffer.getvalue()),
            },
        )
        for name in ("id", "transform"):
            if element.get(name) is not None:
                replacement.set(name, element.get(name))  # type: ignore[arg-type]

        context.replace(element, replacement)

    def _flatten(self, image: Image.Image) -> Image.Image:
        """Composite transparency onto white and return an RGB image."""
        if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
            rgba = image.convert("RGBA")
            background = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
            return Image.alpha_composite(background, rgba).convert("RGB")
        return image.convert("RGB")
