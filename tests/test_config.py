"""Tests for configuration loading."""

import tempfile
from pathlib import Path

import yaml

from phomemo_label.config import AppConfig, load_config, load_template, load_templates, resolve_path
from phomemo_label.models.printer import Orientation
from phomemo_label.models.template import FieldKind

SIMPLE_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="384" height="240">'
    '<text id="name" x="10" y="40" font-size="24">Name</text>'
    '<rect id="qr" x="250" y="100" width="100" height="100"/>'
    "</svg>"
)


class TestLoadTemplates:
    """Tests for load_templates function."""

    def test_load_templates_from_directory(self):
        """Load templates from a directory, named after the file stem."""
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "badge.svg").write_text(SIMPLE_SVG)

            result = load_templates(Path(tmpdir))

            assert "badge" in result.templates
            template = result.templates["badge"]
            assert [f.id for f in template.fields] == ["name"]
            assert template.field_defaults == {"name": "Name"}
            assert result.warnings == []

    def test_load_templates_with_sidecar(self):
        """A YAML sidecar renames the template and declares extra fields."""
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "badge.svg").write_text(SIMPLE_SVG)
            sidecar = {
                "name": "visitor-badge",
                "fields": [
                    {"id": "qr", "kind": "qr", "error_correction": "H"},
                    {"id": "name", "label": "Visitor name", "required": True},
                ],
            }
            with open(Path(tmpdir) / "badge.yaml", "w") as f:
                yaml.dump(sidecar, f)

            result = load_templates(Path(tmpdir))

            template = result.templates["visitor-badge"]
            assert template.get_field("qr").kind == FieldKind.QR
            assert template.get_field("name").required is True
            assert template.get_field("name").display_label == "Visitor name"

    def test_load_templates_empty_directory(self):
        """Load templates from an empty directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            result = load_templates(Path(tmpdir))
            assert result.templates == {}

    def test_load_templates_skips_underscore_files(self):
        """Files starting with an underscore are reference material."""
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "_example.svg").write_text(SIMPLE_SVG)
            (Path(tmpdir) / "real.svg").write_text(SIMPLE_SVG)

            result = load_templates(Path(tmpdir))

            assert list(result.templates) == ["real"]

    def test_load_templates_skips_invalid_svg(self):
        """Malformed markup is skipped with a warning."""
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "broken.svg").write_text("<svg><text></svg>")
            (Path(tmpdir) / "valid.svg").write_text(SIMPLE_SVG)

            result = load_templates(Path(tmpdir))

            assert list(result.templates) == ["valid"]
            assert len(result.warnings) == 1
            assert "broken.svg" in result.warnings[0]

    def test_load_templates_skips_invalid_sidecar(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "bad.svg").write_text(SIMPLE_SVG)
            (Path(tmpdir) / "bad.yaml").write_text("fields: [{kind: hologram}]")

            result = load_templates(Path(tmpdir))

            assert result.templates == {}
            assert len(result.warnings) == 1

    def test_load_templates_duplicate_names(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "a.svg").write_text(SIMPLE_SVG)
            (Path(tmpdir) / "b.svg").write_text(SIMPLE_SVG)
            (Path(tmpdir) / "b.yaml").write_text("name: a")

            result = load_templates(Path(tmpdir))

            assert list(result.templates) == ["a"]
            assert "Duplicate" in result.warnings[0]

    def test_load_templates_skips_non_svg_files(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "readme.txt").write_text("This is not a template")
            (Path(tmpdir) / "label.svg").write_text(SIMPLE_SVG)

            result = load_templates(Path(tmpdir))

            assert len(result.templates) == 1

    def test_load_templates_nonexistent_directory(self):
        """Handle nonexistent directory gracefully."""
        result = load_templates(Path("/nonexistent/path"))
        assert result.templates == {}

    def test_load_template_single_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "one.svg"
            path.write_text(SIMPLE_SVG)

            template = load_template(path)

            assert template.name == "one"
            assert template.svg_content == SIMPLE_SVG


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_gives_defaults(self):
        config = load_config(Path("/nonexistent/config.yaml"))
        assert config == AppConfig()

    def test_printers_from_yaml(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.yaml"
            data = {
                "templates_dir": "labels",
                "print_timeout": 10,
                "printers": [
                    {
                        "name": "desk",
                        "connection": {"type": "serial", "device": "/dev/rfcomm0"},
                        "settings": {"device_model": "M220", "paper_width_mm": 70, "orientation": "landscape"},
                    }
                ],
            }
            with open(path, "w") as f:
                yaml.dump(data, f)

            config = load_config(path)

            assert config.templates_dir == Path("labels")
            assert config.print_timeout == 10
            printer = config.printers[0]
            assert printer.connection.baudrate == 115200
            assert printer.settings.orientation == Orientation.LANDSCAPE
            assert printer.settings.darkness == 8

    def test_empty_printers_key(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.yaml"
            path.write_text("printers:\n")

            assert load_config(path).printers == []


class TestAppConfig:
    """Tests for AppConfig model."""

    def test_default_values(self):
        """Test default configuration values."""
        config = AppConfig()

        assert config.templates_dir == Path("templates")
        assert config.padding_px == 20
        assert config.print_timeout == 30
        assert config.printers == []
        assert config.api_key is None

    def test_resolve_path(self):
        config_file = Path("/etc/phomemo/config.yaml")
        assert resolve_path(Path("templates"), config_file) == Path("/etc/phomemo/templates")
        assert resolve_path(Path("/srv/templates"), config_file) == Path("/srv/templates")
