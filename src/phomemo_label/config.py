"""Configuration management for Phomemo Label."""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from phomemo_label.models.printer import PrinterEntry
from phomemo_label.models.template import FieldMetadata, LabelTemplate

logger = logging.getLogger(__name__)


class TemplateLoadResult(BaseModel):
    """Result of loading templates, including any warnings."""

    templates: dict[str, LabelTemplate] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)


class TemplateSidecar(BaseModel):
    """Optional `<stem>.yaml` next to a template's SVG."""

    name: str | None = None
    fields: list[FieldMetadata] = Field(default_factory=list)


class AppConfig(BaseModel):
    """Application configuration loaded from config.yaml."""

    templates_dir: Path = Path("./templates")
    fonts_dir: Path = Path("./fonts")
    # Horizontal padding around text fields, in template units
    padding_px: float = 20.0
    # Seconds allowed for transmitting one label, None for no limit
    print_timeout: float | None = 30.0
    printers: list[PrinterEntry] = Field(default_factory=list)
    # API key for external access (optional, if not set API is open)
    api_key: str | None = None


class Settings(BaseSettings):
    """Environment-based settings."""

    model_config = SettingsConfigDict(
        env_prefix="PHOMEMO_",
        env_file=".env",
        extra="ignore",
    )

    config_file: Path = Path("config.yaml")
    host: str = "0.0.0.0"
    port: int = 7979
    debug: bool = False


def load_config(config_path: Path) -> AppConfig:
    """Load application configuration from YAML file."""
    if not config_path.exists():
        return AppConfig()

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    # Handle None values for list fields (YAML returns None for empty keys)
    if data.get("printers") is None:
        data["printers"] = []

    return AppConfig.model_validate(data)


def resolve_path(path: Path, config_file: Path) -> Path:
    """Resolve a configured path relative to the config file's directory."""
    if path.is_absolute():
        return path
    return config_file.parent / path


def load_template(svg_file: Path) -> LabelTemplate:
    """Load one template from an SVG file and its optional YAML sidecar.

    Raises:
        OSError: If a file cannot be read.
        ValueError: If the SVG is malformed or the sidecar is invalid.
    """
    svg_content = svg_file.read_text(encoding="utf-8")

    sidecar = TemplateSidecar()
    sidecar_file = svg_file.with_suffix(".yaml")
    if sidecar_file.exists():
        with open(sidecar_file) as f:
            sidecar = TemplateSidecar.model_validate(yaml.safe_load(f) or {})

    return LabelTemplate.from_svg(sidecar.name or svg_file.stem, svg_content, sidecar.fields)


def load_templates(templates_dir: Path) -> TemplateLoadResult:
    """Load all SVG templates from the templates directory.

    Args:
        templates_dir: Directory containing `*.svg` files.

    Returns:
        TemplateLoadResult with templates by name and any warnings.
    """
    result = TemplateLoadResult()

    if not templates_dir.exists():
        return result

    for svg_file in sorted(templates_dir.glob("*.svg")):
        # Skip example/reference templates (files starting with underscore)
        if svg_file.name.startswith("_"):
            continue

        try:
            template = load_template(svg_file)
        except (OSError, ValueError, ValidationError, yaml.YAMLError) as e:
            # Log but don't fail on individual template errors
            logger.warning(f"Failed to load template {svg_file}: {e}")
            result.warnings.append(f"Template '{svg_file.name}' skipped: {e}")
            continue

        if template.name in result.templates:
            result.warnings.append(f"Duplicate template name '{template.name}' in {svg_file.name}, skipped")
            continue

        result.templates[template.name] = template

    return result


# Global settings instance
settings = Settings()
