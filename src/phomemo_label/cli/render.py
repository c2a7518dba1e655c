"""CLI tool for rendering and printing SVG label templates."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import yaml

from phomemo_label.config import TemplateSidecar
from phomemo_label.errors import PrintError
from phomemo_label.models.printer import DeviceModel, Orientation, PaperType, PrinterConfig, SerialConnection
from phomemo_label.models.template import LabelTemplate
from phomemo_label.pipeline import preview_label, print_label, render_label
from phomemo_label.printers import SerialTransport
from phomemo_label.templates.fonts import FontManager

PAPER_TYPES = {p.name.lower(): p for p in PaperType}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Render an SVG label template to a preview PNG, a raw command stream, or a printer.",
        prog="phomemo-render",
    )
    parser.add_argument(
        "template",
        type=Path,
        help="Path to template SVG file",
    )
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Output file path (default: preview.png or label.bin)",
    )
    parser.add_argument(
        "-d",
        "--data",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Field value (can be specified multiple times)",
    )
    parser.add_argument(
        "--json",
        type=Path,
        dest="json_file",
        help="JSON file with field values",
    )
    parser.add_argument(
        "--fields",
        type=Path,
        dest="fields_file",
        help="YAML file with field metadata (default: <template>.yaml if present)",
    )
    parser.add_argument(
        "--format",
        choices=["png", "bin"],
        default="png",
        help="Output format: dithered preview or raw printer commands (default: png)",
    )
    parser.add_argument(
        "--greyscale",
        action="store_true",
        help="Write the greyscale render instead of the dithered preview",
    )
    parser.add_argument(
        "--printer-device",
        metavar="PORT",
        help="Print to this serial device instead of writing a file",
    )
    parser.add_argument(
        "--font-path",
        action="append",
        default=[],
        dest="font_paths",
        help="Additional font search path (can be specified multiple times)",
    )

    settings = parser.add_argument_group("printer settings")
    settings.add_argument("--model", choices=[m.value for m in DeviceModel], default=DeviceModel.M110)
    settings.add_argument("--darkness", type=int, default=8, help="1-15 (default: 8)")
    settings.add_argument("--speed", type=int, default=3, help="1-5 (default: 3)")
    settings.add_argument("--paper-type", choices=list(PAPER_TYPES), default="gapped")
    settings.add_argument("--width-mm", type=float, default=40.0, help="Label width (default: 40)")
    settings.add_argument("--height-mm", type=float, default=30.0, help="Label height (default: 30)")
    settings.add_argument("--landscape", action="store_true", help="Rotate the template onto the label")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def _load_values(args: argparse.Namespace) -> dict[str, str]:
    """Collect field values from --json and -d arguments.

    Raises:
        ValueError: If a value source is invalid.
    """
    values: dict[str, str] = {}

    # Load from JSON file if provided
    if args.json_file:
        try:
            with open(args.json_file) as f:
                json_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ValueError(f"Cannot read JSON file {args.json_file}: {e}") from e
        if not isinstance(json_data, dict):
            raise ValueError(f"JSON file {args.json_file} must contain an object")
        values.update({str(k): str(v) for k, v in json_data.items()})

    # Parse -d key=value arguments
    for item in args.data:
        if "=" not in item:
            raise ValueError(f"Invalid data format '{item}'. Use KEY=VALUE")
        key, value = item.split("=", 1)
        values[key] = value

    return values


def _load_template(path: Path, fields_file: Path | None) -> LabelTemplate:
    """Load the template and its field metadata.

    Raises:
        ValueError: If the template or field metadata is invalid.
    """
    try:
        svg_content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ValueError(f"Cannot read template {path}: {e}") from e

    sidecar_file = fields_file or path.with_suffix(".yaml")
    sidecar = TemplateSidecar()
    if fields_file or sidecar_file.exists():
        try:
            with open(sidecar_file) as f:
                sidecar = TemplateSidecar.model_validate(yaml.safe_load(f) or {})
        except (OSError, yaml.YAMLError) as e:
            raise ValueError(f"Cannot read field metadata {sidecar_file}: {e}") from e

    return LabelTemplate.from_svg(sidecar.name or path.stem, svg_content, sidecar.fields)


def main() -> int:
    """Main entry point for phomemo-render CLI."""
    args = _build_parser().parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Check template exists
    if not args.template.exists():
        print(f"Error: Template file not found: {args.template}", file=sys.stderr)
        return 1

    try:
        template = _load_template(args.template, args.fields_file)
        values = _load_values(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    config = PrinterConfig(
        device_model=args.model,
        darkness=args.darkness,
        speed=args.speed,
        paper_type=PAPER_TYPES[args.paper_type],
        paper_width_mm=args.width_mm,
        paper_height_mm=args.height_mm,
        orientation=Orientation.LANDSCAPE if args.landscape else Orientation.PORTRAIT,
    )
    font_manager = FontManager(custom_paths=args.font_paths) if args.font_paths else None

    if args.printer_device:
        return _print(template, values, config, args.printer_device, font_manager)

    # Render
    try:
        if args.format == "png":
            output = preview_label(template, values, config, dithered=not args.greyscale, font_manager=font_manager)
        else:
            label = render_label(template, values, config, font_manager=font_manager)
            for warning in label.warnings:
                print(f"Warning: {warning}", file=sys.stderr)
            output = b"".join(bytes(frame) for frame in label.frames)
    except PrintError as e:
        print(f"Error rendering template ({e.stage}): {e.message}", file=sys.stderr)
        return 1

    # Write output
    output_path = args.output or Path("preview.png" if args.format == "png" else "label.bin")
    try:
        with open(output_path, "wb") as f:
            f.write(output)
        print(f"Rendered to {output_path}")
    except OSError as e:
        print(f"Error writing output: {e}", file=sys.stderr)
        return 1

    return 0


def _print(
    template: LabelTemplate,
    values: dict[str, str],
    config: PrinterConfig,
    device: str,
    font_manager: FontManager | None,
) -> int:
    """Print a label on a serial device."""

    async def run():
        async with SerialTransport(device, SerialConnection(device=device)) as transport:
            return await print_label(template, values, config, transport, font_manager=font_manager)

    try:
        result = asyncio.run(run())
    except PrintError as e:
        print(f"Error ({e.stage}): {e.message}", file=sys.stderr)
        return 1

    for warning in result.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    if not result.success:
        assert result.error is not None
        print(
            f"Error ({result.error.stage}): {result.error.message} "
            f"[{result.frames_sent}/{result.frames_total} frames sent]",
            file=sys.stderr,
        )
        return 1

    print(f"Printed on {device} ({result.frames_sent} frames)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
