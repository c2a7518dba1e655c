"""Print pipeline: compose, rasterize, dither, encode and transmit a label."""

import asyncio
import logging
from dataclasses import dataclass

from PIL import Image

from phomemo_label.errors import PrintError, TransportError, WriteError
from phomemo_label.models.job import PrintFailure, PrintResult
from phomemo_label.models.printer import PrinterConfig
from phomemo_label.models.template import FieldValues, LabelTemplate
from phomemo_label.printers.base import BaseTransport
from phomemo_label.templates.compositor import DEFAULT_PADDING, ResolvedDocument, TemplateCompositor
from phomemo_label.templates.converters import Frame, encode, validate_printer_config
from phomemo_label.templates.dither import MonoBitmap, dither
from phomemo_label.templates.fitter import TextFitter, font_measurer
from phomemo_label.templates.fonts import FontManager
from phomemo_label.templates.rasterizer import rasterize, render_preview

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedLabel:
    """Every intermediate product of one print request."""

    document: ResolvedDocument
    pixels: Image.Image
    bitmap: MonoBitmap
    frames: list[Frame]

    @property
    def warnings(self) -> list[str]:
        return [w.message for w in self.document.warnings]


def compose_label(
    template: LabelTemplate,
    field_values: FieldValues,
    padding: float = DEFAULT_PADDING,
    font_manager: FontManager | None = None,
) -> ResolvedDocument:
    """Compose a template; fields without a value render empty."""
    fitter = TextFitter(font_measurer(font_manager))
    return TemplateCompositor(fitter, padding=padding).compose(template, field_values)


def render_label(
    template: LabelTemplate,
    field_values: FieldValues,
    config: PrinterConfig,
    *,
    padding: float = DEFAULT_PADDING,
    font_manager: FontManager | None = None,
) -> RenderedLabel:
    """Run the pipeline up to the frame sequence, without a transport.

    Blocking and CPU-bound. Settings are validated before anything is
    rendered.

    Raises:
        ConfigError: If the printer settings are invalid.
        CompositionError: If a required field cannot be resolved.
        RenderError: If the document cannot be rasterized.
    """
    validate_printer_config(config)

    document = compose_label(template, field_values, padding, font_manager)
    logger.debug(f"Composed '{template.name}' with {len(document.warnings)} warnings")

    pixels = rasterize(
        document,
        config.paper_width_mm,
        config.paper_height_mm,
        config.orientation,
        font_manager=font_manager,
    )
    logger.debug(f"Rasterized '{template.name}' to {pixels.width}x{pixels.height}")

    bitmap = dither(pixels)
    frames = encode(bitmap, config)
    return RenderedLabel(document=document, pixels=pixels, bitmap=bitmap, frames=frames)


def preview_label(
    template: LabelTemplate,
    field_values: FieldValues,
    config: PrinterConfig,
    *,
    dithered: bool = False,
    padding: float = DEFAULT_PADDING,
    font_manager: FontManager | None = None,
) -> bytes:
    """Render a PNG preview of a label as it appears on the template (unrotated).

    Raises:
        ConfigError: If the printer settings are invalid.
        CompositionError: If a required field cannot be resolved.
        RenderError: If the document cannot be rendered.
    """
    validate_printer_config(config)
    document = compose_label(template, field_values, padding, font_manager)
    return render_preview(
        document,
        config.paper_width_mm,
        config.paper_height_mm,
        config.orientation,
        dithered=dithered,
        font_manager=font_manager,
    )


async def print_label(
    template: LabelTemplate,
    field_values: FieldValues,
    config: PrinterConfig,
    transport: BaseTransport,
    *,
    timeout: float | None = None,
    include_preview: bool = False,
    padding: float = DEFAULT_PADDING,
    font_manager: FontManager | None = None,
) -> PrintResult:
    """Render a label and send it to a printer.

    Rendering runs in a worker thread without holding the transport, so
    requests for the same printer can prepare concurrently. Transmission
    holds `transport.exclusive()` for the whole frame sequence.

    Pipeline errors are returned as a failed PrintResult rather than raised.
    Cancellation propagates; `transport.frames_sent` then shows how far the
    job got.

    Args:
        template: Template to print.
        field_values: Values by field id.
        config: Print settings.
        transport: Printer connection.
        timeout: Seconds allowed for transmission, None for no limit.
        include_preview: Attach the pixel buffer and bitmap to the result.
        padding: Text box padding in document units.
        font_manager: Font lookup, defaults to the shared manager.

    Returns:
        The outcome of the request.
    """
    logger.debug(f"Printing '{template.name}' on {transport.name}")

    try:
        label = await asyncio.to_thread(
            render_label, template, field_values, config, padding=padding, font_manager=font_manager
        )
    except PrintError as e:
        logger.error(f"Label '{template.name}' failed at {e.stage}: {e.message}")
        return PrintResult(
            template_name=template.name,
            printer_name=transport.name,
            success=False,
            error=PrintFailure.from_error(e),
        )

    result = PrintResult(
        template_name=template.name,
        printer_name=transport.name,
        success=False,
        frames_total=len(label.frames),
        warnings=label.warnings,
    )
    if include_preview:
        result.pixels = label.pixels
        result.bitmap = label.bitmap

    try:
        async with transport.exclusive():
            try:
                result.frames_sent = await asyncio.wait_for(transport.send(label.frames), timeout)
            except TimeoutError as e:
                raise WriteError(
                    f"Printer {transport.name}: transmission timed out after {timeout}s",
                    transport.frames_sent,
                ) from e
    except TransportError as e:
        logger.error(
            f"Label '{template.name}' failed at {e.stage} after {e.frames_sent}/{len(label.frames)} frames: {e.message}"
        )
        result.frames_sent = e.frames_sent
        result.error = PrintFailure.from_error(e)
        return result

    result.success = True
    logger.info(f"Printed '{template.name}' on {transport.name} ({result.frames_sent} frames)")
    return result
