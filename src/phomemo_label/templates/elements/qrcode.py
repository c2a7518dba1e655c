"""QR code field resolver."""

import base64
import io
import logging
import xml.etree.ElementTree as ET

import qrcode
import qrcode.constants
from qrcode.exceptions import DataOverflowError

from phomemo_label.errors import CompositionError
from phomemo_label.models.template import ErrorCorrectionLevel, FieldMetadata, FieldValue
from phomemo_label.templates.elements.base import BaseFieldResolver, CompositionContext
from phomemo_label.templates.svg import format_number, svg_tag

logger = logging.getLogger(__name__)

# Error correction level mapping
ERROR_CORRECTION_MAP = {
    ErrorCorrectionLevel.L: qrcode.constants.ERROR_CORRECT_L,  # ~7%
    ErrorCorrectionLevel.M: qrcode.constants.ERROR_CORRECT_M,  # ~15%
    ErrorCorrectionLevel.Q: qrcode.constants.ERROR_CORRECT_Q,  # ~25%
    ErrorCorrectionLevel.H: qrcode.constants.ERROR_CORRECT_H,  # ~30%
}


def png_data_uri(png: bytes) -> str:
    """Wrap PNG bytes in a data URI."""
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


class QRCodeFieldResolver(BaseFieldResolver):
    """Replaces a box placeholder with a QR symbol.

    The symbol is square, sized to the shorter side of the placeholder box
    and centered in it. It is embedded as a PNG `<image>` with one pixel per
    module and `image-rendering="pixelated"` so it scales without blurring.
    """

    def resolve(
        self,
        element: ET.Element,
        field: FieldMetadata,
        value: FieldValue,
        context: CompositionContext,
    ) -> None:
        data = self.as_text(value, field)
        if not data:
            logger.debug(f"Field '{field.id}': no QR data, skipping")
            return

        x, y, width, height = self.get_box(element, field)
        png = self.make_png(data, field)

        size = min(width, height)
        image = ET.Element(
            svg_tag("image", context.root),
            {
                "x": format_number(x + (width - size) / 2),
                "y": format_number(y + (height - size) / 2),
                "width": format_number(size),
                "height": format_number(size),
                "preserveAspectRatio": "none",
                "image-rendering": "pixelated",
                "href": png_data_uri(png),
            },
        )
        for name in ("id", "transform"):
            if element.get(name) is not None:
                image.set(name, element.get(name))  # type: ignore[arg-type]

        context.replace(element, image)

    def make_png(self, data: str, field: FieldMetadata) -> bytes:
        """Encode data as a QR symbol and return it as a PNG, one pixel per module.

        Raises:
            CompositionError: If the data does not fit in a QR symbol.
        """
        qr = qrcode.QRCode(
            version=None,  # Auto-size
            error_correction=ERROR_CORRECTION_MAP[field.error_correction],
            box_size=1,
            border=0,  # No border - the placeholder box controls positioning
        )
        qr.add_data(data)
        try:
            qr.make(fit=True)
        except DataOverflowError as e:
            raise CompositionError(f"Field '{field.id}': data too long for a QR code", field.id) from e

        qr_img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        qr_img.get_image().convert("L").save(buffer, format="PNG")
        return buffer.getvalue()
