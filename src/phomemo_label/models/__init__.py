"""Pydantic models for phomemo-label."""

from phomemo_label.models.printer import (
    DeviceModel,
    Orientation,
    PaperType,
    PrinterConfig,
    PrinterEntry,
    SerialConnection,
)
from phomemo_label.models.template import (
    ErrorCorrectionLevel,
    FieldKind,
    FieldMetadata,
    FieldValues,
    LabelTemplate,
)

__all__ = [
    "DeviceModel",
    "ErrorCorrectionLevel",
    "FieldKind",
    "FieldMetadata",
    "FieldValues",
    "LabelTemplate",
    "Orientation",
    "PaperType",
    "PrinterConfig",
    "PrinterEntry",
    "SerialConnection",
]
