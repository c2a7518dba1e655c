"""Label template models."""

import xml.etree.ElementTree as ET
from collections.abc import Mapping
from enum import StrEnum
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

# Default date format for date fields (strftime format)
DEFAULT_DATE_FORMAT = "%Y-%m-%d"

SVG_NS = "http://www.w3.org/2000/svg"

# A field value is text, or raw bytes for image fields
FieldValue = str | bytes
FieldValues = Mapping[str, FieldValue]


class FieldKind(StrEnum):
    """Kinds of placeholder field a template can declare."""

    TEXT = "text"
    MULTILINE_TEXT = "multiline-text"
    DATE = "date"
    QR = "qr"
    IMAGE = "image"


class ErrorCorrectionLevel(StrEnum):
    """QR code error correction levels."""

    L = "L"  # ~7% correction
    M = "M"  # ~15% correction
    Q = "Q"  # ~25% correction
    H = "H"  # ~30% correction


class FieldMetadata(BaseModel):
    """Definition of a placeholder field in a label template.

    The id matches the `id` attribute of the placeholder element in the SVG.
    """

    id: str
    kind: FieldKind = FieldKind.TEXT
    label: str = ""
    required: bool = False
    date_format: str = DEFAULT_DATE_FORMAT
    error_correction: ErrorCorrectionLevel = ErrorCorrectionLevel.M

    @property
    def display_label(self) -> str:
        return self.label or self.id


class LabelTemplate(BaseModel):
    """A reusable label layout: SVG markup plus its typed fields.

    The markup is kept as a string and parsed fresh for every composition,
    so one template can be shared between concurrent print requests.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    name: str
    svg_content: str
    fields: list[FieldMetadata] = Field(default_factory=list)
    field_defaults: dict[str, str] = Field(default_factory=dict)

    @field_validator("fields")
    @classmethod
    def _unique_field_ids(cls, fields: list[FieldMetadata]) -> list[FieldMetadata]:
        seen: set[str] = set()
        for field in fields:
            if field.id in seen:
                raise ValueError(f"Duplicate field id: {field.id}")
            seen.add(field.id)
        return fields

    @classmethod
    def from_svg(
        cls,
        name: str,
        svg_content: str,
        fields: list[FieldMetadata] | None = None,
    ) -> "LabelTemplate":
        """Build a template from SVG markup.

        Text fields are discovered from `<text id=...>` elements. Explicit
        field metadata (e.g. QR or image placeholders) overrides or extends
        the discovered fields.

        Raises:
            ValueError: If the markup is not well-formed XML.
        """
        discovered, defaults = extract_text_fields(svg_content)
        by_id = {field.id: field for field in discovered}
        for field in fields or []:
            by_id[field.id] = field
        ordered = [by_id.pop(field.id) for field in discovered if field.id in by_id]
        ordered.extend(by_id.values())
        return cls(name=name, svg_content=svg_content, fields=ordered, field_defaults=defaults)

    def get_field(self, field_id: str) -> FieldMetadata | None:
        """Get a field by id."""
        for field in self.fields:
            if field.id == field_id:
                return field
        return None

    def values_with_defaults(self, values: FieldValues) -> dict[str, FieldValue]:
        """Merge supplied values over the template defaults.

        Ids that are not declared fields are dropped.
        """
        result: dict[str, FieldValue] = {}
        for field in self.fields:
            if field.id in values:
                result[field.id] = values[field.id]
            elif field.id in self.field_defaults:
                result[field.id] = self.field_defaults[field.id]
        return result


def local_name(tag: str) -> str:
    """Strip the XML namespace from an element tag."""
    return tag.rsplit("}", 1)[-1]


def extract_text_fields(svg_content: str) -> tuple[list[FieldMetadata], dict[str, str]]:
    """Find text fields and their default values in SVG markup.

    A `<text>` with an id is a field; it is multi-line when it has `<tspan>`
    children, in which case the default joins the tspans with newlines.

    Returns:
        Tuple of (fields in document order, defaults by field id).

    Raises:
        ValueError: If the markup is not well-formed XML.
    """
    try:
        root = ET.fromstring(svg_content)
    except ET.ParseError as e:
        raise ValueError(f"Invalid SVG markup: {e}") from e

    fields: list[FieldMetadata] = []
    defaults: dict[str, str] = {}
    for element in root.iter():
        if local_name(element.tag) != "text":
            continue
        field_id = element.get("id")
        if not field_id:
            continue

        tspans = [child for child in element.iter() if local_name(child.tag) == "tspan"]
        if tspans:
            fields.append(FieldMetadata(id=field_id, kind=FieldKind.MULTILINE_TEXT))
            defaults[field_id] = "\n".join("".join(tspan.itertext()) for tspan in tspans)
        else:
            fields.append(FieldMetadata(id=field_id, kind=FieldKind.TEXT))
            defaults[field_id] = "".join(element.itertext())

    return fields, defaults
