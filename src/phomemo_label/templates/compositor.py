"""Binds field values into a label template."""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass

from phomemo_label.errors import CompositionError
from phomemo_label.models.template import FieldKind, FieldValues, LabelTemplate
from phomemo_label.templates.elements import (
    BaseFieldResolver,
    CompositionContext,
    DateFieldResolver,
    ImageFieldResolver,
    QRCodeFieldResolver,
    TextFieldResolver,
)
from phomemo_label.templates.fitter import TextFitter
from phomemo_label.templates.svg import document_box, parse_document

logger = logging.getLogger(__name__)

# Horizontal padding on each side of the text box, in document units
DEFAULT_PADDING = 20.0


@dataclass(frozen=True)
class ResolvedDocument:
    """A template with every field replaced by concrete content.

    Created by one composition pass and owned by one print request. The
    tree must not be modified after creation.
    """

    root: ET.Element
    min_x: float
    min_y: float
    width: float
    height: float
    warnings: tuple[CompositionError, ...] = ()

    def to_svg(self) -> str:
        """Serialize the document to SVG markup."""
        return ET.tostring(self.root, encoding="unicode")


class TemplateCompositor:
    """Resolves template fields into a new document.

    Each field kind has exactly one resolver. A field that fails to resolve
    keeps its placeholder and is reported in `ResolvedDocument.warnings`,
    unless the field is required, in which case composition fails.
    """

    def __init__(self, fitter: TextFitter | None = None, padding: float = DEFAULT_PADDING) -> None:
        self.fitter = fitter or TextFitter()
        self.padding = padding

        text_resolver = TextFieldResolver()
        self._resolvers: dict[FieldKind, BaseFieldResolver] = {
            FieldKind.TEXT: text_resolver,
            FieldKind.MULTILINE_TEXT: text_resolver,
            FieldKind.DATE: DateFieldResolver(text_resolver),
            FieldKind.QR: QRCodeFieldResolver(),
            FieldKind.IMAGE: ImageFieldResolver(),
        }

    def compose(self, template: LabelTemplate, field_values: FieldValues) -> ResolvedDocument:
        """Resolve every field of a template.

        Args:
            template: Template to compose. Not modified.
            field_values: Values by field id. Missing ids resolve as empty,
                unknown ids are ignored.

        Returns:
            A new ResolvedDocument.

        Raises:
            RenderError: If the template markup cannot be parsed.
            CompositionError: If a required field cannot be resolved.
        """
        root = parse_document(template.svg_content)
        min_x, min_y, width, height = document_box(root)
        context = CompositionContext(
            root=root,
            document_width=width,
            padding=self.padding,
            fitter=self.fitter,
        )

        elements_by_id: dict[str, ET.Element] = {}
        for element in root.iter():
            element_id = element.get("id")
            if element_id and element_id not in elements_by_id:
                elements_by_id[element_id] = element

        warnings: list[CompositionError] = []
        for field in template.fields:
            value = field_values.get(field.id, "")
            try:
                element = elements_by_id.get(field.id)
                if element is None:
                    raise CompositionError(f"Field '{field.id}': no element with this id in the template", field.id)
                self._resolvers[field.kind].resolve(element, field, value, context)
            except CompositionError as e:
                if field.required:
                    raise
                logger.warning(f"Template '{template.name}': {e}")
                warnings.append(e)

        return ResolvedDocument(
            root=root,
            min_x=min_x,
            min_y=min_y,
            width=width,
            height=height,
            warnings=tuple(warnings),
        )


def compose(
    template: LabelTemplate,
    field_values: FieldValues,
    padding: float = DEFAULT_PADDING,
) -> ResolvedDocument:
    """Compose a template with the default text fitter."""
    return TemplateCompositor(padding=padding).compose(template, field_values)
