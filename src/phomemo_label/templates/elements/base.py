"""Base class for field resolvers."""

import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from phomemo_label.errors import CompositionError
from phomemo_label.models.template import FieldMetadata, FieldValue
from phomemo_label.templates.fitter import TextFitter
from phomemo_label.templates.svg import parse_length


@dataclass
class CompositionContext:
    """Per-composition state shared by the resolvers."""

    root: ET.Element
    document_width: float
    padding: float
    fitter: TextFitter
    _parents: dict[ET.Element, ET.Element] = field(default_factory=dict)

    @property
    def text_box_width(self) -> float:
        """Width available to text fields (document width minus padding on both sides)."""
        return self.document_width - 2 * self.padding

    def parent_of(self, element: ET.Element) -> ET.Element | None:
        if element not in self._parents:
            self._parents.update({child: parent for parent in self.root.iter() for child in parent})
        return self._parents.get(element)

    def replace(self, old: ET.Element, new: ET.Element) -> None:
        """Swap an element for another at the same position in the tree."""
        parent = self.parent_of(old)
        if parent is None:
            raise CompositionError(f"Cannot replace the root element <{old.tag}>", old.get("id"))
        index = list(parent).index(old)
        new.tail = old.tail
        parent.remove(old)
        parent.insert(index, new)
        del self._parents[old]
        self._parents[new] = parent


class BaseFieldResolver(ABC):
    """Abstract base class for field resolvers.

    A resolver replaces one placeholder element with concrete content. It
    must validate everything it needs before touching the tree, so a failed
    field leaves its placeholder unchanged.
    """

    @abstractmethod
    def resolve(
        self,
        element: ET.Element,
        field: FieldMetadata,
        value: FieldValue,
        context: CompositionContext,
    ) -> None:
        """Resolve a field placeholder in place.

        Args:
            element: Placeholder element (the element whose id is the field id).
            field: Field metadata.
            value: Current field value ("" when none was supplied).
            context: Composition context.

        Raises:
            CompositionError: If the value cannot be resolved.
        """
        pass

    def get_box(self, element: ET.Element, field: FieldMetadata) -> tuple[float, float, float, float]:
        """Get a placeholder's bounding box (x, y, width, height) in user units.

        Raises:
            CompositionError: If width or height is missing.
        """
        x = parse_length(element.get("x"), 0.0) or 0.0
        y = parse_length(element.get("y"), 0.0) or 0.0
        width = parse_length(element.get("width"))
        height = parse_length(element.get("height"))
        if not width or not height or width <= 0 or height <= 0:
            raise CompositionError(
                f"Field '{field.id}': placeholder <{element.tag}> needs a positive width and height",
                field.id,
            )
        return x, y, width, height

    def as_text(self, value: FieldValue, field: FieldMetadata) -> str:
        """Coerce a field value to text."""
        if isinstance(value, bytes):
            try:
                return value.decode("utf-8")
            except UnicodeDecodeError as e:
                raise CompositionError(f"Field '{field.id}': value is not UTF-8 text", field.id) from e
        return str(value)
