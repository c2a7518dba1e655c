"""Field resolvers for the template compositor."""

from phomemo_label.templates.elements.base import BaseFieldResolver, CompositionContext
from phomemo_label.templates.elements.image import ImageFieldResolver
from phomemo_label.templates.elements.qrcode import QRCodeFieldResolver
from phomemo_label.templates.elements.text import DateFieldResolver, TextFieldResolver

__all__ = [
    "BaseFieldResolver",
    "CompositionContext",
    "DateFieldResolver",
    "ImageFieldResolver",
    "QRCodeFieldResolver",
    "TextFieldResolver",
]
