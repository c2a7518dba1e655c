"""Template composition and rendering for Phomemo Label."""

from phomemo_label.templates.compositor import ResolvedDocument, TemplateCompositor, compose
from phomemo_label.templates.dither import MonoBitmap, dither
from phomemo_label.templates.fitter import FitResult, TextFitter
from phomemo_label.templates.rasterizer import rasterize, render_preview

__all__ = [
    "FitResult",
    "MonoBitmap",
    "ResolvedDocument",
    "TemplateCompositor",
    "TextFitter",
    "compose",
    "dither",
    "rasterize",
    "render_preview",
]
