"""Font lookup for text measurement and rasterization.

Templates name fonts the CSS way (`font-family="Inter, sans-serif"`,
`font-weight="700"`); the FontManager maps those onto font files and
Pillow font objects.
"""

import logging
from collections.abc import Iterator, Sequence
from pathlib import Path

from PIL import ImageFont

logger = logging.getLogger(__name__)

FONT_EXTENSIONS = (".ttf", ".otf", ".TTF", ".OTF")

SYSTEM_FONT_DIRS = [
    Path("/usr/share/fonts"),
    Path("/usr/local/share/fonts"),
    Path.home() / ".fonts",
    Path.home() / ".local/share/fonts",
    Path("/Library/Fonts"),
    Path("/System/Library/Fonts"),
    Path.home() / "Library/Fonts",
    Path("C:/Windows/Fonts"),
]

# Lower-case names that map to a different font file stem
FONT_ALIASES = {
    "dejavu": "DejaVuSans",
    "dejavu-sans": "DejaVuSans",
    "dejavusans": "DejaVuSans",
    "dejavu-bold": "DejaVuSans-Bold",
    "dejavusans-bold": "DejaVuSans-Bold",
    "arial": "Arial",
    "helvetica": "Helvetica",
    "times": "Times New Roman",
    "courier": "Courier New",
}

# CSS generic families
GENERIC_FAMILIES = {
    "sans-serif": "DejaVuSans",
    "system-ui": "DejaVuSans",
    "serif": "DejaVuSerif",
    "monospace": "DejaVuSansMono",
}

DEFAULT_FONT = "DejaVuSans"

FontType = ImageFont.FreeTypeFont | ImageFont.ImageFont


def is_bold(weight: str | None) -> bool:
    """Check if a CSS font-weight value is bold."""
    if not weight:
        return False
    weight = weight.strip().lower()
    if weight in ("bold", "bolder"):
        return True
    try:
        return int(weight) >= 600
    except ValueError:
        return False


def name_variants(name: str) -> list[str]:
    """File stems to try for a font name.

    "Open Sans" -> ["Open Sans", "OpenSans", "OpenSans-Regular"]
    """
    variants = [name]
    if " " in name:
        compact = name.replace(" ", "")
        variants += [compact, f"{compact}-Regular"]
    return variants


class FontManager:
    """Loads and caches Pillow fonts by name.

    Fonts are looked up in the configured font directories first (and one
    level of subdirectories), then in the system font directories. Names
    that cannot be found fall back to Pillow's built-in font, so text still
    renders, just not in the intended face.
    """

    def __init__(self, custom_paths: Sequence[str | Path] | None = None) -> None:
        """Initialize font manager.

        Args:
            custom_paths: Font directories or individual font files to search
                before the system directories.
        """
        self._custom_paths = [Path(p) for p in (custom_paths or [])]
        self._cache: dict[tuple[str, float], FontType] = {}
        self._path_cache: dict[str, Path | None] = {}

    def get_font(self, name: str, size: float) -> FontType:
        """Get a font by name or file path.

        Args:
            name: Font name such as "DejaVuSans", or a path to a font file.
            size: Size in pixels; fractional sizes are allowed.
        """
        is_path = "/" in name or "\\" in name
        key_name = name if is_path else FONT_ALIASES.get(name.lower(), name)

        cache_key = (key_name, size)
        if cache_key in self._cache:
            return self._cache[cache_key]

        font_path = Path(name) if is_path else self._find_font(key_name)
        font = None
        if font_path is not None and font_path.exists():
            try:
                font = ImageFont.truetype(str(font_path), size)
            except OSError as e:
                logger.warning(f"Failed to load font {font_path}: {e}")

        if font is None:
            logger.warning(f"Font '{name}' not found, using PIL default")
            font = ImageFont.load_default(size)

        self._cache[cache_key] = font
        return font

    def get_css_font(self, family: str | None, weight: str | None, size: float) -> FontType:
        """Get a font for CSS `font-family` / `font-weight` values."""
        return self.get_font(self.resolve_css_font(family, weight), size)

    def resolve_css_font(self, family: str | None, weight: str | None = None) -> str:
        """Map a CSS font-family list and weight to a concrete font name.

        The first family that can be found wins. Generic families map to
        DejaVu. Bold weights try the `-Bold` variant first.

        Args:
            family: CSS font-family value, e.g. "Arial, sans-serif".
            weight: CSS font-weight value, e.g. "bold" or "700".

        Returns:
            Font name suitable for `get_font`.
        """
        bold = is_bold(weight)
        candidates = [part.strip().strip("'\"") for part in (family or "").split(",")]
        candidates = [c for c in candidates if c] or ["sans-serif"]

        for candidate in candidates:
            base = GENERIC_FAMILIES.get(candidate.lower()) or FONT_ALIASES.get(candidate.lower(), candidate)
            names = [f"{base}-Bold", f"{base} Bold", base] if bold else [base]
            for name in names:
                if self._find_font(name) is not None:
                    return name

        return f"{DEFAULT_FONT}-Bold" if bold else DEFAULT_FONT

    def _find_font(self, name: str) -> Path | None:
        """Find the font file for a name, caching misses too."""
        if name in self._path_cache:
            return self._path_cache[name]

        variants = name_variants(name)
        font_file = next(self._search_custom(variants), None) or next(self._search_system(variants), None)
        if font_file:
            logger.debug(f"Found font '{name}' at {font_file}")

        self._path_cache[name] = font_file
        return font_file

    def _search_custom(self, variants: list[str]) -> Iterator[Path]:
        for custom_path in self._custom_paths:
            if custom_path.is_file():
                if custom_path.stem in variants:
                    yield custom_path
                continue
            if not custom_path.is_dir():
                continue
            yield from _files_in(custom_path, variants)
            for subdir in sorted(p for p in custom_path.iterdir() if p.is_dir()):
                yield from _files_in(subdir, variants)

    def _search_system(self, variants: list[str]) -> Iterator[Path]:
        for sys_dir in SYSTEM_FONT_DIRS:
            if not sys_dir.exists():
                continue
            yield from _files_in(sys_dir, variants)
            for variant in variants:
                try:
                    for font_file in sys_dir.rglob(f"{variant}.*"):
                        if font_file.suffix.lower() in (".ttf", ".otf"):
                            yield font_file
                except PermissionError:
                    continue

    def clear_cache(self) -> None:
        """Clear the font and path caches."""
        self._cache.clear()
        self._path_cache.clear()


def _files_in(directory: Path, variants: list[str]) -> Iterator[Path]:
    """Yield existing `<variant><ext>` files directly inside a directory."""
    for variant in variants:
        for ext in FONT_EXTENSIONS:
            font_file = directory / f"{variant}{ext}"
            if font_file.exists():
                yield font_file


_default_manager: FontManager | None = None


def get_font_manager(custom_paths: Sequence[str | Path] | None = None) -> FontManager:
    """Get the shared font manager, or a new one for custom paths."""
    global _default_manager

    if custom_paths:
        return FontManager(custom_paths)

    if _default_manager is None:
        _default_manager = FontManager()

    return _default_manager
