"""
Theme tokens and brand-kit overrides.

A theme supplies every colour, font and size the renderers use. Brand-kit
fields, when present, take precedence over the theme's defaults.
"""

import logging
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from deckexport.models import BrandKit

logger = logging.getLogger(__name__)

DEFAULT_THEME_ID = "nordic_light"


class ThemeColors(BaseModel):
    model_config = ConfigDict(frozen=True)

    primary: str
    primary_foreground: str
    secondary: str
    secondary_foreground: str
    accent: str
    background: str
    background_subtle: str
    foreground: str
    foreground_muted: str
    border: str
    success: str
    warning: str
    error: str
    info: str


class ThemeTypography(BaseModel):
    """Font families and sizes in points."""

    model_config = ConfigDict(frozen=True)

    font_family: str = "Plus Jakarta Sans"
    heading_font_family: str = "Plus Jakarta Sans"
    # Built-in PDF fonts; embedded web fonts are not available to reportlab.
    pdf_font: str = "Helvetica"
    pdf_font_bold: str = "Helvetica-Bold"
    display_size: int = 44
    title_size: int = 36
    heading_size: int = 22
    body_size: int = 16
    small_size: int = 12
    quote_size: int = 20
    title_bold: bool = True
    quote_italic: bool = True


class Theme(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    colors: ThemeColors
    typography: ThemeTypography = ThemeTypography()
    logo_url: Optional[str] = None


def _colors(**values: str) -> ThemeColors:
    values.setdefault("primary_foreground", "#ffffff")
    values.setdefault("secondary_foreground", "#ffffff")
    return ThemeColors(**values)


THEMES: Dict[str, Theme] = {
    "nordic_light": Theme(
        id="nordic_light",
        name="Nordic Light",
        description="Clean Scandinavian design with soft colors",
        colors=_colors(
            primary="#2563eb",
            secondary="#64748b",
            accent="#0891b2",
            background="#f8fafc",
            background_subtle="#f1f5f9",
            foreground="#0f172a",
            foreground_muted="#475569",
            border="#cbd5e1",
            success="#16a34a",
            warning="#ca8a04",
            error="#dc2626",
            info="#0284c7",
        ),
    ),
    "nordic_dark": Theme(
        id="nordic_dark",
        name="Nordic Dark",
        description="Elegant dark Scandinavian aesthetic",
        colors=_colors(
            primary="#3b82f6",
            secondary="#94a3b8",
            secondary_foreground="#0f172a",
            accent="#22d3ee",
            background="#0f172a",
            background_subtle="#1e293b",
            foreground="#f1f5f9",
            foreground_muted="#94a3b8",
            border="#475569",
            success="#22c55e",
            warning="#eab308",
            error="#ef4444",
            info="#38bdf8",
        ),
    ),
    "nordic_minimalism": Theme(
        id="nordic_minimalism",
        name="Nordic Minimalism",
        description="Modern dark theme with sophisticated, AI-first aesthetic",
        colors=_colors(
            primary="#6366f1",
            secondary="#a1a1aa",
            secondary_foreground="#0f0f10",
            accent="#8b5cf6",
            background="#0f0f10",
            background_subtle="#18181b",
            foreground="#fafafa",
            foreground_muted="#a1a1aa",
            border="#3f3f46",
            success="#22c55e",
            warning="#f59e0b",
            error="#ef4444",
            info="#3b82f6",
        ),
        typography=ThemeTypography(
            font_family="Inter",
            heading_font_family="Inter",
            display_size=52,
            title_size=40,
            heading_size=24,
            body_size=17,
            small_size=13,
            quote_size=22,
        ),
    ),
    "corporate_blue": Theme(
        id="corporate_blue",
        name="Corporate Blue",
        description="Professional corporate identity",
        colors=_colors(
            primary="#1e40af",
            secondary="#6b7280",
            accent="#0369a1",
            background="#ffffff",
            background_subtle="#f9fafb",
            foreground="#111827",
            foreground_muted="#4b5563",
            border="#d1d5db",
            success="#059669",
            warning="#d97706",
            error="#dc2626",
            info="#2563eb",
        ),
        typography=ThemeTypography(
            display_size=40,
            title_size=32,
            heading_size=20,
            body_size=15,
            quote_size=18,
        ),
    ),
    "minimal_warm": Theme(
        id="minimal_warm",
        name="Minimal Warm",
        description="Minimalist with warm tones",
        colors=_colors(
            primary="#c2410c",
            secondary="#78716c",
            accent="#b45309",
            background="#faf8f5",
            background_subtle="#f5f1eb",
            foreground="#292524",
            foreground_muted="#57534e",
            border="#d6d3d1",
            success="#15803d",
            warning="#a16207",
            error="#b91c1c",
            info="#0369a1",
        ),
        typography=ThemeTypography(display_size=42, body_size=15),
    ),
    "modern_contrast": Theme(
        id="modern_contrast",
        name="Modern Contrast",
        description="High-contrast contemporary design",
        colors=_colors(
            primary="#7c3aed",
            secondary="#374151",
            accent="#ec4899",
            background="#ffffff",
            background_subtle="#fafafa",
            foreground="#09090b",
            foreground_muted="#52525b",
            border="#e4e4e7",
            success="#10b981",
            warning="#f59e0b",
            error="#ef4444",
            info="#6366f1",
        ),
        typography=ThemeTypography(
            display_size=48,
            title_size=40,
            heading_size=24,
            body_size=15,
            quote_size=22,
            quote_italic=False,
        ),
    ),
}

THEME_IDS = tuple(THEMES)


def is_valid_theme_id(theme_id: Optional[str]) -> bool:
    return theme_id in THEMES


def get_theme(theme_id: Optional[str]) -> Theme:
    """Get a theme by id, falling back to the default theme."""
    theme = THEMES.get(theme_id or DEFAULT_THEME_ID)
    if theme is None:
        logger.warning("Theme %r not found, falling back to %s", theme_id, DEFAULT_THEME_ID)
        return THEMES[DEFAULT_THEME_ID]
    return theme


def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    hex_color = hex_color.lstrip("#")
    if len(hex_color) != 6:
        raise ValueError(f"Invalid hex color: {hex_color!r}")
    return int(hex_color[0:2], 16), int(hex_color[2:4], 16), int(hex_color[4:6], 16)


def get_contrast_color(hex_color: str) -> str:
    """Readable text colour for the given background (dark gray or white)."""
    r, g, b = hex_to_rgb(hex_color)
    luminance = (0.299 * r + 0.587 * g + 0.114 * b) / 255
    return "#1f2937" if luminance > 0.5 else "#ffffff"


def apply_brand_kit(theme: Theme, brand_kit: Optional[BrandKit]) -> Theme:
    """
    Return a copy of ``theme`` with brand-kit overrides applied.

    Each present field replaces the theme's corresponding default; absent
    fields keep the theme value. Foregrounds on overridden colours are
    recomputed for contrast.
    """
    if brand_kit is None or brand_kit.is_empty():
        return theme

    color_updates = {}
    if brand_kit.primary_color:
        color_updates["primary"] = brand_kit.primary_color
        color_updates["primary_foreground"] = get_contrast_color(brand_kit.primary_color)
    if brand_kit.secondary_color:
        color_updates["secondary"] = brand_kit.secondary_color
        color_updates["secondary_foreground"] = get_contrast_color(brand_kit.secondary_color)

    updates = {"colors": theme.colors.model_copy(update=color_updates)}
    if brand_kit.logo_url:
        updates["logo_url"] = brand_kit.logo_url
    return theme.model_copy(update=updates)


def resolve_theme(theme_id: Optional[str], brand_kit: Optional[BrandKit] = None) -> Theme:
    return apply_brand_kit(get_theme(theme_id), brand_kit)
