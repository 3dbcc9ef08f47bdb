"""
Tests for themes and brand-kit overrides.
"""

import re

from deckexport.models import BrandKit
from deckexport.themes import (
    DEFAULT_THEME_ID,
    THEMES,
    apply_brand_kit,
    get_contrast_color,
    get_theme,
    resolve_theme,
)

HEX = re.compile(r"^#[0-9a-f]{6}$")


def test_all_theme_colors_are_hex():
    for theme in THEMES.values():
        for name, value in theme.colors.model_dump().items():
            assert HEX.match(value), f"{theme.id}.{name} = {value}"


def test_unknown_theme_falls_back_to_default():
    assert get_theme("does_not_exist").id == DEFAULT_THEME_ID
    assert get_theme(None).id == DEFAULT_THEME_ID
    assert get_theme("nordic_dark").id == "nordic_dark"


def test_contrast_color():
    assert get_contrast_color("#ffffff") == "#1f2937"
    assert get_contrast_color("#ffff00") == "#1f2937"
    assert get_contrast_color("#000000") == "#ffffff"
    assert get_contrast_color("#1e40af") == "#ffffff"


def test_brand_kit_overrides_present_fields_only():
    """Absent brand fields keep the theme's values."""
    theme = get_theme("corporate_blue")
    branded = apply_brand_kit(theme, BrandKit(primary_color="#ffff00"))

    assert branded.colors.primary == "#ffff00"
    assert branded.colors.primary_foreground == "#1f2937"
    assert branded.colors.secondary == theme.colors.secondary
    assert branded.colors.background == theme.colors.background
    assert branded.logo_url is None
    # The registered theme is untouched
    assert THEMES["corporate_blue"].colors.primary == "#1e40af"


def test_brand_kit_logo():
    branded = resolve_theme("nordic_light", BrandKit(logo_url="https://example.com/logo.png"))
    assert branded.logo_url == "https://example.com/logo.png"
    assert branded.colors == THEMES["nordic_light"].colors


def test_no_brand_kit_returns_theme():
    theme = get_theme("minimal_warm")
    assert apply_brand_kit(theme, None) is theme
    assert apply_brand_kit(theme, BrandKit()) is theme
