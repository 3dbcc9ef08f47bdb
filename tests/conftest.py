"""
Shared fixtures for the deckexport library tests.
"""

import io
from datetime import datetime, timezone

import pytest
from PIL import Image

from deckexport.models import Deck


EXAMPLE_DECK = {
    "meta": {"title": "Quarterly Review", "language": "en", "themeId": "nordic_light"},
    "slides": [
        {
            "type": "cover",
            "blocks": [
                {"kind": "title", "text": "Quarterly Review"},
                {"kind": "text", "text": "Results and next steps"},
            ],
        },
        {
            "type": "summary_with_stats",
            "blocks": [
                {"kind": "title", "text": "Highlights"},
                {"kind": "stat_block", "value": "95%", "label": "Retention", "sublabel": "up from 90%"},
                {"kind": "stat_block", "value": "1.2M", "label": "Users"},
                {"kind": "stat_block", "value": "42", "label": "Markets", "sublabel": "in 3 regions"},
                {"kind": "bullets", "items": ["Revenue grew", "Churn fell", "Hiring on plan"]},
            ],
        },
        {
            "type": "hero_stats",
            "blocks": [
                {"kind": "title", "text": "One number"},
                {"kind": "stat_block", "value": "3x", "label": "Faster exports"},
            ],
        },
    ],
}


ALL_KINDS_SLIDES = [
    {
        "type": "bullets",
        "blocks": [
            {"kind": "title", "text": "Everything"},
            {"kind": "text", "text": "A paragraph of text."},
            {"kind": "bullets", "items": ["One", "Two"]},
            {"kind": "callout", "text": "Mind the gap", "style": "warning"},
            {"kind": "callout", "text": "Well said", "style": "quote"},
        ],
    },
    {
        "type": "action_items_table",
        "blocks": [
            {"kind": "title", "text": "Actions"},
            {"kind": "table", "columns": ["Task", "Owner"], "rows": [["Ship", "Ada"], ["Test", "Lin"]]},
        ],
    },
    {
        "type": "text_plus_image",
        "blocks": [
            {"kind": "title", "text": "Pictures"},
            {"kind": "image", "url": "https://example.com/a.png", "alt": "Chart", "cropMode": "cover"},
            {"kind": "image", "url": "https://example.com/b.png", "alt": "Photo", "cropMode": "contain"},
        ],
    },
    {
        "type": "timeline_roadmap",
        "blocks": [
            {"kind": "title", "text": "Roadmap"},
            {"kind": "timeline_step", "step": 1, "text": "Plan", "status": "completed"},
            {"kind": "timeline_step", "step": 2, "text": "Build", "description": "Now", "status": "current"},
            {"kind": "timeline_step", "step": 3, "text": "Launch"},
        ],
    },
    {
        "type": "icon_cards_with_image",
        "blocks": [
            {"kind": "icon_card", "icon": "rocket", "text": "Fast", "bgColor": "blue"},
            {"kind": "icon_card", "icon": "shield", "text": "Safe", "description": "Audited"},
        ],
    },
    {
        "type": "numbered_grid",
        "blocks": [
            {"kind": "numbered_card", "number": 1, "text": "First"},
            {"kind": "numbered_card", "number": 2, "text": "Second", "description": "Then this"},
        ],
    },
]


def make_png(width: int = 40, height: int = 20, color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def example_deck() -> Deck:
    return Deck.from_dict(EXAMPLE_DECK)


@pytest.fixture
def all_kinds_deck() -> Deck:
    return Deck.from_dict({"meta": {"title": "All kinds"}, "slides": ALL_KINDS_SLIDES})


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def generated_at() -> datetime:
    return datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
