"""
Tests for the PDF renderer.
"""

import re
from datetime import datetime, timezone

from deckexport.models import BrandKit, Deck
from deckexport.renderers import PDFRenderer


def _page_count(data: bytes) -> int:
    return len(re.findall(rb"/Type /Page[^s]", data))


def test_example_deck_renders(example_deck, generated_at):
    data = PDFRenderer().render(example_deck, generated_at=generated_at)
    assert data.startswith(b"%PDF")
    assert _page_count(data) == 3


def test_rendering_is_deterministic(example_deck, generated_at):
    renderer = PDFRenderer()
    assert renderer.render(example_deck, generated_at=generated_at) == renderer.render(
        example_deck, generated_at=generated_at
    )


def test_timestamp_is_recorded(example_deck, generated_at):
    later = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    first = PDFRenderer().render(example_deck, generated_at=generated_at)
    second = PDFRenderer().render(example_deck, generated_at=later)
    assert first != second
    assert b"2024-05-01T12:30:00" in first


def test_all_block_kinds_render(all_kinds_deck, png_bytes, generated_at):
    logo_url = "https://example.com/logo.png"
    assets = {"https://example.com/a.png": png_bytes, logo_url: png_bytes}
    data = PDFRenderer().render(
        all_kinds_deck,
        theme_id="modern_contrast",
        brand_kit=BrandKit(primary_color="#112233", logo_url=logo_url),
        assets=assets,
        generated_at=generated_at,
    )
    assert _page_count(data) == len(all_kinds_deck.slides)


def test_many_stat_blocks(generated_at):
    blocks = [{"kind": "stat_block", "value": str(i), "label": "x", "sublabel": "y"} for i in range(8)]
    deck = Deck.from_dict({"meta": {"title": "Stats"}, "slides": [{"blocks": blocks}]})
    assert _page_count(PDFRenderer().render(deck, generated_at=generated_at)) == 1


def test_overflowing_content_is_reported(caplog, generated_at):
    long_text = " ".join(["overflow"] * 6000)
    deck = Deck.from_dict(
        {
            "meta": {"title": "Long"},
            "slides": [
                {"blocks": [{"kind": "text", "text": long_text}]},
                {"blocks": [{"kind": "bullets", "items": [long_text[:2000]] * 40}]},
            ],
        }
    )
    with caplog.at_level("WARNING", logger="deckexport.renderers.pdf_renderer"):
        data = PDFRenderer().render(deck, generated_at=generated_at)

    assert _page_count(data) == 2
    messages = [record.getMessage() for record in caplog.records]
    assert any(message.startswith("Text truncated in PDF") for message in messages)
    assert any(message.startswith("Bullet list truncated in PDF") for message in messages)
