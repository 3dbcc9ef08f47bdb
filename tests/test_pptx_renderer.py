"""
Tests for the PPTX renderer.
"""

import io
import zipfile
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from pptx import Presentation
from pptx.enum.shapes import MSO_SHAPE_TYPE

from deckexport.errors import UnknownBlockKindError
from deckexport.models import BLOCK_KINDS, BrandKit, Deck, DeckMeta, Slide
from deckexport.renderers import PDFRenderer, PPTXRenderer, get_renderer


def _open(data: bytes):
    return Presentation(io.BytesIO(data))


def _text_shapes(slide):
    return [shape for shape in slide.shapes if shape.has_text_frame and shape.text_frame.text]


def _texts(slide):
    return [shape.text_frame.text for shape in _text_shapes(slide)]


def _stat_deck(n: int) -> Deck:
    blocks = [{"kind": "stat_block", "value": f"V{i}", "label": f"L{i}"} for i in range(n)]
    return Deck.from_dict({"meta": {"title": "Stats"}, "slides": [{"type": "hero_stats", "blocks": blocks}]})


def test_example_deck_renders(example_deck, generated_at):
    """The three-slide example deck renders, stat blocks included."""
    data = PPTXRenderer().render(example_deck, generated_at=generated_at)
    assert len(data) > 0

    prs = _open(data)
    assert len(prs.slides) == 3

    texts = _texts(prs.slides[1])
    assert "Highlights" in texts
    for value in ("95%", "1.2M", "42"):
        assert value in texts
    assert "up from 90%" in texts
    assert "Revenue grew\nChurn fell\nHiring on plan" in texts


def test_slide_and_block_order_preserved(example_deck, generated_at):
    prs = _open(PPTXRenderer().render(example_deck, generated_at=generated_at))
    assert _texts(prs.slides[0])[:2] == ["Quarterly Review", "Results and next steps"]
    assert _texts(prs.slides[2])[0] == "One number"


def test_rendering_is_deterministic(example_deck, generated_at):
    renderer = PPTXRenderer()
    first = renderer.render(example_deck, generated_at=generated_at)
    second = renderer.render(example_deck, generated_at=generated_at)
    assert first == second


def test_timestamp_only_changes_core_properties(example_deck, generated_at):
    """A different generation time only touches docProps/core.xml."""
    later = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    first = zipfile.ZipFile(io.BytesIO(PPTXRenderer().render(example_deck, generated_at=generated_at)))
    second = zipfile.ZipFile(io.BytesIO(PPTXRenderer().render(example_deck, generated_at=later)))

    assert first.namelist() == second.namelist()
    changed = [name for name in first.namelist() if first.read(name) != second.read(name)]
    assert changed == ["docProps/core.xml"]


def test_core_properties(example_deck, generated_at):
    prs = _open(PPTXRenderer().render(example_deck, generated_at=generated_at))
    props = prs.core_properties
    assert props.title == "Quarterly Review"
    assert props.language == "en"
    assert props.created == datetime(2024, 5, 1, 12, 30)
    assert props.modified == datetime(2024, 5, 1, 12, 30)


@pytest.mark.parametrize("count", range(1, 7))
def test_stat_regions_do_not_overlap(count, generated_at):
    prs = _open(PPTXRenderer().render(_stat_deck(count), generated_at=generated_at))
    slide = prs.slides[0]

    values = sorted(
        (shape for shape in _text_shapes(slide) if shape.text_frame.text.startswith("V")),
        key=lambda shape: shape.left,
    )
    assert [shape.text_frame.text for shape in values] == [f"V{i}" for i in range(count)]
    for left, right in zip(values, values[1:]):
        assert left.left + left.width <= right.left


def test_missing_sublabel_is_not_rendered(generated_at):
    """A stat block without sublabel draws value and label only."""
    prs = _open(PPTXRenderer().render(_stat_deck(1), generated_at=generated_at))
    assert _texts(prs.slides[0]) == ["V0", "L0"]

    textboxes = [shape for shape in prs.slides[0].shapes if shape.has_text_frame]
    assert all(shape.text_frame.text for shape in textboxes)


def test_empty_bullets_draw_nothing(generated_at):
    deck = Deck.from_dict(
        {
            "meta": {"title": "Empty"},
            "slides": [{"blocks": [{"kind": "title", "text": "Nothing here"}, {"kind": "bullets", "items": []}]}],
        }
    )
    slide = _open(PPTXRenderer().render(deck, generated_at=generated_at)).slides[0]
    assert _texts(slide) == ["Nothing here"]
    assert "buChar" not in slide._element.xml


def test_bullets_are_real_bullets(example_deck, generated_at):
    slide = _open(PPTXRenderer().render(example_deck, generated_at=generated_at)).slides[1]
    bullets = next(shape for shape in _text_shapes(slide) if shape.text_frame.text.startswith("Revenue"))
    assert [p.text for p in bullets.text_frame.paragraphs] == ["Revenue grew", "Churn fell", "Hiring on plan"]
    assert bullets._element.xml.count("buChar") == 3


def test_brand_primary_color_applied(generated_at):
    deck = _stat_deck(1)
    data = PPTXRenderer().render(deck, brand_kit=BrandKit(primary_color="#ff6600"), generated_at=generated_at)
    slide = _open(data).slides[0]
    value = next(shape for shape in _text_shapes(slide) if shape.text_frame.text == "V0")
    assert str(value.text_frame.paragraphs[0].runs[0].font.color.rgb) == "FF6600"


def test_theme_primary_color_without_brand_kit(generated_at):
    slide = _open(PPTXRenderer().render(_stat_deck(1), theme_id="corporate_blue", generated_at=generated_at)).slides[0]
    value = next(shape for shape in _text_shapes(slide) if shape.text_frame.text == "V0")
    assert str(value.text_frame.paragraphs[0].runs[0].font.color.rgb) == "1E40AF"


def test_logo_on_every_slide(example_deck, png_bytes, generated_at):
    logo_url = "https://example.com/logo.png"
    data = PPTXRenderer().render(
        example_deck,
        brand_kit=BrandKit(logo_url=logo_url),
        assets={logo_url: png_bytes},
        generated_at=generated_at,
    )
    for slide in _open(data).slides:
        pictures = [shape for shape in slide.shapes if shape.shape_type == MSO_SHAPE_TYPE.PICTURE]
        assert len(pictures) == 1


def test_logo_skipped_without_bytes(example_deck, generated_at):
    data = PPTXRenderer().render(
        example_deck, brand_kit=BrandKit(logo_url="https://example.com/logo.png"), generated_at=generated_at
    )
    for slide in _open(data).slides:
        assert not any(shape.shape_type == MSO_SHAPE_TYPE.PICTURE for shape in slide.shapes)


def test_all_block_kinds_render(all_kinds_deck, png_bytes, generated_at):
    assets = {"https://example.com/a.png": png_bytes}
    prs = _open(PPTXRenderer().render(all_kinds_deck, assets=assets, generated_at=generated_at))
    assert len(prs.slides) == len(all_kinds_deck.slides)

    image_slide = prs.slides[2]
    pictures = [shape for shape in image_slide.shapes if shape.shape_type == MSO_SHAPE_TYPE.PICTURE]
    assert len(pictures) == 1
    # The second image has no bytes and falls back to its alt text
    assert "Photo" in _texts(image_slide)

    table_slide = prs.slides[1]
    tables = [shape for shape in table_slide.shapes if shape.has_table]
    assert len(tables) == 1
    assert tables[0].table.cell(0, 0).text == "Task"
    assert tables[0].table.cell(2, 1).text == "Lin"


def test_handlers_cover_every_block_kind():
    for renderer_cls in (PPTXRenderer, PDFRenderer):
        assert set(renderer_cls.BLOCK_HANDLERS) == set(BLOCK_KINDS)
        for handler in renderer_cls.BLOCK_HANDLERS.values():
            assert callable(getattr(renderer_cls, handler))


def test_unknown_kind_fails_before_drawing():
    slide = Slide.model_construct(type="bullets", layout_variant="default", blocks=[SimpleNamespace(kind="chart")])
    deck = Deck.model_construct(meta=DeckMeta(title="Bad"), slides=[slide])
    with pytest.raises(UnknownBlockKindError):
        PPTXRenderer().render(deck)


def test_get_renderer():
    assert isinstance(get_renderer("pptx"), PPTXRenderer)
    assert isinstance(get_renderer("pdf"), PDFRenderer)
    with pytest.raises(ValueError):
        get_renderer("docx")
