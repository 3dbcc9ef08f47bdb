"""
Core data models for DeckExport.

Defines the deck document schema (deck -> slides -> blocks) using Pydantic
for validation. Blocks form a closed, ``kind``-discriminated union.
"""

import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from deckexport.errors import UnknownBlockKindError


_HEX_COLOR = re.compile(r"^#?([0-9A-Fa-f]{6})$")


class _CamelModel(BaseModel):
    """Accepts both the camelCase wire names and snake_case attribute names."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)


# --- Blocks ---


class TitleBlock(_CamelModel):
    """Main heading text."""

    kind: Literal["title"] = "title"
    text: str


class TextBlock(_CamelModel):
    """Paragraph text."""

    kind: Literal["text"] = "text"
    text: str


class BulletsBlock(_CamelModel):
    """Bullet list; item order is significant."""

    kind: Literal["bullets"] = "bullets"
    items: List[str] = Field(default_factory=list)


class StatBlock(_CamelModel):
    """A large statistic such as "95%" or "1.2M" with a label beneath."""

    kind: Literal["stat_block"] = "stat_block"
    value: str
    label: str
    sublabel: Optional[str] = None


class CalloutBlock(_CamelModel):
    kind: Literal["callout"] = "callout"
    text: str
    style: Literal["info", "warning", "success", "quote"] = "info"


class TableBlock(_CamelModel):
    kind: Literal["table"] = "table"
    columns: List[str] = Field(default_factory=list)
    rows: List[List[str]] = Field(default_factory=list)


class ImageBlock(_CamelModel):
    kind: Literal["image"] = "image"
    url: str
    alt: str = ""
    crop_mode: Literal["cover", "contain", "fill"] = Field(default="cover", alias="cropMode")


class TimelineStepBlock(_CamelModel):
    """One step of a roadmap or timeline."""

    kind: Literal["timeline_step"] = "timeline_step"
    step: int = Field(ge=1)
    text: str
    description: Optional[str] = None
    status: Optional[Literal["completed", "current", "upcoming"]] = None


class IconCardBlock(_CamelModel):
    kind: Literal["icon_card"] = "icon_card"
    icon: str
    text: str
    description: Optional[str] = None
    bg_color: Optional[str] = Field(default=None, alias="bgColor")


class NumberedCardBlock(_CamelModel):
    kind: Literal["numbered_card"] = "numbered_card"
    number: int = Field(ge=1)
    text: str
    description: Optional[str] = None


Block = Annotated[
    Union[
        TitleBlock,
        TextBlock,
        BulletsBlock,
        StatBlock,
        CalloutBlock,
        TableBlock,
        ImageBlock,
        TimelineStepBlock,
        IconCardBlock,
        NumberedCardBlock,
    ],
    Field(discriminator="kind"),
]

# Closed set of block kinds; renderers must handle exactly these.
BLOCK_KINDS = (
    "title",
    "text",
    "bullets",
    "stat_block",
    "callout",
    "table",
    "image",
    "timeline_step",
    "icon_card",
    "numbered_card",
)

# Kinds laid out side by side in a shared row instead of stacked.
ROW_BLOCK_KINDS = ("stat_block", "timeline_step", "icon_card", "numbered_card")


# --- Slides and deck ---


SLIDE_TYPES = (
    "cover",
    "agenda",
    "section_header",
    "bullets",
    "two_column_text",
    "text_plus_image",
    "decisions_list",
    "action_items_table",
    "summary_next_steps",
    "quote_callout",
    "timeline_roadmap",
    "numbered_grid",
    "icon_cards_with_image",
    "summary_with_stats",
    "hero_stats",
    "split_with_callouts",
    "person_spotlight",
)


class Slide(_CamelModel):
    """A single slide with its ordered blocks."""

    type: str = "bullets"
    layout_variant: str = Field(default="default", alias="layoutVariant")
    blocks: List[Block] = Field(default_factory=list)


class BrandKit(_CamelModel):
    """Per-deck overrides applied on top of a theme."""

    primary_color: Optional[str] = Field(default=None, alias="primaryColor")
    secondary_color: Optional[str] = Field(default=None, alias="secondaryColor")
    logo_url: Optional[str] = Field(default=None, alias="logoUrl")

    @field_validator("primary_color", "secondary_color")
    @classmethod
    def normalize_color(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        match = _HEX_COLOR.match(v.strip())
        if not match:
            raise ValueError(f"Invalid hex color: {v!r}")
        return f"#{match.group(1).lower()}"

    @field_validator("logo_url")
    @classmethod
    def blank_logo_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @classmethod
    def from_fields(
        cls,
        primary_color: Optional[str] = None,
        secondary_color: Optional[str] = None,
        logo_url: Optional[str] = None,
    ) -> Optional["BrandKit"]:
        """Build a brand kit, or return None when no field is set."""
        kit = cls(primary_color=primary_color, secondary_color=secondary_color, logo_url=logo_url)
        return None if kit.is_empty() else kit

    def is_empty(self) -> bool:
        return not (self.primary_color or self.secondary_color or self.logo_url)

    def to_dict(self) -> Dict[str, Any]:
        """Wire form with only the present fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DeckMeta(_CamelModel):
    title: str
    language: str = "no"
    theme_id: str = Field(default="nordic_light", alias="themeId")
    brand_kit: Optional[BrandKit] = Field(default=None, alias="brandKit")


class Deck(_CamelModel):
    """
    A complete presentation document.

    Slide order and block order are significant and preserved by every
    renderer.
    """

    meta: DeckMeta
    slides: List[Slide] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Export to dict for JSON serialization."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Deck":
        """Load from dict, failing loudly on unknown block kinds."""
        check_block_kinds(data.get("slides") or [])
        return cls.model_validate(data)


def check_block_kinds(slides: List[Any]) -> None:
    """
    Raise UnknownBlockKindError for the first block whose kind is missing or
    not in BLOCK_KINDS.

    Runs before schema validation so a bad kind is reported as a data
    integrity problem instead of a generic validation failure.
    """
    for slide_index, slide in enumerate(slides):
        if not isinstance(slide, dict):
            continue
        for block_index, block in enumerate(slide.get("blocks") or []):
            kind = block.get("kind") if isinstance(block, dict) else None
            if kind not in BLOCK_KINDS:
                raise UnknownBlockKindError(
                    kind, location=f"slides[{slide_index}].blocks[{block_index}]"
                )


def parse_slides(raw_slides: List[Dict[str, Any]]) -> List[Slide]:
    """Validate stored slide dicts into Slide models."""
    check_block_kinds(raw_slides)
    return [Slide.model_validate(raw) for raw in raw_slides]
