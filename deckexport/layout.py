"""
Slide geometry shared by the PPTX and PDF renderers.

All measurements are in inches on a 16:9 slide. ``plan_slide`` turns a
slide's ordered blocks into placements; both renderers draw from the same
plan, so positions agree across formats.
"""

import math
from dataclasses import dataclass
from typing import List, Optional

from deckexport.errors import UnknownBlockKindError
from deckexport.models import (
    BLOCK_KINDS,
    ROW_BLOCK_KINDS,
    Block,
    BulletsBlock,
    CalloutBlock,
    Slide,
    TableBlock,
    TextBlock,
)

SLIDE_WIDTH = 13.333
SLIDE_HEIGHT = 7.5
MARGIN = 0.5

BLOCK_GAP = 0.25
ROW_GAP = 0.3
MAX_ITEMS_PER_ROW = 6

LOGO_WIDTH = 1.2
LOGO_HEIGHT = 0.5

# Preferred heights (inches) before scaling to the available body height.
TITLE_HEIGHT = 1.0
HEADING_HEIGHT = 0.7
LINE_HEIGHT = 0.34
IMAGE_HEIGHT = 3.0
TABLE_ROW_HEIGHT = 0.4
ROW_HEIGHTS = {
    "stat_block": 2.2,
    "timeline_step": 1.4,
    "icon_card": 1.9,
    "numbered_card": 1.9,
}

# Rough average glyph width at body size, used for line estimates only.
CHAR_WIDTH = 0.105

COVER_TYPES = ("cover", "section_header")


@dataclass(frozen=True)
class Box:
    """Axis-aligned rectangle: top-left corner plus size."""

    x: float
    y: float
    w: float
    h: float

    @property
    def right(self) -> float:
        return self.x + self.w

    @property
    def bottom(self) -> float:
        return self.y + self.h

    def overlaps(self, other: "Box", tolerance: float = 1e-6) -> bool:
        """True when the two boxes share a region of positive area."""
        return (
            self.x < other.right - tolerance
            and other.x < self.right - tolerance
            and self.y < other.bottom - tolerance
            and other.y < self.bottom - tolerance
        )

    def inset(self, dx: float, dy: Optional[float] = None) -> "Box":
        dy = dx if dy is None else dy
        return Box(self.x + dx, self.y + dy, max(self.w - 2 * dx, 0.0), max(self.h - 2 * dy, 0.0))


CONTENT_AREA = Box(MARGIN, MARGIN, SLIDE_WIDTH - 2 * MARGIN, SLIDE_HEIGHT - 2 * MARGIN)
LOGO_BOX = Box(SLIDE_WIDTH - MARGIN - LOGO_WIDTH, 0.2, LOGO_WIDTH, LOGO_HEIGHT)


@dataclass(frozen=True)
class Placement:
    """A block assigned to a region of the slide."""

    block: Block
    box: Box
    role: str
    index: int


def distribute(
    count: int,
    area: Box,
    gap: float = ROW_GAP,
    max_per_row: int = MAX_ITEMS_PER_ROW,
) -> List[Box]:
    """
    Split ``area`` into ``count`` non-overlapping cells.

    Cells run left to right across the full width; beyond ``max_per_row``
    they wrap into balanced rows. Adjacent cells are separated by ``gap``.
    """
    if count <= 0:
        return []
    rows = math.ceil(count / max_per_row)
    cols = math.ceil(count / rows)
    cell_w = (area.w - gap * (cols - 1)) / cols
    cell_h = (area.h - gap * (rows - 1)) / rows

    cells = []
    for i in range(count):
        row, col = divmod(i, cols)
        cells.append(
            Box(
                area.x + col * (cell_w + gap),
                area.y + row * (cell_h + gap),
                cell_w,
                cell_h,
            )
        )
    return cells


def estimate_lines(text: str, width: float, char_width: float = CHAR_WIDTH) -> int:
    if not text:
        return 0
    per_line = max(int(width / char_width), 1)
    return sum(max(math.ceil(len(part) / per_line), 1) for part in text.split("\n"))


def _preferred_height(block: Block, width: float) -> float:
    if isinstance(block, TextBlock):
        return estimate_lines(block.text, width) * LINE_HEIGHT + 0.1
    if isinstance(block, BulletsBlock):
        if not block.items:
            return 0.0
        lines = sum(estimate_lines(item, width - 0.4) for item in block.items)
        return lines * (LINE_HEIGHT + 0.06) + 0.1
    if isinstance(block, CalloutBlock):
        return estimate_lines(block.text, width - 0.6) * LINE_HEIGHT + 0.5
    if isinstance(block, TableBlock):
        return (len(block.rows) + 1) * TABLE_ROW_HEIGHT
    if block.kind == "image":
        return IMAGE_HEIGHT
    if block.kind == "title":
        return HEADING_HEIGHT
    raise ValueError(f"No stacked layout for block kind {block.kind!r}")


class _Segment:
    """A stacked block, or a group of row-arranged blocks of one kind."""

    def __init__(self, kind: str, first: int, block: Block):
        self.kind = kind
        self.members = [(first, block)]

    @property
    def is_row(self) -> bool:
        return self.kind in ROW_BLOCK_KINDS

    def preferred_height(self, width: float) -> float:
        if self.is_row:
            rows = math.ceil(len(self.members) / MAX_ITEMS_PER_ROW)
            return rows * ROW_HEIGHTS[self.kind] + (rows - 1) * ROW_GAP
        return _preferred_height(self.members[0][1], width)


def _segments(indexed_blocks) -> List[_Segment]:
    segments: List[_Segment] = []
    groups = {}
    for index, block in indexed_blocks:
        if block.kind not in BLOCK_KINDS:
            # Plain objects can bypass model validation; never drop them.
            raise UnknownBlockKindError(block.kind, location=f"blocks[{index}]")
        if block.kind in ROW_BLOCK_KINDS:
            if block.kind in groups:
                groups[block.kind].members.append((index, block))
                continue
            groups[block.kind] = _Segment(block.kind, index, block)
            segments.append(groups[block.kind])
        else:
            segments.append(_Segment(block.kind, index, block))
    return segments


def _flow(indexed_blocks, area: Box) -> List[Placement]:
    segments = _segments(indexed_blocks)
    if not segments:
        return []

    preferred = [seg.preferred_height(area.w) for seg in segments]
    gaps = BLOCK_GAP * (len(segments) - 1)
    total = sum(preferred) + gaps
    scale = 1.0
    if total > area.h and sum(preferred) > 0:
        scale = max(area.h - gaps, 0.0) / sum(preferred)

    placements: List[Placement] = []
    y = area.y
    for seg, height in zip(segments, preferred):
        height *= scale
        seg_box = Box(area.x, y, area.w, height)
        if seg.is_row:
            cells = distribute(len(seg.members), seg_box)
            for (index, block), cell in zip(seg.members, cells):
                placements.append(Placement(block, cell, "row", index))
        else:
            index, block = seg.members[0]
            role = "heading" if block.kind == "title" else "body"
            placements.append(Placement(block, seg_box, role, index))
        y += height + BLOCK_GAP

    return placements


def plan_slide(slide: Slide, has_logo: bool = False) -> List[Placement]:
    """
    Assign every block of ``slide`` a region, in block order.

    The first title block becomes the slide title (or the centred cover
    title on cover-style slides); everything else flows through the body.
    Placements are returned sorted by block index.
    """
    indexed = list(enumerate(slide.blocks))
    title_width = CONTENT_AREA.w - (LOGO_WIDTH + 0.2 if has_logo else 0.0)
    placements: List[Placement] = []

    first_title = next((i for i, b in indexed if b.kind == "title"), None)
    rest = [(i, b) for i, b in indexed if i != first_title]

    if slide.type in COVER_TYPES:
        if first_title is not None:
            placements.append(
                Placement(slide.blocks[first_title], Box(CONTENT_AREA.x, 2.2, CONTENT_AREA.w, 1.5), "cover_title", first_title)
            )
        subtitle = next((i for i, b in rest if b.kind == "text"), None)
        if subtitle is not None:
            placements.append(
                Placement(slide.blocks[subtitle], Box(CONTENT_AREA.x, 3.8, CONTENT_AREA.w, 1.0), "subtitle", subtitle)
            )
            rest = [(i, b) for i, b in rest if i != subtitle]
        body = Box(CONTENT_AREA.x, 5.0, CONTENT_AREA.w, CONTENT_AREA.bottom - 5.0)
        placements.extend(_flow(rest, body))
    else:
        body_top = CONTENT_AREA.y
        if first_title is not None:
            placements.append(
                Placement(
                    slide.blocks[first_title],
                    Box(CONTENT_AREA.x, CONTENT_AREA.y, title_width, TITLE_HEIGHT),
                    "title",
                    first_title,
                )
            )
            body_top += TITLE_HEIGHT + BLOCK_GAP
        elif has_logo:
            body_top = max(body_top, LOGO_BOX.bottom + BLOCK_GAP)
        body = Box(CONTENT_AREA.x, body_top, CONTENT_AREA.w, CONTENT_AREA.bottom - body_top)
        placements.extend(_flow(rest, body))

    return sorted(placements, key=lambda p: p.index)
