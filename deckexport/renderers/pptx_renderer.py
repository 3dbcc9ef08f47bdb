"""
PPTX renderer using python-pptx.

Converts a Deck into an editable PowerPoint presentation. Every block is
drawn from the shared slide plan in ``deckexport.layout``.
"""

import io
import logging
import zipfile
from datetime import datetime, timezone
from typing import Dict, Optional

from PIL import Image
from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.shapes import MSO_SHAPE
from pptx.enum.text import MSO_ANCHOR, PP_ALIGN
from pptx.oxml.ns import qn
from pptx.util import Inches, Pt

from deckexport.layout import (
    LOGO_BOX,
    SLIDE_HEIGHT,
    SLIDE_WIDTH,
    Box,
    Placement,
    plan_slide,
)
from deckexport.models import Deck
from deckexport.renderers.base import BaseRenderer
from deckexport.themes import Theme

logger = logging.getLogger(__name__)

# Zip entries get a fixed timestamp so identical decks give identical bytes.
FIXED_ZIP_TIME = (1980, 1, 1, 0, 0, 0)

ALIGN_MAP = {
    "left": PP_ALIGN.LEFT,
    "center": PP_ALIGN.CENTER,
    "right": PP_ALIGN.RIGHT,
}

ANCHOR_MAP = {
    "top": MSO_ANCHOR.TOP,
    "middle": MSO_ANCHOR.MIDDLE,
    "bottom": MSO_ANCHOR.BOTTOM,
}

# Named icon card backgrounds
CARD_BG_PRESETS = {
    "pink": "#ffe4e6",
    "blue": "#dbeafe",
    "green": "#dcfce7",
    "purple": "#f3e8ff",
    "orange": "#ffedd5",
    "yellow": "#fef9c3",
    "cyan": "#cffafe",
    "red": "#fee2e2",
}


def parse_hex_color(hex_color: Optional[str]) -> Optional[RGBColor]:
    """Parse hex color string to RGBColor."""
    if not hex_color:
        return None
    try:
        hex_color = hex_color.lstrip("#")
        if len(hex_color) == 6:
            return RGBColor(int(hex_color[0:2], 16), int(hex_color[2:4], 16), int(hex_color[4:6], 16))
    except ValueError:
        pass
    return None


def normalize_zip(data: bytes) -> bytes:
    """Rewrite a zip archive with fixed entry timestamps, keeping entry order."""
    source = zipfile.ZipFile(io.BytesIO(data))
    out = io.BytesIO()
    with zipfile.ZipFile(out, "w", zipfile.ZIP_DEFLATED) as target:
        for info in source.infolist():
            entry = zipfile.ZipInfo(info.filename, date_time=FIXED_ZIP_TIME)
            entry.compress_type = zipfile.ZIP_DEFLATED
            entry.external_attr = 0o644 << 16
            target.writestr(entry, source.read(info.filename))
    return out.getvalue()


def fit_image(data: bytes, box: Box, mode: str = "contain") -> Box:
    """Box for an image of ``data`` scaled to fit inside ``box`` (centred)."""
    with Image.open(io.BytesIO(data)) as img:
        width, height = img.size
    if mode == "fill" or width == 0 or height == 0:
        return box
    scale = min(box.w / width, box.h / height)
    w, h = width * scale, height * scale
    return Box(box.x + (box.w - w) / 2, box.y + (box.h - h) / 2, w, h)


class PPTXRenderer(BaseRenderer):
    """
    Render a Deck into a PowerPoint presentation using python-pptx.

    Features:
    - Theme fonts and colours with brand-kit overrides
    - Real bullet paragraphs (no placeholder bullet for empty lists)
    - Stat blocks, cards and timeline steps laid out side by side
    - Logo in the top-right corner when its bytes are supplied
    """

    format = "pptx"
    content_type = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
    extension = "pptx"

    BLOCK_HANDLERS = {
        "title": "_render_title",
        "text": "_render_text",
        "bullets": "_render_bullets",
        "stat_block": "_render_stat_block",
        "callout": "_render_callout",
        "table": "_render_table",
        "image": "_render_image",
        "timeline_step": "_render_timeline_step",
        "icon_card": "_render_icon_card",
        "numbered_card": "_render_numbered_card",
    }

    def _render(self, deck: Deck, theme: Theme, assets: Dict[str, bytes], generated_at: datetime) -> bytes:
        prs = Presentation()
        prs.slide_width = Inches(SLIDE_WIDTH)
        prs.slide_height = Inches(SLIDE_HEIGHT)
        self._set_metadata(prs, deck, generated_at)

        logo = assets.get(theme.logo_url) if theme.logo_url else None
        if theme.logo_url and logo is None:
            logger.warning("Logo %s not available, rendering without it", theme.logo_url)

        logger.info("Rendering %d slides to PPTX for deck %r", len(deck.slides), deck.meta.title)

        blank_layout = prs.slide_layouts[6]
        for slide_model in deck.slides:
            slide = prs.slides.add_slide(blank_layout)
            self._render_background(slide, theme)
            if logo is not None:
                self._add_picture(slide, logo, fit_image(logo, LOGO_BOX))

            for placement in plan_slide(slide_model, has_logo=logo is not None):
                self.draw_placement(placement, slide, theme, assets)

        buffer = io.BytesIO()
        prs.save(buffer)
        return normalize_zip(buffer.getvalue())

    @staticmethod
    def _set_metadata(prs, deck: Deck, generated_at: datetime) -> None:
        if generated_at.tzinfo is not None:
            generated_at = generated_at.astimezone(timezone.utc).replace(tzinfo=None)
        props = prs.core_properties
        props.title = deck.meta.title
        props.language = deck.meta.language
        props.author = "deckexport"
        props.last_modified_by = "deckexport"
        props.revision = 1
        props.created = generated_at
        props.modified = generated_at

    # --- Blocks ---

    def _render_title(self, placement: Placement, slide, theme: Theme, assets) -> None:
        typo = theme.typography
        if placement.role == "cover_title":
            size, align, anchor = typo.display_size, "center", "bottom"
        elif placement.role == "title":
            size, align, anchor = typo.title_size, "left", "middle"
        else:
            size, align, anchor = typo.heading_size, "left", "middle"
        self._add_text(
            slide,
            placement.box,
            placement.block.text,
            size=size,
            color=theme.colors.foreground,
            font=typo.heading_font_family,
            bold=typo.title_bold,
            align=align,
            anchor=anchor,
        )

    def _render_text(self, placement: Placement, slide, theme: Theme, assets) -> None:
        typo = theme.typography
        if placement.role == "subtitle":
            self._add_text(
                slide,
                placement.box,
                placement.block.text,
                size=typo.heading_size,
                color=theme.colors.foreground_muted,
                font=typo.font_family,
                align="center",
            )
            return
        self._add_text(
            slide,
            placement.box,
            placement.block.text,
            size=typo.body_size,
            color=theme.colors.foreground,
            font=typo.font_family,
        )

    def _render_bullets(self, placement: Placement, slide, theme: Theme, assets) -> None:
        items = placement.block.items
        if not items:
            return
        box = placement.box
        textbox = slide.shapes.add_textbox(Inches(box.x), Inches(box.y), Inches(box.w), Inches(box.h))
        text_frame = textbox.text_frame
        text_frame.word_wrap = True
        text_frame.vertical_anchor = MSO_ANCHOR.TOP
        self._zero_margins(text_frame)

        for i, item in enumerate(items):
            p = text_frame.paragraphs[0] if i == 0 else text_frame.add_paragraph()
            self._make_bullet(p, theme.colors.primary)
            p.space_after = Pt(6)
            run = p.add_run()
            run.text = item
            self._style_run(run, theme.typography.body_size, theme.colors.foreground, theme.typography.font_family)

    def _render_stat_block(self, placement: Placement, slide, theme: Theme, assets) -> None:
        block = placement.block
        box = placement.box
        typo = theme.typography

        value_box = Box(box.x, box.y, box.w, box.h * 0.5)
        label_box = Box(box.x, box.y + box.h * 0.52, box.w, box.h * 0.22)
        self._add_text(
            slide,
            value_box,
            block.value,
            size=typo.display_size,
            color=theme.colors.primary,
            font=typo.heading_font_family,
            bold=True,
            align="center",
            anchor="bottom",
        )
        self._add_text(
            slide,
            label_box,
            block.label,
            size=typo.body_size + 2,
            color=theme.colors.foreground,
            font=typo.font_family,
            bold=True,
            align="center",
        )
        if block.sublabel:
            sublabel_box = Box(box.x, box.y + box.h * 0.76, box.w, box.h * 0.24)
            self._add_text(
                slide,
                sublabel_box,
                block.sublabel,
                size=typo.small_size,
                color=theme.colors.foreground_muted,
                font=typo.font_family,
                align="center",
            )

    def _render_callout(self, placement: Placement, slide, theme: Theme, assets) -> None:
        block = placement.block
        box = placement.box
        typo = theme.typography
        accent = {
            "warning": theme.colors.warning,
            "success": theme.colors.success,
            "quote": theme.colors.primary,
        }.get(block.style, theme.colors.info)

        self._add_shape(slide, MSO_SHAPE.RECTANGLE, box, fill=theme.colors.background_subtle)
        self._add_shape(slide, MSO_SHAPE.RECTANGLE, Box(box.x, box.y, 0.08, box.h), fill=accent)

        is_quote = block.style == "quote"
        self._add_text(
            slide,
            Box(box.x + 0.3, box.y + 0.15, box.w - 0.45, max(box.h - 0.3, 0.1)),
            block.text,
            size=typo.quote_size if is_quote else typo.body_size,
            color=theme.colors.foreground,
            font=typo.font_family,
            italic=is_quote and typo.quote_italic,
            anchor="middle",
        )

    def _render_table(self, placement: Placement, slide, theme: Theme, assets) -> None:
        block = placement.block
        box = placement.box
        typo = theme.typography
        n_cols = max([len(block.columns)] + [len(row) for row in block.rows])
        if n_cols == 0:
            return
        header = [list(block.columns)] if block.columns else []
        rows = header + [list(row) for row in block.rows]

        frame = slide.shapes.add_table(
            len(rows), n_cols, Inches(box.x), Inches(box.y), Inches(box.w), Inches(box.h)
        )
        table = frame.table
        for r, row in enumerate(rows):
            is_header = bool(header) and r == 0
            for c in range(n_cols):
                cell = table.cell(r, c)
                cell.fill.solid()
                cell.fill.fore_color.rgb = parse_hex_color(
                    theme.colors.background_subtle if is_header else theme.colors.background
                )
                p = cell.text_frame.paragraphs[0]
                run = p.add_run()
                run.text = row[c] if c < len(row) else ""
                self._style_run(
                    run, typo.small_size + 2, theme.colors.foreground, typo.font_family, bold=is_header
                )

    def _render_image(self, placement: Placement, slide, theme: Theme, assets) -> None:
        block = placement.block
        box = placement.box
        data = assets.get(block.url)
        if data is None:
            logger.warning("Image %s not available, drawing placeholder", block.url)
            self._add_shape(
                slide, MSO_SHAPE.RECTANGLE, box, fill=theme.colors.background_subtle, line=theme.colors.border
            )
            self._add_text(
                slide,
                box.inset(0.2),
                block.alt or block.url,
                size=theme.typography.small_size,
                color=theme.colors.foreground_muted,
                font=theme.typography.font_family,
                align="center",
                anchor="middle",
            )
            return

        if block.crop_mode == "cover":
            picture = self._add_picture(slide, data, box)
            self._crop_to_fill(picture, data, box)
        else:
            self._add_picture(slide, data, fit_image(data, box, block.crop_mode))

    def _render_timeline_step(self, placement: Placement, slide, theme: Theme, assets) -> None:
        block = placement.block
        box = placement.box
        typo = theme.typography
        status_color = {
            "completed": theme.colors.success,
            "current": theme.colors.primary,
        }.get(block.status, theme.colors.border)
        upcoming = block.status not in ("completed", "current")

        node = Box(box.x, box.y, 0.4, 0.4)
        self._add_shape(
            slide,
            MSO_SHAPE.OVAL,
            node,
            fill=theme.colors.background if upcoming else status_color,
            line=status_color,
        )
        self._add_text(
            slide,
            node,
            str(block.step),
            size=typo.small_size,
            color=theme.colors.foreground_muted if upcoming else theme.colors.primary_foreground,
            font=typo.font_family,
            bold=True,
            align="center",
            anchor="middle",
        )
        self._add_text(
            slide,
            Box(box.x, box.y + 0.5, box.w, 0.4),
            block.text,
            size=typo.body_size + 2,
            color=theme.colors.foreground,
            font=typo.heading_font_family,
            bold=True,
        )
        if block.description:
            self._add_text(
                slide,
                Box(box.x, box.y + 0.95, box.w, max(box.h - 0.95, 0.2)),
                block.description,
                size=typo.small_size,
                color=theme.colors.foreground_muted,
                font=typo.font_family,
            )

    def _render_icon_card(self, placement: Placement, slide, theme: Theme, assets) -> None:
        block = placement.block
        bg = CARD_BG_PRESETS.get((block.bg_color or "").lower()) or theme.colors.background_subtle
        badge = block.icon[:1].upper()
        self._render_card(
            slide, theme, placement.box, bg, badge, theme.colors.background, theme.colors.primary, block.text, block.description
        )

    def _render_numbered_card(self, placement: Placement, slide, theme: Theme, assets) -> None:
        block = placement.block
        self._render_card(
            slide,
            theme,
            placement.box,
            theme.colors.background_subtle,
            str(block.number),
            theme.colors.primary,
            theme.colors.primary_foreground,
            block.text,
            block.description,
        )

    def _render_card(self, slide, theme: Theme, box: Box, bg: str, badge: str, badge_fill: str, badge_text: str, title: str, description: Optional[str]) -> None:
        typo = theme.typography
        self._add_shape(slide, MSO_SHAPE.ROUNDED_RECTANGLE, box, fill=bg)
        badge_box = Box(box.x + 0.2, box.y + 0.2, 0.5, 0.5)
        self._add_shape(slide, MSO_SHAPE.OVAL, badge_box, fill=badge_fill, line=theme.colors.border)
        self._add_text(
            slide, badge_box, badge, size=typo.body_size, color=badge_text, font=typo.font_family,
            bold=True, align="center", anchor="middle",
        )
        self._add_text(
            slide,
            Box(box.x + 0.2, box.y + 0.85, max(box.w - 0.4, 0.1), 0.4),
            title,
            size=typo.body_size + 2,
            color=theme.colors.foreground,
            font=typo.heading_font_family,
            bold=True,
        )
        if description:
            self._add_text(
                slide,
                Box(box.x + 0.2, box.y + 1.25, max(box.w - 0.4, 0.1), max(box.h - 1.35, 0.2)),
                description,
                size=typo.small_size,
                color=theme.colors.foreground_muted,
                font=typo.font_family,
            )

    # --- Drawing helpers ---

    def _render_background(self, slide, theme: Theme) -> None:
        fill = slide.background.fill
        fill.solid()
        fill.fore_color.rgb = parse_hex_color(theme.colors.background)

    def _add_text(
        self,
        slide,
        box: Box,
        text: str,
        size: int,
        color: str,
        font: Optional[str] = None,
        bold: bool = False,
        italic: bool = False,
        align: str = "left",
        anchor: str = "top",
    ):
        textbox = slide.shapes.add_textbox(Inches(box.x), Inches(box.y), Inches(box.w), Inches(box.h))
        text_frame = textbox.text_frame
        text_frame.word_wrap = True
        text_frame.vertical_anchor = ANCHOR_MAP[anchor]
        self._zero_margins(text_frame)

        for i, line in enumerate(text.split("\n")):
            p = text_frame.paragraphs[0] if i == 0 else text_frame.add_paragraph()
            p.alignment = ALIGN_MAP[align]
            run = p.add_run()
            run.text = line
            self._style_run(run, size, color, font, bold=bold, italic=italic)
        return textbox

    @staticmethod
    def _style_run(run, size: int, color: str, font: Optional[str], bold: bool = False, italic: bool = False) -> None:
        run.font.size = Pt(size)
        if font:
            run.font.name = font
        if bold:
            run.font.bold = True
        if italic:
            run.font.italic = True
        rgb = parse_hex_color(color)
        if rgb is not None:
            run.font.color.rgb = rgb

    @staticmethod
    def _zero_margins(text_frame) -> None:
        text_frame.margin_left = 0
        text_frame.margin_right = 0
        text_frame.margin_top = 0
        text_frame.margin_bottom = 0

    @staticmethod
    def _make_bullet(paragraph, color: str) -> None:
        """Turn a plain paragraph into a bullet paragraph with a hanging indent."""
        pPr = paragraph._p.get_or_add_pPr()
        pPr.set("marL", str(Inches(0.3)))
        pPr.set("indent", str(-Inches(0.25)))
        bu_clr = pPr.makeelement(qn("a:buClr"), {})
        srgb = bu_clr.makeelement(qn("a:srgbClr"), {"val": color.lstrip("#").upper()})
        bu_clr.append(srgb)
        pPr.append(bu_clr)
        pPr.append(pPr.makeelement(qn("a:buChar"), {"char": "•"}))

    def _add_shape(self, slide, shape_type, box: Box, fill: Optional[str] = None, line: Optional[str] = None):
        shape = slide.shapes.add_shape(shape_type, Inches(box.x), Inches(box.y), Inches(box.w), Inches(box.h))
        shape.shadow.inherit = False
        if fill:
            shape.fill.solid()
            shape.fill.fore_color.rgb = parse_hex_color(fill)
        else:
            shape.fill.background()
        if line:
            shape.line.color.rgb = parse_hex_color(line)
            shape.line.width = Pt(1)
        else:
            shape.line.fill.background()
        return shape

    @staticmethod
    def _add_picture(slide, data: bytes, box: Box):
        return slide.shapes.add_picture(
            io.BytesIO(data), Inches(box.x), Inches(box.y), width=Inches(box.w), height=Inches(box.h)
        )

    @staticmethod
    def _crop_to_fill(picture, data: bytes, box: Box) -> None:
        """Crop the picture so it covers ``box`` without distortion."""
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
        if not width or not height or not box.h:
            return
        image_ratio = width / height
        box_ratio = box.w / box.h
        if image_ratio > box_ratio:
            excess = (1 - box_ratio / image_ratio) / 2
            picture.crop_left = excess
            picture.crop_right = excess
        elif image_ratio < box_ratio:
            excess = (1 - image_ratio / box_ratio) / 2
            picture.crop_top = excess
            picture.crop_bottom = excess
