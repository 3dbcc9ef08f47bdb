"""
PDF renderer using reportlab.

Draws the same slide plan as the PPTX renderer onto 16:9 pages. Page
content is vector text and shapes; images are embedded as-is.
"""

import io
import logging
from datetime import datetime
from typing import Dict, List, Optional

from PIL import Image
from reportlab.lib.colors import HexColor
from reportlab.lib.units import inch
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from deckexport.layout import LOGO_BOX, SLIDE_HEIGHT, SLIDE_WIDTH, Box, Placement, plan_slide
from deckexport.models import Deck
from deckexport.renderers.base import BaseRenderer
from deckexport.renderers.pptx_renderer import CARD_BG_PRESETS, fit_image
from deckexport.themes import Theme

logger = logging.getLogger(__name__)

PAGE_SIZE = (SLIDE_WIDTH * inch, SLIDE_HEIGHT * inch)
MIN_FONT_SIZE = 8
LEADING = 1.2


class PDFRenderer(BaseRenderer):
    """
    Render a Deck into a PDF document, one page per slide.

    The canvas runs in reportlab's invariant mode so that document IDs and
    dates do not vary between runs; the generation timestamp is written
    to the document subject instead.
    """

    format = "pdf"
    content_type = "application/pdf"
    extension = "pdf"

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
        buffer = io.BytesIO()
        c = canvas.Canvas(buffer, pagesize=PAGE_SIZE, invariant=1)
        c.setTitle(deck.meta.title)
        c.setAuthor("deckexport")
        c.setCreator("deckexport")
        c.setSubject(f"Generated {generated_at.isoformat()}")

        logo = assets.get(theme.logo_url) if theme.logo_url else None
        if theme.logo_url and logo is None:
            logger.warning("Logo %s not available, rendering without it", theme.logo_url)

        logger.info("Rendering %d slides to PDF for deck %r", len(deck.slides), deck.meta.title)

        for slide_model in deck.slides:
            self._render_background(c, theme)
            if logo is not None:
                self._draw_image(c, logo, fit_image(logo, LOGO_BOX), mode="fill")
            for placement in plan_slide(slide_model, has_logo=logo is not None):
                self.draw_placement(placement, c, theme, assets)
            c.showPage()

        c.save()
        return buffer.getvalue()

    # --- Blocks ---

    def _render_title(self, placement: Placement, c, theme: Theme, assets) -> None:
        typo = theme.typography
        if placement.role == "cover_title":
            size, align, anchor = typo.display_size, "center", "bottom"
        elif placement.role == "title":
            size, align, anchor = typo.title_size, "left", "middle"
        else:
            size, align, anchor = typo.heading_size, "left", "middle"
        self._draw_text(
            c, placement.box, placement.block.text, self._font(theme, bold=typo.title_bold), size,
            theme.colors.foreground, align=align, anchor=anchor,
        )

    def _render_text(self, placement: Placement, c, theme: Theme, assets) -> None:
        typo = theme.typography
        if placement.role == "subtitle":
            self._draw_text(
                c, placement.box, placement.block.text, self._font(theme), typo.heading_size,
                theme.colors.foreground_muted, align="center",
            )
            return
        self._draw_text(
            c, placement.box, placement.block.text, self._font(theme), typo.body_size, theme.colors.foreground
        )

    def _render_bullets(self, placement: Placement, c, theme: Theme, assets) -> None:
        items = placement.block.items
        if not items:
            return
        box = placement.box
        font = self._font(theme)
        text_width = (box.w - 0.3) * inch

        # Shrink until every item fits, then draw top to bottom.
        size = theme.typography.body_size
        while True:
            wrapped = [simpleSplit(item, font, size, text_width) or [""] for item in items]
            spacing = size * 0.4
            needed = sum(len(lines) * size * LEADING for lines in wrapped) + spacing * (len(items) - 1)
            if needed <= box.h * inch or size <= MIN_FONT_SIZE:
                break
            size -= 1

        y = self._top(box)
        c.setFont(font, size)
        for drawn, lines in enumerate(wrapped):
            if y - size * LEADING < self._bottom(box) - 0.5:
                logger.warning(
                    "Bullet list truncated in PDF: %d of %d items fit at %dpt", drawn, len(items), size
                )
                break
            c.setFillColor(HexColor(theme.colors.primary))
            c.circle(box.x * inch + 0.08 * inch, y - size * 0.6, size * 0.15, stroke=0, fill=1)
            c.setFillColor(HexColor(theme.colors.foreground))
            for line in lines:
                y -= size * LEADING
                c.drawString(box.x * inch + 0.3 * inch, y + size * 0.25, line)
            y -= spacing

    def _render_stat_block(self, placement: Placement, c, theme: Theme, assets) -> None:
        block = placement.block
        box = placement.box
        typo = theme.typography
        self._draw_text(
            c, Box(box.x, box.y, box.w, box.h * 0.5), block.value, self._font(theme, bold=True),
            typo.display_size, theme.colors.primary, align="center", anchor="bottom",
        )
        self._draw_text(
            c, Box(box.x, box.y + box.h * 0.52, box.w, box.h * 0.22), block.label,
            self._font(theme, bold=True), typo.body_size + 2, theme.colors.foreground, align="center",
        )
        if block.sublabel:
            self._draw_text(
                c, Box(box.x, box.y + box.h * 0.76, box.w, box.h * 0.24), block.sublabel,
                self._font(theme), typo.small_size, theme.colors.foreground_muted, align="center",
            )

    def _render_callout(self, placement: Placement, c, theme: Theme, assets) -> None:
        block = placement.block
        box = placement.box
        typo = theme.typography
        accent = {
            "warning": theme.colors.warning,
            "success": theme.colors.success,
            "quote": theme.colors.primary,
        }.get(block.style, theme.colors.info)

        self._rect(c, box, fill=theme.colors.background_subtle)
        self._rect(c, Box(box.x, box.y, 0.08, box.h), fill=accent)
        is_quote = block.style == "quote"
        self._draw_text(
            c,
            Box(box.x + 0.3, box.y + 0.15, box.w - 0.45, max(box.h - 0.3, 0.1)),
            block.text,
            self._font(theme, italic=is_quote and typo.quote_italic),
            typo.quote_size if is_quote else typo.body_size,
            theme.colors.foreground,
            anchor="middle",
        )

    def _render_table(self, placement: Placement, c, theme: Theme, assets) -> None:
        block = placement.block
        box = placement.box
        n_cols = max([len(block.columns)] + [len(row) for row in block.rows])
        if n_cols == 0:
            return
        header = [list(block.columns)] if block.columns else []
        rows = header + [list(row) for row in block.rows]
        cell_w = box.w / n_cols
        cell_h = box.h / len(rows)
        size = theme.typography.small_size + 2

        for r, row in enumerate(rows):
            is_header = bool(header) and r == 0
            for col in range(n_cols):
                cell = Box(box.x + col * cell_w, box.y + r * cell_h, cell_w, cell_h)
                self._rect(
                    c,
                    cell,
                    fill=theme.colors.background_subtle if is_header else theme.colors.background,
                    stroke=theme.colors.border,
                )
                text = row[col] if col < len(row) else ""
                if text:
                    self._draw_text(
                        c, cell.inset(0.08), text, self._font(theme, bold=is_header), size,
                        theme.colors.foreground, anchor="middle",
                    )

    def _render_image(self, placement: Placement, c, theme: Theme, assets) -> None:
        block = placement.block
        box = placement.box
        data = assets.get(block.url)
        if data is None:
            logger.warning("Image %s not available, drawing placeholder", block.url)
            self._rect(c, box, fill=theme.colors.background_subtle, stroke=theme.colors.border)
            self._draw_text(
                c, box.inset(0.2), block.alt or block.url, self._font(theme), theme.typography.small_size,
                theme.colors.foreground_muted, align="center", anchor="middle",
            )
            return
        if block.crop_mode == "contain":
            self._draw_image(c, data, fit_image(data, box), mode="fill")
        else:
            self._draw_image(c, data, box, mode=block.crop_mode)

    def _render_timeline_step(self, placement: Placement, c, theme: Theme, assets) -> None:
        block = placement.block
        box = placement.box
        typo = theme.typography
        status_color = {
            "completed": theme.colors.success,
            "current": theme.colors.primary,
        }.get(block.status, theme.colors.border)
        upcoming = block.status not in ("completed", "current")

        node = Box(box.x, box.y, 0.4, 0.4)
        c.setStrokeColor(HexColor(status_color))
        c.setFillColor(HexColor(theme.colors.background if upcoming else status_color))
        c.circle((node.x + node.w / 2) * inch, self._page_y(node.y + node.h / 2), node.w / 2 * inch, stroke=1, fill=1)
        self._draw_text(
            c, node, str(block.step), self._font(theme, bold=True), typo.small_size,
            theme.colors.foreground_muted if upcoming else theme.colors.primary_foreground,
            align="center", anchor="middle",
        )
        self._draw_text(
            c, Box(box.x, box.y + 0.5, box.w, 0.4), block.text, self._font(theme, bold=True),
            typo.body_size + 2, theme.colors.foreground,
        )
        if block.description:
            self._draw_text(
                c, Box(box.x, box.y + 0.95, box.w, max(box.h - 0.95, 0.2)), block.description,
                self._font(theme), typo.small_size, theme.colors.foreground_muted,
            )

    def _render_icon_card(self, placement: Placement, c, theme: Theme, assets) -> None:
        block = placement.block
        bg = CARD_BG_PRESETS.get((block.bg_color or "").lower()) or theme.colors.background_subtle
        self._render_card(
            c, theme, placement.box, bg, block.icon[:1].upper(), theme.colors.background,
            theme.colors.primary, block.text, block.description,
        )

    def _render_numbered_card(self, placement: Placement, c, theme: Theme, assets) -> None:
        block = placement.block
        self._render_card(
            c, theme, placement.box, theme.colors.background_subtle, str(block.number),
            theme.colors.primary, theme.colors.primary_foreground, block.text, block.description,
        )

    def _render_card(self, c, theme: Theme, box: Box, bg: str, badge: str, badge_fill: str, badge_text: str, title: str, description: Optional[str]) -> None:
        typo = theme.typography
        c.setFillColor(HexColor(bg))
        c.roundRect(box.x * inch, self._bottom(box), box.w * inch, box.h * inch, 0.1 * inch, stroke=0, fill=1)

        badge_box = Box(box.x + 0.2, box.y + 0.2, 0.5, 0.5)
        c.setFillColor(HexColor(badge_fill))
        c.setStrokeColor(HexColor(theme.colors.border))
        c.circle(
            (badge_box.x + 0.25) * inch, self._page_y(badge_box.y + 0.25), 0.25 * inch, stroke=1, fill=1
        )
        self._draw_text(
            c, badge_box, badge, self._font(theme, bold=True), typo.body_size, badge_text,
            align="center", anchor="middle",
        )
        self._draw_text(
            c, Box(box.x + 0.2, box.y + 0.85, max(box.w - 0.4, 0.1), 0.4), title,
            self._font(theme, bold=True), typo.body_size + 2, theme.colors.foreground,
        )
        if description:
            self._draw_text(
                c, Box(box.x + 0.2, box.y + 1.25, max(box.w - 0.4, 0.1), max(box.h - 1.35, 0.2)),
                description, self._font(theme), typo.small_size, theme.colors.foreground_muted,
            )

    # --- Drawing helpers ---

    @staticmethod
    def _font(theme: Theme, bold: bool = False, italic: bool = False) -> str:
        typo = theme.typography
        if bold:
            return typo.pdf_font_bold
        if italic:
            return f"{typo.pdf_font}-Oblique"
        return typo.pdf_font

    @staticmethod
    def _page_y(y: float) -> float:
        """Convert a top-down slide coordinate (inches) to PDF points."""
        return (SLIDE_HEIGHT - y) * inch

    def _top(self, box: Box) -> float:
        return self._page_y(box.y)

    def _bottom(self, box: Box) -> float:
        return self._page_y(box.bottom)

    def _render_background(self, c, theme: Theme) -> None:
        c.setFillColor(HexColor(theme.colors.background))
        c.rect(0, 0, PAGE_SIZE[0], PAGE_SIZE[1], stroke=0, fill=1)

    def _rect(self, c, box: Box, fill: Optional[str] = None, stroke: Optional[str] = None) -> None:
        if fill:
            c.setFillColor(HexColor(fill))
        if stroke:
            c.setStrokeColor(HexColor(stroke))
            c.setLineWidth(0.75)
        c.rect(
            box.x * inch, self._bottom(box), box.w * inch, box.h * inch,
            stroke=1 if stroke else 0, fill=1 if fill else 0,
        )

    def _wrap(self, text: str, font: str, size: float, width: float) -> List[str]:
        lines: List[str] = []
        for paragraph in text.split("\n"):
            lines.extend(simpleSplit(paragraph, font, size, width) or [""])
        return lines

    def _draw_text(
        self,
        c,
        box: Box,
        text: str,
        font: str,
        size: float,
        color: str,
        align: str = "left",
        anchor: str = "top",
    ) -> None:
        """Draw wrapped text inside ``box``, shrinking the font until it fits."""
        if not text:
            return
        width = box.w * inch
        height = box.h * inch
        lines = self._wrap(text, font, size, width)
        while len(lines) * size * LEADING > height and size > MIN_FONT_SIZE:
            size -= 1
            lines = self._wrap(text, font, size, width)
        max_lines = max(int(height // (size * LEADING)), 1)
        if len(lines) > max_lines:
            logger.warning("Text truncated in PDF: %d of %d lines fit at %dpt", max_lines, len(lines), size)
            lines = lines[:max_lines]

        block_height = len(lines) * size * LEADING
        if anchor == "middle":
            y = self._top(box) - (height - block_height) / 2
        elif anchor == "bottom":
            y = self._bottom(box) + block_height
        else:
            y = self._top(box)

        c.setFont(font, size)
        c.setFillColor(HexColor(color))
        for line in lines:
            y -= size * LEADING
            baseline = y + size * 0.25
            if align == "center":
                c.drawCentredString((box.x + box.w / 2) * inch, baseline, line)
            elif align == "right":
                c.drawRightString(box.right * inch, baseline, line)
            else:
                c.drawString(box.x * inch, baseline, line)

    def _draw_image(self, c, data: bytes, box: Box, mode: str = "fill") -> None:
        reader = ImageReader(io.BytesIO(data))
        if mode != "cover":
            c.drawImage(
                reader, box.x * inch, self._bottom(box), box.w * inch, box.h * inch, mask="auto"
            )
            return

        # Scale to cover the box and clip the overflow.
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
        scale = max(box.w / width, box.h / height)
        w, h = width * scale, height * scale
        x = box.x + (box.w - w) / 2
        y = box.y + (box.h - h) / 2

        c.saveState()
        path = c.beginPath()
        path.rect(box.x * inch, self._bottom(box), box.w * inch, box.h * inch)
        c.clipPath(path, stroke=0, fill=0)
        c.drawImage(reader, x * inch, self._page_y(y + h), w * inch, h * inch, mask="auto")
        c.restoreState()
