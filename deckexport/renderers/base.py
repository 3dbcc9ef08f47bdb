"""
Base renderer interface.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional

from deckexport.errors import UnknownBlockKindError
from deckexport.layout import Placement
from deckexport.models import BrandKit, Deck
from deckexport.themes import Theme, resolve_theme


class BaseRenderer(ABC):
    """
    Abstract base class for deck renderers.

    ``render`` is a pure transformation: the same deck, theme, brand kit,
    assets and ``generated_at`` always produce the same bytes. The
    timestamp is written to document metadata only.
    """

    format: str = ""
    content_type: str = "application/octet-stream"
    extension: str = ""

    # block kind -> name of the drawing method
    BLOCK_HANDLERS: Dict[str, str] = {}

    def render(
        self,
        deck: Deck,
        theme_id: Optional[str] = None,
        brand_kit: Optional[BrandKit] = None,
        assets: Optional[Mapping[str, bytes]] = None,
        generated_at: Optional[datetime] = None,
    ) -> bytes:
        """
        Render a deck to bytes.

        Args:
            deck: The deck document
            theme_id: Theme to use (default: the deck's own theme)
            brand_kit: Overrides on top of the theme (default: the deck's)
            assets: Pre-fetched image bytes keyed by URL (logo, image blocks)
            generated_at: Generation timestamp for document metadata

        Returns:
            The rendered file content
        """
        theme = resolve_theme(
            theme_id or deck.meta.theme_id,
            brand_kit if brand_kit is not None else deck.meta.brand_kit,
        )
        if generated_at is None:
            generated_at = datetime.now(timezone.utc)
        self.check_block_kinds(deck)
        return self._render(deck, theme, dict(assets or {}), generated_at)

    def check_block_kinds(self, deck: Deck) -> None:
        """Fail before drawing anything if any block has no handler."""
        for slide_index, slide in enumerate(deck.slides):
            for block_index, block in enumerate(slide.blocks):
                if block.kind not in self.BLOCK_HANDLERS:
                    raise UnknownBlockKindError(
                        block.kind, location=f"slides[{slide_index}].blocks[{block_index}]"
                    )

    def draw_placement(self, placement: Placement, *args) -> None:
        handler = self.BLOCK_HANDLERS.get(placement.block.kind)
        if handler is None:
            raise UnknownBlockKindError(placement.block.kind)
        getattr(self, handler)(placement, *args)

    @abstractmethod
    def _render(
        self,
        deck: Deck,
        theme: Theme,
        assets: Dict[str, bytes],
        generated_at: datetime,
    ) -> bytes:
        pass
