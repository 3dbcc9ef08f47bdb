"""
Deck lookups for the export API and worker.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import sessionmaker

from deckexport.models import BrandKit, Deck, DeckMeta, parse_slides
from deckexport.themes import DEFAULT_THEME_ID
from exportserver.db import DeckModel, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeckRecord:
    """A stored deck as the export pipeline sees it."""

    id: str
    workspace_id: str
    title: str
    language: str = "no"
    theme_id: Optional[str] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    logo_url: Optional[str] = None
    slides: List[Dict[str, Any]] = field(default_factory=list)
    updated_at: Optional[datetime] = None

    @property
    def brand_kit(self) -> Optional[BrandKit]:
        """
        Brand overrides, or None when no brand field is set.

        Deck rows are written by the editor as well, so a stored colour that
        is not a hex value is dropped and the theme colour applies.
        """
        colors = {}
        for name in ("primary_color", "secondary_color"):
            value = getattr(self, name)
            try:
                colors[name] = getattr(BrandKit(**{name: value}), name)
            except PydanticValidationError:
                logger.warning("Deck %s has an invalid %s %r, using the theme colour", self.id, name, value)
                colors[name] = None
        return BrandKit.from_fields(logo_url=self.logo_url, **colors)

    def to_deck(self, default_theme_id: str = DEFAULT_THEME_ID) -> Deck:
        """
        Parse the stored slides into an immutable Deck.

        Raises:
            UnknownBlockKindError: If any block has an unknown kind
            pydantic.ValidationError: If the stored data is otherwise malformed
        """
        meta = DeckMeta(
            title=self.title,
            language=self.language,
            theme_id=self.theme_id or default_theme_id,
            brand_kit=self.brand_kit,
        )
        return Deck(meta=meta, slides=parse_slides(self.slides))

    @classmethod
    def from_row(cls, row: DeckModel) -> "DeckRecord":
        return cls(
            id=row.id,
            workspace_id=row.workspace_id,
            title=row.title,
            language=row.language,
            theme_id=row.theme_id,
            primary_color=row.primary_color,
            secondary_color=row.secondary_color,
            logo_url=row.logo_url,
            slides=list(row.slides or []),
            updated_at=row.updated_at,
        )


class DeckRepository:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get_deck_by_id(self, deck_id: str, workspace_id: Optional[str] = None) -> Optional[DeckRecord]:
        """Look up a deck, restricted to ``workspace_id`` when one is given."""
        with self._session_factory() as session:
            query = session.query(DeckModel).filter(DeckModel.id == deck_id)
            if workspace_id is not None:
                query = query.filter(DeckModel.workspace_id == workspace_id)
            row = query.first()
            return DeckRecord.from_row(row) if row is not None else None

    def create_deck(
        self,
        title: str,
        slides: List[Dict[str, Any]],
        workspace_id: str,
        theme_id: Optional[str] = None,
        language: str = "no",
        primary_color: Optional[str] = None,
        secondary_color: Optional[str] = None,
        logo_url: Optional[str] = None,
        deck_id: Optional[str] = None,
    ) -> DeckRecord:
        # Normalise colours the same way the renderer will read them
        kit = BrandKit(primary_color=primary_color, secondary_color=secondary_color, logo_url=logo_url)
        row = DeckModel(
            id=deck_id or str(uuid.uuid4()),
            workspace_id=workspace_id,
            title=title,
            language=language,
            theme_id=theme_id,
            primary_color=kit.primary_color,
            secondary_color=kit.secondary_color,
            logo_url=kit.logo_url,
            slides=slides,
        )
        with self._session_factory() as session:
            session.add(row)
            session.commit()
            return DeckRecord.from_row(row)

    def update_deck(self, deck_id: str, **fields: Any) -> Optional[DeckRecord]:
        """Update stored columns (title, slides, theme_id, brand colours...)."""
        with self._session_factory() as session:
            row = session.get(DeckModel, deck_id)
            if row is None:
                return None
            for key, value in fields.items():
                if not hasattr(DeckModel, key):
                    raise AttributeError(f"Unknown deck field: {key}")
                setattr(row, key, value)
            row.updated_at = utcnow()
            session.commit()
            return DeckRecord.from_row(row)
