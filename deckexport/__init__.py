"""
DeckExport: render structured slide decks to PPTX and PDF.

A deck document (slides of typed blocks) is validated with Pydantic, laid
out once, and drawn by deterministic python-pptx and reportlab renderers.
"""

__version__ = "0.1.0"

from deckexport.models import Deck, DeckMeta, Slide, Block, BrandKit
from deckexport.renderers import PPTXRenderer, PDFRenderer, get_renderer

__all__ = [
    "Deck",
    "DeckMeta",
    "Slide",
    "Block",
    "BrandKit",
    "PPTXRenderer",
    "PDFRenderer",
    "get_renderer",
]
