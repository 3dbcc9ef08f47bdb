"""
Renderers for generating PPTX and PDF files from a deck.

Both renderers draw from the same slide plan and produce identical bytes
for identical inputs.
"""

from deckexport.renderers.base import BaseRenderer
from deckexport.renderers.pdf_renderer import PDFRenderer
from deckexport.renderers.pptx_renderer import PPTXRenderer

RENDERERS = {
    PPTXRenderer.format: PPTXRenderer,
    PDFRenderer.format: PDFRenderer,
}

EXPORT_FORMATS = tuple(RENDERERS)


def get_renderer(export_format: str) -> BaseRenderer:
    """Get a renderer instance for ``"pptx"`` or ``"pdf"``."""
    try:
        return RENDERERS[export_format]()
    except KeyError:
        raise ValueError(f"Unsupported export format: {export_format!r}") from None


__all__ = ["BaseRenderer", "PPTXRenderer", "PDFRenderer", "RENDERERS", "EXPORT_FORMATS", "get_renderer"]
