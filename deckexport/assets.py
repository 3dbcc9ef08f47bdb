"""
Asset fetching for logos and image blocks.

Renderers never touch the network; the caller fetches every referenced
image up front and passes the bytes in. Anything that cannot be fetched
or decoded is skipped and the renderer draws a placeholder instead.
"""

import base64
import io
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import requests
from PIL import Image, UnidentifiedImageError

from deckexport.models import BrandKit, Deck, ImageBlock

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


def collect_asset_urls(deck: Deck, brand_kit: Optional[BrandKit] = None) -> List[str]:
    """Unique image URLs referenced by the deck, in first-use order."""
    urls: List[str] = []
    kit = brand_kit if brand_kit is not None else deck.meta.brand_kit
    if kit is not None and kit.logo_url:
        urls.append(kit.logo_url)
    for slide in deck.slides:
        for block in slide.blocks:
            if isinstance(block, ImageBlock) and block.url and block.url not in urls:
                urls.append(block.url)
    return urls


def _read_source(url: str, timeout: float, allow_local_files: bool = False) -> bytes:
    if url.startswith(("http://", "https://")):
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
        return response.content
    if url.startswith("data:"):
        # data:image/png;base64,....
        header, _, payload = url.partition(",")
        if ";base64" not in header:
            raise ValueError("Only base64 data URLs are supported")
        return base64.b64decode(payload)
    if not allow_local_files:
        raise ValueError("Local file assets are not allowed")
    path = Path(url[len("file://"):] if url.startswith("file://") else url)
    return path.read_bytes()


def normalize_image(data: bytes) -> bytes:
    """Re-encode any image Pillow can read as PNG."""
    with Image.open(io.BytesIO(data)) as img:
        if img.mode not in ("RGB", "RGBA", "L", "LA"):
            img = img.convert("RGBA")
        out = io.BytesIO()
        img.save(out, format="PNG")
    return out.getvalue()


def fetch_asset(
    url: str, timeout: float = DEFAULT_TIMEOUT, allow_local_files: bool = False
) -> Optional[bytes]:
    """Fetch one asset as PNG bytes, or None if it is unavailable."""
    try:
        return normalize_image(_read_source(url, timeout, allow_local_files))
    except (requests.RequestException, OSError, ValueError, UnidentifiedImageError) as e:
        logger.warning("Failed to fetch asset %s: %s", url[:120], e)
        return None


def fetch_assets(
    urls: Iterable[str], timeout: float = DEFAULT_TIMEOUT, allow_local_files: bool = False
) -> Dict[str, bytes]:
    """
    Fetch several assets.

    Args:
        urls: Image URLs (http(s) or base64 data URLs)
        timeout: Per-request timeout in seconds
        allow_local_files: Also read local paths and file:// URLs. Only for
            trusted input such as a deck file on the command line

    Returns:
        Mapping of URL to PNG bytes for every asset that could be fetched
    """
    assets: Dict[str, bytes] = {}
    for url in urls:
        if url in assets:
            continue
        data = fetch_asset(url, timeout=timeout, allow_local_files=allow_local_files)
        if data is not None:
            assets[url] = data
    logger.debug("Fetched %d assets", len(assets))
    return assets
