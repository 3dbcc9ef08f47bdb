"""
Command-line interface for DeckExport.
"""

import sys
import json
import os
import argparse
import logging
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError

from deckexport import __version__
from deckexport.assets import collect_asset_urls, fetch_assets
from deckexport.errors import DeckExportError
from deckexport.models import BrandKit, Deck
from deckexport.renderers import EXPORT_FORMATS, get_renderer
from deckexport.themes import THEME_IDS


def main() -> int:
    """Main CLI entry point."""
    load_dotenv()  # Load .env file if present

    parser = argparse.ArgumentParser(
        prog="deckexport",
        description="DeckExport: render a deck JSON document to PPTX or PDF",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Render to PowerPoint
  deckexport render deck.json -o deck.pptx

  # Render to PDF with another theme
  deckexport render deck.json -o deck.pdf --theme nordic_dark

  # Override brand colours
  deckexport render deck.json -o deck.pptx --primary-color "#ff6600"

Environment Variables:
  ASSET_FETCH_TIMEOUT_SECONDS   Timeout for fetching logos and images
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"DeckExport {__version__}",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")
    render = subparsers.add_parser("render", help="Render a deck file")
    render.add_argument("input", type=Path, help="Deck JSON file")
    render.add_argument(
        "--output",
        "-o",
        type=Path,
        help="Output file (default: <input name>.<format>)",
    )
    render.add_argument(
        "--format",
        choices=EXPORT_FORMATS,
        help="Output format (default: from the output suffix, else pptx)",
    )
    render.add_argument(
        "--theme",
        choices=THEME_IDS,
        help="Theme id (default: the deck's themeId)",
    )
    render.add_argument("--primary-color", help="Brand primary colour (#RRGGBB)")
    render.add_argument("--secondary-color", help="Brand secondary colour (#RRGGBB)")
    render.add_argument("--logo-url", help="Brand logo URL or path")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command != "render":
        parser.print_help()
        return 1

    if not args.input.exists():
        print(f"Error: Input file not found: {args.input}", file=sys.stderr)
        return 1

    export_format = args.format
    if export_format is None:
        suffix = args.output.suffix.lstrip(".").lower() if args.output else ""
        export_format = suffix if suffix in EXPORT_FORMATS else "pptx"
    output = args.output or args.input.with_suffix(f".{export_format}")

    try:
        with open(args.input, "r", encoding="utf-8") as f:
            deck = Deck.from_dict(json.load(f))

        brand_kit = BrandKit.from_fields(args.primary_color, args.secondary_color, args.logo_url)
        if brand_kit is not None and deck.meta.brand_kit is not None:
            # Command-line fields win, the deck's own fill the gaps
            merged = {**deck.meta.brand_kit.model_dump(), **brand_kit.model_dump(exclude_none=True)}
            brand_kit = BrandKit(**merged)

        timeout = float(os.environ.get("ASSET_FETCH_TIMEOUT_SECONDS", "10"))
        # The deck file is the caller's own, so relative image paths are fine
        assets = fetch_assets(collect_asset_urls(deck, brand_kit), timeout=timeout, allow_local_files=True)
        data = get_renderer(export_format).render(
            deck, theme_id=args.theme, brand_kit=brand_kit, assets=assets
        )

        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(data)
        print(f"Wrote {len(deck.slides)} slides to {output}")
        return 0

    except KeyboardInterrupt:
        print("\n\nInterrupted by user", file=sys.stderr)
        return 130

    except (json.JSONDecodeError, PydanticValidationError, DeckExportError) as e:
        print(f"\nError: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
