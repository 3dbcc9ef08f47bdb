"""
Basic usage example for DeckExport.

This example shows how to render a deck JSON file to PPTX and PDF
using the Python API.
"""

import json
from pathlib import Path

from deckexport import Deck, get_renderer
from deckexport.assets import collect_asset_urls, fetch_assets


def main():
    deck_path = Path("examples/sample_deck.json")
    output_dir = Path("output/sample_deck")
    output_dir.mkdir(parents=True, exist_ok=True)

    with open(deck_path, "r", encoding="utf-8") as f:
        deck = Deck.from_dict(json.load(f))

    # Fetch logos and images up front; rendering itself does no I/O
    assets = fetch_assets(collect_asset_urls(deck), allow_local_files=True)

    for export_format in ("pptx", "pdf"):
        renderer = get_renderer(export_format)
        data = renderer.render(deck, assets=assets)
        path = output_dir / f"{deck_path.stem}.{renderer.extension}"
        path.write_bytes(data)
        print(f"  {export_format.upper()}: {path} ({len(data)} bytes)")


if __name__ == "__main__":
    main()
