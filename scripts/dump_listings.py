#!/usr/bin/env python3
"""Load the listing tree once and print it.

Usage:
    # Summary of branches, apartments and rooms
    uv run python scripts/dump_listings.py

    # Full tree as JSON, with booking links
    uv run python scripts/dump_listings.py --json --links
"""

import argparse
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kamkiraye.aggregator import ListingAggregator
from kamkiraye.booking import attach_booking_links
from kamkiraye.client import ListingClient
from kamkiraye.database import STORAGE_BUCKET, SUPABASE_URL, WHATSAPP_NUMBER, create_http_client
from kamkiraye.schemas import ListingSnapshot


def print_summary(snapshot: ListingSnapshot) -> None:
    for branch in snapshot.tree:
        print(f"{branch.name} ({branch.city}) - {branch.address}")
        for apartment in branch.apartments:
            print(f"  [apt] {apartment.name}: {apartment.price_per_night:g}/night, {len(apartment.rooms)} rooms")
            for room in apartment.rooms:
                print(f"      [room] {room.name}: sleeps {room.capacity}, {room.price_per_night:g}/night")
        for room in branch.rooms:
            print(f"  [room] {room.name}: sleeps {room.capacity}, {room.price_per_night:g}/night")

    if snapshot.errors:
        print()
        for resource, message in snapshot.errors.items():
            print(f"Failed to load {resource.value}: {message}")


async def main(as_json: bool = False, with_links: bool = False) -> int:
    async with create_http_client() as http:
        aggregator = ListingAggregator(ListingClient(http, storage_bucket=STORAGE_BUCKET))
        snapshot = await aggregator.load()

    if with_links:
        snapshot = snapshot.model_copy(update={"tree": attach_booking_links(snapshot.tree, WHATSAPP_NUMBER)})

    if as_json:
        print(snapshot.model_dump_json(indent=2))
    else:
        print_summary(snapshot)

    return 1 if snapshot.errors else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=f"Dump listings from {SUPABASE_URL}")
    parser.add_argument("--json", action="store_true", help="Print the full tree as JSON")
    parser.add_argument("--links", action="store_true", help="Include WhatsApp booking links")
    args = parser.parse_args()

    sys.exit(asyncio.run(main(as_json=args.json, with_links=args.links)))
