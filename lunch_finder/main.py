"""CLI entry point: list places open for lunch in an area."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import random
import sys
from typing import Sequence

import httpx

from .config import Settings
from .discovery_overpass import validate_area_name
from .errors import LunchFinderError
from .models import Location
from .service import LocationsService

DEFAULT_AREA = "Stockholm"


def main(argv: Sequence[str] | None = None) -> int:
    """Execute the CLI."""

    args = _parse_args(argv)
    _configure_logging(args.log_level)

    try:
        area = validate_area_name(args.area)
        settings = Settings.from_env(
            overpass_user_agent=args.user_agent,
            overpass_url=args.overpass_url,
        )
    except (ValueError, LunchFinderError) as exc:
        logging.error("%s", exc)
        return 2

    try:
        locations = asyncio.run(_lookup(settings, area, pick_random=args.random, seed=args.seed))
    except LunchFinderError as exc:
        logging.error("Lookup for '%s' failed: %s", area, exc)
        return 1

    if not locations:
        logging.warning("No places open for lunch found in '%s'", area)
        return 0

    for location in locations:
        sys.stdout.write(json.dumps(location.to_dict(), ensure_ascii=False) + "\n")
    return 0


async def _lookup(settings: Settings, area: str, *, pick_random: bool, seed: int | None) -> list[Location]:
    async with create_client() as client:
        service = LocationsService(settings, client)
        if pick_random:
            picked = await service.get_random_location_in(area, random.Random(seed))
            return [picked] if picked is not None else []
        return await service.get_locations_in(area)


def create_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(60.0, connect=10.0, read=30.0),
        http2=True,
    )


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--area", default=DEFAULT_AREA, help="Area (boundary) name to search in")
    parser.add_argument(
        "--user-agent",
        default=None,
        help="User-Agent header for Overpass requests (defaults to $OVERPASS_USER_AGENT)",
    )
    parser.add_argument(
        "--overpass-url",
        default=None,
        help="Override the Overpass API endpoint",
    )
    parser.add_argument(
        "--random",
        action="store_true",
        help="Print a single randomly picked place instead of the full list",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for --random, for reproducible picks",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (e.g. INFO, DEBUG)",
    )
    return parser.parse_args(argv)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(levelname)s %(message)s",
    )


if __name__ == "__main__":
    sys.exit(main())
