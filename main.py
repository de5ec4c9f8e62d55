"""
Routeme navigation shell
========================
Command-line entry point.  Example:

    python main.py -- -22.5609,17.0658 -22.5700,17.0836
"""

import argparse
import asyncio
import logging

from routeme.app import create_shell
from routeme.config import settings
from routeme.domain.entities import Destination, LocationFix
from routeme.domain.geometry import format_distance, format_duration

logger = logging.getLogger("routeme")


def parse_latlng(text: str) -> tuple[float, float]:
    lat, lng = (float(part) for part in text.split(","))
    return lat, lng


async def run(origin: tuple[float, float], destination: tuple[float, float]) -> int:
    shell = create_shell(settings)
    async with shell.lifespan():
        shell.on_location_update(LocationFix(*origin))
        route = await shell.select_destination(
            Destination(*destination, name="Destination"), remember=False
        )
        if route is None:
            logger.error("No route available")
            return 1

        print(f"{format_distance(route.info.distance_km)} / {format_duration(route.info.duration_min)}")
        for step in route.info.steps:
            print(f"  {step.instruction} ({step.distance_text}, {step.duration_text})")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Fetch a driving route")
    parser.add_argument("origin", type=parse_latlng, help="lat,lng")
    parser.add_argument("destination", type=parse_latlng, help="lat,lng")
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level)
    return asyncio.run(run(args.origin, args.destination))


if __name__ == "__main__":
    raise SystemExit(main())
