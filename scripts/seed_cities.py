#!/usr/bin/env python3
"""
Seed script for the cities collection.

Reads a JSON file holding a list of ``{"name", "population", "area"}``
objects and inserts them through the same service the API uses, so ids are
assigned the same way (continuing from the highest existing id).
Rows that fail validation are reported and skipped.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from pydantic import ValidationError

# Make app package importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.cities.repository import MongoCityStore
from app.cities.schemas import CityCreate
from app.cities.service import CitiesService
from app.core.config import get_settings
from app.core.database import get_client
from app.core.logging_config import configure_logging

logger = logging.getLogger("seed_cities")


def load_cities(path: Path) -> list[dict]:
    """Validated city rows from a JSON file, in file order."""
    with path.open(encoding="utf-8") as f:
        rows = json.load(f)
    if not isinstance(rows, list):
        raise ValueError(f"{path} must contain a JSON array of cities")

    cities = []
    for idx, row in enumerate(rows, start=1):
        try:
            cities.append(CityCreate.model_validate(row).model_dump())
        except ValidationError as e:
            logger.warning(f"Skipping row {idx}: {e.errors()[0]['msg']}")
    return cities


async def seed_cities(path: Path, replace: bool) -> int:
    settings = get_settings()
    client = get_client(settings.MONGO_URI)
    collection = client[settings.MONGO_DB_NAME][settings.CITIES_COLLECTION]

    try:
        cities = load_cities(path)
        if replace:
            result = await collection.delete_many({})
            logger.info(f"Removed {result.deleted_count} existing cities")
        await collection.create_index("id", unique=True, name="city_id_unique")

        if not cities:
            logger.info("Nothing to insert")
            return 0

        service = CitiesService(MongoCityStore(collection))
        inserted = await service.create_many(cities)
        logger.info(f"Seeded {len(inserted)} cities into {settings.MONGO_DB_NAME}.{settings.CITIES_COLLECTION}")
        return len(inserted)
    finally:
        client.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the cities collection from a JSON file")
    parser.add_argument("path", type=Path, help="JSON file with a list of cities")
    parser.add_argument(
        "--replace",
        action="store_true",
        help="Delete existing cities before inserting (ids restart at 1)",
    )
    args = parser.parse_args()

    configure_logging(get_settings().LOG_LEVEL)
    if not args.path.exists():
        raise FileNotFoundError(f"JSON not found at {args.path}")
    asyncio.run(seed_cities(args.path, args.replace))


if __name__ == "__main__":
    main()
