"""
Seed cars into the active storage backend.

    python seed.py                 # built-in sample cars
    python seed.py data/cars.json  # cars from a JSON array
"""

import sys
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from schemas import CarIn, slugify, validation_errors
from storage import SAMPLE_CARS, Storage, StorageError, get_storage

logger = logging.getLogger(__name__)


def load_cars(path: Optional[str]) -> List[Dict[str, Any]]:
    if path is None:
        return SAMPLE_CARS
    logger.info("Reading cars data from %s", path)
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def seed(storage: Storage, cars: List[Dict[str, Any]]) -> Tuple[int, int]:
    """
    Insert each car and return ``(saved, failed)``.

    Cars whose slug is already in the store are skipped, so running the seed
    twice (or against the pre-seeded memory store) does not duplicate them.
    """
    existing = {car.slug for car in storage.get_all_cars()}
    saved = failed = 0
    for raw in cars:
        name = raw.get("name", "<unnamed>")
        if slugify(str(name)) in existing:
            logger.info("Car %s already present, skipping", name)
            continue
        try:
            car = storage.create_car(CarIn(**raw))
        except ValidationError as e:
            logger.error("Skipped car %s: %s", name, validation_errors(e))
            failed += 1
            continue
        except StorageError as e:
            logger.error("Failed to save car %s: %s", name, e)
            failed += 1
            continue
        logger.info("Saved car: %s (id=%s, slug=%s)", car.name, car.id, car.slug)
        existing.add(car.slug)
        saved += 1
    return saved, failed


def main(argv: List[str]) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    path = argv[1] if len(argv) > 1 else None
    cars = load_cars(path)
    logger.info("Seeding %d cars", len(cars))
    saved, failed = seed(get_storage(), cars)
    logger.info("Done: %d saved, %d failed, %d already present", saved, failed, len(cars) - saved - failed)
    return 0 if failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main(sys.argv))
