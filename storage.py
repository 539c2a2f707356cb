"""
Data access for cars, bookings and the website settings singleton.

``Storage`` holds the rules shared by every backend (slug generation, booking
pricing and availability, settings merge). Backends only implement the raw
reads and writes: ``MemStorage`` keeps everything in dicts and is seeded with
sample cars, ``MongoStorage`` persists to the ``cars``, ``bookings`` and
``website_settings`` collections.
"""

import os
import uuid
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo.database import Database
from pymongo.errors import PyMongoError

from schemas import (
    Booking,
    BookingIn,
    Car,
    CarIn,
    DEFAULT_WEBSITE_SETTINGS,
    REQUIRED_SETTINGS_FIELDS,
    WebsiteSettings,
    slugify,
)
from pricing import overlaps, rental_days

logger = logging.getLogger(__name__)

CARS_COLLECTION = "cars"
BOOKINGS_COLLECTION = "bookings"
WEBSITE_SETTINGS_COLLECTION = "website_settings"
WEBSITE_SETTINGS_ID = "default"

# status -> statuses it may move to
BOOKING_TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": set(),
    "cancelled": set(),
}
BLOCKING_STATUSES = {"pending", "confirmed"}


class StorageError(Exception):
    """The document store failed; the message is safe to show to a user."""


class BookingRejected(ValueError):
    pass


class Unavailable(BookingRejected):
    """The car cannot be booked for the requested dates."""


class InvalidTransition(ValueError):
    pass


SAMPLE_CARS: List[Dict[str, Any]] = [
    {
        "name": "Tesla Model 3",
        "category": "Electric",
        "description": "Experience the future of driving with the Tesla Model 3. This premium electric sedan combines cutting-edge technology, impressive range, and exhilarating performance in a sleek, modern package.",
        "image": "/attached_assets/generated_images/Tesla_Model_3_sedan_123f6843.png",
        "price_per_day": 120,
        "seats": 5,
        "transmission": "Automatic",
        "fuel_type": "Electric",
        "luggage": 2,
        "doors": 4,
        "year": 2024,
        "has_gps": True,
        "has_bluetooth": True,
        "has_ac": True,
        "has_usb": True,
        "available": True,
    },
    {
        "name": "BMW X5",
        "category": "SUV",
        "description": "The BMW X5 delivers luxury and versatility in perfect harmony. This premium SUV offers spacious seating, advanced technology, and powerful performance for both city driving and weekend adventures.",
        "image": "/attached_assets/generated_images/BMW_X5_SUV_e9085a45.png",
        "price_per_day": 150,
        "seats": 7,
        "transmission": "Automatic",
        "fuel_type": "Petrol",
        "luggage": 4,
        "doors": 5,
        "year": 2023,
        "has_gps": True,
        "has_bluetooth": True,
        "has_ac": True,
        "has_usb": True,
        "available": True,
    },
    {
        "name": "Toyota Camry",
        "category": "Sedan",
        "description": "The Toyota Camry is the perfect blend of reliability, comfort, and efficiency. This midsize sedan offers a smooth ride, excellent fuel economy, and all the features you need for daily driving.",
        "image": "/attached_assets/generated_images/Toyota_Camry_sedan_a32cd876.png",
        "price_per_day": 80,
        "seats": 5,
        "transmission": "Automatic",
        "fuel_type": "Hybrid",
        "luggage": 2,
        "doors": 4,
        "year": 2023,
        "has_gps": True,
        "has_bluetooth": True,
        "has_ac": True,
        "has_usb": False,
        "available": True,
    },
    {
        "name": "Mercedes-Benz S-Class",
        "category": "Luxury",
        "description": "Step into ultimate luxury with the Mercedes-Benz S-Class. This flagship sedan redefines premium driving with its exquisite craftsmanship, cutting-edge technology, and unparalleled comfort.",
        "image": "/attached_assets/generated_images/Mercedes_S-Class_luxury_8b2e970a.png",
        "price_per_day": 250,
        "seats": 5,
        "transmission": "Automatic",
        "fuel_type": "Petrol",
        "luggage": 3,
        "doors": 4,
        "year": 2024,
        "has_gps": True,
        "has_bluetooth": True,
        "has_ac": True,
        "has_usb": True,
        "available": False,
    },
    {
        "name": "Porsche 911",
        "category": "Sports",
        "description": "Unleash your passion for driving with the iconic Porsche 911. This legendary sports car delivers breathtaking performance, precise handling, and timeless design that turns every drive into an unforgettable experience.",
        "image": "/attached_assets/generated_images/Porsche_911_sports_c1be3448.png",
        "price_per_day": 300,
        "seats": 4,
        "transmission": "Manual",
        "fuel_type": "Petrol",
        "luggage": 1,
        "doors": 2,
        "year": 2024,
        "has_gps": True,
        "has_bluetooth": True,
        "has_ac": True,
        "has_usb": True,
        "available": True,
    },
    {
        "name": "Honda CR-V",
        "category": "SUV",
        "description": "The Honda CR-V is your ideal companion for family adventures. This versatile compact SUV combines practicality, safety, and comfort with excellent fuel efficiency and spacious interior.",
        "image": "/attached_assets/generated_images/Honda_CR-V_compact_SUV_52dc1a4d.png",
        "price_per_day": 95,
        "seats": 5,
        "transmission": "Automatic",
        "fuel_type": "Petrol",
        "luggage": 3,
        "doors": 5,
        "year": 2023,
        "has_gps": False,
        "has_bluetooth": True,
        "has_ac": True,
        "has_usb": True,
        "available": True,
    },
]


def _new_id() -> str:
    return str(uuid.uuid4())


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _build_car(car_id: str, data: CarIn) -> Car:
    fields = data.model_dump()
    fields["images"] = list(fields.get("images") or [])
    return Car(id=car_id, slug=slugify(data.name), **fields)


def settings_payload(settings: WebsiteSettings) -> Dict[str, Any]:
    """Fields to write for a settings save: required ones always, optional ones only when filled in."""
    data = settings.model_dump()
    payload: Dict[str, Any] = {}
    for key in REQUIRED_SETTINGS_FIELDS:
        payload[key] = data.get(key) or ""
    if not payload["favicon"]:
        payload["favicon"] = "/favicon.png"
    for key, value in data.items():
        if key in payload:
            continue
        if value and str(value).strip():
            payload[key] = value
    return payload


class Storage(ABC):
    """CRUD over cars, bookings and settings, independent of where records live."""

    name = "abstract"

    # -- cars -------------------------------------------------------------

    @abstractmethod
    def get_all_cars(self) -> List[Car]:
        ...

    @abstractmethod
    def get_car(self, car_id: str) -> Optional[Car]:
        ...

    @abstractmethod
    def get_car_by_slug(self, slug: str) -> Optional[Car]:
        ...

    @abstractmethod
    def _insert_car(self, car: Car) -> None:
        ...

    @abstractmethod
    def _replace_car(self, car: Car) -> bool:
        ...

    @abstractmethod
    def delete_car(self, car_id: str) -> bool:
        ...

    def create_car(self, data: CarIn) -> Car:
        car = _build_car(_new_id(), data)
        self._insert_car(car)
        logger.info("Created car %s (%s)", car.id, car.slug)
        return car

    def update_car(self, car_id: str, data: CarIn) -> Optional[Car]:
        car = _build_car(car_id, data)
        if not self._replace_car(car):
            return None
        logger.info("Updated car %s (%s)", car.id, car.slug)
        return car

    # -- bookings ---------------------------------------------------------

    @abstractmethod
    def get_booking(self, booking_id: str) -> Optional[Booking]:
        ...

    @abstractmethod
    def list_bookings(self, car_id: Optional[str] = None) -> List[Booking]:
        """Newest first; bookings of a single car come back by start date instead."""

    @abstractmethod
    def _insert_booking(self, booking: Booking) -> None:
        ...

    @abstractmethod
    def _set_booking_status(self, booking_id: str, status: str) -> None:
        ...

    def create_booking(self, data: BookingIn) -> Optional[Booking]:
        """
        Store a booking request as ``pending``.

        The total is recomputed from the car's current daily rate; a price sent
        by the client is ignored. Returns ``None`` when the car does not exist.
        """
        car = self.get_car(data.car_id)
        if car is None:
            return None
        days = rental_days(data.start_date, data.end_date)
        if days <= 0:
            raise BookingRejected("End date must be after start date")
        if not car.available:
            raise Unavailable(f"{car.name} is not available for booking")
        for other in self.list_bookings(car.id):
            if other.status not in BLOCKING_STATUSES:
                continue
            if overlaps(data.start_date, data.end_date, other.start_date, other.end_date):
                raise Unavailable("Selected dates are not available")

        fields = data.model_dump()
        fields.update(
            car_name=car.name,
            total_price=days * car.price_per_day,
        )
        booking = Booking(id=_new_id(), status="pending", created_at=_now_iso(), **fields)
        self._insert_booking(booking)
        logger.info(
            "Created booking %s for car %s (%s days, total %s)",
            booking.id, car.id, days, booking.total_price,
        )
        return booking

    def update_booking_status(self, booking_id: str, status: str) -> Optional[Booking]:
        booking = self.get_booking(booking_id)
        if booking is None:
            return None
        if booking.status == status:
            return booking
        if status not in BOOKING_TRANSITIONS.get(booking.status, set()):
            raise InvalidTransition(f"Cannot change booking from {booking.status} to {status}")
        self._set_booking_status(booking_id, status)
        logger.info("Booking %s: %s -> %s", booking_id, booking.status, status)
        return booking.model_copy(update={"status": status})

    # -- settings ---------------------------------------------------------

    @abstractmethod
    def _load_settings(self) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def _merge_settings(self, payload: Dict[str, Any]) -> None:
        ...

    def get_settings(self) -> WebsiteSettings:
        try:
            stored = self._load_settings()
        except StorageError:
            logger.exception("Error fetching website settings, using defaults")
            return DEFAULT_WEBSITE_SETTINGS
        if not stored:
            return DEFAULT_WEBSITE_SETTINGS
        merged = DEFAULT_WEBSITE_SETTINGS.model_dump()
        merged.update({k: v for k, v in stored.items() if k in merged})
        return WebsiteSettings(**merged)

    def save_settings(self, settings: WebsiteSettings) -> WebsiteSettings:
        self._merge_settings(settings_payload(settings))
        logger.info("Saved website settings")
        return self.get_settings()


class MemStorage(Storage):
    name = "memory"

    def __init__(self, seed: bool = True):
        self.cars: Dict[str, Car] = {}
        self.bookings: Dict[str, Booking] = {}
        self.settings: Optional[Dict[str, Any]] = None
        if seed:
            for data in SAMPLE_CARS:
                car = _build_car(_new_id(), CarIn(**data))
                self.cars[car.id] = car

    def get_all_cars(self) -> List[Car]:
        return list(self.cars.values())

    def get_car(self, car_id: str) -> Optional[Car]:
        return self.cars.get(car_id)

    def get_car_by_slug(self, slug: str) -> Optional[Car]:
        return next((c for c in self.cars.values() if c.slug == slug), None)

    def _insert_car(self, car: Car) -> None:
        self.cars[car.id] = car

    def _replace_car(self, car: Car) -> bool:
        if car.id not in self.cars:
            return False
        self.cars[car.id] = car
        return True

    def delete_car(self, car_id: str) -> bool:
        if self.cars.pop(car_id, None) is None:
            return False
        logger.info("Deleted car %s", car_id)
        return True

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        return self.bookings.get(booking_id)

    def list_bookings(self, car_id: Optional[str] = None) -> List[Booking]:
        if car_id is None:
            return sorted(self.bookings.values(), key=lambda b: b.created_at, reverse=True)
        scoped = [b for b in self.bookings.values() if b.car_id == car_id]
        return sorted(scoped, key=lambda b: b.start_date)

    def _insert_booking(self, booking: Booking) -> None:
        self.bookings[booking.id] = booking

    def _set_booking_status(self, booking_id: str, status: str) -> None:
        booking = self.bookings[booking_id]
        self.bookings[booking_id] = booking.model_copy(update={"status": status})

    def _load_settings(self) -> Optional[Dict[str, Any]]:
        return dict(self.settings) if self.settings else None

    def _merge_settings(self, payload: Dict[str, Any]) -> None:
        merged = dict(self.settings or {})
        merged.update(payload)
        self.settings = merged


@contextmanager
def _store_errors(action: str):
    try:
        yield
    except PyMongoError as e:
        logger.error("Failed to %s: %s", action, e)
        raise StorageError(f"Failed to {action}: {e}") from e


def _strip_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    doc = {**doc}
    doc.pop("_id", None)
    return doc


def _car_from_doc(doc: Dict[str, Any]) -> Car:
    doc = _strip_id(doc)
    if not isinstance(doc.get("images"), list):
        doc["images"] = []
    if not doc.get("slug"):
        doc["slug"] = slugify(doc.get("name", ""))
    return Car(**doc)


class MongoStorage(Storage):
    """Records keep their own string ``id``; Mongo's ``_id`` never leaves this class."""

    name = "mongo"

    def __init__(self, database: Database):
        self.db = database
        self.cars = database[CARS_COLLECTION]
        self.bookings = database[BOOKINGS_COLLECTION]
        self.settings = database[WEBSITE_SETTINGS_COLLECTION]

    def ensure_indexes(self) -> None:
        with _store_errors("create indexes"):
            self.cars.create_index("id", unique=True)
            self.cars.create_index("slug")
            self.bookings.create_index("id", unique=True)
            self.bookings.create_index("car_id")

    def get_all_cars(self) -> List[Car]:
        with _store_errors("fetch cars"):
            return [_car_from_doc(d) for d in self.cars.find({})]

    def get_car(self, car_id: str) -> Optional[Car]:
        with _store_errors("fetch car"):
            doc = self.cars.find_one({"id": car_id})
        return _car_from_doc(doc) if doc else None

    def get_car_by_slug(self, slug: str) -> Optional[Car]:
        with _store_errors("fetch car"):
            doc = self.cars.find_one({"slug": slug})
        return _car_from_doc(doc) if doc else None

    def _insert_car(self, car: Car) -> None:
        with _store_errors("create car"):
            self.cars.insert_one(car.model_dump())

    def _replace_car(self, car: Car) -> bool:
        with _store_errors("update car"):
            result = self.cars.replace_one({"id": car.id}, car.model_dump())
        return result.matched_count > 0

    def delete_car(self, car_id: str) -> bool:
        with _store_errors("delete car"):
            result = self.cars.delete_one({"id": car_id})
        if result.deleted_count == 0:
            return False
        logger.info("Deleted car %s", car_id)
        return True

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        with _store_errors("fetch booking"):
            doc = self.bookings.find_one({"id": booking_id})
        return Booking(**_strip_id(doc)) if doc else None

    def list_bookings(self, car_id: Optional[str] = None) -> List[Booking]:
        with _store_errors("fetch bookings"):
            if car_id is None:
                cursor = self.bookings.find({}).sort([("created_at", -1)])
            else:
                cursor = self.bookings.find({"car_id": car_id}).sort([("start_date", 1)])
            return [Booking(**_strip_id(d)) for d in cursor]

    def _insert_booking(self, booking: Booking) -> None:
        with _store_errors("create booking"):
            self.bookings.insert_one(booking.model_dump(mode="json"))

    def _set_booking_status(self, booking_id: str, status: str) -> None:
        with _store_errors("update booking status"):
            self.bookings.update_one({"id": booking_id}, {"$set": {"status": status}})

    def _load_settings(self) -> Optional[Dict[str, Any]]:
        with _store_errors("fetch website settings"):
            doc = self.settings.find_one({"_id": WEBSITE_SETTINGS_ID})
        return _strip_id(doc) if doc else None

    def _merge_settings(self, payload: Dict[str, Any]) -> None:
        with _store_errors("save website settings"):
            self.settings.update_one(
                {"_id": WEBSITE_SETTINGS_ID}, {"$set": payload}, upsert=True
            )


_storage: Optional[Storage] = None


def get_storage() -> Storage:
    """The process-wide backend, chosen from ``DATA_BACKEND`` on first use."""
    global _storage
    if _storage is not None:
        return _storage

    from database import db

    backend = os.getenv("DATA_BACKEND") or ("mongo" if db is not None else "memory")
    if backend == "mongo" and db is None:
        logger.warning("DATA_BACKEND=mongo but DATABASE_URL is not set, using memory")
        backend = "memory"

    if backend == "mongo":
        mongo = MongoStorage(db)
        try:
            mongo.ensure_indexes()
        except StorageError:
            logger.warning("Could not create indexes, continuing without them")
        _storage = mongo
    else:
        _storage = MemStorage()
    logger.info("Using %s storage backend", _storage.name)
    return _storage


def set_storage(storage: Optional[Storage]) -> None:
    global _storage
    _storage = storage
