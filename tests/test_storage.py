import mongomock
import pytest
from pymongo.errors import ServerSelectionTimeoutError

from conftest import booking_payload
from schemas import BookingIn, CarIn, WebsiteSettings
from storage import (
    BookingRejected,
    InvalidTransition,
    MemStorage,
    MongoStorage,
    SAMPLE_CARS,
    StorageError,
    Unavailable,
)


def test_memstorage_is_seeded():
    storage = MemStorage()
    cars = storage.get_all_cars()
    assert len(cars) == len(SAMPLE_CARS)
    assert storage.get_car_by_slug("porsche-911").name == "Porsche 911"


def test_create_then_get_round_trip(storage, car_data):
    car = storage.create_car(CarIn(**car_data))
    assert car.id
    assert car.slug == "tesla-model-3"
    fetched = storage.get_car(car.id)
    assert fetched == car
    assert fetched.model_dump(exclude={"id", "slug"}) == CarIn(**car_data).model_dump()
    assert storage.get_car_by_slug("tesla-model-3") == car


def test_get_missing_returns_none(storage):
    assert storage.get_car("nope") is None
    assert storage.get_car_by_slug("nope") is None
    assert storage.get_booking("nope") is None


def test_update_regenerates_slug(storage, car_data):
    car = storage.create_car(CarIn(**car_data))
    car_data.update(name="Tesla Model Y", price_per_day=140)
    updated = storage.update_car(car.id, CarIn(**car_data))
    assert updated.id == car.id
    assert updated.slug == "tesla-model-y"
    assert storage.get_car(car.id).price_per_day == 140


def test_update_missing_does_not_create(storage, car_data):
    assert storage.update_car("missing", CarIn(**car_data)) is None
    assert storage.get_all_cars() == []


def test_delete_twice(storage, car_data):
    car = storage.create_car(CarIn(**car_data))
    assert storage.delete_car(car.id) is True
    assert storage.delete_car(car.id) is False
    assert storage.get_car(car.id) is None


def test_booking_scenario(storage, car_data):
    car = storage.create_car(CarIn(**dict(car_data, price_per_day=100)))
    booking = storage.create_booking(BookingIn(**booking_payload(car.id)))
    assert booking.total_price == 300
    assert booking.status == "pending"
    assert booking.created_at
    assert storage.get_booking(booking.id) == booking


def test_booking_price_is_not_taken_from_client(storage, car_data):
    car = storage.create_car(CarIn(**dict(car_data, price_per_day=100)))
    booking = storage.create_booking(BookingIn(**booking_payload(car.id, total_price=1)))
    assert booking.total_price == 300


def test_booking_rejections(storage, car_data):
    car = storage.create_car(CarIn(**car_data))
    assert storage.create_booking(BookingIn(**booking_payload("missing"))) is None
    with pytest.raises(BookingRejected):
        storage.create_booking(BookingIn(**booking_payload(car.id, "2025-06-04", "2025-06-04")))

    storage.create_booking(BookingIn(**booking_payload(car.id, "2025-06-01", "2025-06-04")))
    with pytest.raises(Unavailable):
        storage.create_booking(BookingIn(**booking_payload(car.id, "2025-06-03", "2025-06-05")))
    # back-to-back is fine
    storage.create_booking(BookingIn(**booking_payload(car.id, "2025-06-04", "2025-06-06")))

    hidden = storage.create_car(CarIn(**dict(car_data, name="Hidden", available=False)))
    with pytest.raises(Unavailable):
        storage.create_booking(BookingIn(**booking_payload(hidden.id)))


def test_cancelled_booking_frees_dates(storage, car_data):
    car = storage.create_car(CarIn(**car_data))
    first = storage.create_booking(BookingIn(**booking_payload(car.id)))
    storage.update_booking_status(first.id, "cancelled")
    again = storage.create_booking(BookingIn(**booking_payload(car.id)))
    assert again.status == "pending"


def test_list_bookings_for_car_by_start_date(storage, car_data):
    car = storage.create_car(CarIn(**car_data))
    other = storage.create_car(CarIn(**dict(car_data, name="Other")))
    late = storage.create_booking(BookingIn(**booking_payload(car.id, "2025-07-01", "2025-07-03")))
    early = storage.create_booking(BookingIn(**booking_payload(car.id, "2025-06-01", "2025-06-03")))
    storage.create_booking(BookingIn(**booking_payload(other.id)))

    assert [b.id for b in storage.list_bookings(car.id)] == [early.id, late.id]
    assert len(storage.list_bookings()) == 3


def test_status_transitions(storage, car_data):
    car = storage.create_car(CarIn(**car_data))
    booking = storage.create_booking(BookingIn(**booking_payload(car.id)))

    confirmed = storage.update_booking_status(booking.id, "confirmed")
    assert confirmed.status == "confirmed"
    assert storage.get_booking(booking.id).status == "confirmed"

    with pytest.raises(InvalidTransition):
        storage.update_booking_status(booking.id, "cancelled")
    with pytest.raises(InvalidTransition):
        storage.update_booking_status(booking.id, "pending")
    assert storage.update_booking_status("missing", "confirmed") is None


def test_settings_default_then_merge(storage):
    defaults = storage.get_settings()
    assert defaults.website_name == "Premium Car Rentals Australia"

    storage.save_settings(WebsiteSettings(
        website_name="Drive Co", email="hi@drive.co", facebook_url="https://facebook.com/drive",
    ))
    saved = storage.get_settings()
    assert saved.website_name == "Drive Co"
    assert saved.favicon == "/favicon.png"
    assert saved.facebook_url == "https://facebook.com/drive"

    # blank optional fields do not wipe stored ones
    storage.save_settings(WebsiteSettings(website_name="Drive Co 2", facebook_url="  "))
    again = storage.get_settings()
    assert again.website_name == "Drive Co 2"
    assert again.facebook_url == "https://facebook.com/drive"


class _BrokenCollection:
    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise ServerSelectionTimeoutError("connection refused")
        return fail


def test_mongo_errors_are_wrapped():
    storage = MongoStorage(mongomock.MongoClient().db)
    storage.cars = _BrokenCollection()
    storage.settings = _BrokenCollection()
    with pytest.raises(StorageError, match="Failed to fetch cars"):
        storage.get_all_cars()
    with pytest.raises(StorageError, match="Failed to delete car"):
        storage.delete_car("x")
    # settings reads fall back to defaults
    assert storage.get_settings().website_name == "Premium Car Rentals Australia"


def test_mongo_documents_hide_internal_id(car_data):
    database = mongomock.MongoClient().db
    storage = MongoStorage(database)
    storage.ensure_indexes()
    car = storage.create_car(CarIn(**car_data))
    raw = database["cars"].find_one({"id": car.id})
    assert raw["slug"] == "tesla-model-3"
    assert "_id" not in storage.get_car(car.id).model_dump()
