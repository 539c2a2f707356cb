import pytest
from pydantic import ValidationError

from schemas import BookingIn, CarIn, DEFAULT_WEBSITE_SETTINGS, validation_errors


def test_car_insert_shape_defaults(car_data):
    for key in ("has_gps", "has_bluetooth", "has_ac", "has_usb", "available", "images"):
        car_data.pop(key, None)
    car = CarIn(**car_data)
    assert car.images == []
    assert car.has_ac is True
    assert car.has_gps is False
    assert car.available is True


def test_car_errors_are_listed_per_field(car_data):
    car_data.pop("name")
    car_data["price_per_day"] = -5
    car_data["category"] = "Spaceship"
    with pytest.raises(ValidationError) as exc:
        CarIn(**car_data)
    fields = {e["field"] for e in validation_errors(exc.value)}
    assert fields == {"name", "price_per_day", "category"}
    assert all(e["message"] for e in validation_errors(exc.value))


def test_request_locations_are_trimmed():
    errors = [{"loc": ("body", "seats"), "msg": "Input should be a valid integer"}]
    assert validation_errors(errors) == [
        {"field": "seats", "message": "Input should be a valid integer"}
    ]


def test_booking_requires_valid_email():
    with pytest.raises(ValidationError):
        BookingIn(
            car_id="c1", car_name="Car", start_date="2025-06-01", end_date="2025-06-04",
            first_name="Jane", last_name="Doe", email="not-an-email", phone="1",
        )


def test_default_settings_are_complete():
    assert DEFAULT_WEBSITE_SETTINGS.website_name
    assert DEFAULT_WEBSITE_SETTINGS.favicon == "/favicon.png"


def test_default_meta_keywords_are_complete():
    keywords = [k.strip() for k in DEFAULT_WEBSITE_SETTINGS.meta_keywords.split(",")]
    assert len(keywords) == 10
    assert keywords[-1] == "luxury cars Australia"
