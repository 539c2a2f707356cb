"""
Database Schemas for the Car Rental Catalog

Each Pydantic model below describes a record stored in the document store.
Insert shapes (``CarIn``, ``BookingIn``) omit the fields the server assigns
(id, slug, status, created_at); the full shapes extend them.
"""

import re
from datetime import date
from typing import Any, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, ValidationError


CATEGORIES = ["Sedan", "SUV", "Sports", "Luxury", "Electric", "Compact"]
TRANSMISSIONS = ["Automatic", "Manual"]
FUEL_TYPES = ["Petrol", "Diesel", "Electric", "Hybrid"]
BOOKING_STATUSES = ["pending", "confirmed", "cancelled"]

Category = Literal["Sedan", "SUV", "Sports", "Luxury", "Electric", "Compact"]
Transmission = Literal["Automatic", "Manual"]
FuelType = Literal["Petrol", "Diesel", "Electric", "Hybrid"]
BookingStatus = Literal["pending", "confirmed", "cancelled"]


def slugify(name: str) -> str:
    """Lowercase the name and collapse every non-alphanumeric run into one hyphen."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower())
    return slug.strip("-")


class CarIn(BaseModel):
    name: str = Field(..., min_length=1, description="Display name, e.g., Tesla Model 3")
    category: Category = Field(..., description="Sedan, SUV, Sports, Luxury, Electric or Compact")
    description: str = Field(..., description="Marketing description")
    image: str = Field(..., description="Primary image URL")
    images: List[str] = Field(default_factory=list, description="Additional image URLs")
    price_per_day: int = Field(..., ge=0, description="Rental price per day")
    seats: int = Field(..., ge=0, description="Seating capacity")
    doors: int = Field(..., ge=0)
    luggage: int = Field(..., ge=0, description="Number of suitcases")
    year: int = Field(..., description="Manufacturing year")
    transmission: Transmission = Field(..., description="Automatic or Manual")
    fuel_type: FuelType = Field(..., description="Petrol, Diesel, Electric or Hybrid")
    has_gps: bool = False
    has_bluetooth: bool = False
    has_ac: bool = True
    has_usb: bool = False
    available: bool = Field(True, description="Whether the car can be booked")


class Car(CarIn):
    id: str = Field(..., description="Unique car id")
    slug: str = Field(..., description="URL-safe name, derived from name")


class BookingIn(BaseModel):
    car_id: str = Field(..., description="Car id")
    car_name: str = Field(..., description="Car name at booking time")
    start_date: date = Field(..., description="Pickup date")
    end_date: date = Field(..., description="Return date")
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr = Field(..., description="Customer email")
    phone: str = Field(..., min_length=1)
    address: Optional[str] = None
    notes: Optional[str] = None
    total_price: Optional[int] = Field(None, ge=0, description="Price quoted to the customer")


class Booking(BookingIn):
    id: str
    total_price: int = Field(..., ge=0)
    status: BookingStatus = "pending"
    created_at: str = Field(..., description="ISO creation timestamp")


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class WebsiteSettings(BaseModel):
    website_name: str = ""
    logo: str = Field("", description="URL or path to logo")
    favicon: str = Field("/favicon.png", description="URL or path to favicon")
    company_name: str = ""
    email: str = ""
    phone: str = ""
    address: str = ""
    description: str = ""
    facebook_url: Optional[str] = None
    twitter_url: Optional[str] = None
    instagram_url: Optional[str] = None
    linkedin_url: Optional[str] = None
    meta_description: Optional[str] = None
    meta_keywords: Optional[str] = None


REQUIRED_SETTINGS_FIELDS = [
    "website_name", "logo", "favicon", "company_name",
    "email", "phone", "address", "description",
]

DEFAULT_WEBSITE_SETTINGS = WebsiteSettings(
    website_name="Premium Car Rentals Australia",
    logo="",
    favicon="/favicon.png",
    company_name="Premium Car Rentals Australia",
    email="info@premiumcarrentals.com.au",
    phone="+61 2 9999 8888",
    address="123 Premium Street, Sydney, NSW 2000, Australia",
    description=(
        "Australia's premier car rental service offering luxury vehicles, premium sedans, "
        "SUVs, and sports cars. Book your perfect vehicle for your Australian adventure "
        "with exceptional service and competitive rates."
    ),
    facebook_url="",
    twitter_url="",
    instagram_url="",
    linkedin_url="",
    meta_description=(
        "Premium car rental in Australia. Choose from luxury sedans, SUVs, sports cars and "
        "more. Best rates, flexible bookings, and exceptional service across Sydney, "
        "Melbourne, Brisbane, Perth, and Adelaide. Book your dream car today."
    ),
    meta_keywords=(
        "car rental Australia, luxury car hire Australia, premium car rental Sydney, "
        "car hire Melbourne, rent car Brisbane, vehicle rental Perth, car rental Adelaide, "
        "Australia car hire, premium vehicles Australia, luxury cars Australia"
    ),
)


def validation_errors(errors: Any) -> List[Dict[str, str]]:
    """
    Flatten pydantic errors into ``[{"field": ..., "message": ...}]``.

    Accepts a ``ValidationError`` or the plain error list FastAPI attaches to
    ``RequestValidationError``. The leading ``body``/``query`` location segment
    is dropped so forms can map the field path straight onto an input.
    """
    if isinstance(errors, ValidationError):
        errors = errors.errors()
    result: List[Dict[str, str]] = []
    for err in errors:
        loc: Iterable[Any] = err.get("loc", ())
        parts = [str(p) for p in loc]
        if parts and parts[0] in ("body", "query", "path", "form"):
            parts = parts[1:]
        result.append({"field": ".".join(parts), "message": err.get("msg", "Invalid value")})
    return result
