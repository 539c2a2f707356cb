import os
import logging
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError

from pricing import categories_of, filter_cars, rental_days
from schemas import (
    BOOKING_STATUSES,
    CATEGORIES,
    FUEL_TYPES,
    TRANSMISSIONS,
    Booking,
    BookingIn,
    BookingStatusUpdate,
    Car,
    CarIn,
    WebsiteSettings,
    validation_errors,
)
from storage import (
    BookingRejected,
    InvalidTransition,
    Storage,
    StorageError,
    Unavailable,
    get_storage,
)
from upload import (
    DiskImageStore,
    GridFSImageStore,
    ImageStore,
    MAX_FILE_SIZE,
    UploadRejected,
    get_image_store,
    validate_image,
)

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(title="Car Rental Catalog API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_default_store = get_image_store()
if isinstance(_default_store, DiskImageStore):
    app.mount(
        _default_store.url_prefix.rstrip("/"),
        StaticFiles(directory=_default_store.directory),
        name="uploads",
    )


# Error mapping
def _entity_for(path: str) -> str:
    if path.startswith("/api/cars"):
        return "car"
    if path.startswith("/api/bookings"):
        return "booking"
    if path.startswith("/api/settings"):
        return "settings"
    return "request"


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={
            "detail": f"Invalid {_entity_for(request.url.path)} data",
            "errors": validation_errors(exc.errors()),
        },
    )


@app.exception_handler(StorageError)
async def handle_storage_error(request: Request, exc: StorageError):
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# Health
@app.get("/")
def read_root():
    return {"message": "Car Rental Backend Running"}


@app.get("/test")
def test_database(storage: Storage = Depends(get_storage)):
    from database import db

    response = {
        "backend": "✅ Running",
        "storage": storage.name,
        "database": "❌ Not Available" if db is None else "✅ Connected & Working",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": db.name if db is not None else None,
        "collections": [],
    }
    if db is not None:
        try:
            response["collections"] = db.list_collection_names()
        except Exception as e:
            response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
    return response


@app.get("/schema")
def get_schema():
    return {
        "car": Car.model_json_schema(),
        "booking": Booking.model_json_schema(),
        "website_settings": WebsiteSettings.model_json_schema(),
    }


@app.get("/api/options")
def get_options():
    """Values the admin forms offer for the enumerated car and booking fields."""
    return {
        "categories": CATEGORIES,
        "transmissions": TRANSMISSIONS,
        "fuel_types": FUEL_TYPES,
        "booking_statuses": BOOKING_STATUSES,
    }


# Cars endpoints
@app.get("/api/cars", response_model=List[Car])
def list_cars(
    q: Optional[str] = None,
    category: Optional[str] = None,
    transmission: Optional[str] = None,
    storage: Storage = Depends(get_storage),
):
    cars = storage.get_all_cars()
    if q or category or transmission:
        cars = filter_cars(cars, search=q, category=category, transmission=transmission)
    return cars


@app.get("/api/cars/categories", response_model=List[str])
def list_categories(storage: Storage = Depends(get_storage)):
    return categories_of(storage.get_all_cars())


@app.get("/api/cars/slug/{slug}", response_model=Car)
def get_car_by_slug(slug: str, storage: Storage = Depends(get_storage)):
    car = storage.get_car_by_slug(slug)
    if car is None:
        raise HTTPException(status_code=404, detail="Car not found")
    return car


@app.get("/api/cars/{car_id}", response_model=Car)
def get_car(car_id: str, storage: Storage = Depends(get_storage)):
    car = storage.get_car(car_id)
    if car is None:
        raise HTTPException(status_code=404, detail="Car not found")
    return car


@app.post("/api/cars", response_model=Car, status_code=201)
def create_car(payload: CarIn, storage: Storage = Depends(get_storage)):
    return storage.create_car(payload)


@app.patch("/api/cars/{car_id}", response_model=Car)
def update_car(car_id: str, payload: CarIn, storage: Storage = Depends(get_storage)):
    car = storage.update_car(car_id, payload)
    if car is None:
        raise HTTPException(status_code=404, detail="Car not found")
    return car


@app.delete("/api/cars/{car_id}", status_code=204)
def delete_car(car_id: str, storage: Storage = Depends(get_storage)):
    if not storage.delete_car(car_id):
        raise HTTPException(status_code=404, detail="Car not found")
    return Response(status_code=204)


# Booking endpoints
@app.get("/api/quote")
def quote(
    car_id: str,
    start_date: date,
    end_date: date,
    storage: Storage = Depends(get_storage),
):
    car = storage.get_car(car_id)
    if car is None:
        raise HTTPException(status_code=404, detail="Car not found")
    days = rental_days(start_date, end_date)
    return {
        "car_id": car.id,
        "days": days,
        "price_per_day": car.price_per_day,
        "total_price": days * car.price_per_day,
    }


@app.post("/api/bookings", response_model=Booking, status_code=201)
def create_booking(payload: BookingIn, storage: Storage = Depends(get_storage)):
    try:
        booking = storage.create_booking(payload)
    except Unavailable as e:
        raise HTTPException(status_code=409, detail=str(e))
    except BookingRejected as e:
        raise HTTPException(status_code=400, detail=str(e))
    if booking is None:
        raise HTTPException(status_code=404, detail="Car not found")
    if payload.total_price is not None and payload.total_price != booking.total_price:
        logger.warning(
            "Booking %s: client quoted %s, stored %s",
            booking.id, payload.total_price, booking.total_price,
        )
    return booking


@app.get("/api/bookings", response_model=List[Booking])
def list_bookings(car_id: Optional[str] = None, storage: Storage = Depends(get_storage)):
    return storage.list_bookings(car_id)


@app.get("/api/bookings/{booking_id}", response_model=Booking)
def get_booking(booking_id: str, storage: Storage = Depends(get_storage)):
    booking = storage.get_booking(booking_id)
    if booking is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking


@app.patch("/api/bookings/{booking_id}/status", response_model=Booking)
def update_booking_status(
    booking_id: str,
    payload: BookingStatusUpdate,
    storage: Storage = Depends(get_storage),
):
    try:
        booking = storage.update_booking_status(booking_id, payload.status)
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    if booking is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking


# Website settings
@app.get("/api/settings", response_model=WebsiteSettings)
def get_settings(storage: Storage = Depends(get_storage)):
    return storage.get_settings()


@app.put("/api/settings", response_model=WebsiteSettings)
def save_settings(payload: WebsiteSettings, storage: Storage = Depends(get_storage)):
    return storage.save_settings(payload)


def _read_upload(upload: UploadFile) -> bytes:
    # one byte past the limit is enough to reject an oversized file
    return upload.file.read(MAX_FILE_SIZE + 1)


def _try_upload(store: ImageStore, upload: UploadFile, label: str, warnings: List[str]) -> Optional[str]:
    try:
        return store.save(upload.filename, upload.content_type, _read_upload(upload))
    except (UploadRejected, StorageError) as e:
        logger.warning("%s upload failed: %s", label, e)
        warnings.append(f"{label} upload failed: {e}")
        return None


@app.put("/api/settings/with-images")
def save_settings_with_images(
    settings: str = Form(..., description="WebsiteSettings as JSON"),
    logo_file: Optional[UploadFile] = File(None),
    favicon_file: Optional[UploadFile] = File(None),
    storage: Storage = Depends(get_storage),
    store: ImageStore = Depends(get_image_store),
):
    """
    Save settings together with new logo/favicon files.

    A failed image upload does not block the save: the previous image value is
    kept and the failure is reported under ``warnings``.
    """
    try:
        payload = WebsiteSettings.model_validate_json(settings)
    except ValidationError as e:
        return JSONResponse(
            status_code=400,
            content={"detail": "Invalid settings data", "errors": validation_errors(e)},
        )

    warnings: List[str] = []
    updates = {}
    if logo_file is not None:
        updates["logo"] = _try_upload(store, logo_file, "Logo", warnings) or payload.logo
    if favicon_file is not None:
        updates["favicon"] = _try_upload(store, favicon_file, "Favicon", warnings) or payload.favicon
    if updates:
        payload = payload.model_copy(update=updates)

    saved = storage.save_settings(payload)
    return {"settings": saved.model_dump(), "warnings": warnings}


# Uploads
@app.post("/api/upload")
def upload_images(
    files: List[UploadFile] = File(...),
    store: ImageStore = Depends(get_image_store),
):
    contents = []
    for f in files:
        data = _read_upload(f)
        try:
            validate_image(f.content_type, len(data))
        except UploadRejected as e:
            logger.warning("Rejected upload %r: %s", f.filename, e)
            raise HTTPException(status_code=400, detail=f"{f.filename}: {e}")
        contents.append((f, data))

    urls = [store.save(f.filename, f.content_type, data) for f, data in contents]
    return {"url": urls[0], "urls": urls}


@app.delete("/api/upload")
def delete_image(url: str = Query(..., description="Public URL returned by the upload"),
                 store: ImageStore = Depends(get_image_store)):
    return {"deleted": store.delete_by_url(url)}


@app.get("/uploads/{filename}")
def serve_upload(filename: str, store: ImageStore = Depends(get_image_store)):
    if not isinstance(store, GridFSImageStore):
        raise HTTPException(status_code=404, detail="File not found")
    found = store.open(filename)
    if found is None:
        raise HTTPException(status_code=404, detail="File not found")
    content_type, stream = found
    return StreamingResponse(stream, media_type=content_type)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
