import os
import tempfile

os.environ.pop("DATABASE_URL", None)
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="car-uploads-"))

import mongomock
import pytest
from fastapi.testclient import TestClient
from gridfs.errors import NoFile

from storage import MemStorage, MongoStorage, get_storage
from upload import DiskImageStore, get_image_store


CAR = {
    "name": "Tesla Model 3!",
    "category": "Electric",
    "description": "Premium electric sedan",
    "image": "/attached_assets/uploads/tesla.png",
    "price_per_day": 120,
    "seats": 5,
    "doors": 4,
    "luggage": 2,
    "year": 2024,
    "transmission": "Automatic",
    "fuel_type": "Electric",
    "has_gps": True,
    "has_bluetooth": True,
    "has_ac": True,
    "has_usb": True,
    "available": True,
}


def booking_payload(car_id, start="2025-06-01", end="2025-06-04", **extra):
    data = {
        "car_id": car_id,
        "car_name": "Tesla Model 3!",
        "start_date": start,
        "end_date": end,
        "first_name": "Jane",
        "last_name": "Doe",
        "email": "jane.doe@gmail.com",
        "phone": "+61 400 000 000",
    }
    data.update(extra)
    return data


@pytest.fixture
def car_data():
    return dict(CAR)



class _File:
    def __init__(self, _id, filename, data, metadata):
        self._id = _id
        self.filename = filename
        self.data = data
        self.metadata = metadata

    def __iter__(self):
        yield self.data


class FakeBucket:
    """In-process stand-in for a GridFSBucket."""

    def __init__(self):
        self.files = {}
        self._next = 0

    def upload_from_stream(self, filename, source, metadata=None):
        self._next += 1
        self.files[self._next] = _File(self._next, filename, bytes(source), metadata)
        return self._next

    def find(self, query):
        return [f for f in self.files.values() if f.filename == query["filename"]]

    def delete(self, file_id):
        if file_id not in self.files:
            raise NoFile(file_id)
        del self.files[file_id]

    def open_download_stream_by_name(self, filename):
        for f in self.files.values():
            if f.filename == filename:
                return f
        raise NoFile(filename)

@pytest.fixture(params=["memory", "mongo"])
def storage(request):
    if request.param == "memory":
        return MemStorage(seed=False)
    return MongoStorage(mongomock.MongoClient().db)


@pytest.fixture
def image_store(tmp_path):
    return DiskImageStore(directory=str(tmp_path / "uploads"), url_prefix="/attached_assets/uploads/")


@pytest.fixture
def client(storage, image_store):
    from main import app

    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_image_store] = lambda: image_store
    yield TestClient(app)
    app.dependency_overrides.clear()
