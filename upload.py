"""
Image uploads.

Files are checked (MIME type, size) before anything is written, renamed to
``<epoch ms>_<uuid><ext>`` and stored either on local disk or in GridFS.
Both stores hand back a public URL under their ``url_prefix`` and can delete a
file again given that URL.
"""

import os
import re
import time
import uuid
import logging
from abc import ABC, abstractmethod
from typing import Optional

from gridfs import GridFSBucket
from gridfs.errors import NoFile
from pymongo.errors import PyMongoError

from storage import StorageError

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = ["image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"]
MAX_FILE_SIZE = 5 * 1024 * 1024
DEFAULT_EXTENSION = ".jpg"
MIME_EXTENSIONS = {
    "image/jpeg": (".jpg", ".jpeg"),
    "image/jpg": (".jpg", ".jpeg"),
    "image/png": (".png",),
    "image/gif": (".gif",),
    "image/webp": (".webp",),
}

UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join("attached_assets", "uploads"))
UPLOAD_URL_PREFIX = os.getenv("UPLOAD_URL_PREFIX", "/attached_assets/uploads/")
GRIDFS_URL_PREFIX = "/uploads/"


class UploadRejected(ValueError):
    pass


def validate_image(content_type: Optional[str], size: int) -> None:
    if content_type not in ALLOWED_MIME_TYPES:
        raise UploadRejected("Only image files are allowed (JPEG, PNG, GIF, WebP)")
    if size > MAX_FILE_SIZE:
        raise UploadRejected("File is too large, maximum size is 5 MB")


def unique_filename(original: Optional[str], content_type: Optional[str] = None) -> str:
    """The extension follows the MIME type; the client's one is kept only when it agrees."""
    ext = os.path.splitext(original or "")[1].lower()
    allowed = MIME_EXTENSIONS.get(content_type)
    if allowed is not None and ext not in allowed:
        ext = allowed[0]
    ext = ext or DEFAULT_EXTENSION
    return f"{int(time.time() * 1000)}_{uuid.uuid4()}{ext}"


class ImageStore(ABC):
    def __init__(self, url_prefix: str):
        if not url_prefix.endswith("/"):
            url_prefix += "/"
        self.url_prefix = url_prefix

    @abstractmethod
    def _write(self, filename: str, content_type: str, data: bytes) -> None:
        ...

    @abstractmethod
    def _remove(self, filename: str) -> bool:
        ...

    def url_for(self, filename: str) -> str:
        return f"{self.url_prefix}{filename}"

    def extract_filename(self, url: str) -> Optional[str]:
        match = re.search(re.escape(self.url_prefix) + r"([^/?#]+)", url or "")
        if not match or match.group(1) in (".", ".."):
            return None
        return match.group(1)

    def save(self, original_name: Optional[str], content_type: Optional[str], data: bytes) -> str:
        """Validate and store one image, returning its public URL."""
        try:
            validate_image(content_type, len(data))
        except UploadRejected as e:
            logger.warning("Rejected upload %r (%s): %s", original_name, content_type, e)
            raise
        filename = unique_filename(original_name, content_type)
        self._write(filename, content_type, data)
        logger.info("Stored upload %s (%d bytes)", filename, len(data))
        return self.url_for(filename)

    def delete_by_url(self, url: str) -> bool:
        """Remove the file behind ``url``; False if the URL is foreign or the file is already gone."""
        filename = self.extract_filename(url)
        if filename is None:
            return False
        deleted = self._remove(filename)
        if deleted:
            logger.info("Deleted upload %s", filename)
        return deleted


class DiskImageStore(ImageStore):
    def __init__(self, directory: str = UPLOAD_DIR, url_prefix: str = UPLOAD_URL_PREFIX):
        super().__init__(url_prefix)
        self.directory = os.path.abspath(directory)
        if not os.path.isdir(self.directory):
            os.makedirs(self.directory, exist_ok=True)
            logger.info("Created uploads directory: %s", self.directory)

    def path_for(self, filename: str) -> str:
        return os.path.join(self.directory, filename)

    def _write(self, filename: str, content_type: str, data: bytes) -> None:
        with open(self.path_for(filename), "wb") as fh:
            fh.write(data)

    def _remove(self, filename: str) -> bool:
        path = self.path_for(filename)
        if not os.path.exists(path):
            return False
        try:
            os.remove(path)
        except OSError as e:
            logger.error("Error deleting image %s: %s", filename, e)
            return False
        return True


class GridFSImageStore(ImageStore):
    """Uploads kept in the document store; served back through ``GET /uploads/{filename}``."""

    def __init__(self, bucket: GridFSBucket, url_prefix: str = GRIDFS_URL_PREFIX):
        super().__init__(url_prefix)
        self.bucket = bucket

    def _write(self, filename: str, content_type: str, data: bytes) -> None:
        try:
            self.bucket.upload_from_stream(filename, data, metadata={"contentType": content_type})
        except PyMongoError as e:
            logger.error("Failed to upload %s: %s", filename, e)
            raise StorageError(f"Failed to upload image: {e}") from e

    def _remove(self, filename: str) -> bool:
        try:
            files = list(self.bucket.find({"filename": filename}))
            for f in files:
                self.bucket.delete(f._id)
        except NoFile:
            return False
        except PyMongoError as e:
            logger.error("Failed to delete %s: %s", filename, e)
            raise StorageError(f"Failed to delete image: {e}") from e
        return bool(files)

    def open(self, filename: str):
        """Return ``(content_type, stream)`` or ``None`` when no such file exists."""
        try:
            stream = self.bucket.open_download_stream_by_name(filename)
        except NoFile:
            return None
        metadata = stream.metadata or {}
        return metadata.get("contentType", "application/octet-stream"), stream


_image_store: Optional[ImageStore] = None


def get_image_store() -> ImageStore:
    global _image_store
    if _image_store is not None:
        return _image_store

    from database import db

    backend = os.getenv("UPLOAD_BACKEND", "disk")
    if backend == "gridfs" and db is None:
        logger.warning("UPLOAD_BACKEND=gridfs but DATABASE_URL is not set, using disk")
        backend = "disk"

    if backend == "gridfs":
        _image_store = GridFSImageStore(GridFSBucket(db, bucket_name="uploads"))
    else:
        _image_store = DiskImageStore()
    logger.info("Using %s image store", backend)
    return _image_store


def set_image_store(store: Optional[ImageStore]) -> None:
    global _image_store
    _image_store = store
