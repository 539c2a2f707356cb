"""
MongoDB connection shared by the storage and upload backends.

``db`` is ``None`` when ``DATABASE_URL`` is not configured; callers fall back
to the in-memory store and disk uploads in that case.
"""

import os
import logging
from typing import Optional

from dotenv import load_dotenv
from pymongo import MongoClient
from pymongo.database import Database

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "car_rental")

_client: Optional[MongoClient] = None
db: Optional[Database] = None

if DATABASE_URL:
    _client = MongoClient(DATABASE_URL, serverSelectionTimeoutMS=5000)
    db = _client[DATABASE_NAME]
    logger.info("MongoDB configured (database=%s)", DATABASE_NAME)
else:
    logger.info("DATABASE_URL not set, document store disabled")
