"""
MongoDB connection and generic document helpers.

Connection settings come from the environment (a local .env file is loaded
first). When DATABASE_URL or DATABASE_NAME is missing, ``db`` stays None and
callers are expected to report the database as unavailable.
"""
import logging
import os
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import MongoClient

load_dotenv()

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    _client = MongoClient(database_url)
    db = _client[database_name]
else:
    logger.warning("DATABASE_URL/DATABASE_NAME not set, running without a database")


def _as_dict(data: Any) -> Dict[str, Any]:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return dict(data)


def create_document(collection_name: str, data: Any, database=None) -> str:
    """Insert a document and return its stringified _id."""
    target = database if database is not None else db
    if target is None:
        raise RuntimeError("Database not available. Check DATABASE_URL and DATABASE_NAME.")
    result = target[collection_name].insert_one(_as_dict(data))
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    skip: int = 0,
    database=None,
) -> List[Dict[str, Any]]:
    target = database if database is not None else db
    if target is None:
        raise RuntimeError("Database not available. Check DATABASE_URL and DATABASE_NAME.")
    cursor = target[collection_name].find(filter_dict or {})
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
