from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from pymongo import MongoClient

from config import DATABASE_NAME, DATABASE_URL

client = None
_db = None

try:
    # MongoClient connects lazily; server selection errors surface on first use
    client = MongoClient(DATABASE_URL, serverSelectionTimeoutMS=5000)
    _db = client[DATABASE_NAME]
except Exception:
    client = None
    _db = None

# Expose db for other modules
db = _db


def _strip_mongo_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    if not doc:
        return doc
    doc = dict(doc)
    doc.pop("_id", None)
    doc.pop("updated_at", None)
    return doc


def _database(database=None):
    database = db if database is None else database
    if database is None:
        raise RuntimeError("Database not initialized")
    return database


def new_object_id() -> str:
    return str(ObjectId())


def upsert_document(collection_name: str, doc_id: str, data: Dict[str, Any], database=None) -> bool:
    """Replace the record whose ``id`` field equals ``doc_id`` (insert when absent)."""
    data = dict(data)
    data["id"] = doc_id
    data["updated_at"] = datetime.utcnow()
    result = _database(database)[collection_name].replace_one({"id": doc_id}, data, upsert=True)
    return result.acknowledged


def get_documents(
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: int = 0,
    database=None,
) -> List[Dict[str, Any]]:
    filter_dict = filter_dict or {}
    cursor = _database(database)[collection_name].find(filter_dict).limit(int(limit))
    return [_strip_mongo_id(doc) for doc in cursor]


def get_document_by_id(collection_name: str, doc_id: str, database=None) -> Optional[Dict[str, Any]]:
    doc = _database(database)[collection_name].find_one({"id": doc_id})
    return _strip_mongo_id(doc) if doc else None


def replace_collection(collection_name: str, docs: Iterable[Dict[str, Any]], database=None) -> int:
    """Swap the whole collection content for ``docs``. Returns the number written.

    Documents are written to a staging collection first and renamed over the
    target, so a failed insert leaves the previous content in place.
    """
    database = _database(database)
    now = datetime.utcnow()
    docs = [dict(d, updated_at=now) for d in docs]
    if not docs:
        database[collection_name].delete_many({})
        return 0

    staging = database[f"{collection_name}_staging"]
    staging.delete_many({})
    staging.insert_many(docs)
    staging.rename(collection_name, dropTarget=True)
    return len(docs)
