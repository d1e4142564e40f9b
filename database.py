"""
Database helpers

Thin layer over a MongoDB database. Every document is stored with a string
``_id`` so generated ids and fixed keys (seed products, singleton settings)
are addressed the same way.

Writes made through these helpers are pushed to subscribers registered with
``subscribe_collection`` / ``subscribe_document``.
"""
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import MongoClient

import config

logger = logging.getLogger(__name__)

_client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    _client = MongoClient(config.DATABASE_URL, serverSelectionTimeoutMS=config.DATABASE_TIMEOUT_MS)
    db = _client[config.DATABASE_NAME]


class DatabaseUnavailable(RuntimeError):
    """Raised when no database is configured."""


CollectionListener = Callable[[List[dict]], None]
DocumentListener = Callable[[Optional[dict]], None]

_collection_listeners: Dict[str, List[CollectionListener]] = defaultdict(list)
_document_listeners: Dict[Tuple[str, str], List[DocumentListener]] = defaultdict(list)


def _require_db():
    if db is None:
        raise DatabaseUnavailable("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")
    return db


def serialize_doc(doc):
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    # convert datetimes
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc


def create_document(collection_name: str, data: Union[BaseModel, dict], doc_id: Optional[str] = None) -> str:
    """Insert a document and return its id. An ``id`` key in the data is used as ``_id``."""
    database = _require_db()
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()
    doc_id = doc_id or data_dict.pop("id", None) or str(ObjectId())
    data_dict.pop("id", None)
    now = datetime.now(timezone.utc)
    data_dict["_id"] = doc_id
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    database[collection_name].insert_one(data_dict)
    _notify(collection_name, doc_id)
    return doc_id


def get_documents(collection_name: str, filter_dict: dict = None, limit: int = None) -> List[dict]:
    database = _require_db()
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_document(collection_name: str, doc_id: str) -> Optional[dict]:
    return _require_db()[collection_name].find_one({"_id": doc_id})


def update_document(collection_name: str, doc_id: str, fields: dict, upsert: bool = False) -> bool:
    """Merge ``fields`` into a document. Returns False when nothing matched and no upsert happened."""
    database = _require_db()
    now = datetime.now(timezone.utc)
    update = {"$set": {**fields, "updated_at": now}}
    if upsert:
        update["$setOnInsert"] = {"created_at": now}
    res = database[collection_name].update_one({"_id": doc_id}, update, upsert=upsert)
    changed = res.matched_count > 0 or res.upserted_id is not None
    if changed:
        _notify(collection_name, doc_id)
    return changed


def delete_document(collection_name: str, doc_id: str) -> bool:
    res = _require_db()[collection_name].delete_one({"_id": doc_id})
    if res.deleted_count:
        _notify(collection_name, doc_id)
    return res.deleted_count > 0


def count_documents(collection_name: str, filter_dict: dict = None) -> int:
    return _require_db()[collection_name].count_documents(filter_dict or {})


# ----------------------- Subscriptions -----------------------

def subscribe_collection(collection_name: str, listener: CollectionListener) -> Callable[[], None]:
    """Call ``listener`` with the collection snapshot now and after every write. Returns an unsubscribe function."""
    _collection_listeners[collection_name].append(listener)
    listener([serialize_doc(d) for d in get_documents(collection_name)])

    def unsubscribe():
        if listener in _collection_listeners[collection_name]:
            _collection_listeners[collection_name].remove(listener)

    return unsubscribe


def subscribe_document(collection_name: str, doc_id: str, listener: DocumentListener) -> Callable[[], None]:
    """Like ``subscribe_collection`` for one document; the listener gets None while it does not exist."""
    key = (collection_name, doc_id)
    _document_listeners[key].append(listener)
    listener(serialize_doc(get_document(collection_name, doc_id)))

    def unsubscribe():
        if listener in _document_listeners[key]:
            _document_listeners[key].remove(listener)

    return unsubscribe


def _notify(collection_name: str, doc_id: str):
    listeners = list(_collection_listeners.get(collection_name, ()))
    if listeners:
        snapshot = [serialize_doc(d) for d in get_documents(collection_name)]
        for listener in listeners:
            _deliver(listener, snapshot)
    doc_listeners = list(_document_listeners.get((collection_name, doc_id), ()))
    if doc_listeners:
        doc = serialize_doc(get_document(collection_name, doc_id))
        for listener in doc_listeners:
            _deliver(listener, doc)


def _deliver(listener, payload):
    try:
        listener(payload)
    except Exception:
        logger.exception("Subscriber %r failed", listener)
