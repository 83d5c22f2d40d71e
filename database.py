"""
MongoDB access for the Karigari API.

Collections:
- user: customers, artisans and admins
- product: artisan listings
- order: customer orders with per-item artisan references
- customization: bespoke request threads between a customer and an artisan
- chat: message rooms keyed by a deterministic room id
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING, DESCENDING, TEXT, MongoClient
from pymongo.database import Database

import config

logger = logging.getLogger(__name__)

# MongoClient connects lazily, so importing this module never touches the network.
client = MongoClient(config.DATABASE_URL, serverSelectionTimeoutMS=5000)
db = client[config.DATABASE_NAME]


def get_db() -> Database:
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    # Only 24-char hex strings; ObjectId() would also accept any 12-byte string.
    if not isinstance(value, str) or len(value) != 24:
        return None
    try:
        return ObjectId(value)
    except InvalidId:
        return None


def create_document(database: Database, collection_name: str, data: Dict[str, Any]) -> str:
    doc = dict(data)
    now = utcnow()
    if not doc.get("created_at"):
        doc["created_at"] = now
    doc["updated_at"] = now
    inserted_id = database[collection_name].insert_one(doc).inserted_id
    return str(inserted_id)


def serialize_doc(value: Any) -> Any:
    """Convert ObjectIds anywhere inside a document into strings."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize_doc(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize_doc(v) for v in value]
    return value


def populate(database: Database, docs: List[dict], path: str, collection_name: str, fields: Iterable[str]) -> List[dict]:
    """
    Replace ObjectId references at ``path`` with the referenced documents.

    ``path`` is a top level field ("customer") or a field of the dicts held
    in a list field ("items.product"). Only ``fields`` (plus ``_id``) of the
    referenced documents are loaded. Dangling references are left as ids.
    """
    if "." in path:
        list_field, field = path.split(".", 1)
        holders = [item for doc in docs for item in (doc.get(list_field) or [])]
    else:
        field = path
        holders = list(docs)

    ids = {h.get(field) for h in holders if isinstance(h.get(field), ObjectId)}
    if not ids:
        return docs

    projection = {f: 1 for f in fields}
    found = {d["_id"]: d for d in database[collection_name].find({"_id": {"$in": list(ids)}}, projection)}
    for holder in holders:
        ref = holder.get(field)
        if isinstance(ref, ObjectId) and ref in found:
            holder[field] = found[ref]
    return docs


def paginate(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "current": page,
        "pages": math.ceil(total / limit) if limit else 0,
        "total": total,
    }


def ensure_indexes(database: Database) -> None:
    database["user"].create_index("email", unique=True)
    database["user"].create_index([("role", ASCENDING), ("status", ASCENDING)])

    database["product"].create_index([("title", TEXT), ("description", TEXT), ("tags", TEXT)])
    database["product"].create_index("category")
    database["product"].create_index("artisan")
    database["product"].create_index("status")
    database["product"].create_index("price")
    database["product"].create_index([("created_at", DESCENDING)])

    database["order"].create_index("order_number", unique=True)
    database["order"].create_index("customer")
    database["order"].create_index("items.artisan")
    database["order"].create_index("status")
    database["order"].create_index([("created_at", DESCENDING)])

    database["customization"].create_index("customer")
    database["customization"].create_index("artisan")
    database["customization"].create_index("product")
    database["customization"].create_index("status")
    database["customization"].create_index([("created_at", DESCENDING)])

    database["chat"].create_index("room_id", unique=True)
    database["chat"].create_index("participants.user")
    database["chat"].create_index([("last_activity", DESCENDING)])
    logger.info("MongoDB indexes ensured on %s", database.name)
