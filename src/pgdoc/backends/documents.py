"""Helpers shared by the document backends (mongo wire and documentdb_api)."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from bson import ObjectId

CREATED_AT_FIELD = "created_at"


def prepare_insert(payload: Dict[str, Any], now: datetime = None) -> Dict[str, Any]:
    """Returns a copy of ``payload`` ready to insert.

    ``created_at`` is set to the current UTC time in ISO-8601 form when the
    caller omitted it, and an ``ObjectId`` ``_id`` is assigned when missing so
    the acknowledgement can always carry the identifier.
    """
    document = dict(payload)
    if CREATED_AT_FIELD not in document:
        now = now or datetime.now(timezone.utc)
        document[CREATED_AT_FIELD] = now.isoformat()
    if "_id" not in document:
        document["_id"] = ObjectId()
    return document


def sort_pairs(sort: Dict[str, Any]) -> List[Tuple[str, Any]]:
    return list(sort.items())


def default_index_name(keys: Dict[str, Any]) -> str:
    """MongoDB's default index name: ``field_direction`` pairs joined by '_'."""
    return "_".join(f"{field}_{direction}" for field, direction in keys.items())
