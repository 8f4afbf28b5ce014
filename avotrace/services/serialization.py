# avotrace/services/serialization.py

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId


def to_iso(dt_val) -> Optional[str]:
    if not dt_val:
        return None
    if isinstance(dt_val, datetime):
        if dt_val.tzinfo is None:
            dt_val = dt_val.replace(tzinfo=timezone.utc)
        return dt_val.isoformat()
    if isinstance(dt_val, str):
        return dt_val
    return None


def public_doc(doc: Dict[str, Any]) -> Dict[str, Any]:
    """
    Mongo document -> JSON-friendly dict:
      _id -> id (str), ObjectId values -> str, datetimes -> ISO strings.
    Nested stage records are plain dicts of strings/numbers and pass through.
    """
    out: Dict[str, Any] = {}
    for k, v in doc.items():
        if k == "_id":
            out["id"] = str(v)
        elif isinstance(v, ObjectId):
            out[k] = str(v)
        elif isinstance(v, datetime):
            out[k] = to_iso(v)
        else:
            out[k] = v
    return out


def parse_object_id(value: str) -> Optional[ObjectId]:
    if value and ObjectId.is_valid(value):
        return ObjectId(value)
    return None
