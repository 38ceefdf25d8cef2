"""Conversion between Firestore REST typed values and plain Python values.

The Firestore REST API wraps every field in a one-key object naming its type,
e.g. ``{"stringValue": "pending"}`` or ``{"integerValue": "3"}``. Documents
come back as ``{"name": ".../documents/<collection>/<id>", "fields": {...}}``.
"""
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

_FRACTION = re.compile(r"\.(\d+)")


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp, trimming nanoseconds to microseconds."""
    value = value.replace("Z", "+00:00")
    value = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    return datetime.fromisoformat(value)


def format_timestamp(value: datetime) -> str:
    """Format a datetime the way Firestore expects ``timestampValue``."""
    if value.tzinfo is None:
        value = value.astimezone()
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def decode_value(value: Dict[str, Any]) -> Any:
    """Turn one typed Firestore value into a Python value."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return value["booleanValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return parse_timestamp(value["timestampValue"])
    if "geoPointValue" in value:
        point = value["geoPointValue"]
        return {
            "latitude": float(point.get("latitude", 0.0)),
            "longitude": float(point.get("longitude", 0.0)),
        }
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "referenceValue" in value:
        return value["referenceValue"]
    if "bytesValue" in value:
        return value["bytesValue"]
    raise ValueError(f"Unsupported Firestore value: {value}")


def decode_fields(fields: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    return {key: decode_value(value) for key, value in fields.items()}


def encode_value(value: Any) -> Dict[str, Any]:
    """Turn a Python value into a typed Firestore value."""
    if isinstance(value, Enum):
        value = value.value
    if value is None:
        return {"nullValue": None}
    # bool before int: bool is a subclass of int
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": format_timestamp(value)}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise TypeError(f"Cannot encode {type(value).__name__} as a Firestore value")


def encode_fields(fields: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    return {key: encode_value(value) for key, value in fields.items()}


def document_id(name: str) -> str:
    """Last path segment of a document resource name."""
    return name.rsplit("/", 1)[-1]


def decode_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a Firestore document into a dict with its ``id``."""
    data = decode_fields(document.get("fields", {}))
    data["id"] = document_id(document["name"])
    return data


def decode_query_results(results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Documents from a ``:runQuery`` response, skipping read-time only rows."""
    return [decode_document(row["document"]) for row in results if "document" in row]


def structured_query(
    collection: str,
    where: Optional[tuple] = None,
    order_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """Body of a ``:runQuery`` request for one collection."""
    query: Dict[str, Any] = {"from": [{"collectionId": collection}]}
    if where is not None:
        field, value = where
        query["where"] = {
            "fieldFilter": {
                "field": {"fieldPath": field},
                "op": "EQUAL",
                "value": encode_value(value),
            }
        }
    if order_by is not None:
        query["orderBy"] = [{
            "field": {"fieldPath": order_by},
            "direction": "DESCENDING" if descending else "ASCENDING",
        }]
    if limit is not None:
        query["limit"] = limit
    return {"structuredQuery": query}
