"""Wire encoding for values exchanged with the server.

Handles the typed JSON forms the server uses for pointers and dates, the
identity rules for object references, and query-string helpers.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote, unquote

# The server may trim trailing zeroes from the milliseconds, so decoding
# accepts 1-3 fractional digits and none at all.
DATE_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%dT%H:%M:%SZ",
)


class ObjectReference:
    """A reference to a stored object of a given class.

    References compare by identity. Two distinct references are considered
    the same object (see `refers_to`) only when both have been saved and
    share a class name and object id.
    """

    def __init__(self, class_name: str, object_id: str | None = None):
        self.class_name = class_name
        self.object_id = object_id

    def refers_to(self, other: Any) -> bool:
        """Check whether `other` denotes the same stored object."""
        if self is other:
            return True
        if not isinstance(other, ObjectReference):
            return False
        if self.object_id is None or other.object_id is None:
            return False
        return self.class_name == other.class_name and self.object_id == other.object_id

    def to_pointer(self) -> dict[str, Any]:
        if self.object_id is None:
            raise ValueError(
                f"Cannot reference an unsaved {self.class_name} object"
            )
        return {
            "__type": "Pointer",
            "className": self.class_name,
            "objectId": self.object_id,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.class_name!r}, {self.object_id!r})"


@dataclass(frozen=True)
class RelationValue:
    """The value of a relation field: a handle on its target class."""

    target_class_name: str | None

    def encode(self) -> dict[str, Any]:
        return {"__type": "Relation", "className": self.target_class_name}


def same_item(a: Any, b: Any) -> bool:
    """Equality used for list operations.

    Object references use `ObjectReference.refers_to`; everything else uses
    value equality.
    """
    if isinstance(a, ObjectReference):
        return a.refers_to(b)
    if isinstance(b, ObjectReference):
        return False
    return a == b


def contains_item(items: list[Any], target: Any) -> bool:
    return any(same_item(target, item) for item in items)


def distinct(items: Any) -> list[Any]:
    """Drop repeated items, keeping first occurrences in order."""
    result: list[Any] = []
    for item in items:
        if not contains_item(result, item):
            result.append(item)
    return result


def encode_date(value: datetime) -> dict[str, str]:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    millis = value.microsecond // 1000
    return {
        "__type": "Date",
        "iso": value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{millis:03d}Z",
    }


def decode_date(iso: str) -> datetime:
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(iso, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    raise ValueError(f"Unrecognized date format: {iso!r}")


def encode_value(value: Any) -> Any:
    """Convert a Python value into its JSON-compatible wire form."""
    if isinstance(value, ObjectReference):
        return value.to_pointer()
    if isinstance(value, RelationValue):
        return value.encode()
    if isinstance(value, datetime):
        return encode_date(value)
    if isinstance(value, dict):
        return {str(k): encode_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [encode_value(v) for v in value]
    return value


def decode_value(value: Any) -> Any:
    """Convert a decoded JSON value back into Python values."""
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    if not isinstance(value, dict):
        return value

    type_name = value.get("__type")
    if type_name == "Date":
        return decode_date(value["iso"])
    if type_name in ("Pointer", "Object"):
        return ObjectReference(value["className"], value.get("objectId"))
    if type_name == "Relation":
        return RelationValue(value.get("className"))

    return {k: decode_value(v) for k, v in value.items()}


def dumps(value: Any) -> str:
    """Serialize a value to JSON text in wire form."""
    return json.dumps(encode_value(value), separators=(",", ":"))


def build_query_string(parameters: dict[str, Any]) -> str:
    """Build a query string; non-string values are sent as JSON."""
    pairs = []
    for key, value in parameters.items():
        if isinstance(value, str) and value:
            text = value
        else:
            text = dumps(value)
        pairs.append(f"{quote(key, safe='')}={quote(text, safe='')}")
    return "&".join(pairs)


def decode_query_string(query: str) -> dict[str, str | None]:
    result: dict[str, str | None] = {}
    for pair in query.split("&"):
        if not pair:
            continue
        parts = pair.split("=", 1)
        key = unquote(parts[0])
        result[key] = unquote(parts[1].replace("+", " ")) if len(parts) == 2 else None
    return result
