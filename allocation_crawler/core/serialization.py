"""
Hash field encoding

Redis hashes only hold strings. Containers are stored as JSON text,
timestamps as ISO-8601 UTC, and absent optionals as the empty string.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional


class FieldJSONEncoder(json.JSONEncoder):
    """JSON encoder for values that end up inside hash fields"""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, datetime):
            return encode_timestamp(obj)
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        return super().default(obj)


def utcnow() -> datetime:
    """Current UTC time, truncated to the millisecond precision stored in hashes"""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def encode_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (
        value.astimezone(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def decode_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def encode_json(value: Any) -> str:
    if value is None:
        return ""
    return json.dumps(value, cls=FieldJSONEncoder, sort_keys=True)


def decode_json(value: Optional[str], default: Any = None) -> Any:
    if not value:
        return default
    return json.loads(value)


def encode_tags(tags: Iterable[str]) -> str:
    return json.dumps(sorted(set(tags)))


def decode_tags(value: Optional[str]) -> frozenset[str]:
    """Read a tag list; accepts JSON arrays and legacy comma-joined text"""
    if not value:
        return frozenset()
    if value.startswith("["):
        return frozenset(json.loads(value))
    return frozenset(tag for tag in value.split(",") if tag)
