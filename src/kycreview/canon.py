"""
Canonical JSON Serialization

Deterministic JSON serialization for sealing decision records and
fingerprinting audit entries:
- Sorted keys (lexicographic)
- No whitespace
- UTF-8 encoding
- datetimes as ISO 8601, enums as their value, sets sorted

The same record always produces the same bytes, so its SHA-256 hash can
be stored alongside it and re-checked later.
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any


def _default_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for non-standard types.

    Handles datetime/date, Enum, dataclass, set/frozenset and bytes.
    """
    if isinstance(obj, datetime):
        if obj.tzinfo is not None:
            utc = obj.astimezone(timezone.utc)
            return utc.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
        return obj.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3]
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    if isinstance(obj, (set, frozenset)):
        return sorted(obj, key=str)
    if isinstance(obj, bytes):
        return obj.hex()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonical_json(obj: Any) -> str:
    """
    Serialize object to canonical JSON string.

    Example:
        >>> canonical_json({"b": 1, "a": 2})
        '{"a":2,"b":1}'
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        default=_default_serializer,
        ensure_ascii=False,
    )


def canonical_json_bytes(obj: Any) -> bytes:
    """Serialize object to canonical JSON as UTF-8 bytes."""
    return canonical_json(obj).encode("utf-8")


def content_hash(obj: Any) -> str:
    """
    Compute SHA-256 hash of the canonical JSON representation.

    Returns:
        Hex-encoded SHA-256 hash string (64 characters)
    """
    return hashlib.sha256(canonical_json_bytes(obj)).hexdigest()


def content_hash_short(obj: Any, length: int = 12) -> str:
    """Truncated content hash for display and identifiers."""
    return content_hash(obj)[:length]
