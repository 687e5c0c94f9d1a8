"""
Deterministic serialization and hashing.

Snapshot totals and configuration checksums must be byte-identical for
identical inputs.  Everything that is persisted or compared as canonical
JSON goes through ``canonicalize_json``.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Serializer for types json does not handle natively.

    Decimals are written as fixed-point strings WITHOUT normalization so
    that a quantized 100.00 stays "100.00".

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        return format(obj, "f")
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON: sorted keys, no whitespace, stable
    rendering of Decimal, datetime, UUID and Enum.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def hash_payload(payload: dict) -> str:
    """Hex-encoded SHA-256 of the canonical JSON form."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
