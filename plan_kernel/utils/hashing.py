"""
Deterministic hashing utilities.

Audit log entries are chained by SHA-256 over a canonical JSON form of their
payload, so the same before/after content always hashes the same way.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS_MARKER = "GENESIS"


def _json_serializer(obj: Any) -> Any:
    """
    Serialize the non-JSON types that appear in audit payloads.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON: sorted keys, no whitespace.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def to_json_safe(data: Any) -> Any:
    """
    Round-trip through the canonical encoder so the result only holds
    JSON-native types (UUIDs and enums become strings).  Used before storing
    payloads in JSON columns and before publishing events.
    """
    return json.loads(canonicalize_json(data))


def hash_payload(payload: dict) -> str:
    """
    Compute SHA-256 hash of a payload.

    Returns:
        Hex-encoded SHA-256 hash (64 characters).
    """
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_audit_entry(
    action: str,
    resource: str,
    resource_id: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Compute the chained hash of one audit log entry.

    hash = SHA-256(action | resource | resource_id | payload_hash | prev_hash)

    The first entry in the chain uses the literal GENESIS marker in place of
    prev_hash.
    """
    parts = [
        action,
        resource,
        resource_id,
        payload_hash,
        prev_hash or GENESIS_MARKER,
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
