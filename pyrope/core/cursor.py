"""
Opaque pagination cursors.

A cursor is the store's LastEvaluatedKey (uuid, createdAt, _table for
collection scans) serialized as compact JSON and base64 encoded. It can
be handed to clients and fed back unchanged to resume a scan.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Dict, Mapping

from ..errors import ValidationError


def encode_cursor(key: Mapping[str, Any]) -> str:
    """Serialize a LastEvaluatedKey into a cursor token."""
    payload = json.dumps(dict(key), separators=(",", ":"), sort_keys=True)
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def decode_cursor(token: str) -> Dict[str, Any]:
    """Reconstruct the ExclusiveStartKey encoded in ``token``.

    Raises:
        ValidationError: If the token is not a cursor produced by encode_cursor
    """
    if not isinstance(token, str) or not token:
        raise ValidationError("Cursor must be a non-empty string", field_name="cursor")
    try:
        key = json.loads(base64.b64decode(token.encode("ascii"), validate=True))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise ValidationError(f"Malformed cursor: {e}", field_name="cursor") from e
    if not isinstance(key, dict) or not key:
        raise ValidationError("Malformed cursor: expected a key object", field_name="cursor")
    return key
