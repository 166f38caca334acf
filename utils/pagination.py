"""
Opaque keyset cursors.
A cursor is base64 (URL-safe) JSON of the sort key of the last row served,
e.g. {"stars": 1200, "id": 42} for repositories.
"""
import base64
import binascii
import json
from typing import Dict, Optional, Sequence


class InvalidCursor(ValueError):
    """Raised when a cursor cannot be decoded."""


def encode_cursor(values: Dict[str, int]) -> str:
    raw = json.dumps(values, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(cursor: Optional[str], keys: Sequence[str]) -> Optional[Dict[str, int]]:
    """Decode and validate a cursor; None for an empty cursor."""
    if not cursor:
        return None
    padded = cursor + "=" * (-len(cursor) % 4)
    try:
        data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise InvalidCursor(f"Malformed cursor: {cursor}") from e

    if not isinstance(data, dict):
        raise InvalidCursor(f"Malformed cursor: {cursor}")
    try:
        return {key: int(data[key]) for key in keys}
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidCursor(f"Cursor is missing {', '.join(keys)}") from e


def next_cursor(rows: Sequence[Dict], has_more: bool, mapping: Dict[str, str]) -> Optional[str]:
    """
    Cursor for the page after `rows`, or None on the last page.
    `mapping` maps cursor keys to row columns.
    """
    if not has_more or not rows:
        return None
    last = rows[-1]
    return encode_cursor({key: last[column] for key, column in mapping.items()})
