"""
Opaque pagination cursors.

Two tagged, versioned formats, one per paging strategy:

  offset  {"v": 1, "k": "o", "o": <int>}
  keyset  {"v": 1, "k": "k", "t": "ts" | "n", "c": <key>, "i": <post id>}

The JSON object is compact-serialised and URL-safe base64 encoded without
padding. Decoding is fail-closed: anything that is not exactly one of the
formats above raises FeedValidationError, including a well-formed cursor of
the other strategy when the caller says which one it expects.
"""
import base64
import binascii
import json
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Type, Union

from feedcomposer.errors import FeedValidationError

CURSOR_VERSION = 1

_OFFSET = "o"
_KEYSET = "k"
_KEY_TIMESTAMP = "ts"
_KEY_NUMBER = "n"


@dataclass(frozen=True)
class OffsetCursor:
    """Zero-based position of a node in an offset-paged listing."""
    offset: int


@dataclass(frozen=True)
class KeysetCursor:
    """Ordering key of the last node seen, plus its id as the tie-break."""
    key: Union[datetime, float]
    id: str


Cursor = Union[OffsetCursor, KeysetCursor]


def _b64encode(obj: dict) -> str:
    raw = json.dumps(obj, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(token: str) -> dict:
    pad = "=" * (-len(token) % 4)
    try:
        raw = base64.urlsafe_b64decode((token + pad).encode("ascii"))
        obj = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise FeedValidationError("Malformed cursor") from exc
    if not isinstance(obj, dict):
        raise FeedValidationError("Malformed cursor")
    return obj


def _is_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(float(value))
    except OverflowError:
        return False


def encode_cursor(cursor: Cursor) -> str:
    if isinstance(cursor, OffsetCursor):
        return _b64encode({"v": CURSOR_VERSION, "k": _OFFSET, "o": cursor.offset})
    if isinstance(cursor.key, datetime):
        kind, key = _KEY_TIMESTAMP, cursor.key.isoformat()
    else:
        kind, key = _KEY_NUMBER, cursor.key
    return _b64encode(
        {"v": CURSOR_VERSION, "k": _KEYSET, "t": kind, "c": key, "i": cursor.id}
    )


def decode_cursor(token: str, expected: Optional[Type] = None) -> Cursor:
    """
    Decode a cursor produced by `encode_cursor`.

    `expected` pins the strategy (OffsetCursor or KeysetCursor) so a cursor
    minted by one paging strategy can never drive the other.
    """
    if not isinstance(token, str) or not token:
        raise FeedValidationError("Malformed cursor")

    obj = _b64decode(token)
    if obj.get("v") != CURSOR_VERSION:
        raise FeedValidationError("Unsupported cursor version")

    strategy = obj.get("k")
    if strategy == _OFFSET:
        offset = obj.get("o")
        if not isinstance(offset, int) or isinstance(offset, bool) or offset < 0:
            raise FeedValidationError("Malformed cursor")
        cursor: Cursor = OffsetCursor(offset=offset)
    elif strategy == _KEYSET:
        post_id = obj.get("i")
        if not isinstance(post_id, str) or not post_id:
            raise FeedValidationError("Malformed cursor")
        kind, key = obj.get("t"), obj.get("c")
        if kind == _KEY_TIMESTAMP and isinstance(key, str):
            try:
                key = datetime.fromisoformat(key)
            except ValueError as exc:
                raise FeedValidationError("Malformed cursor") from exc
        elif not (kind == _KEY_NUMBER and _is_number(key)):
            raise FeedValidationError("Malformed cursor")
        cursor = KeysetCursor(key=key, id=post_id)
    else:
        raise FeedValidationError("Malformed cursor")

    if expected is not None and not isinstance(cursor, expected):
        raise FeedValidationError("Cursor does not belong to this feed")
    return cursor
