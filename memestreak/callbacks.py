"""Inline button payloads.

A payload is ``kind:field:field...`` with every field percent-escaped, so
uids or symbols containing ``:`` (or ``%``) survive the trip through Telegram.
"""

from typing import NamedTuple, Optional, Tuple
from urllib.parse import quote, unquote

SEPARATOR = ":"
MAX_BYTES = 64  # Telegram limit for callback_data

PICK_FRIEND = "pickfriend"
REACT = "react"

KNOWN = {PICK_FRIEND: 1, REACT: 2}


class Callback(NamedTuple):
    kind: str
    fields: Tuple[str, ...]


def encode(kind: str, *fields: str) -> str:
    data = SEPARATOR.join([kind, *(quote(str(f), safe="") for f in fields)])
    if len(data.encode()) > MAX_BYTES:
        raise ValueError(f"callback payload too long ({len(data.encode())} bytes): {data!r}")
    return data


def decode(data: Optional[str]) -> Optional[Callback]:
    """Parse a payload; anything unknown or malformed gives None."""
    if not data:
        return None
    kind, *fields = data.split(SEPARATOR)
    if KNOWN.get(kind) != len(fields):
        return None
    fields = tuple(unquote(f) for f in fields)
    if not all(fields):
        return None
    return Callback(kind, fields)


def pick_friend(friend_uid: str) -> str:
    return encode(PICK_FRIEND, friend_uid)


def react(symbol: str, sender_uid: str) -> str:
    return encode(REACT, symbol, sender_uid)
