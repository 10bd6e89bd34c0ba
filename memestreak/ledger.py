"""Friend pairings and per-direction streak bookkeeping.

Every pairing is stored as two directed rows (A→B and B→A). They are created
together and updated together, but each row keeps its own streak counter.
"""

import datetime as dt
import enum
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import asyncpg

from . import db
from .errors import StoreError
from .streak import next_streak

logger = logging.getLogger(__name__)


class PairFailure(enum.Enum):
    SELF_PAIRING = "self"
    FRIEND_NOT_FOUND = "not_found"
    STORE_ERROR = "error"


@dataclass(frozen=True)
class PairResult:
    ok: bool
    reason: Optional[PairFailure] = None


PAIRED = PairResult(ok=True)


async def pair(pool: asyncpg.pool.Pool, owner_uid: str, friend_uid: str) -> PairResult:
    """Create the mirrored pairing between two accounts.

    Re-pairing accounts that are already paired succeeds and leaves the
    stored streaks untouched.
    """
    if owner_uid == friend_uid:
        return PairResult(ok=False, reason=PairFailure.SELF_PAIRING)

    try:
        async with pool.acquire() as conn:
            if not await db.user_exists(conn, friend_uid):
                return PairResult(ok=False, reason=PairFailure.FRIEND_NOT_FOUND)
            await db.insert_pair(conn, owner_uid, friend_uid)
    except db.STORE_ERRORS:
        logger.exception("pair %s -> %s failed", owner_uid, friend_uid)
        return PairResult(ok=False, reason=PairFailure.STORE_ERROR)

    logger.info("Paired %s <-> %s", owner_uid, friend_uid)
    return PAIRED


async def record_activity(
    pool: asyncpg.pool.Pool,
    sender_uid: str,
    receiver_uid: str,
    now: Optional[dt.datetime] = None,
) -> Optional[Dict[Tuple[str, str], int]]:
    """Bump both directed streaks after one completed media transfer.

    Both rows are locked and rewritten inside a single transaction, so two
    transfers racing on the same pair are applied one after the other. Rows
    are locked in sorted order to keep concurrent bumps from deadlocking.
    On a store failure nothing is written and ``None`` is returned.
    """
    now = now or dt.datetime.now(dt.timezone.utc)
    directions = sorted({(sender_uid, receiver_uid), (receiver_uid, sender_uid)})
    result: Dict[Tuple[str, str], int] = {}

    try:
        async with pool.acquire() as conn:
            async with conn.transaction():
                for owner, friend in directions:
                    row = await db.get_pairing(conn, owner, friend, lock=True)
                    streak = next_streak(
                        row["streak"] if row else None,
                        row["last_meme_at"] if row else None,
                        now,
                    )
                    await db.upsert_streak(conn, owner, friend, streak, now)
                    result[(owner, friend)] = streak
    except db.STORE_ERRORS:
        logger.exception("record_activity %s -> %s failed", sender_uid, receiver_uid)
        return None

    logger.info(
        "Streak %s -> %s: %s, %s -> %s: %s",
        sender_uid,
        receiver_uid,
        result.get((sender_uid, receiver_uid)),
        receiver_uid,
        sender_uid,
        result.get((receiver_uid, sender_uid)),
    )
    return result


async def list_friends(pool: asyncpg.pool.Pool, uid: str) -> List[asyncpg.Record]:
    try:
        async with pool.acquire() as conn:
            return await db.fetch_friends(conn, uid)
    except db.STORE_ERRORS as e:
        raise StoreError(f"list_friends failed: {e}") from e
