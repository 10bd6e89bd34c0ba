import datetime as dt
import functools
import logging
import random
from typing import Optional, List, Iterable

import asyncpg

from .errors import StoreError

logger = logging.getLogger(__name__)

# Errors that mean "the store call failed" rather than a bug in our code
STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)

UID_PREFIX = "MS"
UID_ATTEMPTS = 5

USERS_SQL = """
CREATE TABLE IF NOT EXISTS users (
    uid         TEXT PRIMARY KEY,
    tg_user_id  BIGINT UNIQUE NULL,
    username    TEXT NULL,
    first_name  TEXT NULL,
    last_name   TEXT NULL,
    created_at  TIMESTAMPTZ DEFAULT NOW()
);
"""

FRIENDS_SQL = """
CREATE TABLE IF NOT EXISTS friends (
    user_uid      TEXT NOT NULL REFERENCES users(uid),
    friend_uid    TEXT NOT NULL REFERENCES users(uid),
    streak        INT NOT NULL DEFAULT 0,
    last_meme_at  TIMESTAMPTZ NULL,
    PRIMARY KEY (user_uid, friend_uid)
);
"""

REACTIONS_SQL = """
CREATE TABLE IF NOT EXISTS reactions (
    id            SERIAL PRIMARY KEY,
    sender_uid    TEXT NOT NULL,
    receiver_uid  TEXT NOT NULL,
    meme_message  TEXT NOT NULL,
    reaction      TEXT NOT NULL,
    created_at    TIMESTAMPTZ DEFAULT NOW()
);
"""

LOGIN_OTPS_SQL = """
CREATE TABLE IF NOT EXISTS login_otps (
    id          SERIAL PRIMARY KEY,
    uid         TEXT NOT NULL,
    otp         TEXT NOT NULL,
    created_at  TIMESTAMPTZ DEFAULT NOW()
);
"""

SESSIONS_SQL = """
CREATE TABLE IF NOT EXISTS bot_sessions (
    key         TEXT PRIMARY KEY,
    value       JSONB NOT NULL,
    expires_at  TIMESTAMPTZ NOT NULL
);
"""


def store_call(func):
    """Turn driver/network failures of a pool helper into StoreError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except STORE_ERRORS as e:
            raise StoreError(f"{func.__name__} failed: {e}") from e

    return wrapper


async def init_db(pool: asyncpg.pool.Pool) -> None:
    async with pool.acquire() as conn:
        for sql in (USERS_SQL, FRIENDS_SQL, REACTIONS_SQL, LOGIN_OTPS_SQL, SESSIONS_SQL):
            await conn.execute(sql)
        await conn.execute("CREATE INDEX IF NOT EXISTS login_otps_uid_idx ON login_otps (uid, created_at DESC)")


def new_uid() -> str:
    return f"{UID_PREFIX}{random.randint(100000, 999999)}"


# -------------------- Accounts --------------------
@store_call
async def ensure_user(pool: asyncpg.pool.Pool, tg_user) -> asyncpg.Record:
    """Return the account bound to a Telegram user, creating it on first contact."""
    async with pool.acquire() as conn:
        rec = await conn.fetchrow("SELECT * FROM users WHERE tg_user_id=$1", tg_user.id)
        if rec:
            return rec

        for _ in range(UID_ATTEMPTS):
            try:
                rec = await conn.fetchrow(
                    """
                    INSERT INTO users (uid, tg_user_id, username, first_name, last_name)
                    VALUES ($1, $2, $3, $4, $5)
                    ON CONFLICT (tg_user_id) DO UPDATE SET tg_user_id = EXCLUDED.tg_user_id
                    RETURNING *
                    """,
                    new_uid(),
                    tg_user.id,
                    getattr(tg_user, "username", None),
                    getattr(tg_user, "first_name", None),
                    getattr(tg_user, "last_name", None),
                )
                return rec
            except asyncpg.UniqueViolationError:
                # uid collision, roll again
                logger.warning("UID collision while creating account for %s", tg_user.id)
        raise StoreError(f"Could not allocate a UID for {tg_user.id}")


@store_call
async def get_user_by_uid(pool: asyncpg.pool.Pool, uid: str) -> Optional[asyncpg.Record]:
    async with pool.acquire() as conn:
        return await conn.fetchrow("SELECT * FROM users WHERE uid=$1", uid)


@store_call
async def get_users_by_uids(pool: asyncpg.pool.Pool, uids: Iterable[str]) -> List[asyncpg.Record]:
    uids = list(uids)
    if not uids:
        return []
    async with pool.acquire() as conn:
        return await conn.fetch(
            "SELECT uid, first_name, username FROM users WHERE uid = ANY($1::text[])", uids
        )


@store_call
async def get_chat_ids(pool: asyncpg.pool.Pool) -> List[int]:
    async with pool.acquire() as conn:
        rows = await conn.fetch("SELECT tg_user_id FROM users WHERE tg_user_id IS NOT NULL")
        return [r["tg_user_id"] for r in rows]


def display_name(rec, fallback: str = "Someone") -> str:
    if not rec:
        return fallback
    return rec["first_name"] or rec["username"] or fallback


# -------------------- Pairings (connection level, used by the ledger) --------------------
async def user_exists(conn: asyncpg.Connection, uid: str) -> bool:
    return bool(await conn.fetchval("SELECT 1 FROM users WHERE uid=$1", uid))


async def insert_pair(conn: asyncpg.Connection, a: str, b: str) -> None:
    await conn.execute(
        """
        INSERT INTO friends (user_uid, friend_uid) VALUES ($1, $2), ($2, $1)
        ON CONFLICT (user_uid, friend_uid) DO NOTHING
        """,
        a,
        b,
    )


async def get_pairing(conn: asyncpg.Connection, owner: str, friend: str, lock: bool = False) -> Optional[asyncpg.Record]:
    sql = "SELECT streak, last_meme_at FROM friends WHERE user_uid=$1 AND friend_uid=$2"
    if lock:
        sql += " FOR UPDATE"
    return await conn.fetchrow(sql, owner, friend)


async def upsert_streak(conn: asyncpg.Connection, owner: str, friend: str, streak: int, at: dt.datetime) -> None:
    await conn.execute(
        """
        INSERT INTO friends (user_uid, friend_uid, streak, last_meme_at) VALUES ($1, $2, $3, $4)
        ON CONFLICT (user_uid, friend_uid)
        DO UPDATE SET streak = EXCLUDED.streak, last_meme_at = EXCLUDED.last_meme_at
        """,
        owner,
        friend,
        streak,
        at,
    )


async def fetch_friends(conn: asyncpg.Connection, uid: str) -> List[asyncpg.Record]:
    return await conn.fetch(
        """
        SELECT friend_uid, streak, last_meme_at FROM friends
        WHERE user_uid=$1
        ORDER BY streak DESC, friend_uid
        """,
        uid,
    )


# -------------------- Reactions --------------------
@store_call
async def save_reaction(pool: asyncpg.pool.Pool, reactor_uid: str, sender_uid: str, message_ref, symbol: str) -> None:
    async with pool.acquire() as conn:
        await conn.execute(
            "INSERT INTO reactions (sender_uid, receiver_uid, meme_message, reaction) VALUES ($1, $2, $3, $4)",
            reactor_uid,
            sender_uid,
            str(message_ref),
            symbol,
        )


# -------------------- Login codes --------------------
@store_call
async def insert_login_otp(pool: asyncpg.pool.Pool, uid: str, otp: str) -> None:
    async with pool.acquire() as conn:
        await conn.execute("INSERT INTO login_otps (uid, otp) VALUES ($1, $2)", uid, str(otp))


@store_call
async def latest_login_otp(pool: asyncpg.pool.Pool, uid: str) -> Optional[str]:
    async with pool.acquire() as conn:
        return await conn.fetchval(
            "SELECT otp FROM login_otps WHERE uid=$1 ORDER BY created_at DESC, id DESC LIMIT 1",
            uid,
        )
