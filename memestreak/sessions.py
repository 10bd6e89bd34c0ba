"""Short-lived interactive state, kept outside the process.

Keys used by the bot:
    mode:<telegram id>    what the next plain message means (add friend, ...)
    target:<telegram id>  friend uid picked for the next meme
    otp:<uid>             login code kept when it could not be written to login_otps
"""

import abc
import datetime as dt
import json
import logging
from typing import Any, Optional

import asyncpg

from .config import SESSION_TTL_SECONDS
from .db import store_call

logger = logging.getLogger(__name__)


def mode_key(tg_user_id: int) -> str:
    return f"mode:{tg_user_id}"


def target_key(tg_user_id: int) -> str:
    return f"target:{tg_user_id}"


def otp_key(uid: str) -> str:
    return f"otp:{uid}"


class SessionStore(abc.ABC):
    """Keyed JSON values with an explicit expiry."""

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        ...

    @abc.abstractmethod
    async def set(self, key: str, value: Any, ttl: int = SESSION_TTL_SECONDS) -> None:
        ...

    @abc.abstractmethod
    async def delete(self, *keys: str) -> None:
        ...


class PgSessionStore(SessionStore):
    def __init__(self, pool: asyncpg.pool.Pool):
        self.pool = pool

    @store_call
    async def get(self, key: str) -> Optional[Any]:
        async with self.pool.acquire() as conn:
            raw = await conn.fetchval(
                "SELECT value FROM bot_sessions WHERE key=$1 AND expires_at > NOW()", key
            )
        return json.loads(raw) if raw is not None else None

    @store_call
    async def set(self, key: str, value: Any, ttl: int = SESSION_TTL_SECONDS) -> None:
        expires_at = dt.datetime.now(dt.timezone.utc) + dt.timedelta(seconds=ttl)
        async with self.pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO bot_sessions (key, value, expires_at) VALUES ($1, $2::jsonb, $3)
                ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, expires_at = EXCLUDED.expires_at
                """,
                key,
                json.dumps(value),
                expires_at,
            )

    @store_call
    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        async with self.pool.acquire() as conn:
            await conn.execute("DELETE FROM bot_sessions WHERE key = ANY($1::text[])", list(keys))

    @store_call
    async def purge_expired(self) -> None:
        async with self.pool.acquire() as conn:
            status = await conn.execute("DELETE FROM bot_sessions WHERE expires_at <= NOW()")
        logger.info("Expired sessions purged: %s", status)
