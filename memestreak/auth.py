import datetime as dt
import logging
from typing import Optional

import jwt

from . import db
from .config import JWT_SECRET, OTP_TTL_SECONDS, TOKEN_TTL_DAYS
from .errors import StoreError
from .sessions import SessionStore, otp_key

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


def issue_token(uid: str, now: Optional[dt.datetime] = None) -> str:
    now = now or dt.datetime.now(dt.timezone.utc)
    payload = {"uid": uid, "iat": now, "exp": now + dt.timedelta(days=TOKEN_TTL_DAYS)}
    return jwt.encode(payload, JWT_SECRET, algorithm=ALGORITHM)


def verify_token(token: str) -> Optional[str]:
    """Return the uid a token was issued for, or None if it is not valid."""
    try:
        data = jwt.decode(token, JWT_SECRET, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.info("Expired login token")
        return None
    except jwt.InvalidTokenError:
        return None
    uid = data.get("uid")
    return uid if isinstance(uid, str) and uid else None


async def store_otp(pool, sessions: SessionStore, uid: str, code: str) -> None:
    """Keep a login code; login_otps first, the session store if that fails."""
    try:
        await db.insert_login_otp(pool, uid, code)
    except StoreError:
        logger.exception("Could not insert login code for %s, keeping it in the session store", uid)
        await sessions.set(otp_key(uid), {"otp": str(code)}, ttl=OTP_TTL_SECONDS)


async def check_otp(pool, sessions: SessionStore, uid: str, otp: str) -> bool:
    try:
        latest = await db.latest_login_otp(pool, uid)
    except StoreError:
        logger.exception("login_otps lookup failed for %s", uid)
        latest = None

    if latest is not None and str(latest) == str(otp):
        return True

    kept = await sessions.get(otp_key(uid))
    if kept and str(kept.get("otp")) == str(otp):
        await sessions.delete(otp_key(uid))
        return True
    return False
