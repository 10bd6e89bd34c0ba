import datetime as dt

import jwt
import pytest

from memestreak import auth
from memestreak.config import JWT_SECRET
from memestreak.sessions import otp_key


def test_token_round_trip():
    token = auth.issue_token("MS123456")
    assert auth.verify_token(token) == "MS123456"


def test_token_lifetime_is_a_year():
    now = dt.datetime(2024, 1, 1, tzinfo=dt.timezone.utc)
    token = auth.issue_token("MS123456", now=now)
    data = jwt.decode(token, JWT_SECRET, algorithms=["HS256"], options={"verify_exp": False})
    assert data["exp"] - data["iat"] == 365 * 86400


def test_expired_or_forged_tokens_are_rejected():
    old = dt.datetime.now(dt.timezone.utc) - dt.timedelta(days=400)
    assert auth.verify_token(auth.issue_token("MS123456", now=old)) is None
    assert auth.verify_token(jwt.encode({"uid": "MS123456"}, "other-secret", algorithm="HS256")) is None
    assert auth.verify_token("not-a-token") is None


@pytest.mark.asyncio
async def test_latest_code_wins(store, pool, sessions):
    await auth.store_otp(pool, sessions, "MS1", "1111")
    await auth.store_otp(pool, sessions, "MS1", "2222")

    assert not await auth.check_otp(pool, sessions, "MS1", "1111")
    assert await auth.check_otp(pool, sessions, "MS1", "2222")


@pytest.mark.asyncio
async def test_session_fallback_is_single_use(store, pool, sessions):
    store.fail.add("insert_login_otp")
    await auth.store_otp(pool, sessions, "MS1", "4321")
    assert await sessions.get(otp_key("MS1")) == {"otp": "4321"}

    store.fail.add("latest_login_otp")
    assert await auth.check_otp(pool, sessions, "MS1", 4321)
    assert not await auth.check_otp(pool, sessions, "MS1", "4321")
