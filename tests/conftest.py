import contextlib
import copy
import time
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from memestreak import db
from memestreak.errors import StoreError
from memestreak.sessions import SessionStore


class FakeConn:
    def __init__(self, store):
        self.store = store

    @contextlib.asynccontextmanager
    async def transaction(self):
        snapshot = copy.deepcopy(self.store.friends)
        try:
            yield self
        except BaseException:
            self.store.friends = snapshot
            raise


class FakePool:
    """Stands in for an asyncpg pool; the SQL lives in FakeStore."""

    def __init__(self, store):
        self.conn = FakeConn(store)

    @contextlib.asynccontextmanager
    async def acquire(self):
        yield self.conn


class FakeStore:
    """In-memory version of the memestreak.db helpers."""

    def __init__(self):
        self.users = {}
        self.friends = {}
        self.reactions = []
        self.login_otps = []
        self.locked = []  # (owner, friend) rows read with FOR UPDATE
        self.fail = set()  # names of helpers that should raise
        self._next_uid = 100001

    def _check(self, name):
        if name in self.fail:
            raise OSError(f"{name} unavailable")

    def add_user(self, uid, tg_user_id=None, first_name=None, username=None):
        self.users[uid] = {
            "uid": uid,
            "tg_user_id": tg_user_id,
            "username": username,
            "first_name": first_name,
            "last_name": None,
        }
        return self.users[uid]

    # pool level helpers raise StoreError like the real ones
    async def ensure_user(self, pool, tg_user):
        if "ensure_user" in self.fail:
            raise StoreError("ensure_user failed")
        for rec in self.users.values():
            if rec["tg_user_id"] == tg_user.id:
                return rec
        uid = f"MS{self._next_uid}"
        self._next_uid += 1
        return self.add_user(uid, tg_user.id, tg_user.first_name, tg_user.username)

    async def get_user_by_uid(self, pool, uid):
        if "get_user_by_uid" in self.fail:
            raise StoreError("get_user_by_uid failed")
        return self.users.get(uid)

    async def get_users_by_uids(self, pool, uids):
        return [self.users[u] for u in uids if u in self.users]

    async def get_chat_ids(self, pool):
        if "get_chat_ids" in self.fail:
            raise StoreError("get_chat_ids failed")
        return [r["tg_user_id"] for r in self.users.values() if r["tg_user_id"] is not None]

    async def save_reaction(self, pool, reactor_uid, sender_uid, message_ref, symbol):
        if "save_reaction" in self.fail:
            raise StoreError("save_reaction failed")
        self.reactions.append((reactor_uid, sender_uid, str(message_ref), symbol))

    async def insert_login_otp(self, pool, uid, otp):
        if "insert_login_otp" in self.fail:
            raise StoreError("insert_login_otp failed")
        self.login_otps.append((uid, str(otp)))

    async def latest_login_otp(self, pool, uid):
        if "latest_login_otp" in self.fail:
            raise StoreError("latest_login_otp failed")
        rows = [otp for u, otp in self.login_otps if u == uid]
        return rows[-1] if rows else None

    # connection level helpers raise driver errors
    async def user_exists(self, conn, uid):
        self._check("user_exists")
        return uid in self.users

    async def insert_pair(self, conn, a, b):
        self._check("insert_pair")
        for key in ((a, b), (b, a)):
            self.friends.setdefault(key, {"streak": 0, "last_meme_at": None})

    async def get_pairing(self, conn, owner, friend, lock=False):
        self._check("get_pairing")
        if lock:
            self.locked.append((owner, friend))
        row = self.friends.get((owner, friend))
        return dict(row) if row else None

    async def upsert_streak(self, conn, owner, friend, streak, at):
        self._check("upsert_streak")
        self.friends[(owner, friend)] = {"streak": streak, "last_meme_at": at}

    async def fetch_friends(self, conn, uid):
        self._check("fetch_friends")
        rows = [
            {"friend_uid": f, "streak": row["streak"], "last_meme_at": row["last_meme_at"]}
            for (o, f), row in self.friends.items()
            if o == uid
        ]
        return sorted(rows, key=lambda r: (-r["streak"], r["friend_uid"]))


PATCHED = (
    "ensure_user",
    "get_user_by_uid",
    "get_users_by_uids",
    "get_chat_ids",
    "save_reaction",
    "insert_login_otp",
    "latest_login_otp",
    "user_exists",
    "insert_pair",
    "get_pairing",
    "upsert_streak",
    "fetch_friends",
)


class MemorySessionStore(SessionStore):
    def __init__(self):
        self.data = {}
        self.now = time.monotonic

    async def get(self, key):
        item = self.data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at <= self.now():
            del self.data[key]
            return None
        return copy.deepcopy(value)

    async def set(self, key, value, ttl=1800):
        self.data[key] = (copy.deepcopy(value), self.now() + ttl)

    async def delete(self, *keys):
        for key in keys:
            self.data.pop(key, None)


@pytest.fixture
def store(monkeypatch):
    fake = FakeStore()
    for name in PATCHED:
        monkeypatch.setattr(db, name, getattr(fake, name))
    return fake


@pytest.fixture
def pool(store):
    return FakePool(store)


@pytest.fixture
def sessions():
    return MemorySessionStore()


@pytest.fixture
def bot():
    return AsyncMock()


def tg_user(user_id, first_name="Alice", username="alice"):
    return SimpleNamespace(id=user_id, first_name=first_name, username=username, last_name=None)


def make_message(user, text=None, photo=None, video=None, document=None):
    message = MagicMock()
    message.from_user = user
    message.chat.id = user.id
    message.text = text
    message.photo = photo
    message.video = video
    message.document = document
    message.answer = AsyncMock()
    return message


def make_callback(user, data, message_id=42):
    callback = MagicMock()
    callback.from_user = user
    callback.data = data
    callback.message.message_id = message_id
    callback.message.answer = AsyncMock()
    callback.answer = AsyncMock()
    return callback


def last_answer(mock):
    args, kwargs = mock.answer.await_args
    return args[0] if args else kwargs.get("text")
