"""memestreak package public API.

Importing this package ensures environment loading and logging via config,
exposes a stable surface for common operations, and provides the package version.
"""

__version__ = "0.1.0"

# Ensure env and logging are initialized upon package import
from . import config as config  # noqa: F401

# Re-export commonly used configuration
from .config import (
    TELEGRAM_BOT_TOKEN,
    DATABASE_URL,
    JWT_SECRET,
    SITE_URL,
    PORT,
    DB_POOL_MIN,
    DB_POOL_MAX,
    require_config,
)

# Errors
from .errors import MemeStreakError, ConfigError, StoreError

# Streak rule and ledger
from .streak import next_streak
from .ledger import PairFailure, PairResult, pair, record_activity, list_friends

# DB layer helpers
from .db import (
    init_db,
    ensure_user,
    get_user_by_uid,
    get_users_by_uids,
    save_reaction,
)

# Session state
from .sessions import SessionStore, PgSessionStore

# Bot, HTTP API and background jobs
from .handlers import router
from .api import create_app
from .broadcast import broadcast_promo, run_broadcasts

__all__ = [
    "__version__",
    # Config
    "TELEGRAM_BOT_TOKEN",
    "DATABASE_URL",
    "JWT_SECRET",
    "SITE_URL",
    "PORT",
    "DB_POOL_MIN",
    "DB_POOL_MAX",
    "require_config",
    # Errors
    "MemeStreakError",
    "ConfigError",
    "StoreError",
    # Core
    "next_streak",
    "PairFailure",
    "PairResult",
    "pair",
    "record_activity",
    "list_friends",
    # DB
    "init_db",
    "ensure_user",
    "get_user_by_uid",
    "get_users_by_uids",
    "save_reaction",
    # Sessions
    "SessionStore",
    "PgSessionStore",
    # Runtime
    "router",
    "create_app",
    "broadcast_promo",
    "run_broadcasts",
]
