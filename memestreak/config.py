import os
import logging
from dotenv import load_dotenv

from .errors import ConfigError

# Load environment and configure logging early
load_dotenv()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=LOG_LEVEL, format="[%(asctime)s] %(levelname)s: %(message)s")

# Tokens and connection strings
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")
DATABASE_URL = os.getenv("DATABASE_URL")  # Supabase Postgres connection string
JWT_SECRET = os.getenv("JWT_SECRET", "MEMESTREAK_SUPER_SECRET")

# Website and HTTP API
SITE_URL = os.getenv("SITE_URL", "https://meme-streak-hub.lovable.app")
PORT = int(os.getenv("PORT", "3000"))

# Promo broadcast
BROADCAST_INTERVAL_HOURS = float(os.getenv("BROADCAST_INTERVAL_HOURS", "48"))
BROADCAST_FIRST_DELAY = float(os.getenv("BROADCAST_FIRST_DELAY", "15"))  # seconds after boot
BROADCAST_SEND_DELAY = float(os.getenv("BROADCAST_SEND_DELAY", "0.15"))  # pause between sends

# Session state and login
SESSION_TTL_SECONDS = int(os.getenv("SESSION_TTL_SECONDS", "1800"))
OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", "600"))
TOKEN_TTL_DAYS = int(os.getenv("TOKEN_TTL_DAYS", "365"))

# DB pool
DB_POOL_MIN = int(os.getenv("DB_POOL_MIN", "1"))
DB_POOL_MAX = int(os.getenv("DB_POOL_MAX", "5"))

REQUIRED = ("TELEGRAM_BOT_TOKEN", "DATABASE_URL")


def require_config() -> None:
    """Fail fast when the bot cannot possibly start."""
    missing = [name for name in REQUIRED if not globals().get(name)]
    if missing:
        raise ConfigError(f"Missing {' / '.join(missing)}")
