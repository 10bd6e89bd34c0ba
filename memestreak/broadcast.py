import asyncio
import logging
import random

from aiogram import Bot
from aiogram.exceptions import AiogramError, TelegramForbiddenError

from . import db
from .config import BROADCAST_FIRST_DELAY, BROADCAST_INTERVAL_HOURS, BROADCAST_SEND_DELAY
from .errors import StoreError
from .ui import site_keyboard

logger = logging.getLogger(__name__)

PROMO_MESSAGES = [
    "🤣 New memes just dropped… ready to laugh again?",
    "😂 Need a quick laugh break? I’ve got fresh memes for you!",
    "🔥 Your MemeStreak is hungry… go feed it with new memes!",
    "😈 I bet today’s memes will make you snort-laugh. Prove me wrong.",
    "📲 Scroll less, laugh more. New memes waiting for you!",
    "🤯 Some memes are SO dumb they’re genius. Go see for yourself.",
    "🙃 Bored? I have memes. You know what to do.",
    "😹 Warning: today’s memes may cause uncontrollable giggles.",
]


def promo_text() -> str:
    return f"{random.choice(PROMO_MESSAGES)}\n\nTap below to open MemeStreak Hub 👇"


async def broadcast_promo(bot: Bot, pool, send_delay: float = BROADCAST_SEND_DELAY) -> int:
    """Send one promo to every account with a chat id. Returns how many were delivered."""
    logger.info("📣 Running promo broadcast job…")
    try:
        chat_ids = await db.get_chat_ids(pool)
    except StoreError:
        logger.exception("broadcast: could not load users")
        return 0

    if not chat_ids:
        logger.info("📣 No users found for promo.")
        return 0

    delivered = 0
    for chat_id in chat_ids:
        try:
            await bot.send_message(chat_id, promo_text(), reply_markup=site_keyboard())
            delivered += 1
        except TelegramForbiddenError:
            logger.info("User %s blocked the bot, skipping.", chat_id)
        except AiogramError:
            logger.exception("broadcast send to %s failed", chat_id)
        await asyncio.sleep(send_delay)

    logger.info("📣 Promo broadcast finished: %s/%s delivered.", delivered, len(chat_ids))
    return delivered


async def run_broadcasts(
    bot: Bot,
    pool,
    first_delay: float = BROADCAST_FIRST_DELAY,
    interval: float = BROADCAST_INTERVAL_HOURS * 3600,
) -> None:
    """Broadcast forever on a fixed interval, until cancelled.

    A failing cycle is logged and the next one still runs.
    """
    await asyncio.sleep(first_delay)
    while True:
        try:
            await broadcast_promo(bot, pool)
        except Exception:
            logger.exception("broadcast cycle failed")
        await asyncio.sleep(interval)
