from typing import Iterable

from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton

from . import callbacks
from .config import SITE_URL

REACTIONS = ("😂", "🤣", "😐", "😭", "❤️")

WELCOME_TEXT = (
    "🔥 <b>Welcome to MemeStreak!</b>\n\n"
    "Your UID: <b>{uid}</b>\n\n"
    "Share memes every day to keep your streak alive! 🔥\n\n"
    "Commands:\n"
    "• /myuid – Show your UID\n"
    "• /addfriend – Add a friend using their UID\n"
    "• /friends – See your friend list & streaks\n"
    "• /sendmeme – Send a meme to a friend\n"
    "• /opensite – Open MemeStreak Hub"
)


def site_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[[InlineKeyboardButton(text="Open MemeStreak Hub 🌐", url=SITE_URL)]]
    )


def friend_label(name: str, streak) -> str:
    return f"{name} (🔥 {streak if isinstance(streak, int) else 0})"


def friends_keyboard(friends: Iterable[tuple]) -> InlineKeyboardMarkup:
    """One button per (friend_uid, name, streak)."""
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [InlineKeyboardButton(text=friend_label(name, streak), callback_data=callbacks.pick_friend(uid))]
            for uid, name, streak in friends
        ]
    )


def reaction_keyboard(sender_uid: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        inline_keyboard=[
            [
                InlineKeyboardButton(text=symbol, callback_data=callbacks.react(symbol, sender_uid))
                for symbol in REACTIONS
            ]
        ]
    )
