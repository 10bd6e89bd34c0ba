import logging

from aiogram import Bot, F, Router, html
from aiogram.exceptions import AiogramError, TelegramForbiddenError
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message

from . import callbacks, db, ledger
from .errors import MemeStreakError, StoreError
from .ledger import PairFailure
from .sessions import SessionStore, mode_key, target_key
from .ui import WELCOME_TEXT, friends_keyboard, reaction_keyboard, site_keyboard

logger = logging.getLogger(__name__)

router = Router(name="memestreak")

MODE_ADD_FRIEND = "add_friend"
MODE_PICK_FRIEND = "send_meme_select"
MODE_WAIT_MEDIA = "send_meme_wait_media"

MIN_UID_LENGTH = 4

PAIR_FAILURE_TEXT = {
    PairFailure.SELF_PAIRING: "🙃 You cannot add yourself.",
    PairFailure.FRIEND_NOT_FOUND: "❌ No user found with that UID.",
    PairFailure.STORE_ERROR: "❌ Could not add friend. Please try again.",
}


async def friends_with_names(pool, uid: str) -> list:
    """(friend_uid, display name, streak) for every friend of ``uid``."""
    friends = await ledger.list_friends(pool, uid)
    if not friends:
        return []
    infos = {r["uid"]: r for r in await db.get_users_by_uids(pool, [f["friend_uid"] for f in friends])}
    return [
        (f["friend_uid"], db.display_name(infos.get(f["friend_uid"]), f["friend_uid"]), f["streak"] or 0)
        for f in friends
    ]


# -------------------- Commands --------------------
@router.message(Command("start"))
async def cmd_start(message: Message, pool, sessions: SessionStore):
    try:
        user = await db.ensure_user(pool, message.from_user)
        await sessions.delete(mode_key(message.from_user.id), target_key(message.from_user.id))
        await message.answer(WELCOME_TEXT.format(uid=html.quote(user["uid"])), parse_mode="HTML")
    except MemeStreakError:
        logger.exception("/start failed")
        await message.answer("❌ Something went wrong.")


@router.message(Command("myuid"))
async def cmd_myuid(message: Message, pool):
    try:
        user = await db.ensure_user(pool, message.from_user)
    except MemeStreakError:
        logger.exception("/myuid failed")
        await message.answer("❌ Could not get your UID.")
        return
    await message.answer(f"🔑 Your UID: {html.bold(html.quote(user['uid']))}", parse_mode="HTML")


@router.message(Command("opensite", "site"))
async def cmd_opensite(message: Message):
    await message.answer(
        "🌐 Tap below to open <b>MemeStreak Hub</b> and explore fresh memes:",
        parse_mode="HTML",
        reply_markup=site_keyboard(),
    )


@router.message(Command("addfriend"))
async def cmd_addfriend(message: Message, pool, sessions: SessionStore):
    try:
        user = await db.ensure_user(pool, message.from_user)
        await sessions.set(mode_key(message.from_user.id), {"mode": MODE_ADD_FRIEND, "data": {"my_uid": user["uid"]}})
    except MemeStreakError:
        logger.exception("/addfriend failed")
        await message.answer("❌ Could not start add-friend flow.")
        return
    await message.answer(
        "👥 Send me your friend's UID (like <code>MS123456</code>) to add them.",
        parse_mode="HTML",
    )


@router.message(Command("friends"))
async def cmd_friends(message: Message, pool):
    try:
        user = await db.ensure_user(pool, message.from_user)
        friends = await friends_with_names(pool, user["uid"])
    except MemeStreakError:
        logger.exception("/friends failed")
        await message.answer("❌ Could not load your friends.")
        return

    if not friends:
        await message.answer("👀 You have no friends yet.\nUse /addfriend and share your UID with them.")
        return

    lines = [f"• {html.quote(name)} – 🔥 {streak}" for _, name, streak in friends]
    await message.answer("👥 <b>Your friends & streaks:</b>\n\n" + "\n".join(lines), parse_mode="HTML")


@router.message(Command("sendmeme"))
async def cmd_sendmeme(message: Message, pool, sessions: SessionStore):
    try:
        user = await db.ensure_user(pool, message.from_user)
        friends = await friends_with_names(pool, user["uid"])
        if friends:
            await sessions.set(mode_key(message.from_user.id), {"mode": MODE_PICK_FRIEND, "data": {"my_uid": user["uid"]}})
    except MemeStreakError:
        logger.exception("/sendmeme failed")
        await message.answer("❌ Could not start meme sending flow.")
        return

    if not friends:
        await message.answer("👀 You have no friends to send memes to.\nUse /addfriend first.")
        return

    await message.answer(
        "📤 Who do you want to send a meme to?\nTap a friend:",
        reply_markup=friends_keyboard(friends),
    )


# -------------------- Callbacks --------------------
@router.callback_query(F.data.startswith(callbacks.PICK_FRIEND + callbacks.SEPARATOR))
async def cb_pick_friend(callback: CallbackQuery, sessions: SessionStore):
    parsed = callbacks.decode(callback.data)
    if parsed is None:
        await callback.answer()
        return

    friend_uid = parsed.fields[0]
    user_id = callback.from_user.id
    try:
        await sessions.set(target_key(user_id), {"friend_uid": friend_uid})
        await sessions.set(mode_key(user_id), {"mode": MODE_WAIT_MEDIA, "data": {"friend_uid": friend_uid}})
    except MemeStreakError:
        logger.exception("pickfriend failed")
        await callback.answer("❌ Something went wrong.")
        return

    await callback.answer()
    await callback.message.answer(
        "✅ Friend selected!\nNow send a <b>photo/video/document</b> – that meme will be forwarded.",
        parse_mode="HTML",
    )


@router.callback_query(F.data.startswith(callbacks.REACT + callbacks.SEPARATOR))
async def cb_react(callback: CallbackQuery, bot: Bot, pool):
    parsed = callbacks.decode(callback.data)
    if parsed is None:
        await callback.answer()
        return

    symbol, sender_uid = parsed.fields
    try:
        reactor = await db.ensure_user(pool, callback.from_user)
    except MemeStreakError:
        logger.exception("react: could not resolve reactor")
        await callback.answer("❌ Something went wrong.")
        return

    try:
        await db.save_reaction(pool, reactor["uid"], sender_uid, callback.message.message_id, symbol)
    except StoreError:
        logger.exception("save_reaction failed")

    try:
        original_sender = await db.get_user_by_uid(pool, sender_uid)
    except StoreError:
        logger.exception("react: original sender lookup failed")
        original_sender = None

    if original_sender and original_sender["tg_user_id"]:
        reactor_name = db.display_name(reactor)
        try:
            await bot.send_message(original_sender["tg_user_id"], f"{reactor_name} reacted {symbol} to your meme 😄")
        except TelegramForbiddenError:
            logger.info("Original sender %s blocked bot, skip notify.", sender_uid)
        except AiogramError:
            logger.exception("reaction notify failed")

    await callback.answer(f"You reacted {symbol}", show_alert=False)


@router.callback_query()
async def cb_unknown(callback: CallbackQuery):
    logger.info("Ignoring callback payload %r", callback.data)
    await callback.answer()


# -------------------- Plain text --------------------
@router.message(F.text & ~F.text.startswith("/"))
async def on_text(message: Message, pool, sessions: SessionStore):
    try:
        state = await sessions.get(mode_key(message.from_user.id))
        if not state or state.get("mode") != MODE_ADD_FRIEND:
            return
        await sessions.delete(mode_key(message.from_user.id))
    except StoreError:
        logger.exception("session lookup failed")
        return

    friend_uid = message.text.strip()
    if len(friend_uid) < MIN_UID_LENGTH:
        await message.answer("❌ That UID looks invalid. Use /addfriend again.")
        return

    result = await ledger.pair(pool, state["data"]["my_uid"], friend_uid)
    if not result.ok:
        await message.answer(PAIR_FAILURE_TEXT[result.reason])
        return

    await message.answer("✅ Friend added!\nNow you both can use /sendmeme to keep your MemeStreak alive 🔥")


# -------------------- Media --------------------
def media_file(message: Message):
    """(kind, file_id) of the meme in a message, None when there is nothing to forward."""
    if message.photo:
        return "photo", message.photo[-1].file_id
    if message.video:
        return "video", message.video.file_id
    if message.document:
        return "document", message.document.file_id
    return None


async def forward_meme(bot: Bot, chat_id: int, kind: str, file_id: str, caption: str, sender_uid: str) -> None:
    send = {"photo": bot.send_photo, "video": bot.send_video, "document": bot.send_document}[kind]
    await send(chat_id, file_id, caption=caption, reply_markup=reaction_keyboard(sender_uid))


@router.message(F.photo | F.video | F.document)
async def on_media(message: Message, bot: Bot, pool, sessions: SessionStore):
    sender_tg_id = message.from_user.id
    try:
        target = await sessions.get(target_key(sender_tg_id))
        if not target:
            return

        media = media_file(message)
        if media is None:
            return

        sender = await db.ensure_user(pool, message.from_user)
        friend_uid = target["friend_uid"]
        friend = await db.get_user_by_uid(pool, friend_uid)
        if not friend or not friend["tg_user_id"]:
            await sessions.delete(target_key(sender_tg_id), mode_key(sender_tg_id))
            await message.answer("❌ Could not find your friend. Try /sendmeme again.")
            return

        sender_name = sender["first_name"] or message.from_user.first_name or message.from_user.username or "Someone"
        kind, file_id = media
        try:
            await forward_meme(bot, friend["tg_user_id"], kind, file_id, f"📨 Meme from {sender_name}", sender["uid"])
        except TelegramForbiddenError:
            logger.info("Friend %s blocked the bot, meme not delivered.", friend_uid)
            await sessions.delete(target_key(sender_tg_id), mode_key(sender_tg_id))
            await message.answer("❌ Your friend has blocked the bot, the meme could not be delivered.")
            return

        streaks = await ledger.record_activity(pool, sender["uid"], friend_uid)
        await sessions.delete(target_key(sender_tg_id), mode_key(sender_tg_id))
        if streaks is None:
            await message.answer("✅ Meme sent! Your streak could not be updated right now.")
            return
        await message.answer("✅ Meme sent! Streak updated (max +1 per day if both keep sending). 🔥")
    except (MemeStreakError, AiogramError):
        logger.exception("meme relay failed")
        await message.answer("❌ Something went wrong while sending your meme.")
