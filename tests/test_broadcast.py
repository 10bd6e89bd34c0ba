import asyncio
from unittest.mock import MagicMock

import pytest
from aiogram.exceptions import ClientDecodeError, TelegramBadRequest, TelegramForbiddenError

from memestreak import broadcast


@pytest.mark.asyncio
async def test_broadcast_reaches_every_chat(store, pool, bot):
    store.add_user("MS1", tg_user_id=10)
    store.add_user("MS2", tg_user_id=20)
    store.add_user("MS3")  # never talked to the bot

    delivered = await broadcast.broadcast_promo(bot, pool, send_delay=0)

    assert delivered == 2
    assert [c.args[0] for c in bot.send_message.await_args_list] == [10, 20]
    text = bot.send_message.await_args.args[1]
    assert text.split("\n\n")[0] in broadcast.PROMO_MESSAGES
    assert bot.send_message.await_args.kwargs["reply_markup"].inline_keyboard[0][0].url


@pytest.mark.asyncio
async def test_broadcast_skips_failed_deliveries(store, pool, bot):
    for i in range(3):
        store.add_user(f"MS{i}", tg_user_id=i + 1)
    bot.send_message.side_effect = [
        TelegramForbiddenError(method=MagicMock(), message="blocked"),
        TelegramBadRequest(method=MagicMock(), message="chat not found"),
        None,
    ]

    assert await broadcast.broadcast_promo(bot, pool, send_delay=0) == 1
    assert bot.send_message.await_count == 3


@pytest.mark.asyncio
async def test_broadcast_survives_store_error(store, pool, bot):
    store.fail.add("get_chat_ids")
    assert await broadcast.broadcast_promo(bot, pool, send_delay=0) == 0
    bot.send_message.assert_not_awaited()


@pytest.mark.asyncio
async def test_run_broadcasts_repeats_until_cancelled(store, pool, bot, monkeypatch):
    runs = []

    async def fake_broadcast(bot, pool):
        runs.append(1)

    monkeypatch.setattr(broadcast, "broadcast_promo", fake_broadcast)
    task = asyncio.create_task(broadcast.run_broadcasts(bot, pool, first_delay=0, interval=0))
    while len(runs) < 3:
        await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_broadcast_skips_undecodable_responses(store, pool, bot):
    store.add_user("MS1", tg_user_id=10)
    store.add_user("MS2", tg_user_id=20)
    bot.send_message.side_effect = [
        ClientDecodeError("bad gateway html", ValueError("not json"), "<html>502</html>"),
        None,
    ]

    assert await broadcast.broadcast_promo(bot, pool, send_delay=0) == 1
    assert bot.send_message.await_count == 2


@pytest.mark.asyncio
async def test_run_broadcasts_keeps_going_after_a_failed_cycle(store, pool, bot, monkeypatch):
    runs = []

    async def flaky_broadcast(bot, pool):
        runs.append(1)
        if len(runs) == 1:
            raise ClientDecodeError("bad gateway html", ValueError("not json"), "<html>502</html>")

    monkeypatch.setattr(broadcast, "broadcast_promo", flaky_broadcast)
    task = asyncio.create_task(broadcast.run_broadcasts(bot, pool, first_delay=0, interval=0))
    for _ in range(50):
        if len(runs) >= 3:
            break
        await asyncio.sleep(0)

    assert len(runs) >= 3
    assert not task.done()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
