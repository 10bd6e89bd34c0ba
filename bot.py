import asyncio
import contextlib
import logging
import sys

import asyncpg
from aiogram import Bot, Dispatcher
from aiohttp import web

from memestreak import (
    TELEGRAM_BOT_TOKEN,
    DATABASE_URL,
    PORT,
    DB_POOL_MIN,
    DB_POOL_MAX,
    ConfigError,
    PgSessionStore,
    require_config,
    init_db,
    router,
    create_app,
    run_broadcasts,
)


# -------------------- Main runtime --------------------
async def main() -> None:
    bot = Bot(token=TELEGRAM_BOT_TOKEN)
    dp = Dispatcher()
    dp.include_router(router)

    pool = await asyncpg.create_pool(DATABASE_URL, min_size=DB_POOL_MIN, max_size=DB_POOL_MAX)
    logging.info("Database connection established")
    await init_db(pool)

    sessions = PgSessionStore(pool)
    await sessions.purge_expired()

    # injected into handlers by name
    dp["pool"] = pool
    dp["sessions"] = sessions

    runner = web.AppRunner(create_app(pool, bot, sessions))
    await runner.setup()
    await web.TCPSite(runner, port=PORT).start()
    logging.info("🌐 HTTP API is live on port %s", PORT)

    broadcasts = asyncio.create_task(run_broadcasts(bot, pool))
    logging.info("🚀 MemeStreak Bot Running...")

    try:
        await dp.start_polling(bot)
    finally:
        broadcasts.cancel()
        try:
            with contextlib.suppress(asyncio.CancelledError):
                await broadcasts
        except Exception:
            logging.exception("Broadcast task ended with an error")
        finally:
            await runner.cleanup()
            await bot.session.close()
            await pool.close()
            logging.info("DB pool closed, bot stopped")


def run() -> None:
    try:
        require_config()
    except ConfigError as e:
        logging.error("❌ %s", e.message)
        sys.exit(1)

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
