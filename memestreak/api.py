"""HTTP API used by the MemeStreak website for passwordless login."""

import logging

from aiogram import Bot, html
from aiogram.exceptions import AiogramError, TelegramForbiddenError
from aiohttp import web

from . import auth, db
from .errors import MemeStreakError, StoreError
from .sessions import SessionStore

logger = logging.getLogger(__name__)

POOL = web.AppKey("pool", object)
BOT = web.AppKey("bot", Bot)
SESSIONS = web.AppKey("sessions", SessionStore)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}

routes = web.RouteTableDef()


@web.middleware
async def cors_middleware(request: web.Request, handler):
    if request.method == "OPTIONS":
        return web.Response(status=200, text="OK", headers=CORS_HEADERS)
    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers.update(CORS_HEADERS)
        raise
    response.headers.update(CORS_HEADERS)
    return response


async def read_body(request: web.Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


@routes.get("/health")
async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


@routes.post("/verifyUID")
async def verify_uid(request: web.Request) -> web.Response:
    uid = (await read_body(request)).get("uid")
    if not uid:
        return web.json_response({"valid": False})
    try:
        user = await db.get_user_by_uid(request.app[POOL], str(uid))
    except StoreError:
        logger.exception("verifyUID lookup failed")
        return web.json_response({"valid": False}, status=500)
    return web.json_response({"valid": user is not None})


@routes.post("/sendCode")
async def send_code(request: web.Request) -> web.Response:
    body = await read_body(request)
    uid, code = body.get("uid"), body.get("code")
    if not uid or not code:
        return web.json_response({"error": "uid and code required"}, status=400)
    uid = str(uid)

    pool = request.app[POOL]
    try:
        user = await db.get_user_by_uid(pool, uid)
    except StoreError:
        logger.exception("sendCode user lookup failed")
        user = None
    if not user or not user["tg_user_id"]:
        return web.json_response({"error": "User not found"}, status=404)

    try:
        await auth.store_otp(pool, request.app[SESSIONS], uid, str(code))
    except MemeStreakError:
        logger.exception("sendCode could not keep the login code")
        return web.json_response({"error": "Internal error"}, status=500)

    try:
        await request.app[BOT].send_message(
            user["tg_user_id"],
            f"🔐 Your MemeStreak login code:\n\n⭐ <b>{html.quote(str(code))}</b>",
            parse_mode="HTML",
        )
    except TelegramForbiddenError:
        logger.info("User %s blocked bot while sending login code.", uid)
    except AiogramError:
        logger.exception("sendCode delivery failed")

    return web.json_response({"success": True})


@routes.post("/verifyOTP")
async def verify_otp(request: web.Request) -> web.Response:
    body = await read_body(request)
    uid, otp = body.get("uid"), body.get("otp")
    if not uid or not otp:
        return web.json_response({"valid": False})
    uid = str(uid)

    try:
        matched = await auth.check_otp(request.app[POOL], request.app[SESSIONS], uid, str(otp))
    except MemeStreakError:
        logger.exception("verifyOTP failed")
        return web.json_response({"valid": False}, status=500)

    if not matched:
        return web.json_response({"valid": False})
    return web.json_response({"valid": True, "token": auth.issue_token(uid)})


@routes.post("/autoLogin")
async def auto_login(request: web.Request) -> web.Response:
    token = (await read_body(request)).get("token")
    uid = auth.verify_token(token) if isinstance(token, str) and token else None
    if not uid:
        return web.json_response({"loggedIn": False})
    return web.json_response({"loggedIn": True, "uid": uid})


def create_app(pool, bot: Bot, sessions: SessionStore) -> web.Application:
    app = web.Application(middlewares=[cors_middleware])
    app[POOL] = pool
    app[BOT] = bot
    app[SESSIONS] = sessions
    app.add_routes(routes)
    return app
