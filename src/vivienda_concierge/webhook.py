"""HTTP surface: the Telegram webhook and the Google OAuth routes."""

import asyncio
import html
import logging
from typing import Optional

from aiohttp import web
from telegram import Update
from telegram.error import TelegramError

from .constants import (
    HTTPStatus,
    OAUTH_CALLBACK_PATH,
    OAUTH_START_PATH,
    WEBHOOK_PATH,
    WEBHOOK_SECRET_HEADER,
)
from .exceptions import OAuthError
from .messaging import send_text
from .reauth import GoogleReauthService, decode_state_chat_id

logger = logging.getLogger(__name__)

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{title}</title>
  <style>
    body {{ font-family: Arial, sans-serif; max-width: 600px; margin: 50px auto; padding: 20px; text-align: center; }}
    .success {{ color: #388e3c; }}
    .warning {{ color: #f57c00; }}
    .error {{ color: #d32f2f; }}
  </style>
</head>
<body>
  <h1 class="{css_class}">{heading}</h1>
  {body}
</body>
</html>
"""

REVOKE_HINT = (
    '<p><small>Nota: Si quieres obtener un refresh_token, revoca el acceso en '
    '<a href="https://myaccount.google.com/permissions" target="_blank">tu cuenta '
    "de Google</a> y vuelve a autorizar.</small></p>"
)


def render_page(title: str, css_class: str, icon: str, paragraphs, extra: str = "") -> str:
    body = "\n  ".join(f"<p>{html.escape(text)}</p>" for text in paragraphs)
    return PAGE_TEMPLATE.format(
        title=title,
        css_class=css_class,
        heading=f"{icon} {title}",
        body=body + extra,
    )


def _html(text: str, status: int = HTTPStatus.OK) -> web.Response:
    return web.Response(text=text, status=int(status), content_type="text/html")


def verify_webhook_secret(expected: Optional[str], received: Optional[str]) -> bool:
    if not expected:
        raise ValueError("TELEGRAM_WEBHOOK_SECRET is not configured")
    return (received or "").strip() == expected.strip()


class WebServer:
    """aiohttp routes in front of the PTB application."""

    def __init__(
        self,
        application,
        webhook_secret: Optional[str] = None,
        reauth: Optional[GoogleReauthService] = None,
    ):
        self.application = application
        self.webhook_secret = webhook_secret
        self.reauth = reauth

    @property
    def bot(self):
        return self.application.bot

    def build_app(self) -> web.Application:
        app = web.Application(client_max_size=20 * 1024 * 1024)
        app.router.add_post(WEBHOOK_PATH, self.telegram_webhook)
        if self.reauth is not None:
            app.router.add_get(OAUTH_START_PATH, self.oauth_start)
            app.router.add_get(OAUTH_CALLBACK_PATH, self.oauth_callback)
            logger.info("✅ OAuth routes mounted under /oauth")
        return app

    async def telegram_webhook(self, request: web.Request) -> web.Response:
        try:
            if not verify_webhook_secret(
                self.webhook_secret, request.headers.get(WEBHOOK_SECRET_HEADER)
            ):
                logger.warning("Rejected webhook call with a wrong secret token")
                return web.Response(text="Unauthorized", status=int(HTTPStatus.UNAUTHORIZED))

            payload = await request.json()
            update = Update.de_json(payload, self.bot)
            # Queued so Telegram gets its answer right away
            await self.application.update_queue.put(update)
        except (ValueError, KeyError, TypeError, TelegramError) as e:
            logger.error(f"❌ Webhook error: {e}", exc_info=True)
            return web.Response(text="Error", status=int(HTTPStatus.INTERNAL_SERVER_ERROR))
        return web.Response(text="OK")

    async def _notify(self, chat_id, text: str) -> None:
        try:
            await send_text(self.bot, chat_id, text)
        except TelegramError as e:
            logger.error(f"Could not notify chat {chat_id}: {e}")

    async def oauth_start(self, request: web.Request) -> web.Response:
        chat_id = request.query.get("chat_id")
        user_id = request.query.get("user_id")
        if not chat_id or not user_id:
            return web.Response(
                text="Missing chat_id or user_id", status=int(HTTPStatus.BAD_REQUEST)
            )

        try:
            link = self.reauth.create_auth_url(chat_id, user_id)
        except (OAuthError, ValueError) as e:
            logger.error(f"❌ Error creating auth URL: {e}")
            await self._notify(chat_id, f"❌ Error iniciando autorización: {e}")
            return web.Response(
                text="Error starting authorization",
                status=int(HTTPStatus.INTERNAL_SERVER_ERROR),
            )
        raise web.HTTPFound(link.url)

    async def oauth_callback(self, request: web.Request) -> web.Response:
        error = request.query.get("error")
        code = request.query.get("code")
        state = request.query.get("state")

        if error:
            logger.error(f"❌ Google returned error: {error}")
            return _html(
                render_page(
                    "Autorización Cancelada",
                    "error",
                    "❌",
                    [
                        "Has cancelado la autorización o ha ocurrido un error.",
                        "Puedes cerrar esta ventana y volver a Telegram.",
                    ],
                ),
                HTTPStatus.BAD_REQUEST,
            )

        if not code or not state:
            return web.Response(text="Missing code or state", status=int(HTTPStatus.BAD_REQUEST))

        try:
            result = await self.reauth.handle_callback(code, state)
        except (OAuthError, ValueError) as e:
            logger.error(f"❌ Error handling OAuth callback: {e}")
            chat_id = decode_state_chat_id(state)
            if chat_id:
                await self._notify(
                    chat_id,
                    f"❌ Error completando autorización: {e}\n\n"
                    "Puedes volver a intentarlo con /google_login",
                )
            return _html(
                render_page(
                    "Error en Autorización",
                    "error",
                    "❌",
                    [str(e), "Vuelve a Telegram y prueba de nuevo con /google_login"],
                ),
                HTTPStatus.INTERNAL_SERVER_ERROR,
            )

        await self._notify(result.chat_id, result.message)
        return _html(
            render_page(
                "Autorización Completada",
                "success" if result.has_refresh_token else "warning",
                "✅" if result.has_refresh_token else "⚠️",
                [result.message, "Puedes cerrar esta ventana y volver a Telegram."],
                "" if result.has_refresh_token else REVOKE_HINT,
            )
        )


async def serve(web_server: WebServer, port: int, host: str = "0.0.0.0") -> None:
    """Run the PTB application behind the aiohttp server until cancelled."""
    application = web_server.application
    runner = web.AppRunner(web_server.build_app())
    async with application:
        if application.post_init:
            await application.post_init(application)
        await application.start()
        await runner.setup()
        site = web.TCPSite(runner, host, port)
        await site.start()
        logger.info(f"🚀 Webhook server listening on :{port}")
        try:
            await asyncio.Event().wait()
        finally:
            await runner.cleanup()
            await application.stop()
