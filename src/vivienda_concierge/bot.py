"""
Telegram bot that files rental property documents into Google Drive.

Every message goes through one handler that decides, in order, whether it
belongs to the bulk upload, the individual upload, a pending property dialog
or a command. Button presses are routed by their callback data prefix.
"""

import argparse
import asyncio
import logging
from typing import Optional

from telegram import (
    BotCommand,
    BotCommandScopeChat,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    Update,
)
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from . import __version__, config
from .constants import (
    BULK_CALLBACK_PREFIX,
    GOOGLE_LOGIN_CALLBACK_PREFIX,
    INDIVIDUAL_CALLBACK_PREFIX,
    SELF_TEST_CALLBACK_PREFIX,
)
from .diagnostics import (
    format_status_report,
    format_version_info,
    get_status_report,
    get_version_info,
)
from .drive_client import DriveAdapter
from .exceptions import OAuthConfigurationError, OAuthError
from .flows import (
    ButtonPressed,
    Command,
    FileReceived,
    FlowRunner,
    TextReceived,
    UnsupportedMessage,
)
from .google_auth import build_credentials, build_drive_service, refresh_credentials
from .messaging import send_text
from .property_commands import PropertyCommands
from .property_service import PropertyService
from .reauth import GoogleReauthService
from .self_test import SelfTestCommands, SelfTestService
from .sessions import (
    BulkSessionRepository,
    IndividualUploadSessionRepository,
    SelfTestSessionRepository,
)
from .telegram_files import (
    TelegramFileDownloader,
    extract_bulk_file_info,
    extract_telegram_file_info,
    has_attachment,
)
from .token_storage import load_google_token
from .upload_service import UploadService
from .user_manager import get_user_manager
from .webhook import WebServer, serve

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=logging.INFO
)
logger = logging.getLogger(__name__)

DEFAULT_COMMANDS = [
    BotCommand("start", "Mensaje de bienvenida"),
    BotCommand("help", "Mostrar ayuda"),
    BotCommand("add_property", "Añadir nueva vivienda"),
    BotCommand("list_properties", "Listar viviendas activas"),
    BotCommand("delete_property", "Eliminar vivienda"),
    BotCommand("archive", "Menú de archivo"),
    BotCommand("archive_property", "Archivar vivienda"),
    BotCommand("list_archived", "Ver viviendas archivadas"),
    BotCommand("unarchive_property", "Reactivar vivienda"),
    BotCommand("bulk", "Subir varios archivos a la vez"),
    BotCommand("self_test", "Ejecutar self-test del sistema (admin only)"),
    BotCommand("google_login", "Re-autorizar Google Drive"),
    BotCommand("version", "Ver información de versión"),
    BotCommand("status", "Ver estado del sistema"),
    BotCommand("cancel", "Cancelar operación actual"),
]

BULK_MODE_COMMANDS = [
    BotCommand("bulk_done", "Finalizar subida bulk"),
    BotCommand("cancel", "Cancelar operación actual"),
]

UNAUTHORIZED_TEXT = "⛔ No autorizado."
CANCELLED_TEXT = "❌ Operación cancelada."
UNKNOWN_COMMAND_TEXT = (
    "❓ Comando no reconocido. Usa /help para ver todos los comandos disponibles."
)
GENERIC_ERROR_TEXT = "❌ Error subiendo el archivo. Revisa logs."

HELP_TEXT = """📋 Todos los comandos disponibles:

Gestión de viviendas:
/add_property - Añadir nueva vivienda
/list_properties - Listar viviendas activas
/delete_property - Eliminar vivienda permanentemente

Archivo:
/archive - Menú de gestión de archivo

Subida de documentos:
/bulk - Subir varios archivos a la vez

Sistema:
/self_test - Verificar sistema completo (test end-to-end)
/google_login - Re-autorizar Google Drive
/version - Ver información de versión
/status - Ver estado del sistema

Ayuda:
/start - Mensaje de bienvenida
/help - Mostrar esta ayuda"""

ARCHIVE_MENU_TEXT = (
    "📦 Gestión de archivo:\n\n"
    "/archive_property - Archivar vivienda activa\n"
    "/list_archived - Ver viviendas archivadas\n"
    "/unarchive_property - Reactivar vivienda archivada"
)

GOOGLE_LOGIN_PROMPT = (
    "🔐 Re-autorizar Google Drive\n\n"
    "Se generará un link para volver a autorizar el acceso a Google Drive.\n\n"
    "¿Continuar?"
)
GOOGLE_LOGIN_DISABLED_TEXT = (
    "⚠️ Google Login no está configurado (falta GOOGLE_OAUTH_CLIENT_JSON)."
)


def parse_command(text: Optional[str]) -> Optional[str]:
    """``/bulk_done@my_bot extra`` -> ``bulk_done``; None for plain text."""
    if not text or not text.startswith("/"):
        return None
    head = text[1:].split(maxsplit=1)[0] if len(text) > 1 else ""
    return head.split("@", 1)[0].lower()


def message_event(message):
    """Translate a Telegram message into the event the upload flows understand."""
    if has_attachment(message):
        return FileReceived(
            file_info=extract_telegram_file_info(message),
            bulk_info=extract_bulk_file_info(message),
        )
    command = parse_command(message.text)
    if command is not None:
        return Command(command)
    if message.text is not None:
        return TextReceived(message.text)
    return UnsupportedMessage()


def require_authorization(func):
    """Decorator to check if user is authorized."""

    async def wrapper(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        user = update.effective_user
        chat = update.effective_chat
        if user is None or chat is None:
            return
        username = user.username or "Unknown"

        if not get_user_manager().is_authorized(user.id):
            logger.warning(f"Unauthorized access attempt from user {user.id} (@{username})")
            await send_text(self.bot, chat.id, UNAUTHORIZED_TEXT)
            return

        return await func(self, update, context)

    return wrapper


class TelegramConcierge:
    def __init__(
        self,
        bot,
        drive: DriveAdapter,
        base_folder_id: str,
        credentials=None,
        reauth: Optional[GoogleReauthService] = None,
        client_json: Optional[str] = None,
    ):
        self.bot = bot
        self.drive = drive
        self.base_folder_id = base_folder_id
        self.credentials = credentials
        self.reauth = reauth
        self.client_json = client_json

        self.property_service = PropertyService(drive, base_folder_id)
        self.upload_service = UploadService(drive)
        self.bulk_sessions = BulkSessionRepository()
        self.individual_sessions = IndividualUploadSessionRepository()
        self.runner = FlowRunner(
            bot,
            self.bulk_sessions,
            self.individual_sessions,
            self.property_service,
            self.upload_service,
            TelegramFileDownloader(bot),
            DEFAULT_COMMANDS,
            BULK_MODE_COMMANDS,
        )
        self.property_commands = PropertyCommands(bot, self.property_service)
        self.self_test = SelfTestCommands(
            bot, SelfTestService(self.property_service, drive), SelfTestSessionRepository()
        )
        # handlers taking (chat_id, user_id)
        self.user_commands = {
            "add_property": self.property_commands.add_property,
            "delete_property": self.property_commands.delete_property,
            "archive_property": self.property_commands.archive_property,
            "unarchive_property": self.property_commands.unarchive_property,
            "self_test": self.self_test.request,
        }
        # handlers taking (chat_id)
        self.chat_commands = {
            "list_properties": self.property_commands.list_properties,
            "list_archived": self.property_commands.list_archived,
            "google_login": self.google_login,
            "version": self.version,
            "status": self.status,
        }

    async def reply(self, chat_id, text: str, **kwargs):
        return await send_text(self.bot, chat_id, text, **kwargs)

    # -- messages ------------------------------------------------------------

    @require_authorization
    async def handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        message = update.effective_message
        if message is None:
            return
        chat_id = update.effective_chat.id
        user_id = update.effective_user.id

        try:
            await self._dispatch(chat_id, user_id, message)
        except Exception as e:  # Last-resort guard so the chat always gets an answer
            logger.error(f"❌ Error processing message in chat {chat_id}: {e}", exc_info=True)
            try:
                await self.reply(chat_id, GENERIC_ERROR_TEXT)
            except TelegramError as send_error:
                logger.error(f"Could not report the error to chat {chat_id}: {send_error}")

    async def _dispatch(self, chat_id, user_id: int, message) -> None:
        event = message_event(message)

        if isinstance(event, Command) and event.name == "cancel":
            await self.cancel(chat_id, user_id)
            return

        if await self.runner.dispatch("bulk", chat_id, event):
            return

        if not isinstance(event, FileReceived):
            if await self.runner.dispatch("individual", chat_id, event):
                return

        if isinstance(event, TextReceived):
            if await self.property_commands.handle_text(chat_id, user_id, event.text):
                return

        if isinstance(event, FileReceived) and event.file_info is not None:
            self.property_commands.cancel(user_id)
            await self.runner.dispatch("individual", chat_id, event)
            return

        await self._run_command(chat_id, user_id, event)

    async def _run_command(self, chat_id, user_id: int, event) -> None:
        if not isinstance(event, Command):
            await self.reply(chat_id, UNKNOWN_COMMAND_TEXT)
            return

        # A new command abandons any half-finished property dialog
        self.property_commands.cancel(user_id)

        if event.name in ("start", "help"):
            await self.reply(chat_id, HELP_TEXT)
            return
        if event.name == "archive":
            await self.reply(chat_id, ARCHIVE_MENU_TEXT)
            return

        if event.name in self.user_commands:
            logger.info(f"Authorized user {user_id} running /{event.name}")
            await self.user_commands[event.name](chat_id, user_id)
        elif event.name in self.chat_commands:
            logger.info(f"Authorized user {user_id} running /{event.name}")
            await self.chat_commands[event.name](chat_id)
        else:
            await self.reply(chat_id, UNKNOWN_COMMAND_TEXT)

    async def cancel(self, chat_id, user_id: int) -> None:
        self.bulk_sessions.clear(chat_id)
        self.individual_sessions.clear(chat_id)
        self.property_commands.cancel(user_id)
        try:
            await self.bot.set_my_commands(DEFAULT_COMMANDS, scope=BotCommandScopeChat(chat_id))
        except TelegramError as e:
            logger.warning(f"Could not restore command menu for chat {chat_id}: {e}")
        await self.reply(chat_id, CANCELLED_TEXT)

    # -- system commands -----------------------------------------------------

    async def version(self, chat_id) -> None:
        await self.reply(chat_id, format_version_info(get_version_info()))

    async def _refresh_credentials(self) -> None:
        if self.credentials is None:
            raise OAuthConfigurationError("GOOGLE_OAUTH_TOKEN_JSON is required")
        await refresh_credentials(self.credentials)

    async def status(self, chat_id) -> None:
        await self.reply(chat_id, "🔍 Verificando estado del sistema...")
        checks = await get_status_report(
            self.drive, self.property_service, self.base_folder_id, self._refresh_credentials
        )
        await self.reply(chat_id, format_status_report(checks))

    async def google_login(self, chat_id) -> None:
        if self.reauth is None:
            await self.reply(chat_id, GOOGLE_LOGIN_DISABLED_TEXT)
            return
        keyboard = InlineKeyboardMarkup(
            [
                [
                    InlineKeyboardButton(
                        "✅ Continuar", callback_data=f"{GOOGLE_LOGIN_CALLBACK_PREFIX}confirm"
                    ),
                    InlineKeyboardButton(
                        "❌ Cancelar", callback_data=f"{GOOGLE_LOGIN_CALLBACK_PREFIX}cancel"
                    ),
                ]
            ]
        )
        await self.reply(chat_id, GOOGLE_LOGIN_PROMPT, reply_markup=keyboard)

    async def on_token_saved(self, token_json: str) -> None:
        """Swap the Drive service to the freshly authorized token."""
        self.credentials = build_credentials(self.client_json, token_json)
        self.drive.service = build_drive_service(self.credentials)
        logger.info("🔄 Drive service rebuilt with the renewed token")

    # -- buttons -------------------------------------------------------------

    async def handle_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        if query is None or query.message is None:
            return
        user_id = query.from_user.id
        chat_id = query.message.chat.id

        if not get_user_manager().is_authorized(user_id):
            logger.warning(f"Unauthorized button press from user {user_id}")
            await query.answer(UNAUTHORIZED_TEXT, show_alert=True)
            return

        data = query.data or ""
        try:
            if data.startswith(BULK_CALLBACK_PREFIX):
                await query.answer()
                await self.runner.dispatch("bulk", chat_id, ButtonPressed(data))
            elif data.startswith(INDIVIDUAL_CALLBACK_PREFIX):
                await query.answer()
                await self.runner.dispatch("individual", chat_id, ButtonPressed(data))
            elif data.startswith(SELF_TEST_CALLBACK_PREFIX):
                await self.self_test.handle_callback(query)
            elif data.startswith(GOOGLE_LOGIN_CALLBACK_PREFIX):
                await self._handle_google_login(query, chat_id, user_id)
            else:
                await query.answer()
        except Exception as e:  # Last-resort guard so the chat always gets an answer
            logger.error(f"❌ Error handling button '{data}' in chat {chat_id}: {e}", exc_info=True)
            try:
                await self.reply(chat_id, GENERIC_ERROR_TEXT)
            except TelegramError as send_error:
                logger.error(f"Could not report the error to chat {chat_id}: {send_error}")

    async def _edit(self, query, text: str, **kwargs) -> None:
        await query.edit_message_text(f"{config.message_prefix()}{text}", **kwargs)

    async def _handle_google_login(self, query, chat_id, user_id: int) -> None:
        if self.reauth is None:
            await query.answer(GOOGLE_LOGIN_DISABLED_TEXT, show_alert=True)
            return

        if query.data == f"{GOOGLE_LOGIN_CALLBACK_PREFIX}cancel":
            self.reauth.cancel_session(chat_id)
            await query.answer()
            await self._edit(query, "❌ Autorización cancelada.")
            return

        if query.data != f"{GOOGLE_LOGIN_CALLBACK_PREFIX}confirm":
            await query.answer()
            return

        if self.reauth.has_active_session(chat_id):
            await query.answer(
                "Ya hay una sesión activa. Complétala o espera a que expire.", show_alert=True
            )
            return

        try:
            link = self.reauth.create_auth_url(chat_id, user_id)
        except (OAuthError, ValueError) as e:
            logger.error(f"❌ Error creating Google login link: {e}")
            await query.answer(f"Error: {e}", show_alert=True)
            try:
                await self._edit(query, f"❌ Error generando link: {e}")
            except TelegramError as edit_error:
                logger.error(f"Could not edit the login message: {edit_error}")
            return

        await query.answer()
        # No parse_mode: the URL contains underscores that break Markdown
        await self._edit(
            query,
            "🔗 Link de Autorización Generado\n\n"
            "Abre este link en tu navegador para autorizar:\n\n"
            f"{link.url}\n\n"
            f"⏱️ Expira en {link.minutes_left()} minutos\n\n"
            "Una vez autorizado, recibirás una confirmación aquí.",
            disable_web_page_preview=True,
        )


async def load_credentials(client_json: str, secret_name: str):
    token_json = await load_google_token(secret_name)
    if not token_json:
        logger.warning("⚠️ No Google token found yet; authorize with /google_login")
        token_json = "{}"
    return build_credentials(client_json, token_json)


def build_application(token: str, concierge_factory) -> Application:
    """Create the PTB application with one message and one button handler."""
    application = Application.builder().token(token).build()
    concierge = concierge_factory(application.bot)

    application.add_handler(MessageHandler(filters.ALL, concierge.handle_message))
    application.add_handler(CallbackQueryHandler(concierge.handle_callback))

    async def post_init(application):
        try:
            await application.bot.set_my_commands(DEFAULT_COMMANDS)
        except TelegramError as e:
            logger.warning(f"Could not register the default command menu: {e}")
        logger.info("Default command menu registered")

    application.post_init = post_init
    application.bot_data["concierge"] = concierge
    return application


async def poll(application: Application) -> None:
    async with application:
        await application.post_init(application)
        await application.start()
        await application.updater.start_polling(allowed_updates=Update.ALL_TYPES)
        logger.info("🔧 Polling for updates (local mode)")
        try:
            await asyncio.Event().wait()
        finally:
            await application.updater.stop()
            await application.stop()


async def run(polling: bool = False) -> None:
    credentials = await load_credentials(
        config.GOOGLE_OAUTH_CLIENT_JSON, config.GOOGLE_TOKEN_SECRET_NAME
    )
    drive = DriveAdapter(build_drive_service(credentials))

    if config.OAUTH_STATE_SECRET_IS_EPHEMERAL:
        logger.warning(
            "⚠️ OAUTH_STATE_SECRET not set; using a temporary value (not for production)"
        )

    reauth = None

    def make_concierge(bot):
        nonlocal reauth
        concierge = TelegramConcierge(
            bot,
            drive,
            config.DRIVE_FOLDER_ID,
            credentials=credentials,
            client_json=config.GOOGLE_OAUTH_CLIENT_JSON,
        )
        reauth = GoogleReauthService(
            config.GOOGLE_OAUTH_CLIENT_JSON,
            config.OAUTH_STATE_SECRET,
            config.GOOGLE_TOKEN_SECRET_NAME,
            base_url=config.PUBLIC_BASE_URL,
            port=config.PORT,
            on_token_saved=concierge.on_token_saved,
        )
        concierge.reauth = reauth
        return concierge

    application = build_application(config.TELEGRAM_BOT_TOKEN, make_concierge)

    if polling:
        await poll(application)
        return

    web_server = WebServer(application, config.TELEGRAM_WEBHOOK_SECRET, reauth)
    if config.is_development():
        logger.info("🔧 DEV mode: expose the port with a tunnel, then run vivienda-set-webhook")
    await serve(web_server, config.PORT)


def main() -> None:
    """Start the bot."""
    parser = argparse.ArgumentParser(
        prog="vivienda-concierge",
        description="Telegram bot that files rental property documents into Google Drive",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  vivienda-concierge               Serve the Telegram webhook and OAuth routes
  vivienda-concierge --polling     Poll Telegram instead (local development)

For configuration, set environment variables:
  TELEGRAM_BOT_TOKEN         Your bot token from @BotFather
  TELEGRAM_WEBHOOK_SECRET    Secret token Telegram sends with each update
  AUTHORIZED_USERS           Comma-separated list of authorized user IDs
  DRIVE_FOLDER_ID            Base Google Drive folder
  GOOGLE_OAUTH_CLIENT_JSON   OAuth client from Google Cloud
  GOOGLE_OAUTH_TOKEN_JSON    Authorized-user token (or use /google_login)
        """.strip(),
    )
    parser.add_argument(
        "--version", action="version", version=f"vivienda-concierge {__version__}"
    )
    parser.add_argument(
        "--polling",
        action="store_true",
        help="use long polling instead of the webhook server",
    )
    args = parser.parse_args()

    try:
        config.validate_config()
    except ValueError as e:
        print(e)
        raise SystemExit(1)

    logger.info("Starting Vivienda Concierge...")
    try:
        asyncio.run(run(polling=args.polling))
    except KeyboardInterrupt:
        logger.info("Stopped")


if __name__ == "__main__":
    main()
