import os
import secrets
from typing import Optional, Set

from dotenv import load_dotenv

from .constants import DEFAULT_PORT, DEV_PREFIX

load_dotenv()

TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")
TELEGRAM_WEBHOOK_SECRET = os.getenv("TELEGRAM_WEBHOOK_SECRET")

DRIVE_FOLDER_ID = os.getenv("DRIVE_FOLDER_ID")
GOOGLE_OAUTH_CLIENT_JSON = os.getenv("GOOGLE_OAUTH_CLIENT_JSON")
GOOGLE_OAUTH_TOKEN_JSON = os.getenv("GOOGLE_OAUTH_TOKEN_JSON")
GOOGLE_TOKEN_SECRET_NAME = os.getenv(
    "GOOGLE_TOKEN_SECRET_NAME", "GOOGLE_OAUTH_TOKEN_JSON"
)
GOOGLE_CLOUD_PROJECT = os.getenv("GOOGLE_CLOUD_PROJECT")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL")

# A random secret keeps local runs working; links die with the process
OAUTH_STATE_SECRET = os.getenv("OAUTH_STATE_SECRET") or secrets.token_hex(32)
OAUTH_STATE_SECRET_IS_EPHEMERAL = not os.getenv("OAUTH_STATE_SECRET")

PORT = int(os.getenv("PORT", str(DEFAULT_PORT)))

# Detect mode based on what's configured
USER_CONFIG_FILE = os.getenv("USER_CONFIG_FILE")
AUTHORIZED_USERS_STR = os.getenv("AUTHORIZED_USERS")
AUTH_MODE = "user_scoped" if USER_CONFIG_FILE else "global"


def parse_authorized_users(raw: Optional[str]) -> Set[int]:
    """Parse a comma-separated list of Telegram user IDs."""
    if not raw:
        return set()
    try:
        return {int(user_id.strip()) for user_id in raw.split(",") if user_id.strip()}
    except ValueError as e:
        raise ValueError(
            "AUTHORIZED_USERS must be comma-separated integers (Telegram user IDs)"
        ) from e


AUTHORIZED_USERS = parse_authorized_users(AUTHORIZED_USERS_STR)


def get_app_env() -> str:
    return os.getenv("APP_ENV", "production")


def is_development() -> bool:
    return get_app_env() == "development"


def message_prefix() -> str:
    """Marker prepended to every chat message outside production."""
    return DEV_PREFIX if is_development() else ""


def validate_config() -> None:
    """Fail fast with a readable message when the bot cannot start."""
    if not TELEGRAM_BOT_TOKEN:
        raise ValueError(
            "❌ TELEGRAM_BOT_TOKEN missing!\n\n"
            "Please add this to your .env file:\n"
            "   TELEGRAM_BOT_TOKEN=your_bot_token_here\n\n"
            "💡 Get a bot token from @BotFather on Telegram:\n"
            "   1. Start a chat with @BotFather\n"
            "   2. Send /newbot and follow instructions\n"
            "   3. Copy the token to your .env file"
        )

    if not USER_CONFIG_FILE and not AUTHORIZED_USERS:
        raise ValueError(
            "❌ Authorization missing!\n\n"
            "Please add one of these to your .env file:\n\n"
            "📋 Global mode:\n"
            "   AUTHORIZED_USERS=123456789,987654321  # Telegram user IDs\n\n"
            "🔧 User-scoped mode:\n"
            "   USER_CONFIG_FILE=users.yaml\n\n"
            "💡 Run 'vivienda-get-user-id' to find your Telegram user ID"
        )

    if not DRIVE_FOLDER_ID:
        raise ValueError(
            "❌ DRIVE_FOLDER_ID missing!\n\n"
            "Please add this to your .env file:\n"
            "   DRIVE_FOLDER_ID=your_google_drive_folder_id\n\n"
            "💡 It is the last part of the folder URL in Google Drive"
        )

    if not GOOGLE_OAUTH_CLIENT_JSON:
        raise ValueError(
            "❌ GOOGLE_OAUTH_CLIENT_JSON missing!\n\n"
            "Please add the OAuth client from Google Cloud to your .env file:\n"
            "   GOOGLE_OAUTH_CLIENT_JSON={...}\n\n"
            "💡 The token itself comes from GOOGLE_OAUTH_TOKEN_JSON, Secret Manager\n"
            "   or a previous /google_login"
        )
