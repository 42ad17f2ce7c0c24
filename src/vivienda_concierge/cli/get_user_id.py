#!/usr/bin/env python3
"""
Helper bot that tells you your Telegram user ID, so you can fill in
AUTHORIZED_USERS before starting the concierge.
"""

import logging

from telegram import Update
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from vivienda_concierge.config import TELEGRAM_BOT_TOKEN

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def format_user_info(user) -> str:
    username = user.username or "sin usuario"
    first_name = user.first_name or "Desconocido"
    return (
        "📋 Tu información de Telegram:\n\n"
        f"🆔 User ID: {user.id}\n"
        f"👤 Usuario: @{username}\n"
        f"📝 Nombre: {first_name}\n\n"
        "Añade este ID a AUTHORIZED_USERS en tu .env:\n"
        f"AUTHORIZED_USERS={user.id}\n\n"
        "⚠️ Reinicia el bot después de actualizar el .env"
    )


async def get_my_id(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Reply with the sender's Telegram ID."""
    user = update.effective_user
    if user is None or update.effective_message is None:
        return
    await update.effective_message.reply_text(format_user_info(user))
    logger.info(f"User ID request from {user.id} (@{user.username})")


def main() -> None:
    """Run the user ID helper bot."""
    if not TELEGRAM_BOT_TOKEN:
        print("❌ TELEGRAM_BOT_TOKEN missing, add it to your .env file")
        raise SystemExit(1)

    print("🤖 Starting Telegram User ID Helper Bot...")
    print("Send any message to get your user ID")
    print("Press Ctrl+C to stop")

    application = Application.builder().token(TELEGRAM_BOT_TOKEN).build()
    application.add_handler(MessageHandler(filters.ALL, get_my_id))
    application.run_polling(allowed_updates=Update.ALL_TYPES)


if __name__ == "__main__":
    main()
