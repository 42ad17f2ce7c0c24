from .config import message_prefix


async def send_text(bot, chat_id, text: str, **kwargs):
    """Send a chat message, marked with the environment prefix outside production."""
    return await bot.send_message(chat_id=chat_id, text=f"{message_prefix()}{text}", **kwargs)
