import logging
from typing import Any, Dict, Optional

from telegram.error import TelegramError

from .exceptions import FileDownloadError
from .models import FileInfo

logger = logging.getLogger(__name__)


def _caption(message) -> Optional[str]:
    caption = (getattr(message, "caption", None) or "").strip()
    return caption or None


def extract_telegram_file_info(message) -> Optional[FileInfo]:
    """File details for a single upload, with readable fallbacks for names."""
    caption = _caption(message)

    if message.document:
        document = message.document
        return FileInfo(
            file_id=document.file_id,
            file_unique_id=document.file_unique_id,
            original_name=caption or document.file_name or "documento",
            mime_type=document.mime_type or "application/octet-stream",
        )

    if message.photo:
        best = message.photo[-1]  # highest resolution
        return FileInfo(
            file_id=best.file_id,
            file_unique_id=best.file_unique_id,
            original_name=f"{caption}.jpg" if caption else "foto.jpg",
            mime_type="image/jpeg",
        )

    if message.video:
        video = message.video
        return FileInfo(
            file_id=video.file_id,
            file_unique_id=video.file_unique_id,
            original_name=f"{caption}.mp4" if caption else (video.file_name or "video.mp4"),
            mime_type=video.mime_type or "video/mp4",
        )

    return None


def extract_bulk_file_info(message) -> Optional[Dict[str, Any]]:
    """Like extract_telegram_file_info but leaves missing names as None."""
    caption = _caption(message)

    if message.document:
        document = message.document
        return {
            "file_id": document.file_id,
            "file_unique_id": document.file_unique_id,
            "file_name": caption or document.file_name or None,
            "mime_type": document.mime_type or "application/octet-stream",
        }

    if message.photo:
        best = message.photo[-1]
        return {
            "file_id": best.file_id,
            "file_unique_id": best.file_unique_id,
            "file_name": f"{caption}.jpg" if caption else None,
            "mime_type": "image/jpeg",
        }

    if message.video:
        video = message.video
        return {
            "file_id": video.file_id,
            "file_unique_id": video.file_unique_id,
            "file_name": f"{caption}.mp4" if caption else (video.file_name or None),
            "mime_type": video.mime_type or "video/mp4",
        }

    return None


def has_attachment(message) -> bool:
    return bool(message.document or message.photo or message.video)


class TelegramFileDownloader:
    """Fetches file bytes through the Bot API."""

    def __init__(self, bot):
        if bot is None:
            raise ValueError("Bot is required")
        self.bot = bot

    async def download(self, file_id: str) -> bytes:
        if not file_id:
            raise ValueError("File ID is required")
        try:
            telegram_file = await self.bot.get_file(file_id)
            if not getattr(telegram_file, "file_path", None):
                raise FileDownloadError("Could not retrieve file_path from Telegram")
            content = await telegram_file.download_as_bytearray()
        except TelegramError as e:
            raise FileDownloadError(f"Failed to download file from Telegram: {e}") from e
        return bytes(content)
