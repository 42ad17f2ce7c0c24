"""Vivienda Concierge package."""

__version__ = "1.0.0"
__description__ = (
    "A Telegram bot that files rental property documents into Google Drive"
)

from .bot import main

__all__ = ["main", "__version__"]
