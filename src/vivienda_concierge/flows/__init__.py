"""Conversational upload flows (bulk and single file)."""

from .events import ButtonPressed, Command, FileReceived, TextReceived, UnsupportedMessage
from .runner import FlowRunner

__all__ = [
    "ButtonPressed",
    "Command",
    "FileReceived",
    "FlowRunner",
    "TextReceived",
    "UnsupportedMessage",
]
