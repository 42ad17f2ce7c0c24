"""In-memory per-chat session repositories.

Sessions live only in process memory and are lost on restart. Each flow type
gets its own repository; no two chats ever share a session.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

from .exceptions import SessionNotFoundError
from .models import BulkFile, FileInfo, Property

logger = logging.getLogger(__name__)

ChatId = Union[int, str]


class BulkState(str, Enum):
    COLLECTING_FILES = "collecting_files"
    WAITING_FOR_PROPERTY = "waiting_for_property"
    WAITING_FOR_CATEGORY = "waiting_for_category"
    WAITING_FOR_YEAR = "waiting_for_year"
    WAITING_FOR_CUSTOM_YEAR = "waiting_for_custom_year"
    WAITING_FOR_BASENAME = "waiting_for_basename"
    WAITING_FOR_CONFIRMATION = "waiting_for_confirmation"
    CHECKING_DUPLICATES = "checking_duplicates"
    WAITING_FOR_REPLACE_CONFIRMATION = "waiting_for_replace_confirmation"
    UPLOADING = "uploading"


class IndividualState(str, Enum):
    WAITING_FOR_PROPERTY = "waiting_for_property"
    WAITING_FOR_CATEGORY = "waiting_for_category"
    WAITING_FOR_YEAR = "waiting_for_year"
    WAITING_FOR_CUSTOM_YEAR = "waiting_for_custom_year"
    WAITING_FOR_FILENAME = "waiting_for_filename"
    UPLOADING = "uploading"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class BulkSession:
    chat_id: ChatId
    files: List[BulkFile] = field(default_factory=list)
    state: BulkState = BulkState.COLLECTING_FILES
    created_at: str = field(default_factory=_now)
    properties: List[Property] = field(default_factory=list)
    selected_property: Optional[Property] = None
    category: Optional[str] = None
    year: Optional[str] = None
    base_name: Optional[str] = None
    default_commands: Optional[List[Any]] = None


@dataclass
class IndividualUploadSession:
    chat_id: ChatId
    file_info: FileInfo
    state: IndividualState = IndividualState.WAITING_FOR_PROPERTY
    created_at: str = field(default_factory=_now)
    properties: List[Property] = field(default_factory=list)
    selected_property: Optional[Property] = None
    category: Optional[str] = None
    year: Optional[str] = None


@dataclass
class SelfTestSession:
    started_at: str = field(default_factory=_now)
    status: str = "running"


def _check_chat_id(chat_id) -> None:
    if isinstance(chat_id, bool) or not isinstance(chat_id, (int, str)):
        raise ValueError("Chat ID is required")


S = TypeVar("S")


class SessionStore(Generic[S]):
    """Dict-backed store; every call completes within one event-loop tick."""

    not_found_message = "No active session found"

    def __init__(self):
        self._sessions: Dict[ChatId, S] = {}

    def get(self, chat_id: ChatId) -> Optional[S]:
        return self._sessions.get(chat_id)

    def require(self, chat_id: ChatId) -> S:
        session = self._sessions.get(chat_id)
        if session is None:
            raise SessionNotFoundError(self.not_found_message)
        return session

    def put(self, chat_id: ChatId, session: S) -> S:
        _check_chat_id(chat_id)
        self._sessions[chat_id] = session
        return session

    def update(self, chat_id: ChatId, state=None, **changes) -> S:
        session = self.require(chat_id)
        if state is not None:
            session.state = state
        for name, value in changes.items():
            if not hasattr(session, name):
                raise AttributeError(f"Unknown session field: {name}")
            setattr(session, name, value)
        return session

    def clear(self, chat_id: ChatId) -> None:
        self._sessions.pop(chat_id, None)

    def clear_all(self) -> None:
        self._sessions.clear()

    def __contains__(self, chat_id) -> bool:
        return chat_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


class BulkSessionRepository(SessionStore[BulkSession]):
    not_found_message = "No active bulk session found"

    def start(self, chat_id: ChatId) -> BulkSession:
        # A new /bulk silently replaces whatever was in progress
        session = self.put(chat_id, BulkSession(chat_id=chat_id))
        logger.info(f"📦 Bulk session started for chat {chat_id}")
        return session

    def add_file(self, chat_id: ChatId, bulk_file: BulkFile) -> BulkSession:
        session = self.require(chat_id)
        session.files.append(bulk_file)
        return session


class IndividualUploadSessionRepository(SessionStore[IndividualUploadSession]):
    not_found_message = "No active individual upload session found"

    def start(self, chat_id: ChatId, file_info: FileInfo) -> IndividualUploadSession:
        return self.put(
            chat_id, IndividualUploadSession(chat_id=chat_id, file_info=file_info)
        )


class SelfTestSessionRepository(SessionStore[SelfTestSession]):
    not_found_message = "No self-test running"

    def start(self, chat_id: ChatId) -> bool:
        """Take the per-chat self-test lock; False if it is already held."""
        _check_chat_id(chat_id)
        if chat_id in self._sessions:
            return False
        self._sessions[chat_id] = SelfTestSession()
        return True

    def end(self, chat_id: ChatId) -> None:
        self.clear(chat_id)
