"""Inputs and outputs of the upload state machines.

Transition functions take an event and return a list of effects. Effects
that touch the outside world report back with a result event, which is fed
into the same transition function.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..models import BulkFile, FileInfo
from ..property_service import PropertyListResult
from ..upload_service import UploadResult

# rows of (label, callback data)
Buttons = List[List[Tuple[str, str]]]


# -- events ----------------------------------------------------------------


@dataclass(frozen=True)
class Command:
    name: str


@dataclass(frozen=True)
class TextReceived:
    text: str


@dataclass(frozen=True)
class FileReceived:
    file_info: Optional[FileInfo]
    bulk_info: Optional[Dict[str, Any]]


@dataclass(frozen=True)
class UnsupportedMessage:
    """Anything that is neither text nor a document, photo or video."""


@dataclass(frozen=True)
class ButtonPressed:
    data: str


@dataclass(frozen=True)
class PropertiesLoaded:
    result: PropertyListResult


@dataclass(frozen=True)
class DuplicatesChecked:
    duplicates: List[str]


@dataclass(frozen=True)
class UploadsFinished:
    results: List[UploadResult]


@dataclass(frozen=True)
class SingleUploadFinished:
    file_name: str


@dataclass(frozen=True)
class EffectFailed:
    effect: "Effect"
    error: str


# -- effects ---------------------------------------------------------------


class CommandSet(str, Enum):
    DEFAULT = "default"
    BULK_MODE = "bulk_mode"


class Effect:
    """Marker base class."""


@dataclass(frozen=True)
class StartSession(Effect):
    file_info: Optional[FileInfo] = None


@dataclass(frozen=True)
class AddFile(Effect):
    bulk_file: BulkFile


@dataclass(frozen=True)
class UpdateSession(Effect):
    state: Any = None
    changes: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ClearSession(Effect):
    pass


@dataclass(frozen=True)
class Reply(Effect):
    text: str
    buttons: Optional[Buttons] = None


@dataclass(frozen=True)
class SetChatCommands(Effect):
    command_set: CommandSet


@dataclass(frozen=True)
class LoadProperties(Effect):
    pass


@dataclass(frozen=True)
class CheckDuplicates(Effect):
    pass


@dataclass(frozen=True)
class UploadFiles(Effect):
    replace: bool = False


@dataclass(frozen=True)
class UploadSingleFile(Effect):
    file_name: str
