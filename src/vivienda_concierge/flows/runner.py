import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from telegram import BotCommand, BotCommandScopeChat, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.error import TelegramError

from ..messaging import send_text
from ..naming import rename_files_for_upload
from ..property_service import PropertyService
from ..sessions import SessionStore
from ..upload_service import UploadService, validate_bulk_upload_request
from . import bulk, individual
from .events import (
    AddFile,
    Buttons,
    CheckDuplicates,
    ClearSession,
    CommandSet,
    DuplicatesChecked,
    Effect,
    EffectFailed,
    LoadProperties,
    PropertiesLoaded,
    Reply,
    SetChatCommands,
    SingleUploadFinished,
    StartSession,
    UpdateSession,
    UploadFiles,
    UploadsFinished,
    UploadSingleFile,
)

logger = logging.getLogger(__name__)


@dataclass
class Flow:
    name: str
    sessions: SessionStore
    transition: Callable


def build_keyboard(buttons: Optional[Buttons]) -> Optional[InlineKeyboardMarkup]:
    if not buttons:
        return None
    return InlineKeyboardMarkup(
        [
            [InlineKeyboardButton(label, callback_data=data) for label, data in row]
            for row in buttons
        ]
    )


class FlowRunner:
    """Executes the effects returned by the upload state machines.

    Session effects are applied to the flow's repository; I/O effects call
    the services and feed their outcome back into the same flow as an event.
    """

    def __init__(
        self,
        bot,
        bulk_sessions,
        individual_sessions,
        property_service: PropertyService,
        upload_service: UploadService,
        downloader,
        default_commands: List[BotCommand],
        bulk_mode_commands: List[BotCommand],
    ):
        self.bot = bot
        self.property_service = property_service
        self.upload_service = upload_service
        self.downloader = downloader
        self.default_commands = default_commands
        self.bulk_mode_commands = bulk_mode_commands
        self.flows: Dict[str, Flow] = {
            "bulk": Flow("bulk", bulk_sessions, bulk.transition),
            "individual": Flow("individual", individual_sessions, individual.transition),
        }

    async def dispatch(self, flow_name: str, chat_id, event) -> bool:
        """Offer ``event`` to a flow; False when the flow does not want it."""
        flow = self.flows[flow_name]
        effects = flow.transition(flow.sessions.get(chat_id), event)
        if effects is None:
            return False
        await self._run(flow, chat_id, effects)
        return True

    async def _run(self, flow: Flow, chat_id, effects: List[Effect]) -> None:
        pending = deque(effects)
        while pending:
            effect = pending.popleft()
            outcome = await self._apply(flow, chat_id, effect)
            if outcome is None:
                continue
            follow_up = flow.transition(flow.sessions.get(chat_id), outcome)
            if follow_up:
                pending.extend(follow_up)

    async def _apply(self, flow: Flow, chat_id, effect: Effect):
        if isinstance(effect, StartSession):
            if effect.file_info is not None:
                flow.sessions.start(chat_id, effect.file_info)
            else:
                session = flow.sessions.start(chat_id)
                session.default_commands = self.default_commands
            return None
        if isinstance(effect, AddFile):
            flow.sessions.add_file(chat_id, effect.bulk_file)
            return None
        if isinstance(effect, UpdateSession):
            flow.sessions.update(chat_id, effect.state, **effect.changes)
            return None
        if isinstance(effect, ClearSession):
            flow.sessions.clear(chat_id)
            return None
        if isinstance(effect, Reply):
            await send_text(
                self.bot, chat_id, effect.text, reply_markup=build_keyboard(effect.buttons)
            )
            return None
        if isinstance(effect, SetChatCommands):
            await self._set_commands(flow, chat_id, effect.command_set)
            return None

        try:
            return await self._perform(flow, chat_id, effect)
        except Exception as e:  # Last-resort guard; the flow decides how to recover
            logger.error(
                f"❌ {flow.name} flow: {type(effect).__name__} failed for chat {chat_id}: {e}",
                exc_info=True,
            )
            return EffectFailed(effect, str(e))

    async def _perform(self, flow: Flow, chat_id, effect: Effect):
        if isinstance(effect, LoadProperties):
            return PropertiesLoaded(await self.property_service.list_properties())

        session = flow.sessions.require(chat_id)
        target = (
            getattr(session.selected_property, "property_folder_id", None),
            session.category,
            session.year,
        )
        validation = validate_bulk_upload_request(*target)
        if not validation.valid:
            raise ValueError(validation.error)

        if isinstance(effect, CheckDuplicates):
            files = rename_files_for_upload(session.files, session.base_name)
            duplicates = await self.upload_service.check_duplicate_files(files, *target)
            return DuplicatesChecked(duplicates)

        if isinstance(effect, UploadFiles):
            files = rename_files_for_upload(session.files, session.base_name)
            results = await self.upload_service.upload_bulk_files(
                files, *target, self.downloader, replace=effect.replace
            )
            return UploadsFinished(results)

        if isinstance(effect, UploadSingleFile):
            await self.upload_service.upload_single_file(
                session.file_info, effect.file_name, *target, self.downloader
            )
            logger.info(f"📤 Uploaded '{effect.file_name}' for chat {chat_id}")
            return SingleUploadFinished(effect.file_name)

        raise TypeError(f"Unknown effect: {effect!r}")

    async def _set_commands(self, flow: Flow, chat_id, command_set: CommandSet) -> None:
        if command_set == CommandSet.BULK_MODE:
            commands = self.bulk_mode_commands
        else:
            session = flow.sessions.get(chat_id)
            saved = getattr(session, "default_commands", None)
            commands = saved or self.default_commands
        try:
            await self.bot.set_my_commands(commands, scope=BotCommandScopeChat(chat_id))
        except TelegramError as e:
            # A stale menu never aborts the flow
            logger.warning(f"Could not update command menu for chat {chat_id}: {e}")
