"""Chat commands that manage the property catalog.

Multi-step commands keep a small pending dialog per Telegram user; the next
text message from that user answers it.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .exceptions import CatalogError, DriveError
from .messaging import send_text
from .models import Property
from .property_service import PropertyService

logger = logging.getLogger(__name__)

ADD = "waiting_for_address"
DELETE_PICK = "waiting_for_delete_choice"
DELETE_CONFIRM = "waiting_for_delete_confirmation"
ARCHIVE_PICK = "waiting_for_archive_choice"
UNARCHIVE_PICK = "waiting_for_unarchive_choice"

CANCELLED_TEXT = "❌ Operación cancelada."
INVALID_CHOICE_TEXT = "⚠️ Número no válido. Envía un número de la lista:"
CONFIRM_WORD = "confirmar"
CANCEL_WORD = "cancelar"

# Service failures surfaced as "check the logs" replies
SERVICE_ERRORS = (DriveError, CatalogError, ValueError)


@dataclass
class PendingDialog:
    state: str
    properties: List[Property] = field(default_factory=list)
    selected: Optional[Property] = None


def numbered(properties: List[Property]) -> str:
    return "\n".join(f"{index}. {prop.address}" for index, prop in enumerate(properties, 1))


def pick(properties: List[Property], text: str) -> Optional[Property]:
    try:
        index = int(text.strip())
    except ValueError:
        return None
    if 1 <= index <= len(properties):
        return properties[index - 1]
    return None


class PropertyCommands:
    def __init__(self, bot, property_service: PropertyService):
        self.bot = bot
        self.service = property_service
        self.pending: Dict[int, PendingDialog] = {}

    def cancel(self, user_id: int) -> bool:
        return self.pending.pop(user_id, None) is not None

    def has_pending(self, user_id: int) -> bool:
        return user_id in self.pending

    async def _reply(self, chat_id, text: str):
        await send_text(self.bot, chat_id, text)

    # -- commands ----------------------------------------------------------

    async def add_property(self, chat_id, user_id: int) -> None:
        self.pending[user_id] = PendingDialog(ADD)
        await self._reply(chat_id, "📍 Por favor, envía la dirección de la vivienda.")

    async def list_properties(self, chat_id) -> None:
        try:
            result = await self.service.list_properties()
        except SERVICE_ERRORS as e:
            logger.error(f"❌ Listing properties failed: {e}", exc_info=True)
            await self._reply(chat_id, "❌ Error al listar viviendas. Revisa los logs.")
            return

        if result.message:
            await self._reply(chat_id, result.message)
            return
        await self._reply(
            chat_id, f"📋 Viviendas registradas:\n\n{numbered(result.properties)}"
        )

    async def list_archived(self, chat_id) -> None:
        try:
            result = await self.service.list_archived_properties()
        except SERVICE_ERRORS as e:
            logger.error(f"❌ Listing archived properties failed: {e}", exc_info=True)
            await self._reply(
                chat_id, "❌ Error al listar viviendas archivadas. Revisa los logs."
            )
            return

        if result.message:
            await self._reply(chat_id, result.message)
            return
        await self._reply(
            chat_id, f"📦 Viviendas archivadas:\n\n{numbered(result.properties)}"
        )

    async def delete_property(self, chat_id, user_id: int) -> None:
        await self._start_pick(
            chat_id,
            user_id,
            DELETE_PICK,
            self.service.list_properties,
            "🗑️ ¿Qué vivienda quieres eliminar? Envía el número:",
        )

    async def archive_property(self, chat_id, user_id: int) -> None:
        await self._start_pick(
            chat_id,
            user_id,
            ARCHIVE_PICK,
            self.service.list_properties,
            "📦 ¿Qué vivienda quieres archivar? Envía el número:",
        )

    async def unarchive_property(self, chat_id, user_id: int) -> None:
        await self._start_pick(
            chat_id,
            user_id,
            UNARCHIVE_PICK,
            self.service.list_archived_properties,
            "♻️ ¿Qué vivienda quieres reactivar? Envía el número:",
        )

    async def _start_pick(self, chat_id, user_id, state, load, prompt) -> None:
        try:
            result = await load()
        except SERVICE_ERRORS as e:
            logger.error(f"❌ Loading properties for {state} failed: {e}", exc_info=True)
            await self._reply(chat_id, "❌ Error al listar viviendas. Revisa los logs.")
            return

        if result.message:
            await self._reply(chat_id, result.message)
            return

        self.pending[user_id] = PendingDialog(state, properties=result.properties)
        await self._reply(chat_id, f"{prompt}\n\n{numbered(result.properties)}")

    # -- dialog answers ----------------------------------------------------

    async def handle_text(self, chat_id, user_id: int, text: Optional[str]) -> bool:
        """Answer a pending dialog; False when the user has none."""
        dialog = self.pending.get(user_id)
        if dialog is None:
            return False

        text = text or ""
        if dialog.state == ADD:
            del self.pending[user_id]
            await self._add(chat_id, text)
        elif dialog.state == DELETE_PICK:
            await self._choose_for_delete(chat_id, user_id, dialog, text)
        elif dialog.state == DELETE_CONFIRM:
            await self._confirm_delete(chat_id, user_id, dialog, text)
        elif dialog.state == ARCHIVE_PICK:
            await self._choose_and_run(
                chat_id,
                user_id,
                dialog,
                text,
                self.service.archive_property,
                "❌ Error al archivar la vivienda. Revisa los logs.",
            )
        elif dialog.state == UNARCHIVE_PICK:
            await self._choose_and_run(
                chat_id,
                user_id,
                dialog,
                text,
                self.service.unarchive_property,
                "❌ Error al reactivar la vivienda. Revisa los logs.",
            )
        return True

    async def _add(self, chat_id, address: str) -> None:
        if not address.strip():
            await self._reply(chat_id, "⚠️ La dirección no puede estar vacía.")
            return
        try:
            result = await self.service.add_property(address)
        except SERVICE_ERRORS as e:
            logger.error(f"❌ Adding property failed: {e}", exc_info=True)
            await self._reply(chat_id, "❌ Error al crear la vivienda. Revisa los logs.")
            return
        await self._report(chat_id, result)

    async def _choose_for_delete(self, chat_id, user_id, dialog, text) -> None:
        selected = pick(dialog.properties, text)
        if selected is None:
            await self._reply(chat_id, INVALID_CHOICE_TEXT)
            return
        dialog.state = DELETE_CONFIRM
        dialog.selected = selected
        await self._reply(
            chat_id,
            f'⚠️ Vas a eliminar "{selected.address}" y todos sus documentos de forma '
            "permanente.\n\n"
            f'Escribe "{CONFIRM_WORD}" para continuar o "{CANCEL_WORD}" para abortar.',
        )

    async def _confirm_delete(self, chat_id, user_id, dialog, text) -> None:
        answer = text.strip().lower()
        if answer == CANCEL_WORD:
            del self.pending[user_id]
            await self._reply(chat_id, CANCELLED_TEXT)
            return
        if answer != CONFIRM_WORD:
            await self._reply(
                chat_id, f'⚠️ Escribe "{CONFIRM_WORD}" o "{CANCEL_WORD}":'
            )
            return

        del self.pending[user_id]
        try:
            result = await self.service.delete_property(dialog.selected.normalized_address)
        except SERVICE_ERRORS as e:
            logger.error(f"❌ Deleting property failed: {e}", exc_info=True)
            await self._reply(chat_id, "❌ Error al eliminar la vivienda. Revisa los logs.")
            return
        await self._report(chat_id, result)

    async def _choose_and_run(self, chat_id, user_id, dialog, text, action, failure) -> None:
        selected = pick(dialog.properties, text)
        if selected is None:
            await self._reply(chat_id, INVALID_CHOICE_TEXT)
            return

        del self.pending[user_id]
        try:
            result = await action(selected.normalized_address)
        except SERVICE_ERRORS as e:
            logger.error(f"❌ {action.__name__} failed: {e}", exc_info=True)
            await self._reply(chat_id, failure)
            return
        await self._report(chat_id, result)

    async def _report(self, chat_id, result) -> None:
        if result.success:
            await self._reply(chat_id, result.message)
        else:
            await self._reply(chat_id, f"⚠️ {result.message}")
