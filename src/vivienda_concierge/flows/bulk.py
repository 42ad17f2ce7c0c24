"""Bulk upload conversation.

collecting_files -> waiting_for_property -> waiting_for_category ->
waiting_for_year [-> waiting_for_custom_year] [-> waiting_for_basename] ->
waiting_for_confirmation -> checking_duplicates
[-> waiting_for_replace_confirmation] -> uploading -> (cleared)

``transition`` returns ``None`` when the event is not for this flow so the
dispatcher can offer it to the next handler.
"""

from typing import List, Optional

from ..categories import get_current_year, validate_year
from ..constants import BULK_CALLBACK_PREFIX as PREFIX
from ..models import BulkFile
from ..naming import count_files_needing_name, is_skip
from ..sessions import BulkSession, BulkState
from .common import (
    CANCELLED_TEXT,
    CUSTOM_YEAR_PROMPT,
    LIST_PROPERTIES_FAILED_TEXT,
    category_buttons,
    invalid_year_text,
    pick_category,
    pick_property,
    plural,
    property_buttons,
    year_buttons,
)
from .events import (
    ButtonPressed,
    CheckDuplicates,
    ClearSession,
    Command,
    CommandSet,
    DuplicatesChecked,
    Effect,
    EffectFailed,
    FileReceived,
    LoadProperties,
    PropertiesLoaded,
    Reply,
    SetChatCommands,
    StartSession,
    TextReceived,
    UnsupportedMessage,
    UpdateSession,
    UploadFiles,
    UploadsFinished,
    AddFile,
)

BULK_STARTED_TEXT = (
    "📦 Modo bulk activado.\n"
    "Envía ahora varios documentos, fotos o videos.\n"
    "Cuando termines, escribe /bulk_done.\n"
    "Para cancelar: /cancel."
)
NO_SESSION_TEXT = "⚠️ No hay sesión bulk activa. Usa /bulk para iniciar."
NO_FILES_TEXT = "⚠️ No has enviado ningún archivo. Envía documentos o fotos primero."
ONLY_FILES_TEXT = "⚠️ Solo envía documentos, fotos o videos durante el modo bulk."
INVALID_BASENAME_TEXT = '⚠️ Envía un nombre válido o "skip" para usar nombres automáticos:'
UPLOADING_TEXT = "⏳ Subiendo archivos..."
DUPLICATE_CHECK_FAILED_TEXT = "❌ Error al verificar duplicados. Revisa los logs."
UPLOAD_FAILED_TEXT = "❌ Error al subir archivos. Revisa los logs."

CONFIRM_BUTTONS = [
    [("✅ Confirmar", f"{PREFIX}confirm")],
    [("❌ Cancelar", f"{PREFIX}cancel")],
]
REPLACE_BUTTONS = [
    [("✅ Sí, reemplazar", f"{PREFIX}confirm_replace")],
    [("❌ No, cancelar", f"{PREFIX}cancel")],
]


def _finish(text: str) -> List[Effect]:
    # Commands are restored before the session (and its saved menu) goes away
    return [SetChatCommands(CommandSet.DEFAULT), ClearSession(), Reply(text)]


def basename_prompt(count: int) -> str:
    s = plural(count)
    return (
        f"📸 Tienes {count} foto{s}/video{s} sin nombre.\n\n"
        "¿Qué nombre base quieres usar?\n"
        "(Se numerarán automáticamente: nombre_1, nombre_2, etc.)\n\n"
        'Envía el nombre o "skip" para usar nombres automáticos:'
    )


def confirmation_text(
    session: BulkSession, year: Optional[str], base_name: Optional[str]
) -> str:
    count = len(session.files)
    text = (
        f"Vas a guardar {count} archivo{plural(count)} en:\n\n"
        f"📍 Vivienda: {session.selected_property.address}\n"
        f"📂 Categoría: {session.category}\n"
        f"📅 Año: {year or 'N/A'}"
    )
    if base_name:
        unnamed = count_files_needing_name(session.files)
        text += f"\n📝 Nombre base: {base_name} ({unnamed} archivo{plural(unnamed)})"
    return text + "\n\n¿Confirmar?"


def duplicates_text(duplicates: List[str]) -> str:
    listing = "\n".join(f"• {name}" for name in duplicates)
    return (
        "⚠️ Los siguientes archivos ya existen en la carpeta destino:\n\n"
        f"{listing}\n\n¿Quieres reemplazarlos?"
    )


def upload_report(results) -> str:
    succeeded = [r for r in results if r.success]
    failed = [r for r in results if not r.success]
    text = f"✅ Subidos {len(succeeded)} archivo{plural(len(succeeded))}"
    if failed:
        listing = "\n".join(f"• {r.file_name}: {r.error}" for r in failed)
        text += f"\n\n⚠️ Fallaron {len(failed)} archivo{plural(len(failed))}:\n{listing}"
    return text


def _after_year(session: BulkSession, year: str) -> List[Effect]:
    unnamed = count_files_needing_name(session.files)
    if unnamed > 0:
        return [
            UpdateSession(BulkState.WAITING_FOR_BASENAME, {"year": year}),
            Reply(basename_prompt(unnamed)),
        ]
    return [
        UpdateSession(BulkState.WAITING_FOR_CONFIRMATION, {"year": year}),
        Reply(confirmation_text(session, year, session.base_name), CONFIRM_BUTTONS),
    ]


def _on_command(session: Optional[BulkSession], event: Command):
    if event.name == "bulk":
        return [
            StartSession(),
            SetChatCommands(CommandSet.BULK_MODE),
            Reply(BULK_STARTED_TEXT),
        ]
    if event.name == "bulk_done":
        if session is None:
            return [Reply(NO_SESSION_TEXT)]
        if session.state != BulkState.COLLECTING_FILES:
            return []
        if not session.files:
            return [Reply(NO_FILES_TEXT)]
        return [LoadProperties()]
    if session is not None and session.state == BulkState.COLLECTING_FILES:
        return [Reply(ONLY_FILES_TEXT)]
    return None


def _on_button(session: Optional[BulkSession], data: str, current_year: str):
    if session is None:
        return []
    if data == f"{PREFIX}cancel":
        return _finish(CANCELLED_TEXT)

    state = session.state
    action = data[len(PREFIX):]

    # Buttons from an earlier step are ignored once the session moved on
    if action.startswith("property_") and state == BulkState.WAITING_FOR_PROPERTY:
        selected = pick_property(session.properties, action[len("property_"):])
        if selected is None:
            return []
        return [
            UpdateSession(BulkState.WAITING_FOR_CATEGORY, {"selected_property": selected}),
            Reply("¿En qué categoría?", category_buttons(PREFIX)),
        ]

    if action.startswith("category_") and state == BulkState.WAITING_FOR_CATEGORY:
        category = pick_category(action[len("category_"):])
        if category is None:
            return []
        return [
            UpdateSession(BulkState.WAITING_FOR_YEAR, {"category": category}),
            Reply("¿Año?", year_buttons(PREFIX, current_year)),
        ]

    if action == "year_custom" and state == BulkState.WAITING_FOR_YEAR:
        return [
            UpdateSession(BulkState.WAITING_FOR_CUSTOM_YEAR),
            Reply(CUSTOM_YEAR_PROMPT),
        ]

    if action.startswith("year_") and state == BulkState.WAITING_FOR_YEAR:
        year = action[len("year_"):]
        if not validate_year(year).valid:
            return []
        return _after_year(session, year)

    if action == "confirm" and state == BulkState.WAITING_FOR_CONFIRMATION:
        return [UpdateSession(BulkState.CHECKING_DUPLICATES), CheckDuplicates()]

    if action == "confirm_replace" and state == BulkState.WAITING_FOR_REPLACE_CONFIRMATION:
        return [
            UpdateSession(BulkState.UPLOADING),
            Reply(UPLOADING_TEXT),
            UploadFiles(replace=True),
        ]

    return []


def _on_text(session: BulkSession, text: str):
    if session.state == BulkState.COLLECTING_FILES:
        return [Reply(ONLY_FILES_TEXT)]

    if session.state == BulkState.WAITING_FOR_CUSTOM_YEAR:
        year = text.strip()
        validation = validate_year(year)
        if not validation.valid:
            return [Reply(invalid_year_text(validation.error))]
        return _after_year(session, year)

    if session.state == BulkState.WAITING_FOR_BASENAME:
        base_name = text.strip()
        if not base_name:
            return [Reply(INVALID_BASENAME_TEXT)]
        if is_skip(base_name):
            base_name = None
        return [
            UpdateSession(BulkState.WAITING_FOR_CONFIRMATION, {"base_name": base_name}),
            Reply(confirmation_text(session, session.year, base_name), CONFIRM_BUTTONS),
        ]

    return None


def _on_file(session: BulkSession, event: FileReceived):
    if session.state != BulkState.COLLECTING_FILES:
        return None
    if not event.bulk_info:
        return [Reply(ONLY_FILES_TEXT)]
    try:
        bulk_file = BulkFile.from_info(event.bulk_info)
    except ValueError:
        return [Reply(ONLY_FILES_TEXT)]
    queued = len(session.files) + 1
    return [
        AddFile(bulk_file),
        Reply(f"➕ Añadido ({queued} archivo{plural(queued)} en cola)"),
    ]


def transition(
    session: Optional[BulkSession], event, current_year: Optional[str] = None
) -> Optional[List[Effect]]:
    current_year = current_year or get_current_year()

    if isinstance(event, Command):
        return _on_command(session, event)

    if isinstance(event, ButtonPressed):
        if not event.data.startswith(PREFIX):
            return None
        return _on_button(session, event.data, current_year)

    if session is None:
        return None

    if isinstance(event, FileReceived):
        return _on_file(session, event)

    if isinstance(event, UnsupportedMessage):
        if session.state == BulkState.COLLECTING_FILES:
            return [Reply(ONLY_FILES_TEXT)]
        return None

    if isinstance(event, TextReceived):
        return _on_text(session, event.text)

    if isinstance(event, PropertiesLoaded):
        if event.result.message:
            return _finish(event.result.message)
        return [
            UpdateSession(
                BulkState.WAITING_FOR_PROPERTY, {"properties": event.result.properties}
            ),
            Reply(
                "¿A qué vivienda pertenecen?",
                property_buttons(PREFIX, event.result.properties),
            ),
        ]

    if isinstance(event, DuplicatesChecked):
        if event.duplicates:
            return [
                UpdateSession(BulkState.WAITING_FOR_REPLACE_CONFIRMATION),
                Reply(duplicates_text(event.duplicates), REPLACE_BUTTONS),
            ]
        return [
            UpdateSession(BulkState.UPLOADING),
            Reply(UPLOADING_TEXT),
            UploadFiles(replace=False),
        ]

    if isinstance(event, UploadsFinished):
        return _finish(upload_report(event.results))

    if isinstance(event, EffectFailed):
        if isinstance(event.effect, LoadProperties):
            return [Reply(LIST_PROPERTIES_FAILED_TEXT)]
        if isinstance(event.effect, CheckDuplicates):
            return [
                UpdateSession(BulkState.WAITING_FOR_CONFIRMATION),
                Reply(DUPLICATE_CHECK_FAILED_TEXT),
            ]
        if isinstance(event.effect, UploadFiles):
            return _finish(UPLOAD_FAILED_TEXT)
        return None

    return None
