"""Single-file upload conversation.

A file sent outside bulk mode starts it: waiting_for_property ->
waiting_for_category -> waiting_for_year [-> waiting_for_custom_year]
[-> waiting_for_filename] -> uploading -> (cleared)
"""

from typing import List, Optional

from ..categories import get_current_year, validate_year
from ..constants import INDIVIDUAL_CALLBACK_PREFIX as PREFIX
from ..naming import (
    PLACEHOLDER_NAMES,
    file_extension_for_mime,
    is_skip,
    split_extension,
    to_snake_case,
)
from ..sessions import IndividualState, IndividualUploadSession
from .common import (
    CANCELLED_TEXT,
    CUSTOM_YEAR_PROMPT,
    LIST_PROPERTIES_FAILED_TEXT,
    category_buttons,
    invalid_year_text,
    pick_category,
    pick_property,
    property_buttons,
    year_buttons,
)
from .events import (
    ButtonPressed,
    ClearSession,
    Effect,
    EffectFailed,
    FileReceived,
    LoadProperties,
    PropertiesLoaded,
    Reply,
    SingleUploadFinished,
    StartSession,
    TextReceived,
    UpdateSession,
    UploadSingleFile,
)

FILENAME_PROMPT = (
    "¿Qué nombre quieres darle al archivo?\n\n"
    'Envía el nombre (sin extensión) o "skip" para usar nombre automático:'
)
INVALID_FILENAME_TEXT = '⚠️ Envía un nombre válido o "skip":'
UPLOADING_TEXT = "⏳ Subiendo archivo..."
UPLOAD_FAILED_TEXT = "❌ Error al subir el archivo. Revisa los logs."
FALLBACK_STEM = "archivo"


def needs_file_name(original_name: Optional[str]) -> bool:
    return not original_name or original_name in PLACEHOLDER_NAMES


def final_file_name(name: str) -> str:
    """Snake-case the stem, keep the extension, never return a bare extension."""
    stem, extension = split_extension(name)
    return (to_snake_case(stem) or FALLBACK_STEM) + extension


def success_text(session: IndividualUploadSession, file_name: str) -> str:
    return (
        f'✅ Archivo "{file_name}" subido correctamente en:\n'
        f"📍 {session.selected_property.address}\n"
        f"📂 {session.category}\n"
        f"📅 {session.year or 'N/A'}"
    )


def _upload(file_name: str) -> List[Effect]:
    return [
        UpdateSession(IndividualState.UPLOADING),
        Reply(UPLOADING_TEXT),
        UploadSingleFile(final_file_name(file_name)),
    ]


def _after_year(session: IndividualUploadSession, year: str) -> List[Effect]:
    if needs_file_name(session.file_info.original_name):
        return [
            UpdateSession(IndividualState.WAITING_FOR_FILENAME, {"year": year}),
            Reply(FILENAME_PROMPT),
        ]
    return [UpdateSession(changes={"year": year})] + _upload(
        session.file_info.original_name
    )


def _on_button(session: Optional[IndividualUploadSession], data: str, current_year: str):
    if session is None:
        return []
    if data == f"{PREFIX}cancel":
        return [ClearSession(), Reply(CANCELLED_TEXT)]

    state = session.state
    action = data[len(PREFIX):]

    if action.startswith("property_") and state == IndividualState.WAITING_FOR_PROPERTY:
        selected = pick_property(session.properties, action[len("property_"):])
        if selected is None:
            return []
        return [
            UpdateSession(
                IndividualState.WAITING_FOR_CATEGORY, {"selected_property": selected}
            ),
            Reply("¿En qué categoría?", category_buttons(PREFIX)),
        ]

    if action.startswith("category_") and state == IndividualState.WAITING_FOR_CATEGORY:
        category = pick_category(action[len("category_"):])
        if category is None:
            return []
        return [
            UpdateSession(IndividualState.WAITING_FOR_YEAR, {"category": category}),
            Reply("¿Año?", year_buttons(PREFIX, current_year)),
        ]

    if action == "year_custom" and state == IndividualState.WAITING_FOR_YEAR:
        return [
            UpdateSession(IndividualState.WAITING_FOR_CUSTOM_YEAR),
            Reply(CUSTOM_YEAR_PROMPT),
        ]

    if action.startswith("year_") and state == IndividualState.WAITING_FOR_YEAR:
        year = action[len("year_"):]
        if not validate_year(year).valid:
            return []
        return _after_year(session, year)

    return []


def _on_text(session: IndividualUploadSession, text: str):
    if session.state == IndividualState.WAITING_FOR_CUSTOM_YEAR:
        year = text.strip()
        validation = validate_year(year)
        if not validation.valid:
            return [Reply(invalid_year_text(validation.error))]
        return _after_year(session, year)

    if session.state == IndividualState.WAITING_FOR_FILENAME:
        name = text.strip()
        if not name:
            return [Reply(INVALID_FILENAME_TEXT)]
        if is_skip(name):
            return _upload(session.file_info.original_name or FALLBACK_STEM)
        stem = to_snake_case(name)
        if not stem:
            return [Reply(INVALID_FILENAME_TEXT)]
        return _upload(stem + file_extension_for_mime(session.file_info.mime_type))

    return None


def transition(
    session: Optional[IndividualUploadSession], event, current_year: Optional[str] = None
) -> Optional[List[Effect]]:
    current_year = current_year or get_current_year()

    if isinstance(event, FileReceived):
        if event.file_info is None:
            return None
        # A new file always restarts the conversation for this chat
        return [StartSession(event.file_info), LoadProperties()]

    if isinstance(event, ButtonPressed):
        if not event.data.startswith(PREFIX):
            return None
        return _on_button(session, event.data, current_year)

    if session is None:
        return None

    if isinstance(event, TextReceived):
        return _on_text(session, event.text)

    if isinstance(event, PropertiesLoaded):
        if event.result.message:
            return [ClearSession(), Reply(event.result.message)]
        return [
            UpdateSession(
                IndividualState.WAITING_FOR_PROPERTY,
                {"properties": event.result.properties},
            ),
            Reply(
                "¿A qué vivienda pertenece?",
                property_buttons(PREFIX, event.result.properties),
            ),
        ]

    if isinstance(event, SingleUploadFinished):
        return [ClearSession(), Reply(success_text(session, event.file_name))]

    if isinstance(event, EffectFailed):
        if isinstance(event.effect, LoadProperties):
            return [ClearSession(), Reply(LIST_PROPERTIES_FAILED_TEXT)]
        if isinstance(event.effect, UploadSingleFile):
            return [ClearSession(), Reply(UPLOAD_FAILED_TEXT)]
        return None

    return None
