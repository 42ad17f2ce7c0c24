"""Transition tests for the bulk upload conversation (no I/O involved)."""

from vivienda_concierge.flows import bulk
from vivienda_concierge.flows.common import CANCELLED_TEXT, CUSTOM_YEAR_PROMPT, LIST_PROPERTIES_FAILED_TEXT
from vivienda_concierge.flows.events import (
    AddFile,
    ButtonPressed,
    CheckDuplicates,
    ClearSession,
    Command,
    CommandSet,
    DuplicatesChecked,
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
)
from vivienda_concierge.models import BulkFile, Property
from vivienda_concierge.property_service import PropertyListResult
from vivienda_concierge.sessions import BulkSession, BulkState
from vivienda_concierge.upload_service import UploadResult

HOUSE = Property(address="Calle Mayor 1", normalized_address="Calle Mayor 1", property_folder_id="p1")
PDF = BulkFile("f1", "u1", "application/pdf", "contrato.pdf")
PHOTO = BulkFile("f2", "u2", "image/jpeg")


def session(state=BulkState.COLLECTING_FILES, files=(PDF,), **kwargs):
    return BulkSession(chat_id=1, files=list(files), state=state, **kwargs)


def step(current, event):
    return bulk.transition(current, event, current_year="2025")


def texts(effects):
    return [e.text for e in effects if isinstance(e, Reply)]


def callback_data(effects):
    reply = next(e for e in effects if isinstance(e, Reply) and e.buttons)
    return [data for row in reply.buttons for _, data in row]


def test_bulk_command_starts_session_and_bulk_menu():
    effects = step(None, Command("bulk"))
    assert effects == [
        StartSession(),
        SetChatCommands(CommandSet.BULK_MODE),
        Reply(bulk.BULK_STARTED_TEXT),
    ]


def test_bulk_done_requires_session_and_files():
    assert texts(step(None, Command("bulk_done"))) == [bulk.NO_SESSION_TEXT]
    assert texts(step(session(files=()), Command("bulk_done"))) == [bulk.NO_FILES_TEXT]
    assert step(session(), Command("bulk_done")) == [LoadProperties()]


def test_bulk_done_outside_collecting_is_ignored():
    for state in (
        BulkState.WAITING_FOR_PROPERTY,
        BulkState.WAITING_FOR_CONFIRMATION,
        BulkState.UPLOADING,
    ):
        assert step(session(state, properties=[HOUSE]), Command("bulk_done")) == []


def test_other_commands_while_collecting_are_rejected():
    assert texts(step(session(), Command("list_properties"))) == [bulk.ONLY_FILES_TEXT]
    assert step(session(BulkState.WAITING_FOR_CATEGORY), Command("list_properties")) is None
    assert step(None, Command("list_properties")) is None


def test_files_are_queued_with_running_count():
    info = {"file_id": "f3", "file_unique_id": "u3", "mime_type": "image/jpeg", "file_name": None}
    effects = step(session(), FileReceived(None, info))

    assert effects[0] == AddFile(BulkFile("f3", "u3", "image/jpeg"))
    assert texts(effects) == ["➕ Añadido (2 archivos en cola)"]

    first = step(session(files=()), FileReceived(None, info))
    assert texts(first) == ["➕ Añadido (1 archivo en cola)"]


def test_non_files_while_collecting_are_rejected():
    assert texts(step(session(), TextReceived("hola"))) == [bulk.ONLY_FILES_TEXT]
    assert texts(step(session(), UnsupportedMessage())) == [bulk.ONLY_FILES_TEXT]
    assert texts(step(session(), FileReceived(None, {"file_id": "x"}))) == [bulk.ONLY_FILES_TEXT]


def test_files_after_collecting_are_not_for_bulk():
    info = {"file_id": "f3", "file_unique_id": "u3", "mime_type": "image/jpeg"}
    assert step(session(BulkState.WAITING_FOR_PROPERTY), FileReceived(None, info)) is None
    assert step(None, FileReceived(None, info)) is None


def test_properties_loaded_offers_keyboard():
    effects = step(session(), PropertiesLoaded(PropertyListResult(properties=[HOUSE])))
    assert effects[0] == UpdateSession(BulkState.WAITING_FOR_PROPERTY, {"properties": [HOUSE]})
    assert callback_data(effects) == ["bulk_property_0", "bulk_cancel"]


def test_no_properties_ends_session():
    effects = step(session(), PropertiesLoaded(PropertyListResult(message="No hay viviendas")))
    assert effects == [SetChatCommands(CommandSet.DEFAULT), ClearSession(), Reply("No hay viviendas")]


def test_property_then_category_then_year_buttons():
    waiting = session(BulkState.WAITING_FOR_PROPERTY, properties=[HOUSE])
    effects = step(waiting, ButtonPressed("bulk_property_0"))
    assert effects[0] == UpdateSession(BulkState.WAITING_FOR_CATEGORY, {"selected_property": HOUSE})
    assert "bulk_category_Facturas_Reformas" in callback_data(effects)

    effects = step(session(BulkState.WAITING_FOR_CATEGORY), ButtonPressed("bulk_category_Seguros"))
    assert effects[0] == UpdateSession(BulkState.WAITING_FOR_YEAR, {"category": "Seguros"})
    assert callback_data(effects) == ["bulk_year_2025", "bulk_year_custom", "bulk_cancel"]


def test_stale_or_bogus_buttons_are_ignored():
    assert step(session(BulkState.WAITING_FOR_CATEGORY, properties=[HOUSE]), ButtonPressed("bulk_property_0")) == []
    assert step(session(BulkState.WAITING_FOR_PROPERTY, properties=[HOUSE]), ButtonPressed("bulk_property_7")) == []
    assert step(session(BulkState.WAITING_FOR_CATEGORY), ButtonPressed("bulk_category_Recetas")) == []
    assert step(session(BulkState.WAITING_FOR_YEAR), ButtonPressed("bulk_year_1800")) == []
    assert step(None, ButtonPressed("bulk_confirm")) == []


def test_foreign_buttons_are_not_for_bulk():
    assert step(session(), ButtonPressed("individual_cancel")) is None


def test_cancel_button_restores_menu_and_clears():
    effects = step(session(BulkState.WAITING_FOR_YEAR), ButtonPressed("bulk_cancel"))
    assert effects == [SetChatCommands(CommandSet.DEFAULT), ClearSession(), Reply(CANCELLED_TEXT)]


def test_year_with_named_files_goes_to_confirmation():
    current = session(BulkState.WAITING_FOR_YEAR, selected_property=HOUSE, category="Seguros")
    effects = step(current, ButtonPressed("bulk_year_2025"))

    assert effects[0] == UpdateSession(BulkState.WAITING_FOR_CONFIRMATION, {"year": "2025"})
    assert "📍 Vivienda: Calle Mayor 1" in texts(effects)[0]
    assert "📅 Año: 2025" in texts(effects)[0]
    assert callback_data(effects) == ["bulk_confirm", "bulk_cancel"]


def test_year_with_unnamed_photos_asks_for_base_name():
    current = session(BulkState.WAITING_FOR_YEAR, files=(PDF, PHOTO), selected_property=HOUSE, category="Otros")
    effects = step(current, ButtonPressed("bulk_year_2025"))
    assert effects[0] == UpdateSession(BulkState.WAITING_FOR_BASENAME, {"year": "2025"})
    assert texts(effects)[0].startswith("📸 Tienes 1 foto/video sin nombre.")


def test_custom_year():
    effects = step(session(BulkState.WAITING_FOR_YEAR), ButtonPressed("bulk_year_custom"))
    assert effects == [UpdateSession(BulkState.WAITING_FOR_CUSTOM_YEAR), Reply(CUSTOM_YEAR_PROMPT)]

    current = session(BulkState.WAITING_FOR_CUSTOM_YEAR, selected_property=HOUSE, category="Seguros")
    assert texts(step(current, TextReceived("24"))) == [
        "⚠️ Year must be in YYYY format. Envía un año válido en formato YYYY:"
    ]
    accepted = step(current, TextReceived(" 2019 "))
    assert accepted[0] == UpdateSession(BulkState.WAITING_FOR_CONFIRMATION, {"year": "2019"})


def test_base_name_and_skip():
    current = session(
        BulkState.WAITING_FOR_BASENAME,
        files=(PDF, PHOTO),
        selected_property=HOUSE,
        category="Otros",
        year="2025",
    )
    named = step(current, TextReceived("Piso Centro"))
    assert named[0] == UpdateSession(BulkState.WAITING_FOR_CONFIRMATION, {"base_name": "Piso Centro"})
    assert "📝 Nombre base: Piso Centro (1 archivo)" in texts(named)[0]

    skipped = step(current, TextReceived("SKIP"))
    assert skipped[0] == UpdateSession(BulkState.WAITING_FOR_CONFIRMATION, {"base_name": None})
    assert "Nombre base" not in texts(skipped)[0]

    assert texts(step(current, TextReceived("   "))) == [bulk.INVALID_BASENAME_TEXT]


def test_confirm_checks_duplicates_then_uploads():
    confirmed = step(session(BulkState.WAITING_FOR_CONFIRMATION), ButtonPressed("bulk_confirm"))
    assert confirmed == [UpdateSession(BulkState.CHECKING_DUPLICATES), CheckDuplicates()]

    clean = step(session(BulkState.CHECKING_DUPLICATES), DuplicatesChecked([]))
    assert clean[-1] == UploadFiles(replace=False)


def test_duplicates_ask_for_replacement():
    effects = step(session(BulkState.CHECKING_DUPLICATES), DuplicatesChecked(["contrato.pdf"]))
    assert effects[0] == UpdateSession(BulkState.WAITING_FOR_REPLACE_CONFIRMATION)
    assert "• contrato.pdf" in texts(effects)[0]
    assert callback_data(effects) == ["bulk_confirm_replace", "bulk_cancel"]

    replace = step(
        session(BulkState.WAITING_FOR_REPLACE_CONFIRMATION), ButtonPressed("bulk_confirm_replace")
    )
    assert replace[-1] == UploadFiles(replace=True)


def test_upload_report():
    results = [
        UploadResult(True, "a.pdf", drive_file_id="1"),
        UploadResult(False, "b.pdf", error="boom"),
    ]
    effects = step(session(BulkState.UPLOADING), UploadsFinished(results))
    assert effects[:2] == [SetChatCommands(CommandSet.DEFAULT), ClearSession()]
    assert texts(effects) == ["✅ Subidos 1 archivo\n\n⚠️ Fallaron 1 archivo:\n• b.pdf: boom"]

    assert bulk.upload_report([UploadResult(True, "a"), UploadResult(True, "b")]) == "✅ Subidos 2 archivos"


def test_failed_effects():
    assert texts(step(session(), EffectFailed(LoadProperties(), "x"))) == [LIST_PROPERTIES_FAILED_TEXT]

    dup = step(session(BulkState.CHECKING_DUPLICATES), EffectFailed(CheckDuplicates(), "x"))
    assert dup == [
        UpdateSession(BulkState.WAITING_FOR_CONFIRMATION),
        Reply(bulk.DUPLICATE_CHECK_FAILED_TEXT),
    ]

    upload = step(session(BulkState.UPLOADING), EffectFailed(UploadFiles(), "x"))
    assert upload == [
        SetChatCommands(CommandSet.DEFAULT),
        ClearSession(),
        Reply(bulk.UPLOAD_FAILED_TEXT),
    ]
