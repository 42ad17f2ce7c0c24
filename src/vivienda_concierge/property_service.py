import logging
import unicodedata
from dataclasses import dataclass, field
from typing import List, Optional

from .catalog import (
    CatalogRepository,
    add_property_record,
    list_active,
    list_archived,
    mark_archived,
    mark_deleted,
    mark_unarchived,
    find_property,
    utc_now_iso,
)
from .categories import get_current_year
from .constants import ARCHIVE_ROOT_FOLDER, PROPERTIES_ROOT_FOLDER
from .drive_client import DriveAdapter
from .exceptions import PropertyAlreadyExistsError, PropertyNotFoundError
from .models import Property, PropertyStatus
from .naming import normalize_address

logger = logging.getLogger(__name__)

ALREADY_EXISTS_MESSAGE = "La vivienda ya existe"
NOT_FOUND_MESSAGE = "Vivienda no encontrada"
EMPTY_LIST_MESSAGE = "No hay viviendas registradas. Usa /add_property para añadir una."
EMPTY_ARCHIVE_MESSAGE = "No hay viviendas archivadas."


@dataclass
class PropertyResult:
    """Outcome of a property mutation; ``success=False`` is a business result."""

    success: bool
    message: str
    property: Optional[Property] = None
    normalized_address: Optional[str] = None


@dataclass
class PropertyListResult:
    """Either a non-empty ``properties`` list or a ``message``, never both."""

    properties: List[Property] = field(default_factory=list)
    message: Optional[str] = None


def address_sort_key(address: str) -> str:
    decomposed = unicodedata.normalize("NFKD", address or "")
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return stripped.casefold()


def _sorted(properties: List[Property]) -> List[Property]:
    return sorted(properties, key=lambda p: address_sort_key(p.address))


class PropertyService:
    """Keeps the catalog and the Drive folder tree of each property in step."""

    def __init__(self, drive: DriveAdapter, base_folder_id: str):
        if drive is None:
            raise ValueError("Drive client is required")
        if not base_folder_id:
            raise ValueError("Base folder ID is required")
        self.drive = drive
        self.base_folder_id = base_folder_id
        self.catalog = CatalogRepository(drive, base_folder_id)

    async def add_property(self, address: str) -> PropertyResult:
        if address is None:
            raise ValueError("Address is required")
        normalized = normalize_address(address)
        if not normalized:
            raise ValueError("Address cannot be empty after normalization")

        snapshot = await self.catalog.read()
        if find_property(
            snapshot.catalog,
            normalized,
            statuses=(PropertyStatus.ACTIVE, PropertyStatus.ARCHIVED),
        ):
            return PropertyResult(False, ALREADY_EXISTS_MESSAGE, normalized_address=normalized)

        # Folders first: a failing catalog write leaves an orphan tree behind
        folder_id = await self.drive.create_folder_structure(
            self.base_folder_id, normalized, get_current_year()
        )
        record = Property(
            address=address,
            normalized_address=normalized,
            property_folder_id=folder_id,
            created_at=utc_now_iso(),
            status=PropertyStatus.ACTIVE,
        )

        try:
            await self.catalog.mutate(lambda catalog: add_property_record(catalog, record))
        except PropertyAlreadyExistsError:
            logger.warning(f"Property '{normalized}' was added concurrently")
            return PropertyResult(False, ALREADY_EXISTS_MESSAGE, normalized_address=normalized)

        logger.info(f"🏠 Property '{normalized}' created ({folder_id})")
        return PropertyResult(
            True,
            f'✅ Vivienda "{record.address}" creada con éxito',
            property=record,
            normalized_address=normalized,
        )

    async def list_properties(self) -> PropertyListResult:
        snapshot = await self.catalog.read()
        active = _sorted(list_active(snapshot.catalog))
        if not active:
            return PropertyListResult(message=EMPTY_LIST_MESSAGE)
        return PropertyListResult(properties=active)

    async def list_archived_properties(self) -> PropertyListResult:
        snapshot = await self.catalog.read()
        archived = _sorted(list_archived(snapshot.catalog))
        if not archived:
            return PropertyListResult(message=EMPTY_ARCHIVE_MESSAGE)
        return PropertyListResult(properties=archived)

    async def delete_property(self, normalized_address: str) -> PropertyResult:
        """Soft-delete in the catalog, then remove the Drive folder for good."""
        if not normalized_address:
            raise ValueError("Normalized address is required")

        try:
            deleted = await self.catalog.mutate(
                lambda catalog: mark_deleted(catalog, normalized_address)
            )
        except PropertyNotFoundError:
            return PropertyResult(False, NOT_FOUND_MESSAGE, normalized_address=normalized_address)

        await self.drive.delete_folder(deleted.property_folder_id)
        logger.info(f"🗑️ Property '{normalized_address}' deleted")
        return PropertyResult(
            True,
            f'✅ Vivienda "{deleted.address}" eliminada del catálogo',
            property=deleted,
            normalized_address=normalized_address,
        )

    async def archive_property(self, normalized_address: str) -> PropertyResult:
        return await self._move_and_flip(
            normalized_address,
            expected=PropertyStatus.ACTIVE,
            target_root=ARCHIVE_ROOT_FOLDER,
            change=mark_archived,
            done=lambda p: f'✅ Vivienda "{p.address}" archivada correctamente',
        )

    async def unarchive_property(self, normalized_address: str) -> PropertyResult:
        return await self._move_and_flip(
            normalized_address,
            expected=PropertyStatus.ARCHIVED,
            target_root=PROPERTIES_ROOT_FOLDER,
            change=mark_unarchived,
            done=lambda p: f'✅ Vivienda "{p.address}" reactivada correctamente',
        )

    async def _move_and_flip(self, normalized_address, expected, target_root, change, done):
        if not normalized_address:
            raise ValueError("Normalized address is required")

        snapshot = await self.catalog.read()
        current = find_property(snapshot.catalog, normalized_address, statuses=(expected,))
        if current is None:
            return PropertyResult(False, NOT_FOUND_MESSAGE, normalized_address=normalized_address)

        root_id = await self.drive.find_or_create_folder(target_root, self.base_folder_id)
        await self.drive.move_folder(current.property_folder_id, root_id)

        try:
            updated = await self.catalog.mutate(
                lambda catalog: change(catalog, normalized_address)
            )
        except PropertyNotFoundError:
            return PropertyResult(False, NOT_FOUND_MESSAGE, normalized_address=normalized_address)

        logger.info(f"Property '{normalized_address}' is now {updated.status.value}")
        return PropertyResult(
            True, done(updated), property=updated, normalized_address=normalized_address
        )
