"""Property catalog stored as a JSON file in the base Drive folder.

The catalog is a tiny document database with optimistic concurrency: every
read returns the Drive file ``version`` as a revision marker and writes are
refused when the file moved on in between. ``mutate`` wraps the
read-modify-write cycle in a bounded retry.

Drive has no conditional update, so a narrow window remains between the
revision check and the upload itself; with a handful of users this is an
accepted limitation.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, TypeVar

from .constants import CATALOG_FILE_NAME, CATALOG_MAX_WRITE_ATTEMPTS, CATALOG_VERSION
from .drive_client import DriveAdapter
from .exceptions import (
    CatalogConflictError,
    CatalogCorruptedError,
    CatalogStructureError,
    PropertyAlreadyExistsError,
    PropertyNotFoundError,
)
from .models import Catalog, CatalogSnapshot, Property, PropertyStatus

logger = logging.getLogger(__name__)

CATALOG_MIME_TYPE = "application/json"
_FILE_FIELDS = "files(id, name, version)"

T = TypeVar("T")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_catalog(text: str) -> Catalog:
    """Parse catalog JSON. Malformed data is fatal and never repaired."""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise CatalogCorruptedError(f"Catalog JSON is corrupted: {e}") from e

    if (
        not isinstance(data, dict)
        or "version" not in data
        or not isinstance(data.get("properties"), list)
    ):
        raise CatalogStructureError()

    try:
        properties = [Property.from_dict(item) for item in data["properties"]]
    except (AttributeError, TypeError, ValueError) as e:
        raise CatalogStructureError(f"Catalog JSON has invalid structure: {e}") from e

    return Catalog(
        version=data["version"],
        updated_at=data.get("updatedAt"),
        properties=properties,
    )


def serialize_catalog(catalog: Catalog) -> str:
    return json.dumps(catalog.to_dict(), ensure_ascii=False, indent=2)


# -- pure catalog operations ---------------------------------------------


def find_property(
    catalog: Catalog, normalized_address: str, statuses=None
) -> Optional[Property]:
    for prop in catalog.properties:
        if prop.normalized_address != normalized_address:
            continue
        if statuses is None or prop.status in statuses:
            return prop
    return None


def add_property_record(catalog: Catalog, record: Property) -> Property:
    existing = find_property(
        catalog,
        record.normalized_address,
        statuses=(PropertyStatus.ACTIVE, PropertyStatus.ARCHIVED),
    )
    if existing:
        raise PropertyAlreadyExistsError()
    catalog.properties.append(record)
    return record


def list_active(catalog: Catalog) -> List[Property]:
    return [p for p in catalog.properties if p.status == PropertyStatus.ACTIVE]


def list_archived(catalog: Catalog) -> List[Property]:
    return [p for p in catalog.properties if p.status == PropertyStatus.ARCHIVED]


def mark_deleted(catalog: Catalog, normalized_address: str) -> Property:
    prop = find_property(
        catalog,
        normalized_address,
        statuses=(PropertyStatus.ACTIVE, PropertyStatus.ARCHIVED),
    )
    if prop is None:
        raise PropertyNotFoundError()
    prop.status = PropertyStatus.DELETED
    prop.deleted_at = utc_now_iso()
    return prop


def mark_archived(catalog: Catalog, normalized_address: str) -> Property:
    prop = find_property(catalog, normalized_address, statuses=(PropertyStatus.ACTIVE,))
    if prop is None:
        raise PropertyNotFoundError()
    prop.status = PropertyStatus.ARCHIVED
    prop.archived_at = utc_now_iso()
    return prop


def mark_unarchived(catalog: Catalog, normalized_address: str) -> Property:
    prop = find_property(
        catalog, normalized_address, statuses=(PropertyStatus.ARCHIVED,)
    )
    if prop is None:
        raise PropertyNotFoundError("Archived property not found")
    prop.status = PropertyStatus.ACTIVE
    prop.unarchived_at = utc_now_iso()
    return prop


# -- repository ------------------------------------------------------------


class CatalogRepository:
    def __init__(self, drive: DriveAdapter, base_folder_id: str):
        if drive is None:
            raise ValueError("Drive client is required")
        if not base_folder_id:
            raise ValueError("Base folder ID is required")
        self.drive = drive
        self.base_folder_id = base_folder_id

    async def _locate(self):
        return await self.drive.find_file(
            self.base_folder_id, CATALOG_FILE_NAME, fields=_FILE_FIELDS
        )

    async def read(self) -> CatalogSnapshot:
        """Read the catalog; a missing file yields an empty one (not created)."""
        file = await self._locate()
        if file is None:
            return CatalogSnapshot(catalog=Catalog(version=CATALOG_VERSION))

        text = await self.drive.download_text(file["id"])
        catalog = parse_catalog(text)
        return CatalogSnapshot(
            catalog=catalog,
            revision=_revision_of(file),
            file_id=file["id"],
        )

    async def write(
        self, catalog: Catalog, expected_revision: Optional[str] = None
    ) -> CatalogSnapshot:
        """Write the catalog if nobody else wrote it since ``expected_revision``.

        The file is located again right before writing instead of trusting a
        previously held id.
        """
        file = await self._locate()
        current_revision = _revision_of(file) if file else None
        if current_revision != expected_revision:
            raise CatalogConflictError(
                f"Catalog changed (expected revision {expected_revision}, "
                f"found {current_revision})"
            )

        catalog.updated_at = utc_now_iso()
        payload = serialize_catalog(catalog).encode("utf-8")

        if file:
            written = await self.drive.update_file_content(
                file["id"], payload, CATALOG_MIME_TYPE, fields="id, version"
            )
        else:
            written = await self.drive.create_file(
                payload,
                CATALOG_FILE_NAME,
                CATALOG_MIME_TYPE,
                self.base_folder_id,
                fields="id, version",
            )
            logger.info(f"🗂️ Created catalog file {written.get('id')}")

        return CatalogSnapshot(
            catalog=catalog, revision=_revision_of(written), file_id=written.get("id")
        )

    async def mutate(
        self,
        change: Callable[[Catalog], T],
        max_attempts: int = CATALOG_MAX_WRITE_ATTEMPTS,
    ) -> T:
        """Read, apply ``change`` and write, retrying on revision conflicts.

        ``change`` may raise to abort; the catalog is then left untouched.
        """
        for attempt in range(1, max_attempts + 1):
            snapshot = await self.read()
            result = change(snapshot.catalog)
            try:
                await self.write(snapshot.catalog, expected_revision=snapshot.revision)
                return result
            except CatalogConflictError as e:
                logger.warning(
                    f"Catalog write conflict (attempt {attempt}/{max_attempts}): {e}"
                )
                if attempt == max_attempts:
                    raise
        raise CatalogConflictError("Catalog write never attempted")


def _revision_of(file) -> Optional[str]:
    if not file:
        return None
    version = file.get("version")
    return str(version) if version is not None else None
