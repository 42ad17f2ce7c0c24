"""Value objects shared by the catalog, the services and the upload flows."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .constants import CATALOG_VERSION


class PropertyStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    DELETED = "deleted"


@dataclass
class BulkFile:
    """One file collected during a bulk upload.

    Telegram photos carry no file name, so a deterministic one is derived
    from ``file_unique_id`` when the sender gave none.
    """

    file_id: str
    file_unique_id: str
    mime_type: str
    file_name: Optional[str] = None

    def __post_init__(self):
        if not self.file_id:
            raise ValueError("File ID is required")
        if not self.file_unique_id:
            raise ValueError("File unique ID is required")
        if not self.mime_type:
            raise ValueError("MIME type is required")
        if not self.file_name:
            self.file_name = self.default_file_name()

    def default_file_name(self) -> str:
        if self.mime_type.startswith("video/"):
            return f"video_{self.file_unique_id}.mp4"
        return f"photo_{self.file_unique_id}.jpg"

    @classmethod
    def from_info(cls, info: Dict[str, Any]) -> "BulkFile":
        return cls(
            file_id=info.get("file_id"),
            file_unique_id=info.get("file_unique_id"),
            mime_type=info.get("mime_type"),
            file_name=info.get("file_name"),
        )


@dataclass
class FileInfo:
    """A single incoming file for the individual upload flow."""

    file_id: str
    mime_type: str
    original_name: str
    file_unique_id: Optional[str] = None


@dataclass
class Property:
    address: str
    normalized_address: str
    property_folder_id: str
    created_at: Optional[str] = None
    status: PropertyStatus = PropertyStatus.ACTIVE
    archived_at: Optional[str] = None
    deleted_at: Optional[str] = None
    unarchived_at: Optional[str] = None

    _JSON_KEYS = (
        ("address", "address"),
        ("normalized_address", "normalizedAddress"),
        ("property_folder_id", "propertyFolderId"),
        ("created_at", "createdAt"),
        ("archived_at", "archivedAt"),
        ("deleted_at", "deletedAt"),
        ("unarchived_at", "unarchivedAt"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == PropertyStatus.ACTIVE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Property":
        # Records written before statuses existed have no "status" key
        status = PropertyStatus(data.get("status") or PropertyStatus.ACTIVE.value)
        kwargs = {attr: data.get(key) for attr, key in cls._JSON_KEYS}
        return cls(status=status, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for attr, key in self._JSON_KEYS:
            value = getattr(self, attr)
            if value is not None or key in ("address", "normalizedAddress", "propertyFolderId"):
                data[key] = value
        data["status"] = self.status.value
        return data


@dataclass
class Catalog:
    version: int = CATALOG_VERSION
    updated_at: Optional[str] = None
    properties: List[Property] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "updatedAt": self.updated_at,
            "properties": [p.to_dict() for p in self.properties],
        }


@dataclass
class CatalogSnapshot:
    """A catalog as read from Drive, with the revision it was read at.

    ``revision`` is ``None`` when the catalog file does not exist yet.
    """

    catalog: Catalog
    revision: Optional[str] = None
    file_id: Optional[str] = None
