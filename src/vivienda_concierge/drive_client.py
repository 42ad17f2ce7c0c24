"""Async adapter over the Google Drive v3 ``files()`` resource.

googleapiclient is synchronous; every ``execute()`` is pushed to a worker
thread so handlers never block the event loop.
"""

import asyncio
import io
import logging
from typing import IO, Any, Dict, List, Optional, Sequence

import httplib2
from google.auth.exceptions import RefreshError, TransportError
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from .categories import CATEGORY_LAYOUT, get_category_folder_path
from .constants import FOLDER_MIME_TYPE, HTTPStatus, PROPERTIES_ROOT_FOLDER
from .exceptions import (
    DriveAPIError,
    DriveForbiddenError,
    DriveNotFoundError,
)

logger = logging.getLogger(__name__)


def escape_query_value(value: str) -> str:
    """Escape a literal for use inside single quotes in a Drive query."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _translate_http_error(error: HttpError, action: str):
    status = getattr(error, "status_code", None) or int(error.resp.status)
    message = f"Drive {action} failed ({status}): {error}"
    if status == HTTPStatus.NOT_FOUND:
        return DriveNotFoundError(message)
    if status == HTTPStatus.FORBIDDEN:
        return DriveForbiddenError(message)
    return DriveAPIError(message, status_code=status)


class DriveAdapter:
    """Folder provisioning, lookups and uploads against one Drive service."""

    def __init__(self, service):
        if service is None:
            raise ValueError("Drive client is required")
        self.service = service

    async def _execute(self, request, action: str):
        try:
            return await asyncio.to_thread(request.execute)
        except HttpError as e:
            raise _translate_http_error(e, action) from e
        except RefreshError as e:
            raise DriveAPIError(f"Drive {action} failed: token refresh rejected ({e})") from e
        except (TransportError, httplib2.HttpLib2Error, OSError) as e:
            raise DriveAPIError(f"Drive {action} failed: connection error ({e})") from e

    async def _list(self, query: str, fields: str, **kwargs) -> List[Dict[str, Any]]:
        request = self.service.files().list(
            q=query, fields=fields, spaces="drive", **kwargs
        )
        response = await self._execute(request, "list")
        return response.get("files", [])

    # -- folders -----------------------------------------------------------

    @staticmethod
    def _folder_query(name: str, parent_id: str) -> str:
        return (
            f"name='{escape_query_value(name)}' and "
            f"'{escape_query_value(parent_id)}' in parents and "
            f"mimeType='{FOLDER_MIME_TYPE}' and trashed=false"
        )

    async def find_folder(self, name: str, parent_id: str) -> Optional[str]:
        if not name:
            raise ValueError("Folder name is required")
        if not parent_id:
            raise ValueError("Parent folder ID is required")

        folders = await self._list(
            self._folder_query(name, parent_id),
            fields="files(id, name, createdTime)",
            orderBy="createdTime",
        )
        if not folders:
            return None
        if len(folders) > 1:
            # Same-named siblings: stick to the oldest so repeated runs agree
            logger.warning(
                f"⚠️ {len(folders)} folders named '{name}' under {parent_id}; "
                f"using oldest {folders[0]['id']}"
            )
        return folders[0]["id"]

    async def find_or_create_folder(self, name: str, parent_id: str) -> str:
        existing = await self.find_folder(name, parent_id)
        if existing:
            return existing

        request = self.service.files().create(
            body={"name": name, "mimeType": FOLDER_MIME_TYPE, "parents": [parent_id]},
            fields="id",
        )
        created = await self._execute(request, "folder create")
        logger.info(f"📁 Created folder '{name}' ({created['id']}) under {parent_id}")
        return created["id"]

    async def create_folder_structure(
        self, base_folder_id: str, property_address: str, year: str
    ) -> str:
        """Provision ``Viviendas/<address>`` and every category branch.

        Safe to re-run: each segment is find-or-create. Returns the property
        folder id.
        """
        if not base_folder_id:
            raise ValueError("Base folder ID is required")
        if not property_address:
            raise ValueError("Property address is required")
        if not year:
            raise ValueError("Year is required")

        root_id = await self.find_or_create_folder(PROPERTIES_ROOT_FOLDER, base_folder_id)
        property_folder_id = await self.find_or_create_folder(property_address, root_id)

        for category in CATEGORY_LAYOUT:
            path = get_category_folder_path(category, year)
            await self.resolve_category_folder_id(property_folder_id, path)

        return property_folder_id

    async def resolve_category_folder_id(
        self, property_folder_id: str, category_path: Sequence[str]
    ) -> str:
        if not property_folder_id:
            raise ValueError("Property folder ID is required")
        if not isinstance(category_path, (list, tuple)):
            raise ValueError("Category path must be a list")

        current = property_folder_id
        for segment in category_path:
            current = await self.find_or_create_folder(str(segment), current)
        return current

    async def find_folder_path(
        self, property_folder_id: str, category_path: Sequence[str]
    ) -> Optional[str]:
        """Like resolve_category_folder_id but never creates anything."""
        current = property_folder_id
        for segment in category_path:
            current = await self.find_folder(str(segment), current)
            if current is None:
                return None
        return current

    async def delete_folder(self, folder_id: str) -> None:
        if not folder_id:
            raise ValueError("Folder ID is required")
        await self._execute(self.service.files().delete(fileId=folder_id), "delete")
        logger.info(f"🗑️ Deleted folder {folder_id}")

    async def move_folder(self, folder_id: str, new_parent_id: str) -> Dict[str, Any]:
        if not folder_id:
            raise ValueError("Folder ID is required")
        if not new_parent_id:
            raise ValueError("New parent ID is required")

        current = await self._execute(
            self.service.files().get(fileId=folder_id, fields="parents"), "get"
        )
        previous_parents = ",".join(current.get("parents") or [])
        request = self.service.files().update(
            fileId=folder_id,
            addParents=new_parent_id,
            removeParents=previous_parents,
            fields="id, parents",
        )
        moved = await self._execute(request, "move")
        logger.info(f"📦 Moved folder {folder_id} to {new_parent_id}")
        return moved

    async def probe_folder(self, folder_id: str) -> List[Dict[str, Any]]:
        """List at most one child; used to check access to a folder."""
        request = self.service.files().list(
            q=f"'{escape_query_value(folder_id)}' in parents",
            pageSize=1,
            fields="files(id)",
        )
        response = await self._execute(request, "list")
        return response.get("files", [])

    # -- files -------------------------------------------------------------

    async def find_file(
        self, folder_id: str, file_name: str, fields: str = "files(id, name)"
    ) -> Optional[Dict[str, Any]]:
        if not folder_id:
            raise ValueError("Folder ID is required")
        if not file_name:
            raise ValueError("File name is required")

        files = await self._list(
            f"name='{escape_query_value(file_name)}' and "
            f"'{escape_query_value(folder_id)}' in parents and trashed=false",
            fields=fields,
        )
        return files[0] if files else None

    async def check_file_exists(self, folder_id: str, file_name: str) -> bool:
        return await self.find_file(folder_id, file_name) is not None

    async def check_multiple_files_exist(
        self, folder_id: str, file_names: Sequence[str]
    ) -> List[str]:
        """Names from ``file_names`` that already exist in ``folder_id``."""
        if file_names is None or not isinstance(file_names, (list, tuple)):
            raise ValueError("File names array is required")

        existing = []
        for name in file_names:
            if await self.check_file_exists(folder_id, name):
                existing.append(name)
        return existing

    async def upload_stream(
        self, stream: IO[bytes], file_name: str, mime_type: str, folder_id: str
    ) -> Dict[str, str]:
        if not file_name:
            raise ValueError("File name is required")
        if not folder_id:
            raise ValueError("Folder ID is required")

        media = MediaIoBaseUpload(
            stream, mimetype=mime_type or "application/octet-stream", resumable=False
        )
        request = self.service.files().create(
            body={"name": file_name, "parents": [folder_id]},
            media_body=media,
            fields="id, name",
        )
        created = await self._execute(request, "upload")
        logger.info(f"📤 Uploaded '{file_name}' ({created['id']}) to {folder_id}")
        return {"id": created["id"], "name": created.get("name", file_name)}

    async def upload_buffer(
        self, buffer: bytes, file_name: str, mime_type: str, folder_id: str
    ) -> Dict[str, str]:
        return await self.upload_stream(
            io.BytesIO(bytes(buffer)), file_name, mime_type, folder_id
        )

    async def update_file_content(
        self, file_id: str, buffer: bytes, mime_type: str, fields: str = "id, name"
    ) -> Dict[str, Any]:
        """Overwrite an existing file's bytes in place."""
        if not file_id:
            raise ValueError("File ID is required")

        media = MediaIoBaseUpload(
            io.BytesIO(bytes(buffer)),
            mimetype=mime_type or "application/octet-stream",
            resumable=False,
        )
        request = self.service.files().update(
            fileId=file_id, media_body=media, fields=fields
        )
        return await self._execute(request, "update")

    async def create_file(
        self, buffer: bytes, file_name: str, mime_type: str, folder_id: str, fields: str
    ) -> Dict[str, Any]:
        media = MediaIoBaseUpload(io.BytesIO(bytes(buffer)), mimetype=mime_type, resumable=False)
        request = self.service.files().create(
            body={"name": file_name, "parents": [folder_id], "mimeType": mime_type},
            media_body=media,
            fields=fields,
        )
        return await self._execute(request, "create")

    async def download_text(self, file_id: str) -> str:
        content = await self._execute(
            self.service.files().get_media(fileId=file_id), "download"
        )
        if isinstance(content, (bytes, bytearray)):
            return content.decode("utf-8")
        return content
