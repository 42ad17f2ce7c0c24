import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .categories import ValidationResult, get_category_folder_path, validate_year
from .drive_client import DriveAdapter
from .models import BulkFile, FileInfo

logger = logging.getLogger(__name__)


@dataclass
class UploadResult:
    success: bool
    file_name: str
    drive_file_id: Optional[str] = None
    error: Optional[str] = None
    replaced: bool = False


def validate_bulk_upload_request(
    property_folder_id: Optional[str], category: Optional[str], year: Optional[str]
) -> ValidationResult:
    if not property_folder_id:
        return ValidationResult(False, "Property is required")
    if not category:
        return ValidationResult(False, "Category is required")
    if year:
        return validate_year(year)
    return ValidationResult(True)


class UploadService:
    """Places downloaded chat files into a property's category folder."""

    def __init__(self, drive: DriveAdapter):
        if drive is None:
            raise ValueError("Drive client is required")
        self.drive = drive

    async def resolve_target_folder(
        self, property_folder_id: str, category: str, year: Optional[str]
    ) -> str:
        if not property_folder_id:
            raise ValueError("Property folder ID is required")
        if not category:
            raise ValueError("Category is required")
        path = get_category_folder_path(category, year)
        return await self.drive.resolve_category_folder_id(property_folder_id, path)

    async def check_duplicate_files(
        self,
        files: Sequence[BulkFile],
        property_folder_id: str,
        category: str,
        year: Optional[str],
    ) -> List[str]:
        """Names among ``files`` that already exist in the destination folder."""
        if files is None or not isinstance(files, (list, tuple)):
            raise ValueError("Files array is required")

        folder_id = await self.resolve_target_folder(property_folder_id, category, year)
        return await self.drive.check_multiple_files_exist(
            folder_id, [f.file_name for f in files]
        )

    async def _store(self, folder_id, content, file_name, mime_type, replace):
        if replace:
            existing = await self.drive.find_file(folder_id, file_name)
            if existing:
                updated = await self.drive.update_file_content(
                    existing["id"], content, mime_type
                )
                return updated["id"], True
        uploaded = await self.drive.upload_buffer(content, file_name, mime_type, folder_id)
        return uploaded["id"], False

    async def upload_bulk_files(
        self,
        files: Sequence[BulkFile],
        property_folder_id: str,
        category: str,
        year: Optional[str],
        downloader,
        replace: bool = False,
    ) -> List[UploadResult]:
        """Upload every file, isolating failures per file.

        With ``replace`` an existing file with the same name is overwritten in
        place instead of getting a same-named sibling.
        """
        if downloader is None:
            raise ValueError("Downloader is required")
        if files is None or not isinstance(files, (list, tuple)):
            raise ValueError("Files array is required")

        folder_id = await self.resolve_target_folder(property_folder_id, category, year)

        results = []
        for bulk_file in files:
            try:
                content = await downloader.download(bulk_file.file_id)
                file_id, replaced = await self._store(
                    folder_id, content, bulk_file.file_name, bulk_file.mime_type, replace
                )
                results.append(
                    UploadResult(
                        True, bulk_file.file_name, drive_file_id=file_id, replaced=replaced
                    )
                )
            except Exception as e:  # One bad file never aborts the batch
                logger.error(f"❌ Upload of '{bulk_file.file_name}' failed: {e}", exc_info=True)
                results.append(UploadResult(False, bulk_file.file_name, error=str(e)))

        succeeded = sum(1 for r in results if r.success)
        logger.info(f"📤 Bulk upload finished: {succeeded}/{len(results)} succeeded")
        return results

    async def upload_single_file(
        self,
        file_info: FileInfo,
        file_name: str,
        property_folder_id: str,
        category: str,
        year: Optional[str],
        downloader,
    ) -> UploadResult:
        folder_id = await self.resolve_target_folder(property_folder_id, category, year)
        content = await downloader.download(file_info.file_id)
        uploaded = await self.drive.upload_buffer(
            content, file_name, file_info.mime_type, folder_id
        )
        return UploadResult(True, file_name, drive_file_id=uploaded["id"])
