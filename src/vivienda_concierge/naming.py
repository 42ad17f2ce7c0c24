"""File and address naming rules.

Everything here is pure: callers get new values back and nothing is mutated.
"""

import re
from dataclasses import replace
from typing import Any, List, Optional, Sequence

from .models import BulkFile

_WHITESPACE = re.compile(r"\s+")
_DISALLOWED = re.compile(r"[^\wñáéíóúü]")
_UNDERSCORES = re.compile(r"_+")
_AUTOGENERATED = re.compile(r"^(photo|video)_[^.]+\..+$")

PLACEHOLDER_NAMES = frozenset({"foto.jpg", "video.mp4"})
SKIP_KEYWORD = "skip"


def normalize_address(value) -> str:
    """Trim and collapse internal whitespace. Idempotent."""
    if not isinstance(value, str):
        raise TypeError("Address must be a string")
    return _WHITESPACE.sub(" ", value).strip()


def to_snake_case(text: str) -> str:
    result = _WHITESPACE.sub("_", text.strip().lower())
    result = _DISALLOWED.sub("", result)
    result = _UNDERSCORES.sub("_", result)
    return result.strip("_")


def split_extension(name: str):
    """Split on the last dot; a leading dot is part of the stem."""
    index = name.rfind(".")
    if index <= 0:
        return name, ""
    return name[:index], name[index:]


def apply_snake_case_to_file_name(name: Optional[str]) -> Optional[str]:
    # "archivo.tar.gz" -> "archivotar.gz": only the last extension survives
    if name is None:
        return None
    stem, extension = split_extension(name)
    return to_snake_case(stem) + extension


def needs_user_provided_name(file_name: Optional[str]) -> bool:
    if not file_name:
        return True
    return file_name in PLACEHOLDER_NAMES or bool(_AUTOGENERATED.match(file_name))


def file_extension_for_mime(mime_type: Optional[str]) -> str:
    if not mime_type or mime_type.startswith("image/"):
        return ".jpg"
    if mime_type.startswith("video/"):
        return ".mp4"
    return ""


def is_skip(text: Optional[str]) -> bool:
    return bool(text) and text.strip().lower() == SKIP_KEYWORD


def _field(item: Any, name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _with_name(item: Any, file_name: Optional[str]):
    if isinstance(item, dict):
        return {**item, "file_name": file_name}
    if isinstance(item, BulkFile):
        # BulkFile validation has already run; skip __post_init__ defaults
        renamed = replace(item)
        renamed.file_name = file_name
        return renamed
    return replace(item, file_name=file_name)


def file_needs_name(item: Any) -> bool:
    """Whether this particular file still carries a generated placeholder name.

    A ``photo_<id>.jpg`` name only counts as generated when it is exactly
    the default derived from the file's own ``file_unique_id``.
    """
    file_name = _field(item, "file_name")
    if not file_name or file_name in PLACEHOLDER_NAMES:
        return True
    unique_id = _field(item, "file_unique_id")
    if not unique_id or not _AUTOGENERATED.match(file_name):
        return False
    return file_name in (f"photo_{unique_id}.jpg", f"video_{unique_id}.mp4")


def count_files_needing_name(files: Sequence[Any]) -> int:
    return sum(1 for f in files if file_needs_name(f))


def rename_files_for_upload(files: Sequence[Any], base_name: Optional[str] = None) -> List[Any]:
    """Return copies of ``files`` with their final storage names.

    Files still carrying a placeholder are numbered ``<base>_1``,
    ``<base>_2``... in order; the counter skips files that already have a
    real name. Without a usable base name placeholders are kept verbatim.
    """
    use_base = bool(base_name) and not is_skip(base_name)
    snake_base = to_snake_case(base_name) if use_base else None

    renamed = []
    sequence = 0
    for item in files:
        if file_needs_name(item):
            if not use_base:
                renamed.append(_with_name(item, _field(item, "file_name")))
                continue
            sequence += 1
            extension = file_extension_for_mime(_field(item, "mime_type"))
            renamed.append(_with_name(item, f"{snake_base}_{sequence}{extension}"))
        else:
            renamed.append(
                _with_name(item, apply_snake_case_to_file_name(_field(item, "file_name")))
            )
    return renamed
