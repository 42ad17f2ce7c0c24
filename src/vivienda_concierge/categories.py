"""Document categories, their Drive folder paths and year rules."""

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from .constants import MAX_YEARS_AHEAD, MIN_YEAR


class DocumentCategory(str, Enum):
    CONTRATOS = "Contratos"
    INQUILINOS_SENSIBLE = "Inquilinos_Sensible"
    SEGUROS = "Seguros"
    SUMINISTROS = "Suministros"
    COMUNIDAD_IMPUESTOS = "Comunidad_Impuestos"
    FACTURAS_REFORMAS = "Facturas_Reformas"
    FOTOS_ESTADO = "Fotos_Estado"
    OTROS = "Otros"


@dataclass(frozen=True)
class CategoryLayout:
    folders: tuple
    requires_year: bool
    label: str


CATEGORY_LAYOUT = {
    DocumentCategory.CONTRATOS: CategoryLayout(("01_Contratos",), True, "Contratos"),
    DocumentCategory.INQUILINOS_SENSIBLE: CategoryLayout(
        ("02_Inquilinos_Sensible",), False, "Inquilinos (Sensible)"
    ),
    DocumentCategory.SEGUROS: CategoryLayout(("03_Seguros",), True, "Seguros"),
    DocumentCategory.SUMINISTROS: CategoryLayout(
        ("04_Suministros",), True, "Suministros"
    ),
    DocumentCategory.COMUNIDAD_IMPUESTOS: CategoryLayout(
        ("05_Comunidad_Impuestos",), True, "Comunidad/Impuestos"
    ),
    DocumentCategory.FACTURAS_REFORMAS: CategoryLayout(
        ("06_Incidencias_Reformas", "Facturas"), True, "Facturas/Reformas"
    ),
    DocumentCategory.FOTOS_ESTADO: CategoryLayout(
        ("07_Fotos_Estado",), False, "Fotos Estado"
    ),
    DocumentCategory.OTROS: CategoryLayout(("99_Otros",), False, "Otros"),
}

_YEAR_PATTERN = re.compile(r"[0-9]{4}")


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None


def parse_category(category: Union[str, DocumentCategory]) -> DocumentCategory:
    try:
        return DocumentCategory(category)
    except ValueError:
        raise ValueError(f"Invalid category: {category}") from None


def category_requires_year(category: Union[str, DocumentCategory]) -> bool:
    return CATEGORY_LAYOUT[parse_category(category)].requires_year


def category_label(category: Union[str, DocumentCategory]) -> str:
    return CATEGORY_LAYOUT[parse_category(category)].label


def get_category_folder_path(
    category: Union[str, DocumentCategory], year: Optional[str] = None
) -> List[str]:
    """Folder names to walk under a property folder for ``category``.

    Year-scoped categories end with the year folder; the others ignore
    ``year`` entirely.
    """
    parsed = parse_category(category)
    layout = CATEGORY_LAYOUT[parsed]
    path = list(layout.folders)
    if layout.requires_year:
        if not year:
            raise ValueError(f"Year is required for category: {parsed.value}")
        path.append(str(year))
    return path


def get_current_year() -> str:
    return str(datetime.now().year)


def validate_year(value) -> ValidationResult:
    if not isinstance(value, str):
        return ValidationResult(False, "Year must be a string")
    if not _YEAR_PATTERN.fullmatch(value):
        return ValidationResult(False, "Year must be in YYYY format")

    max_year = int(get_current_year()) + MAX_YEARS_AHEAD
    if not MIN_YEAR <= int(value) <= max_year:
        return ValidationResult(
            False, f"Year must be between {MIN_YEAR} and {max_year}"
        )
    return ValidationResult(True)
