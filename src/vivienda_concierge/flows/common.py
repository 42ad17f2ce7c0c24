"""Keyboards and texts shared by the bulk and individual flows."""

from typing import List, Optional

from ..categories import DocumentCategory, category_label, parse_category
from ..models import Property
from .events import Buttons

CANCELLED_TEXT = "❌ Operación cancelada."
LIST_PROPERTIES_FAILED_TEXT = "❌ Error al listar viviendas. Revisa los logs."
CUSTOM_YEAR_PROMPT = "Envía el año en formato YYYY (ej. 2025):"


def property_buttons(prefix: str, properties: List[Property]) -> Buttons:
    rows = [
        [(prop.address, f"{prefix}property_{index}")]
        for index, prop in enumerate(properties)
    ]
    rows.append([("❌ Cancelar", f"{prefix}cancel")])
    return rows


def category_buttons(prefix: str) -> Buttons:
    rows = [
        [(category_label(category), f"{prefix}category_{category.value}")]
        for category in DocumentCategory
    ]
    rows.append([("❌ Cancelar", f"{prefix}cancel")])
    return rows


def year_buttons(prefix: str, current_year: str) -> Buttons:
    return [
        [(f"{current_year} ✅", f"{prefix}year_{current_year}")],
        [("Otro año", f"{prefix}year_custom")],
        [("❌ Cancelar", f"{prefix}cancel")],
    ]


def invalid_year_text(error: str) -> str:
    return f"⚠️ {error}. Envía un año válido en formato YYYY:"


def pick_property(properties: List[Property], raw_index: str) -> Optional[Property]:
    try:
        index = int(raw_index)
    except ValueError:
        return None
    if 0 <= index < len(properties):
        return properties[index]
    return None


def pick_category(raw: str) -> Optional[str]:
    try:
        return parse_category(raw).value
    except ValueError:
        return None


def plural(count: int) -> str:
    return "s" if count > 1 else ""
