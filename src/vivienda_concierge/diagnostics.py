"""``/version`` and ``/status`` reports."""

import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Mapping, Optional

from google.auth.exceptions import RefreshError

from . import __version__
from .constants import STATUS_CHECK_TIMEOUT
from .drive_client import DriveAdapter
from .exceptions import DriveError
from .property_service import PropertyService

logger = logging.getLogger(__name__)

APP_NAME = "vivienda-concierge"
APP_STARTED_AT = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

REQUIRED_ENV_VARS = (
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_WEBHOOK_SECRET",
    "DRIVE_FOLDER_ID",
    "GOOGLE_OAUTH_CLIENT_JSON",
    "GOOGLE_OAUTH_TOKEN_JSON",
)

CHECK_LABELS = {
    "config": "Configuración",
    "oauth": "Google OAuth",
    "drive_access": "Acceso a Drive",
    "catalog": "Catálogo",
}


@dataclass
class CheckResult:
    status: str
    message: str

    @property
    def ok(self) -> bool:
        return self.status == "success"


def get_runtime_info(env: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    env = os.environ if env is None else env
    return {
        "started_at": APP_STARTED_AT,
        "app_env": env.get("APP_ENV") or "N/A",
        "cloud_run_service": env.get("K_SERVICE") or "local",
        "cloud_run_revision": env.get("K_REVISION") or "N/A",
        "git_sha": env.get("GIT_SHA") or "N/A",
    }


def get_version_info(env: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    return {"name": APP_NAME, "version": __version__, **get_runtime_info(env)}


def format_version_info(info: Dict[str, str]) -> str:
    return (
        "ℹ️ Información de versión\n\n"
        f"📦 {info['name']} v{info['version']}\n"
        f"🌍 Entorno: {info['app_env']}\n"
        f"☁️ Servicio: {info['cloud_run_service']} ({info['cloud_run_revision']})\n"
        f"🕐 Arrancado: {info['started_at']}\n"
        f"🔖 Commit: {info['git_sha']}"
    )


def check_config(env: Optional[Mapping[str, str]] = None) -> CheckResult:
    env = os.environ if env is None else env
    missing = [name for name in REQUIRED_ENV_VARS if not env.get(name)]
    if not env.get("AUTHORIZED_USERS") and not env.get("USER_CONFIG_FILE"):
        missing.append("AUTHORIZED_USERS")
    if missing:
        return CheckResult("failed", f"Faltan variables: {', '.join(missing)}")
    return CheckResult("success", "Todas las variables requeridas están configuradas")


async def _run_check(
    check: Callable[[], Awaitable[str]],
    timeout_message: str,
    describe_error: Callable[[Exception], Optional[str]] = lambda e: None,
) -> CheckResult:
    """Run one check under the shared timeout and turn any failure into a result."""
    try:
        message = await asyncio.wait_for(check(), timeout=STATUS_CHECK_TIMEOUT)
    except asyncio.TimeoutError:
        return CheckResult("failed", timeout_message)
    except Exception as e:  # A failed check is a report line, never a crash
        logger.warning(f"Status check failed: {e}")
        return CheckResult("failed", describe_error(e) or f"Error: {str(e) or 'Desconocido'}")
    return CheckResult("success", message)


def _describe_oauth_error(error: Exception) -> Optional[str]:
    if isinstance(error, RefreshError) and "invalid_grant" in str(error):
        return "Error: invalid_grant - Token expirado o revocado"
    return None


def _describe_drive_error(error: Exception) -> Optional[str]:
    if isinstance(error, DriveError):
        if error.is_not_found():
            return "Error: Carpeta no encontrada (404)"
        if error.is_forbidden():
            return "Error: Sin permisos para acceder (403)"
    return None


async def get_status_report(
    drive: DriveAdapter,
    property_service: PropertyService,
    base_folder_id: str,
    refresh_credentials: Callable[[], Awaitable[None]],
    env: Optional[Mapping[str, str]] = None,
) -> Dict[str, CheckResult]:
    if drive is None:
        raise ValueError("Drive client is required")
    if not base_folder_id:
        raise ValueError("Base folder ID is required")

    async def oauth():
        await refresh_credentials()
        return "Auth client válido y token actualizado"

    async def drive_access():
        await drive.probe_folder(base_folder_id)
        return "Carpeta raíz accesible"

    async def catalog():
        result = await property_service.list_properties()
        return f"Catálogo accesible ({len(result.properties)} propiedades activas)"

    return {
        "config": check_config(env),
        "oauth": await _run_check(
            oauth, "Timeout verificando token (5s)", _describe_oauth_error
        ),
        "drive_access": await _run_check(
            drive_access, "Timeout verificando carpeta (5s)", _describe_drive_error
        ),
        "catalog": await _run_check(catalog, "Timeout verificando catálogo (5s)"),
    }


def format_status_report(checks: Dict[str, CheckResult]) -> str:
    lines = ["🩺 Estado del sistema", ""]
    for name, result in checks.items():
        icon = "✅" if result.ok else "❌"
        lines.append(f"{icon} {CHECK_LABELS.get(name, name)}: {result.message}")
    overall = all(result.ok for result in checks.values())
    lines += ["", "🟢 Todo operativo" if overall else "🔴 Hay problemas, revisa los detalles"]
    return "\n".join(lines)
