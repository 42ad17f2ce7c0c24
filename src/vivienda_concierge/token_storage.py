"""Persistence of the Google OAuth token.

Production keeps the token in Google Secret Manager (one new secret version
per re-authorization); local runs write ``./secrets/<name>.local.json``.
The token itself is never logged.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

import aiofiles
from google.api_core import exceptions as google_exceptions
from google.cloud import secretmanager

from . import config
from .exceptions import TokenStorageError

logger = logging.getLogger(__name__)

LOCAL_SECRETS_DIR = "secrets"


def should_use_secret_manager() -> bool:
    """An explicit USE_SECRET_MANAGER wins; otherwise only production uses it."""
    explicit = os.getenv("USE_SECRET_MANAGER")
    if explicit is not None:
        return explicit.strip().lower() == "true"
    return config.get_app_env() == "production"


class LocalTokenStore:
    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = Path(base_dir) if base_dir else Path.cwd() / LOCAL_SECRETS_DIR

    def path_for(self, secret_name: str) -> Path:
        return self.base_dir / f"{secret_name}.local.json"

    async def save(self, secret_name: str, token_json: str) -> None:
        path = self.path_for(secret_name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(token_json)
        except OSError as e:
            raise TokenStorageError(f"Could not write token file {path}: {e}") from e
        logger.info(f"🔐 Token saved to local file {path}")

    async def load(self, secret_name: str) -> Optional[str]:
        path = self.path_for(secret_name)
        if not path.exists():
            return None
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            return await f.read()


class SecretManagerTokenStore:
    def __init__(self, project_id: Optional[str] = None, client=None):
        self.project_id = project_id or config.GOOGLE_CLOUD_PROJECT
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = secretmanager.SecretManagerServiceClient()
        return self._client

    def _secret_path(self, secret_name: str) -> str:
        if not self.project_id:
            raise TokenStorageError("GOOGLE_CLOUD_PROJECT is required to use Secret Manager")
        return self.client.secret_path(self.project_id, secret_name)

    async def save(self, secret_name: str, token_json: str) -> None:
        parent = self._secret_path(secret_name)
        try:
            version = await asyncio.to_thread(
                self.client.add_secret_version,
                request={"parent": parent, "payload": {"data": token_json.encode("utf-8")}},
            )
        except google_exceptions.GoogleAPICallError as e:
            raise TokenStorageError(f"Secret Manager rejected the new version: {e}") from e
        logger.info(f"🔐 Token saved to Secret Manager ({version.name})")

    async def load(self, secret_name: str) -> Optional[str]:
        name = f"{self._secret_path(secret_name)}/versions/latest"
        try:
            response = await asyncio.to_thread(
                self.client.access_secret_version, request={"name": name}
            )
        except google_exceptions.NotFound:
            return None
        except google_exceptions.GoogleAPICallError as e:
            raise TokenStorageError(f"Could not read secret {secret_name}: {e}") from e
        return response.payload.data.decode("utf-8")


def get_token_store():
    if should_use_secret_manager():
        return SecretManagerTokenStore()
    return LocalTokenStore()


async def save_google_token(secret_name: str, token_json: str, store=None) -> None:
    if not secret_name:
        raise ValueError("Secret name is required")
    if not token_json:
        raise ValueError("Token JSON is required")
    await (store or get_token_store()).save(secret_name, token_json)


async def load_google_token(secret_name: str, store=None) -> Optional[str]:
    """Stored token if any, else the GOOGLE_OAUTH_TOKEN_JSON environment value."""
    stored = await (store or get_token_store()).load(secret_name)
    return stored or config.GOOGLE_OAUTH_TOKEN_JSON
