"""Google OAuth client parsing, credentials and the Drive service."""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import List

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build

from .constants import DRIVE_SCOPE
from .exceptions import OAuthConfigurationError

logger = logging.getLogger(__name__)

TOKEN_URI = "https://oauth2.googleapis.com/token"


@dataclass
class OAuthClientConfig:
    client_id: str
    client_secret: str
    redirect_uris: List[str] = field(default_factory=list)


def parse_client_config(raw: str) -> OAuthClientConfig:
    """Read a Google Cloud OAuth client JSON (``web`` or ``installed``)."""
    if not raw:
        raise OAuthConfigurationError("OAuth client JSON is required")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise OAuthConfigurationError("GOOGLE_OAUTH_CLIENT_JSON is not valid JSON") from e

    section = (data.get("web") or data.get("installed")) if isinstance(data, dict) else None
    if not section:
        raise OAuthConfigurationError('OAuth client JSON must have "web" or "installed" key')
    if not section.get("client_id") or not section.get("client_secret"):
        raise OAuthConfigurationError(
            "OAuth client JSON must contain client_id and client_secret"
        )
    return OAuthClientConfig(
        client_id=section["client_id"],
        client_secret=section["client_secret"],
        redirect_uris=list(section.get("redirect_uris") or []),
    )


def parse_token(raw: str) -> dict:
    if not raw:
        raise OAuthConfigurationError("GOOGLE_OAUTH_TOKEN_JSON is required")
    try:
        token = json.loads(raw)
    except json.JSONDecodeError as e:
        raise OAuthConfigurationError("GOOGLE_OAUTH_TOKEN_JSON is not valid JSON") from e
    if not isinstance(token, dict):
        raise OAuthConfigurationError("GOOGLE_OAUTH_TOKEN_JSON must be a JSON object")
    return token


def build_credentials(client_json: str, token_json: str) -> Credentials:
    client = parse_client_config(client_json)
    token = parse_token(token_json)
    return Credentials(
        token=token.get("access_token") or token.get("token"),
        refresh_token=token.get("refresh_token"),
        token_uri=token.get("token_uri", TOKEN_URI),
        client_id=client.client_id,
        client_secret=client.client_secret,
        scopes=[DRIVE_SCOPE],
    )


def build_drive_service(credentials: Credentials):
    service = build("drive", "v3", credentials=credentials, cache_discovery=False)
    logger.info("Google Drive service initialized")
    return service


async def refresh_credentials(credentials: Credentials) -> None:
    """Force a token refresh; raises google.auth RefreshError on invalid_grant."""
    await asyncio.to_thread(credentials.refresh, Request())
