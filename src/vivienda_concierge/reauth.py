"""Re-authorization of Google Drive from the chat.

``/google_login`` hands out a Google consent link whose ``state`` is a signed,
short-lived token naming the chat. The callback verifies it, exchanges the
code for tokens and persists them. At most one login session per chat.
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional
from urllib.parse import urlencode

import httpx

from .constants import DEFAULT_PORT, DRIVE_SCOPE, OAUTH_CALLBACK_PATH, OAUTH_SESSION_TTL
from .exceptions import (
    OAuthSessionError,
    OAuthStateError,
    OAuthTokenExchangeError,
    TokenStorageError,
)
from .google_auth import parse_client_config
from .token_storage import save_google_token

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

TOKEN_UPDATED_TEXT = "✅ Token actualizado correctamente"
TOKEN_WITHOUT_REFRESH_TEXT = (
    "⚠️ Token actualizado pero sin refresh_token. Puede que necesites revocar "
    "acceso en Google y volver a autorizar."
)


def get_redirect_uri(base_url: Optional[str] = None, port: int = DEFAULT_PORT) -> str:
    """Must match an authorized redirect URI of the OAuth client exactly."""
    effective = (base_url or f"http://localhost:{port}").rstrip("/")
    return f"{effective}{OAUTH_CALLBACK_PATH}"


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def _canonical(data: dict) -> bytes:
    return json.dumps(data, sort_keys=True, separators=(",", ":")).encode("utf-8")


def sign_state(data: dict, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), _canonical(data), hashlib.sha256).hexdigest()


def decode_state(state: str) -> dict:
    try:
        decoded = json.loads(_b64url_decode(state).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError, ValueError) as e:
        raise OAuthStateError("Invalid state: malformed") from e
    if not isinstance(decoded, dict):
        raise OAuthStateError("Invalid state: malformed")
    return decoded


def decode_state_chat_id(state: Optional[str]):
    """Chat id named by an (unverified) state, for error notifications only."""
    if not state:
        return None
    try:
        return decode_state(state).get("chatId")
    except OAuthStateError:
        return None


@dataclass
class LoginSession:
    chat_id: int
    user_id: int
    nonce: str
    expires_at: float


@dataclass
class AuthLink:
    url: str
    expires_at: float

    def minutes_left(self, now: Optional[float] = None) -> int:
        remaining = self.expires_at - (now if now is not None else time.time())
        return max(0, round(remaining / 60))


@dataclass
class CallbackResult:
    chat_id: int
    has_refresh_token: bool
    message: str


class GoogleReauthService:
    def __init__(
        self,
        client_json: str,
        state_secret: str,
        secret_name: str,
        base_url: Optional[str] = None,
        port: int = DEFAULT_PORT,
        token_store=None,
        on_token_saved: Optional[Callable[[str], Awaitable[None]]] = None,
        clock: Callable[[], float] = time.time,
    ):
        if not state_secret:
            raise ValueError("State secret is required")
        if not secret_name:
            raise ValueError("Secret name is required")
        self.client = parse_client_config(client_json)
        self.state_secret = state_secret
        self.secret_name = secret_name
        self.redirect_uri = get_redirect_uri(base_url, port)
        self.token_store = token_store
        self.on_token_saved = on_token_saved
        self.clock = clock
        self.sessions: Dict[str, LoginSession] = {}

    @staticmethod
    def _key(chat_id) -> str:
        return str(chat_id)

    def has_active_session(self, chat_id) -> bool:
        session = self.sessions.get(self._key(chat_id))
        if session is None:
            return False
        if self.clock() > session.expires_at:
            del self.sessions[self._key(chat_id)]
            return False
        return True

    def cancel_session(self, chat_id) -> bool:
        return self.sessions.pop(self._key(chat_id), None) is not None

    def create_auth_url(self, chat_id, user_id) -> AuthLink:
        if chat_id is None or chat_id == "":
            raise ValueError("Chat ID is required")
        if user_id is None or user_id == "":
            raise ValueError("User ID is required")

        if self.has_active_session(chat_id):
            raise OAuthSessionError(
                "Ya hay una sesión de login activa. Espera a que expire o complétala."
            )

        issued_at = self.clock()
        expires_at = issued_at + OAUTH_SESSION_TTL
        data = {
            "chatId": chat_id,
            "userId": user_id,
            "nonce": secrets.token_hex(16),
            "iat": int(issued_at * 1000),
            "exp": int(expires_at * 1000),
        }
        state = _b64url_encode(
            _canonical({**data, "sig": sign_state(data, self.state_secret)})
        )

        self.sessions[self._key(chat_id)] = LoginSession(
            chat_id=chat_id, user_id=user_id, nonce=data["nonce"], expires_at=expires_at
        )

        params = {
            "client_id": self.client.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": DRIVE_SCOPE,
            "access_type": "offline",
            "prompt": "consent select_account",
            "state": state,
        }
        logger.info(f"🔗 Google login link created for chat {chat_id} ({self.redirect_uri})")
        return AuthLink(url=f"{GOOGLE_AUTH_URL}?{urlencode(params)}", expires_at=expires_at)

    def verify_state(self, state: str) -> dict:
        decoded = decode_state(state)
        signature = decoded.pop("sig", None)
        if not isinstance(signature, str):
            raise OAuthStateError("Invalid state: missing signature")

        expected = sign_state(decoded, self.state_secret)
        if not hmac.compare_digest(signature.encode("utf-8"), expected.encode("utf-8")):
            raise OAuthStateError("Invalid state: Invalid state signature")

        expires_ms = decoded.get("exp")
        if not isinstance(expires_ms, (int, float)) or self.clock() * 1000 > expires_ms:
            raise OAuthStateError("Invalid state: State has expired")
        return decoded

    async def exchange_code(self, code: str) -> dict:
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "client_id": self.client.client_id,
                        "client_secret": self.client.client_secret,
                        "code": code,
                        "grant_type": "authorization_code",
                        "redirect_uri": self.redirect_uri,
                    },
                )
                response.raise_for_status()
                tokens = response.json()
        except httpx.HTTPStatusError as e:
            raise OAuthTokenExchangeError(f"HTTP error during token exchange: {e}") from e
        except httpx.TimeoutException as e:
            raise OAuthTokenExchangeError(f"Timeout during token exchange: {e}") from e
        except httpx.RequestError as e:
            raise OAuthTokenExchangeError(f"Request error during token exchange: {e}") from e

        if "access_token" not in tokens:
            raise OAuthTokenExchangeError("Missing access_token in response")
        return tokens

    async def handle_callback(self, code: str, state: str) -> CallbackResult:
        if not code:
            raise ValueError("Authorization code is required")
        if not state:
            raise ValueError("State is required")

        data = self.verify_state(state)
        key = self._key(data.get("chatId"))
        session = self.sessions.get(key)
        if session is None:
            raise OAuthSessionError("No active session found")
        if not hmac.compare_digest(
            session.nonce.encode("utf-8"), str(data.get("nonce")).encode("utf-8")
        ):
            raise OAuthSessionError("Session nonce mismatch")

        try:
            tokens = await self.exchange_code(code)
            refresh_token = tokens.get("refresh_token")
            if not refresh_token:
                logger.warning("Google returned no refresh_token; access may need revoking")

            expires_in = tokens.get("expires_in")
            token_json = json.dumps(
                {
                    "type": "authorized_user",
                    "client_id": self.client.client_id,
                    "client_secret": self.client.client_secret,
                    "refresh_token": refresh_token,
                    "access_token": tokens.get("access_token"),
                    "expiry_date": (
                        int((self.clock() + expires_in) * 1000) if expires_in else None
                    ),
                    "token_type": tokens.get("token_type"),
                    "scope": tokens.get("scope"),
                }
            )
            await save_google_token(self.secret_name, token_json, store=self.token_store)
        except (OAuthTokenExchangeError, TokenStorageError) as e:
            raise OAuthTokenExchangeError(f"Error exchanging code: {e}") from e
        finally:
            # Success or not, the link is spent
            self.sessions.pop(key, None)

        if self.on_token_saved is not None:
            await self.on_token_saved(token_json)

        logger.info(f"✅ Google token renewed from chat {session.chat_id}")
        return CallbackResult(
            chat_id=session.chat_id,
            has_refresh_token=bool(refresh_token),
            message=TOKEN_UPDATED_TEXT if refresh_token else TOKEN_WITHOUT_REFRESH_TEXT,
        )
