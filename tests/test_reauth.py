"""Tests for the /google_login re-authorization flow."""

import json
from unittest.mock import AsyncMock, Mock
from urllib.parse import parse_qs, urlparse

import pytest

from vivienda_concierge.exceptions import (
    OAuthSessionError,
    OAuthStateError,
    OAuthTokenExchangeError,
)
from vivienda_concierge.reauth import (
    GOOGLE_TOKEN_URL,
    TOKEN_UPDATED_TEXT,
    TOKEN_WITHOUT_REFRESH_TEXT,
    GoogleReauthService,
    _b64url_encode,
    _canonical,
    decode_state,
    decode_state_chat_id,
    get_redirect_uri,
)

CLIENT_JSON = json.dumps({"web": {"client_id": "cid", "client_secret": "csecret"}})
NOW = 1_700_000_000.0


class Clock:
    def __init__(self, now=NOW):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def store():
    store = Mock()
    store.save = AsyncMock()
    return store


@pytest.fixture
def on_token_saved():
    return AsyncMock()


@pytest.fixture
def service(clock, store, on_token_saved):
    return GoogleReauthService(
        CLIENT_JSON,
        state_secret="s3cret",
        secret_name="GOOGLE_OAUTH_TOKEN_JSON",
        base_url="https://bot.example.com/",
        token_store=store,
        on_token_saved=on_token_saved,
        clock=clock,
    )


def state_of(url):
    return parse_qs(urlparse(url).query)["state"][0]


def test_redirect_uri():
    assert get_redirect_uri("https://bot.example.com/") == "https://bot.example.com/oauth/google/callback"
    assert get_redirect_uri(None, 9000) == "http://localhost:9000/oauth/google/callback"


def test_constructor_requires_secrets():
    with pytest.raises(ValueError, match="State secret is required"):
        GoogleReauthService(CLIENT_JSON, "", "name")
    with pytest.raises(ValueError, match="Secret name is required"):
        GoogleReauthService(CLIENT_JSON, "s", "")


def test_auth_url_parameters(service):
    link = service.create_auth_url(10, 5)
    params = parse_qs(urlparse(link.url).query)

    assert link.url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
    assert params["client_id"] == ["cid"]
    assert params["redirect_uri"] == ["https://bot.example.com/oauth/google/callback"]
    assert params["access_type"] == ["offline"]
    assert params["prompt"] == ["consent select_account"]
    assert link.minutes_left(NOW) == 10

    state = decode_state(params["state"][0])
    assert state["chatId"] == 10
    assert state["userId"] == 5
    assert state["exp"] - state["iat"] == 600_000


def test_one_session_per_chat(service, clock):
    service.create_auth_url(10, 5)
    with pytest.raises(OAuthSessionError, match="Ya hay una sesión de login activa"):
        service.create_auth_url(10, 5)
    service.create_auth_url(11, 5)

    clock.now += 601
    assert service.has_active_session(10) is False
    service.create_auth_url(10, 5)


def test_cancel_session(service):
    service.create_auth_url(10, 5)
    assert service.cancel_session(10) is True
    assert service.cancel_session(10) is False
    assert service.has_active_session(10) is False


def test_create_auth_url_validates():
    service = GoogleReauthService(CLIENT_JSON, "s", "name")
    with pytest.raises(ValueError, match="Chat ID is required"):
        service.create_auth_url(None, 5)
    with pytest.raises(ValueError, match="User ID is required"):
        service.create_auth_url(10, "")


def test_verify_state_rejects_tampering(service, clock):
    state = state_of(service.create_auth_url(10, 5).url)
    assert service.verify_state(state)["chatId"] == 10

    forged = decode_state(state)
    forged["chatId"] = 666
    with pytest.raises(OAuthStateError, match="Invalid state signature"):
        service.verify_state(_b64url_encode(_canonical(forged)))

    unsigned = decode_state(state)
    del unsigned["sig"]
    with pytest.raises(OAuthStateError, match="missing signature"):
        service.verify_state(_b64url_encode(_canonical(unsigned)))

    with pytest.raises(OAuthStateError, match="malformed"):
        service.verify_state("%%%")

    clock.now += 601
    with pytest.raises(OAuthStateError, match="State has expired"):
        service.verify_state(state)


def test_decode_state_chat_id():
    assert decode_state_chat_id(None) is None
    assert decode_state_chat_id("garbage!") is None
    assert decode_state_chat_id(_b64url_encode(_canonical({"chatId": 3}))) == 3


async def test_callback_saves_token(service, store, on_token_saved, httpx_mock):
    httpx_mock.add_response(
        method="POST",
        url=GOOGLE_TOKEN_URL,
        json={
            "access_token": "at",
            "refresh_token": "rt",
            "expires_in": 3600,
            "token_type": "Bearer",
            "scope": "https://www.googleapis.com/auth/drive",
        },
    )
    state = state_of(service.create_auth_url(10, 5).url)

    result = await service.handle_callback("the-code", state)

    assert result.chat_id == 10
    assert result.has_refresh_token is True
    assert result.message == TOKEN_UPDATED_TEXT

    secret_name, token_json = store.save.await_args.args
    assert secret_name == "GOOGLE_OAUTH_TOKEN_JSON"
    token = json.loads(token_json)
    assert token["refresh_token"] == "rt"
    assert token["client_id"] == "cid"
    assert token["expiry_date"] == int((NOW + 3600) * 1000)
    on_token_saved.assert_awaited_once_with(token_json)

    sent = parse_qs(httpx_mock.get_requests()[0].content.decode())
    assert sent["code"] == ["the-code"]
    assert sent["grant_type"] == ["authorization_code"]
    assert service.has_active_session(10) is False


async def test_callback_without_refresh_token_warns(service, httpx_mock):
    httpx_mock.add_response(method="POST", url=GOOGLE_TOKEN_URL, json={"access_token": "at"})
    state = state_of(service.create_auth_url(10, 5).url)

    result = await service.handle_callback("code", state)

    assert result.has_refresh_token is False
    assert result.message == TOKEN_WITHOUT_REFRESH_TEXT


async def test_rejected_code_spends_session(service, store, httpx_mock):
    httpx_mock.add_response(method="POST", url=GOOGLE_TOKEN_URL, status_code=400, json={"error": "invalid_grant"})
    state = state_of(service.create_auth_url(10, 5).url)

    with pytest.raises(OAuthTokenExchangeError, match="Error exchanging code"):
        await service.handle_callback("bad", state)

    store.save.assert_not_awaited()
    assert service.has_active_session(10) is False


async def test_missing_access_token(service, httpx_mock):
    httpx_mock.add_response(method="POST", url=GOOGLE_TOKEN_URL, json={"refresh_token": "rt"})
    state = state_of(service.create_auth_url(10, 5).url)
    with pytest.raises(OAuthTokenExchangeError, match="Missing access_token"):
        await service.handle_callback("code", state)


async def test_callback_without_session(service):
    state = state_of(service.create_auth_url(10, 5).url)
    service.cancel_session(10)
    with pytest.raises(OAuthSessionError, match="No active session found"):
        await service.handle_callback("code", state)


async def test_callback_with_replaced_session(service):
    old_state = state_of(service.create_auth_url(10, 5).url)
    service.cancel_session(10)
    service.create_auth_url(10, 5)
    with pytest.raises(OAuthSessionError, match="nonce mismatch"):
        await service.handle_callback("code", old_state)


async def test_callback_requires_code_and_state(service):
    with pytest.raises(ValueError, match="Authorization code is required"):
        await service.handle_callback("", "state")
    with pytest.raises(ValueError, match="State is required"):
        await service.handle_callback("code", "")
