#!/usr/bin/env python3
import json

import httpx
import pytest
from unittest.mock import AsyncMock, Mock

from conftest import MockUser
from vivienda_concierge.cli import get_user_id, set_webhook as set_webhook_cli
from vivienda_concierge.cli.get_user_id import format_user_info, get_my_id
from vivienda_concierge.cli.set_webhook import WebhookSetupError, set_webhook, webhook_url

API = "https://api.telegram.org/bot123:ABC"


def test_format_user_info():
    text = format_user_info(MockUser(id=123, username=None, first_name="Ana"))
    assert "🆔 User ID: 123" in text
    assert "👤 Usuario: @sin usuario" in text
    assert "AUTHORIZED_USERS=123" in text


async def test_get_my_id_replies_with_user_id():
    update = Mock()
    update.effective_user = MockUser(id=123)
    update.effective_message.reply_text = AsyncMock()

    await get_my_id(update, None)

    text = update.effective_message.reply_text.await_args.args[0]
    assert "User ID: 123" in text


def test_get_user_id_main_without_token(monkeypatch):
    monkeypatch.setattr(get_user_id, "TELEGRAM_BOT_TOKEN", None)
    with pytest.raises(SystemExit):
        get_user_id.main()


def test_webhook_url():
    assert webhook_url("https://bot.example.com/") == "https://bot.example.com/telegram/webhook"


def test_set_webhook_registers_url_and_secret(httpx_mock):
    httpx_mock.add_response(method="POST", url=f"{API}/deleteWebhook", json={"ok": True})
    httpx_mock.add_response(method="POST", url=f"{API}/setWebhook", json={"ok": True})

    with httpx.Client() as client:
        url = set_webhook("123:ABC", "https://bot.example.com", "s3cret", client=client)

    assert url == "https://bot.example.com/telegram/webhook"
    registered = httpx_mock.get_requests()[-1]
    assert json.loads(registered.content) == {"url": url, "secret_token": "s3cret"}


def test_set_webhook_reports_refusal(httpx_mock):
    httpx_mock.add_response(method="POST", url=f"{API}/deleteWebhook", json={"ok": True})
    httpx_mock.add_response(
        method="POST", url=f"{API}/setWebhook", json={"ok": False, "description": "bad url"}
    )
    with httpx.Client() as client:
        with pytest.raises(WebhookSetupError, match="bad url"):
            set_webhook("123:ABC", "https://bot.example.com", "s3cret", client=client)


def test_set_webhook_http_failure(httpx_mock):
    httpx_mock.add_response(method="POST", url=f"{API}/deleteWebhook", status_code=401)
    with httpx.Client() as client:
        with pytest.raises(WebhookSetupError, match="Error llamando a Telegram API"):
            set_webhook("123:ABC", "https://bot.example.com", "s3cret", client=client)


@pytest.mark.parametrize(
    "token,base_url,secret,message",
    [
        ("", "https://x", "s", "Falta TELEGRAM_BOT_TOKEN"),
        ("t", "https://x", "", "Falta TELEGRAM_WEBHOOK_SECRET"),
        ("t", "", "s", "Falta PUBLIC_BASE_URL"),
    ],
)
def test_set_webhook_requires_settings(token, base_url, secret, message):
    with pytest.raises(WebhookSetupError, match=message):
        set_webhook(token, base_url, secret)


def test_set_webhook_main_exits_on_missing_settings(monkeypatch, capsys):
    monkeypatch.setattr(set_webhook_cli.config, "TELEGRAM_BOT_TOKEN", None)
    monkeypatch.setattr("sys.argv", ["vivienda-set-webhook", "--base-url", "https://x"])
    with pytest.raises(SystemExit):
        set_webhook_cli.main()
    assert "❌ Falta TELEGRAM_BOT_TOKEN" in capsys.readouterr().out
