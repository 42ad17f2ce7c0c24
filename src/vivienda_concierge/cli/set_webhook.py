#!/usr/bin/env python3
"""
Point Telegram at the deployed webhook.

Deletes any previous webhook, then registers ``<base_url>/telegram/webhook``
with the shared secret Telegram must echo in every request.
"""

import argparse
from typing import Optional

import httpx

from vivienda_concierge import config
from vivienda_concierge.constants import WEBHOOK_PATH

TELEGRAM_API_URL = "https://api.telegram.org"


class WebhookSetupError(Exception):
    pass


def webhook_url(base_url: str) -> str:
    return f"{base_url.rstrip('/')}{WEBHOOK_PATH}"


def set_webhook(
    bot_token: str, base_url: str, secret: str, client: Optional[httpx.Client] = None
) -> str:
    """Replace the bot's webhook; returns the registered URL."""
    if not bot_token:
        raise WebhookSetupError("Falta TELEGRAM_BOT_TOKEN")
    if not secret:
        raise WebhookSetupError("Falta TELEGRAM_WEBHOOK_SECRET")
    if not base_url:
        raise WebhookSetupError(
            "Falta PUBLIC_BASE_URL (ej: https://your-service-xyz.a.run.app)"
        )

    url = webhook_url(base_url)
    api = f"{TELEGRAM_API_URL}/bot{bot_token}"
    owns_client = client is None
    client = client or httpx.Client(timeout=15.0)
    try:
        print("🗑️  Eliminando webhook anterior...")
        client.post(f"{api}/deleteWebhook").raise_for_status()

        print(f"✅ Configurando nuevo webhook: {url}")
        response = client.post(
            f"{api}/setWebhook", json={"url": url, "secret_token": secret}
        )
        response.raise_for_status()
        body = response.json()
    except httpx.HTTPError as e:
        raise WebhookSetupError(f"Error llamando a Telegram API: {e}") from e
    finally:
        if owns_client:
            client.close()

    if not body.get("ok"):
        raise WebhookSetupError(f"Error configurando webhook: {body}")
    return url


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="vivienda-set-webhook",
        description="Register the Telegram webhook for the deployed concierge",
    )
    parser.add_argument(
        "--base-url",
        default=config.PUBLIC_BASE_URL,
        help="public base URL of the service (default: PUBLIC_BASE_URL)",
    )
    args = parser.parse_args()

    try:
        url = set_webhook(
            config.TELEGRAM_BOT_TOKEN, args.base_url, config.TELEGRAM_WEBHOOK_SECRET
        )
    except WebhookSetupError as e:
        print(f"❌ {e}")
        raise SystemExit(1)
    print(f"✅ Webhook configurado correctamente: {url}")


if __name__ == "__main__":
    main()
