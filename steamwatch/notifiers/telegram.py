"""Telegram push notification."""

import logging
import os

import requests

from steamwatch.errors import DeliveryError
from steamwatch.models import Destination, ThreadedDestination

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org/bot{token}/sendMessage"


def build_payload(destination: Destination, text: str) -> dict:
    """sendMessage body; threaded destinations post into their topic."""
    payload = {
        "chat_id": destination.chat_id,
        "text": text,
        "parse_mode": "HTML",
        "disable_web_page_preview": False,
    }
    if isinstance(destination, ThreadedDestination):
        payload["message_thread_id"] = destination.thread_id
    return payload


def send_telegram_message(
    destination: Destination,
    text: str,
    token: str | None = None,
    timeout: float = 10,
) -> None:
    """
    Send a message via Telegram Bot API.

    Uses TELEGRAM_BOT_TOKEN when no token is given. Raises DeliveryError
    on any failure.
    """
    token = token or os.environ.get("TELEGRAM_BOT_TOKEN")
    if not token:
        raise DeliveryError("TELEGRAM_BOT_TOKEN not set")

    url = TELEGRAM_API.format(token=token)
    payload = build_payload(destination, text)

    logger.debug("Telegram: sending to %s", destination.describe())
    try:
        resp = requests.post(url, json=payload, timeout=timeout)
    except requests.RequestException as e:
        raise DeliveryError(f"Telegram request failed: {e}") from e

    if resp.status_code != 200:
        try:
            description = resp.json().get("description", resp.text)
        except ValueError:
            description = resp.text
        raise DeliveryError(f"Telegram API error (status {resp.status_code}): {description}")
