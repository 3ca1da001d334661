"""Tests for notification fan-out, formatting and the Telegram transport."""
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest
import requests

from steamwatch.errors import DeliveryError
from steamwatch.models import FlatDestination, PriceChangeEvent, ThreadedDestination
from steamwatch.notifiers.fanout import notify
from steamwatch.notifiers.formatting import format_price_drop
from steamwatch.notifiers.telegram import build_payload, send_telegram_message


@pytest.fixture
def event():
    return PriceChangeEvent(
        product_id=7,
        title="Portal 2 & Friends",
        url="https://store.steampowered.com/app/620/",
        old_price=1999.0,
        new_price=999.0,
        new_base_price=1999.0,
        produced_at=datetime(2024, 6, 1),
    )


# --- Formatting ---

def test_message_contains_title_price_and_link(event):
    text = format_price_drop(event)
    assert "Portal 2 &amp; Friends" in text
    assert "999.00" in text
    assert "1,999.00" in text
    assert "-50%" in text
    assert "https://store.steampowered.com/app/620/" in text


# --- Fan-out ---

def test_fanout_isolates_failing_destination(event):
    destinations = [
        FlatDestination(chat_id=1),
        ThreadedDestination(chat_id=-100, thread_id=5),
        FlatDestination(chat_id=3),
    ]
    send = MagicMock(side_effect=[None, DeliveryError("chat not found"), None])

    report = notify(event, destinations, send=send)

    assert send.call_count == 3
    assert report.succeeded == 2
    assert report.failed == 1
    assert report.delivered == [destinations[0], destinations[2]]
    assert report.failures[0][0] == destinations[1]
    assert "chat not found" in report.failures[0][1]


def test_fanout_survives_unexpected_exceptions(event):
    send = MagicMock(side_effect=RuntimeError("boom"))
    report = notify(event, [FlatDestination(1), FlatDestination(2)], send=send)
    assert report.failed == 2
    assert report.succeeded == 0


def test_fanout_sends_same_message_everywhere(event):
    send = MagicMock()
    notify(event, [FlatDestination(1), ThreadedDestination(2, 9)], send=send)
    messages = {call.args[1] for call in send.call_args_list}
    assert messages == {format_price_drop(event)}


def test_fanout_with_no_destinations(event):
    send = MagicMock()
    report = notify(event, [], send=send)
    send.assert_not_called()
    assert report.succeeded == 0 and report.failed == 0


# --- Telegram transport ---

def test_payload_for_flat_destination_has_no_thread():
    payload = build_payload(FlatDestination(chat_id=42), "hi")
    assert payload["chat_id"] == 42
    assert "message_thread_id" not in payload


def test_payload_for_threaded_destination_targets_topic():
    payload = build_payload(ThreadedDestination(chat_id=-1001, thread_id=17), "hi")
    assert payload["chat_id"] == -1001
    assert payload["message_thread_id"] == 17
    assert payload["parse_mode"] == "HTML"


@patch("steamwatch.notifiers.telegram.requests.post")
def test_send_posts_to_bot_api(mock_post):
    mock_post.return_value = MagicMock(status_code=200)
    send_telegram_message(ThreadedDestination(-1001, 17), "hello", token="abc")

    url = mock_post.call_args.args[0]
    assert url == "https://api.telegram.org/botabc/sendMessage"
    assert mock_post.call_args.kwargs["json"]["message_thread_id"] == 17


@patch("steamwatch.notifiers.telegram.requests.post")
def test_send_raises_on_api_error(mock_post):
    response = MagicMock(status_code=400, text="Bad Request")
    response.json.return_value = {"ok": False, "description": "Bad Request: chat not found"}
    mock_post.return_value = response

    with pytest.raises(DeliveryError, match="chat not found"):
        send_telegram_message(FlatDestination(1), "hello", token="abc")


@patch("steamwatch.notifiers.telegram.requests.post")
def test_send_raises_on_transport_error(mock_post):
    mock_post.side_effect = requests.ConnectionError("unreachable")
    with pytest.raises(DeliveryError):
        send_telegram_message(FlatDestination(1), "hello", token="abc")


def test_send_without_token_fails(monkeypatch):
    monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)
    with pytest.raises(DeliveryError):
        send_telegram_message(FlatDestination(1), "hello")
