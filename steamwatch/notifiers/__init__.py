"""Notification backends."""

from steamwatch.notifiers.fanout import notify
from steamwatch.notifiers.telegram import send_telegram_message

__all__ = ["notify", "send_telegram_message"]
