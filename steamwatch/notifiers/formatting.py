"""Notification message text."""

from html import escape

from steamwatch.models import PriceChangeEvent


def format_price(value: float) -> str:
    return f"{value:,.2f}"


def format_price_drop(event: PriceChangeEvent) -> str:
    """HTML message for Telegram: title, new price, old price and link."""
    return (
        f"🎮 <b>{escape(event.title)}</b>\n\n"
        f"💰 Sale -{event.discount_percent}%!\n"
        f"Old price: {format_price(event.old_price)}\n"
        f"New price: {format_price(event.new_price)}\n\n"
        f"🔗 {escape(event.url)}"
    )
