"""Deliver one price drop to every configured destination."""

import logging
from collections.abc import Callable, Iterable

from steamwatch.models import DeliveryReport, Destination, PriceChangeEvent
from steamwatch.notifiers.formatting import format_price_drop
from steamwatch.notifiers.telegram import send_telegram_message

logger = logging.getLogger(__name__)

Sender = Callable[[Destination, str], None]


def notify(
    event: PriceChangeEvent,
    destinations: Iterable[Destination],
    send: Sender = send_telegram_message,
) -> DeliveryReport:
    """
    Send the event to each destination in turn.

    A failing destination is recorded in the report and does not stop
    delivery to the rest.
    """
    message = format_price_drop(event)
    report = DeliveryReport()

    for destination in destinations:
        try:
            send(destination, message)
        except Exception as e:
            logger.error(
                "Delivery of '%s' to %s failed: %s",
                event.title, destination.describe(), e,
            )
            report.failures.append((destination, str(e)))
        else:
            logger.debug("Delivered '%s' to %s", event.title, destination.describe())
            report.delivered.append(destination)

    logger.info(
        "Notified '%s': %d delivered, %d failed",
        event.title, report.succeeded, report.failed,
    )
    return report
