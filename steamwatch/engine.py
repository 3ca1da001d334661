"""Price refresh: fetch, extract, reconcile against stored state, persist."""

import logging
from collections.abc import Callable
from datetime import datetime

from steamwatch.errors import ExtractionError, FetchError, ProductNotFound
from steamwatch.fetchers.steam import extract_price, fetch_page
from steamwatch.models import (
    PriceChangeEvent,
    PriceObservation,
    RefreshResult,
    RefreshStatus,
    TrackedProduct,
)
from steamwatch.state import PriceStateStore

logger = logging.getLogger(__name__)


def is_price_drop(previous: TrackedProduct, observation: PriceObservation) -> bool:
    """
    Return True if the observation is a sale worth notifying about.

    A sale starting (on_sale false -> true) always lowers the effective price
    below the stored one. While a sale runs, only a further drop counts, so an
    unchanged sale never notifies twice. Sale ending and catalog price changes
    without a discount never notify.
    """
    if not observation.on_sale:
        return False
    return observation.effective_price < previous.current_price


class PriceRefreshEngine:
    """Refreshes one tracked product at a time."""

    def __init__(
        self,
        store: PriceStateStore,
        fetch: Callable[[str], str] = fetch_page,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.fetch = fetch
        self.clock = clock

    def refresh(self, product_id: int) -> RefreshResult:
        """Re-scrape a product's page and update its stored price state."""
        with self.store.lock(product_id):
            return self._refresh(product_id)

    def _refresh(self, product_id: int) -> RefreshResult:
        try:
            previous = self.store.get(product_id)
        except ProductNotFound as e:
            logger.info("Refresh skipped: %s", e)
            return RefreshResult(product_id, RefreshStatus.NOT_FOUND, error=str(e))

        try:
            html = self.fetch(previous.url)
        except FetchError as e:
            logger.warning("Fetch failed for product %d (%s): %s", product_id, previous.url, e)
            return RefreshResult(product_id, RefreshStatus.FETCH_FAILED, product=previous, error=str(e))

        try:
            observation = extract_price(html)
        except ExtractionError as e:
            logger.error(
                "Price extraction failed for product %d (%s), keeping stored price: %s",
                product_id, previous.url, e,
            )
            return RefreshResult(
                product_id, RefreshStatus.EXTRACTION_FAILED, product=previous, error=str(e)
            )

        now = self.clock()
        fire = is_price_drop(previous, observation)

        try:
            updated = self.store.apply_observation(product_id, observation, now)
        except ProductNotFound as e:
            logger.info("Product %d removed during refresh", product_id)
            return RefreshResult(product_id, RefreshStatus.NOT_FOUND, error=str(e))

        if previous.on_sale and not updated.on_sale:
            logger.info("%s: sale ended, back to %.2f", updated.title, updated.current_price)

        event = None
        if fire:
            event = PriceChangeEvent(
                product_id=product_id,
                title=updated.title,
                url=updated.url,
                old_price=previous.current_price,
                new_price=updated.current_price,
                new_base_price=updated.base_price,
                produced_at=now,
            )
            logger.info(
                "Price drop: %s %.2f -> %.2f (-%d%%)",
                updated.title, event.old_price, event.new_price, event.discount_percent,
            )
        else:
            logger.debug(
                "%s: base %.2f, current %.2f, on sale %s",
                updated.title, updated.base_price, updated.current_price, updated.on_sale,
            )

        return RefreshResult(product_id, RefreshStatus.UPDATED, event=event, product=updated)
