"""Price state store: the only writer of a product's price fields."""

import threading
from contextlib import contextmanager
from datetime import datetime

from steamwatch import storage
from steamwatch.errors import ProductNotFound
from steamwatch.models import PriceObservation, TrackedProduct


class PriceStateStore:
    """Reads tracked products and applies new price observations to them.

    Writes for one product are serialized through `lock(product_id)`.
    """

    def __init__(self):
        self._locks: dict[int, threading.Lock] = {}
        self._guard = threading.Lock()

    @contextmanager
    def lock(self, product_id: int):
        with self._guard:
            product_lock = self._locks.setdefault(product_id, threading.Lock())
        with product_lock:
            yield

    def get(self, product_id: int) -> TrackedProduct:
        product = storage.load_product(product_id)
        if product is None:
            raise ProductNotFound(product_id)
        return product

    def apply_observation(
        self,
        product_id: int,
        observation: PriceObservation,
        checked_at: datetime,
    ) -> TrackedProduct:
        """Persist base, effective price and sale flag from `observation`."""
        saved = storage.save_product_price_state(
            product_id,
            base_price=observation.base_price,
            current_price=observation.effective_price,
            on_sale=observation.on_sale,
            last_checked=checked_at,
        )
        if not saved:
            raise ProductNotFound(product_id)
        return self.get(product_id)

    def forget(self, product_id: int) -> None:
        """Drop the lock of a deleted product."""
        with self._guard:
            self._locks.pop(product_id, None)
