"""Data models for price tracking."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


@dataclass
class PriceObservation:
    """Prices read from a single product page fetch."""

    base_price: float
    discount_price: float | None = None

    @property
    def on_sale(self) -> bool:
        return self.discount_price is not None

    @property
    def effective_price(self) -> float:
        """Price payable now: discount price if active, else base price."""
        if self.discount_price is not None:
            return self.discount_price
        return self.base_price


@dataclass
class ProductPage:
    """Everything scraped from a product page when it is first tracked."""

    title: str
    observation: PriceObservation
    tags: list[str] = field(default_factory=list)


@dataclass
class TrackedProduct:
    """Product under price watch with its last reconciled price state."""

    id: int
    url: str
    title: str
    base_price: float
    current_price: float
    on_sale: bool = False
    last_checked: datetime | None = None
    players: int = 1
    category: str | None = None
    tags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class FlatDestination:
    """Notifications go to the root conversation of a chat."""

    chat_id: int

    def describe(self) -> str:
        return f"chat {self.chat_id}"


@dataclass(frozen=True)
class ThreadedDestination:
    """Notifications go to one topic thread inside a group chat."""

    chat_id: int
    thread_id: int

    def describe(self) -> str:
        return f"chat {self.chat_id} thread {self.thread_id}"


Destination = FlatDestination | ThreadedDestination


@dataclass
class PriceChangeEvent:
    """A tracked product became cheaper through a sale."""

    product_id: int
    title: str
    url: str
    old_price: float
    new_price: float
    new_base_price: float
    produced_at: datetime

    @property
    def discount_percent(self) -> int:
        """Drop relative to the previous effective price, rounded."""
        if self.old_price <= 0:
            return 0
        return round((1 - self.new_price / self.old_price) * 100)


class RefreshStatus(str, Enum):
    """Outcome of refreshing one product."""

    UPDATED = "updated"
    NOT_FOUND = "not_found"
    FETCH_FAILED = "fetch_failed"
    EXTRACTION_FAILED = "extraction_failed"
    ERROR = "error"


@dataclass
class RefreshResult:
    product_id: int
    status: RefreshStatus
    event: PriceChangeEvent | None = None
    product: TrackedProduct | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is RefreshStatus.UPDATED


@dataclass
class DeliveryReport:
    """Per-destination outcome of one notification fan-out."""

    delivered: list[Destination] = field(default_factory=list)
    failures: list[tuple[Destination, str]] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.delivered)

    @property
    def failed(self) -> int:
        return len(self.failures)


@dataclass
class SweepReport:
    """Aggregated outcome of one pass over all tracked products."""

    started_at: datetime
    finished_at: datetime | None = None
    results: list[RefreshResult] = field(default_factory=list)
    deliveries: list[DeliveryReport] = field(default_factory=list)

    def count(self, status: RefreshStatus) -> int:
        return sum(1 for r in self.results if r.status is status)

    @property
    def events(self) -> list[PriceChangeEvent]:
        return [r.event for r in self.results if r.event is not None]
