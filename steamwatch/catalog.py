"""Managing tracked products, categories and notification destinations."""

import logging
from collections.abc import Callable
from datetime import datetime

from steamwatch import storage
from steamwatch.errors import DestinationNotFound, ProductNotFound
from steamwatch.fetchers.steam import fetch_page, parse_product_page
from steamwatch.models import Destination, FlatDestination, ThreadedDestination, TrackedProduct
from steamwatch.state import PriceStateStore

logger = logging.getLogger(__name__)


def add_product(
    url: str,
    category: str | None = None,
    players: int = 1,
    fetch: Callable[[str], str] = fetch_page,
) -> TrackedProduct:
    """
    Start tracking a store page.

    The page is scraped first; FetchError or ExtractionError propagate and
    nothing is stored. DuplicateProduct is raised for an already tracked URL.
    """
    url = url.strip()
    page = parse_product_page(fetch(url))
    product_id = storage.insert_product(
        url=url,
        title=page.title,
        observation=page.observation,
        checked_at=datetime.now(),
        players=players,
        category=category,
        tags=page.tags,
    )
    logger.info(
        "Tracking %s (id %d) at %.2f%s",
        page.title, product_id, page.observation.effective_price,
        " (on sale)" if page.observation.on_sale else "",
    )
    return get_product(product_id)


def get_product(product_id: int) -> TrackedProduct:
    product = storage.load_product(product_id)
    if product is None:
        raise ProductNotFound(product_id)
    return product


def remove_product(product_id: int, store: PriceStateStore | None = None) -> None:
    if store is not None:
        with store.lock(product_id):
            deleted = storage.delete_product(product_id)
        store.forget(product_id)
    else:
        deleted = storage.delete_product(product_id)
    if not deleted:
        raise ProductNotFound(product_id)
    logger.info("Stopped tracking product %d", product_id)


def list_products(
    min_players: int | None = None,
    category: str | None = None,
) -> list[TrackedProduct]:
    """Tracked products, optionally only those for `min_players` or more players."""
    return storage.list_products(min_players=min_players, category=category)


def update_product(
    product_id: int,
    category: str | None = None,
    players: int | None = None,
    tags: list[str] | None = None,
    clear_category: bool = False,
) -> TrackedProduct:
    """Change category, player count or tags of a tracked product."""
    if players is not None and players < 1:
        raise ValueError("players must be at least 1")
    category = category.strip() if category else None
    if tags is not None:
        tags = [t.strip() for t in tags if t.strip()]
    if not storage.update_product_details(
        product_id, category=category, players=players, tags=tags, clear_category=clear_category,
    ):
        raise ProductNotFound(product_id)
    logger.info("Updated product %d", product_id)
    return get_product(product_id)


def price_history(product_id: int, limit: int = 30) -> list[dict]:
    """Recorded observations of a product, newest first."""
    get_product(product_id)
    return storage.get_price_history(product_id, limit=limit)


def create_category(name: str) -> None:
    storage.create_category(name.strip())


def list_categories() -> list[tuple[str, int]]:
    return storage.list_categories()


def make_destination(chat_id: int, thread_id: int | None = None) -> Destination:
    if thread_id is None:
        return FlatDestination(chat_id=chat_id)
    return ThreadedDestination(chat_id=chat_id, thread_id=thread_id)


def add_destination(chat_id: int, thread_id: int | None = None) -> Destination:
    """Configure a chat (or a topic thread of a group chat) for notifications."""
    destination = make_destination(chat_id, thread_id)
    if storage.add_destination(destination):
        logger.info("Notifications enabled for %s", destination.describe())
    else:
        logger.info("Notifications already enabled for %s", destination.describe())
    return destination


def remove_destination(chat_id: int, thread_id: int | None = None) -> None:
    destination = make_destination(chat_id, thread_id)
    if not storage.delete_destination(destination):
        raise DestinationNotFound(f"No notifications configured for {destination.describe()}")
    logger.info("Notifications disabled for %s", destination.describe())


def list_destinations() -> list[Destination]:
    return storage.list_destinations()
