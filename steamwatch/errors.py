"""Exception types for SteamWatch."""


class SteamWatchError(Exception):
    """Base class for all SteamWatch errors."""


class ConfigError(SteamWatchError):
    """Missing or invalid configuration; halts startup."""


class FetchError(SteamWatchError):
    """Product page could not be downloaded (transport error or timeout)."""


class ExtractionError(SteamWatchError):
    """No usable price could be read from a product page."""


class ProductNotFound(SteamWatchError):
    """Tracked product id does not exist."""

    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class DuplicateProduct(SteamWatchError):
    """A product with the same URL is already tracked."""


class DestinationNotFound(SteamWatchError):
    """Notification destination is not configured."""


class DeliveryError(SteamWatchError):
    """Message could not be delivered to a destination."""
