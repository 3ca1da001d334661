"""Steam store page fetching and price extraction."""

import logging
import math
import re

import requests
from bs4 import BeautifulSoup

from steamwatch.errors import ExtractionError, FetchError
from steamwatch.models import PriceObservation, ProductPage

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15

HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

# Skip the age gate on mature titles
AGE_GATE_COOKIES = {
    "birthtime": "568022401",
    "lastagecheckage": "1-0-1988",
    "wants_mature_content": "1",
}

# Discount layout: original and reduced price inside one block
DISCOUNT_BLOCK = ".discount_prices"
DISCOUNT_ORIGINAL = ".discount_original_price"
DISCOUNT_FINAL = ".discount_final_price"
# Plain layout
PLAIN_PRICE = ".game_purchase_price"

TITLE = ".apphub_AppName"
TAG = ".app_tag:not(.add_button)"


def fetch_page(
    url: str,
    timeout: float = DEFAULT_TIMEOUT,
    country: str | None = None,
    language: str | None = None,
) -> str:
    """Download a store page. Raises FetchError on any transport failure."""
    params = {}
    if country:
        params["cc"] = country
    if language:
        params["l"] = language
    try:
        resp = requests.get(
            url,
            params=params or None,
            headers=HEADERS,
            cookies=AGE_GATE_COOKIES,
            timeout=timeout,
        )
        resp.raise_for_status()
    except requests.RequestException as e:
        raise FetchError(f"Could not fetch {url}: {e}") from e
    return resp.text


def parse_price(text: str) -> float:
    """
    Convert a displayed price like '1 999,00 ₽' or '$1,299.99' to a float.

    When both ',' and '.' appear the right-most one is the decimal point.
    A separator used several times, or used once with exactly three digits
    after it ('¥ 1,980', '188.000₫'), is digit grouping; otherwise it is the
    decimal point. A minus sign before the number is rejected.
    """
    first_digit = re.search(r"\d", text or "")
    if first_digit and "-" in text[:first_digit.start()]:
        raise ExtractionError(f"Negative price {text!r}")

    cleaned = re.sub(r"[^0-9.,]", "", text or "")
    if not re.search(r"\d", cleaned):
        raise ExtractionError(f"No price in {text!r}")

    if "," in cleaned and "." in cleaned:
        decimal = "," if cleaned.rfind(",") > cleaned.rfind(".") else "."
        grouping = "." if decimal == "," else ","
        cleaned = cleaned.replace(grouping, "").replace(decimal, ".")
    else:
        for sep in ",.":
            count = cleaned.count(sep)
            if count == 1 and not re.search(rf"\{sep}\d{{3}}$", cleaned):
                cleaned = cleaned.replace(sep, ".")
            elif count >= 1:
                cleaned = cleaned.replace(sep, "")

    try:
        value = float(cleaned)
    except ValueError:
        raise ExtractionError(f"Unparsable price {text!r}") from None
    if math.isnan(value) or math.isinf(value) or value < 0:
        raise ExtractionError(f"Invalid price {text!r}")
    return value


def _text(element) -> str:
    return element.get_text(strip=True) if element is not None else ""


def _extract(soup: BeautifulSoup) -> PriceObservation:
    block = soup.select_one(DISCOUNT_BLOCK)
    if block is not None:
        base = parse_price(_text(block.select_one(DISCOUNT_ORIGINAL)))
        discount = parse_price(_text(block.select_one(DISCOUNT_FINAL)))
        if discount >= base:
            raise ExtractionError(
                f"Discount price {discount} is not below original price {base}"
            )
        return PriceObservation(base_price=base, discount_price=discount)

    plain = soup.select_one(PLAIN_PRICE)
    if plain is None:
        raise ExtractionError("No price block found on page")
    return PriceObservation(base_price=parse_price(_text(plain)))


def extract_price(html: str) -> PriceObservation:
    """Read base price and, if a discount is shown, the discount price."""
    return _extract(BeautifulSoup(html, "html.parser"))


def parse_product_page(html: str) -> ProductPage:
    """Read title, user tags and price from a product page."""
    soup = BeautifulSoup(html, "html.parser")
    title = _text(soup.select_one(TITLE))
    if not title:
        raise ExtractionError("No product title found on page")
    tags = [t for t in (_text(el) for el in soup.select(TAG)) if t]
    observation = _extract(soup)
    logger.debug("Parsed %s: %s, %d tags", title, observation, len(tags))
    return ProductPage(title=title, observation=observation, tags=tags)
