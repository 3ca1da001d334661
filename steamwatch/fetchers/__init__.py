"""Fetchers for product pages and the prices on them."""

from steamwatch.fetchers.steam import extract_price, fetch_page, parse_price, parse_product_page

__all__ = ["extract_price", "fetch_page", "parse_price", "parse_product_page"]
