"""SteamWatch: Steam store price tracker with Telegram sale alerts."""

__version__ = "0.1.0"
