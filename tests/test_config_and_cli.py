"""Tests for settings, page fetching and the command line."""
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from steamwatch import catalog, main, storage
from steamwatch.config import load_settings
from steamwatch.errors import ConfigError, FetchError
from steamwatch.fetchers.steam import AGE_GATE_COOKIES, fetch_page

from tests.pages import GAME_URL, discount_page, plain_page


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in ("TELEGRAM_BOT_TOKEN", "CHECK_INTERVAL_HOURS", "JITTER_MAX_SECONDS",
                 "REQUEST_DELAY_SECONDS", "FETCH_TIMEOUT_SECONDS", "STEAM_COUNTRY",
                 "STEAM_LANGUAGE", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DB_PATH", str(tmp_path / "cli.db"))
    monkeypatch.setenv("LOG_DIR", "")
    return monkeypatch


# --- Settings ---

def test_defaults(clean_env, tmp_path):
    settings = load_settings()
    assert settings.check_interval_hours == 24
    assert settings.fetch_timeout_seconds == 15
    assert settings.telegram_bot_token is None
    assert settings.db_path == Path(tmp_path / "cli.db")
    assert settings.log_dir is None


def test_invalid_interval(clean_env):
    clean_env.setenv("CHECK_INTERVAL_HOURS", "daily")
    with pytest.raises(ConfigError):
        load_settings()


def test_zero_interval(clean_env):
    clean_env.setenv("CHECK_INTERVAL_HOURS", "0")
    with pytest.raises(ConfigError):
        load_settings()


def test_missing_token_is_config_error(clean_env):
    with pytest.raises(ConfigError):
        load_settings().require_telegram_token()


# --- fetch_page ---

@patch("steamwatch.fetchers.steam.requests.get")
def test_fetch_page_uses_timeout_and_region(mock_get):
    mock_get.return_value = MagicMock(text="<html/>")
    assert fetch_page(GAME_URL, timeout=3, country="ru", language="russian") == "<html/>"

    kwargs = mock_get.call_args.kwargs
    assert kwargs["timeout"] == 3
    assert kwargs["params"] == {"cc": "ru", "l": "russian"}
    assert kwargs["cookies"] == AGE_GATE_COOKIES


@patch("steamwatch.fetchers.steam.requests.get")
def test_fetch_page_timeout_is_fetch_error(mock_get):
    mock_get.side_effect = requests.Timeout("read timed out")
    with pytest.raises(FetchError):
        fetch_page(GAME_URL)


@patch("steamwatch.fetchers.steam.requests.get")
def test_fetch_page_http_error_is_fetch_error(mock_get):
    response = MagicMock()
    response.raise_for_status.side_effect = requests.HTTPError("503 Server Error")
    mock_get.return_value = response
    with pytest.raises(FetchError):
        fetch_page(GAME_URL)


# --- CLI ---

def test_cli_bad_config_exits_2(clean_env):
    clean_env.setenv("FETCH_TIMEOUT_SECONDS", "soon")
    assert main.main(["list"]) == 2


def test_cli_add_and_list(clean_env, capsys):
    with patch("steamwatch.main.fetch_page", return_value=plain_page("435 ₽")):
        assert main.main(["add", GAME_URL, "--category", "Co-op"]) == 0
    assert main.main(["list"]) == 0

    out = capsys.readouterr().out
    assert "Portal 2" in out
    assert "435.00" in out
    assert "Co-op" in out


def test_cli_add_unparsable_page(clean_env, capsys):
    with patch("steamwatch.main.fetch_page", return_value="<html></html>"):
        assert main.main(["add", GAME_URL]) == 1
    assert "Error" in capsys.readouterr().err


def test_cli_refresh_requires_token(clean_env):
    assert main.main(["refresh", "1"]) == 2


def test_cli_refresh_notifies_destinations(clean_env, capsys):
    clean_env.setenv("TELEGRAM_BOT_TOKEN", "abc")
    with patch("steamwatch.main.fetch_page", return_value=plain_page("100")):
        main.main(["add", GAME_URL])
    main.main(["dest-add", "-1001", "--thread", "7"])

    with patch("steamwatch.main.fetch_page", return_value=discount_page("100", "60")), \
            patch("steamwatch.notifiers.telegram.requests.post") as mock_post:
        mock_post.return_value = MagicMock(status_code=200)
        assert main.main(["refresh", "1"]) == 0

    assert mock_post.call_args.kwargs["json"]["message_thread_id"] == 7
    assert "Notified 1, failed 0" in capsys.readouterr().out


def test_cli_refresh_unknown_product(clean_env):
    clean_env.setenv("TELEGRAM_BOT_TOKEN", "abc")
    assert main.main(["refresh", "99"]) == 1


def test_cli_destinations(clean_env, capsys):
    assert main.main(["dest-add", "100"]) == 0
    assert main.main(["dest-list"]) == 0
    assert "chat 100 (flat)" in capsys.readouterr().out
    assert main.main(["dest-remove", "100"]) == 0
    assert catalog.list_destinations() == []
    assert main.main(["dest-remove", "100"]) == 1


def _add_game(n, players, category):
    url = f"https://store.steampowered.com/app/{n}/"
    with patch("steamwatch.main.fetch_page", return_value=plain_page("10", title=f"Game {n}")):
        assert main.main(["add", url, "--players", str(players), "--category", category]) == 0


def test_cli_list_filters(clean_env, capsys):
    _add_game(1, 1, "RPG")
    _add_game(2, 4, "Co-op")
    _add_game(3, 2, "RPG")
    capsys.readouterr()

    assert main.main(["list", "--players", "2"]) == 0
    out = capsys.readouterr().out
    assert "Game 1" not in out
    assert out.index("Game 3") < out.index("Game 2")

    assert main.main(["list", "--category", "RPG"]) == 0
    out = capsys.readouterr().out
    assert "Game 1" in out and "Game 3" in out
    assert "Game 2" not in out


def test_cli_list_rejects_zero_players(clean_env):
    with pytest.raises(SystemExit):
        main.main(["list", "--players", "0"])


def test_cli_edit(clean_env, capsys):
    _add_game(1, 1, "RPG")

    assert main.main(["edit", "1", "--players", "4", "--category", "Co-op", "--tags", "Puzzle,Indie"]) == 0

    product = catalog.get_product(1)
    assert product.players == 4
    assert product.category == "Co-op"
    assert product.tags == ["Indie", "Puzzle"]
    assert "category: Co-op; tags: Indie, Puzzle" in capsys.readouterr().out

    assert main.main(["edit", "1", "--no-category"]) == 0
    assert catalog.get_product(1).category is None


def test_cli_edit_unknown_product(clean_env, capsys):
    assert main.main(["edit", "5", "--players", "2"]) == 1
    assert "Product 5 not found" in capsys.readouterr().err


def test_cli_history(clean_env, capsys):
    with patch("steamwatch.main.fetch_page", return_value=plain_page("100")):
        main.main(["add", GAME_URL])
    storage.save_product_price_state(1, 100.0, 60.0, True, datetime(2099, 1, 1, 8, 0))
    capsys.readouterr()

    assert main.main(["history", "1"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "2099-01-01 08:00  60.00 (was 100.00)"
    assert lines[1].endswith("  100.00")
    assert len(lines) == 2


def test_cli_history_unknown_product(clean_env):
    assert main.main(["history", "9"]) == 1
