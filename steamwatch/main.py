"""Entry point: command line surface and scheduler bootstrap for SteamWatch."""

import argparse
import logging
import sys
from functools import partial

from steamwatch import catalog, storage
from steamwatch.config import Settings, load_settings
from steamwatch.engine import PriceRefreshEngine
from steamwatch.errors import ConfigError, SteamWatchError
from steamwatch.fetchers.steam import fetch_page
from steamwatch.logging_setup import setup_logging
from steamwatch.models import RefreshStatus, ThreadedDestination
from steamwatch.notifiers.fanout import notify
from steamwatch.notifiers.formatting import format_price
from steamwatch.notifiers.telegram import send_telegram_message
from steamwatch.scheduler import RefreshScheduler
from steamwatch.state import PriceStateStore

logger = logging.getLogger(__name__)


def build_fetch(settings: Settings):
    return partial(
        fetch_page,
        timeout=settings.fetch_timeout_seconds,
        country=settings.steam_country,
        language=settings.steam_language,
    )


def build_scheduler(settings: Settings, store: PriceStateStore) -> RefreshScheduler:
    """Wire engine, Telegram fan-out and timer from settings."""
    token = settings.require_telegram_token()
    engine = PriceRefreshEngine(store, fetch=build_fetch(settings))
    send = partial(send_telegram_message, token=token)
    return RefreshScheduler(
        engine,
        notifier=partial(notify, send=send),
        interval_hours=settings.check_interval_hours,
        jitter_max_seconds=settings.jitter_max_seconds,
        request_delay_seconds=settings.request_delay_seconds,
    )


def _print_product(product) -> None:
    price = format_price(product.current_price)
    if product.on_sale:
        price += f" (was {format_price(product.base_price)})"
    checked = product.last_checked.strftime("%Y-%m-%d %H:%M") if product.last_checked else "never"
    print(f"[{product.id}] {product.title}: {price}, checked {checked}")
    print(f"    {product.url}")
    if product.category or product.tags:
        print(f"    category: {product.category or '-'}; tags: {', '.join(product.tags) or '-'}")


def cmd_run(args, settings: Settings) -> int:
    scheduler = build_scheduler(settings, PriceStateStore())
    logger.info("🚀 SteamWatch started")
    try:
        scheduler.start(run_immediately=not args.no_initial_sweep)
    except (KeyboardInterrupt, SystemExit):
        scheduler.stop()
    return 0


def cmd_sweep(args, settings: Settings) -> int:
    scheduler = build_scheduler(settings, PriceStateStore())
    report = scheduler.run_sweep()
    if report is None:
        return 1
    print(
        f"Refreshed {report.count(RefreshStatus.UPDATED)} of {len(report.results)} products, "
        f"{len(report.events)} price drops"
    )
    return 0


def cmd_refresh(args, settings: Settings) -> int:
    scheduler = build_scheduler(settings, PriceStateStore())
    result, delivery = scheduler.refresh_one(args.product_id)
    if result.status is RefreshStatus.NOT_FOUND:
        print(f"Product {args.product_id} not found", file=sys.stderr)
        return 1
    if not result.ok:
        print(f"Refresh failed ({result.status.value}): {result.error}", file=sys.stderr)
        return 1
    if delivery is not None:
        print(f"Price drop! Notified {delivery.succeeded}, failed {delivery.failed}")
    _print_product(result.product)
    return 0


def cmd_add(args, settings: Settings) -> int:
    product = catalog.add_product(
        args.url, category=args.category, players=args.players, fetch=build_fetch(settings)
    )
    _print_product(product)
    return 0


def cmd_remove(args, settings: Settings) -> int:
    catalog.remove_product(args.product_id)
    print(f"Removed product {args.product_id}")
    return 0


def cmd_list(args, settings: Settings) -> int:
    products = catalog.list_products(min_players=args.players, category=args.category)
    if not products:
        print("No products tracked")
    for product in products:
        _print_product(product)
    return 0


def cmd_edit(args, settings: Settings) -> int:
    tags = args.tags.split(",") if args.tags is not None else None
    product = catalog.update_product(
        args.product_id,
        category=args.category,
        players=args.players,
        tags=tags,
        clear_category=args.no_category,
    )
    _print_product(product)
    return 0


def cmd_history(args, settings: Settings) -> int:
    for entry in catalog.price_history(args.product_id, limit=args.limit):
        line = f"{entry['recorded_at']:%Y-%m-%d %H:%M}  {format_price(entry['current_price'])}"
        if entry["on_sale"]:
            line += f" (was {format_price(entry['base_price'])})"
        print(line)
    return 0


def cmd_categories(args, settings: Settings) -> int:
    if args.create:
        catalog.create_category(args.create)
    for name, count in catalog.list_categories():
        print(f"{name}: {count}")
    return 0


def cmd_dest_add(args, settings: Settings) -> int:
    destination = catalog.add_destination(args.chat_id, args.thread)
    print(f"Notifications enabled for {destination.describe()}")
    return 0


def cmd_dest_remove(args, settings: Settings) -> int:
    catalog.remove_destination(args.chat_id, args.thread)
    print("Notifications disabled")
    return 0


def cmd_dest_list(args, settings: Settings) -> int:
    destinations = catalog.list_destinations()
    if not destinations:
        print("No destinations configured")
    for destination in destinations:
        kind = "threaded" if isinstance(destination, ThreadedDestination) else "flat"
        print(f"{destination.describe()} ({kind})")
    return 0


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="steamwatch",
        description="Track Steam store prices and announce sales on Telegram",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="start the periodic price sweep")
    run.add_argument("--no-initial-sweep", action="store_true",
                     help="wait for the first interval instead of sweeping now")
    run.set_defaults(func=cmd_run)

    sub.add_parser("sweep", help="refresh all products once and notify").set_defaults(func=cmd_sweep)

    refresh = sub.add_parser("refresh", help="refresh one product and notify")
    refresh.add_argument("product_id", type=int)
    refresh.set_defaults(func=cmd_refresh)

    add = sub.add_parser("add", help="track a store page")
    add.add_argument("url")
    add.add_argument("--category")
    add.add_argument("--players", type=_positive_int, default=1)
    add.set_defaults(func=cmd_add)

    remove = sub.add_parser("remove", help="stop tracking a product")
    remove.add_argument("product_id", type=int)
    remove.set_defaults(func=cmd_remove)

    list_cmd = sub.add_parser("list", help="show tracked products")
    list_cmd.add_argument("--players", type=_positive_int, metavar="N",
                          help="only products playable by N or more players")
    list_cmd.add_argument("--category")
    list_cmd.set_defaults(func=cmd_list)

    edit = sub.add_parser("edit", help="change category, player count or tags")
    edit.add_argument("product_id", type=int)
    edit.add_argument("--category")
    edit.add_argument("--no-category", action="store_true", help="remove the category")
    edit.add_argument("--players", type=_positive_int)
    edit.add_argument("--tags", help="comma-separated list replacing the current tags")
    edit.set_defaults(func=cmd_edit)

    history = sub.add_parser("history", help="show recorded prices of a product")
    history.add_argument("product_id", type=int)
    history.add_argument("--limit", type=_positive_int, default=30)
    history.set_defaults(func=cmd_history)

    categories = sub.add_parser("categories", help="show categories with product counts")
    categories.add_argument("--create", metavar="NAME")
    categories.set_defaults(func=cmd_categories)

    for name, func, help_text in (
        ("dest-add", cmd_dest_add, "send notifications to a chat or topic"),
        ("dest-remove", cmd_dest_remove, "stop notifications to a chat or topic"),
    ):
        dest = sub.add_parser(name, help=help_text)
        dest.add_argument("chat_id", type=int)
        dest.add_argument("--thread", type=int, help="topic thread id in a group chat")
        dest.set_defaults(func=func)

    sub.add_parser("dest-list", help="show notification destinations").set_defaults(func=cmd_dest_list)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(settings.log_level, settings.log_dir)
    storage.init_db()

    try:
        return args.func(args, settings)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return 2
    except SteamWatchError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
