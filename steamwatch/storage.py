"""SQLite persistence for tracked products, destinations and price history."""

import sqlite3
from contextlib import contextmanager
from datetime import datetime

from steamwatch.config import get_db_path
from steamwatch.errors import DuplicateProduct
from steamwatch.models import (
    Destination,
    FlatDestination,
    PriceObservation,
    ThreadedDestination,
    TrackedProduct,
)

SCHEMA = """
CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS products (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    url TEXT NOT NULL UNIQUE,
    title TEXT NOT NULL,
    base_price REAL NOT NULL,
    current_price REAL NOT NULL,
    on_sale INTEGER NOT NULL DEFAULT 0,
    last_checked TIMESTAMP,
    players INTEGER NOT NULL DEFAULT 1,
    category_id INTEGER REFERENCES categories(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS tags (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS product_tags (
    product_id INTEGER NOT NULL REFERENCES products(id) ON DELETE CASCADE,
    tag_id INTEGER NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (product_id, tag_id)
);

CREATE TABLE IF NOT EXISTS destinations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_id INTEGER NOT NULL,
    thread_id INTEGER
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_destinations_target
ON destinations(chat_id, IFNULL(thread_id, 0));

CREATE TABLE IF NOT EXISTS price_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id INTEGER NOT NULL REFERENCES products(id) ON DELETE CASCADE,
    base_price REAL NOT NULL,
    current_price REAL NOT NULL,
    on_sale INTEGER NOT NULL,
    recorded_at TIMESTAMP NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_history_product_recorded
ON price_history(product_id, recorded_at);
"""


@contextmanager
def get_connection():
    """Context manager for SQLite connection."""
    db_path = get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db() -> None:
    """Create tables if they don't exist."""
    with get_connection() as conn:
        conn.executescript(SCHEMA)


def _parse_timestamp(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _tags_for(conn: sqlite3.Connection, product_id: int) -> list[str]:
    rows = conn.execute(
        """
        SELECT t.name FROM tags t
        JOIN product_tags pt ON pt.tag_id = t.id
        WHERE pt.product_id = ?
        ORDER BY t.name
        """,
        (product_id,),
    ).fetchall()
    return [row["name"] for row in rows]


def _row_to_product(conn: sqlite3.Connection, row: sqlite3.Row) -> TrackedProduct:
    return TrackedProduct(
        id=row["id"],
        url=row["url"],
        title=row["title"],
        base_price=row["base_price"],
        current_price=row["current_price"],
        on_sale=bool(row["on_sale"]),
        last_checked=_parse_timestamp(row["last_checked"]),
        players=row["players"],
        category=row["category"],
        tags=_tags_for(conn, row["id"]),
    )


_PRODUCT_SELECT = """
    SELECT p.*, c.name AS category FROM products p
    LEFT JOIN categories c ON c.id = p.category_id
"""


def _upsert_category(conn: sqlite3.Connection, name: str) -> int:
    conn.execute("INSERT OR IGNORE INTO categories (name) VALUES (?)", (name,))
    row = conn.execute("SELECT id FROM categories WHERE name = ?", (name,)).fetchone()
    return row["id"]


def _link_tags(conn: sqlite3.Connection, product_id: int, tags: list[str]) -> None:
    for tag in tags:
        conn.execute("INSERT OR IGNORE INTO tags (name) VALUES (?)", (tag,))
        conn.execute(
            """
            INSERT OR IGNORE INTO product_tags (product_id, tag_id)
            SELECT ?, id FROM tags WHERE name = ?
            """,
            (product_id, tag),
        )


def insert_product(
    url: str,
    title: str,
    observation: PriceObservation,
    checked_at: datetime,
    players: int = 1,
    category: str | None = None,
    tags: list[str] | None = None,
) -> int:
    """Insert a freshly scraped product and return its id."""
    with get_connection() as conn:
        category_id = _upsert_category(conn, category) if category else None
        try:
            cur = conn.execute(
                """
                INSERT INTO products
                    (url, title, base_price, current_price, on_sale, last_checked, players, category_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    url,
                    title,
                    observation.base_price,
                    observation.effective_price,
                    int(observation.on_sale),
                    checked_at.isoformat(),
                    players,
                    category_id,
                ),
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateProduct(f"Already tracking {url}") from e
        product_id = cur.lastrowid

        _link_tags(conn, product_id, tags or [])
        _insert_history(conn, product_id, observation.base_price,
                        observation.effective_price, observation.on_sale, checked_at)
    return product_id


def load_product(product_id: int) -> TrackedProduct | None:
    """Get a tracked product by id, or None."""
    with get_connection() as conn:
        row = conn.execute(_PRODUCT_SELECT + " WHERE p.id = ?", (product_id,)).fetchone()
        return _row_to_product(conn, row) if row else None


def list_products(
    min_players: int | None = None,
    category: str | None = None,
) -> list[TrackedProduct]:
    """All products, or those playable by `min_players` and/or in `category`.

    With a player filter the result is ordered by player count.
    """
    clauses, params = [], []
    if min_players is not None:
        clauses.append("p.players >= ?")
        params.append(min_players)
    if category is not None:
        clauses.append("c.name = ?")
        params.append(category)
    query = _PRODUCT_SELECT
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " ORDER BY p.players, p.id" if min_players is not None else " ORDER BY p.id"

    with get_connection() as conn:
        rows = conn.execute(query, params).fetchall()
        return [_row_to_product(conn, row) for row in rows]


def update_product_details(
    product_id: int,
    category: str | None = None,
    players: int | None = None,
    tags: list[str] | None = None,
    clear_category: bool = False,
) -> bool:
    """Edit bookkeeping fields; price fields are never touched here.

    Arguments left as None keep their value. `tags` replaces the tag set.
    Returns False when the product does not exist.
    """
    with get_connection() as conn:
        exists = conn.execute("SELECT 1 FROM products WHERE id = ?", (product_id,)).fetchone()
        if not exists:
            return False
        if clear_category:
            conn.execute("UPDATE products SET category_id = NULL WHERE id = ?", (product_id,))
        elif category is not None:
            conn.execute(
                "UPDATE products SET category_id = ? WHERE id = ?",
                (_upsert_category(conn, category), product_id),
            )
        if players is not None:
            conn.execute("UPDATE products SET players = ? WHERE id = ?", (players, product_id))
        if tags is not None:
            conn.execute("DELETE FROM product_tags WHERE product_id = ?", (product_id,))
            _link_tags(conn, product_id, tags)
    return True


def delete_product(product_id: int) -> bool:
    """Delete a product with its tags links and history. Returns False if absent."""
    with get_connection() as conn:
        cur = conn.execute("DELETE FROM products WHERE id = ?", (product_id,))
        return cur.rowcount > 0


def _insert_history(
    conn: sqlite3.Connection,
    product_id: int,
    base_price: float,
    current_price: float,
    on_sale: bool,
    recorded_at: datetime,
) -> None:
    conn.execute(
        """
        INSERT INTO price_history (product_id, base_price, current_price, on_sale, recorded_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (product_id, base_price, current_price, int(on_sale), recorded_at.isoformat()),
    )


def save_product_price_state(
    product_id: int,
    base_price: float,
    current_price: float,
    on_sale: bool,
    last_checked: datetime,
) -> bool:
    """Write the price fields of a product and log them to price history.

    Returns False when the product no longer exists.
    """
    with get_connection() as conn:
        cur = conn.execute(
            """
            UPDATE products
            SET base_price = ?, current_price = ?, on_sale = ?, last_checked = ?
            WHERE id = ?
            """,
            (base_price, current_price, int(on_sale), last_checked.isoformat(), product_id),
        )
        if cur.rowcount == 0:
            return False
        _insert_history(conn, product_id, base_price, current_price, on_sale, last_checked)
    return True


def get_price_history(product_id: int, limit: int = 30) -> list[dict]:
    """Most recent observations first."""
    with get_connection() as conn:
        rows = conn.execute(
            """
            SELECT base_price, current_price, on_sale, recorded_at FROM price_history
            WHERE product_id = ?
            ORDER BY recorded_at DESC, id DESC LIMIT ?
            """,
            (product_id, limit),
        ).fetchall()
    return [
        {
            "base_price": row["base_price"],
            "current_price": row["current_price"],
            "on_sale": bool(row["on_sale"]),
            "recorded_at": datetime.fromisoformat(row["recorded_at"]),
        }
        for row in rows
    ]


# ── Categories ────────────────────────────────────────────────────────────────

def create_category(name: str) -> int:
    with get_connection() as conn:
        return _upsert_category(conn, name)


def list_categories() -> list[tuple[str, int]]:
    """Category names with the number of products in each."""
    with get_connection() as conn:
        rows = conn.execute(
            """
            SELECT c.name, COUNT(p.id) AS products FROM categories c
            LEFT JOIN products p ON p.category_id = c.id
            GROUP BY c.id ORDER BY c.name
            """
        ).fetchall()
    return [(row["name"], row["products"]) for row in rows]


# ── Destinations ──────────────────────────────────────────────────────────────

def _thread_id(destination: Destination) -> int | None:
    if isinstance(destination, ThreadedDestination):
        return destination.thread_id
    return None


def add_destination(destination: Destination) -> bool:
    """Store a destination. Returns False if it was already configured."""
    with get_connection() as conn:
        cur = conn.execute(
            "INSERT OR IGNORE INTO destinations (chat_id, thread_id) VALUES (?, ?)",
            (destination.chat_id, _thread_id(destination)),
        )
        return cur.rowcount > 0


def delete_destination(destination: Destination) -> bool:
    with get_connection() as conn:
        cur = conn.execute(
            "DELETE FROM destinations WHERE chat_id = ? AND thread_id IS ?",
            (destination.chat_id, _thread_id(destination)),
        )
        return cur.rowcount > 0


def list_destinations() -> list[Destination]:
    with get_connection() as conn:
        rows = conn.execute(
            "SELECT chat_id, thread_id FROM destinations ORDER BY id"
        ).fetchall()
    destinations: list[Destination] = []
    for row in rows:
        if row["thread_id"] is None:
            destinations.append(FlatDestination(chat_id=row["chat_id"]))
        else:
            destinations.append(
                ThreadedDestination(chat_id=row["chat_id"], thread_id=row["thread_id"])
            )
    return destinations
