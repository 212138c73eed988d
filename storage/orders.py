# storage/orders.py: counter orders against the weekly sandwich list
from __future__ import annotations

import sqlite3
from typing import Any, Dict, List, Optional

from .sandwiches import _now, _row_to_dict, db_connect


_ORDER_SELECT = """
    SELECT
      o.id,
      o.customer_name,
      o.sandwich_id,
      o.notes,
      o.order_date,
      o.created_at,
      s.name        AS sandwich_name,
      s.category    AS sandwich_category,
      s.price_cents AS sandwich_price_cents
    FROM orders o
    JOIN sandwiches s ON o.sandwich_id = s.id
"""


# ------------------------------------------------------------
# Schema (idempotent; needs the sandwiches table)
# ------------------------------------------------------------
def ensure_schema(conn: Optional[sqlite3.Connection] = None) -> None:
    own = conn is None
    conn = conn or db_connect()
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS orders (
              id            INTEGER PRIMARY KEY AUTOINCREMENT,
              customer_name TEXT NOT NULL,
              sandwich_id   INTEGER NOT NULL,
              notes         TEXT NOT NULL DEFAULT '',
              order_date    TEXT NOT NULL DEFAULT (date('now')),
              created_at    TEXT NOT NULL,
              FOREIGN KEY (sandwich_id) REFERENCES sandwiches(id)
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_orders_date ON orders(order_date)"
        )
        conn.commit()
    finally:
        if own:
            conn.close()


def _check_customer(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValueError("customer_name is required")
    return name.strip()


def _check_sandwich(conn: sqlite3.Connection, sandwich_id: Any) -> int:
    try:
        sid = int(sandwich_id)
    except (TypeError, ValueError):
        raise ValueError("sandwich_id must be an integer")
    if not conn.execute("SELECT 1 FROM sandwiches WHERE id=?", (sid,)).fetchone():
        raise ValueError(f"sandwich {sid} does not exist")
    return sid


# ------------------------------------------------------------
# CRUD
# ------------------------------------------------------------
def add_order(customer_name: str, sandwich_id: int, notes: str = "") -> int:
    customer_name = _check_customer(customer_name)
    with db_connect() as conn:
        sid = _check_sandwich(conn, sandwich_id)
        cur = conn.execute(
            "INSERT INTO orders (customer_name, sandwich_id, notes, created_at) "
            "VALUES (?, ?, ?, ?)",
            (customer_name, sid, (notes or "").strip(), _now()),
        )
        conn.commit()
        return int(cur.lastrowid)


def get_order(order_id: int) -> Optional[Dict[str, Any]]:
    with db_connect() as conn:
        row = conn.execute(_ORDER_SELECT + " WHERE o.id=?", (order_id,)).fetchone()
        return _row_to_dict(row) if row else None


def update_order(order_id: int, customer_name: str, sandwich_id: int, notes: str = "") -> bool:
    customer_name = _check_customer(customer_name)
    with db_connect() as conn:
        sid = _check_sandwich(conn, sandwich_id)
        cur = conn.execute(
            "UPDATE orders SET customer_name=?, sandwich_id=?, notes=? WHERE id=?",
            (customer_name, sid, (notes or "").strip(), order_id),
        )
        conn.commit()
        return cur.rowcount > 0


def delete_order(order_id: int) -> bool:
    with db_connect() as conn:
        cur = conn.execute("DELETE FROM orders WHERE id=?", (order_id,))
        conn.commit()
        return cur.rowcount > 0


# ------------------------------------------------------------
# Today's board
# ------------------------------------------------------------
def todays_orders() -> List[Dict[str, Any]]:
    with db_connect() as conn:
        rows = conn.execute(
            _ORDER_SELECT + " WHERE o.order_date = date('now') ORDER BY o.created_at, o.id"
        ).fetchall()
        return [_row_to_dict(r) for r in rows]


def todays_order_summary() -> List[Dict[str, Any]]:
    """Quantity and line total per sandwich ordered today."""
    with db_connect() as conn:
        rows = conn.execute("""
            SELECT
              s.id                  AS sandwich_id,
              s.name                AS sandwich_name,
              s.price_cents         AS sandwich_price_cents,
              COUNT(*)              AS quantity,
              s.price_cents * COUNT(*) AS total_cents
            FROM orders o
            JOIN sandwiches s ON o.sandwich_id = s.id
            WHERE o.order_date = date('now')
            GROUP BY s.id, s.name, s.price_cents
            ORDER BY s.name COLLATE NOCASE
        """).fetchall()
        return [_row_to_dict(r) for r in rows]


def todays_total_cents() -> int:
    with db_connect() as conn:
        row = conn.execute("""
            SELECT COALESCE(SUM(s.price_cents), 0) AS total
            FROM orders o
            JOIN sandwiches s ON o.sandwich_id = s.id
            WHERE o.order_date = date('now')
        """).fetchone()
        return int(row["total"] or 0)
