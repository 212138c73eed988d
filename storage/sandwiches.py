# storage/sandwiches.py: weekly sandwich catalog (sandwiches + priced add-ons)
from __future__ import annotations

import os
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .parsers.menu_vocab import DEFAULT_CONFIG

# ------------------------------------------------------------
# Paths / connection
# ------------------------------------------------------------
ROOT = Path(__file__).resolve().parents[1]
DB_PATH = Path(os.getenv("SANDWICH_DB_PATH") or (ROOT / "storage" / "sandwiches.db"))

# Categories a sandwich may be filed under (the parser's section labels)
VALID_CATEGORIES = frozenset(DEFAULT_CONFIG.labels)

_UPDATABLE = ("name", "category", "ingredients", "price_cents", "is_active")


def db_connect() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_PATH)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _now() -> str:
    return datetime.utcnow().strftime("%Y-%m-%d %H:%M:%S")


def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
    return {k: row[k] for k in row.keys()}


# ------------------------------------------------------------
# Schema (idempotent; safe to call repeatedly)
# ------------------------------------------------------------
def ensure_schema(conn: Optional[sqlite3.Connection] = None) -> None:
    own = conn is None
    conn = conn or db_connect()
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS sandwiches (
              id          INTEGER PRIMARY KEY AUTOINCREMENT,
              name        TEXT NOT NULL,
              category    TEXT NOT NULL,
              ingredients TEXT NOT NULL DEFAULT '',
              price_cents INTEGER NOT NULL DEFAULT 0,
              is_active   INTEGER NOT NULL DEFAULT 1,
              created_at  TEXT NOT NULL,
              updated_at  TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS sandwich_addons (
              id          INTEGER PRIMARY KEY AUTOINCREMENT,
              sandwich_id INTEGER NOT NULL,
              name        TEXT NOT NULL,
              price_cents INTEGER NOT NULL DEFAULT 0,
              position    INTEGER NOT NULL DEFAULT 0,
              created_at  TEXT NOT NULL,
              FOREIGN KEY (sandwich_id) REFERENCES sandwiches(id) ON DELETE CASCADE
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_sandwiches_active "
            "ON sandwiches(is_active, category)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_addons_sandwich "
            "ON sandwich_addons(sandwich_id)"
        )
        conn.commit()
    finally:
        if own:
            conn.close()


# ------------------------------------------------------------
# Validation
# ------------------------------------------------------------
def _check_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValueError("name is required")
    return name.strip()


def set_valid_categories(labels: Iterable[str]) -> None:
    """Follow a deployment-specific parser vocabulary."""
    global VALID_CATEGORIES
    labels = frozenset(l for l in labels if l)
    if not labels:
        raise ValueError("at least one category label is required")
    VALID_CATEGORIES = labels


def _check_category(category: Any) -> str:
    if category not in VALID_CATEGORIES:
        allowed = ", ".join(sorted(VALID_CATEGORIES))
        raise ValueError(f"category must be one of: {allowed}")
    return category


def _check_price(price_cents: Any) -> int:
    if isinstance(price_cents, bool) or not isinstance(price_cents, int):
        raise ValueError("price_cents must be an integer")
    if price_cents < 0:
        raise ValueError("price_cents cannot be negative")
    return price_cents


def _normalize_addons(addons: Optional[Iterable[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for a in addons or []:
        if not isinstance(a, dict):
            raise ValueError("each addon must be an object with name and price_cents")
        out.append({
            "name": _check_name(a.get("name")),
            "price_cents": _check_price(a.get("price_cents", 0)),
        })
    return out


# ------------------------------------------------------------
# Reads
# ------------------------------------------------------------
def _addons_for(conn: sqlite3.Connection, sandwich_ids: List[int]) -> Dict[int, List[Dict[str, Any]]]:
    by_id: Dict[int, List[Dict[str, Any]]] = {sid: [] for sid in sandwich_ids}
    if not sandwich_ids:
        return by_id
    marks = ",".join("?" for _ in sandwich_ids)
    rows = conn.execute(
        f"SELECT id, sandwich_id, name, price_cents, position FROM sandwich_addons "
        f"WHERE sandwich_id IN ({marks}) ORDER BY sandwich_id, position, id",
        sandwich_ids,
    ).fetchall()
    for r in rows:
        by_id[r["sandwich_id"]].append(_row_to_dict(r))
    return by_id


def list_sandwiches(active_only: bool = False) -> List[Dict[str, Any]]:
    """All sandwiches ordered by category then name, add-ons nested."""
    sql = "SELECT * FROM sandwiches"
    if active_only:
        sql += " WHERE is_active=1"
    sql += " ORDER BY category, name COLLATE NOCASE"
    with db_connect() as conn:
        rows = [_row_to_dict(r) for r in conn.execute(sql).fetchall()]
        addons = _addons_for(conn, [r["id"] for r in rows])
    for r in rows:
        r["addons"] = addons.get(r["id"], [])
    return rows


def get_sandwich(sandwich_id: int) -> Optional[Dict[str, Any]]:
    with db_connect() as conn:
        row = conn.execute("SELECT * FROM sandwiches WHERE id=?", (sandwich_id,)).fetchone()
        if not row:
            return None
        out = _row_to_dict(row)
        out["addons"] = _addons_for(conn, [sandwich_id])[sandwich_id]
    return out


# ------------------------------------------------------------
# Writes
# ------------------------------------------------------------
def _insert_addons(conn: sqlite3.Connection, sandwich_id: int, addons: List[Dict[str, Any]]) -> None:
    now = _now()
    for pos, a in enumerate(addons):
        conn.execute(
            "INSERT INTO sandwich_addons (sandwich_id, name, price_cents, position, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (sandwich_id, a["name"], a["price_cents"], pos, now),
        )


def add_sandwich(
    name: str,
    category: str,
    ingredients: str = "",
    price_cents: int = 0,
    is_active: bool = True,
    addons: Optional[Iterable[Dict[str, Any]]] = None,
) -> int:
    name = _check_name(name)
    category = _check_category(category)
    price_cents = _check_price(price_cents)
    clean_addons = _normalize_addons(addons)
    now = _now()
    with db_connect() as conn:
        cur = conn.cursor()
        cur.execute(
            "INSERT INTO sandwiches (name, category, ingredients, price_cents, is_active, "
            "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (name, category, (ingredients or "").strip(), price_cents,
             1 if is_active else 0, now, now),
        )
        sandwich_id = int(cur.lastrowid)
        _insert_addons(conn, sandwich_id, clean_addons)
        conn.commit()
    return sandwich_id


def update_sandwich(sandwich_id: int, **fields: Any) -> bool:
    """Partial update; unknown keys raise ValueError. False if id is missing."""
    unknown = set(fields) - set(_UPDATABLE) - {"addons"}
    if unknown:
        raise ValueError(f"cannot update field(s): {', '.join(sorted(unknown))}")

    sets: Dict[str, Any] = {}
    if "name" in fields:
        sets["name"] = _check_name(fields["name"])
    if "category" in fields:
        sets["category"] = _check_category(fields["category"])
    if "ingredients" in fields:
        sets["ingredients"] = (fields["ingredients"] or "").strip()
    if "price_cents" in fields:
        sets["price_cents"] = _check_price(fields["price_cents"])
    if "is_active" in fields:
        sets["is_active"] = 1 if fields["is_active"] else 0
    addons = _normalize_addons(fields["addons"]) if "addons" in fields else None

    with db_connect() as conn:
        exists = conn.execute("SELECT 1 FROM sandwiches WHERE id=?", (sandwich_id,)).fetchone()
        if not exists:
            return False
        sets["updated_at"] = _now()
        assignments = ", ".join(f"{k}=?" for k in sets)
        conn.execute(
            f"UPDATE sandwiches SET {assignments} WHERE id=?",
            (*sets.values(), sandwich_id),
        )
        if addons is not None:
            conn.execute("DELETE FROM sandwich_addons WHERE sandwich_id=?", (sandwich_id,))
            _insert_addons(conn, sandwich_id, addons)
        conn.commit()
    return True


def replace_addons(sandwich_id: int, addons: Iterable[Dict[str, Any]]) -> bool:
    return update_sandwich(sandwich_id, addons=list(addons))


def delete_sandwich(sandwich_id: int) -> bool:
    """Hard delete. Sandwiches that already have orders must be deactivated instead."""
    with db_connect() as conn:
        try:
            cur = conn.execute("DELETE FROM sandwiches WHERE id=?", (sandwich_id,))
        except sqlite3.IntegrityError:
            conn.rollback()
            raise ValueError(f"sandwich {sandwich_id} has orders; deactivate it instead")
        conn.commit()
        return cur.rowcount > 0


def set_sandwich_active(sandwich_id: int, active: bool) -> bool:
    with db_connect() as conn:
        cur = conn.execute(
            "UPDATE sandwiches SET is_active=?, updated_at=? WHERE id=?",
            (1 if active else 0, _now(), sandwich_id),
        )
        conn.commit()
        return cur.rowcount > 0


def set_all_sandwiches_inactive() -> int:
    """Clear the weekly menu before a new sheet is loaded. Returns rows touched."""
    with db_connect() as conn:
        cur = conn.execute(
            "UPDATE sandwiches SET is_active=0, updated_at=? WHERE is_active=1",
            (_now(),),
        )
        conn.commit()
        return cur.rowcount
