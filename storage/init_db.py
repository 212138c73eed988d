# storage/init_db.py
import logging
import sqlite3
from pathlib import Path
from typing import Dict, List

from . import menu_upload, orders, sandwiches
from .sandwiches import db_connect

log = logging.getLogger(__name__)

# --- Paths ---
ROOT = Path(__file__).resolve().parents[1]      # repo root
STORAGE = ROOT / "storage"
UPLOADS_DIR = ROOT / "uploads"                  # where menu photos land

# Starter menu so a fresh install has something to order from
DEFAULT_SANDWICHES: List[Dict] = [
    {"name": "Margherita", "category": "Focaccia",
     "ingredients": "Fresh mozzarella, tomato, basil, olive oil", "price_cents": 1599},
    {"name": "Prosciutto", "category": "Focaccia",
     "ingredients": "Prosciutto, arugula, fresh mozzarella, balsamic", "price_cents": 1799},
    {"name": "Veggie", "category": "Focaccia",
     "ingredients": "Roasted vegetables, pesto, fresh mozzarella", "price_cents": 1599},
    {"name": "Italian", "category": "Hoagie",
     "ingredients": "Salami, capicola, provolone, lettuce, tomato, onion", "price_cents": 1799},
    {"name": "Turkey Club", "category": "Hoagie",
     "ingredients": "Turkey, bacon, lettuce, tomato, mayo", "price_cents": 1799},
    {"name": "Chicken Parm", "category": "Hoagie",
     "ingredients": "Breaded chicken, marinara, mozzarella", "price_cents": 1799},
]

# ----------------------------
# Utilities
# ----------------------------

def ensure_folders() -> None:
    """Create required folders (safe if they already exist)."""
    STORAGE.mkdir(parents=True, exist_ok=True)
    UPLOADS_DIR.mkdir(parents=True, exist_ok=True)


def create_schema(conn: sqlite3.Connection) -> None:
    """All tables, in FK order. Idempotent."""
    sandwiches.ensure_schema(conn)
    orders.ensure_schema(conn)
    menu_upload.ensure_schema(conn)


def seed_defaults(conn: sqlite3.Connection) -> int:
    """Insert the starter sandwiches into an empty catalog. Returns rows added."""
    row = conn.execute("SELECT COUNT(*) AS n FROM sandwiches").fetchone()
    if row[0]:
        return 0
    now = sandwiches._now()
    for s in DEFAULT_SANDWICHES:
        conn.execute(
            "INSERT INTO sandwiches (name, category, ingredients, price_cents, is_active, "
            "created_at, updated_at) VALUES (?, ?, ?, ?, 1, ?, ?)",
            (s["name"], s["category"], s["ingredients"], s["price_cents"], now, now),
        )
    conn.commit()
    return len(DEFAULT_SANDWICHES)

# ----------------------------
# Build
# ----------------------------

def init_db(seed: bool = True) -> None:
    conn = db_connect()
    try:
        create_schema(conn)
        if seed:
            added = seed_defaults(conn)
            if added:
                log.info("Seeded %d default sandwiches", added)
    finally:
        conn.close()

# ----------------------------
# CLI entry
# ----------------------------

def main() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(name)s] %(message)s")
    ensure_folders()
    init_db()
    log.info("DB ready: %s", sandwiches.DB_PATH)
    log.info("Uploads:  %s", UPLOADS_DIR)


if __name__ == "__main__":
    main()
