# tests/test_orders.py
"""
Counter orders (storage/orders.py).

Covers:
  - add_order returns id; joined sandwich fields on get_order
  - update_order / delete_order, missing ids
  - validation: empty customer, unknown or non-integer sandwich
  - todays_orders excludes other days
  - todays_order_summary quantities and line totals
  - todays_total_cents
"""

from __future__ import annotations

import sqlite3
from typing import Optional

import pytest

import storage.init_db as init_db_mod
import storage.orders as orders_mod
import storage.sandwiches as sandwiches_mod


_TEST_CONN: Optional[sqlite3.Connection] = None


def _make_test_db() -> sqlite3.Connection:
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    init_db_mod.create_schema(conn)
    return conn


@pytest.fixture(autouse=True)
def fresh_db(monkeypatch):
    global _TEST_CONN
    _TEST_CONN = _make_test_db()

    def mock_connect():
        return _TEST_CONN

    monkeypatch.setattr(sandwiches_mod, "db_connect", mock_connect)
    monkeypatch.setattr(orders_mod, "db_connect", mock_connect)
    yield _TEST_CONN
    _TEST_CONN = None


@pytest.fixture()
def menu():
    """Two sandwiches: Cubano 1799, Beetnik 1599."""
    return {
        "cubano": sandwiches_mod.add_sandwich("Cubano", "Hoagie", "Pork, ham, swiss", 1799),
        "beetnik": sandwiches_mod.add_sandwich("Beetnik", "Focaccia", "Beets, goat cheese", 1599),
    }


def _backdate(conn, order_id: int, day: str = "2020-01-01") -> None:
    conn.execute("UPDATE orders SET order_date=? WHERE id=?", (day, order_id))
    conn.commit()


class TestOrderCRUD:

    def test_add_returns_id(self, menu):
        assert orders_mod.add_order("Dana", menu["cubano"]) > 0

    def test_get_joins_sandwich(self, menu):
        oid = orders_mod.add_order("  Dana ", menu["cubano"], " no onions ")
        row = orders_mod.get_order(oid)
        assert row["customer_name"] == "Dana"
        assert row["notes"] == "no onions"
        assert row["sandwich_name"] == "Cubano"
        assert row["sandwich_category"] == "Hoagie"
        assert row["sandwich_price_cents"] == 1799

    def test_get_missing(self):
        assert orders_mod.get_order(12) is None

    def test_update(self, menu):
        oid = orders_mod.add_order("Dana", menu["cubano"])
        assert orders_mod.update_order(oid, "Dana K", menu["beetnik"], "extra beets") is True
        row = orders_mod.get_order(oid)
        assert row["customer_name"] == "Dana K"
        assert row["sandwich_name"] == "Beetnik"
        assert row["notes"] == "extra beets"

    def test_update_missing(self, menu):
        assert orders_mod.update_order(99, "Dana", menu["cubano"]) is False

    def test_delete(self, menu):
        oid = orders_mod.add_order("Dana", menu["cubano"])
        assert orders_mod.delete_order(oid) is True
        assert orders_mod.delete_order(oid) is False


class TestOrderValidation:

    @pytest.mark.parametrize("name", ["", "  ", None])
    def test_customer_required(self, menu, name):
        with pytest.raises(ValueError):
            orders_mod.add_order(name, menu["cubano"])

    def test_unknown_sandwich(self):
        with pytest.raises(ValueError):
            orders_mod.add_order("Dana", 404)

    @pytest.mark.parametrize("sid", [None, "abc", [1]])
    def test_bad_sandwich_id(self, sid):
        with pytest.raises(ValueError):
            orders_mod.add_order("Dana", sid)

    def test_numeric_string_sandwich_id(self, menu):
        oid = orders_mod.add_order("Dana", str(menu["cubano"]))
        assert orders_mod.get_order(oid)["sandwich_id"] == menu["cubano"]


class TestToday:

    def test_todays_orders(self, fresh_db, menu):
        keep = orders_mod.add_order("Dana", menu["cubano"])
        old = orders_mod.add_order("Eli", menu["beetnik"])
        _backdate(fresh_db, old)
        rows = orders_mod.todays_orders()
        assert [r["id"] for r in rows] == [keep]

    def test_summary(self, menu):
        orders_mod.add_order("Dana", menu["cubano"])
        orders_mod.add_order("Eli", menu["cubano"])
        orders_mod.add_order("Fran", menu["beetnik"])
        summary = orders_mod.todays_order_summary()
        assert [(s["sandwich_name"], s["quantity"], s["total_cents"]) for s in summary] == [
            ("Beetnik", 1, 1599),
            ("Cubano", 2, 3598),
        ]

    def test_total(self, fresh_db, menu):
        orders_mod.add_order("Dana", menu["cubano"])
        orders_mod.add_order("Fran", menu["beetnik"])
        old = orders_mod.add_order("Gus", menu["beetnik"])
        _backdate(fresh_db, old)
        assert orders_mod.todays_total_cents() == 1799 + 1599

    def test_total_empty(self):
        assert orders_mod.todays_total_cents() == 0
        assert orders_mod.todays_order_summary() == []
