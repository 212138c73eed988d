# tests/test_menu_upload.py
"""
Weekly menu upload flow (storage/menu_upload.py).

Covers:
  Pricing:
  - vegetarian detection (whole words, name or ingredients)
  - default price 1599 / 1799
  - add-on surcharges (bacon, mozzarella, provolone, other)

  Matching:
  - find_existing: exact, case-insensitive, substring both ways, no match

  apply / process:
  - new items created with prices and priced add-ons
  - inactive matches reactivated, active matches left alone
  - one failing item does not stop the rest
  - everything deactivated before a new sheet is applied
  - zero parsed items -> MenuUploadError
  - status callback receives progress and is cleared on exit

  Upload jobs:
  - create / update / get
  - run_upload_job done with counts, failed with message
"""

from __future__ import annotations

import sqlite3
from typing import Optional

import pytest

import storage.init_db as init_db_mod
import storage.menu_upload as upload_mod
import storage.sandwiches as sandwiches_mod
from storage.menu_upload import (
    NO_ITEMS_MESSAGE,
    MenuUploadError,
    addon_price_cents,
    apply_parsed_items,
    default_price_cents,
    find_existing,
    is_vegetarian,
    process_menu_text,
    process_menu_upload,
)
from storage.parsers.menu_text import ParsedMenuItem


SHEET = "\n".join([
    "Hoagies",
    "The Italian",
    "Salami, Provolone, Lettuce, Tomato",
    "Deluxe option: Add Fresh Mozzarella",
    "Focaccia Sandwiches",
    "Eby Egg and Cheese",
    "Egg, Cheddar, Organic Greens",
    "+Add Bacon",
])


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
    monkeypatch.setattr(upload_mod, "db_connect", mock_connect)
    yield _TEST_CONN
    _TEST_CONN = None


@pytest.fixture()
def fake_ocr(monkeypatch):
    """Replace Tesseract with canned text; returns the list of OCR'd paths."""
    seen = []

    def _image_to_text(path):
        seen.append(str(path))
        return SHEET

    monkeypatch.setattr(upload_mod.ocr_utils, "image_to_text", _image_to_text)
    return seen


def _by_name():
    return {r["name"]: r for r in sandwiches_mod.list_sandwiches()}


# ===========================================================================
# SECTION 1: Pricing
# ===========================================================================

class TestPricing:

    @pytest.mark.parametrize("name,ingredients", [
        ("Beetnik", "Roasted beets, goat cheese"),
        ("Eby Egg And Cheese", "Egg, Cheddar, Organic Greens"),
        ("Hamptons Veggie", "Hummus, cucumber"),      # 'ham' only as a prefix
        ("Tunafree Melt", "Chickpea salad"),
    ])
    def test_vegetarian(self, name, ingredients):
        assert is_vegetarian(name, ingredients)

    @pytest.mark.parametrize("name,ingredients", [
        ("The Italian", "Salami, Provolone"),
        ("Turkey Club", ""),
        ("Breakfast", "Egg, BACON, cheddar"),
        ("Sausage Roll", "peppers"),
        ("Slow Roast", "braised short rib"),
        ("Mortadella", "pistachio"),
    ])
    def test_not_vegetarian(self, name, ingredients):
        assert not is_vegetarian(name, ingredients)

    def test_default_prices(self):
        veg = ParsedMenuItem("Beetnik", "Focaccia", "Beets, goat cheese")
        meat = ParsedMenuItem("The Italian", "Hoagie", "Salami, provolone")
        assert default_price_cents(veg) == 1599
        assert default_price_cents(meat) == 1799

    @pytest.mark.parametrize("addon,cents", [
        ("Bacon", 300),
        ("Applewood bacon", 300),
        ("Fresh Mozzarella", 200),
        ("mozz", 200),
        ("Provolone", 200),
        ("Sharp Prov", 200),
        ("Avocado", 0),
        ("", 0),
    ])
    def test_addon_prices(self, addon, cents):
        assert addon_price_cents(addon) == cents


# ===========================================================================
# SECTION 2: Matching
# ===========================================================================

class TestFindExisting:

    ROWS = [
        {"id": 1, "name": "The Italian"},
        {"id": 2, "name": "Egg And Cheese"},
    ]

    def test_exact(self):
        assert find_existing("The Italian", self.ROWS)["id"] == 1

    def test_case_insensitive(self):
        assert find_existing("the ITALIAN", self.ROWS)["id"] == 1

    def test_new_name_contains_existing(self):
        assert find_existing("Eby Egg And Cheese", self.ROWS)["id"] == 2

    def test_existing_contains_new_name(self):
        assert find_existing("Italian", self.ROWS)["id"] == 1

    def test_no_match(self):
        assert find_existing("Beetnik", self.ROWS) is None

    def test_blank(self):
        assert find_existing("  ", self.ROWS) is None


# ===========================================================================
# SECTION 3: Apply / process
# ===========================================================================

class TestApplyParsedItems:

    def test_creates_new(self):
        items = [
            ParsedMenuItem("The Italian", "Hoagie", "Salami, Provolone", ["Fresh Mozzarella"]),
            ParsedMenuItem("Beetnik", "Focaccia", "Beets, goat cheese", ["Bacon", "Avocado"]),
        ]
        result = apply_parsed_items(items)
        assert (result.processed, result.created, result.activated) == (2, 2, 0)

        rows = _by_name()
        assert rows["The Italian"]["price_cents"] == 1799
        assert rows["Beetnik"]["price_cents"] == 1599
        assert [(a["name"], a["price_cents"]) for a in rows["Beetnik"]["addons"]] == [
            ("Bacon", 300), ("Avocado", 0),
        ]

    def test_reactivates_match(self):
        sid = sandwiches_mod.add_sandwich("Italian", "Hoagie", "", 1899, is_active=False)
        result = apply_parsed_items([ParsedMenuItem("The Italian", "Hoagie", "Salami")])
        assert (result.processed, result.activated, result.created) == (1, 1, 0)
        row = sandwiches_mod.get_sandwich(sid)
        assert row["is_active"] == 1
        assert row["price_cents"] == 1899
        assert len(sandwiches_mod.list_sandwiches()) == 1

    def test_active_match_untouched(self):
        sandwiches_mod.add_sandwich("The Italian", "Hoagie", "", 1899)
        result = apply_parsed_items([ParsedMenuItem("The Italian", "Hoagie")])
        assert (result.processed, result.activated, result.created) == (1, 0, 0)

    def test_duplicate_in_one_sheet(self):
        result = apply_parsed_items([
            ParsedMenuItem("Beetnik", "Focaccia"),
            ParsedMenuItem("Beetnik", "Focaccia"),
        ])
        assert result.created == 1
        assert len(sandwiches_mod.list_sandwiches()) == 1

    def test_partial_failure(self):
        items = [
            ParsedMenuItem("Pizza Bianca", "Pizza"),          # not a known category
            ParsedMenuItem("Beetnik", "Focaccia", "Beets"),
        ]
        result = apply_parsed_items(items)
        assert result.processed == 1
        assert result.created == 1
        assert len(result.failed) == 1
        assert result.failed[0].startswith("Pizza Bianca")
        assert "Beetnik" in _by_name()

    def test_unexpected_error_does_not_stop_batch(self, monkeypatch):
        real_add = sandwiches_mod.add_sandwich

        def flaky_add(name, *args, **kwargs):
            if name == "The Italian":
                raise RuntimeError("disk hiccup")
            return real_add(name, *args, **kwargs)

        monkeypatch.setattr(sandwiches_mod, "add_sandwich", flaky_add)
        result = apply_parsed_items([
            ParsedMenuItem("The Italian", "Hoagie", "Salami"),
            ParsedMenuItem("Beetnik", "Focaccia", "Beets"),
        ])
        assert (result.processed, result.created) == (1, 1)
        assert result.failed == ["The Italian: disk hiccup"]
        assert list(_by_name()) == ["Beetnik"]


class TestProcessMenuText:

    def test_happy_path(self):
        result = process_menu_text(SHEET)
        assert (result.processed, result.created) == (2, 2)
        rows = _by_name()
        assert rows["The Italian"]["category"] == "Hoagie"
        assert rows["Eby Egg And Cheese"]["price_cents"] == 1599
        assert rows["Eby Egg And Cheese"]["addons"][0]["price_cents"] == 300

    def test_deactivates_old_menu(self):
        old = sandwiches_mod.add_sandwich("Last Week Special", "Hoagie")
        process_menu_text(SHEET)
        assert sandwiches_mod.get_sandwich(old)["is_active"] == 0
        assert {r["name"] for r in sandwiches_mod.list_sandwiches(active_only=True)} == {
            "The Italian", "Eby Egg And Cheese",
        }

    def test_keep_existing_when_not_deactivating(self):
        old = sandwiches_mod.add_sandwich("Last Week Special", "Hoagie")
        process_menu_text(SHEET, deactivate_first=False)
        assert sandwiches_mod.get_sandwich(old)["is_active"] == 1

    def test_no_items(self):
        with pytest.raises(MenuUploadError) as exc:
            process_menu_text("blurry\nnothing here")
        assert str(exc.value) == NO_ITEMS_MESSAGE

    def test_status_cleared(self):
        seen = []
        process_menu_text(SHEET, seen.append)
        assert "Parsing sandwiches..." in seen
        assert "Processing 2 sandwiches..." in seen
        assert seen[-1] == ""

    def test_status_cleared_on_error(self):
        seen = []
        with pytest.raises(MenuUploadError):
            process_menu_text("", seen.append)
        assert seen[-1] == ""


class TestProcessMenuUpload:

    def test_ocr_then_apply(self, fake_ocr, tmp_path):
        path = tmp_path / "menu.jpg"
        result = process_menu_upload(path)
        assert fake_ocr == [str(path)]
        assert result.created == 2

    def test_no_path(self):
        with pytest.raises(MenuUploadError):
            process_menu_upload("")

    def test_ocr_error_propagates(self, monkeypatch):
        def _boom(path):
            raise RuntimeError("tesseract missing")

        monkeypatch.setattr(upload_mod.ocr_utils, "image_to_text", _boom)
        seen = []
        with pytest.raises(RuntimeError):
            process_menu_upload("menu.png", seen.append)
        assert seen[-1] == ""


# ===========================================================================
# SECTION 4: Upload jobs
# ===========================================================================

class TestUploadJobs:

    def test_create_pending(self):
        job_id = upload_mod.create_upload_job("menu.jpg")
        job = upload_mod.get_upload_job(job_id)
        assert job["status"] == "pending"
        assert job["filename"] == "menu.jpg"

    def test_update(self):
        job_id = upload_mod.create_upload_job("menu.jpg")
        upload_mod.update_upload_job(job_id, status="running", message="OCR...")
        job = upload_mod.get_upload_job(job_id)
        assert (job["status"], job["message"]) == ("running", "OCR...")

    def test_update_unknown_field(self):
        job_id = upload_mod.create_upload_job("menu.jpg")
        with pytest.raises(ValueError):
            upload_mod.update_upload_job(job_id, filename="x.jpg")

    def test_get_missing(self):
        assert upload_mod.get_upload_job(5) is None

    def test_run_done(self, fake_ocr, tmp_path):
        job_id = upload_mod.create_upload_job("menu.jpg")
        result = upload_mod.run_upload_job(job_id, tmp_path / "menu.jpg")
        assert result is not None
        job = upload_mod.get_upload_job(job_id)
        assert job["status"] == "done"
        assert (job["processed"], job["created"], job["activated"], job["failed"]) == (2, 2, 0, 0)
        assert job["message"] == ""
        assert job["error"] is None

    def test_run_no_items(self, monkeypatch):
        monkeypatch.setattr(upload_mod.ocr_utils, "image_to_text", lambda path: "smudge")
        job_id = upload_mod.create_upload_job("menu.jpg")
        assert upload_mod.run_upload_job(job_id, "menu.jpg") is None
        job = upload_mod.get_upload_job(job_id)
        assert job["status"] == "failed"
        assert job["error"] == NO_ITEMS_MESSAGE

    def test_run_crash(self, monkeypatch):
        def _boom(path):
            raise OSError("cannot open image")

        monkeypatch.setattr(upload_mod.ocr_utils, "image_to_text", _boom)
        job_id = upload_mod.create_upload_job("menu.jpg")
        upload_mod.run_upload_job(job_id, "menu.jpg")
        job = upload_mod.get_upload_job(job_id)
        assert job["status"] == "failed"
        assert "cannot open image" in job["error"]
