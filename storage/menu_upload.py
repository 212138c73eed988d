# storage/menu_upload.py
"""
Weekly menu upload: photo/PDF → OCR text → parsed sandwiches → catalog.

Flow (process_menu_upload):
  1. deactivate every sandwich (the new sheet replaces last week's menu)
  2. OCR the file (ocr_utils.image_to_text)
  3. parse_menu_text(); zero items is a user-facing MenuUploadError
  4. apply_parsed_items(): fuzzy-match each item against the catalog;
     reactivate matches, create the rest with a default price and priced
     add-ons. One bad item never stops the others.

Uploads from the portal run as jobs (upload_jobs table) on a worker thread,
the same way import jobs run OCR in the background.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from . import ocr_utils
from . import sandwiches as sandwich_store
from .parsers.menu_text import ParsedMenuItem, parse_menu_text
from .parsers.menu_vocab import MenuParserConfig
from .sandwiches import _now, _row_to_dict, db_connect

log = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]

NO_ITEMS_MESSAGE = "No sandwiches found in the menu. Please check the image quality."

# ------------------------------------------------------------
# Pricing policy
# ------------------------------------------------------------
VEGETARIAN_PRICE_CENTS = 1599
DEFAULT_PRICE_CENTS = 1799

NON_VEG_KEYWORDS = (
    "meat", "beef", "pork", "chicken", "turkey", "ham", "salami",
    "prosciutto", "pastrami", "bacon", "salmon", "tuna", "fish",
    "sopressata", "capicola", "coppa", "mortadella", "cotto",
    "braised", r"roasted.*sausage", "sausage",
)
_NON_VEG_RES = tuple(re.compile(rf"\b{k}\b", re.IGNORECASE) for k in NON_VEG_KEYWORDS)

# substring of the add-on name -> surcharge in cents; first hit wins
ADDON_PRICES_CENTS = (
    (("bacon",), 300),
    (("mozzarella", "mozz"), 200),
    (("provolone", "prov"), 200),
)


class MenuUploadError(Exception):
    """Upload produced nothing usable; the message is safe to show the user."""


@dataclass
class UploadResult:
    processed: int = 0
    activated: int = 0
    created: int = 0
    failed: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def is_vegetarian(name: str, ingredients: str) -> bool:
    text_name = (name or "").lower()
    text_ing = (ingredients or "").lower()
    return not any(rx.search(text_ing) or rx.search(text_name) for rx in _NON_VEG_RES)


def default_price_cents(item: ParsedMenuItem) -> int:
    return VEGETARIAN_PRICE_CENTS if is_vegetarian(item.name, item.ingredients) else DEFAULT_PRICE_CENTS


def addon_price_cents(addon_name: str) -> int:
    low = (addon_name or "").lower()
    for needles, cents in ADDON_PRICES_CENTS:
        if any(n in low for n in needles):
            return cents
    return 0


def find_existing(name: str, existing: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Case-insensitive match: equal, or either name contains the other."""
    wanted = (name or "").lower().strip()
    if not wanted:
        return None
    for row in existing:
        have = str(row.get("name") or "").lower().strip()
        if not have:
            continue
        if have == wanted or wanted in have or have in wanted:
            return row
    return None


# ------------------------------------------------------------
# Persistence of parsed items
# ------------------------------------------------------------
def _apply_one(item: ParsedMenuItem, existing: List[Dict[str, Any]], result: UploadResult) -> None:
    match = find_existing(item.name, existing)
    if match:
        if not match.get("is_active"):
            sandwich_store.set_sandwich_active(int(match["id"]), True)
            match["is_active"] = 1
            result.activated += 1
        return

    addons = [{"name": a, "price_cents": addon_price_cents(a)} for a in item.addons]
    new_id = sandwich_store.add_sandwich(
        item.name,
        item.category,
        item.ingredients,
        default_price_cents(item),
        True,
        addons,
    )
    existing.append({"id": new_id, "name": item.name, "is_active": 1})
    result.created += 1


def apply_parsed_items(items: Iterable[ParsedMenuItem]) -> UploadResult:
    """Best-effort: failures are logged per item and the loop continues."""
    result = UploadResult()
    existing = sandwich_store.list_sandwiches()
    for item in items:
        try:
            _apply_one(item, existing, result)
            result.processed += 1
        except Exception as e:
            log.exception("Failed to store parsed sandwich %r", item.name)
            result.failed.append(f"{item.name}: {e}")
    log.info(
        "Menu applied: processed=%d activated=%d created=%d failed=%d",
        result.processed, result.activated, result.created, len(result.failed),
    )
    return result


# ------------------------------------------------------------
# Upload entry points
# ------------------------------------------------------------
def _status(cb: Optional[StatusCallback], msg: str) -> None:
    if cb is not None:
        cb(msg)


def process_menu_text(
    text: str,
    on_status: Optional[StatusCallback] = None,
    *,
    deactivate_first: bool = True,
    config: Optional[MenuParserConfig] = None,
) -> UploadResult:
    try:
        if deactivate_first:
            _status(on_status, "Clearing existing menu...")
            sandwich_store.set_all_sandwiches_inactive()

        _status(on_status, "Parsing sandwiches...")
        items = parse_menu_text(text, config)
        if not items:
            raise MenuUploadError(NO_ITEMS_MESSAGE)

        _status(on_status, f"Processing {len(items)} sandwiches...")
        return apply_parsed_items(items)
    finally:
        _status(on_status, "")


def process_menu_upload(
    path: str | Path,
    on_status: Optional[StatusCallback] = None,
    *,
    config: Optional[MenuParserConfig] = None,
) -> UploadResult:
    """Full weekly-menu refresh from an image or PDF."""
    if not path:
        raise MenuUploadError("No file provided")
    try:
        _status(on_status, "Clearing existing menu...")
        sandwich_store.set_all_sandwiches_inactive()

        _status(on_status, "Extracting text from image...")
        text = ocr_utils.image_to_text(path)
    except BaseException:
        _status(on_status, "")
        raise
    return process_menu_text(text, on_status, deactivate_first=False, config=config)


# ------------------------------------------------------------
# Upload jobs (background OCR from the portal)
# ------------------------------------------------------------
def ensure_schema(conn: Optional[sqlite3.Connection] = None) -> None:
    own = conn is None
    conn = conn or db_connect()
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS upload_jobs (
              id         INTEGER PRIMARY KEY AUTOINCREMENT,
              filename   TEXT NOT NULL,
              status     TEXT NOT NULL DEFAULT 'pending',
              message    TEXT NOT NULL DEFAULT '',
              processed  INTEGER NOT NULL DEFAULT 0,
              activated  INTEGER NOT NULL DEFAULT 0,
              created    INTEGER NOT NULL DEFAULT 0,
              failed     INTEGER NOT NULL DEFAULT 0,
              error      TEXT,
              created_at TEXT NOT NULL,
              updated_at TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        if own:
            conn.close()


_JOB_FIELDS = {"status", "message", "processed", "activated", "created", "failed", "error"}


def create_upload_job(filename: str) -> int:
    now = _now()
    with db_connect() as conn:
        cur = conn.execute(
            "INSERT INTO upload_jobs (filename, status, created_at, updated_at) "
            "VALUES (?, 'pending', ?, ?)",
            (filename, now, now),
        )
        conn.commit()
        return int(cur.lastrowid)


def update_upload_job(job_id: int, **fields: Any) -> None:
    if not fields:
        return
    bad = set(fields) - _JOB_FIELDS
    if bad:
        raise ValueError(f"unknown upload job field(s): {', '.join(sorted(bad))}")
    sets = ", ".join(f"{k}=?" for k in fields)
    with db_connect() as conn:
        conn.execute(
            f"UPDATE upload_jobs SET {sets}, updated_at=? WHERE id=?",
            (*fields.values(), _now(), job_id),
        )
        conn.commit()


def get_upload_job(job_id: int) -> Optional[Dict[str, Any]]:
    with db_connect() as conn:
        row = conn.execute("SELECT * FROM upload_jobs WHERE id=?", (job_id,)).fetchone()
        return _row_to_dict(row) if row else None


def run_upload_job(
    job_id: int,
    path: str | Path,
    config: Optional[MenuParserConfig] = None,
) -> Optional[UploadResult]:
    """Worker-thread body: runs the upload and records the outcome on the job."""
    update_upload_job(job_id, status="running")

    def _on_status(msg: str) -> None:
        if msg:
            update_upload_job(job_id, message=msg)

    try:
        result = process_menu_upload(path, _on_status, config=config)
    except MenuUploadError as e:
        update_upload_job(job_id, status="failed", error=str(e), message="")
        return None
    except Exception as e:
        log.exception("Upload job %s crashed", job_id)
        update_upload_job(job_id, status="failed", error=f"{type(e).__name__}: {e}", message="")
        return None

    update_upload_job(
        job_id,
        status="done",
        message="",
        processed=result.processed,
        activated=result.activated,
        created=result.created,
        failed=len(result.failed),
    )
    return result
