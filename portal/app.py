# portal/app.py
from flask import Flask, jsonify, abort, request, make_response

# --- Standard libs & typing ---
import io
import logging
import os
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from openpyxl import Workbook

# safer filename + big-file error handling
from werkzeug.utils import secure_filename
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

# --- Paths ---
ROOT = Path(__file__).resolve().parents[1]

# --- Load .env before storage reads SANDWICH_DB_PATH / TESSERACT_CMD ---
load_dotenv(ROOT / ".env")

from storage import menu_upload, ocr_utils, orders, sandwiches
from storage.menu_upload import MenuUploadError
from storage.parsers.menu_text import parse_menu_text_to_dicts
from storage.parsers.menu_vocab import load_parser_config

logging.basicConfig(
    level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
log = logging.getLogger(__name__)

# ------------------------
# App & Config
# ------------------------
app = Flask(__name__)

app.config["SECRET_KEY"] = os.getenv("SECRET_KEY") or "dev-secret-change-me"
app.config["MAX_CONTENT_LENGTH"] = int(os.getenv("MAX_UPLOAD_MB") or 20) * 1024 * 1024

# Menu vocabulary (section headers, condiment words, thresholds)
PARSER_CONFIG = load_parser_config(os.getenv("MENU_PARSER_CONFIG"))
sandwiches.set_valid_categories(PARSER_CONFIG.labels)

UPLOAD_FOLDER = ROOT / "uploads"
UPLOAD_FOLDER.mkdir(parents=True, exist_ok=True)

# Allowed upload types
ALLOWED_EXTENSIONS = {"jpg", "jpeg", "png", "pdf"}
def allowed_file(filename: str) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS

# ------------------------
# Response helpers
# ------------------------
def _ok(_code: int = 200, **data):
    # payload keys such as "status" must not collide with the HTTP code
    return jsonify({"ok": True, **data}), _code

def _err(message: str, status: int = 400):
    return jsonify({"ok": False, "error": message}), status

def _json_body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        abort(400, description="JSON object body required")
    return payload

@app.errorhandler(HTTPException)
def _http_error(e: HTTPException):
    return _err(e.description or e.name, e.code or 500)

@app.errorhandler(RequestEntityTooLarge)
def _too_large(_e):
    mb = app.config["MAX_CONTENT_LENGTH"] // (1024 * 1024)
    return _err(f"File too large. Limit is {mb} MB.", 413)

# ------------------------
# Menu text / upload
# ------------------------
@app.post("/api/menu/parse")
def menu_parse():
    """Preview: parse pasted OCR text without touching the catalog."""
    text = _json_body().get("text")
    if not isinstance(text, str):
        return _err("'text' must be a string")
    items = parse_menu_text_to_dicts(text, PARSER_CONFIG)
    return _ok(count=len(items), items=items)

@app.post("/api/menu/apply")
def menu_apply():
    """Replace this week's menu from already-extracted text."""
    text = _json_body().get("text")
    if not isinstance(text, str):
        return _err("'text' must be a string")
    try:
        result = menu_upload.process_menu_text(text, config=PARSER_CONFIG)
    except MenuUploadError as e:
        return _err(str(e), 422)
    return _ok(**result.to_dict())

def _start_upload_worker(job_id: int, path: Path) -> None:
    t = threading.Thread(
        target=menu_upload.run_upload_job,
        args=(job_id, path, PARSER_CONFIG),
        daemon=True,
    )
    t.start()

@app.post("/api/menu/upload")
def menu_upload_route():
    try:
        if "file" not in request.files:
            return _err("No file field 'file' provided")
        file = request.files["file"]
        if file.filename == "":
            return _err("Empty filename")
        if not allowed_file(file.filename):
            return _err("Unsupported file type. Allowed: jpg, jpeg, png, pdf")

        base_name = secure_filename(file.filename) or "upload"
        tmp_name = f"{uuid.uuid4().hex[:8]}_{base_name}"
        save_path = UPLOAD_FOLDER / tmp_name
        file.save(str(save_path))
    except RequestEntityTooLarge:
        return _too_large(None)

    job_id = menu_upload.create_upload_job(tmp_name)
    log.info("Menu upload job %s queued for %s", job_id, tmp_name)
    _start_upload_worker(job_id, save_path)
    return _ok(202, job_id=job_id, status="pending", file=tmp_name)

@app.get("/api/menu/upload/<int:job_id>/status")
def menu_upload_status(job_id: int):
    job = menu_upload.get_upload_job(job_id)
    if not job:
        return _err("Upload job not found", 404)
    return _ok(job=job)

@app.get("/api/ocr/health")
def ocr_health():
    return _ok(tesseract=ocr_utils.check_tesseract())

# ------------------------
# Sandwiches
# ------------------------
@app.get("/api/sandwiches")
def sandwiches_list():
    active_only = request.args.get("active") in ("1", "true", "yes")
    rows = sandwiches.list_sandwiches(active_only=active_only)
    return _ok(sandwiches=rows, count=len(rows))

@app.post("/api/sandwiches")
def sandwiches_create():
    p = _json_body()
    try:
        sandwich_id = sandwiches.add_sandwich(
            p.get("name"),
            p.get("category"),
            p.get("ingredients") or "",
            p.get("price_cents", 0),
            bool(p.get("is_active", True)),
            p.get("addons"),
        )
    except ValueError as e:
        return _err(str(e))
    return _ok(201, sandwich=sandwiches.get_sandwich(sandwich_id))

@app.get("/api/sandwiches/<int:sandwich_id>")
def sandwiches_get(sandwich_id: int):
    row = sandwiches.get_sandwich(sandwich_id)
    if not row:
        return _err("Sandwich not found", 404)
    return _ok(sandwich=row)

@app.put("/api/sandwiches/<int:sandwich_id>")
def sandwiches_update(sandwich_id: int):
    p = _json_body()
    # ids come from the URL only
    fields = {k: v for k, v in p.items() if k not in ("id", "sandwich_id")}
    try:
        found = sandwiches.update_sandwich(sandwich_id, **fields)
    except ValueError as e:
        return _err(str(e))
    if not found:
        return _err("Sandwich not found", 404)
    return _ok(sandwich=sandwiches.get_sandwich(sandwich_id))

@app.delete("/api/sandwiches/<int:sandwich_id>")
def sandwiches_delete(sandwich_id: int):
    try:
        deleted = sandwiches.delete_sandwich(sandwich_id)
    except ValueError as e:
        return _err(str(e))
    if not deleted:
        return _err("Sandwich not found", 404)
    return _ok(deleted=sandwich_id)

@app.post("/api/sandwiches/<int:sandwich_id>/active")
def sandwiches_set_active(sandwich_id: int):
    active = _json_body().get("active")
    if not isinstance(active, bool):
        return _err("'active' must be true or false")
    if not sandwiches.set_sandwich_active(sandwich_id, active):
        return _err("Sandwich not found", 404)
    return _ok(sandwich=sandwiches.get_sandwich(sandwich_id))

# ------------------------
# Orders
# ------------------------
@app.post("/api/orders")
def orders_create():
    p = _json_body()
    try:
        order_id = orders.add_order(p.get("customer_name"), p.get("sandwich_id"), p.get("notes") or "")
    except ValueError as e:
        return _err(str(e))
    return _ok(201, order=orders.get_order(order_id))

@app.get("/api/orders/today")
def orders_today():
    rows = orders.todays_orders()
    return _ok(orders=rows, count=len(rows), total_cents=orders.todays_total_cents())

@app.get("/api/orders/today/summary")
def orders_today_summary():
    return _ok(summary=orders.todays_order_summary(), total_cents=orders.todays_total_cents())

@app.get("/api/orders/today/export.xlsx")
def orders_today_export_xlsx():
    rows = orders.todays_orders()
    summary = orders.todays_order_summary()

    wb = Workbook()
    ws = wb.active
    ws.title = "Orders"
    ws.append(["id", "customer_name", "sandwich", "category", "price_cents", "notes", "created_at"])
    for o in rows:
        ws.append([
            o.get("id"),
            o.get("customer_name", ""),
            o.get("sandwich_name", ""),
            o.get("sandwich_category", ""),
            o.get("sandwich_price_cents", 0),
            o.get("notes") or "",
            o.get("created_at", ""),
        ])

    ws2 = wb.create_sheet("Summary")
    ws2.append(["sandwich", "quantity", "price_cents", "total_cents"])
    for s in summary:
        ws2.append([s["sandwich_name"], s["quantity"], s["sandwich_price_cents"], s["total_cents"]])
    ws2.append(["TOTAL", sum(s["quantity"] for s in summary), None, orders.todays_total_cents()])

    out = io.BytesIO()
    wb.save(out)
    out.seek(0)

    day = datetime.utcnow().strftime("%Y-%m-%d")
    resp = make_response(out.read())
    resp.headers["Content-Type"] = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    resp.headers["Content-Disposition"] = f'attachment; filename="orders_{day}.xlsx"'
    return resp

@app.get("/api/orders/<int:order_id>")
def orders_get(order_id: int):
    row = orders.get_order(order_id)
    if not row:
        return _err("Order not found", 404)
    return _ok(order=row)

@app.put("/api/orders/<int:order_id>")
def orders_update(order_id: int):
    p = _json_body()
    try:
        found = orders.update_order(order_id, p.get("customer_name"), p.get("sandwich_id"), p.get("notes") or "")
    except ValueError as e:
        return _err(str(e))
    if not found:
        return _err("Order not found", 404)
    return _ok(order=orders.get_order(order_id))

@app.delete("/api/orders/<int:order_id>")
def orders_delete(order_id: int):
    if not orders.delete_order(order_id):
        return _err("Order not found", 404)
    return _ok(deleted=order_id)

# ------------------------
# Core blueprint (/ and /health)
# ------------------------
from routes.core import core_bp

app.register_blueprint(core_bp)

# ------------------------
# Run
# ------------------------
if __name__ == "__main__":
    from storage import init_db
    init_db.ensure_folders()
    init_db.init_db()
    app.run(host="0.0.0.0", port=5000, debug=os.getenv("FLASK_DEBUG") == "1")
