"""
OCR Utils: turn a photo or PDF of the weekly menu sheet into plain text.

The parser only needs line-oriented text, so this stays thin:
- Tesseract discovery from env (TESSERACT_CMD) or PATH
- Poppler discovery for pdf2image (POPPLER_PATH)
- EXIF-aware image load, one image_to_string call per page

Tuning knobs (env):
- TESSERACT_LANG   (default "eng")
- TESSERACT_CONFIG (default "--oem 1 --psm 6")
"""

from __future__ import annotations

import glob
import io
import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional

from PIL import Image, ImageOps
from pdf2image import convert_from_path
import pytesseract

log = logging.getLogger(__name__)

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png"}
PDF_SUFFIXES = {".pdf"}
ALLOWED_SUFFIXES = IMAGE_SUFFIXES | PDF_SUFFIXES


# =============================
# Poppler (for pdf2image)
# =============================

def get_poppler_path() -> Optional[str]:
    env = os.environ.get("POPPLER_PATH")
    if env and os.path.isdir(env):
        return env

    if os.name == "nt":
        candidates: List[str] = []
        candidates += glob.glob(r"C:\Program Files\poppler*\bin")
        candidates += glob.glob(r"C:\Program Files\poppler*\Library\bin")
        candidates += glob.glob(r"C:\poppler*\bin")
        for path in candidates:
            if os.path.isfile(os.path.join(path, "pdfinfo.exe")):
                return path
    return None


# =============================
# Tesseract
# =============================

def configure_tesseract_from_env() -> None:
    """Respect TESSERACT_CMD, else whatever `tesseract` is on PATH."""
    cmd = os.environ.get("TESSERACT_CMD")
    if cmd and os.path.isfile(cmd):
        pytesseract.pytesseract.tesseract_cmd = cmd
        return
    found = shutil.which("tesseract") or shutil.which("tesseract.exe")
    if found:
        pytesseract.pytesseract.tesseract_cmd = found


def check_tesseract() -> dict:
    try:
        configure_tesseract_from_env()
        ver = pytesseract.get_tesseract_version()
        return {"found_on_disk": True, "version": str(ver)}
    except Exception as e:
        return {"found_on_disk": False, "version": None, "error": str(e)}


def _tesseract_lang() -> str:
    return os.getenv("TESSERACT_LANG") or "eng"


def _tesseract_config() -> str:
    return os.getenv("TESSERACT_CONFIG") or "--oem 1 --psm 6"


# =============================
# Image loading
# =============================

def apply_exif_orientation(img: Image.Image) -> Image.Image:
    """
    Rotate pixels according to EXIF Orientation (phone photos), then strip
    EXIF so nothing downstream rotates again. Returns RGB image.
    """
    try:
        fixed = ImageOps.exif_transpose(img)
        buf = io.BytesIO()
        fixed.save(buf, format="PNG")
        buf.seek(0)
        return Image.open(buf).convert("RGB")
    except (OSError, ValueError):
        return img.convert("RGB")


def pdf_to_images(pdf_path: str | Path, dpi: int = 300) -> List[Image.Image]:
    poppler_path = get_poppler_path()
    if poppler_path:
        return convert_from_path(str(pdf_path), dpi=dpi, poppler_path=poppler_path)
    return convert_from_path(str(pdf_path), dpi=dpi)


def ocr_image(img: Image.Image) -> str:
    return pytesseract.image_to_string(img, lang=_tesseract_lang(), config=_tesseract_config())


# =============================
# Public entry
# =============================

def image_to_text(path: str | Path) -> str:
    """OCR a menu photo (jpg/png) or PDF into newline-separated text."""
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix not in ALLOWED_SUFFIXES:
        raise ValueError(f"Unsupported menu file type: {suffix or '(none)'}")

    configure_tesseract_from_env()

    if suffix in PDF_SUFFIXES:
        pages = pdf_to_images(p)
        log.info("OCR %s: %d PDF page(s)", p.name, len(pages))
        return "\n".join(ocr_image(apply_exif_orientation(pg)) for pg in pages)

    with Image.open(p) as im:
        upright = apply_exif_orientation(im)
    text = ocr_image(upright)
    log.info("OCR %s: %d chars", p.name, len(text))
    return text
