# storage/parsers/menu_text.py
"""
Weekly Menu Text Parser

Turns raw OCR text of the weekly sandwich sheet into structured items:
  - name: title-cased sandwich name
  - category: section label from the last header seen (Focaccia / Hoagie)
  - ingredients: comma-joined ingredient lines
  - addons: optional extras from "Add ..." / "+..." lines

Single left-to-right scan:
  1. classify_line() tags each line (header, noise, item name, add-on,
     ingredient continuation, unrecognized) using at most two lines of
     lookahead
  2. step() applies the tag to a ScanContext (current category, current
     item, output) through a LineCursor
  3. finalize() seals the open item and cleans names / ingredients

Design principles:
  - Pure regex + heuristic, vocabulary lives in menu_vocab.py
  - Never raises on malformed text; worst case is an empty list
  - One open item at a time; an item is sealed on a category switch,
    a new item name, or end of input
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .menu_vocab import DEFAULT_CONFIG, MenuParserConfig

log = logging.getLogger(__name__)


# ── Line roles ──────────────────────────────────────

ROLE_HEADER = "header"
ROLE_NOISE = "noise"
ROLE_ITEM_NAME = "item_name"
ROLE_ADDON = "addon"
ROLE_INGREDIENT = "ingredient"
ROLE_UNRECOGNIZED = "unrecognized"


@dataclass
class LineClass:
    """Classification of one source line."""
    role: str
    text: str
    category: Optional[str] = None  # set for ROLE_HEADER
    addon: Optional[str] = None     # set for ROLE_ADDON


# ── Result type ─────────────────────────────────────

@dataclass
class ParsedMenuItem:
    name: str
    category: str
    ingredients: str = ""
    addons: List[str] = field(default_factory=list)

    def add_addon(self, addon: str) -> bool:
        """Append an add-on unless the exact string is already present."""
        if not addon or addon in self.addons:
            return False
        self.addons.append(addon)
        return True

    def append_ingredients(self, text: str) -> None:
        self.ingredients = f"{self.ingredients}, {text}" if self.ingredients else text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category,
            "ingredients": self.ingredients,
            "addons": list(self.addons),
        }


# ── Cursor + scan context ───────────────────────────

class LineCursor:
    """Read position over normalized lines with bounded peeking."""

    def __init__(self, lines: List[str]):
        self._lines = lines
        self.index = 0

    def __len__(self) -> int:
        return len(self._lines)

    @property
    def at_end(self) -> bool:
        return self.index >= len(self._lines)

    def peek(self, offset: int = 0) -> Optional[str]:
        """Line at index + offset, or None past either end."""
        i = self.index + offset
        if 0 <= i < len(self._lines):
            return self._lines[i]
        return None

    def advance(self, n: int = 1) -> None:
        self.index = min(self.index + max(n, 0), len(self._lines))


@dataclass
class ScanContext:
    current_category: Optional[str] = None
    current_item: Optional[ParsedMenuItem] = None
    output: List[ParsedMenuItem] = field(default_factory=list)

    def seal(self) -> None:
        """Push the open item (if it has a name); it is never touched again."""
        if self.current_item is not None and self.current_item.name:
            self.output.append(self.current_item)
        self.current_item = None

    def open_item(self, item: ParsedMenuItem) -> None:
        self.seal()
        self.current_item = item


# ── Regexes ─────────────────────────────────────────

_PUNCT_RE = re.compile(r"[^\w\s]")
_NAME_STRIP_RE = re.compile(r"[^\w\s&'-]")
_INGREDIENT_STRIP_RE = re.compile(r"[^A-Za-z0-9 ,.\-&]")
_PRICE_ONLY_RE = re.compile(r"^\$?\d+\.?\d*$")
_FRACTION_RE = re.compile(r"^\d+/\d+$")
_PAGE_RE = re.compile(r"^page\s+\d+", re.IGNORECASE)
_LEADING_DIGIT_RE = re.compile(r"^\d")

# "Add X", "+X", "+ Add X", "Deluxe option: Add X"
_ADDON_PATTERNS = (
    re.compile(r"add\s+(.+)", re.IGNORECASE),
    re.compile(r"^\+(.+)"),
    re.compile(r"^\+?\s*add\s+(.+)", re.IGNORECASE),
    re.compile(r"deluxe.*add\s+(.+)", re.IGNORECASE),
)
_ADDON_HINT_RE = re.compile(r"add|\+", re.IGNORECASE)
_ADDON_LEAD_RE = re.compile(r"^add\s+", re.IGNORECASE)
_OPTION_LEAD_RE = re.compile(r"^option:\s*", re.IGNORECASE)


# ── Text helpers ────────────────────────────────────

def normalize_lines(text: Optional[str]) -> List[str]:
    """Split on newlines, trim each line, drop blanks."""
    if not text:
        return []
    return [ln.strip() for ln in text.splitlines() if ln.strip()]


def _clean_key(line: str) -> str:
    return _PUNCT_RE.sub("", line.lower()).strip()


def clean_name(raw: str) -> str:
    """'THE italian!' -> 'The Italian'. Keeps & ' - inside names."""
    name = _NAME_STRIP_RE.sub("", raw or "").strip()
    return " ".join(w[:1].upper() + w[1:].lower() for w in name.split(" "))


def clean_ingredients(text: str) -> str:
    return _INGREDIENT_STRIP_RE.sub("", text or "").strip()


def _is_price_like(line: str) -> bool:
    return bool(_PRICE_ONLY_RE.match(line))


# ── Predicates ──────────────────────────────────────

def detect_category(line: str, config: MenuParserConfig = DEFAULT_CONFIG) -> Optional[str]:
    """Return the category label if the line is a section header."""
    cleaned = _clean_key(line)
    for rule in config.categories:
        if rule.matches(cleaned):
            return rule.label
    return None


def _starts_with_header(line: str, config: MenuParserConfig) -> bool:
    low = line.lower()
    return any(rule.prefix and low.startswith(rule.prefix) for rule in config.categories)


def is_noise_line(line: str, config: MenuParserConfig = DEFAULT_CONFIG) -> bool:
    """Page markers (1/13), weekday names, 'page N', and over-long lines."""
    if _FRACTION_RE.match(line) or config.weekday_re.match(line) or _PAGE_RE.match(line):
        return True
    return len(line) > config.max_line_length


def is_pure_ingredient_descriptor(line: str, config: MenuParserConfig = DEFAULT_CONFIG) -> bool:
    """Short condiment-only line such as 'Lemon Pepper Aioli'.

    'Eby Egg and Cheese' style names survive because a dish keyword
    vetoes the condiment match.
    """
    if len(line) >= config.descriptor_max_len:
        return False
    low = line.lower()
    return bool(config.condiment_re.match(low)) and not config.dish_re.search(low)


def looks_like_item_name(line: str, config: MenuParserConfig = DEFAULT_CONFIG) -> bool:
    if not (config.name_min_len <= len(line) <= config.name_max_len):
        return False
    if not line[:1].isupper():
        return False
    if ":" in line or _LEADING_DIGIT_RE.match(line):
        return False
    low = line.lower()
    if any(w in low for w in config.name_blocked_words):
        return False
    if any(low.startswith(p) for p in config.name_blocked_prefixes):
        return False
    return not is_pure_ingredient_descriptor(line, config)


def next_line_has_ingredients(
    next_line: Optional[str],
    config: MenuParserConfig = DEFAULT_CONFIG,
    *,
    exclude_headers: bool = False,
) -> bool:
    if next_line is None:
        return False
    has = "," in next_line or "and" in next_line or len(next_line) > config.next_line_min_len
    if has and exclude_headers:
        return not _starts_with_header(next_line, config)
    return has


def looks_like_ingredients(line: str, config: MenuParserConfig = DEFAULT_CONFIG) -> bool:
    """Lookahead test: comma, 'and', or a long non-price line."""
    if "," in line or "and" in line:
        return True
    return len(line) > config.lookahead_min_len and not _is_price_like(line)


def is_addon_line(line: str) -> bool:
    """Loose check used to stop lookahead before an add-on line."""
    return bool(_ADDON_HINT_RE.search(line))


def match_addon(line: str) -> Optional[str]:
    """Extract the add-on name from 'Add X' style lines."""
    for rx in _ADDON_PATTERNS:
        m = rx.search(line)
        if m:
            break
    else:
        return None
    name = _ADDON_LEAD_RE.sub("", m.group(1).strip())
    name = _OPTION_LEAD_RE.sub("", name).strip()
    return name or None


def is_continuation(line: str, config: MenuParserConfig = DEFAULT_CONFIG) -> bool:
    """Ingredient overflow line for the open item."""
    if len(line) <= config.continuation_min_len or _is_price_like(line):
        return False
    if not ("," in line or "and" in line or len(line) > config.lookahead_min_len):
        return False
    # capitalized short lines are more likely stray names than ingredients
    return not (line[:1].isupper() and len(line) < config.name_max_len)


def _starts_new_item(line: str, following: Optional[str], config: MenuParserConfig) -> bool:
    """Lookahead stop: a comma-free name line that has its own ingredients."""
    return (
        "," not in line
        and looks_like_item_name(line, config)
        and next_line_has_ingredients(following, config)
    )


# ── Classifier ──────────────────────────────────────

def classify_line(
    line: str,
    next_line: Optional[str] = None,
    *,
    has_current_item: bool = False,
    config: MenuParserConfig = DEFAULT_CONFIG,
) -> LineClass:
    """Tag one line. Earlier rules win.

    Item names are checked twice: once for every line (next line must look
    like ingredients, or this is the last line) and again when an item is
    already open, where the next line must also not be a section header.
    """
    category = detect_category(line, config)
    if category:
        return LineClass(ROLE_HEADER, line, category=category)

    if is_noise_line(line, config):
        return LineClass(ROLE_NOISE, line)

    is_name = looks_like_item_name(line, config)
    if is_name and (next_line is None or next_line_has_ingredients(next_line, config)):
        return LineClass(ROLE_ITEM_NAME, line)

    if not has_current_item:
        return LineClass(ROLE_UNRECOGNIZED, line)

    if is_name and next_line_has_ingredients(next_line, config, exclude_headers=True):
        return LineClass(ROLE_ITEM_NAME, line)

    addon = match_addon(line)
    if addon:
        return LineClass(ROLE_ADDON, line, addon=addon)

    if is_continuation(line, config):
        return LineClass(ROLE_INGREDIENT, line)

    return LineClass(ROLE_UNRECOGNIZED, line)


# ── Scan engine ─────────────────────────────────────

def _collect_lookahead(cursor: LineCursor, config: MenuParserConfig) -> List[str]:
    """Ingredient lines directly after an item name (at most max_lookahead)."""
    taken: List[str] = []
    for offset in range(1, config.max_lookahead + 1):
        candidate = cursor.peek(offset)
        if candidate is None or detect_category(candidate, config):
            break
        if not looks_like_ingredients(candidate, config):
            break
        if is_addon_line(candidate):
            break
        # only the line right after the name can open the next item
        if offset == 1 and _starts_new_item(candidate, cursor.peek(offset + 1), config):
            break
        taken.append(candidate)
    return taken


def _start_item(ctx: ScanContext, cursor: LineCursor, line: str, config: MenuParserConfig) -> None:
    if ctx.current_item is not None:
        log.debug("New item %r seals %r", line, ctx.current_item.name)
    item = ParsedMenuItem(name=clean_name(line), category=ctx.current_category or "")
    ctx.open_item(item)
    taken = _collect_lookahead(cursor, config)
    for extra in taken:
        item.append_ingredients(extra)
    log.debug("Found item %r (%s)", item.name, item.category)
    cursor.advance(1 + len(taken))


def step(ctx: ScanContext, cursor: LineCursor, config: MenuParserConfig = DEFAULT_CONFIG) -> LineClass:
    """Classify the line under the cursor, apply it to ctx, move on."""
    line = cursor.peek()
    if line is None:
        return LineClass(ROLE_UNRECOGNIZED, "")

    cls = classify_line(
        line,
        cursor.peek(1),
        has_current_item=ctx.current_item is not None,
        config=config,
    )

    if cls.role == ROLE_HEADER:
        if cls.category != ctx.current_category:
            ctx.seal()
            log.debug("Section %s starts at %r", cls.category, line)
            ctx.current_category = cls.category
        cursor.advance()
        return cls

    # nothing counts until the first section header
    if ctx.current_category is None:
        cursor.advance()
        return LineClass(ROLE_UNRECOGNIZED, line)

    if cls.role == ROLE_ITEM_NAME:
        _start_item(ctx, cursor, line, config)
        return cls

    item = ctx.current_item
    if cls.role == ROLE_ADDON and item is not None:
        if item.add_addon(cls.addon or ""):
            log.debug("Add-on %r for %r", cls.addon, item.name)
    elif cls.role == ROLE_INGREDIENT and item is not None:
        item.append_ingredients(line)

    cursor.advance()
    return cls


def finalize(ctx: ScanContext, config: MenuParserConfig = DEFAULT_CONFIG) -> List[ParsedMenuItem]:
    ctx.seal()
    cleaned: List[ParsedMenuItem] = []
    for item in ctx.output:
        name = item.name.strip()
        if len(name) < config.min_item_name_len:
            continue
        cleaned.append(ParsedMenuItem(
            name=name,
            category=item.category,
            ingredients=clean_ingredients(item.ingredients),
            addons=list(item.addons),
        ))
    return cleaned


def parse_menu_text(
    text: Optional[str],
    config: Optional[MenuParserConfig] = None,
) -> List[ParsedMenuItem]:
    """Parse OCR text of a weekly menu into ordered ParsedMenuItem records."""
    config = config or DEFAULT_CONFIG
    lines = normalize_lines(text)
    log.debug("Parsing menu text, %d non-blank lines", len(lines))

    ctx = ScanContext()
    cursor = LineCursor(lines)
    while not cursor.at_end:
        step(ctx, cursor, config)

    items = finalize(ctx, config)
    log.info("Parsed %d menu item(s)", len(items))
    return items


def parse_menu_text_to_dicts(
    text: Optional[str],
    config: Optional[MenuParserConfig] = None,
) -> List[Dict[str, Any]]:
    return [it.to_dict() for it in parse_menu_text(text, config)]
