# storage/parsers/menu_vocab.py
"""
Menu Parser Vocabulary

Single source of truth for the word lists and thresholds used by
menu_text.py. Everything here is tuned to one weekly sandwich sheet
(Focaccia Sandwiches / Hoagies) and is meant to be swapped per deployment,
either by building a MenuParserConfig in code or by loading a JSON file
through load_parser_config().

JSON shape (every key optional, missing keys keep the defaults):

    {
      "categories": [
        {"label": "Focaccia", "keywords": ["focaccia"], "patterns": ["focac[cl]ia"],
         "stem": "focac", "stem_max_len": 25, "stem_excludes": ["hoag"],
         "prefix": "focaccia"}
      ],
      "condiment_words": ["aioli", "mayo"],
      "dish_keywords": ["club", "melt"],
      "max_line_length": 60
    }
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

log = logging.getLogger(__name__)


# ── Category header rules ───────────────────────────

@dataclass(frozen=True)
class CategoryRule:
    """Header detection for one menu section.

    A cleaned (lowercase, punctuation-free) line is a header for this
    category when it contains any keyword, matches any pattern, or is a
    short line containing the stem and none of the stem exclusions.
    `prefix` is the raw-line start that marks a header when peeking ahead.
    """
    label: str
    keywords: Tuple[str, ...] = ()
    patterns: Tuple[re.Pattern[str], ...] = ()
    stem: str = ""
    stem_max_len: int = 0
    stem_excludes: Tuple[str, ...] = ()
    prefix: str = ""

    def matches(self, cleaned: str) -> bool:
        if not cleaned:
            return False
        if any(k in cleaned for k in self.keywords):
            return True
        if any(p.search(cleaned) for p in self.patterns):
            return True
        if (self.stem and self.stem in cleaned
                and len(cleaned) < self.stem_max_len
                and not any(x in cleaned for x in self.stem_excludes)):
            return True
        return False


# Focaccia is checked first: "Focaccia Sandwiches" can follow the
# Hoagies section and must win over the shorter hoagie stem.
FOCACCIA = CategoryRule(
    label="Focaccia",
    keywords=("focaccia", "focacciasandwiches"),
    patterns=(re.compile(r"focac[cl]ia"),),
    stem="focac",
    stem_max_len=25,
    stem_excludes=("hoag",),
    prefix="focaccia",
)

HOAGIE = CategoryRule(
    label="Hoagie",
    keywords=("hoagies",),
    patterns=(re.compile(r"^hoag[1i]es$"),),
    stem="hoag",
    stem_max_len=15,
    stem_excludes=("sandwich",),
    prefix="hoagie",
)

DEFAULT_CATEGORIES: Tuple[CategoryRule, ...] = (FOCACCIA, HOAGIE)


# ── Word lists ──────────────────────────────────────

# Spreads and sauces that show up on their own line under a sandwich
CONDIMENT_WORDS: Tuple[str, ...] = (
    "aioli", "mayo", "mayonnaise", "dressing", "sauce", "spread", "butter",
    "cream", "vinaigrette", "labneh", "salsa", "chutney", "relish",
)

# Words that mean a condiment-looking line is really a sandwich name
DISH_KEYWORDS: Tuple[str, ...] = (
    "egg", "sandwich", "club", "melt", "tonnata", "pastrami", "italian",
    "cubano", "muffuletta", "porchetta", "gobfather", "beetnik", "farinata",
    "brie", "salmon", "wagon", "romaine",
)

WEEKDAYS: Tuple[str, ...] = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)

# Lines that can never start an item name
NAME_BLOCKED_PREFIXES: Tuple[str, ...] = ("add", "deluxe", "option")

NAME_BLOCKED_WORDS: Tuple[str, ...] = ("ingredient", "contains")


def _word_alternation(words: Tuple[str, ...]) -> str:
    return "|".join(re.escape(w) for w in words)


# ── Config object ───────────────────────────────────

@dataclass(frozen=True)
class MenuParserConfig:
    categories: Tuple[CategoryRule, ...] = DEFAULT_CATEGORIES
    condiment_words: Tuple[str, ...] = CONDIMENT_WORDS
    dish_keywords: Tuple[str, ...] = DISH_KEYWORDS
    weekdays: Tuple[str, ...] = WEEKDAYS
    name_blocked_prefixes: Tuple[str, ...] = NAME_BLOCKED_PREFIXES
    name_blocked_words: Tuple[str, ...] = NAME_BLOCKED_WORDS

    max_line_length: int = 60        # longer lines are disclaimers, not names
    name_min_len: int = 3
    name_max_len: int = 50
    descriptor_max_len: int = 40     # condiment-only lines are shorter than this
    next_line_min_len: int = 30      # a bare long next line counts as ingredients
    lookahead_min_len: int = 20
    continuation_min_len: int = 10
    max_lookahead: int = 2
    min_item_name_len: int = 3       # cleaned names shorter than this are dropped

    # compiled lazily from the word lists above
    _compiled: Dict[str, re.Pattern[str]] = field(
        default_factory=dict, init=False, repr=False, compare=False, hash=False,
    )

    @property
    def labels(self) -> List[str]:
        return [c.label for c in self.categories]

    @property
    def condiment_re(self) -> re.Pattern[str]:
        rx = self._compiled.get("condiment")
        if rx is None:
            rx = re.compile(
                r"^(.*\s+)?(" + _word_alternation(self.condiment_words) + r")(\s+.*)?$",
                re.IGNORECASE,
            )
            self._compiled["condiment"] = rx
        return rx

    @property
    def dish_re(self) -> re.Pattern[str]:
        rx = self._compiled.get("dish")
        if rx is None:
            rx = re.compile(
                r"\b(" + _word_alternation(self.dish_keywords) + r")\b",
                re.IGNORECASE,
            )
            self._compiled["dish"] = rx
        return rx

    @property
    def weekday_re(self) -> re.Pattern[str]:
        rx = self._compiled.get("weekday")
        if rx is None:
            rx = re.compile(r"^(" + _word_alternation(self.weekdays) + r")$", re.IGNORECASE)
            self._compiled["weekday"] = rx
        return rx

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MenuParserConfig":
        """Build a config from JSON-style data; unknown keys are ignored."""
        if not isinstance(data, dict):
            raise ValueError("parser config must be a JSON object")

        overrides: Dict[str, Any] = {}

        if "categories" in data:
            raw_rules = data["categories"]
            if not isinstance(raw_rules, list) or not raw_rules:
                raise ValueError("categories must be a non-empty list")
            overrides["categories"] = tuple(_rule_from_dict(r) for r in raw_rules)

        for key in ("condiment_words", "dish_keywords", "weekdays",
                    "name_blocked_prefixes", "name_blocked_words"):
            if key in data:
                overrides[key] = _str_tuple(data[key], key)

        int_keys = {f.name for f in fields(cls) if f.type in ("int", int)}
        for key in int_keys:
            if key in data:
                value = data[key]
                if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                    raise ValueError(f"{key} must be a non-negative integer")
                overrides[key] = value

        return replace(DEFAULT_CONFIG, **overrides) if overrides else DEFAULT_CONFIG


def _str_tuple(value: Any, key: str) -> Tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(v, str) and v.strip() for v in value):
        raise ValueError(f"{key} must be a list of non-empty strings")
    return tuple(v.strip().lower() for v in value)


def _rule_from_dict(raw: Any) -> CategoryRule:
    if not isinstance(raw, dict):
        raise ValueError("each category rule must be an object")
    label = raw.get("label")
    if not isinstance(label, str) or not label.strip():
        raise ValueError("category rule needs a label")
    try:
        patterns = tuple(re.compile(p) for p in raw.get("patterns", []))
    except (re.error, TypeError) as e:
        raise ValueError(f"bad pattern in category {label!r}: {e}")
    stem_max_len = raw.get("stem_max_len") or 0
    if isinstance(stem_max_len, bool) or not isinstance(stem_max_len, int) or stem_max_len < 0:
        raise ValueError(f"stem_max_len in category {label!r} must be a non-negative integer")
    return CategoryRule(
        label=label.strip(),
        keywords=_str_tuple(raw.get("keywords", []), "keywords") if raw.get("keywords") else (),
        patterns=patterns,
        stem=str(raw.get("stem") or "").lower(),
        stem_max_len=stem_max_len,
        stem_excludes=_str_tuple(raw["stem_excludes"], "stem_excludes") if raw.get("stem_excludes") else (),
        prefix=str(raw.get("prefix") or "").lower(),
    )


DEFAULT_CONFIG = MenuParserConfig()


def load_parser_config(path: Optional[str | Path]) -> MenuParserConfig:
    """Load a JSON vocabulary file; falls back to DEFAULT_CONFIG when absent."""
    if not path:
        return DEFAULT_CONFIG
    p = Path(path)
    if not p.is_file():
        log.warning("Parser config %s not found; using built-in vocabulary", p)
        return DEFAULT_CONFIG
    with p.open("r", encoding="utf-8") as f:
        data = json.load(f)
    config = MenuParserConfig.from_dict(data)
    log.info("Loaded parser config from %s (%d categories)", p, len(config.categories))
    return config
