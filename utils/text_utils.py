"""
Text utilities for matching merchant-supplied text against stored data.

Used for category slugs, category path keys and duplicate lookup keys.
"""

import re
import unicodedata
from typing import Optional


_NON_SLUG_CHARS = re.compile(r"[^\w\s-]", re.ASCII)
_SLUG_SEPARATORS = re.compile(r"[\s_-]+")


def strip_accents(value: str) -> str:
    """
    Remove accent marks, keeping the base characters.

    - "Décor" → "Decor"
    - "Baño" → "Bano"
    """
    # NFD decomposition separates base chars from accents
    normalized = unicodedata.normalize('NFD', value)
    return ''.join(
        c for c in normalized
        if unicodedata.category(c) != 'Mn'
    )


def slugify(value: Optional[str]) -> str:
    """
    Build a URL slug from free text.

    - "Cabinet Handles" → "cabinet-handles"
    - "  Knobs & Pulls " → "knobs-pulls"
    - "Hardware > Handles" → "hardware-handles"

    Args:
        value: Raw text (may be None)

    Returns:
        Lowercase slug, or "" when nothing survives
    """
    if not value:
        return ""

    slug = strip_accents(value).lower().strip()
    slug = _NON_SLUG_CHARS.sub("", slug)
    slug = _SLUG_SEPARATORS.sub("-", slug)
    return slug.strip("-")


def normalize_key(value: Optional[str]) -> str:
    """
    Normalize a lookup key: trimmed and lowercased.

    Returns "" for None or whitespace, which callers treat as "never matches".
    """
    if not value:
        return ""
    return str(value).strip().lower()
