"""Unicode and whitespace normalization utilities.

Policy:
- Record identity keys: trim, lowercase, collapse internal whitespace.
- Header matching: drop BOM, case-fold, keep only letters and digits (any
  script, so aliases like "例句" still match).
- Documents are handled with LF line endings only.
"""

from __future__ import annotations

import re
import unicodedata as ud

_WS_RE = re.compile(r"\s+")
_BOM = "\ufeff"


def collapse_whitespace(text: str) -> str:
    """Trim and collapse runs of whitespace to a single space."""
    if not text:
        return ""
    return _WS_RE.sub(" ", text).strip()


def normalize_for_identity(text: str) -> str:
    """Normalize free text for use in a record identity key.

    Steps: trim -> lowercase -> collapse whitespace.
    """
    if not text:
        return ""
    return collapse_whitespace(text.strip().lower())


def normalize_header(raw: str) -> str:
    """Normalize a CSV header cell for alias matching.

    Removes a leading BOM, lowercases, and keeps only characters whose Unicode
    category is a letter (L*) or decimal digit (Nd). Spaces, underscores,
    hyphens and ASCII/fullwidth punctuation all disappear.
    """
    if not raw:
        return ""
    s = raw.strip()
    if s.startswith(_BOM):
        s = s[1:]
    s = s.lower()
    return "".join(ch for ch in s if ud.category(ch).startswith("L") or ud.category(ch) == "Nd")


def normalize_line_endings(text: str) -> str:
    """Convert CRLF and lone CR to LF."""
    if not text:
        return ""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def strip_surrounding_slashes(text: str) -> str:
    """Drop one pair of surrounding slashes, e.g. "/əˈbʌv/" -> "əˈbʌv"."""
    t = (text or "").strip()
    if len(t) >= 2 and t.startswith("/") and t.endswith("/"):
        return t[1:-1]
    return t


def is_blank(text: str) -> bool:
    return not text or not text.strip()
