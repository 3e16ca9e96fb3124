"""Date parsing for exported rows.

Both parsers extract runs of digits and ignore whatever separates them, so
"2026-02-09", "2026/2/9" and "2026年2月9日" are all accepted.
"""

from __future__ import annotations

import datetime as dt
import re
from typing import List, Optional, Tuple

_DIGITS_RE = re.compile(r"\d+")

YMD = Tuple[int, int, int]


def _extract_ints(raw: str) -> List[int]:
    return [int(m) for m in _DIGITS_RE.findall((raw or "").strip())]


def is_valid_date(year: int, month: int, day: int) -> bool:
    """Gregorian round-trip validation; years limited to four digits."""
    if not (1000 <= year <= 9999):
        return False
    try:
        dt.date(year, month, day)
    except ValueError:
        return False
    return True


def parse_sentence_date(raw: str) -> Optional[YMD]:
    """Parse a sentence date. Requires year, month and day in that order."""
    nums = _extract_ints(raw)
    if len(nums) < 3:
        return None
    y, m, d = nums[0], nums[1], nums[2]
    if not is_valid_date(y, m, d):
        return None
    return (y, m, d)


def parse_vocabulary_date(raw: str, fallback_year: int) -> Optional[YMD]:
    """Parse a vocabulary date that may omit the year.

    Three numbers: a 4-digit first value means y-m-d, a 4-digit last value
    means m-d-y. Two numbers (or three without a 4-digit value at either end)
    are read as month and day in `fallback_year`.
    """
    nums = _extract_ints(raw)

    if len(nums) >= 3:
        if nums[0] >= 1000:
            y, m, d = nums[0], nums[1], nums[2]
            return (y, m, d) if is_valid_date(y, m, d) else None
        if nums[2] >= 1000:
            m, d, y = nums[0], nums[1], nums[2]
            return (y, m, d) if is_valid_date(y, m, d) else None

    if len(nums) < 2:
        return None
    y, m, d = fallback_year, nums[0], nums[1]
    return (y, m, d) if is_valid_date(y, m, d) else None


def format_ymd(ymd: YMD) -> str:
    y, m, d = ymd
    return f"{y:04d}-{m:02d}-{d:02d}"
