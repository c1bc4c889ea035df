"""
Printed page number detection from recognized page text.

Page numbers sit near the bottom of a page, but OCR engines do not always
keep reading order, so the number may also surface at the start of a short
line. Each rule is a pure matcher from one line to an optional number. Lines
are read from the bottom up, the rules are tried in order on each line, and
the first plausible hit wins, so a footer beats a body line above it.
"""

import re
from typing import Callable, List, Optional

from .constants import (
    PAGE_SCAN_LINES,
    PAGE_NUMBER_MIN,
    PAGE_NUMBER_MAX,
    PAGE_SHORT_LINE,
    PAGE_LEADING_LINE,
)

LineMatcher = Callable[[str], Optional[int]]

_NUMBER_AT_END = re.compile(r'(?:^|\D)(\d{1,3})\s*$')
_DECORATED_NUMBER = re.compile(r'^[\[(\-–—]\s*(\d{1,3})\s*[\])\-–—]$')
_ANY_NUMBER = re.compile(r'(?<!\d)(\d{1,3})(?!\d)')
_NUMBER_AT_START = re.compile(r'^(\d{1,3})(?!\d)')


def number_at_line_end(line: str) -> Optional[int]:
    match = _NUMBER_AT_END.search(line)
    return int(match.group(1)) if match else None


def decorated_number(line: str) -> Optional[int]:
    """A number alone on its line wrapped in brackets or dashes, e.g. "- 12 -"."""
    match = _DECORATED_NUMBER.match(line)
    return int(match.group(1)) if match else None


def number_in_short_line(line: str) -> Optional[int]:
    if len(line) > PAGE_SHORT_LINE:
        return None
    match = _ANY_NUMBER.search(line)
    return int(match.group(1)) if match else None


def number_at_line_start(line: str) -> Optional[int]:
    # OCR sometimes emits the footer before the body text
    if len(line) > PAGE_LEADING_LINE:
        return None
    match = _NUMBER_AT_START.match(line)
    return int(match.group(1)) if match else None


PAGE_NUMBER_RULES: List[LineMatcher] = [
    number_at_line_end,
    decorated_number,
    number_in_short_line,
    number_at_line_start,
]


def _in_range(value: Optional[int]) -> bool:
    return value is not None and PAGE_NUMBER_MIN <= value <= PAGE_NUMBER_MAX


def detect_page_number(text: str) -> Optional[int]:
    """
    Detect the printed page number in a page's recognized text.

    Args:
        text: Full OCR text of one page

    Returns:
        Page number in [1, 200], or None if no rule produced a plausible value
    """
    if not text:
        return None

    lines = [line.strip() for line in text.splitlines()]
    lines = [line for line in lines if line]
    bottom = lines[-PAGE_SCAN_LINES:]

    for line in reversed(bottom):
        for rule in PAGE_NUMBER_RULES:
            value = rule(line)
            if _in_range(value):
                return value

    return None
