"""
Chapter detection for recognized book text.

Finds chapter headings in Swedish and English OCR output, tolerating the
noise OCR introduces, and splits the text into chapters.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from .constants import (
    PAGE_MARKER,
    WORD_RATIO_THRESHOLD,
    TITLE_MIN_WORDS,
    TITLE_MIN_WORD_LETTERS,
    TITLE_LONG_WORD_LETTERS,
    TITLE_MIN_CHARS,
    CHAPTER_NUMBER_MAX,
    NOISY_CHAPTER_NUMBER_MAX,
    NOISY_TITLE_LOOKAHEAD,
)
from .types import Chapter, ChapterDetectionResult

logger = logging.getLogger(__name__)

CAPS = "A-ZÅÄÖ"

# Ordered by specificity, most specific first
CHAPTER_PATTERNS = [
    # "Kapitel 1", "Kap. 1: Titel"
    re.compile(r'^(?:kapitel|kap\.?)[ \t]+(\d+)[:. \t]*([^\n]*)', re.IGNORECASE | re.MULTILINE),
    # "Chapter 1", "Ch. 1: Title"
    re.compile(r'^(?:chapter|ch\.?)[ \t]+(\d+)[:. \t]*([^\n]*)', re.IGNORECASE | re.MULTILINE),
    # "1. DE FREDLÖSA", title may sit on the line after the number
    re.compile(rf'^(\d+)\.\s*([{CAPS}][{CAPS} \t\-]{{3,}})', re.MULTILINE),
    # "1. SHERWOOD SKOGEN"
    re.compile(rf'^(\d+)\.\s+([{CAPS}]+(?:[ \t]+[{CAPS}]+)+)', re.MULTILINE),
]

_GARBAGE = re.compile(r'[|\\/<>{}\[\]@#$%^&*+=~`]')
_WORD = re.compile(rf'[^\W\d_]{{{TITLE_MIN_WORD_LETTERS},}}')
_HEADING_LINE = re.compile(rf'^\d+\.(?:\s+[{CAPS}]|\s*$)')
_EXPLICIT_HEADING_LINE = re.compile(r'^(?:kapitel|chapter)', re.IGNORECASE)
_NUMBERED_LINE = re.compile(r'^(\d+)\.\s*')
_CAPS_PREFIX = re.compile(rf'^([{CAPS}][{CAPS}\s\-]+)')
_CAPS_LINE = re.compile(rf'[{CAPS}][{CAPS}\s\-]+')
_PAGE_MARKER_BREAK = re.compile(rf'\s*{re.escape(PAGE_MARKER)}\s*')


@dataclass
class Heading:
    index: int
    number: int
    title: str
    line_count: int = 1  # lines the heading occupies at the start of its chapter


def clean_ocr_text(text: str) -> str:
    """
    Clean OCR text by removing symbol noise and normalizing whitespace.
    """
    text = text.replace('\r\n', '\n').replace('\r', '\n')
    text = _GARBAGE.sub(' ', text)
    text = re.sub(r'[ \t]+', ' ', text)
    text = '\n'.join(line.strip() for line in text.split('\n'))
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()


def _word_ratio(line: str) -> float:
    letters = sum(len(w) for w in _WORD.findall(line))
    chars = len(re.sub(r'\s', '', line))
    return letters / chars if chars else 0.0


def aggressive_clean(text: str) -> str:
    """
    Drop lines that are mostly OCR noise.

    Page markers and lines that look like headings, including a bare "N."
    whose title OCR pushed onto a later line, are always kept.
    """
    kept = []
    for line in text.split('\n'):
        trimmed = line.strip()
        if trimmed == PAGE_MARKER:
            kept.append(trimmed)
        elif _HEADING_LINE.match(trimmed) or _EXPLICIT_HEADING_LINE.match(trimmed):
            kept.append(trimmed)
        elif _word_ratio(trimmed) >= WORD_RATIO_THRESHOLD:
            kept.append(trimmed)
    return '\n'.join(kept)


def find_chapter_headings(text: str) -> List[Heading]:
    """Find headings with the ordered pattern list; first match per number wins."""
    headings: List[Heading] = []
    seen = set()

    for pattern in CHAPTER_PATTERNS:
        for match in pattern.finditer(text):
            number = int(match.group(1))
            if not 0 < number <= CHAPTER_NUMBER_MAX or number in seen:
                continue
            seen.add(number)
            title = (match.group(2) or '').strip() or f"Kapitel {number}"
            headings.append(Heading(
                index=match.start(),
                number=number,
                title=title,
                line_count=match.group(0).count('\n') + 1,
            ))

    headings.sort(key=lambda h: h.index)
    return headings


def find_chapter_in_noisy_text(text: str) -> List[Heading]:
    """
    Line scan for "N." followed by an ALL CAPS title.

    The title may sit on the same line or continue over up to two following
    lines, which is how OCR often splits large heading type.
    """
    headings: List[Heading] = []
    seen = set()
    lines = text.split('\n')
    offset = 0

    for i, line in enumerate(lines):
        num_match = _NUMBERED_LINE.match(line)
        if num_match:
            number = int(num_match.group(1))
            if 0 < number <= NOISY_CHAPTER_NUMBER_MAX and number not in seen:
                title_parts = []
                after = line[num_match.end():].strip()
                caps = _CAPS_PREFIX.match(after)
                if caps:
                    title_parts.append(caps.group(1).strip())

                continuation = 0
                for j in range(1, NOISY_TITLE_LOOKAHEAD + 1):
                    if i + j >= len(lines):
                        break
                    next_line = lines[i + j].strip()
                    if _CAPS_LINE.fullmatch(next_line) and len(next_line) > 3:
                        title_parts.append(next_line)
                        continuation += 1
                    else:
                        break

                title = re.sub(r'\s+', ' ', ' '.join(title_parts)).strip()
                if len(title) > 3:
                    seen.add(number)
                    headings.append(Heading(
                        index=offset,
                        number=number,
                        title=title,
                        line_count=1 + continuation,
                    ))

        offset += len(line) + 1

    return headings


def is_plausible_title(title: str) -> bool:
    """
    Reject titles that are OCR noise, e.g. "XYZ ABC".

    A title needs two real words or one long word, and enough characters.
    """
    words = _WORD.findall(title)
    has_real_words = (len(words) >= TITLE_MIN_WORDS
                      or any(len(w) >= TITLE_LONG_WORD_LETTERS for w in words))
    long_enough = len(re.sub(r'\s', '', title)) >= TITLE_MIN_CHARS
    return has_real_words and long_enough


def _strictly_increasing(headings: List[Heading]) -> List[Heading]:
    kept = []
    for heading in headings:
        if kept and heading.number <= kept[-1].number:
            logger.debug(f"Skipping out-of-order heading {heading.number}. {heading.title}")
            continue
        kept.append(heading)
    return kept


def _tidy(text: str) -> str:
    text = _PAGE_MARKER_BREAK.sub('\n\n', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()


def detect_chapters(ocr_text: Optional[str]) -> ChapterDetectionResult:
    """
    Detect chapters in OCR text and split into separate chapter objects.

    Args:
        ocr_text: Recognized text of a whole book; pages may be separated
            by ---PAGE--- markers

    Returns:
        ChapterDetectionResult. When no heading survives, the whole cleaned
        text is returned as a single "Untitled" chapter with
        has_chapters=False.
    """
    cleaned = clean_ocr_text(ocr_text or '')

    # each stage only runs when the previous one found no plausible heading
    stages = [
        (cleaned, find_chapter_headings),
        (aggressive_clean(cleaned), find_chapter_headings),
        (cleaned, find_chapter_in_noisy_text),
    ]
    searched, headings = cleaned, []
    for searched, finder in stages:
        candidates = finder(searched)
        headings = [h for h in candidates if is_plausible_title(h.title)]
        if len(candidates) != len(headings):
            logger.debug(f"Discarded {len(candidates) - len(headings)} implausible chapter headings")
        if headings:
            break

    headings = _strictly_increasing(headings)

    if not headings:
        fallback = aggressive_clean(cleaned)
        return ChapterDetectionResult(
            chapters=[Chapter(
                number=1,
                title='Untitled',
                body_text=_tidy(fallback),
                source_range=(0, len(fallback)),
            )],
            has_chapters=False,
            raw_text=cleaned,
        )

    chapters = []
    for i, heading in enumerate(headings):
        start = heading.index
        end = headings[i + 1].index if i + 1 < len(headings) else len(searched)
        lines = searched[start:end].split('\n')
        body = '\n'.join(lines[heading.line_count:])
        chapters.append(Chapter(
            number=heading.number,
            title=heading.title,
            body_text=_tidy(body),
            source_range=(start, end),
        ))

    return ChapterDetectionResult(
        chapters=chapters,
        has_chapters=True,
        raw_text=cleaned,
        preamble=_tidy(searched[:headings[0].index]),
    )


def format_chapter_summary(result: ChapterDetectionResult) -> str:
    """Format chapters for display/logging."""
    if not result.has_chapters:
        return 'No chapters detected - treating as single chapter'

    lines = [f"Detected {len(result.chapters)} chapter(s):"]
    for chapter in result.chapters:
        preview = chapter.body_text[:100].replace('\n', ' ')
        lines.append(f"  {chapter.number}. {chapter.title} ({len(chapter.body_text)} chars)")
        lines.append(f'     Preview: "{preview}..."')

    return '\n'.join(lines)
