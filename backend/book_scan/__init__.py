"""
Book Scan: page-accurate text from filmed or photographed books

This package scores captured frames for visual quality, selects the most
legible frame for each page with OCR assistance and page number
deduplication, and splits the recognized text into chapters.
"""

from .chapters import detect_chapters
from .errors import BookScanError, DecodeError, OcrFailure, EmptyInput
from .page_numbers import detect_page_number
from .pipeline import digitize_video, digitize_archive
from .quality import score_frame
from .selector import BestFrameSelector, select_best_frames
from .types import (
    Config,
    Frame,
    FrameScore,
    SelectedFrame,
    Chapter,
    ChapterDetectionResult,
)

__version__ = "1.0.0"
__all__ = [
    "detect_chapters",
    "detect_page_number",
    "digitize_video",
    "digitize_archive",
    "score_frame",
    "BestFrameSelector",
    "select_best_frames",
    "Config",
    "Frame",
    "FrameScore",
    "SelectedFrame",
    "Chapter",
    "ChapterDetectionResult",
    "BookScanError",
    "DecodeError",
    "OcrFailure",
    "EmptyInput",
]
