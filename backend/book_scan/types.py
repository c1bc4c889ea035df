"""
Type definitions for the book scan package.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Tuple, Dict, Any
import numpy as np


@dataclass
class Config:
    """Configuration for the digitization pipeline."""

    # Frame extraction
    sampling_fps: float = 0.5  # one frame every 2 seconds
    max_frames: int = 100
    force_rotate: Optional[int] = None  # 90, 180 or 270

    # Best-frame selection
    window_seconds: float = 3.0
    min_score: float = 0.5
    candidates_per_window: int = 3
    use_ocr: bool = True

    # Worker pools
    ocr_workers: int = 2  # each OCR call holds a decoded raster, keep small
    score_workers: int = 1

    # Debug/logging
    debug: bool = False


@dataclass(frozen=True)
class Frame:
    """A still image extracted from a capture."""
    path: str
    ordinal: int
    timestamp: float  # seconds, ordinal / sampling rate


@dataclass(frozen=True)
class GrayscaleBuffer:
    """Single-channel 8-bit luma raster."""
    width: int
    height: int
    pixels: np.ndarray  # shape (height, width), dtype uint8


@dataclass(frozen=True)
class FrameScore:
    """Visual quality metrics for one frame."""
    frame: Frame
    sharpness: float
    brightness: float
    contrast: float
    visual_score: float

    @property
    def path(self) -> str:
        return self.frame.path

    @property
    def timestamp(self) -> float:
        return self.frame.timestamp


@dataclass(frozen=True)
class OcrResult:
    """Raw output of an OCR engine for one image."""
    text: str
    confidence: float  # 0-100
    image_path: str = ""


@dataclass(frozen=True)
class OcrEnrichment:
    """OCR-derived metrics, computed only for window finalists."""
    recognized_text: str
    recognized_text_length: int
    ocr_confidence: float
    text_coverage_score: float
    detected_page_number: Optional[int] = None


@dataclass
class SelectedFrame:
    """A window finalist, and once chosen, a selected frame."""
    score: FrameScore
    window_start: float
    ocr: Optional[OcrEnrichment] = None
    phash: Optional[str] = None

    @property
    def path(self) -> str:
        return self.score.path

    @property
    def timestamp(self) -> float:
        return self.score.timestamp

    @property
    def detected_page_number(self) -> Optional[int]:
        return self.ocr.detected_page_number if self.ocr else None

    @property
    def text_coverage_score(self) -> float:
        return self.ocr.text_coverage_score if self.ocr else 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "path": self.path,
            "ordinal": self.score.frame.ordinal,
            "time_s": self.timestamp,
            "window_start": self.window_start,
            "visual_score": self.score.visual_score,
            "sharpness": self.score.sharpness,
            "brightness": self.score.brightness,
            "contrast": self.score.contrast,
            "phash": self.phash,
            "page_number": self.detected_page_number,
            "ocr_conf": self.ocr.ocr_confidence if self.ocr else None,
            "text_length": self.ocr.recognized_text_length if self.ocr else None,
            "text_coverage_score": self.ocr.text_coverage_score if self.ocr else None,
        }


@dataclass(frozen=True)
class Chapter:
    """One chapter of a book."""
    number: int
    title: str
    body_text: str
    source_range: Tuple[int, int]  # character offsets into the searched text

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "title": self.title,
            "text": self.body_text,
            "start": self.source_range[0],
            "end": self.source_range[1],
        }


@dataclass
class ChapterDetectionResult:
    """Chapters found in a book's recognized text."""
    chapters: List[Chapter]
    has_chapters: bool
    raw_text: str
    preamble: str = ""

    def to_dict(self) -> dict:
        return {
            "has_chapters": self.has_chapters,
            "preamble": self.preamble,
            "chapters": [c.to_dict() for c in self.chapters],
        }


@dataclass
class DigitizationResult:
    """End-to-end output for one captured book."""
    selected: List[SelectedFrame]
    combined_text: str
    average_confidence: float
    chapters: ChapterDetectionResult
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "frames": [f.to_dict() for f in self.selected],
            "average_confidence": self.average_confidence,
            "chapters": self.chapters.to_dict(),
            "metadata": self.metadata,
        }
