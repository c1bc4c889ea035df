"""
Best-frame selection: one winner per time window, deduplicated by page number.
"""

import logging
import math
import shutil
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import imagehash
from PIL import Image, UnidentifiedImageError

from .constants import CONFIDENCE_DIVISOR
from .errors import OcrFailure
from .ocr import OcrEngine
from .page_numbers import detect_page_number
from .types import Config, FrameScore, OcrEnrichment, SelectedFrame

logger = logging.getLogger(__name__)

Window = Tuple[float, List[FrameScore]]


def partition_windows(scores: Sequence[FrameScore], window_seconds: float) -> List[Window]:
    """
    Group scored frames into time windows.

    A window closes once a frame's timestamp reaches window_start +
    window_seconds; the next window starts at that frame's timestamp floored
    to a multiple of window_seconds. Under irregular sampling the boundaries
    therefore follow the data.

    Returns:
        List of (window_start, frames) in time order
    """
    if window_seconds <= 0:
        raise ValueError(f"window_seconds must be positive, got {window_seconds}")

    windows: List[Window] = []
    current: List[FrameScore] = []
    window_start = 0.0

    for score in scores:
        if score.timestamp >= window_start + window_seconds:
            if current:
                windows.append((window_start, current))
            current = [score]
            window_start = math.floor(score.timestamp / window_seconds) * window_seconds
        else:
            current.append(score)

    if current:
        windows.append((window_start, current))

    return windows


def rank_finalists(window: Sequence[FrameScore], min_score: float,
                   candidates_per_window: int) -> List[FrameScore]:
    """Top visual scores in a window, best first, below-threshold frames dropped."""
    ranked = sorted(window, key=lambda s: s.visual_score, reverse=True)
    return [s for s in ranked if s.visual_score >= min_score][:candidates_per_window]


def text_coverage_score(text_length: int, confidence: float) -> float:
    return text_length * (1 + confidence / CONFIDENCE_DIVISOR)


def build_enrichment(text: str, confidence: float) -> OcrEnrichment:
    text_length = len(text)
    return OcrEnrichment(
        recognized_text=text,
        recognized_text_length=text_length,
        ocr_confidence=confidence,
        text_coverage_score=text_coverage_score(text_length, confidence),
        detected_page_number=detect_page_number(text),
    )


def deduplicate_by_page(winners: Sequence[SelectedFrame]) -> List[SelectedFrame]:
    """
    Collapse winners that show the same printed page.

    The winner with the higher text coverage score survives; on a tie the
    earlier capture is kept. Winners without a page number are all retained.
    """
    best: Dict[int, SelectedFrame] = {}
    for winner in winners:
        page = winner.detected_page_number
        if page is None:
            continue
        if page not in best or winner.text_coverage_score > best[page].text_coverage_score:
            best[page] = winner

    kept = []
    for winner in winners:
        page = winner.detected_page_number
        if page is None or best[page] is winner:
            kept.append(winner)
        else:
            logger.debug(f"Dropping duplicate of page {page} at {winner.timestamp:.1f}s")
    return kept


def order_by_page(winners: Sequence[SelectedFrame]) -> List[SelectedFrame]:
    """
    Order winners by page number.

    Frames without a page number follow the page-numbered frame captured
    most recently before them; those captured before any numbered page lead.
    """
    numbered = sorted(
        (w for w in winners if w.detected_page_number is not None),
        key=lambda w: (w.detected_page_number, w.timestamp),
    )
    pageless = sorted(
        (w for w in winners if w.detected_page_number is None),
        key=lambda w: w.timestamp,
    )

    leading: List[SelectedFrame] = []
    following: Dict[int, List[SelectedFrame]] = {id(w): [] for w in numbered}

    for frame in pageless:
        anchor = None
        for candidate in numbered:
            if candidate.timestamp <= frame.timestamp and (
                anchor is None or candidate.timestamp > anchor.timestamp
            ):
                anchor = candidate
        if anchor is None:
            leading.append(frame)
        else:
            following[id(anchor)].append(frame)

    ordered = list(leading)
    for frame in numbered:
        ordered.append(frame)
        ordered.extend(following[id(frame)])
    return ordered


def perceptual_hash(image_path: str) -> Optional[str]:
    try:
        with Image.open(image_path) as img:
            return str(imagehash.phash(img))
    except (OSError, UnidentifiedImageError) as e:
        logger.warning(f"Could not hash {image_path}: {e}")
        return None


class BestFrameSelector:
    """
    Picks the clearest, most completely visible frame for each page shown.
    """

    def __init__(self, config: Config, engine: Optional[OcrEngine] = None,
                 language: str = "swe", compute_phash: bool = True):
        self.config = config
        self.engine = engine
        self.language = language
        self.compute_phash = compute_phash

    def _recognize(self, score: FrameScore) -> OcrEnrichment:
        try:
            result = self.engine.recognize(score.path, self.language)
        except OcrFailure as e:
            logger.warning(f"OCR failed on frame {score.frame.ordinal}, degrading: {e}")
            return build_enrichment("", 0.0)
        return build_enrichment(result.text, result.confidence)

    def _pick_winner(self, window_start: float, finalists: List[FrameScore],
                     executor: Optional[ThreadPoolExecutor]) -> SelectedFrame:
        if executor is None:
            return SelectedFrame(score=finalists[0], window_start=window_start)

        futures = [executor.submit(self._recognize, s) for s in finalists]
        candidates = [
            SelectedFrame(score=s, window_start=window_start, ocr=f.result())
            for s, f in zip(finalists, futures)
        ]
        # max() keeps the first of equal scores, i.e. the better visual rank
        winner = max(candidates, key=lambda c: c.text_coverage_score)

        if self.config.debug:
            for c in candidates:
                logger.info(
                    f"Window {window_start:.1f}s: frame {c.score.frame.ordinal} "
                    f"visual={c.score.visual_score:.2f} coverage={c.text_coverage_score:.1f} "
                    f"page={c.detected_page_number}"
                )
        return winner

    def select(self, scores: Sequence[FrameScore],
               window_seconds: Optional[float] = None,
               min_score: Optional[float] = None,
               candidates_per_window: Optional[int] = None,
               use_ocr: Optional[bool] = None,
               cancel_event: Optional[threading.Event] = None) -> List[SelectedFrame]:
        """
        Select the best frame per time window.

        Args:
            scores: Scored frames in capture order
            window_seconds: Window length (default from config)
            min_score: Minimum visual score for a finalist (default from config)
            candidates_per_window: Finalists kept per window (default from config)
            use_ocr: Rank finalists by OCR text coverage (default from config)
            cancel_event: When set, no further windows are scheduled; OCR
                calls already running are allowed to finish

        Returns:
            Selected frames ordered by page number
        """
        window_seconds = window_seconds if window_seconds is not None else self.config.window_seconds
        min_score = min_score if min_score is not None else self.config.min_score
        candidates_per_window = (candidates_per_window if candidates_per_window is not None
                                 else self.config.candidates_per_window)
        use_ocr = use_ocr if use_ocr is not None else self.config.use_ocr

        if not scores:
            return []
        if use_ocr and self.engine is None:
            raise ValueError("OCR-assisted selection requires an OCR engine")

        windows = partition_windows(scores, window_seconds)
        winners: List[SelectedFrame] = []

        executor = ThreadPoolExecutor(max_workers=self.config.ocr_workers) if use_ocr else None
        try:
            for window_start, frames in windows:
                if cancel_event is not None and cancel_event.is_set():
                    logger.warning(f"Selection cancelled after {len(winners)} windows")
                    break

                finalists = rank_finalists(frames, min_score, candidates_per_window)
                if not finalists:
                    logger.debug(f"Window {window_start:.1f}s: no frame above {min_score}")
                    continue

                winners.append(self._pick_winner(window_start, finalists, executor))
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        kept = deduplicate_by_page(winners)
        selected = order_by_page(kept)

        if self.compute_phash:
            for frame in selected:
                frame.phash = perceptual_hash(frame.path)

        logger.info("Frame quality analysis:")
        logger.info(f"  Total frames: {len(scores)}")
        logger.info(f"  Time windows: {len(windows)} ({window_seconds}s each)")
        logger.info(f"  Window winners: {len(winners)}, after page dedup: {len(selected)}")
        if selected:
            avg_score = sum(f.score.visual_score for f in selected) / len(selected)
            logger.info(f"  Average quality score: {avg_score:.2f}")

        return selected


def select_best_frames(scores: Sequence[FrameScore],
                       window_seconds: float = 3.0,
                       min_score: float = 0.5,
                       candidates_per_window: int = 3,
                       use_ocr: bool = True,
                       engine: Optional[OcrEngine] = None,
                       language: str = "swe",
                       ocr_workers: int = 2,
                       cancel_event: Optional[threading.Event] = None) -> List[SelectedFrame]:
    """Functional entry point around BestFrameSelector."""
    config = Config(
        window_seconds=window_seconds,
        min_score=min_score,
        candidates_per_window=candidates_per_window,
        use_ocr=use_ocr,
        ocr_workers=ocr_workers,
    )
    selector = BestFrameSelector(config, engine=engine, language=language)
    return selector.select(scores, cancel_event=cancel_event)


def copy_best_frames(selected: Sequence[SelectedFrame], output_dir: str) -> List[str]:
    """Copy selected frames to output_dir as best_0001.jpg, best_0002.jpg, ..."""
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    copied = []
    for i, frame in enumerate(selected, 1):
        target = out / f"best_{i:04d}{Path(frame.path).suffix}"
        shutil.copyfile(frame.path, target)
        copied.append(str(target))

    logger.info(f"Copied {len(copied)} best frames to {output_dir}")
    return copied
