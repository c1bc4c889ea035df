"""
Frame quality assessment for book page captures.
"""

import cv2
import numpy as np
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Sequence

from .constants import (
    SHARPNESS_NORMALIZER,
    SHARPNESS_CAP,
    MID_GRAY,
    BRIGHTNESS_PENALTY_WEIGHT,
    CONTRAST_BONUS_WEIGHT,
)
from .errors import DecodeError
from .types import Frame, FrameScore, GrayscaleBuffer

logger = logging.getLogger(__name__)


def to_grayscale_buffer(image_path: str) -> GrayscaleBuffer:
    """
    Decode an image file into an 8-bit luma buffer.

    Raises:
        DecodeError: if the file is missing or cannot be decoded
    """
    gray = cv2.imread(image_path, cv2.IMREAD_GRAYSCALE)
    if gray is None or gray.size == 0:
        raise DecodeError(image_path)
    height, width = gray.shape[:2]
    return GrayscaleBuffer(width=width, height=height, pixels=gray)


def laplacian_variance(gray: np.ndarray) -> float:
    """
    Variance of the 4-neighbour Laplacian over interior pixels.

    The 1-pixel border is excluded, so images narrower or shorter than
    3 pixels have no interior and score 0.
    """
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return 0.0
    g = gray.astype(np.float64)
    lap = (
        4.0 * g[1:-1, 1:-1]
        - g[1:-1, :-2]
        - g[1:-1, 2:]
        - g[:-2, 1:-1]
        - g[2:, 1:-1]
    )
    return float(lap.var())


def composite_score(sharpness: float, brightness: float, contrast: float) -> float:
    """Combine the raw metrics into a single visual score."""
    normalized_sharpness = min(sharpness / SHARPNESS_NORMALIZER, SHARPNESS_CAP)
    brightness_penalty = abs(brightness - MID_GRAY) / MID_GRAY
    contrast_bonus = contrast / MID_GRAY
    return (
        normalized_sharpness
        * (1 - brightness_penalty * BRIGHTNESS_PENALTY_WEIGHT)
        * (1 + contrast_bonus * CONTRAST_BONUS_WEIGHT)
    )


def score_buffer(frame: Frame, buffer: GrayscaleBuffer) -> FrameScore:
    """Score an already decoded frame."""
    pixels = buffer.pixels.astype(np.float64)
    sharpness = laplacian_variance(buffer.pixels)
    brightness = float(pixels.mean())
    contrast = float(pixels.std())

    return FrameScore(
        frame=frame,
        sharpness=sharpness,
        brightness=brightness,
        contrast=contrast,
        visual_score=composite_score(sharpness, brightness, contrast),
    )


def score_frame(frame: Frame) -> FrameScore:
    """
    Calculate sharpness, brightness, contrast and visual score for a frame.

    Args:
        frame: Frame whose image file will be decoded

    Returns:
        FrameScore for the frame

    Raises:
        DecodeError: if the image cannot be decoded
    """
    return score_buffer(frame, to_grayscale_buffer(frame.path))


def _score_or_none(frame: Frame):
    try:
        return score_frame(frame)
    except DecodeError as e:
        logger.warning(f"Dropping frame {frame.ordinal}: {e}")
        return None


def score_frames(frames: Sequence[Frame], workers: int = 1) -> List[FrameScore]:
    """
    Score a sequence of frames, dropping those that cannot be decoded.

    Scoring is pure, so frames may be scored in parallel. Output keeps
    input order.
    """
    logger.info(f"Scoring {len(frames)} frames for quality...")

    if workers > 1 and len(frames) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(_score_or_none, frames))
    else:
        results = [_score_or_none(frame) for frame in frames]

    scores = [s for s in results if s is not None]

    for s in scores:
        logger.debug(
            f"Frame {s.frame.ordinal} at {s.timestamp:.1f}s: score={s.visual_score:.2f}, "
            f"sharpness={s.sharpness:.1f}, brightness={s.brightness:.1f}, contrast={s.contrast:.1f}"
        )

    dropped = len(frames) - len(scores)
    if dropped:
        logger.warning(f"{dropped} of {len(frames)} frames could not be decoded")

    return scores
