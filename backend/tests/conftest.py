import threading

import cv2
import numpy as np
import pytest

from book_scan.ocr import OcrEngine
from book_scan.types import Frame, FrameScore, OcrResult


class FakeOcrEngine(OcrEngine):
    """OCR engine answering from a path -> OcrResult/exception table."""

    def __init__(self, responses=None, on_call=None):
        self.responses = responses or {}
        self.on_call = on_call
        self.calls = []
        self._lock = threading.Lock()

    def recognize(self, image_path, language_hint):
        with self._lock:
            self.calls.append((image_path, language_hint))
        if self.on_call:
            self.on_call(image_path)

        response = self.responses.get(image_path)
        if isinstance(response, Exception):
            raise response
        if response is None:
            return OcrResult(text="", confidence=0.0, image_path=image_path)
        return response


@pytest.fixture
def fake_engine():
    return FakeOcrEngine


@pytest.fixture
def make_score():
    def _make(ordinal, timestamp, visual_score, path=None):
        frame = Frame(path=path or f"frame_{ordinal:04d}.jpg", ordinal=ordinal, timestamp=timestamp)
        return FrameScore(
            frame=frame,
            sharpness=visual_score * 1000.0,
            brightness=128.0,
            contrast=0.0,
            visual_score=visual_score,
        )
    return _make


@pytest.fixture
def page_image(tmp_path):
    """Write a synthetic text page to tmp_path and return its path."""
    def _write(name="page.png", blur=0, lines=12, value=None, size=(400, 300)):
        height, width = size
        if value is not None:
            img = np.full((height, width), value, dtype=np.uint8)
        else:
            img = np.full((height, width), 235, dtype=np.uint8)
            for i in range(lines):
                y = 30 + i * 28
                cv2.putText(img, f"Robin gick {i} i skogen", (12, y),
                            cv2.FONT_HERSHEY_SIMPLEX, 0.6, 20, 1, cv2.LINE_AA)
            if blur:
                img = cv2.GaussianBlur(img, (blur, blur), 0)
        path = tmp_path / name
        cv2.imwrite(str(path), img)
        return str(path)
    return _write
