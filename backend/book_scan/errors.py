"""
Exceptions raised by the book scan pipeline.
"""


class BookScanError(Exception):
    """Base class for pipeline errors."""


class DecodeError(BookScanError):
    """An image could not be decoded into a grayscale raster."""

    def __init__(self, path: str, reason: str = "unreadable image"):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot decode {path}: {reason}")


class OcrFailure(BookScanError):
    """The OCR engine failed on one image."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        self.reason = reason
        super().__init__(f"OCR failed for {path}: {reason}" if reason else f"OCR failed for {path}")


class EmptyInput(BookScanError):
    """A required input is wholly empty or unreadable."""


class ExtractionError(BookScanError):
    """Frame extraction from a video failed."""
