"""
OCR engine adapters: Tesseract (local) and Google Cloud Vision.
"""

import base64
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from PIL import Image, UnidentifiedImageError

from .constants import PAGE_SEPARATOR
from .errors import OcrFailure
from .settings import Settings
from .types import OcrResult

logger = logging.getLogger(__name__)

# Tesseract traineddata codes -> BCP-47 hints for Vision
VISION_LANGUAGE_HINTS = {
    "swe": "sv",
    "eng": "en",
    "nor": "no",
    "dan": "da",
    "fin": "fi",
    "deu": "de",
}


class OcrEngine(ABC):
    """Recognizes text in a single image."""

    @abstractmethod
    def recognize(self, image_path: str, language_hint: str) -> OcrResult:
        """
        Perform OCR on an image.

        Returns:
            OcrResult with text and confidence in [0, 100]

        Raises:
            OcrFailure: if the engine cannot process the image
        """


class TesseractOcrEngine(OcrEngine):
    """
    OCR through the local tesseract binary.
    """

    def __init__(self, tesseract_cmd: Optional[str] = None):
        import pytesseract

        self._pytesseract = pytesseract
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def recognize(self, image_path: str, language_hint: str) -> OcrResult:
        pytesseract = self._pytesseract
        try:
            with Image.open(image_path) as img:
                img.load()
                image = img.convert("RGB")
        except (OSError, UnidentifiedImageError) as e:
            raise OcrFailure(image_path, str(e)) from e

        try:
            text = pytesseract.image_to_string(image, lang=language_hint)
            data = pytesseract.image_to_data(
                image, lang=language_hint, output_type=pytesseract.Output.DICT
            )
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, RuntimeError) as e:
            raise OcrFailure(image_path, str(e)) from e

        # Tesseract reports -1 for layout rows that carry no word
        confidences = [
            float(conf)
            for conf, word in zip(data.get("conf", []), data.get("text", []))
            if float(conf) >= 0 and str(word).strip()
        ]
        confidence = sum(confidences) / len(confidences) if confidences else 0.0

        return OcrResult(text=text.strip(), confidence=confidence, image_path=image_path)


class VisionOcrEngine(OcrEngine):
    """
    OCR with Google Cloud Vision document text detection.

    Credentials come from GOOGLE_APPLICATION_CREDENTIALS_JSON (base64 service
    account key) when set, otherwise from application default credentials.
    """

    def __init__(self, credentials_json: Optional[str] = None):
        self.client = None
        self._initialize_client(credentials_json)

    def _initialize_client(self, credentials_json: Optional[str]):
        from google.cloud import vision

        try:
            if credentials_json:
                from google.oauth2 import service_account

                credentials_data = json.loads(base64.b64decode(credentials_json))
                credentials = service_account.Credentials.from_service_account_info(
                    credentials_data,
                    scopes=['https://www.googleapis.com/auth/cloud-platform']
                )
                self.client = vision.ImageAnnotatorClient(credentials=credentials)
                logger.info("Vision API client initialized with service account credentials")
            else:
                self.client = vision.ImageAnnotatorClient()
                logger.info("Vision API client initialized with default credentials")
        except Exception as e:
            logger.error(f"Failed to initialize Vision API client: {e}")
            self.client = None

    def recognize(self, image_path: str, language_hint: str) -> OcrResult:
        from google.cloud import vision
        from google.api_core import exceptions
        from google.auth import exceptions as auth_exceptions

        if not self.client:
            raise OcrFailure(image_path, "Vision API client not initialized")

        try:
            with open(image_path, 'rb') as image_file:
                content = image_file.read()
        except OSError as e:
            raise OcrFailure(image_path, str(e)) from e

        hint = VISION_LANGUAGE_HINTS.get(language_hint, language_hint)
        try:
            response = self.client.document_text_detection(
                image=vision.Image(content=content),
                image_context={'language_hints': [hint]}
            )
        except (exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError) as e:
            raise OcrFailure(image_path, str(e)) from e

        if response.error.message:
            raise OcrFailure(image_path, response.error.message)

        annotation = response.full_text_annotation
        if not annotation or not annotation.text:
            return OcrResult(text="", confidence=0.0, image_path=image_path)

        confidences = []
        for page in annotation.pages:
            for block in page.blocks:
                if block.confidence:
                    confidences.append(block.confidence)
        avg_confidence = sum(confidences) / len(confidences) if confidences else 0.0

        return OcrResult(
            text=annotation.text.strip(),
            confidence=avg_confidence * 100,
            image_path=image_path,
        )


def create_engine(settings: Settings) -> OcrEngine:
    """Build the OCR engine named in settings."""
    name = settings.ocr_engine.lower()
    if name == "tesseract":
        return TesseractOcrEngine(settings.tesseract_cmd)
    if name == "vision":
        return VisionOcrEngine(settings.google_application_credentials_json)
    raise ValueError(f"Unknown OCR engine: {settings.ocr_engine}")


@dataclass
class PageBatch:
    """OCR results for a run of pages in reading order."""
    results: List[OcrResult]
    combined_text: str
    average_confidence: float


def recognize_pages(image_paths: Sequence[str], engine: OcrEngine,
                    language: str = "swe") -> PageBatch:
    """
    OCR pages in order and join them with page markers.

    A page that fails OCR contributes an empty result rather than aborting
    the batch.
    """
    results = []
    logger.info(f"Processing {len(image_paths)} images...")

    for i, image_path in enumerate(image_paths, 1):
        name = Path(image_path).name
        try:
            result = engine.recognize(image_path, language)
        except OcrFailure as e:
            logger.warning(f"[{i}/{len(image_paths)}] {name}: {e}")
            result = OcrResult(text="", confidence=0.0, image_path=image_path)
        else:
            if result.text:
                logger.info(f"[{i}/{len(image_paths)}] {name}: {len(result.text)} chars, "
                            f"confidence {result.confidence:.1f}%")
            else:
                logger.info(f"[{i}/{len(image_paths)}] {name}: no text detected")
        results.append(result)

    return combine_pages(results)


def combine_pages(results: Sequence[OcrResult]) -> PageBatch:
    """Join non-empty page texts with page markers and average their confidence."""
    with_content = [r for r in results if r.text]
    combined_text = PAGE_SEPARATOR.join(r.text for r in with_content)
    average_confidence = (
        sum(r.confidence for r in with_content) / len(with_content) if with_content else 0.0
    )
    return PageBatch(
        results=list(results),
        combined_text=combined_text,
        average_confidence=average_confidence,
    )
