"""
End-to-end digitization: capture -> selected pages -> text -> chapters.
"""

import json
import logging
import threading
import time
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional

from .archive import extract_and_prepare_images
from .chapters import detect_chapters, format_chapter_summary
from .config import load_config
from .errors import EmptyInput, OcrFailure
from .frames import extract_frames_from_video, frames_from_paths
from .ocr import OcrEngine, combine_pages, create_engine
from .quality import score_frames
from .selector import BestFrameSelector, copy_best_frames
from .settings import Settings, get_settings
from .types import Config, DigitizationResult, OcrResult, SelectedFrame

logger = logging.getLogger(__name__)

# Each archive photo is its own one-second window
ARCHIVE_FPS = 1.0


def _page_results(selected: List[SelectedFrame], engine: OcrEngine,
                  language: str) -> List[OcrResult]:
    """OCR text for every selected frame, reusing text recognized during selection."""
    results = []
    for frame in selected:
        if frame.ocr is not None:
            results.append(OcrResult(
                text=frame.ocr.recognized_text,
                confidence=frame.ocr.ocr_confidence,
                image_path=frame.path,
            ))
            continue
        try:
            results.append(engine.recognize(frame.path, language))
        except OcrFailure as e:
            logger.warning(str(e))
            results.append(OcrResult(text="", confidence=0.0, image_path=frame.path))
    return results


def _finish(selected: List[SelectedFrame], engine: OcrEngine, language: str,
            metadata: Dict) -> DigitizationResult:
    batch = combine_pages(_page_results(selected, engine, language))
    logger.info(f"OCR complete: {len(batch.combined_text)} characters")
    logger.info(f"Average confidence: {batch.average_confidence:.1f}%")

    chapters = detect_chapters(batch.combined_text)
    logger.info(format_chapter_summary(chapters))

    return DigitizationResult(
        selected=selected,
        combined_text=batch.combined_text,
        average_confidence=batch.average_confidence,
        chapters=chapters,
        metadata=metadata,
    )


def _select(frame_paths: List[str], config: Config, engine: OcrEngine, language: str,
            sampling_fps: float, cancel_event: Optional[threading.Event],
            use_frame_numbers: bool = True) -> List[SelectedFrame]:
    frames = frames_from_paths(frame_paths, sampling_fps, use_frame_numbers=use_frame_numbers)
    scores = score_frames(frames, workers=config.score_workers)
    if not scores:
        raise EmptyInput("No decodable frames in capture")

    selector = BestFrameSelector(config, engine=engine, language=language)
    return selector.select(scores, cancel_event=cancel_event)


def digitize_video(video_path: str,
                   config: Optional[Config] = None,
                   settings: Optional[Settings] = None,
                   engine: Optional[OcrEngine] = None,
                   work_dir: Optional[str] = None,
                   cancel_event: Optional[threading.Event] = None) -> DigitizationResult:
    """
    Turn a video of someone paging through a book into chapters.

    Args:
        video_path: Path to input video file
        config: Pipeline configuration (default: load_config())
        settings: Engine settings (default: environment / .env)
        engine: OCR engine (default: built from settings)
        work_dir: Directory for extracted frames (default: settings.output_dir)
        cancel_event: Stops frame selection early when set

    Returns:
        DigitizationResult with selected frames, combined text and chapters
    """
    start_time = time.time()
    config = config or load_config()
    settings = settings or get_settings()
    engine = engine or create_engine(settings)
    work_dir = Path(work_dir or settings.output_dir)

    logger.info(f"Processing video: {video_path}")
    frame_paths = extract_frames_from_video(
        video_path,
        str(work_dir / "frames"),
        fps=config.sampling_fps,
        max_frames=config.max_frames,
        force_rotate=config.force_rotate,
    )
    if not frame_paths:
        raise EmptyInput(f"No frames extracted from {video_path}")

    selected = _select(frame_paths, config, engine, settings.ocr_language,
                       config.sampling_fps, cancel_event)
    result = _finish(selected, engine, settings.ocr_language, {
        "source": str(video_path),
        "extracted_frames": len(frame_paths),
    })

    logger.info(f"Processing complete in {time.time() - start_time:.1f}s")
    return result


def digitize_archive(zip_path: str,
                     config: Optional[Config] = None,
                     settings: Optional[Settings] = None,
                     engine: Optional[OcrEngine] = None,
                     work_dir: Optional[str] = None,
                     cancel_event: Optional[threading.Event] = None) -> DigitizationResult:
    """
    Turn a zip archive of page photos into chapters.

    Every readable photo is kept as its own window; photos of the same
    printed page collapse to the most legible one.
    """
    start_time = time.time()
    config = config or load_config()
    settings = settings or get_settings()
    engine = engine or create_engine(settings)
    work_dir = Path(work_dir or settings.output_dir)

    extraction = extract_and_prepare_images(zip_path, str(work_dir / "extracted"))
    if not extraction.image_paths:
        raise EmptyInput(f"No page images in {zip_path}")

    archive_config = replace(config, window_seconds=1.0 / ARCHIVE_FPS, min_score=0.0)
    selected = _select(extraction.image_paths, archive_config, engine, settings.ocr_language,
                       ARCHIVE_FPS, cancel_event, use_frame_numbers=False)
    result = _finish(selected, engine, settings.ocr_language, {
        "source": str(zip_path),
        "archive_images": len(extraction.image_paths),
        "converted_heic": extraction.converted_heic,
        "failed_files": extraction.failed_files,
    })

    logger.info(f"Processing complete in {time.time() - start_time:.1f}s")
    return result


def write_outputs(result: DigitizationResult, output_dir: str) -> Dict[str, str]:
    """
    Save a digitization result.

    Writes frames.json, ocr_output.txt, chapters.json, one chapter_NN.txt per
    chapter and copies the selected frames to best/.
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    written = {}

    frames_path = out / "frames.json"
    with open(frames_path, 'w', encoding='utf-8') as f:
        json.dump([frame.to_dict() for frame in result.selected], f, indent=2, ensure_ascii=False)
    written["frames"] = str(frames_path)

    text_path = out / "ocr_output.txt"
    text_path.write_text(result.combined_text, encoding='utf-8')
    written["text"] = str(text_path)

    chapters_path = out / "chapters.json"
    with open(chapters_path, 'w', encoding='utf-8') as f:
        json.dump(result.chapters.to_dict(), f, indent=2, ensure_ascii=False)
    written["chapters"] = str(chapters_path)

    for chapter in result.chapters.chapters:
        chapter_path = out / f"chapter_{chapter.number:02d}.txt"
        chapter_path.write_text(f"{chapter.title}\n\n{chapter.body_text}\n", encoding='utf-8')

    copy_best_frames(result.selected, str(out / "best"))
    written["best"] = str(out / "best")

    logger.info(f"Results saved to {output_dir}")
    return written
