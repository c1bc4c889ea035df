"""
Command-line interface.

Usage:
    book-scan video book.mp4 --out output/
    book-scan archive pages.zip --out output/
    book-scan chapters ocr_output.txt
    book-scan score frames/ --fps 0.5
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .chapters import detect_chapters, format_chapter_summary
from .config import load_config
from .errors import BookScanError
from .frames import frames_from_directory
from .pipeline import digitize_archive, digitize_video, write_outputs
from .quality import score_frames
from .settings import get_settings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="book-scan",
        description="Digitize a filmed or photographed book into chapter text"
    )
    parser.add_argument("--config", help="Path to configuration JSON file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    video = sub.add_parser("video", help="Process a video of a book")
    video.add_argument("path", help="Path to input video file")
    video.add_argument("--out", help="Output directory (default: settings.output_dir)")
    video.add_argument("--no-ocr", action="store_true",
                       help="Pick window winners by visual score only")
    video.add_argument("--fps", type=float, help="Frames extracted per second of video")
    video.add_argument("--window", type=float, help="Selection window in seconds")

    archive = sub.add_parser("archive", help="Process a zip archive of page photos")
    archive.add_argument("path", help="Path to zip archive")
    archive.add_argument("--out", help="Output directory (default: settings.output_dir)")
    archive.add_argument("--no-ocr", action="store_true",
                         help="Skip OCR-assisted ranking")

    chapters = sub.add_parser("chapters", help="Split a recognized text file into chapters")
    chapters.add_argument("path", help="Path to UTF-8 text file")
    chapters.add_argument("--out", help="Write chapters JSON here instead of stdout")

    score = sub.add_parser("score", help="Score the frames in a directory")
    score.add_argument("path", help="Directory of frame_NNNN images")
    score.add_argument("--fps", type=float, default=0.5, help="Sampling rate of the frames")

    return parser


def _run_capture(args, config) -> int:
    if getattr(args, "no_ocr", False):
        config.use_ocr = False
    if getattr(args, "fps", None):
        config.sampling_fps = args.fps
    if getattr(args, "window", None):
        config.window_seconds = args.window

    settings = get_settings()
    out = args.out or settings.output_dir

    digitize = digitize_video if args.command == "video" else digitize_archive
    result = digitize(args.path, config=config, settings=settings, work_dir=out)
    write_outputs(result, out)

    print(f"✓ Selected {len(result.selected)} frames")
    print(f"✓ Recognized {len(result.combined_text)} characters "
          f"(avg confidence {result.average_confidence:.1f}%)")
    print(format_chapter_summary(result.chapters))
    print(f"✓ Results saved to {out}")
    return 0


def _run_chapters(args) -> int:
    text = Path(args.path).read_text(encoding="utf-8")
    result = detect_chapters(text)

    if args.out:
        with open(args.out, "w", encoding="utf-8") as f:
            json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)
        print(format_chapter_summary(result))
    else:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return 0


def _run_score(args, config) -> int:
    frames = frames_from_directory(args.path, sampling_fps=args.fps)
    scores = score_frames(frames, workers=config.score_workers)
    for s in scores:
        print(f"{Path(s.path).name}\t{s.timestamp:7.1f}s\tscore={s.visual_score:.3f}\t"
              f"sharpness={s.sharpness:.1f}\tbrightness={s.brightness:.1f}\t"
              f"contrast={s.contrast:.1f}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line interface."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config = load_config(args.config)
        if args.debug:
            config.debug = True

        if args.command in ("video", "archive"):
            return _run_capture(args, config)
        if args.command == "chapters":
            return _run_chapters(args)
        return _run_score(args, config)
    except (BookScanError, OSError, ValueError) as e:
        logger.error(f"Processing failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
