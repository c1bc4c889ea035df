"""
Frame extraction from book-reading videos.

Decoding is delegated to ffmpeg; this module only decides the sampling rate,
rotation and file naming, and turns the extracted files into Frames.
"""

import logging
import re
from pathlib import Path
from typing import List, Optional, Sequence

import ffmpeg

from .errors import EmptyInput, ExtractionError
from .types import Frame

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = ('.jpg', '.jpeg', '.png')
FRAME_NUMBER = re.compile(r'frame_(\d+)')

# transpose filter chains per clockwise rotation
TRANSPOSE_FILTERS = {
    90: [1],
    180: [1, 1],
    270: [2],
}


def natural_sort_key(name: str):
    """Sort key that orders "page2" before "page10"."""
    return [int(part) if part.isdigit() else part for part in re.split(r'(\d+)', name.lower())]


def get_video_duration(video_path: str) -> float:
    """Video duration in seconds."""
    try:
        probe = ffmpeg.probe(video_path)
    except ffmpeg.Error as e:
        raise ExtractionError(f"ffprobe failed for {video_path}: {_stderr(e)}") from e
    return float(probe.get('format', {}).get('duration') or 0.0)


def get_video_rotation(video_path: str) -> int:
    """
    Rotation recorded in the video metadata, in degrees.

    Phones store it either as a "rotate" tag or as a display matrix in the
    stream side data.
    """
    try:
        probe = ffmpeg.probe(video_path)
    except ffmpeg.Error as e:
        raise ExtractionError(f"ffprobe failed for {video_path}: {_stderr(e)}") from e

    stream = next((s for s in probe.get('streams', []) if s.get('codec_type') == 'video'), None)
    if stream is None:
        return 0

    for side_data in stream.get('side_data_list', []) or []:
        if side_data.get('rotation') is not None:
            return int(float(side_data['rotation']))

    rotate = stream.get('tags', {}).get('rotate')
    try:
        return int(rotate) if rotate is not None else 0
    except ValueError:
        return 0


def _stderr(error: ffmpeg.Error) -> str:
    if error.stderr:
        return error.stderr.decode('utf-8', errors='replace').strip()
    return str(error)


def extract_frames_from_video(video_path: str, output_dir: str, fps: float = 0.5,
                              max_frames: int = 100, output_format: str = 'jpg',
                              force_rotate: Optional[int] = None) -> List[str]:
    """
    Extract still frames from a video at a fixed sampling rate.

    Args:
        video_path: Path to input video file
        output_dir: Directory for frame_0001.jpg, frame_0002.jpg, ...
        fps: Frames extracted per second of video
        max_frames: Upper bound on extracted frames
        output_format: 'jpg' or 'png'
        force_rotate: 90, 180 or 270 to rotate clockwise; ffmpeg already
            applies rotation metadata on its own

    Returns:
        Sorted list of extracted frame paths
    """
    if not Path(video_path).exists():
        raise EmptyInput(f"Video file not found: {video_path}")
    if force_rotate is not None and force_rotate not in TRANSPOSE_FILTERS:
        raise ValueError(f"force_rotate must be one of {sorted(TRANSPOSE_FILTERS)}")

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    stale = list(out.glob(f"frame_*.{output_format}"))
    for path in stale:
        path.unlink()
    if stale:
        logger.info(f"Removed {len(stale)} frames left from an earlier run")

    duration = get_video_duration(video_path)
    logger.info(f"Video duration: {duration:.2f}s")
    if force_rotate is None:
        rotation = get_video_rotation(video_path)
        if rotation:
            logger.info(f"Detected rotation: {rotation} degrees (auto-corrected by ffmpeg)")
    else:
        logger.info(f"Forcing rotation: {force_rotate} degrees")

    expected = min(int(duration * fps + 0.999), max_frames)
    logger.info(f"Expected frames: ~{expected} (at {fps} fps)")

    stream = ffmpeg.input(video_path)
    stream = ffmpeg.filter(stream, 'fps', fps=fps)
    for direction in TRANSPOSE_FILTERS.get(force_rotate, []):
        stream = ffmpeg.filter(stream, 'transpose', direction)

    pattern = str(out / f"frame_%04d.{output_format}")
    stream = ffmpeg.output(stream, pattern, vframes=max_frames, **{'q:v': 2})
    try:
        ffmpeg.run(stream, overwrite_output=True, quiet=True)
    except ffmpeg.Error as e:
        raise ExtractionError(f"ffmpeg failed for {video_path}: {_stderr(e)}") from e

    frames = sorted(str(p) for p in out.glob(f"frame_*.{output_format}"))[:max_frames]
    logger.info(f"Extracted {len(frames)} frames to {output_dir}")
    return frames


def frames_from_paths(paths: Sequence[str], sampling_fps: float,
                      use_frame_numbers: bool = True) -> List[Frame]:
    """
    Build Frames from ordered image paths.

    Ordinals come from "frame_NNNN" in the file names when every file has
    one and use_frame_numbers is set; otherwise the 1-based position is used.
    """
    if sampling_fps <= 0:
        raise ValueError(f"sampling_fps must be positive, got {sampling_fps}")

    matches = [FRAME_NUMBER.search(Path(p).name) for p in paths]
    if use_frame_numbers and paths and all(matches):
        ordinals = [int(m.group(1)) for m in matches]
    else:
        ordinals = list(range(1, len(paths) + 1))

    pairs = sorted(zip(ordinals, paths))
    for (prev, _), (cur, path) in zip(pairs, pairs[1:]):
        if cur <= prev:
            raise ValueError(f"Duplicate frame ordinal {cur}: {path}")

    return [Frame(path=str(path), ordinal=ordinal, timestamp=ordinal / sampling_fps)
            for ordinal, path in pairs]


def frames_from_directory(frame_dir: str, sampling_fps: float = 0.5) -> List[Frame]:
    """Frames for every image in a directory, in natural file name order."""
    directory = Path(frame_dir)
    if not directory.is_dir():
        raise EmptyInput(f"Directory not found: {frame_dir}")

    paths = sorted(
        (str(p) for p in directory.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES),
        key=lambda p: natural_sort_key(Path(p).name),
    )
    return frames_from_paths(paths, sampling_fps)
