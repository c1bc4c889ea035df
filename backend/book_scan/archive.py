"""
Zip archive ingestion for photographed book pages.
"""

import io
import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Set

from PIL import Image, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener

from .constants import ARCHIVE_CROP_RATIO
from .errors import EmptyInput
from .frames import natural_sort_key

logger = logging.getLogger(__name__)

# Phone archives are mostly HEIC; lets Image.open decode them
register_heif_opener()

IMAGE_EXTENSIONS = ('.png', '.jpg', '.jpeg')
HEIC_EXTENSIONS = ('.heic', '.heif')
HEIC_JPEG_QUALITY = 90


@dataclass
class ArchiveExtraction:
    image_paths: List[str]
    total_files: int
    converted_heic: int
    failed_files: int = 0


def _is_page_entry(info: zipfile.ZipInfo) -> bool:
    if info.is_dir():
        return False
    name = info.filename
    if name.startswith('__MACOSX') or Path(name).name.startswith('.'):
        return False
    return True


def _open_archive(zip_path: str) -> zipfile.ZipFile:
    if not Path(zip_path).exists():
        raise EmptyInput(f"Zip file not found: {zip_path}")
    try:
        return zipfile.ZipFile(zip_path)
    except zipfile.BadZipFile as e:
        raise EmptyInput(f"Not a zip archive: {zip_path}") from e


def _unique_name(name: str, used: Set[str]) -> str:
    """Flattened file name, suffixed when another folder already used it."""
    candidate = name
    stem, suffix = Path(name).stem, Path(name).suffix
    n = 2
    while candidate.lower() in used:
        candidate = f"{stem}_{n}{suffix}"
        n += 1
    used.add(candidate.lower())
    return candidate


def get_archive_info(zip_path: str) -> Dict[str, int]:
    """Count archive members without extracting."""
    with _open_archive(zip_path) as archive:
        infos = archive.infolist()
        pages = [i for i in infos if _is_page_entry(i)]
        suffixes = [Path(i.filename).suffix.lower() for i in pages]

    return {
        "total_files": len(infos),
        "image_files": sum(1 for s in suffixes if s in IMAGE_EXTENSIONS + HEIC_EXTENSIONS),
        "heic_files": sum(1 for s in suffixes if s in HEIC_EXTENSIONS),
    }


def convert_heic_to_jpeg(data: bytes, target: Path) -> bool:
    """
    Decode HEIC bytes and save them as JPEG at target.

    Returns:
        True if the JPEG was written
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            ImageOps.exif_transpose(img).convert('RGB').save(
                target, format='JPEG', quality=HEIC_JPEG_QUALITY
            )
    except (OSError, ValueError, UnidentifiedImageError) as e:
        logger.warning(f"Cannot convert HEIC to {target.name}: {e}")
        return False
    return True


def crop_to_main_page(image_path: str, keep_ratio: float = ARCHIVE_CROP_RATIO) -> bool:
    """
    Crop the right edge where the facing page bleeds into the photo.

    EXIF orientation is applied first so "right" is the right of the page
    as read.

    Returns:
        True if the image was rewritten
    """
    try:
        with Image.open(image_path) as img:
            img = ImageOps.exif_transpose(img)
            width, height = img.size
            cropped = img.crop((0, 0, int(width * keep_ratio), height))
            cropped.load()
    except (OSError, UnidentifiedImageError) as e:
        logger.warning(f"Cannot crop {image_path}: {e}")
        return False

    if Path(image_path).suffix.lower() in ('.jpg', '.jpeg'):
        cropped.convert('RGB').save(image_path, quality=95)
    else:
        cropped.save(image_path)
    return True


def _clear_stale_images(out: Path):
    for stale in out.iterdir():
        if stale.is_file() and stale.suffix.lower() in IMAGE_EXTENSIONS:
            stale.unlink()


def extract_and_prepare_images(zip_path: str, output_dir: str,
                               crop: bool = True) -> ArchiveExtraction:
    """
    Extract page photos from a zip archive and prepare them for scoring and OCR.

    Members are flattened into output_dir in natural file name order, which
    is assumed to be page order. HEIC photos are converted to JPEG. Images
    left in output_dir by an earlier run are removed first.
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    _clear_stale_images(out)

    logger.info(f"Extracting: {zip_path}")
    extracted = []
    converted_heic = 0
    failed = 0
    used_names: Set[str] = set()

    with _open_archive(zip_path) as archive:
        entries = [
            i for i in archive.infolist()
            if _is_page_entry(i)
            and Path(i.filename).suffix.lower() in IMAGE_EXTENSIONS + HEIC_EXTENSIONS
        ]
        entries.sort(key=lambda i: (natural_sort_key(Path(i.filename).name),
                                    natural_sort_key(i.filename)))

        for info in entries:
            name = Path(info.filename).name
            if Path(name).suffix.lower() in HEIC_EXTENSIONS:
                target = out / _unique_name(f"{Path(name).stem}.jpg", used_names)
                if not convert_heic_to_jpeg(archive.read(info), target):
                    failed += 1
                    continue
                converted_heic += 1
            else:
                target = out / _unique_name(name, used_names)
                with archive.open(info) as src, open(target, 'wb') as dst:
                    dst.write(src.read())
            extracted.append(str(target))

    if converted_heic:
        logger.info(f"Converted {converted_heic} HEIC files to JPEG")
    if failed:
        logger.warning(f"Skipped {failed} HEIC files that could not be decoded")
    logger.info(f"Found {len(extracted)} image files")

    if crop:
        for path in extracted:
            crop_to_main_page(path)

    return ArchiveExtraction(
        image_paths=extracted,
        total_files=len(entries),
        converted_heic=converted_heic,
        failed_files=failed,
    )
