"""
Saving finished photos and layout sheets to disk.
"""

import io
import logging
import os
from datetime import datetime
from typing import Optional

from PIL import Image

from .config import DPI, JPEG_QUALITY, OUTPUT_BASE, PaperSpec, PhotoFormat
from .errors import ExportIOError
from .utils import SRGB_ICC_BYTES

logger = logging.getLogger(__name__)

FILE_FORMATS = {
    'png': ('PNG', 'png'),
    'jpeg': ('JPEG', 'jpg'),
    'jpg': ('JPEG', 'jpg'),
}

TIMESTAMP_FORMAT = '%Y-%m-%d-%H%M%S'


def _resolve_format(file_format: str):
    try:
        return FILE_FORMATS[file_format.lower()]
    except KeyError:
        raise ValueError(f"Unsupported file format: {file_format} (use png or jpeg)") from None


def output_filename(prefix: str, file_format: str = 'png', timestamp: Optional[datetime] = None) -> str:
    """`<prefix>_<YYYY-MM-DD-HHMMSS>.<ext>`"""
    _, ext = _resolve_format(file_format)
    stamp = (timestamp or datetime.now()).strftime(TIMESTAMP_FORMAT)
    return f"{prefix}_{stamp}.{ext}"


def encode_image(image: Image.Image, file_format: str = 'png', quality: int = JPEG_QUALITY) -> bytes:
    """Encode to PNG/JPEG bytes with 300 DPI metadata and the sRGB profile."""
    pil_format, _ = _resolve_format(file_format)
    buf = io.BytesIO()
    _write(image, buf, pil_format, quality)
    return buf.getvalue()


def _write(image: Image.Image, target, pil_format: str, quality: int) -> None:
    params = {'dpi': (DPI, DPI), 'icc_profile': SRGB_ICC_BYTES}
    if pil_format == 'JPEG':
        image = image.convert('RGB')
        params.update(quality=quality, subsampling=0)
    else:
        params['optimize'] = True
    image.save(target, pil_format, **params)


def _save(image: Image.Image, directory: str, filename: str, pil_format: str, quality: int) -> str:
    path = os.path.join(directory, filename)
    try:
        os.makedirs(directory, exist_ok=True)
        _write(image, path, pil_format, quality)
    except OSError as e:
        logger.error(f"Failed to write {path}: {e}")
        raise ExportIOError(f"Cannot write {path}: {e}") from e

    size_kb = os.path.getsize(path) / 1024
    logger.info(f"Saved {path} ({image.width}x{image.height}px, {size_kb:.0f}KB)")
    return path


def save_photo(
    image: Image.Image,
    fmt: PhotoFormat,
    directory: str = OUTPUT_BASE,
    file_format: str = 'png',
    quality: int = JPEG_QUALITY,
    timestamp: Optional[datetime] = None,
) -> str:
    """Write a finished photo named after its format's file prefix.

    Returns:
        Path of the written file.

    Raises:
        ExportIOError: the file could not be written. Not retried.
    """
    pil_format, _ = _resolve_format(file_format)
    filename = output_filename(fmt.file_prefix, file_format, timestamp)
    return _save(image, directory, filename, pil_format, quality)


def save_layout(
    image: Image.Image,
    paper: PaperSpec,
    directory: str = OUTPUT_BASE,
    file_format: str = 'png',
    quality: int = JPEG_QUALITY,
    timestamp: Optional[datetime] = None,
) -> str:
    """Write a rendered layout sheet, named `layout_<paper>_<timestamp>`."""
    pil_format, _ = _resolve_format(file_format)
    filename = output_filename(f"layout_{paper.key}", file_format, timestamp)
    return _save(image, directory, filename, pil_format, quality)
