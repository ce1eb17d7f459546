"""
Utility functions
"""

import io
import os
import logging
from typing import Dict, Tuple, Union

import numpy as np
from PIL import Image, ImageCms, ImageColor, ImageOps, UnidentifiedImageError
from PIL.ImageCms import createProfile, ImageCmsProfile

from .config import BACKGROUND_COLORS
from .errors import InvalidSourceError

logger = logging.getLogger(__name__)

# Build the sRGB ICC profile once (bytes), for embedding in saved images
_srgb_profile = ImageCmsProfile(createProfile('sRGB'))
SRGB_ICC_BYTES = _srgb_profile.tobytes()

Color = Tuple[int, int, int]
ImageSource = Union[str, bytes, Image.Image, io.IOBase]


class GPUInfo:
    """GPU information and diagnostics."""

    @staticmethod
    def is_available() -> bool:
        try:
            import torch
        except ImportError:
            return False
        return torch.cuda.is_available()

    @staticmethod
    def get_info() -> Dict:
        """Return GPU info as a dict."""
        if not GPUInfo.is_available():
            return {'available': False, 'device': 'CPU'}

        import torch
        props = torch.cuda.get_device_properties(0)
        info = {
            'available': True,
            'device': 'CUDA',
            'name': torch.cuda.get_device_name(0),
            'vram_total_gb': round(props.total_memory / 1024**3, 1),
            'vram_allocated_gb': round(torch.cuda.memory_allocated(0) / 1024**3, 2),
            'vram_cached_gb': round(torch.cuda.memory_reserved(0) / 1024**3, 2),
        }
        try:
            free_mem = torch.cuda.mem_get_info()[0]
            info['vram_free_gb'] = round(free_mem / 1024**3, 1)
        except RuntimeError as e:
            logger.debug(f"mem_get_info unavailable: {e}")
        return info

    @staticmethod
    def clear_memory() -> None:
        """Release cached CUDA memory, if torch and a GPU are present."""
        if not GPUInfo.is_available():
            return
        import torch
        try:
            torch.cuda.empty_cache()
            torch.cuda.synchronize()
            logger.info("GPU memory cleared")
        except RuntimeError as e:
            logger.warning(f"Failed to clear GPU memory: {e}")

    @staticmethod
    def print_info() -> None:
        """Print GPU information to stdout."""
        info = GPUInfo.get_info()
        if info['available']:
            print(f"GPU: {info['name']} ({info['vram_total_gb']} GB VRAM)")
        else:
            print("No CUDA GPU detected, segmentation runs on CPU")


def print_summary(outputs: Dict[str, str]) -> None:
    """Print the files written by a CLI run."""
    print("\n" + "=" * 70)
    print(f"DONE: {len(outputs)} file(s) written")
    print("=" * 70)
    for label, path in outputs.items():
        print(f"  {label:<12} {path}")
    print("=" * 70)


# =============================================================================
# RASTER I/O
# =============================================================================

HIGH_BIT_DEPTH_MODES = ('I', 'I;16', 'I;16B', 'I;16L')


def _expand_mode(img: Image.Image) -> Image.Image:
    """Bring palette, tRNS transparency and 16-bit grayscale into 8-bit modes
    without dropping alpha."""
    if img.mode in HIGH_BIT_DEPTH_MODES:
        values = np.asarray(img).astype(np.int64)
        gray = Image.fromarray(np.clip(values >> 8, 0, 255).astype(np.uint8), 'L')
        transparency = img.info.get('transparency')
        if isinstance(transparency, int):
            out = gray.convert('RGBA')
            out.putalpha(Image.fromarray(np.where(values == transparency, 0, 255).astype(np.uint8), 'L'))
            return out
        return gray
    if img.mode == 'P' or 'transparency' in img.info:
        return img.convert('RGBA')
    return img


def _to_srgb(img: Image.Image) -> Image.Image:
    """Convert an image carrying an embedded ICC profile to sRGB, keeping alpha."""
    src_profile = img.info.get('icc_profile')
    img = _expand_mode(img)
    alpha = img.getchannel('A') if 'A' in img.getbands() else None
    rgb = img.convert('RGB')
    if src_profile:
        try:
            rgb = ImageCms.profileToProfile(
                rgb, ImageCmsProfile(io.BytesIO(src_profile)), _srgb_profile, outputMode='RGB'
            )
        except (ImageCms.PyCMSError, OSError) as e:
            logger.warning(f"ICC conversion failed, using raw RGB: {e}")
    out = rgb.convert('RGBA')
    if alpha is not None:
        out.putalpha(alpha)
    return out


def load_image(source: ImageSource) -> Image.Image:
    """Decode any supported input into an RGBA sRGB image with EXIF orientation applied.

    Raises:
        InvalidSourceError: undecodable data or a zero-area image.
    """
    if isinstance(source, Image.Image):
        img = source
    else:
        if isinstance(source, (bytes, bytearray)):
            source = io.BytesIO(source)
        try:
            img = Image.open(source)
            img.load()
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise InvalidSourceError(f"Cannot decode source image: {e}") from e

    if img.width <= 0 or img.height <= 0:
        raise InvalidSourceError(f"Source image has zero area: {img.size}")

    img = ImageOps.exif_transpose(img)
    return _to_srgb(img)


def parse_color(value: Union[str, Color, None], default: Color = (255, 255, 255)) -> Color:
    """Accept a standard background key, '#RRGGBB', CSS names or an RGB tuple.

    Raises:
        ValueError: unrecognized color string.
    """
    if value is None or value == '':
        return default
    if isinstance(value, str):
        preset = BACKGROUND_COLORS.get(value.strip().lower())
        if preset is not None:
            return preset.rgb
        return ImageColor.getrgb(value)[:3]
    return tuple(int(c) for c in value[:3])


def to_float_rgb(img: Image.Image) -> np.ndarray:
    """PIL image -> float32 (H, W, 3) array in [0, 1]."""
    return np.asarray(img.convert('RGB'), dtype=np.float32) / 255.0


def from_float_rgb(arr: np.ndarray) -> Image.Image:
    """float (H, W, 3) array in [0, 1] -> PIL RGB image."""
    out = np.clip(arr * 255.0 + 0.5, 0, 255).astype(np.uint8)
    return Image.fromarray(np.ascontiguousarray(out), 'RGB')


def solid(size: Tuple[int, int], color: Color, mode: str = 'RGB') -> Image.Image:
    if mode == 'RGBA':
        return Image.new('RGBA', size, tuple(color) + (255,))
    return Image.new(mode, size, tuple(color))


# =============================================================================
# LOGGING
# =============================================================================

def configure_logging(log_dir: str, filename: str = 'idphoto.log', level: int = logging.INFO) -> str:
    """Log to a file under log_dir and to the console. Entry points only."""
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, filename)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_path),
            logging.StreamHandler(),
        ],
    )
    return log_path
