"""
Configuration settings for ID Photo Studio
"""

import math
import os
from dataclasses import dataclass, replace
from typing import Optional, Tuple, Dict, List


# =============================================================================
# GENERAL CONFIG
# =============================================================================

OUTPUT_BASE = os.environ.get('IDPHOTO_OUTPUT_DIR', 'outputs/idphoto')
LOG_DIR = os.environ.get('IDPHOTO_LOG_DIR', 'logs')

DPI = 300
MM_PER_INCH = 25.4

JPEG_QUALITY = 95


# =============================================================================
# EDITOR / GEOMETRY CONFIG
# =============================================================================

# On-screen canvas the source is fitted into before user zoom
EDITOR_DISPLAY_DIM = 400.0
# Frame height the preview is composed at; pan offsets are in these units
REFERENCE_FRAME_HEIGHT = 200.0

MIN_ZOOM = 0.1
MAX_ZOOM = 3.0

CUSTOM_MIN_MM = 10.0
CUSTOM_MAX_MM = 100.0

# Allowed aspect drift before the output scaler switches to per-axis scaling
ASPECT_EPSILON = 0.01
# Largest aspect error a print size may carry against its millimetre size
ASPECT_TOLERANCE = 1e-3


# =============================================================================
# SEGMENTATION CONFIG
# =============================================================================

SEGMENTATION_TIMEOUT = float(os.environ.get('IDPHOTO_SEGMENTATION_TIMEOUT', '5.0'))
SEGMENTATION_QUALITY = os.environ.get('IDPHOTO_SEGMENTATION_QUALITY', 'accurate')

SEGMENTATION_MODELS = {
    'accurate': 'birefnet-portrait',
    'balanced': 'u2net_human_seg',
    'fast': 'u2netp',
}

# MediaPipe face detector settings
MIN_DETECTION_CONFIDENCE = 0.5
FACE_DETECTOR_MODEL = os.environ.get(
    'IDPHOTO_FACE_MODEL', 'models/blaze_face_short_range.tflite'
)
FACE_DETECTOR_URL = (
    "https://storage.googleapis.com/mediapipe-models/face_detector/"
    "blaze_face_short_range/float16/1/blaze_face_short_range.tflite"
)


# =============================================================================
# BACKGROUND COMPOSITING
# =============================================================================

def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, default))


@dataclass(frozen=True)
class CompositeSettings:
    """Tunables for mask refinement and color-similarity masking.

    Distances are Euclidean in normalized RGB, so the largest possible
    distance is sqrt(3).
    """
    # Segmentation mask refinement
    edge_blur_sigma: float = 0.8
    sharpen: bool = True
    sharpen_low: float = 0.2
    sharpen_high: float = 0.8
    choke_px: int = 1

    # Color-similarity fallback
    tolerance: float = 0.15
    light_tolerance: float = 0.25
    light_luma: float = 0.85
    ring_samples: int = 120
    ring_inset: int = 2
    cluster_distance: float = 0.08
    max_colors: int = 3
    min_cluster_share: float = 0.05
    min_cluster_sides: int = 2
    fallback_blur_sigma: float = 1.5
    min_background_share: float = 0.02
    max_background_share: float = 0.98

    @classmethod
    def from_env(cls) -> 'CompositeSettings':
        defaults = cls()
        return replace(
            defaults,
            tolerance=_env_float('IDPHOTO_COLOR_TOLERANCE', defaults.tolerance),
            light_tolerance=_env_float('IDPHOTO_LIGHT_TOLERANCE', defaults.light_tolerance),
            edge_blur_sigma=_env_float('IDPHOTO_EDGE_BLUR', defaults.edge_blur_sigma),
        )


# =============================================================================
# PHOTO FORMAT DATACLASS & REGISTRY
# =============================================================================

def mm_to_px(mm: float) -> int:
    """Convert a physical length to whole pixels at DPI."""
    return int(round(mm * DPI / MM_PER_INCH))


def print_size_px(width_mm: float, height_mm: float) -> Tuple[int, int]:
    """Pixel size at DPI for a physical size.

    Each axis is rounded to the nearest pixel. When that drifts more than
    ASPECT_TOLERANCE from width_mm / height_mm, the floor/ceil pair with the
    smallest aspect error is used instead (ties go to the pair closest to
    the exact size), so no axis moves by a whole pixel.
    """
    exact_w = width_mm * DPI / MM_PER_INCH
    exact_h = height_mm * DPI / MM_PER_INCH
    size = (mm_to_px(width_mm), mm_to_px(height_mm))
    if size[0] <= 0 or size[1] <= 0:
        return size

    target = width_mm / height_mm
    if abs(size[0] / size[1] - target) <= ASPECT_TOLERANCE:
        return size

    candidates = [
        (w, h)
        for w in {math.floor(exact_w), math.ceil(exact_w)}
        for h in {math.floor(exact_h), math.ceil(exact_h)}
        if w > 0 and h > 0
    ]
    return min(
        candidates,
        key=lambda c: (abs(c[0] / c[1] - target), abs(c[0] - exact_w) + abs(c[1] - exact_h)),
    )


@dataclass(frozen=True)
class PhotoFormat:
    """Immutable specification for a passport/ID photo format."""
    key: str
    name: str
    description: str
    size_mm: Tuple[float, float]
    bg_color: Tuple[int, int, int] = (255, 255, 255)
    file_prefix: str = 'photo'
    face_coverage: float = 0.50
    nose_position: float = 0.45
    mark_length: int = 25
    mark_offset: int = 8

    @property
    def aspect_ratio(self) -> float:
        return self.size_mm[0] / self.size_mm[1]

    @property
    def print_size(self) -> Tuple[int, int]:
        return print_size_px(*self.size_mm)


class PhotoFormatRegistry:
    """Registry of all available photo formats."""

    def __init__(self):
        self._formats: Dict[str, PhotoFormat] = {}

    def register(self, fmt: PhotoFormat) -> None:
        self._formats[fmt.key] = fmt

    def get(self, key: str) -> Optional[PhotoFormat]:
        return self._formats.get(key)

    def list_all(self) -> List[PhotoFormat]:
        return list(self._formats.values())

    def keys(self) -> List[str]:
        return list(self._formats.keys())

    def __contains__(self, key: str) -> bool:
        return key in self._formats

    def __iter__(self):
        return iter(self._formats.items())

    def __len__(self) -> int:
        return len(self._formats)


# =============================================================================
# GLOBAL REGISTRY
# =============================================================================

REGISTRY = PhotoFormatRegistry()

REGISTRY.register(PhotoFormat(
    key='one_inch', name='One Inch', description='25x35mm',
    size_mm=(25, 35), file_prefix='one_inch',
    face_coverage=0.55, nose_position=0.48,
    mark_length=15, mark_offset=5,
))

REGISTRY.register(PhotoFormat(
    key='large_one_inch', name='Large One Inch', description='33x48mm',
    size_mm=(33, 48), file_prefix='large_one_inch',
))

REGISTRY.register(PhotoFormat(
    key='two_inch', name='Two Inch', description='35x49mm',
    size_mm=(35, 49), file_prefix='two_inch',
))

REGISTRY.register(PhotoFormat(
    key='small_two_inch', name='Small Two Inch', description='35x45mm',
    size_mm=(35, 45), file_prefix='small_two_inch',
))

REGISTRY.register(PhotoFormat(
    key='large_two_inch', name='Large Two Inch', description='35x53mm',
    size_mm=(35, 53), file_prefix='large_two_inch',
))

REGISTRY.register(PhotoFormat(
    key='id_card', name='ID Card', description='26x32mm',
    size_mm=(26, 32), file_prefix='id_card',
    face_coverage=0.60, nose_position=0.50,
    mark_length=15, mark_offset=5,
))

REGISTRY.register(PhotoFormat(
    key='passport', name='Passport', description='35x45mm',
    size_mm=(35, 45), file_prefix='passport',
    face_coverage=0.70, nose_position=0.50,
))

REGISTRY.register(PhotoFormat(
    key='travel_permit', name='Travel Permit', description='33x48mm',
    size_mm=(33, 48), file_prefix='travel_permit',
))

REGISTRY.register(PhotoFormat(
    key='us_visa', name='US Visa', description='51x51mm (2x2 inch)',
    size_mm=(51, 51), file_prefix='us_visa',
    face_coverage=0.60, nose_position=0.50,
    mark_length=30, mark_offset=10,
))

REGISTRY.register(PhotoFormat(
    key='japan_visa', name='Japan Visa', description='45x45mm',
    size_mm=(45, 45), file_prefix='japan_visa',
    face_coverage=0.55, nose_position=0.50,
))

REGISTRY.register(PhotoFormat(
    key='schengen_visa', name='Schengen Visa', description='35x45mm',
    size_mm=(35, 45), file_prefix='schengen_visa',
    face_coverage=0.75, nose_position=0.50,
))

REGISTRY.register(PhotoFormat(
    key='china_visa', name='China Visa', description='33x48mm',
    size_mm=(33, 48), file_prefix='china_visa',
))

REGISTRY.register(PhotoFormat(
    key='malaysia', name='Malaysian Passport', description='35x50mm',
    size_mm=(35, 50), file_prefix='my_passport',
    face_coverage=0.55, nose_position=0.55,
))

REGISTRY.register(PhotoFormat(
    key='school', name='School ID Photo', description='40x50mm',
    size_mm=(40, 50), bg_color=(0, 127, 255), file_prefix='school_id',
    face_coverage=0.55, nose_position=0.45,
))

REGISTRY.register(PhotoFormat(
    key='custom', name='Custom', description='Custom size',
    size_mm=(35, 45), file_prefix='custom',
))


def clamp_custom_mm(value: float) -> float:
    return max(CUSTOM_MIN_MM, min(CUSTOM_MAX_MM, float(value)))


def custom_format(width_mm: float, height_mm: float) -> PhotoFormat:
    """Build the Custom format with user dimensions clamped to the allowed range."""
    width_mm = clamp_custom_mm(width_mm)
    height_mm = clamp_custom_mm(height_mm)
    return replace(
        REGISTRY.get('custom'),
        size_mm=(width_mm, height_mm),
        description=f'{width_mm:g}x{height_mm:g}mm',
    )


# =============================================================================
# PAPER SIZES
# =============================================================================

@dataclass(frozen=True)
class PaperSpec:
    """Photo paper canvas at DPI, landscape orientation."""
    key: str
    name: str
    width_px: int
    height_px: int

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width_px, self.height_px)


PAPERS: Dict[str, PaperSpec] = {
    '4x6': PaperSpec(key='4x6', name='6x4 inch', width_px=6 * DPI, height_px=4 * DPI),
    '5x7': PaperSpec(key='5x7', name='7x5 inch', width_px=7 * DPI, height_px=5 * DPI),
}

DEFAULT_PAPER = '4x6'
LAYOUT_SPACING = 4


# =============================================================================
# STANDARD BACKGROUND COLORS
# =============================================================================

@dataclass(frozen=True)
class BackgroundColor:
    key: str
    name: str
    rgb: Tuple[int, int, int]
    usage: str

    @property
    def hex(self) -> str:
        r, g, b = self.rgb
        return f'#{r:02x}{g:02x}{b:02x}'


# Keys take precedence over CSS color names of the same spelling
BACKGROUND_COLORS: Dict[str, BackgroundColor] = {
    'white': BackgroundColor(
        key='white', name='White', rgb=(255, 255, 255),
        usage="ID cards, passports, visas, driver's licenses",
    ),
    'blue': BackgroundColor(
        key='blue', name='Blue', rgb=(67, 142, 219),
        usage='Education certificates, employment records, resumes',
    ),
    'red': BackgroundColor(
        key='red', name='Red', rgb=(255, 0, 0),
        usage='Marriage certificates, membership IDs, title certificates',
    ),
}


# =============================================================================
# HELPERS (web.py / main.py listings)
# =============================================================================

def get_format(format_key: str) -> Optional[PhotoFormat]:
    return REGISTRY.get(format_key)


def get_paper(paper_key: str) -> Optional[PaperSpec]:
    return PAPERS.get(paper_key)


def get_format_list() -> List[dict]:
    return [
        {'key': fmt.key, 'name': fmt.name, 'description': fmt.description,
         'size_mm': list(fmt.size_mm), 'print_size': list(fmt.print_size)}
        for fmt in REGISTRY.list_all()
    ]


def get_color_list() -> List[dict]:
    return [
        {'key': c.key, 'name': c.name, 'rgb': list(c.rgb), 'hex': c.hex, 'usage': c.usage}
        for c in BACKGROUND_COLORS.values()
    ]
