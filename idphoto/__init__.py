"""
ID Photo Studio - ID photo editor and print layout tool

Takes an arbitrary portrait, lets the user frame it (zoom, rotation, pan)
inside a fixed-aspect frame, replaces the background with a solid color and
produces a photo at the exact print size for the chosen format at 300 DPI.
Finished photos can be packed onto 4x6 or 5x7 inch photo paper.

Usage:
    from idphoto import PhotoProcessor, EditState, REGISTRY, load_image
    processor = PhotoProcessor()
    source = load_image("input/photo.jpg")
    result = processor.process(source, REGISTRY.get("passport"), EditState(zoom=1.2))
    result.photo.save("output/photo.png")
    processor.close()
"""

# Core classes
from .config import (
    PhotoFormat, PhotoFormatRegistry, REGISTRY, DPI, PaperSpec, PAPERS, CompositeSettings,
    custom_format, get_format, get_format_list, get_paper,
)
from .errors import (
    IDPhotoError, InvalidSourceError, SegmentationUnavailable, ScalingDegenerateError,
    PackingInfeasible, ExportIOError, ProcessingSuperseded, FaceDetectionError,
)
from .geometry import EditState, FrameSpec, FrameTransform, GeometryEngine
from .renderer import FrameRenderer
from .segmentation import SegmentationAdapter, RembgSegmenter, FixedMaskSegmenter, UnavailableSegmenter
from .compositor import BackgroundCompositor, CompositeResult
from .scaler import OutputScaler
from .face_detection import FaceBox, FaceDetector
from .processor import PhotoProcessor, ProcessingResult
from .session import EditSession, Debouncer
from .layout import SavedPhoto, PhotoCollection, LayoutPacker, ArrangeResult
from .export import save_photo, save_layout
from .utils import GPUInfo, load_image
