"""
PhotoProcessor: facade that orchestrates the full ID photo pipeline.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from PIL import Image

from .config import PhotoFormat, CompositeSettings
from .compositor import BackgroundCompositor
from .errors import InvalidSourceError, ProcessingSuperseded
from .face_detection import FaceDetector
from .geometry import EditState, FrameTransform, GeometryEngine
from .renderer import FrameRenderer
from .scaler import OutputScaler
from .segmentation import RembgSegmenter, SegmentationAdapter
from .utils import Color, SRGB_ICC_BYTES

logger = logging.getLogger(__name__)

CancelCheck = Callable[[], bool]


@dataclass
class ProcessingResult:
    """Result of a full photo processing pipeline run."""
    photo: Image.Image
    frame: Image.Image
    mask_method: str
    format_info: PhotoFormat
    edit: EditState
    transform: FrameTransform


class PhotoProcessor:
    """High-level facade for the ID photo pipeline.

    Usage:
        processor = PhotoProcessor()
        source = load_image("input/photo.jpg")
        result = processor.process(source, REGISTRY.get("passport"), EditState(zoom=1.2))
        result.photo.save("output/photo.png")
        processor.close()
    """

    def __init__(
        self,
        segmenter: Optional[SegmentationAdapter] = None,
        settings: Optional[CompositeSettings] = None,
        engine: Optional[GeometryEngine] = None,
    ):
        logger.info("Initializing PhotoProcessor...")
        self.engine = engine or GeometryEngine()
        self.renderer = FrameRenderer(self.engine)
        self.segmenter = segmenter if segmenter is not None else RembgSegmenter()
        self.compositor = BackgroundCompositor(settings or CompositeSettings.from_env())
        self.scaler = OutputScaler()
        logger.info("PhotoProcessor ready")

    @staticmethod
    def _check_source(source: Image.Image) -> None:
        if source is None or source.width <= 0 or source.height <= 0:
            raise InvalidSourceError(f"Source image has zero area: {getattr(source, 'size', None)}")

    @staticmethod
    def _checkpoint(cancel_check: Optional[CancelCheck], stage: str) -> None:
        if cancel_check is not None and cancel_check():
            logger.info(f"Request superseded before {stage}")
            raise ProcessingSuperseded(f"Superseded before {stage}")

    def render_preview(
        self,
        source: Image.Image,
        fmt: PhotoFormat,
        edit: EditState,
        background_color: Optional[Color] = None,
    ) -> Image.Image:
        """Render the on-screen preview frame (reference height) for an edit state."""
        self._check_source(source)
        color = background_color or fmt.bg_color
        return self.renderer.render_edit(source, fmt, edit, color)

    def process(
        self,
        source: Image.Image,
        fmt: PhotoFormat,
        edit: EditState,
        background_color: Optional[Color] = None,
        cancel_check: Optional[CancelCheck] = None,
    ) -> ProcessingResult:
        """Run the full pipeline: frame -> segment -> composite -> scale.

        Args:
            source: Decoded source image (see utils.load_image).
            fmt: Target PhotoFormat.
            edit: Zoom/rotation/pan, identical to the preview's.
            background_color: Replacement color, defaults to the format's.
            cancel_check: Returns True once this request is stale.

        Returns:
            ProcessingResult with the final photo at fmt.print_size.

        Raises:
            InvalidSourceError: zero-area source.
            ScalingDegenerateError: non-positive format dimensions.
            ProcessingSuperseded: cancel_check reported a newer request.
        """
        self._check_source(source)
        color = background_color or fmt.bg_color
        width_px, height_px = self.scaler.target_size(fmt)

        logger.info(
            f"Processing: format={fmt.key} {fmt.size_mm[0]}x{fmt.size_mm[1]}mm, "
            f"source={source.size}, zoom={edit.zoom:.2f}, rotation={edit.rotation:.1f}, pan={edit.pan}"
        )

        # 1. Render the frame directly at export resolution
        frame_spec = self.engine.frame_for(fmt, height=height_px)
        transform = self.engine.compute(source.size, frame_spec, edit)
        frame = self.renderer.render(source, transform, color)
        logger.info(f"  Frame rendered: {frame.width}x{frame.height}px")
        self._checkpoint(cancel_check, 'segmentation')

        # 2. Segment and replace the background
        composite = self.compositor.replace_background(frame, self.segmenter, color)
        logger.info(f"  Background replaced using {composite.method}")
        self._checkpoint(cancel_check, 'scaling')

        # 3. Exact physical size
        photo = self.scaler.scale(composite.image, width_px, height_px)
        photo.info['icc_profile'] = SRGB_ICC_BYTES
        logger.info(f"  Final photo: {photo.width}x{photo.height}px")

        return ProcessingResult(
            photo=photo,
            frame=frame,
            mask_method=composite.method,
            format_info=fmt,
            edit=edit,
            transform=transform,
        )

    def auto_frame(
        self,
        source: Image.Image,
        fmt: PhotoFormat,
        detector: Optional[FaceDetector] = None,
    ) -> EditState:
        """Edit state centering the most prominent face; identity if none is found."""
        self._check_source(source)
        detector = detector or FaceDetector()
        face = detector.detect(source)
        if face is None:
            logger.info("No face found, keeping identity framing")
            return EditState()
        return self.engine.fit_to_face(source.size, face.rect, fmt)

    def close(self) -> None:
        """Release all resources."""
        self.segmenter.close()
        logger.info("PhotoProcessor closed")
