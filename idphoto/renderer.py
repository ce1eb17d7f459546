"""
Frame rendering: composites a source image into a fixed-size frame.
"""

import logging
from typing import Optional, Tuple

from PIL import Image

from .config import PhotoFormat
from .geometry import EditState, FrameTransform, GeometryEngine
from .utils import Color, solid

logger = logging.getLogger(__name__)


class FrameRenderer:
    """Draws a source through a FrameTransform onto a background-filled frame.

    The same renderer serves the on-screen preview and the export; only the
    frame height differs, and the geometry engine scales the transform with it.
    """

    def __init__(self, engine: Optional[GeometryEngine] = None):
        self.engine = engine or GeometryEngine()

    def render(
        self,
        source: Image.Image,
        transform: FrameTransform,
        background_color: Color,
    ) -> Image.Image:
        """Render the frame.

        Args:
            source: RGBA (or RGB) source image. Not modified.
            transform: Placement computed by GeometryEngine for this source.
            background_color: Fill for every frame pixel the source does not cover.

        Returns:
            RGB image of exactly transform.frame.pixel_size.
        """
        size = transform.frame.pixel_size
        canvas = solid(size, background_color, mode='RGBA')

        src = source if source.mode == 'RGBA' else source.convert('RGBA')
        src, sx, sy = self._prereduce(src, transform)

        warped = src.transform(
            size,
            Image.Transform.AFFINE,
            transform.inverse_coefficients(sx, sy),
            resample=Image.BICUBIC,
            fillcolor=(0, 0, 0, 0),
        )
        canvas.alpha_composite(warped)
        return canvas.convert('RGB')

    @staticmethod
    def _prereduce(
        src: Image.Image, transform: FrameTransform
    ) -> Tuple[Image.Image, float, float]:
        """Lanczos-reduce the source near its rendered size so the bicubic warp
        never has to skip source pixels."""
        scale = transform.scale
        if scale >= 1.0:
            return src, scale, scale

        sw, sh = transform.source_size
        reduced_size = (max(1, int(round(sw * scale))), max(1, int(round(sh * scale))))
        reduced = src.resize(reduced_size, Image.LANCZOS)
        sx = scale * sw / reduced_size[0]
        sy = scale * sh / reduced_size[1]
        logger.debug(f"Pre-reduced source {src.size} -> {reduced_size}")
        return reduced, sx, sy

    def render_edit(
        self,
        source: Image.Image,
        fmt: PhotoFormat,
        edit: EditState,
        background_color: Color,
        height: Optional[float] = None,
    ) -> Image.Image:
        """Compute the transform for a format/edit pair and render it.

        height defaults to the engine's reference (preview) frame height.
        """
        frame = self.engine.frame_for(fmt, height)
        transform = self.engine.compute(source.size, frame, edit)
        return self.render(source, transform, background_color)
