"""
Output scaling to exact physical pixel dimensions.
"""

import logging
from typing import Tuple, Union

from PIL import Image

from .config import PhotoFormat, ASPECT_EPSILON, print_size_px
from .errors import ScalingDegenerateError

logger = logging.getLogger(__name__)


class OutputScaler:
    """Rescales a composite to the print size of a format at DPI.

    Aspect mismatches beyond epsilon are corrected with independent X/Y
    factors; the image is never letterboxed or cropped here.
    """

    def __init__(self, epsilon: float = ASPECT_EPSILON):
        self.epsilon = epsilon

    @staticmethod
    def target_size(target: Union[PhotoFormat, Tuple[float, float]]) -> Tuple[int, int]:
        """Pixel size for a format or a (width_mm, height_mm) pair.

        Raises:
            ScalingDegenerateError: a dimension is zero or negative.
        """
        width_mm, height_mm = target.size_mm if isinstance(target, PhotoFormat) else target
        if width_mm <= 0 or height_mm <= 0:
            raise ScalingDegenerateError(f"Invalid physical size {width_mm}x{height_mm}mm")

        width_px, height_px = print_size_px(width_mm, height_mm)
        if width_px <= 0 or height_px <= 0:
            raise ScalingDegenerateError(f"{width_mm}x{height_mm}mm rounds to {width_px}x{height_px}px")
        return width_px, height_px

    def scale(self, raster: Image.Image, width_px: int, height_px: int) -> Image.Image:
        """Return raster resized to exactly (width_px, height_px)."""
        if width_px <= 0 or height_px <= 0:
            raise ScalingDegenerateError(f"Invalid target size {width_px}x{height_px}px")
        if raster.width <= 0 or raster.height <= 0:
            raise ScalingDegenerateError(f"Cannot scale empty raster {raster.size}")

        current_ratio = raster.width / raster.height
        target_ratio = width_px / height_px

        if abs(current_ratio - target_ratio) > self.epsilon:
            logger.warning(
                f"Correcting aspect ratio from {current_ratio:.4f} to {target_ratio:.4f} "
                f"(x{width_px / raster.width:.4f}, y{height_px / raster.height:.4f})"
            )
        else:
            logger.debug(f"Uniform scale x{width_px / raster.width:.4f}")

        if raster.size == (width_px, height_px):
            return raster.copy()
        return raster.resize((width_px, height_px), Image.LANCZOS)

    def scale_to_format(self, raster: Image.Image, fmt: PhotoFormat) -> Image.Image:
        return self.scale(raster, *self.target_size(fmt))
