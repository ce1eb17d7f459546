"""
Background replacement: segmentation mask -> color-similarity mask -> flat fill.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import cv2
import numpy as np
from PIL import Image

from .config import CompositeSettings
from .errors import SegmentationUnavailable
from .segmentation import SegmentationAdapter
from .utils import Color, from_float_rgb, solid, to_float_rgb

logger = logging.getLogger(__name__)

METHOD_SEGMENTATION = 'segmentation'
METHOD_COLOR = 'color_similarity'
METHOD_FLAT = 'flat'

WHITE = np.array([1.0, 1.0, 1.0], dtype=np.float32)
LUMA = np.array([0.2126, 0.7152, 0.0722], dtype=np.float32)


@dataclass
class CompositeResult:
    """Composited frame plus the mask strategy that produced it."""
    image: Image.Image
    method: str
    mask: Optional[np.ndarray] = None


class BackgroundCompositor:
    """Replaces background pixels with a solid color.

    Mask sources are tried in a fixed order: segmentation, color similarity,
    then a plain alpha-over. composite() never raises for a valid raster.
    """

    def __init__(self, settings: Optional[CompositeSettings] = None):
        self.settings = settings or CompositeSettings()

    def replace_background(
        self,
        raster: Image.Image,
        segmenter: Optional[SegmentationAdapter],
        color: Color,
    ) -> CompositeResult:
        mask = None
        if segmenter is not None:
            try:
                mask = segmenter.segment(raster)
            except SegmentationUnavailable as e:
                logger.info(f"Segmentation unavailable, using color similarity: {e}")
        return self.composite(raster, mask, color)

    def composite(
        self,
        raster: Image.Image,
        mask: Optional[np.ndarray],
        color: Color,
    ) -> CompositeResult:
        base = self.flat_over(raster, color)

        if mask is not None and mask.shape != (base.height, base.width):
            logger.warning(f"Mask shape {mask.shape} does not match raster {base.size}, ignoring it")
            mask = None

        if mask is not None:
            refined = self.refine_mask(mask)
            return CompositeResult(self._blend(base, refined, color), METHOD_SEGMENTATION, refined)

        fallback = self.color_similarity_mask(base)
        if fallback is not None:
            return CompositeResult(self._blend(base, fallback, color), METHOD_COLOR, fallback)

        logger.info("No usable mask, returning flat composite")
        return CompositeResult(base, METHOD_FLAT)

    # -------------------------------------------------------------------------
    # Segmentation mask refinement
    # -------------------------------------------------------------------------

    def refine_mask(self, mask: np.ndarray) -> np.ndarray:
        """Soften the edge, optionally re-sharpen it, then choke it to remove halo."""
        s = self.settings
        m = np.clip(mask.astype(np.float32), 0.0, 1.0)

        if s.edge_blur_sigma > 0:
            m = cv2.GaussianBlur(m, (0, 0), sigmaX=s.edge_blur_sigma)

        if s.sharpen and s.sharpen_high > s.sharpen_low:
            m = np.clip((m - s.sharpen_low) / (s.sharpen_high - s.sharpen_low), 0.0, 1.0)

        if s.choke_px > 0:
            size = 2 * s.choke_px + 1
            m = cv2.erode(m, np.ones((size, size), np.uint8))

        return m.astype(np.float32)

    # -------------------------------------------------------------------------
    # Color-similarity fallback
    # -------------------------------------------------------------------------

    def sample_ring(self, arr: np.ndarray) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """Colors sampled along a ring just inside the image border, with the
        side (0 top, 1 bottom, 2 left, 3 right) of each sample. None if too small."""
        s = self.settings
        h, w = arr.shape[:2]
        inset = s.ring_inset
        if h < 2 * inset + 3 or w < 2 * inset + 3:
            return None

        per_side = max(2, s.ring_samples // 4)
        xs = np.linspace(inset, w - 1 - inset, per_side).round().astype(int)
        ys = np.linspace(inset, h - 1 - inset, per_side).round().astype(int)
        samples = np.concatenate([
            arr[inset, xs],
            arr[h - 1 - inset, xs],
            arr[ys, inset],
            arr[ys, w - 1 - inset],
        ], axis=0)
        return samples, np.repeat(np.arange(4), per_side)

    def dominant_colors(self, samples: np.ndarray, sides: Optional[np.ndarray] = None) -> List[np.ndarray]:
        """Greedy clustering of ring samples. Returns at most max_colors colors,
        always including pure white.

        With sides given, a cluster must also hold min_cluster_share of the
        samples on at least min_cluster_sides sides. Subject colors touching a
        single edge (shoulders at the bottom) are not background.
        """
        s = self.settings
        sums: List[np.ndarray] = []
        counts: List[int] = []
        members: List[List[int]] = []

        for k, sample in enumerate(samples):
            if sums:
                means = np.stack([total / n for total, n in zip(sums, counts)])
                dists = np.linalg.norm(means - sample, axis=1)
                best = int(np.argmin(dists))
                if dists[best] < s.cluster_distance:
                    sums[best] = sums[best] + sample
                    counts[best] += 1
                    members[best].append(k)
                    continue
            sums.append(sample.astype(np.float64))
            counts.append(1)
            members.append([k])

        total = float(len(samples))
        keep = [i for i in range(len(counts)) if counts[i] / total >= s.min_cluster_share]
        if sides is not None:
            side_totals = np.maximum(np.bincount(sides, minlength=4), 1)
            keep = [i for i in keep if self._side_span(members[i], sides, side_totals) >= s.min_cluster_sides]

        ranked = sorted(keep, key=lambda i: -counts[i])
        clusters = [(sums[i] / counts[i]).astype(np.float32) for i in ranked]

        has_white = any(np.linalg.norm(c - WHITE) < s.cluster_distance for c in clusters)
        if has_white:
            return clusters[:s.max_colors]
        return clusters[:max(0, s.max_colors - 1)] + [WHITE]

    def _side_span(self, member_idx: List[int], sides: np.ndarray, side_totals: np.ndarray) -> int:
        per_side = np.bincount(sides[member_idx], minlength=len(side_totals))
        return int(np.sum(per_side / side_totals >= self.settings.min_cluster_share))

    def tolerance_for(self, color: np.ndarray) -> float:
        """Near-white targets get the wider tolerance."""
        s = self.settings
        if float(np.dot(LUMA, color)) >= s.light_luma:
            return s.light_tolerance
        return s.tolerance

    def color_similarity_mask(self, base: Image.Image) -> Optional[np.ndarray]:
        """Foreground mask from color distance to the dominant border colors.

        Returns None when the image is too small to sample or the estimated
        background coverage is implausible.
        """
        s = self.settings
        arr = to_float_rgb(base)
        ring = self.sample_ring(arr)
        if ring is None:
            logger.info(f"Raster {base.size} too small for border sampling")
            return None

        colors = self.dominant_colors(*ring)
        background = np.zeros(arr.shape[:2], dtype=np.float32)
        for color in colors:
            tol = self.tolerance_for(color)
            dist = np.linalg.norm(arr - color, axis=2)
            likeness = np.clip((tol - dist) / (tol / 2.0), 0.0, 1.0)
            background = np.maximum(background, likeness)

        share = float(background.mean())
        logger.debug(f"Color similarity: {len(colors)} colors, background share {share:.3f}")
        if share < s.min_background_share or share > s.max_background_share:
            logger.info(f"Color similarity rejected (background share {share:.3f})")
            return None

        mask = 1.0 - background
        if s.fallback_blur_sigma > 0:
            mask = cv2.GaussianBlur(mask, (0, 0), sigmaX=s.fallback_blur_sigma)
        return np.clip(mask, 0.0, 1.0).astype(np.float32)

    # -------------------------------------------------------------------------
    # Blending
    # -------------------------------------------------------------------------

    @staticmethod
    def flat_over(raster: Image.Image, color: Color) -> Image.Image:
        """Alpha-over the raster onto a solid color; opaque rasters pass through."""
        if raster.mode == 'RGB':
            return raster.copy()
        bg = solid(raster.size, color, mode='RGBA')
        bg.alpha_composite(raster.convert('RGBA'))
        return bg.convert('RGB')

    @staticmethod
    def _blend(base: Image.Image, mask: np.ndarray, color: Color) -> Image.Image:
        fg = to_float_rgb(base)
        bg = np.asarray(color, dtype=np.float32) / 255.0
        alpha = mask[:, :, np.newaxis]
        return from_float_rgb(fg * alpha + bg * (1.0 - alpha))
