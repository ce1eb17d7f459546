"""
Transform math: edit state -> affine placement of the source inside a frame.

Coordinate convention (shared by preview and export):
  * raster coordinates, origin top-left, y grows downward;
  * positive pan dx moves the content right, positive dy moves it down;
  * positive rotation turns the content clockwise about the frame center;
  * pan offsets are expressed in reference-frame units (a frame
    REFERENCE_FRAME_HEIGHT pixels tall) and scale with the frame, so the
    same EditState yields the same crop at any output resolution.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .config import (
    PhotoFormat, EDITOR_DISPLAY_DIM, REFERENCE_FRAME_HEIGHT, MIN_ZOOM, MAX_ZOOM,
)

logger = logging.getLogger(__name__)

Point = Tuple[float, float]
Rect = Tuple[float, float, float, float]


def clamp_zoom(zoom: float) -> float:
    if not math.isfinite(zoom):
        return 1.0
    return max(MIN_ZOOM, min(MAX_ZOOM, float(zoom)))


def normalize_rotation(degrees: float) -> float:
    """Map any angle into (-180, 180]."""
    if not math.isfinite(degrees):
        return 0.0
    return -((-float(degrees) + 180.0) % 360.0 - 180.0) + 0.0


@dataclass(frozen=True)
class EditState:
    """User edit parameters. Values are clamped on construction, never rejected."""
    zoom: float = 1.0
    rotation: float = 0.0
    pan: Point = (0.0, 0.0)

    def __post_init__(self):
        dx, dy = self.pan
        dx = float(dx) if math.isfinite(dx) else 0.0
        dy = float(dy) if math.isfinite(dy) else 0.0
        object.__setattr__(self, 'zoom', clamp_zoom(self.zoom))
        object.__setattr__(self, 'rotation', normalize_rotation(self.rotation))
        object.__setattr__(self, 'pan', (dx, dy))

    @property
    def is_identity(self) -> bool:
        return self == EditState()

    @staticmethod
    def reset() -> 'EditState':
        return EditState()


@dataclass(frozen=True)
class FrameSpec:
    """Frame dimensions in pixels. width/height equals the format aspect ratio."""
    width: float
    height: float

    @classmethod
    def for_aspect(cls, aspect_ratio: float, height: float) -> 'FrameSpec':
        return cls(width=height * aspect_ratio, height=float(height))

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    @property
    def pixel_size(self) -> Tuple[int, int]:
        return (max(1, int(round(self.width))), max(1, int(round(self.height))))

    @property
    def center(self) -> Point:
        return (self.width / 2.0, self.height / 2.0)


@dataclass(frozen=True)
class FrameTransform:
    """Placement of a source image inside a frame: scale, then translate, then
    rotate about the frame center."""
    frame: FrameSpec
    source_size: Tuple[int, int]
    scale: float
    origin: Point
    rotation: float = 0.0
    _trig: Tuple[float, float] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        theta = math.radians(self.rotation)
        object.__setattr__(self, '_trig', (math.cos(theta), math.sin(theta)))

    @property
    def destination_rect(self) -> Rect:
        """Frame-space (x, y, w, h) of the scaled, unrotated source."""
        sw, sh = self.source_size
        return (self.origin[0], self.origin[1], sw * self.scale, sh * self.scale)

    def forward(self, point: Point) -> Point:
        """Source pixel -> frame pixel."""
        cos_t, sin_t = self._trig
        cx, cy = self.frame.center
        qx = self.origin[0] + self.scale * point[0] - cx
        qy = self.origin[1] + self.scale * point[1] - cy
        return (cx + cos_t * qx - sin_t * qy, cy + sin_t * qx + cos_t * qy)

    def inverse(self, point: Point) -> Point:
        """Frame pixel -> source pixel."""
        cos_t, sin_t = self._trig
        cx, cy = self.frame.center
        qx, qy = point[0] - cx, point[1] - cy
        ux = cos_t * qx + sin_t * qy + cx - self.origin[0]
        uy = -sin_t * qx + cos_t * qy + cy - self.origin[1]
        return (ux / self.scale, uy / self.scale)

    def inverse_coefficients(
        self, sx: Optional[float] = None, sy: Optional[float] = None
    ) -> Tuple[float, float, float, float, float, float]:
        """Pillow AFFINE data mapping frame pixels back into the source.

        sx/sy override the per-axis scale, used when the source was
        pre-reduced and its pixel grid no longer matches source_size.
        """
        sx = self.scale if sx is None else sx
        sy = self.scale if sy is None else sy
        cos_t, sin_t = self._trig
        cx, cy = self.frame.center
        ox, oy = self.origin
        return (
            cos_t / sx, sin_t / sx, (-cos_t * cx - sin_t * cy + cx - ox) / sx,
            -sin_t / sy, cos_t / sy, (sin_t * cx - cos_t * cy + cy - oy) / sy,
        )

    @property
    def source_crop_box(self) -> Rect:
        """Source-space bounding box (left, top, right, bottom) of what the frame shows."""
        w, h = self.frame.width, self.frame.height
        corners = [self.inverse(p) for p in ((0, 0), (w, 0), (0, h), (w, h))]
        xs = [c[0] for c in corners]
        ys = [c[1] for c in corners]
        sw, sh = self.source_size
        return (
            max(0.0, min(xs)), max(0.0, min(ys)),
            min(float(sw), max(xs)), min(float(sh), max(ys)),
        )


class GeometryEngine:
    """Maps (source size, frame, edit state) to a FrameTransform. Pure, no I/O."""

    def __init__(
        self,
        display_dim: float = EDITOR_DISPLAY_DIM,
        reference_height: float = REFERENCE_FRAME_HEIGHT,
    ):
        self.display_dim = display_dim
        self.reference_height = reference_height

    def fit_scale(self, source_size: Tuple[int, int]) -> float:
        sw, sh = source_size
        if sw <= 0 or sh <= 0:
            return 1.0
        return min(self.display_dim / sw, self.display_dim / sh)

    def frame_for(self, fmt: PhotoFormat, height: Optional[float] = None) -> FrameSpec:
        return FrameSpec.for_aspect(fmt.aspect_ratio, height or self.reference_height)

    def compute(
        self, source_size: Tuple[int, int], frame: FrameSpec, edit: EditState
    ) -> FrameTransform:
        sw, sh = source_size
        k = frame.height / self.reference_height
        effective_zoom = self.fit_scale(source_size) * edit.zoom * k

        scaled_w = sw * effective_zoom
        scaled_h = sh * effective_zoom
        dx, dy = edit.pan
        origin = (
            (frame.width - scaled_w) / 2.0 + dx * k,
            (frame.height - scaled_h) / 2.0 + dy * k,
        )
        return FrameTransform(
            frame=frame,
            source_size=(sw, sh),
            scale=effective_zoom,
            origin=origin,
            rotation=edit.rotation,
        )

    def fit_to_face(
        self,
        source_size: Tuple[int, int],
        face_box: Rect,
        fmt: PhotoFormat,
    ) -> EditState:
        """Edit state that frames a face box (x, y, w, h in source pixels) per the
        format's face coverage and vertical face position."""
        x, y, w, h = face_box
        if h <= 0 or w <= 0:
            return EditState()

        sw, sh = source_size
        ref_h = self.reference_height
        s_fit = self.fit_scale(source_size)
        zoom = clamp_zoom(fmt.face_coverage * ref_h / (h * s_fit))
        e = s_fit * zoom

        face_cx = x + w / 2.0
        face_cy = y + h / 2.0
        dx = e * (sw / 2.0 - face_cx)
        dy = fmt.nose_position * ref_h - (ref_h - sh * e) / 2.0 - e * face_cy

        logger.debug(f"Face framing: zoom={zoom:.3f}, pan=({dx:.1f}, {dy:.1f})")
        return EditState(zoom=zoom, rotation=0.0, pan=(dx, dy))
