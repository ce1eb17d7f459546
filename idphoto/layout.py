"""
Print layout: photo collection, maximal-rectangles packing and paper rendering
"""

import copy
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from PIL import Image, ImageDraw

from .config import PaperSpec, PhotoFormat, PAPERS, DEFAULT_PAPER, LAYOUT_SPACING
from .errors import PackingInfeasible
from .utils import SRGB_ICC_BYTES

logger = logging.getLogger(__name__)

GUIDE_STEP = 150
GUIDE_COLOR = (225, 225, 225)


def clamp_position(x: float, y: float) -> Tuple[float, float]:
    return (max(0.0, min(1.0, float(x))), max(0.0, min(1.0, float(y))))


# =============================================================================
# COLLECTION
# =============================================================================

@dataclass
class SavedPhoto:
    """A processed photo committed to the layout collection.

    position is the normalized paper-relative center of the photo.
    """
    image: Image.Image
    format: PhotoFormat
    position: Tuple[float, float] = (0.5, 0.5)
    rotation: float = 0.0
    scale: float = 1.0
    created_at: datetime = field(default_factory=datetime.now)
    photo_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def pixel_size(self) -> Tuple[int, int]:
        """Unrotated size on paper after scale."""
        return (
            max(1, int(round(self.image.width * self.scale))),
            max(1, int(round(self.image.height * self.scale))),
        )


class PhotoCollection:
    """Ordered list of saved photos. Later photos draw over earlier ones."""

    def __init__(self):
        self._photos: List[SavedPhoto] = []

    def __iter__(self) -> Iterator[SavedPhoto]:
        return iter(self._photos)

    def __len__(self) -> int:
        return len(self._photos)

    @property
    def photos(self) -> List[SavedPhoto]:
        return list(self._photos)

    def get(self, photo_id: str) -> SavedPhoto:
        for photo in self._photos:
            if photo.photo_id == photo_id:
                return photo
        raise KeyError(photo_id)

    def add(self, image: Image.Image, fmt: PhotoFormat, position: Tuple[float, float] = (0.5, 0.5)) -> SavedPhoto:
        photo = SavedPhoto(image=image, format=fmt, position=clamp_position(*position))
        self._photos.append(photo)
        logger.info(f"Added {fmt.name} photo {photo.photo_id[:8]} ({len(self._photos)} total)")
        return photo

    def duplicate(self, photo_id: str, offset: float = 0.05) -> SavedPhoto:
        original = self.get(photo_id)
        dup = copy.copy(original)
        dup.photo_id = uuid.uuid4().hex
        dup.created_at = datetime.now()
        dup.position = clamp_position(original.position[0] + offset, original.position[1] + offset)
        self._photos.append(dup)
        return dup

    def rotate90(self, photo_id: str) -> SavedPhoto:
        photo = self.get(photo_id)
        photo.rotation = (photo.rotation + 90.0) % 360.0
        return photo

    def move_to(self, photo_id: str, x: float, y: float) -> SavedPhoto:
        photo = self.get(photo_id)
        photo.position = clamp_position(x, y)
        return photo

    def delete(self, photo_id: str) -> None:
        self._photos.remove(self.get(photo_id))

    def clear(self) -> None:
        self._photos.clear()


# =============================================================================
# MAXRECTS PACKER
# =============================================================================

@dataclass(frozen=True)
class FreeRect:
    x: int
    y: int
    w: int
    h: int

    @property
    def right(self) -> int:
        return self.x + self.w

    @property
    def bottom(self) -> int:
        return self.y + self.h

    @property
    def area(self) -> int:
        return self.w * self.h

    def intersects(self, other: 'FreeRect') -> bool:
        return not (self.x >= other.right or self.right <= other.x
                    or self.y >= other.bottom or self.bottom <= other.y)

    def contains(self, other: 'FreeRect') -> bool:
        return (self.x <= other.x and self.y <= other.y
                and self.right >= other.right and self.bottom >= other.bottom)


@dataclass(frozen=True)
class Placement:
    photo_id: str
    x: int
    y: int
    width: int
    height: int
    rotated: bool

    @property
    def rect(self) -> FreeRect:
        return FreeRect(self.x, self.y, self.width, self.height)


class MaxRectsBin:
    """Free-space bookkeeping for maximal-rectangles packing with a spacing gap."""

    WASTE_WEIGHT = 0.5
    SHORT_SIDE_WEIGHT = 0.3
    LONG_SIDE_WEIGHT = 0.2

    def __init__(self, width: int, height: int, spacing: int = LAYOUT_SPACING):
        self.width = width
        self.height = height
        self.spacing = spacing
        self.free: List[FreeRect] = []
        inner = FreeRect(spacing, spacing, width - 2 * spacing, height - 2 * spacing)
        if inner.w > 0 and inner.h > 0:
            self.free.append(inner)

    def score(self, free: FreeRect, w: int, h: int) -> float:
        leftover_w = free.w - w
        leftover_h = free.h - h
        waste = free.area - w * h
        return (self.WASTE_WEIGHT * waste
                + self.SHORT_SIDE_WEIGHT * min(leftover_w, leftover_h)
                + self.LONG_SIDE_WEIGHT * max(leftover_w, leftover_h))

    def find_position(self, photo_id: str, w: int, h: int) -> Optional[Placement]:
        """Best-scoring spot over all free rectangles and both orientations."""
        best: Optional[Placement] = None
        best_score = float('inf')
        orientations = [(w, h, False)] if w == h else [(w, h, False), (h, w, True)]

        for free in self.free:
            for cw, ch, rotated in orientations:
                if cw > free.w or ch > free.h:
                    continue
                candidate_score = self.score(free, cw, ch)
                if candidate_score < best_score:
                    best_score = candidate_score
                    best = Placement(photo_id, free.x, free.y, cw, ch, rotated)
        return best

    def place(self, placement: Placement) -> None:
        s = self.spacing
        used = FreeRect(placement.x - s, placement.y - s,
                        placement.width + 2 * s, placement.height + 2 * s)

        residuals: List[FreeRect] = []
        kept: List[FreeRect] = []
        for free in self.free:
            if free.intersects(used):
                residuals.extend(self._split(free, used))
            else:
                kept.append(free)

        self.free = self._prune(kept + residuals)

    def _split(self, free: FreeRect, used: FreeRect) -> List[FreeRect]:
        parts = []
        if used.x > free.x:
            parts.append(FreeRect(free.x, free.y, used.x - free.x, free.h))
        if used.right < free.right:
            parts.append(FreeRect(used.right, free.y, free.right - used.right, free.h))
        if used.y > free.y:
            parts.append(FreeRect(free.x, free.y, free.w, used.y - free.y))
        if used.bottom < free.bottom:
            parts.append(FreeRect(free.x, used.bottom, free.w, free.bottom - used.bottom))

        minimum = max(1, self.spacing)
        return [p for p in parts if p.w >= minimum and p.h >= minimum]

    @staticmethod
    def _prune(rects: List[FreeRect]) -> List[FreeRect]:
        """Drop rectangles fully contained in another (first copy of duplicates survives)."""
        result = []
        for i, rect in enumerate(rects):
            redundant = False
            for j, other in enumerate(rects):
                if i == j or not other.contains(rect):
                    continue
                if other != rect or j < i:
                    redundant = True
                    break
            if not redundant:
                result.append(rect)
        return result


# =============================================================================
# LAYOUT PACKER
# =============================================================================

@dataclass
class ArrangeResult:
    placements: Dict[str, Placement]
    unplaced: List[str]

    @property
    def placed_count(self) -> int:
        return len(self.placements)


class LayoutPacker:
    """Arranges saved photos on photo paper and renders the sheet."""

    def __init__(self, paper: Optional[PaperSpec] = None, spacing: int = LAYOUT_SPACING):
        self.paper = paper or PAPERS[DEFAULT_PAPER]
        self.spacing = spacing

    def auto_arrange(self, collection: PhotoCollection) -> ArrangeResult:
        """Pack every photo, tallest first. Photos that do not fit keep their
        previous position and stay in the collection."""
        photos = collection.photos
        for photo in photos:
            photo.rotation = 0.0
            photo.scale = 1.0

        ordered = sorted(photos, key=lambda p: p.pixel_size[1], reverse=True)
        bin_ = MaxRectsBin(self.paper.width_px, self.paper.height_px, self.spacing)

        placements: Dict[str, Placement] = {}
        unplaced: List[str] = []
        for photo in ordered:
            try:
                placement = self._place_photo(bin_, photo)
            except PackingInfeasible as e:
                logger.warning(f"{e}")
                unplaced.append(photo.photo_id)
                continue

            placements[photo.photo_id] = placement
            photo.position = clamp_position(
                (placement.x + placement.width / 2.0) / self.paper.width_px,
                (placement.y + placement.height / 2.0) / self.paper.height_px,
            )
            photo.rotation = 90.0 if placement.rotated else 0.0

        logger.info(
            f"Auto-arranged {len(placements)}/{len(photos)} photos on {self.paper.name} paper"
        )
        return ArrangeResult(placements=placements, unplaced=unplaced)

    @staticmethod
    def _place_photo(bin_: MaxRectsBin, photo: SavedPhoto) -> Placement:
        w, h = photo.pixel_size
        placement = bin_.find_position(photo.photo_id, w, h)
        if placement is None:
            raise PackingInfeasible(
                f"Photo {photo.photo_id[:8]} ({w}x{h}px) does not fit on the remaining paper"
            )
        bin_.place(placement)
        return placement

    def render_layout(
        self,
        collection: PhotoCollection,
        guides: bool = True,
        cut_marks: bool = False,
    ) -> Image.Image:
        """Rasterize the paper at its exact pixel size, photos in collection order."""
        width, height = self.paper.size
        sheet = Image.new('RGB', (width, height), 'white')
        draw = ImageDraw.Draw(sheet)

        if guides:
            for x in range(GUIDE_STEP, width, GUIDE_STEP):
                draw.line([(x, 0), (x, height - 1)], fill=GUIDE_COLOR, width=1)
            for y in range(GUIDE_STEP, height, GUIDE_STEP):
                draw.line([(0, y), (width - 1, y)], fill=GUIDE_COLOR, width=1)

        for photo in collection:
            img = photo.image.convert('RGB')
            if photo.scale != 1.0:
                img = img.resize(photo.pixel_size, Image.LANCZOS)
            if photo.rotation % 360:
                img = img.rotate(-photo.rotation, resample=Image.BICUBIC, expand=True, fillcolor='white')

            x = int(round(photo.position[0] * width - img.width / 2.0))
            y = int(round(photo.position[1] * height - img.height / 2.0))
            sheet.paste(img, (x, y))

            if cut_marks:
                self._draw_cutting_marks(
                    draw, x, y, img.width, img.height,
                    mark_length=photo.format.mark_length, mark_offset=photo.format.mark_offset,
                )

        sheet.info['icc_profile'] = SRGB_ICC_BYTES
        return sheet

    @staticmethod
    def _draw_cutting_marks(
        draw: ImageDraw.ImageDraw,
        x: int, y: int, width: int, height: int,
        mark_length: int = 25, mark_offset: int = 8,
        color: str = 'black', line_width: int = 2,
    ) -> None:
        """L-shaped marks just outside each corner of the photo rectangle."""
        near = mark_offset
        far = mark_offset + mark_length
        for cx, sx in ((x, -1), (x + width, 1)):
            for cy, sy in ((y, -1), (y + height, 1)):
                draw.line([(cx + sx * near, cy), (cx + sx * far, cy)], fill=color, width=line_width)
                draw.line([(cx, cy + sy * near), (cx, cy + sy * far)], fill=color, width=line_width)
