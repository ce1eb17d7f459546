"""
Edit session: holds the user's current editing state and notifies observers.

The core pipeline never debounces or tracks requests itself; callers that
drive it from rapid UI input use Debouncer and the request tokens here.
"""

import logging
import threading
import time
from typing import Callable, List, Optional, Tuple

from PIL import Image

from .config import REGISTRY, PhotoFormat, custom_format, get_format
from .errors import IDPhotoError, ProcessingSuperseded
from .geometry import EditState
from .processor import PhotoProcessor, ProcessingResult
from .utils import Color, parse_color

logger = logging.getLogger(__name__)

Listener = Callable[['EditSession'], None]

ZOOM_STEP = 0.1
ROTATION_STEP = 90.0


class Debouncer:
    """Coalesces bursts of changes. Pull-based: poke() on every change, then
    poll ready(); it becomes True once `delay` seconds pass without a poke."""

    def __init__(self, delay: float = 0.3, clock: Callable[[], float] = time.monotonic):
        self.delay = delay
        self._clock = clock
        self._last: Optional[float] = None

    @property
    def pending(self) -> bool:
        return self._last is not None

    def poke(self) -> None:
        self._last = self._clock()

    def ready(self) -> bool:
        """True exactly once per burst, after the quiet period has elapsed."""
        if self._last is None:
            return False
        if self._clock() - self._last < self.delay:
            return False
        self._last = None
        return True

    def cancel(self) -> None:
        self._last = None


class EditSession:
    """Current source, format and edit state for one editing workflow."""

    def __init__(self, processor: PhotoProcessor, format_key: str = 'passport'):
        self.processor = processor
        self.source: Optional[Image.Image] = None
        self.format: PhotoFormat = get_format(format_key) or REGISTRY.list_all()[0]
        self.edit = EditState()
        self.background_color: Color = self.format.bg_color
        self.last_result: Optional[ProcessingResult] = None

        self._listeners: List[Listener] = []
        self._lock = threading.Lock()
        self._latest_token = 0

    # -------------------------------------------------------------------------
    # Observers
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _set_edit(self, edit: EditState) -> None:
        if edit != self.edit:
            self.edit = edit
            self._notify()

    # -------------------------------------------------------------------------
    # Source / format / background
    # -------------------------------------------------------------------------

    def load(self, source: Image.Image) -> None:
        self.source = source
        self.edit = EditState()
        self.last_result = None
        self._notify()

    def set_format(self, format_key: str) -> PhotoFormat:
        fmt = get_format(format_key)
        if fmt is None:
            raise KeyError(f"Unknown photo format: {format_key}")
        self.format = fmt
        self.background_color = fmt.bg_color
        self._notify()
        return fmt

    def set_custom_size(self, width_mm: float, height_mm: float) -> PhotoFormat:
        """Switch to the Custom format with the given size (clamped)."""
        self.format = custom_format(width_mm, height_mm)
        self._notify()
        return self.format

    def set_background(self, color) -> Color:
        self.background_color = parse_color(color)
        self._notify()
        return self.background_color

    # -------------------------------------------------------------------------
    # Edits (all values are clamped by EditState)
    # -------------------------------------------------------------------------

    def set_zoom(self, zoom: float) -> None:
        self._set_edit(EditState(zoom=zoom, rotation=self.edit.rotation, pan=self.edit.pan))

    def adjust_zoom(self, delta: float = ZOOM_STEP) -> None:
        self.set_zoom(round(self.edit.zoom + delta, 2))

    def set_rotation(self, degrees: float) -> None:
        self._set_edit(EditState(zoom=self.edit.zoom, rotation=degrees, pan=self.edit.pan))

    def rotate(self, delta: float = ROTATION_STEP) -> None:
        self.set_rotation(self.edit.rotation + delta)

    def set_pan(self, dx: float, dy: float) -> None:
        self._set_edit(EditState(zoom=self.edit.zoom, rotation=self.edit.rotation, pan=(dx, dy)))

    def pan(self, ddx: float, ddy: float) -> None:
        dx, dy = self.edit.pan
        self.set_pan(dx + ddx, dy + ddy)

    def reset(self) -> None:
        self._set_edit(EditState.reset())

    @property
    def pan_offset(self) -> Tuple[float, float]:
        return self.edit.pan

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    def submit(self) -> int:
        """Start a new processing request; any earlier request becomes stale."""
        with self._lock:
            self._latest_token += 1
            return self._latest_token

    def is_current(self, token: int) -> bool:
        with self._lock:
            return token == self._latest_token

    def preview(self) -> Image.Image:
        if self.source is None:
            raise IDPhotoError("No source image loaded")
        return self.processor.render_preview(self.source, self.format, self.edit, self.background_color)

    def process(self, token: Optional[int] = None) -> Optional[ProcessingResult]:
        """Run the full pipeline for the current state.

        Returns None when a newer submit() superseded this request; the stale
        result is discarded and last_result is left untouched.
        """
        if self.source is None:
            raise IDPhotoError("No source image loaded")
        if token is None:
            token = self.submit()

        try:
            result = self.processor.process(
                self.source, self.format, self.edit,
                background_color=self.background_color,
                cancel_check=lambda: not self.is_current(token),
            )
        except ProcessingSuperseded:
            logger.info(f"Request {token} superseded")
            return None

        if not self.is_current(token):
            logger.info(f"Request {token} finished after being superseded, discarding result")
            return None

        self.last_result = result
        return result
