"""
Person segmentation adapters
"""

import gc
import logging
import threading
import traceback
from typing import Optional, Union

import cv2
import numpy as np
from PIL import Image

from .config import SEGMENTATION_MODELS, SEGMENTATION_QUALITY, SEGMENTATION_TIMEOUT
from .errors import SegmentationUnavailable
from .utils import GPUInfo

logger = logging.getLogger(__name__)

RawMask = Union[np.ndarray, Image.Image]


# =============================================================================
# ADAPTER BASE
# =============================================================================

class SegmentationAdapter:
    """Wraps a foreground/background segmentation capability.

    Subclasses implement _predict(). segment() bounds the wait, normalizes
    value range and polarity, and aligns the mask to the input raster, so
    callers always get float32 (H, W) with 1 = keep the original pixel.
    """

    # Set False for backends that report background as white
    foreground_is_white = True

    def __init__(self, timeout: float = SEGMENTATION_TIMEOUT):
        self.timeout = timeout

    def _predict(self, image: Image.Image) -> RawMask:
        raise NotImplementedError

    def segment(self, image: Image.Image) -> np.ndarray:
        """Return a foreground mask aligned 1:1 with image.

        The backend runs on a daemon thread. A call that outlives the timeout
        is abandoned and never joined, including at interpreter exit.

        Raises:
            SegmentationUnavailable: backend error, timeout, or unsupported runtime.
        """
        outcome = {}
        done = threading.Event()

        def run():
            try:
                outcome['mask'] = self._predict(image)
            except Exception as e:
                outcome['error'] = e
            finally:
                done.set()

        threading.Thread(target=run, name='segment', daemon=True).start()
        if not done.wait(self.timeout):
            logger.warning(f"Segmentation timed out after {self.timeout:.1f}s, abandoning")
            raise SegmentationUnavailable(f"Segmentation timed out after {self.timeout}s")

        error = outcome.get('error')
        if isinstance(error, SegmentationUnavailable):
            raise error
        if error is not None:
            logger.error(f"Segmentation failed: {error}")
            logger.debug(''.join(traceback.format_exception(type(error), error, error.__traceback__)))
            raise SegmentationUnavailable(f"Segmentation failed: {error}") from error

        return self._normalize(outcome['mask'], image.size)

    def _normalize(self, raw: RawMask, size) -> np.ndarray:
        if raw is None:
            raise SegmentationUnavailable("Segmentation returned no mask")

        if isinstance(raw, Image.Image):
            mask = np.asarray(raw.convert('L'), dtype=np.float32) / 255.0
        else:
            mask = np.asarray(raw, dtype=np.float32)
            if mask.ndim == 3:
                mask = mask[:, :, -1] if mask.shape[2] == 4 else mask.mean(axis=2)
            if mask.size and mask.max() > 1.0:
                mask = mask / 255.0

        if mask.ndim != 2 or mask.size == 0:
            raise SegmentationUnavailable(f"Segmentation mask has unusable shape {mask.shape}")
        if not np.all(np.isfinite(mask)):
            raise SegmentationUnavailable("Segmentation mask contains NaN/Inf values")

        if not self.foreground_is_white:
            mask = 1.0 - mask

        width, height = size
        if mask.shape != (height, width):
            mask = cv2.resize(mask, (width, height), interpolation=cv2.INTER_LINEAR)

        return np.clip(mask, 0.0, 1.0).astype(np.float32)

    def close(self) -> None:
        """Release backend resources."""
        pass


# =============================================================================
# REMBG (production)
# =============================================================================

class RembgSegmenter(SegmentationAdapter):
    """Person segmentation through a rembg session.

    quality selects the model: 'accurate', 'balanced' or 'fast'.
    """

    def __init__(
        self,
        quality: str = SEGMENTATION_QUALITY,
        timeout: float = SEGMENTATION_TIMEOUT,
        force_cpu: bool = False,
        max_retries: int = 1,
    ):
        super().__init__(timeout=timeout)
        if quality not in SEGMENTATION_MODELS:
            raise ValueError(f"Unknown quality '{quality}'. Available: {list(SEGMENTATION_MODELS)}")
        self.quality = quality
        self.model_name = SEGMENTATION_MODELS[quality]
        self.max_retries = max_retries
        self._force_cpu = force_cpu
        self._session = None
        self._session_lock = threading.RLock()
        self._init_count = 0

    @property
    def init_count(self) -> int:
        return self._init_count

    def _init_session(self) -> None:
        try:
            from rembg import new_session
        except ImportError as e:
            raise SegmentationUnavailable(f"rembg is not installed: {e}") from e

        logger.info(f"Initializing rembg session ({self.model_name})...")
        self._init_count += 1

        if not self._force_cpu and GPUInfo.is_available():
            try:
                self._session = new_session(
                    model_name=self.model_name,
                    providers=['CUDAExecutionProvider', 'CPUExecutionProvider'],
                )
                logger.info(f"Rembg session initialized with CUDA ({self.model_name})")
                return
            except Exception as e:
                logger.warning(f"CUDA initialization failed: {e}")
                logger.info("Falling back to CPU...")

        try:
            self._session = new_session(model_name=self.model_name)
            logger.info(f"Rembg session initialized with CPU ({self.model_name})")
        except Exception as e:
            logger.error(f"Failed to initialize rembg session: {e}")
            raise SegmentationUnavailable(f"Cannot initialize rembg session: {e}") from e

    def reinitialize(self, force_cpu: bool = False) -> None:
        """Re-create the session (e.g. after memory error)."""
        logger.warning("Reinitializing rembg session...")
        with self._session_lock:
            self._session = None
            self._force_cpu = force_cpu or (self._init_count >= 3)
            if self._force_cpu:
                logger.warning("Multiple failures detected, forcing CPU mode...")
            self._init_session()

    def _predict(self, image: Image.Image) -> RawMask:
        # An abandoned call may still hold the session
        if not self._session_lock.acquire(timeout=self.timeout):
            raise SegmentationUnavailable("rembg session is busy with an abandoned call")
        try:
            if self._session is None:
                self._init_session()
            from rembg import remove

            rgb = image.convert('RGB')
            for attempt in range(self.max_retries + 1):
                try:
                    return remove(rgb, session=self._session, only_mask=True, post_process_mask=True)
                except Exception as e:
                    if self._is_memory_error(e) and attempt < self.max_retries:
                        logger.warning(
                            f"Memory error during segmentation (attempt {attempt + 1}), clearing GPU memory..."
                        )
                        self._clear_memory()
                        self.reinitialize()
                        continue
                    raise
        finally:
            self._session_lock.release()

    @staticmethod
    def _is_memory_error(error: Exception) -> bool:
        error_str = str(error).lower()
        memory_indicators = [
            'out of memory', 'oom', 'cuda error', 'cudnn',
            'memory allocation', 'cannot allocate', 'insufficient memory',
            'memory exhausted',
        ]
        return any(ind in error_str for ind in memory_indicators)

    @staticmethod
    def _clear_memory() -> None:
        gc.collect()
        GPUInfo.clear_memory()

    def close(self) -> None:
        self._session = None
        self._clear_memory()


# =============================================================================
# TEST DOUBLES
# =============================================================================

class FixedMaskSegmenter(SegmentationAdapter):
    """Returns a fixed mask, resized to each raster. Deterministic stand-in
    for the ML backend."""

    def __init__(
        self,
        mask: RawMask,
        foreground_is_white: bool = True,
        timeout: float = SEGMENTATION_TIMEOUT,
    ):
        super().__init__(timeout=timeout)
        self._mask = mask
        self.foreground_is_white = foreground_is_white
        self.calls = 0

    def _predict(self, image: Image.Image) -> RawMask:
        self.calls += 1
        return self._mask


class UnavailableSegmenter(SegmentationAdapter):
    """Always unavailable; forces the color-similarity fallback."""

    def __init__(self, reason: Optional[str] = None):
        super().__init__()
        self.reason = reason or "segmentation disabled"
        self.calls = 0

    def _predict(self, image: Image.Image) -> RawMask:
        self.calls += 1
        raise SegmentationUnavailable(self.reason)
