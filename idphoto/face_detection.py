"""
Face detection module using MediaPipe, used to auto-frame a source image
"""

import os
import math
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
from PIL import Image

from .config import MIN_DETECTION_CONFIDENCE, FACE_DETECTOR_MODEL, FACE_DETECTOR_URL
from .errors import FaceDetectionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FaceBox:
    """Detected face bounding box in source pixels."""
    x: float
    y: float
    width: float
    height: float
    score: float = 1.0

    @property
    def rect(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)


def select_primary_face(faces: List[FaceBox], image_size: Tuple[int, int]) -> Optional[FaceBox]:
    """Pick the most prominent face.

    Score = 0.75 * normalized area + 0.25 * (1 - normalized distance from the
    image center); the first face wins ties.
    """
    if not faces:
        return None
    width, height = image_size
    if width <= 0 or height <= 0:
        return faces[0]

    best, best_score = None, -math.inf
    for face in faces:
        area = (face.width / width) * (face.height / height)
        cx, cy = face.center
        distance = math.hypot(cx / width - 0.5, cy / height - 0.5)
        score = area * 0.75 + (1 - distance) * 0.25
        if score > best_score:
            best, best_score = face, score
    return best


class FaceDetector:
    """Detects faces using the MediaPipe Tasks face detector."""

    def __init__(
        self,
        min_confidence: float = MIN_DETECTION_CONFIDENCE,
        detector_model: str = FACE_DETECTOR_MODEL,
    ):
        self._min_confidence = min_confidence
        self._detector_model = detector_model

    def _ensure_model(self) -> None:
        if not os.path.exists(self._detector_model):
            logger.info(f"Face detector model not found at {self._detector_model}, downloading...")
            import urllib.request
            os.makedirs(os.path.dirname(self._detector_model) or "models", exist_ok=True)
            urllib.request.urlretrieve(FACE_DETECTOR_URL, self._detector_model)
            logger.info(f"Model downloaded to {self._detector_model}")

    def _run_detector(self, rgb: np.ndarray) -> List[FaceBox]:
        try:
            import mediapipe as mp
        except ImportError as e:
            raise FaceDetectionError(f"mediapipe is not installed: {e}") from e

        try:
            self._ensure_model()
        except OSError as e:
            raise FaceDetectionError(f"Cannot fetch face detector model: {e}") from e

        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=np.ascontiguousarray(rgb))
        base_options = mp.tasks.BaseOptions(model_asset_path=self._detector_model)
        options = mp.tasks.vision.FaceDetectorOptions(
            base_options=base_options,
            min_detection_confidence=self._min_confidence,
        )

        detector = mp.tasks.vision.FaceDetector.create_from_options(options)
        try:
            result = detector.detect(mp_image)
        finally:
            detector.close()

        faces = []
        for detection in result.detections:
            bbox = detection.bounding_box
            score = detection.categories[0].score if detection.categories else 1.0
            faces.append(FaceBox(bbox.origin_x, bbox.origin_y, bbox.width, bbox.height, score))
        return faces

    def detect_all(self, image: Image.Image) -> List[FaceBox]:
        rgb = np.asarray(image.convert('RGB'))
        faces = self._run_detector(rgb)
        logger.info(f"Detected {len(faces)} face(s)")
        return faces

    def detect(self, image: Image.Image) -> Optional[FaceBox]:
        """Return the most prominent face, or None if no face was found."""
        faces = self.detect_all(image)
        if len(faces) > 1:
            logger.info(f"Multiple faces detected ({len(faces)}), selecting the most prominent one")
        face = select_primary_face(faces, image.size)
        if face is not None:
            logger.info(f"Face at ({face.x:.0f}, {face.y:.0f}) size {face.width:.0f}x{face.height:.0f}px")
        return face
