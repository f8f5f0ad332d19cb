"""Face detection with OpenCV's Haar cascade classifier.

Each image is converted to BGR, grayed, shrunk and equalized, then scanned
by the calling thread's cascade. Images are independent: a failure on one is
logged and the rest of the batch goes on.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import cv2

from facescan.config import get_settings
from facescan.ml.cascade import CascadeStore, shared_cascade_store
from facescan.ml.inference import map_images
from facescan.ml.preprocessing import to_smaller_grayscale, to_working_image
from facescan.ml.results import DetectionResult, Rectangle

if TYPE_CHECKING:
    from collections.abc import Sequence

    import numpy as np
    from numpy.typing import NDArray

    from facescan.config import Settings
    from facescan.io.images import Bitmap

logger = logging.getLogger(__name__)


class CascadeSource(Protocol):
    """Anything that hands out a loaded cascade, or ``None`` if there is none."""

    def get(self) -> cv2.CascadeClassifier | None:
        """Return the classifier or ``None`` when detection is disabled."""
        ...


class FaceDetector(Protocol):
    """Protocol for face detectors."""

    def detect(self, image: Bitmap) -> DetectionResult | None:
        """Detect faces in one image.

        Returns:
            The result, or ``None`` if the image could not be processed.
        """
        ...

    def detect_faces(self, images: Sequence[Bitmap]) -> list[DetectionResult]:
        """Detect faces in every image, leaving out those that fail."""
        ...


class HaarFaceDetector:
    """Runs the Haar cascade over bitmaps."""

    def __init__(self, settings: Settings | None = None, store: CascadeSource | None = None) -> None:
        # Without explicit settings the detector shares the process-wide cascade
        if store is None:
            store = shared_cascade_store() if settings is None else CascadeStore(settings)
        self._settings = settings or get_settings()
        self._store = store
        self._flags = cv2.CASCADE_DO_CANNY_PRUNING if self._settings.canny_pruning else 0

    def detect_faces(self, images: Sequence[Bitmap]) -> list[DetectionResult]:
        """Detect faces in every image, keeping input order."""
        if not images or self._store.get() is None:
            return []

        results = map_images(self.detect, images, self._settings.max_workers)
        return [result for result in results if result is not None]

    def detect(self, image: Bitmap) -> DetectionResult | None:
        cascade = self._store.get()
        if cascade is None:
            return None

        try:
            gray = to_smaller_grayscale(to_working_image(image.pixels), self._settings.downscale_factor)
            found = cascade.detectMultiScale(
                gray,
                scaleFactor=self._settings.scale_factor,
                minNeighbors=self._settings.min_neighbors,
                flags=self._flags,
            )
            rectangles = self._to_rectangles(found)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Exception while detecting faces in %r: %s", image, exc)
            return None

        logger.debug("Found %s faces in %r", len(rectangles), image)
        return DetectionResult(image=image, face_count=len(rectangles), rectangles=rectangles)

    def _to_rectangles(self, found: NDArray[np.int32] | tuple[()]) -> tuple[Rectangle, ...]:
        # detectMultiScale answers with an empty tuple when nothing was found
        rectangles = tuple(Rectangle(int(x), int(y), int(w), int(h)) for x, y, w, h in found)
        if self._settings.rescale_rectangles:
            factor = self._settings.downscale_factor
            rectangles = tuple(rect.scaled(factor) for rect in rectangles)
        return rectangles


def detect_faces(images: Sequence[Bitmap], settings: Settings | None = None) -> list[DetectionResult]:
    """Detect faces in ``images`` with the process-wide cascade."""
    return HaarFaceDetector(settings).detect_faces(images)
