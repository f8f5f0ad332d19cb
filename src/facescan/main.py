"""Batch entry point: detect faces in a set of images and report the totals."""

from __future__ import annotations

import argparse
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import ValidationError

from facescan.config import get_settings
from facescan.ml.results import total_faces

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from facescan.config import Settings
    from facescan.io.images import Bitmap
    from facescan.ml.face_detector import FaceDetector
    from facescan.ml.results import DetectionResult

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


@dataclass(frozen=True)
class BatchSummary:
    """Outcome of one batch run."""

    image_count: int = 0
    result_count: int = 0
    total_faces: int = 0
    elapsed_seconds: float = 0.0
    error: str | None = None


def run(
    paths: Sequence[str | Path] | None = None,
    settings: Settings | None = None,
    detector: FaceDetector | None = None,
) -> BatchSummary:
    """Load the images, detect faces in all of them, and log a summary.

    ``paths`` may mix files and directories; without them the configured
    image directory is used. ``detector`` defaults to a Haar detector built
    from ``settings``. Failures never propagate: they are logged and
    recorded in the returned summary.
    """
    images: list[Bitmap] = []
    try:
        settings = settings or get_settings()
        images = _load_batch(paths, settings)

        start = time.perf_counter()
        results = _detect_batch(images, settings, detector)
        elapsed = time.perf_counter() - start

        faces = total_faces(results)
        logger.info("Detecting %s faces in %s images took %.3fs", faces, len(images), elapsed)
        return BatchSummary(
            image_count=len(images),
            result_count=len(results),
            total_faces=faces,
            elapsed_seconds=elapsed,
        )
    # OpenCV raises ImportError when its native libraries are missing on this platform
    except ImportError as exc:
        logger.warning("Face detection is unavailable on this platform: %s", exc)
        return BatchSummary(image_count=len(images), error=str(exc))
    except Exception as exc:  # noqa: BLE001
        logger.warning("Something went wrong while detecting faces: %s", exc)
        return BatchSummary(image_count=len(images), error=str(exc))


def _load_batch(paths: Sequence[str | Path] | None, settings: Settings) -> list[Bitmap]:
    from facescan.io.files import flatten, get_resource
    from facescan.io.images import load_images, load_images_from_dir

    if paths:
        return load_images(flatten(paths), settings)

    image_dir = get_resource(settings.image_dir)
    if image_dir is None:
        return []
    return load_images_from_dir(image_dir, settings.recursive, settings.file_pattern, settings)


def _detect_batch(images: list[Bitmap], settings: Settings, detector: FaceDetector | None) -> list[DetectionResult]:
    if detector is None:
        from facescan.ml.face_detector import HaarFaceDetector

        detector = HaarFaceDetector(settings)
    return detector.detect_faces(images)


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point; returns the process exit code."""
    parser = argparse.ArgumentParser(
        prog="facescan",
        description="Detect faces in image files with OpenCV's Haar cascade.",
    )
    parser.add_argument(
        "paths",
        nargs="*",
        help="image files or directories (default: $FACESCAN_IMAGE_DIR)",
    )
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
    except ValidationError as exc:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logger.warning("Invalid FACESCAN_* configuration, nothing to do: %s", exc)
        return 0
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)

    summary = run(args.paths, settings)
    if summary.error is not None and settings.fail_on_error:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
