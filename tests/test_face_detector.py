"""Tests for the Haar face detection pipeline."""

from __future__ import annotations

import logging
from pathlib import Path
from unittest.mock import MagicMock

import cv2
import numpy as np
import pytest

from facescan.config import Settings
from facescan.io.images import Bitmap, load_images
from facescan.ml.cascade import CascadeStore
from facescan.ml.face_detector import HaarFaceDetector, detect_faces
from facescan.ml.results import DetectionResult, Rectangle, total_faces

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_settings(**overrides: object) -> Settings:
    defaults: dict[str, object] = {
        "scale_factor": 1.5,
        "min_neighbors": 3,
        "downscale_factor": 2,
        "canny_pruning": True,
        "rescale_rectangles": False,
        "max_workers": 1,
    }
    defaults.update(overrides)
    return Settings(**defaults)  # type: ignore[arg-type]


class _StaticStore:
    def __init__(self, cascade: object | None) -> None:
        self.cascade = cascade

    def get(self) -> object | None:
        return self.cascade


def _fake_cascade(*detections: list[tuple[int, int, int, int]]) -> MagicMock:
    """A cascade answering each call with the next list of rectangles."""
    cascade = MagicMock()
    cascade.detectMultiScale.side_effect = [np.array(rects, dtype=np.int32) if rects else () for rects in detections]
    return cascade


def _bitmap(width: int = 64, height: int = 48, name: str = "img.png") -> Bitmap:
    return Bitmap(pixels=np.full((height, width, 3), 128, dtype=np.uint8), source=Path(name))


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class TestDetectionResult:
    def test_count_must_match_rectangles(self) -> None:
        with pytest.raises(ValueError, match="face_count"):
            DetectionResult(image=_bitmap(), face_count=2, rectangles=(Rectangle(0, 0, 1, 1),))

    def test_total_faces(self) -> None:
        results = [
            DetectionResult(image=_bitmap(), face_count=0, rectangles=()),
            DetectionResult(image=_bitmap(), face_count=1, rectangles=(Rectangle(1, 2, 3, 4),)),
        ]
        assert total_faces(results) == 1

    def test_rectangle_scaled(self) -> None:
        assert Rectangle(1, 2, 3, 4).scaled(2) == Rectangle(2, 4, 6, 8)


# ---------------------------------------------------------------------------
# HaarFaceDetector
# ---------------------------------------------------------------------------


class TestHaarFaceDetector:
    def test_no_faces_gives_empty_result(self) -> None:
        detector = HaarFaceDetector(_make_settings(), _StaticStore(_fake_cascade([])))
        image = _bitmap()

        result = detector.detect(image)

        assert result is not None
        assert result.face_count == 0
        assert result.rectangles == ()
        assert result.image is image

    def test_rectangles_keep_detector_order(self) -> None:
        cascade = _fake_cascade([(5, 6, 10, 11), (1, 2, 3, 4)])
        detector = HaarFaceDetector(_make_settings(), _StaticStore(cascade))

        result = detector.detect(_bitmap())

        assert result is not None
        assert result.face_count == 2
        assert result.rectangles == (Rectangle(5, 6, 10, 11), Rectangle(1, 2, 3, 4))
        assert all(isinstance(value, int) for value in (result.rectangles[0].x, result.rectangles[0].width))

    def test_cascade_gets_preprocessed_image_and_tuning(self) -> None:
        cascade = _fake_cascade([])
        detector = HaarFaceDetector(_make_settings(), _StaticStore(cascade))

        detector.detect(_bitmap(width=64, height=48))

        args, kwargs = cascade.detectMultiScale.call_args
        gray = args[0]
        assert gray.shape == (24, 32)
        assert gray.dtype == np.uint8
        assert kwargs == {"scaleFactor": 1.5, "minNeighbors": 3, "flags": cv2.CASCADE_DO_CANNY_PRUNING}

    def test_canny_pruning_can_be_disabled(self) -> None:
        cascade = _fake_cascade([])
        detector = HaarFaceDetector(_make_settings(canny_pruning=False), _StaticStore(cascade))

        detector.detect(_bitmap())

        assert cascade.detectMultiScale.call_args.kwargs["flags"] == 0

    def test_rectangles_stay_in_downscaled_space_by_default(self) -> None:
        detector = HaarFaceDetector(_make_settings(), _StaticStore(_fake_cascade([(4, 4, 8, 8)])))
        result = detector.detect(_bitmap())
        assert result is not None
        assert result.rectangles == (Rectangle(4, 4, 8, 8),)

    def test_rescale_rectangles(self) -> None:
        settings = _make_settings(rescale_rectangles=True, downscale_factor=2)
        detector = HaarFaceDetector(settings, _StaticStore(_fake_cascade([(4, 4, 8, 8)])))
        result = detector.detect(_bitmap())
        assert result is not None
        assert result.rectangles == (Rectangle(8, 8, 16, 16),)

    def test_detect_faces_scenario(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        # Three valid images with 0, 1 and 2 faces plus one corrupt file
        paths = []
        for name in ("zero.jpg", "one.jpg", "two.jpg"):
            path = tmp_path / name
            assert cv2.imwrite(str(path), np.full((60, 80, 3), 90, dtype=np.uint8))
            paths.append(path)
        corrupt = tmp_path / "corrupt.jpg"
        corrupt.write_bytes(b"not a jpeg")
        paths.insert(2, corrupt)

        with caplog.at_level(logging.WARNING, logger="facescan"):
            images = load_images(paths, _make_settings())
            cascade = _fake_cascade([], [(1, 1, 5, 5)], [(2, 2, 6, 6), (10, 10, 6, 6)])
            results = HaarFaceDetector(_make_settings(), _StaticStore(cascade)).detect_faces(images)

        assert len(results) == 3
        assert [r.face_count for r in results] == [0, 1, 2]
        assert total_faces(results) == 3
        assert [r.image.source for r in results] == [paths[0], paths[1], paths[3]]
        assert len(caplog.records) == 1
        assert "corrupt.jpg" in caplog.text

    def test_failing_image_is_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        cascade = MagicMock()
        cascade.detectMultiScale.side_effect = [np.array([(1, 1, 2, 2)], dtype=np.int32), cv2.error("native"), ()]
        detector = HaarFaceDetector(_make_settings(), _StaticStore(cascade))
        images = [_bitmap(name="a.png"), _bitmap(name="b.png"), _bitmap(name="c.png")]

        with caplog.at_level(logging.WARNING, logger="facescan"):
            results = detector.detect_faces(images)

        assert [r.image.source for r in results] == [Path("a.png"), Path("c.png")]
        assert len(caplog.records) == 1
        assert "b.png" in caplog.text

    def test_unexpected_error_is_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        cascade = MagicMock()
        cascade.detectMultiScale.side_effect = [(), TypeError("bad argument"), np.array([(1, 1, 2, 2)], dtype=np.int32)]
        detector = HaarFaceDetector(_make_settings(), _StaticStore(cascade))
        images = [_bitmap(name="a.png"), _bitmap(name="b.png"), _bitmap(name="c.png")]

        with caplog.at_level(logging.WARNING, logger="facescan"):
            results = detector.detect_faces(images)

        assert [r.image.source for r in results] == [Path("a.png"), Path("c.png")]
        assert [r.face_count for r in results] == [0, 1]
        assert len(caplog.records) == 1
        assert "bad argument" in caplog.text

    def test_too_small_image_is_skipped(self) -> None:
        cascade = _fake_cascade([])
        detector = HaarFaceDetector(_make_settings(), _StaticStore(cascade))
        tiny = _bitmap(width=1, height=1, name="tiny.png")

        results = detector.detect_faces([tiny, _bitmap()])

        assert len(results) == 1
        cascade.detectMultiScale.assert_called_once()

    def test_missing_cascade_warns_once(self, tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
        settings = _make_settings(cascade_path=tmp_path / "missing.xml")
        detector = HaarFaceDetector(settings, CascadeStore(settings))

        with caplog.at_level(logging.WARNING, logger="facescan"):
            results = detector.detect_faces([_bitmap(), _bitmap(), _bitmap()])
            single = detector.detect(_bitmap())

        assert results == []
        assert single is None
        assert len(caplog.records) == 1

    def test_empty_batch(self) -> None:
        store = MagicMock()
        detector = HaarFaceDetector(_make_settings(), store)
        assert detector.detect_faces([]) == []
        store.get.assert_not_called()

    def test_worker_pool_keeps_order(self) -> None:
        # Rectangle width encodes the image width so results can be matched up
        def answer(gray: np.ndarray, **_kwargs: object) -> np.ndarray:
            return np.array([(0, 0, gray.shape[1], 1)], dtype=np.int32)

        cascade = MagicMock()
        cascade.detectMultiScale.side_effect = answer
        detector = HaarFaceDetector(_make_settings(max_workers=4), _StaticStore(cascade))
        images = [_bitmap(width=w) for w in (20, 40, 60, 80, 100, 120)]

        results = detector.detect_faces(images)

        assert [r.rectangles[0].width for r in results] == [10, 20, 30, 40, 50, 60]
        assert all(r.image is image for r, image in zip(results, images, strict=True))

    def test_real_cascade_finds_nothing_in_blank_image(self) -> None:
        settings = _make_settings()
        detector = HaarFaceDetector(settings, CascadeStore(settings))

        result = detector.detect(_bitmap(width=320, height=240))

        assert result is not None
        assert result.face_count == 0
        assert result.rectangles == ()

    def test_real_cascade_on_worker_pool_matches_sequential(self) -> None:
        rng = np.random.default_rng(0)
        images = [
            Bitmap(pixels=rng.integers(0, 256, size=(240, 320, 3), dtype=np.uint8), source=Path(f"noise{i}.png"))
            for i in range(12)
        ]
        sequential = _make_settings(min_neighbors=0, max_workers=1)
        pooled = _make_settings(min_neighbors=0, max_workers=4)

        expected = HaarFaceDetector(sequential, CascadeStore(sequential)).detect_faces(images)
        actual = HaarFaceDetector(pooled, CascadeStore(pooled)).detect_faces(images)

        assert len(actual) == len(images)
        assert [r.image for r in actual] == [r.image for r in expected]
        assert [r.rectangles for r in actual] == [r.rectangles for r in expected]

    def test_module_level_detect_faces_uses_shared_cascade(self) -> None:
        results = detect_faces([_bitmap(width=320, height=240)])

        assert len(results) == 1
        assert results[0].face_count == 0
