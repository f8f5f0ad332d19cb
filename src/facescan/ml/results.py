"""Detection result records and aggregation helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from facescan.io.images import Bitmap


@dataclass(frozen=True)
class Rectangle:
    """An axis-aligned face region in pixel coordinates."""

    x: int
    y: int
    width: int
    height: int

    def scaled(self, factor: int) -> Rectangle:
        """Return this rectangle with every coordinate multiplied by ``factor``."""
        return Rectangle(self.x * factor, self.y * factor, self.width * factor, self.height * factor)


@dataclass(frozen=True)
class DetectionResult:
    """Faces found in one image.

    ``image`` is the original bitmap, not the preprocessed one. Rectangles keep
    the order the detector reported them in.
    """

    image: Bitmap
    face_count: int
    rectangles: tuple[Rectangle, ...]

    def __post_init__(self) -> None:
        if len(self.rectangles) != self.face_count:
            raise ValueError(f"face_count is {self.face_count} but {len(self.rectangles)} rectangles were given")


def total_faces(results: Iterable[DetectionResult]) -> int:
    """Sum the face counts of ``results``."""
    return sum(result.face_count for result in results)
