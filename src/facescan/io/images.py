"""Image loading: decode files from disk into in-memory bitmaps.

A file that cannot be read or decoded is logged and left out; loading never
stops the batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import cv2
import numpy as np

from facescan.config import get_settings
from facescan.io.files import MATCH_ALL, list_files

if TYPE_CHECKING:
    import re
    from collections.abc import Iterable

    from numpy.typing import NDArray

    from facescan.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Bitmap:
    """A decoded raster image.

    ``pixels`` is an HxW (grayscale) or HxWxC uint8 array in OpenCV's BGR
    channel order. Consumers only read it. Bitmaps compare by identity.
    """

    pixels: NDArray[np.uint8]
    source: Path | None = None

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])

    def __repr__(self) -> str:
        return f"Bitmap(source={self.source}, width={self.width}, height={self.height}, channels={self.channels})"


def decode_image(data: bytes, max_pixels: int | None = None) -> NDArray[np.uint8]:
    """Decode raw image bytes into a BGR uint8 numpy array.

    Raises:
        ValueError: If the data is empty, cannot be decoded, or the image has
            more than ``max_pixels`` pixels.
    """
    if not data:
        raise ValueError("Empty image data")

    pixels = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
    if pixels is None:
        raise ValueError("Unsupported or corrupt image data")

    if max_pixels is not None:
        height, width = pixels.shape[:2]
        if height * width > max_pixels:
            raise ValueError(f"Image has {width}x{height} pixels, limit is {max_pixels}")
    return pixels


def load_image(path: str | Path, settings: Settings | None = None) -> Bitmap | None:
    """Load the image at ``path``; return ``None`` and log a warning on failure."""
    settings = settings or get_settings()
    path = Path(path)
    try:
        size = path.stat().st_size
        if size > settings.max_file_size:
            raise ValueError(f"File has {size} bytes, limit is {settings.max_file_size}")
        pixels = decode_image(path.read_bytes(), max_pixels=settings.max_image_pixels)
    except (OSError, ValueError, cv2.error) as exc:
        logger.warning("Can't load image %s: %s", path, exc)
        return None
    return Bitmap(pixels=pixels, source=path)


def load_images(paths: Iterable[str | Path], settings: Settings | None = None) -> list[Bitmap]:
    """Load every path in order, leaving out the ones that fail."""
    settings = settings or get_settings()
    images: list[Bitmap] = []
    for path in paths:
        image = load_image(path, settings)
        if image is not None:
            images.append(image)
    return images


def load_images_from_dir(
    image_dir: str | Path,
    recursive: bool = False,
    pattern: str | re.Pattern[str] = MATCH_ALL,
    settings: Settings | None = None,
) -> list[Bitmap]:
    """Load the images in ``image_dir`` whose paths match ``pattern``.

    Subdirectories are skipped as entries; with ``recursive`` their contents
    are loaded too.
    """
    paths = [path for path in list_files(image_dir, recursive, pattern) if not path.is_dir()]
    return load_images(paths, settings)
