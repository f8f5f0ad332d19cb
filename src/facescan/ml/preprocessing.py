"""Image preprocessing for the Haar cascade.

Bridges arbitrary bitmaps to 8-bit BGR and applies the fixed preprocessing
sequence: grayscale, downscale, histogram equalization. Grayscale and
equalization make the cascade find more faces than on the raw image;
downscaling trades some recall for speed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import cv2
import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


def to_working_image(pixels: NDArray[np.generic]) -> NDArray[np.uint8]:
    """Convert a bitmap's pixels into the 3-channel BGR uint8 array OpenCV expects.

    Args:
        pixels: HxW grayscale, HxWx1, HxWx3 BGR or HxWx4 BGRA array,
            uint8 or uint16.

    Returns:
        HxWx3 BGR uint8 array.

    Raises:
        ValueError: If the shape or dtype is not supported.
    """
    if pixels.dtype == np.uint16:
        pixels = (pixels >> 8).astype(np.uint8)
    elif pixels.dtype != np.uint8:
        raise ValueError(f"Unsupported pixel type: {pixels.dtype}")

    if pixels.ndim == 3 and pixels.shape[2] == 1:
        pixels = np.ascontiguousarray(pixels[:, :, 0])

    if pixels.ndim == 2:
        return cv2.cvtColor(pixels, cv2.COLOR_GRAY2BGR)
    if pixels.ndim == 3 and pixels.shape[2] == 4:
        return cv2.cvtColor(pixels, cv2.COLOR_BGRA2BGR)
    if pixels.ndim == 3 and pixels.shape[2] == 3:
        return pixels
    raise ValueError(f"Unsupported image shape: {pixels.shape}")


def to_smaller_grayscale(image: NDArray[np.uint8], downscale_factor: int = 2) -> NDArray[np.uint8]:
    """Gray, shrink by ``downscale_factor`` and equalize a BGR image.

    Raises:
        ValueError: If the downscaled image would have no pixels.
    """
    height, width = image.shape[:2]
    small_width, small_height = width // downscale_factor, height // downscale_factor
    if small_width == 0 or small_height == 0:
        raise ValueError(f"Image of {width}x{height} pixels is too small to downscale by {downscale_factor}")

    gray = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    small = cv2.resize(gray, (small_width, small_height), interpolation=cv2.INTER_LINEAR)
    return cv2.equalizeHist(small)
