"""Pixel-level helpers shared by the quality metrics."""

from typing import Tuple

import numpy as np

_LUMA = np.array([0.299, 0.587, 0.114], dtype="float64")


def to_grayscale(pixels: np.ndarray) -> np.ndarray:
    """Convert a raster buffer to integer-valued luma.

    Args:
        pixels: HxW, HxWx1, HxWx3 or HxWx4 array, typically uint8. Alpha is
            ignored.

    Returns:
        Float64 HxW array holding values rounded to whole numbers in [0, 255].
    """

    if pixels.ndim == 2:
        return pixels.astype("float64")
    if pixels.shape[-1] == 1:
        return pixels[..., 0].astype("float64")
    luma = pixels[..., :3].astype("float64") @ _LUMA
    return np.floor(luma + 0.5)


def sample_nearest(gray: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    """Nearest-neighbor downsample using ``floor(i * dim / size)`` source indices."""

    height, width = size
    y_indices = (np.arange(height) * gray.shape[0]) // height
    x_indices = (np.arange(width) * gray.shape[1]) // width
    return gray[np.ix_(y_indices, x_indices)]


def sobel_magnitude(gray: np.ndarray) -> np.ndarray:
    """3x3 Sobel gradient magnitude, rounded and clipped to [0, 255].

    Border pixels have no full neighborhood and stay at zero.
    """

    magnitude = np.zeros(gray.shape, dtype="float64")
    if gray.shape[0] < 3 or gray.shape[1] < 3:
        return magnitude
    top = gray[:-2]
    mid = gray[1:-1]
    bottom = gray[2:]
    gx = (top[:, 2:] + 2.0 * mid[:, 2:] + bottom[:, 2:]) - (
        top[:, :-2] + 2.0 * mid[:, :-2] + bottom[:, :-2]
    )
    gy = (bottom[:, :-2] + 2.0 * bottom[:, 1:-1] + bottom[:, 2:]) - (
        top[:, :-2] + 2.0 * top[:, 1:-1] + top[:, 2:]
    )
    magnitude[1:-1, 1:-1] = np.rint(np.minimum(255.0, np.hypot(gx, gy)))
    return magnitude
