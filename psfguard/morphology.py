"""Binary and grayscale morphology on 8-bit images with reflected borders."""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum

import numpy as np

_U8_MAX = 255


class MorphKernelType(Enum):
    """Shape of the structuring element."""

    RECTANGLE = "rectangle"
    ELLIPSE = "ellipse"
    CROSS = "cross"


def _structuring_element(kind: MorphKernelType, size: int) -> np.ndarray:
    """Build a size x size structuring element anchored at its centre."""
    if kind is MorphKernelType.RECTANGLE:
        return np.ones((size, size), dtype=bool)

    kernel = np.zeros((size, size), dtype=bool)
    anchor = size // 2
    if kind is MorphKernelType.CROSS:
        kernel[anchor, :] = True
        kernel[:, anchor] = True
        return kernel

    radius = size // 2
    centre = size // 2
    inv_r2 = 1.0 / (radius * radius) if radius else 0.0
    for row in range(size):
        dy = row - radius
        if abs(dy) > radius:
            continue
        dx = round(centre * ((radius * radius - dy * dy) * inv_r2) ** 0.5)
        start = max(centre - dx, 0)
        stop = min(centre + dx + 1, size)
        kernel[row, start:stop] = True
    return kernel


def _as_image(image: Sequence[int] | np.ndarray, width: int, height: int) -> np.ndarray:
    pixels = np.asarray(image)
    if pixels.size != width * height:
        raise ValueError(
            f"image of {pixels.size} pixels does not match {width}x{height}"
        )
    if pixels.size and (pixels.min() < 0 or pixels.max() > _U8_MAX):
        raise ValueError("pixel values must lie in 0..255")
    return pixels.astype(np.uint8).reshape(height, width)


class Morphology:
    """Erosion, dilation, opening and closing with a fixed structuring element.

    Every operation returns a new flat array of ``width * height`` 8-bit pixels
    and leaves its input untouched. Borders are mirrored, edge pixel included.
    """

    def __init__(
        self, kernel_size: int, kernel_type: MorphKernelType = MorphKernelType.ELLIPSE
    ) -> None:
        if kernel_size < 1:
            raise ValueError(f"kernel size must be at least 1, got {kernel_size}")
        self.kernel_size = kernel_size
        self.kernel_type = MorphKernelType(kernel_type)
        self._kernel = _structuring_element(self.kernel_type, kernel_size)

    @classmethod
    def new_ellipse(cls, kernel_size: int) -> Morphology:
        """Elliptical element, suited to round stars."""
        return cls(kernel_size, MorphKernelType.ELLIPSE)

    @classmethod
    def new_rectangle(cls, kernel_size: int) -> Morphology:
        """Rectangular element."""
        return cls(kernel_size, MorphKernelType.RECTANGLE)

    def _apply(self, pixels: np.ndarray, reducer) -> np.ndarray:
        height, width = pixels.shape
        size = self.kernel_size
        anchor = size // 2
        padded = np.pad(
            pixels,
            ((anchor, size - 1 - anchor), (anchor, size - 1 - anchor)),
            mode="symmetric",
        )
        result: np.ndarray | None = None
        for row, col in np.argwhere(self._kernel):
            window = padded[row:row + height, col:col + width]
            result = window.copy() if result is None else reducer(result, window)
        assert result is not None
        return result

    def _dilate(self, pixels: np.ndarray) -> np.ndarray:
        return self._apply(pixels, np.maximum)

    def _erode(self, pixels: np.ndarray) -> np.ndarray:
        return self._apply(pixels, np.minimum)

    def dilate(self, image, width: int, height: int) -> np.ndarray:
        """Grow bright regions by the structuring element."""
        return self._dilate(_as_image(image, width, height)).ravel()

    def erode(self, image, width: int, height: int) -> np.ndarray:
        """Shrink bright regions by the structuring element."""
        return self._erode(_as_image(image, width, height)).ravel()

    def opening(self, image, width: int, height: int) -> np.ndarray:
        """Erode then dilate: removes specks smaller than the element."""
        pixels = _as_image(image, width, height)
        return self._dilate(self._erode(pixels)).ravel()

    def closing(self, image, width: int, height: int) -> np.ndarray:
        """Dilate then erode: fills gaps smaller than the element."""
        pixels = _as_image(image, width, height)
        return self._erode(self._dilate(pixels)).ravel()

    def hot_pixel_filter(self, image, width: int, height: int) -> np.ndarray:
        """Remove isolated hot pixels by opening, then restore shapes by closing."""
        opened = self.opening(image, width, height)
        return self.closing(opened, width, height)