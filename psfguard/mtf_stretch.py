"""Midtone transfer function (MTF) auto-stretch of 16-bit image data."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from psfguard.debug import debug_mtf
from psfguard.image_analysis import ImageStatistics

_MAD_TO_SIGMA = 1.4826
_SIGMA_TO_MAD = 0.6745
_U16_MAX = 65535
_MAP_SIZE = 65536


@dataclass
class StretchParameters:
    """Target median position and shadow clipping (in MAD units) of a stretch."""

    factor: float = 0.2
    black_clipping: float = -2.8


def _max_value(bit_depth: int) -> int:
    if not 1 <= bit_depth <= 31:
        raise ValueError(f"bit depth must be between 1 and 31, got {bit_depth}")
    return (1 << bit_depth) - 1


def _divide(numerator: float, denominator: float) -> float:
    if denominator == 0:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator) * math.copysign(1.0, denominator)
    return numerator / denominator


def _to_u16(value: float) -> int:
    if math.isnan(value):
        return 0
    return int(min(max(value, 0.0), float(_U16_MAX)))


def normalize_u16(value: int, bit_depth: int = 16) -> float:
    """Scale a pixel value to 0..1 for the given bit depth."""
    return value / _max_value(bit_depth)


def denormalize_u16(value: float) -> int:
    """Map a 0..1 value back to 0..65535, rounding only the lower half."""
    if math.isnan(value):
        return 0
    scaled = min(max(value, 0.0), 1.0) * _U16_MAX
    if scaled < 32767.5:
        scaled += 0.5
    return int(scaled)


def midtones_transfer_function(midtone_balance: float, x: float) -> float:
    """Apply the midtone transfer function to x; 0 below the range, 1 above it."""
    if x > 0.0:
        if x < 1.0:
            return _divide(
                (midtone_balance - 1.0) * x,
                (2.0 * midtone_balance - 1.0) * x - midtone_balance,
            )
        return 1.0
    return 0.0


def _mtf_array(midtone_balance: float, x: np.ndarray) -> np.ndarray:
    with np.errstate(divide="ignore", invalid="ignore"):
        curve = (midtone_balance - 1.0) * x / (
            (2.0 * midtone_balance - 1.0) * x - midtone_balance
        )
    return np.where(x > 0.0, np.where(x < 1.0, curve, 1.0), 0.0)


def _denormalize_array(values: np.ndarray) -> np.ndarray:
    scaled = np.clip(values, 0.0, 1.0) * _U16_MAX
    scaled = np.where(scaled < 32767.5, scaled + 0.5, scaled)
    return np.nan_to_num(scaled, nan=0.0).astype(np.uint16)


def _statistics_mad(statistics: ImageStatistics) -> float:
    if statistics.mad is not None:
        return statistics.mad
    return statistics.std_dev * _SIGMA_TO_MAD


def _stretch_map(
    statistics: ImageStatistics,
    target_median: float,
    shadows_clipping: float,
    bit_depth: int,
) -> np.ndarray:
    max_value = _max_value(bit_depth)
    normalized_median = _to_u16(statistics.median) / max_value
    normalized_mad = _statistics_mad(statistics) / max_value
    clip = shadows_clipping * normalized_mad * _MAD_TO_SIGMA

    if normalized_median > 0.5:
        shadows = 0.0
        highlights = normalized_median - clip
        midtones = midtones_transfer_function(
            target_median, 1.0 - (highlights - normalized_median)
        )
    else:
        shadows = normalized_median + clip
        midtones = midtones_transfer_function(target_median, normalized_median - shadows)
        highlights = 1.0
        debug_mtf(
            f"normalized_median={normalized_median:.4f}, "
            f"normalized_mad={normalized_mad:.4f}, shadows={shadows:.4f}, "
            f"midtones={midtones:.4f}"
        )

    values = np.arange(_MAP_SIZE, dtype=np.float64) / max_value
    stretched = _mtf_array(midtones, 1.0 - highlights + values - shadows)
    return _denormalize_array(stretched)


def stretch_image_with_bit_depth(
    data: Sequence[int] | np.ndarray,
    statistics: ImageStatistics,
    factor: float,
    black_clipping: float,
    bit_depth: int,
) -> np.ndarray:
    """Stretch pixels so the image median lands near ``factor`` of full scale."""
    pixels = np.asarray(data)
    if pixels.size and (pixels.min() < 0 or pixels.max() > _U16_MAX):
        raise ValueError("pixel values must lie in 0..65535")
    mapping = _stretch_map(statistics, factor, black_clipping, bit_depth)
    return mapping[pixels.astype(np.intp)]


def stretch_image(
    data: Sequence[int] | np.ndarray,
    statistics: ImageStatistics,
    factor: float,
    black_clipping: float,
) -> np.ndarray:
    """Stretch 16-bit pixels with the MTF auto-stretch."""
    return stretch_image_with_bit_depth(data, statistics, factor, black_clipping, 16)