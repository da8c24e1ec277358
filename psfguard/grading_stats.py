"""Per-image quality figures and the statistics the statistical grader works from."""

from __future__ import annotations

import json
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any


@dataclass
class StatisticalGradingConfig:
    """Switches and thresholds for statistical grading."""

    enable_hfr_analysis: bool = True
    hfr_stddev_threshold: float = 2.0
    enable_star_count_analysis: bool = True
    star_count_stddev_threshold: float = 2.0
    enable_distribution_analysis: bool = True
    median_shift_threshold: float = 0.10
    enable_cloud_detection: bool = True
    cloud_threshold: float = 0.20
    cloud_baseline_count: int = 5


@dataclass
class ImageStatistics:
    """Quality figures of one acquired image, taken from its metadata."""

    id: int
    target_id: int
    target_name: str
    filter_name: str
    hfr: float | None
    star_count: int | None
    exposure_time: str
    original_status: int
    metadata_json: str


@dataclass
class StatisticalRejection:
    """An image the statistical grader would reject, with why."""

    image_id: int
    reason: str
    details: str


def median(values: Iterable[float]) -> float:
    """Return the median of the values, or 0.0 when there are none."""
    ordered = sorted(values)
    if not ordered:
        return 0.0
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2.0
    return float(ordered[mid])


def sample_stddev(values: Sequence[float], mean: float) -> float:
    """Return the sample standard deviation about ``mean``; 0.0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    variance = sum((x - mean) ** 2 for x in values) / (len(values) - 1)
    return math.sqrt(variance)


@dataclass
class FilterStatistics:
    """Distribution of HFR and star counts within one target/filter group."""

    filter_name: str
    hfr_values: list[float] = field(default_factory=list)
    star_counts: list[int] = field(default_factory=list)
    hfr_mean: float = 0.0
    hfr_median: float = 0.0
    hfr_stddev: float = 0.0
    star_count_mean: float = 0.0
    star_count_median: float = 0.0
    star_count_stddev: float = 0.0

    @classmethod
    def from_images(cls, images: Sequence[ImageStatistics]) -> FilterStatistics:
        """Compute the statistics of a non-empty group of images.

        The stored value lists are sorted ascending.
        """
        if not images:
            raise ValueError("cannot compute statistics of an empty image group")

        hfr_values = sorted(img.hfr for img in images if img.hfr is not None)
        star_counts = sorted(img.star_count for img in images if img.star_count is not None)

        hfr_mean = sum(hfr_values) / len(hfr_values) if hfr_values else 0.0
        star_count_mean = sum(star_counts) / len(star_counts) if star_counts else 0.0

        return cls(
            filter_name=images[0].filter_name,
            hfr_values=hfr_values,
            star_counts=star_counts,
            hfr_mean=hfr_mean,
            hfr_median=median(hfr_values),
            hfr_stddev=sample_stddev(hfr_values, hfr_mean),
            star_count_mean=star_count_mean,
            star_count_median=median(star_counts),
            star_count_stddev=sample_stddev(star_counts, star_count_mean),
        )


def _required_str(data: dict[str, Any], key: str) -> str:
    if key not in data:
        raise ValueError(f"missing field `{key}`")
    value = data[key]
    if not isinstance(value, str):
        raise ValueError(f"field `{key}` must be a string")
    return value


def _optional_float(data: dict[str, Any], key: str) -> float | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"field `{key}` must be a number")
    return float(value)


def _optional_int(data: dict[str, Any], key: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field `{key}` must be an integer")
    if not -(2**31) <= value < 2**31:
        raise ValueError(f"field `{key}` is out of range")
    return value


def parse_image_metadata(
    image_id: int,
    target_id: int,
    target_name: str,
    metadata_json: str,
    filter_name: str,
    original_status: int,
) -> ImageStatistics:
    """Build image statistics from an image's JSON metadata.

    Raises ValueError when the JSON is malformed or lacks required fields.
    """
    data = json.loads(metadata_json)
    if not isinstance(data, dict):
        raise ValueError("image metadata must be a JSON object")

    _required_str(data, "FileName")
    _required_str(data, "FilterName")
    exposure_time = _required_str(data, "ExposureStartTime")

    return ImageStatistics(
        id=image_id,
        target_id=target_id,
        target_name=target_name,
        filter_name=filter_name,
        hfr=_optional_float(data, "HFR"),
        star_count=_optional_int(data, "DetectedStars"),
        exposure_time=exposure_time,
        original_status=original_status,
        metadata_json=metadata_json,
    )