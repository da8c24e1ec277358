"""Statistical grading: flags outliers and cloud events within target/filter groups."""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Sequence
from itertools import groupby

from psfguard.grading_stats import (
    FilterStatistics,
    ImageStatistics,
    StatisticalGradingConfig,
    StatisticalRejection,
    median,
)

_MAD_TO_SIGMA = 1.4826
_MIN_GROUP_SIZE = 3


def _ratio(numerator: float, denominator: float) -> float:
    """Divide like IEEE floats do: a zero denominator gives inf or nan."""
    if denominator == 0:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator) * math.copysign(1.0, denominator)
    return numerator / denominator


class StatisticalGrader:
    """Finds images whose HFR or star count stands out from their group."""

    def __init__(self, config: StatisticalGradingConfig | None = None) -> None:
        self.config = config if config is not None else StatisticalGradingConfig()

    def analyze_images(self, images: Iterable[ImageStatistics]) -> list[StatisticalRejection]:
        """Return the rejections found across all target/filter groups.

        Groups of fewer than three images are not analysed.
        """
        ordered = sorted(
            images, key=lambda img: (img.target_id, img.filter_name, img.exposure_time)
        )
        rejections: list[StatisticalRejection] = []
        config = self.config

        for _, grouped in groupby(ordered, key=lambda img: (img.target_id, img.filter_name)):
            group = list(grouped)
            if len(group) < _MIN_GROUP_SIZE:
                continue

            stats = FilterStatistics.from_images(group)
            if config.enable_hfr_analysis:
                rejections.extend(self._hfr_outliers(group, stats))
            if config.enable_star_count_analysis:
                rejections.extend(self._star_count_outliers(group, stats))
            if config.enable_distribution_analysis:
                rejections.extend(self._distribution_outliers(group, stats))
            if config.enable_cloud_detection:
                rejections.extend(self._cloud_sequence(group))

        return rejections

    def _hfr_outliers(
        self, images: Sequence[ImageStatistics], stats: FilterStatistics
    ) -> Iterator[StatisticalRejection]:
        if stats.hfr_stddev == 0.0:
            return
        threshold = self.config.hfr_stddev_threshold
        for image in images:
            if image.hfr is None:
                continue
            z_score = abs(image.hfr - stats.hfr_mean) / stats.hfr_stddev
            if z_score > threshold:
                yield StatisticalRejection(
                    image_id=image.id,
                    reason="Statistical HFR",
                    details=(
                        f"HFR {image.hfr:.3f} is {z_score:.1f}σ from mean "
                        f"{stats.hfr_mean:.3f} (threshold: {threshold:.1f}σ)"
                    ),
                )

    def _star_count_outliers(
        self, images: Sequence[ImageStatistics], stats: FilterStatistics
    ) -> Iterator[StatisticalRejection]:
        if stats.star_count_stddev == 0.0:
            return
        threshold = self.config.star_count_stddev_threshold
        for image in images:
            if image.star_count is None:
                continue
            z_score = abs(image.star_count - stats.star_count_mean) / stats.star_count_stddev
            if z_score > threshold:
                yield StatisticalRejection(
                    image_id=image.id,
                    reason="Statistical Stars",
                    details=(
                        f"Star count {image.star_count} is {z_score:.1f}σ from mean "
                        f"{stats.star_count_mean:.0f} (threshold: {threshold:.1f}σ)"
                    ),
                )

    def _distribution_outliers(
        self, images: Sequence[ImageStatistics], stats: FilterStatistics
    ) -> Iterator[StatisticalRejection]:
        config = self.config

        if stats.hfr_stddev > 0.0:
            shift = _ratio(abs(stats.hfr_median - stats.hfr_mean), stats.hfr_mean)
            if shift > config.median_shift_threshold:
                mad = (
                    median(abs(v - stats.hfr_median) for v in stats.hfr_values)
                    * _MAD_TO_SIGMA
                )
                if mad > 0.0:
                    threshold = config.hfr_stddev_threshold
                    for image in images:
                        if image.hfr is None:
                            continue
                        z_score = abs(image.hfr - stats.hfr_median) / mad
                        if z_score > threshold:
                            yield StatisticalRejection(
                                image_id=image.id,
                                reason="Distribution HFR",
                                details=(
                                    f"HFR {image.hfr:.3f} deviates {z_score:.1f} MAD from "
                                    f"median {stats.hfr_median:.3f} "
                                    f"(threshold: {threshold:.1f})"
                                ),
                            )

        if stats.star_count_stddev > 0.0:
            shift = _ratio(
                abs(stats.star_count_median - stats.star_count_mean), stats.star_count_mean
            )
            if shift > config.median_shift_threshold:
                mad = (
                    median(abs(v - stats.star_count_median) for v in stats.star_counts)
                    * _MAD_TO_SIGMA
                )
                if mad > 0.0:
                    threshold = config.star_count_stddev_threshold
                    for image in images:
                        if image.star_count is None:
                            continue
                        z_score = abs(image.star_count - stats.star_count_median) / mad
                        if z_score > threshold:
                            yield StatisticalRejection(
                                image_id=image.id,
                                reason="Distribution Stars",
                                details=(
                                    f"Star count {image.star_count} deviates {z_score:.1f} "
                                    f"MAD from median {stats.star_count_median:.0f} "
                                    f"(threshold: {threshold:.1f})"
                                ),
                            )

    def _cloud_sequence(self, images: Sequence[ImageStatistics]) -> list[StatisticalRejection]:
        if len(images) < _MIN_GROUP_SIZE:
            return []

        threshold = self.config.cloud_threshold

        def hfr_event(value: float, baseline: float) -> tuple[float, StatisticalRejection] | None:
            ratio = _ratio(value - baseline, baseline)
            return ratio

        rejections: list[StatisticalRejection] = []
        for image, value, baseline in self._baseline_events(
            images, lambda img: img.hfr, rising=True
        ):
            ratio = _ratio(value - baseline, baseline)
            rejections.append(
                StatisticalRejection(
                    image_id=image.id,
                    reason="Cloud Detection",
                    details=(
                        f"HFR {value:.3f} is {ratio * 100.0:.0f}% above baseline "
                        f"{baseline:.3f} (threshold: {threshold * 100.0:.0f}%)"
                    ),
                )
            )
        del hfr_event

        if rejections:
            return rejections

        for image, value, baseline in self._baseline_events(
            images,
            lambda img: None if img.star_count is None else float(img.star_count),
            rising=False,
        ):
            ratio = _ratio(baseline - value, baseline)
            rejections.append(
                StatisticalRejection(
                    image_id=image.id,
                    reason="Cloud Detection (Stars)",
                    details=(
                        f"Star count {image.star_count} is {ratio * 100.0:.0f}% below "
                        f"baseline {baseline:.0f} (threshold: {threshold * 100.0:.0f}%)"
                    ),
                )
            )
        return rejections

    def _baseline_events(
        self,
        images: Sequence[ImageStatistics],
        value_of,
        *,
        rising: bool,
    ) -> Iterator[tuple[ImageStatistics, float, float]]:
        """Yield (image, value, baseline median) where the value jumps past the threshold.

        After an event the baseline is rebuilt from that image onward.
        """
        count = self.config.cloud_baseline_count
        threshold = self.config.cloud_threshold
        baseline: list[float] = []
        established = False

        for image in images:
            value = value_of(image)
            if value is None:
                continue

            if not established:
                baseline.append(value)
                if len(baseline) >= count:
                    established = True
                continue

            baseline_median = median(baseline)
            if rising:
                ratio = _ratio(value - baseline_median, baseline_median)
            else:
                ratio = _ratio(baseline_median - value, baseline_median)

            if ratio > threshold:
                yield image, value, baseline_median
                established = False
                baseline = [value]
            else:
                if len(baseline) >= count:
                    baseline.pop(0)
                baseline.append(value)