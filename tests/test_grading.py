import pytest

from psfguard.grading import StatisticalGrader
from psfguard.grading_stats import ImageStatistics, StatisticalGradingConfig


def make_image(image_id, hfr=2.5, stars=100, target_id=1, filter_name="Ha", minute=None):
    if minute is None:
        minute = image_id * 5
    return ImageStatistics(
        id=image_id,
        target_id=target_id,
        target_name="Test Target",
        filter_name=filter_name,
        hfr=hfr,
        star_count=stars,
        exposure_time=f"2023-08-27T{10 + minute // 60:02}:{minute % 60:02}:00Z",
        original_status=0,
        metadata_json="{}",
    )


def only(**enabled):
    flags = {
        "enable_hfr_analysis": False,
        "enable_star_count_analysis": False,
        "enable_distribution_analysis": False,
        "enable_cloud_detection": False,
    }
    flags.update(enabled)
    return StatisticalGradingConfig(**flags)


def test_analyze_images_empty():
    grader = StatisticalGrader(StatisticalGradingConfig())
    assert grader.analyze_images([]) == []


def test_analyze_images_insufficient_for_analysis():
    grader = StatisticalGrader(StatisticalGradingConfig())
    images = [make_image(1, hfr=2.5, stars=100), make_image(2, hfr=2.6, stars=95)]
    assert grader.analyze_images(images) == []


def test_statistical_grader_with_custom_config():
    config = StatisticalGradingConfig(
        enable_hfr_analysis=False,
        hfr_stddev_threshold=3.0,
        enable_star_count_analysis=True,
        star_count_stddev_threshold=1.5,
        enable_distribution_analysis=False,
        median_shift_threshold=0.2,
        enable_cloud_detection=True,
        cloud_threshold=0.15,
        cloud_baseline_count=3,
    )
    grader = StatisticalGrader(config)
    assert grader.config.enable_hfr_analysis is False
    assert grader.config.star_count_stddev_threshold == 1.5
    assert grader.config.cloud_threshold == 0.15
    assert grader.config.cloud_baseline_count == 3


def test_default_config_when_none_given():
    assert StatisticalGrader().config == StatisticalGradingConfig()


def test_cloud_detection():
    config = only(enable_cloud_detection=True, cloud_threshold=0.2, cloud_baseline_count=3)
    grader = StatisticalGrader(config)
    images = [make_image(i, hfr=2.5) for i in range(1, 4)]
    images.append(make_image(4, hfr=3.25))

    result = grader.analyze_images(images)
    assert len(result) == 1
    assert result[0].image_id == 4
    assert result[0].reason == "Cloud Detection"
    assert "30%" in result[0].details


def test_cloud_detection_input_order_does_not_matter():
    config = only(enable_cloud_detection=True, cloud_baseline_count=3)
    grader = StatisticalGrader(config)
    images = [make_image(i, hfr=2.5) for i in range(1, 4)] + [make_image(4, hfr=3.25)]
    result = grader.analyze_images(list(reversed(images)))
    assert [r.image_id for r in result] == [4]


def test_cloud_baseline_rebuilds_after_event():
    config = only(enable_cloud_detection=True, cloud_baseline_count=3)
    grader = StatisticalGrader(config)
    hfrs = [2.5, 2.5, 2.5, 3.25, 3.25, 3.25, 2.5]
    images = [make_image(i, hfr=h) for i, h in enumerate(hfrs, start=1)]
    result = grader.analyze_images(images)
    assert [r.image_id for r in result] == [4]


def test_cloud_detection_by_star_count_drop():
    config = only(enable_cloud_detection=True, cloud_baseline_count=3)
    grader = StatisticalGrader(config)
    images = [make_image(i, hfr=None, stars=100) for i in range(1, 4)]
    images.append(make_image(4, hfr=None, stars=70))

    result = grader.analyze_images(images)
    assert len(result) == 1
    assert result[0].image_id == 4
    assert result[0].reason == "Cloud Detection (Stars)"
    assert "30% below baseline 100" in result[0].details


def test_star_cloud_check_skipped_when_hfr_cloud_found():
    config = only(enable_cloud_detection=True, cloud_baseline_count=3)
    grader = StatisticalGrader(config)
    images = [make_image(i, hfr=2.5, stars=100) for i in range(1, 4)]
    images.append(make_image(4, hfr=3.25, stars=100))
    images.append(make_image(5, hfr=3.25, stars=10))

    result = grader.analyze_images(images)
    assert [r.reason for r in result] == ["Cloud Detection"]


def test_hfr_outlier_rejected():
    grader = StatisticalGrader(only(enable_hfr_analysis=True))
    images = [make_image(i, hfr=2.0) for i in range(1, 10)]
    images.append(make_image(10, hfr=10.0))

    result = grader.analyze_images(images)
    assert [r.image_id for r in result] == [10]
    assert result[0].reason == "Statistical HFR"
    assert result[0].details.startswith("HFR 10.000 is ")
    assert "mean 2.800" in result[0].details


def test_star_count_outlier_rejected():
    grader = StatisticalGrader(only(enable_star_count_analysis=True))
    images = [make_image(i, stars=100) for i in range(1, 10)]
    images.append(make_image(10, stars=10))

    result = grader.analyze_images(images)
    assert [r.image_id for r in result] == [10]
    assert result[0].reason == "Statistical Stars"
    assert "mean 91" in result[0].details


def test_identical_values_give_no_outliers():
    grader = StatisticalGrader(
        only(enable_hfr_analysis=True, enable_star_count_analysis=True)
    )
    images = [make_image(i, hfr=2.0, stars=50) for i in range(1, 6)]
    assert grader.analyze_images(images) == []


def test_distribution_hfr_outlier_rejected():
    grader = StatisticalGrader(only(enable_distribution_analysis=True))
    hfrs = [1.0, 2.0, 3.0, 4.0, 20.0]
    images = [make_image(i, hfr=h) for i, h in enumerate(hfrs, start=1)]

    result = grader.analyze_images(images)
    assert [r.image_id for r in result] == [5]
    assert result[0].reason == "Distribution HFR"
    assert "median 3.000" in result[0].details


def test_distribution_skipped_when_mad_is_zero():
    grader = StatisticalGrader(only(enable_distribution_analysis=True))
    images = [make_image(i, hfr=2.0) for i in range(1, 10)]
    images.append(make_image(10, hfr=10.0))
    assert grader.analyze_images(images) == []


def test_distribution_star_outlier_rejected():
    grader = StatisticalGrader(only(enable_distribution_analysis=True))
    counts = [100, 200, 300, 400, 2000]
    images = [make_image(i, hfr=None, stars=c) for i, c in enumerate(counts, start=1)]

    result = grader.analyze_images(images)
    assert [r.image_id for r in result] == [5]
    assert result[0].reason == "Distribution Stars"


def test_groups_are_separate_by_target():
    grader = StatisticalGrader(only(enable_hfr_analysis=True))
    images = [
        make_image(1, hfr=2.0, target_id=1),
        make_image(2, hfr=2.0, target_id=1),
        make_image(3, hfr=50.0, target_id=2),
        make_image(4, hfr=2.0, target_id=2),
    ]
    assert grader.analyze_images(images) == []


@pytest.mark.parametrize("filter_names", [["Ha", "OIII", "SII"], ["L", "R", "G"]])
def test_groups_are_separate_by_filter(filter_names):
    grader = StatisticalGrader(StatisticalGradingConfig())
    images = [
        make_image(i, hfr=2.0 + i, filter_name=name)
        for i, name in enumerate(filter_names, start=1)
    ]
    assert grader.analyze_images(images) == []


def test_all_checks_disabled_gives_nothing():
    grader = StatisticalGrader(only())
    images = [make_image(i, hfr=2.0) for i in range(1, 10)]
    images.append(make_image(10, hfr=10.0, stars=1))
    assert grader.analyze_images(images) == []