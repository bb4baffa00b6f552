import numpy as np
import pytest

from waitlist_risk import DegenerateBinning, evaluate_calibration, goodness_of_fit_test


@pytest.fixture
def calibrated_sample():
    rng = np.random.default_rng(42)
    scores = rng.uniform(0.05, 0.95, size=2000)
    labels = (rng.uniform(size=2000) < scores).astype(int)
    return labels, scores


def test_counts_sum_to_input_size(calibrated_sample):
    labels, scores = calibrated_sample
    table = evaluate_calibration(labels, scores)

    assert len(table) == 10
    assert sum(table.counts) == len(scores)
    assert max(table.counts) - min(table.counts) <= 1


def test_mean_predicted_lies_within_bin_range(calibrated_sample):
    labels, scores = calibrated_sample
    for binning in ("quantile", "uniform"):
        table = evaluate_calibration(labels, scores, num_bins=8, binning=binning)
        for item in table:
            assert item.lower <= item.mean_predicted <= item.upper
            assert 0.0 <= item.observed_rate <= 1.0
            assert item.events == pytest.approx(item.observed_rate * item.count)


def test_lowest_bin_includes_minimum():
    scores = np.linspace(0.0, 0.9, 10)
    labels = np.tile([0, 1], 5)
    table = evaluate_calibration(labels, scores, num_bins=5)

    first = table.bins[0]
    assert first.lower == pytest.approx(0.0)
    assert first.count == 2
    assert [item.index for item in table] == [0, 1, 2, 3, 4]


def test_uniform_bins_have_equal_width(calibrated_sample):
    labels, scores = calibrated_sample
    table = evaluate_calibration(labels, scores, num_bins=5, binning="uniform")
    widths = [item.upper - item.lower for item in table]

    assert widths == pytest.approx([widths[0]] * 5)
    assert sum(table.counts) == len(scores)


def test_heavy_ties_signal_degenerate_binning():
    scores = np.repeat([0.1, 0.2, 0.3], 40)
    labels = np.tile([0, 1], 60)

    with pytest.raises(DegenerateBinning) as excinfo:
        evaluate_calibration(labels, scores, num_bins=10)
    assert excinfo.value.requested == 10
    assert excinfo.value.usable < 10


def test_gap_in_uniform_bins_is_degenerate():
    scores = np.r_[np.full(20, 0.1), np.full(20, 0.9)]
    labels = np.tile([0, 1], 20)

    with pytest.raises(DegenerateBinning):
        evaluate_calibration(labels, scores, num_bins=4, binning="uniform")


def test_more_bins_than_records():
    with pytest.raises(DegenerateBinning):
        evaluate_calibration([0, 1, 1], [0.2, 0.5, 0.7], num_bins=10)


def test_unknown_policy_rejected(calibrated_sample):
    labels, scores = calibrated_sample
    with pytest.raises(ValueError, match="binning"):
        evaluate_calibration(labels, scores, binning="width")


def test_statistic_matches_two_cell_form(calibrated_sample):
    labels, scores = calibrated_sample
    table = evaluate_calibration(labels, scores)
    result = goodness_of_fit_test(labels, scores)

    expected = 0.0
    for item in table:
        exp_events = item.expected_events
        exp_nonevents = item.count - exp_events
        expected += (item.events - exp_events) ** 2 / exp_events
        expected += ((item.count - item.events) - exp_nonevents) ** 2 / exp_nonevents

    assert result.statistic == pytest.approx(expected)
    statistic, p_value = result
    assert statistic == result.statistic
    assert 0.0 <= p_value <= 1.0


def test_well_calibrated_scores_are_not_rejected(calibrated_sample):
    labels, scores = calibrated_sample
    assert goodness_of_fit_test(labels, scores).p_value > 0.001


def test_miscalibrated_scores_are_rejected(calibrated_sample):
    labels, scores = calibrated_sample
    result = goodness_of_fit_test(labels, scores / 3)

    assert result.p_value < 1e-6
    assert result.statistic > 50


def test_zero_variance_bin_is_degenerate():
    scores = np.r_[np.zeros(10), np.linspace(0.1, 0.9, 90)]
    labels = np.tile([0, 1], 50)

    with pytest.raises(DegenerateBinning):
        goodness_of_fit_test(labels, scores)


def test_group_count_must_leave_degrees_of_freedom(calibrated_sample):
    labels, scores = calibrated_sample
    with pytest.raises(ValueError):
        goodness_of_fit_test(labels, scores, num_groups=2)


def test_table_frame_columns(calibrated_sample):
    labels, scores = calibrated_sample
    frame = evaluate_calibration(labels, scores).to_frame()

    assert list(frame.columns) == [
        "bin",
        "lower",
        "upper",
        "count",
        "events",
        "expected_events",
        "mean_predicted",
        "observed_rate",
    ]
    assert frame["count"].sum() == 2000
