import numpy as np
import pytest
from sklearn.metrics import roc_auc_score

from waitlist_risk import MissingValueError, UndefinedMetric, evaluate_discrimination, mann_whitney_auc


def test_known_curve_points():
    roc = evaluate_discrimination([0, 0, 1, 1], [0.1, 0.4, 0.35, 0.8])

    assert roc.auc == pytest.approx(0.75)
    assert roc.fpr.tolist() == [0.0, 0.0, 0.5, 0.5, 1.0]
    assert roc.tpr.tolist() == [0.0, 0.5, 0.5, 1.0, 1.0]
    assert roc.thresholds[0] == np.inf
    assert roc.thresholds[1:].tolist() == [0.8, 0.4, 0.35, 0.1]


def test_perfect_and_inverted_ranking():
    labels = [0, 0, 0, 1, 1]
    scores = [0.1, 0.2, 0.3, 0.8, 0.9]

    assert evaluate_discrimination(labels, scores).auc == pytest.approx(1.0)
    assert evaluate_discrimination(labels, [1 - s for s in scores]).auc == pytest.approx(0.0)


def test_all_tied_scores_split_credit():
    roc = evaluate_discrimination([0, 1, 0, 1], [0.5, 0.5, 0.5, 0.5])

    assert roc.auc == pytest.approx(0.5)
    assert len(roc) == 2


def test_curve_is_monotonic_and_bounded():
    rng = np.random.default_rng(11)
    labels = rng.integers(0, 2, size=300)
    scores = np.round(rng.uniform(size=300), 2)

    roc = evaluate_discrimination(labels, scores)

    assert np.all(np.diff(roc.fpr) >= 0)
    assert np.all(np.diff(roc.tpr) >= 0)
    assert np.all(np.diff(roc.thresholds) < 0)
    assert roc.fpr[-1] == pytest.approx(1.0)
    assert roc.tpr[-1] == pytest.approx(1.0)
    assert 0.0 <= roc.auc <= 1.0


def test_sweep_agrees_with_rank_formulation_and_sklearn():
    rng = np.random.default_rng(5)
    labels = rng.integers(0, 2, size=500)
    # rounding creates plenty of ties across classes
    scores = np.round(np.clip(0.3 * labels + rng.normal(0.35, 0.2, size=500), 0, 1), 1)

    sweep = evaluate_discrimination(labels, scores).auc

    assert sweep == pytest.approx(mann_whitney_auc(labels, scores), abs=1e-12)
    assert sweep == pytest.approx(roc_auc_score(labels, scores), abs=1e-12)


def test_uninformative_scores_give_half():
    rng = np.random.default_rng(2024)
    labels = (rng.uniform(size=20000) < 0.3).astype(int)
    scores = rng.permutation(rng.uniform(size=20000))

    assert evaluate_discrimination(labels, scores).auc == pytest.approx(0.5, abs=0.03)


@pytest.mark.parametrize("labels", [[1, 1, 1], [0, 0, 0]])
def test_single_class_is_undefined(labels):
    with pytest.raises(UndefinedMetric):
        evaluate_discrimination(labels, [0.2, 0.5, 0.7])
    with pytest.raises(UndefinedMetric):
        mann_whitney_auc(labels, [0.2, 0.5, 0.7])


def test_input_validation():
    with pytest.raises(ValueError):
        evaluate_discrimination([0, 1], [0.5])
    with pytest.raises(ValueError):
        evaluate_discrimination([], [])
    with pytest.raises(ValueError):
        evaluate_discrimination([0, 2], [0.1, 0.2])
    with pytest.raises(ValueError):
        evaluate_discrimination([0, 1], [0.1, 1.2])
    with pytest.raises(MissingValueError):
        evaluate_discrimination([0, 1], [0.1, float("nan")])


def test_roc_frame_export():
    frame = evaluate_discrimination([0, 1, 1], [0.2, 0.6, 0.9]).to_frame()

    assert list(frame.columns) == ["threshold", "fpr", "tpr"]
    assert len(frame) == 4
