"""ROC curve and AUC for binary risk predictions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import numpy as np
import pandas as pd
from scipy.stats import rankdata

from .errors import UndefinedMetric
from .features import PredictionSeries
from .utils import get_logger

LOGGER = get_logger("discrimination")


@dataclass(frozen=True, eq=False)
class RocCurve:
    """ROC points ordered by decreasing threshold, starting at (0, 0)."""

    fpr: np.ndarray
    tpr: np.ndarray
    thresholds: np.ndarray
    auc: float

    def __len__(self) -> int:
        return len(self.fpr)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"threshold": self.thresholds, "fpr": self.fpr, "tpr": self.tpr})


def _require_both_classes(series: PredictionSeries) -> None:
    if series.positives == 0 or series.negatives == 0:
        msg = (
            f"AUC is undefined with {series.positives} positive and "
            f"{series.negatives} negative labels"
        )
        raise UndefinedMetric(msg)


def evaluate_discrimination(labels: Iterable, scores: Iterable) -> RocCurve:
    """Sweep every distinct score as a threshold and integrate the ROC curve.

    A record is called positive when its score is >= the threshold. Tied
    scores move FPR and TPR together, so the trapezoid over that step gives
    tied positive/negative pairs half credit.
    """
    series = PredictionSeries.from_arrays(labels, scores)
    _require_both_classes(series)

    order = np.argsort(-series.scores, kind="mergesort")
    sorted_scores = series.scores[order]
    sorted_labels = series.labels[order]

    # last position of each run of equal scores
    boundaries = np.r_[np.flatnonzero(np.diff(sorted_scores)), len(sorted_scores) - 1]
    true_pos = np.cumsum(sorted_labels)[boundaries]
    false_pos = (boundaries + 1) - true_pos

    tpr = np.r_[0.0, true_pos / series.positives]
    fpr = np.r_[0.0, false_pos / series.negatives]
    thresholds = np.r_[np.inf, sorted_scores[boundaries]]
    auc = float(np.sum(np.diff(fpr) * (tpr[1:] + tpr[:-1]) / 2.0))

    LOGGER.debug("ROC computed over %d thresholds; AUC=%.4f", len(thresholds) - 1, auc)
    return RocCurve(fpr=fpr, tpr=tpr, thresholds=thresholds, auc=auc)


def mann_whitney_auc(labels: Iterable, scores: Iterable) -> float:
    """AUC as P(random positive outranks random negative), ties counted 0.5."""
    series = PredictionSeries.from_arrays(labels, scores)
    _require_both_classes(series)

    ranks = rankdata(series.scores, method="average")
    n_pos = series.positives
    rank_sum = ranks[series.labels == 1].sum()
    return float((rank_sum - n_pos * (n_pos + 1) / 2.0) / (n_pos * series.negatives))
