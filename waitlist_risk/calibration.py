"""Calibration tables and the Hosmer-Lemeshow goodness-of-fit test.

Scores are grouped into ``num_bins`` bins and observed event rates are
compared with mean predicted risk per bin. Bins are right-closed and the
lowest bin also includes the minimum score. Two grouping policies exist:

* ``"quantile"``: equal-frequency bins cut at score quantiles (deciles by
  default), the usual Hosmer-Lemeshow grouping.
* ``"uniform"``: equal-width bins over the observed score range.

When ties or gaps leave fewer usable bins than requested, a
``DegenerateBinning`` error is raised instead of silently merging groups.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, NamedTuple, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.stats import chi2

from .errors import DegenerateBinning
from .features import PredictionSeries
from .utils import get_logger

LOGGER = get_logger("calibration")

BINNING_POLICIES: Sequence[str] = ("quantile", "uniform")


@dataclass(frozen=True)
class CalibrationBin:
    index: int
    lower: float
    upper: float
    count: int
    events: int
    mean_predicted: float
    observed_rate: float

    @property
    def expected_events(self) -> float:
        return self.count * self.mean_predicted


@dataclass(frozen=True)
class CalibrationTable:
    bins: Tuple[CalibrationBin, ...]

    def __len__(self) -> int:
        return len(self.bins)

    def __iter__(self):
        return iter(self.bins)

    @property
    def counts(self) -> Tuple[int, ...]:
        return tuple(item.count for item in self.bins)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [
                {
                    "bin": item.index,
                    "lower": item.lower,
                    "upper": item.upper,
                    "count": item.count,
                    "events": item.events,
                    "expected_events": item.expected_events,
                    "mean_predicted": item.mean_predicted,
                    "observed_rate": item.observed_rate,
                }
                for item in self.bins
            ]
        )


class GoodnessOfFit(NamedTuple):
    statistic: float
    p_value: float


def _bin_edges(scores: np.ndarray, num_bins: int, binning: str) -> np.ndarray:
    if binning == "quantile":
        edges = np.quantile(scores, np.linspace(0.0, 1.0, num_bins + 1))
    elif binning == "uniform":
        edges = np.linspace(scores.min(), scores.max(), num_bins + 1)
    else:
        msg = f"Unknown binning policy '{binning}'; choose from {list(BINNING_POLICIES)}"
        raise ValueError(msg)

    usable = len(np.unique(edges)) - 1
    if usable < num_bins:
        msg = (
            f"{binning} binning of {len(scores)} scores yields only {usable} distinct "
            f"boundaries for {num_bins} bins; scores are too heavily tied"
        )
        raise DegenerateBinning(msg, requested=num_bins, usable=usable)
    return edges


def _assign_bins(series: PredictionSeries, num_bins: int, binning: str) -> Tuple[np.ndarray, np.ndarray]:
    if num_bins < 1:
        raise ValueError("num_bins must be at least 1")
    if num_bins > len(series):
        msg = f"Cannot form {num_bins} bins from {len(series)} records"
        raise DegenerateBinning(msg, requested=num_bins, usable=len(series))

    edges = _bin_edges(series.scores, num_bins, binning)
    codes = pd.cut(series.scores, bins=edges, include_lowest=True, labels=False)
    codes = np.asarray(codes, dtype=int)

    counts = np.bincount(codes, minlength=num_bins)
    empty = int((counts == 0).sum())
    if empty:
        msg = f"{binning} binning left {empty} of {num_bins} bins empty"
        raise DegenerateBinning(msg, requested=num_bins, usable=num_bins - empty)
    return edges, codes


def evaluate_calibration(
    labels: Iterable,
    scores: Iterable,
    num_bins: int = 10,
    binning: str = "quantile",
) -> CalibrationTable:
    """Observed vs predicted event rates per score bin."""
    series = PredictionSeries.from_arrays(labels, scores)
    edges, codes = _assign_bins(series, num_bins, binning)

    frame = pd.DataFrame({"bin": codes, "label": series.labels, "score": series.scores})
    grouped = frame.groupby("bin", sort=True).agg(
        count=("label", "size"),
        events=("label", "sum"),
        mean_predicted=("score", "mean"),
        observed_rate=("label", "mean"),
    )

    bins = tuple(
        CalibrationBin(
            index=int(idx),
            lower=float(edges[idx]),
            upper=float(edges[idx + 1]),
            count=int(row["count"]),
            events=int(row["events"]),
            mean_predicted=float(row["mean_predicted"]),
            observed_rate=float(row["observed_rate"]),
        )
        for idx, row in grouped.iterrows()
    )
    LOGGER.debug("Calibration table built with %d %s bins", len(bins), binning)
    return CalibrationTable(bins=bins)


def goodness_of_fit_test(
    labels: Iterable,
    scores: Iterable,
    num_groups: int = 10,
    binning: str = "quantile",
) -> GoodnessOfFit:
    """Hosmer-Lemeshow statistic and its chi-square p-value (``num_groups - 2`` df).

    A large p-value means no evidence of miscalibration; the result is only
    reported, never enforced.
    """
    if num_groups <= 2:
        raise ValueError("num_groups must be greater than 2")

    table = evaluate_calibration(labels, scores, num_bins=num_groups, binning=binning)
    statistic = 0.0
    for item in table:
        variance = item.expected_events * (1.0 - item.mean_predicted)
        if variance <= 0:
            msg = (
                f"Bin {item.index} has zero expected variance "
                f"(mean predicted {item.mean_predicted:.3f})"
            )
            raise DegenerateBinning(msg, requested=num_groups, usable=num_groups - 1)
        statistic += (item.events - item.expected_events) ** 2 / variance

    dof = num_groups - 2
    p_value = float(chi2.sf(statistic, dof))
    LOGGER.debug("Hosmer-Lemeshow X2=%.4f, df=%d, p=%.4f", statistic, dof, p_value)
    return GoodnessOfFit(statistic=float(statistic), p_value=p_value)
