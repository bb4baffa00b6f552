"""Cohort summaries and export helpers for evaluation outputs."""

from __future__ import annotations

from pathlib import Path
from typing import Dict

import pandas as pd

from .calibration import CalibrationTable, GoodnessOfFit
from .crossval import CrossValidationResult
from .discrimination import RocCurve
from .features import EVENT_COLUMN, OUTCOME_COLUMN, WaitlistDataset
from .utils import ensure_directory, get_logger

LOGGER = get_logger("report")


def _safe_mean(series: pd.Series) -> float:
    clean = series.dropna()
    return float(clean.mean()) if not clean.empty else float("nan")


def compute_cohort_summary(dataset: WaitlistDataset) -> Dict[str, object]:
    frame = dataset.frame
    summary: Dict[str, object] = {
        "n_records": len(frame),
        "n_dropped": dataset.dropped,
        "n_deaths": int(frame[OUTCOME_COLUMN].sum()),
        "death_rate": _safe_mean(frame[OUTCOME_COLUMN].astype(float)),
        "mean_age": _safe_mean(frame["age"]),
        "median_futime": float(frame["futime"].median()) if len(frame) else float("nan"),
        "event_counts": frame[EVENT_COLUMN].value_counts().sort_index().to_dict(),
    }
    by_abo = frame.groupby("abo", observed=False)[OUTCOME_COLUMN].mean()
    summary["death_rate_by_abo"] = {str(level): float(rate) for level, rate in by_abo.items()}
    return summary


def export_results(
    roc: RocCurve,
    calibration: CalibrationTable,
    coefficients: pd.DataFrame,
    out_dir: Path | str,
) -> Dict[str, Path]:
    """Write the ROC series, calibration table and coefficient table as CSV."""
    directory = ensure_directory(out_dir)
    outputs = {
        "roc_curve": directory / "roc_curve.csv",
        "calibration_table": directory / "calibration_table.csv",
        "coefficients": directory / "coefficients.csv",
    }
    roc.to_frame().to_csv(outputs["roc_curve"], index=False)
    calibration.to_frame().to_csv(outputs["calibration_table"], index=False)
    coefficients.to_csv(outputs["coefficients"], index=False)
    for name, path in outputs.items():
        LOGGER.info("%s exported to %s", name, path)
    return outputs


def write_markdown_summary(
    cohort: Dict[str, object],
    roc: RocCurve,
    goodness: GoodnessOfFit,
    cv: CrossValidationResult,
    out_path: Path,
) -> Path:
    ensure_directory(out_path.parent)
    events = cohort.get("event_counts", {}) or {}
    by_abo = cohort.get("death_rate_by_abo", {}) or {}

    lines = [
        "# Waitlist Mortality Model Summary\n",
        (
            f"- Records: {cohort.get('n_records', 0)} "
            f"({cohort.get('n_dropped', 0)} dropped for missing values)"
        ),
        (
            f"- Deaths before transplant: {cohort.get('n_deaths', 0)} "
            f"({cohort.get('death_rate', float('nan')):.2%})"
        ),
        f"- Mean age: {cohort.get('mean_age', float('nan')):.1f}; median days listed: {cohort.get('median_futime', float('nan')):.0f}",
        "- Events: " + ", ".join(f"{name}={count}" for name, count in events.items()),
        "- Death rate by blood type: " + ", ".join(f"{level}={rate:.2%}" for level, rate in by_abo.items()),
        f"- AUC: {roc.auc:.3f}",
        f"- Hosmer-Lemeshow: X2={goodness.statistic:.3f}, p-value={goodness.p_value:.3f}",
        (
            f"- {cv.k}-fold CV {cv.cost} error: {cv.error:.4f} "
            f"(bias-adjusted {cv.adjusted_error:.4f})"
        ),
    ]

    content = "\n".join(lines) + "\n"
    out_path.write_text(content)
    LOGGER.info("Summary written to %s", out_path)
    return out_path
