"""Core package for the waitlist_risk project."""

from .calibration import CalibrationBin, CalibrationTable, GoodnessOfFit, evaluate_calibration, goodness_of_fit_test
from .crossval import CrossValidationResult, cross_validate
from .discrimination import RocCurve, evaluate_discrimination, mann_whitney_auc
from .errors import (
    DegenerateBinning,
    FoldFitFailure,
    MissingValueError,
    ModelFitError,
    UndefinedMetric,
    UnknownCategoryLevel,
    WaitlistRiskError,
)
from .features import PredictionSeries, WaitlistDataset, build_dataset, drop_missing
from .load import read_waitlist_csv, simulate_waitlist
from .model import FittedModel, coefficient_table, fit_logistic
from .predict import format_percentage, predict_one, predict_percentage
from .report import compute_cohort_summary, export_results, write_markdown_summary
from .utils import get_logger, setup_logging

__all__ = [
    "CalibrationBin",
    "CalibrationTable",
    "CrossValidationResult",
    "DegenerateBinning",
    "FittedModel",
    "FoldFitFailure",
    "GoodnessOfFit",
    "MissingValueError",
    "ModelFitError",
    "PredictionSeries",
    "RocCurve",
    "UndefinedMetric",
    "UnknownCategoryLevel",
    "WaitlistDataset",
    "WaitlistRiskError",
    "build_dataset",
    "coefficient_table",
    "compute_cohort_summary",
    "cross_validate",
    "drop_missing",
    "evaluate_calibration",
    "evaluate_discrimination",
    "export_results",
    "fit_logistic",
    "format_percentage",
    "get_logger",
    "goodness_of_fit_test",
    "mann_whitney_auc",
    "predict_one",
    "predict_percentage",
    "read_waitlist_csv",
    "setup_logging",
    "simulate_waitlist",
    "write_markdown_summary",
]
