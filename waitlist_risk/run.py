"""Command-line entrypoint running the waitlist risk workflow end to end."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Dict, Sequence

import pandas as pd

from .calibration import BINNING_POLICIES, evaluate_calibration, goodness_of_fit_test
from .crossval import COST_FUNCTIONS, cross_validate
from .discrimination import evaluate_discrimination
from .errors import WaitlistRiskError
from .features import build_dataset
from .load import read_waitlist_csv, simulate_waitlist
from .model import coefficient_table, fit_logistic
from .predict import format_percentage, predict_one
from .report import compute_cohort_summary, export_results, write_markdown_summary
from .utils import DEFAULT_SEED, ensure_directory, get_logger, setup_logging

LOGGER = get_logger("run")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Transplant waitlist mortality model evaluation")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--data", type=Path, help="CSV with age, sex, abo, futime and event columns")
    source.add_argument("--simulate", type=int, metavar="N", help="Use N synthetic records instead of a CSV")
    parser.add_argument("--out_dir", type=Path, required=True, help="Directory for outputs")
    parser.add_argument("--seed", type=int, default=DEFAULT_SEED, help="Seed for simulation and fold assignment")
    parser.add_argument("--folds", type=int, default=10, help="Number of cross-validation folds")
    parser.add_argument("--bins", type=int, default=10, help="Number of calibration groups")
    parser.add_argument("--binning", choices=list(BINNING_POLICIES), default="quantile", help="Calibration grouping policy")
    parser.add_argument("--cost", choices=sorted(COST_FUNCTIONS), default="squared", help="Cross-validation cost")
    parser.add_argument("--n_jobs", type=int, default=1, help="Parallel workers for cross-validation folds")
    parser.add_argument(
        "--predict",
        nargs="+",
        metavar="KEY=VALUE",
        help="Score one record, e.g. --predict age=50 sex=m abo=O futime=365",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    return parser.parse_args(argv)


def parse_record(pairs: Sequence[str]) -> Dict[str, str]:
    record: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            msg = f"Expected KEY=VALUE, got {pair!r}"
            raise ValueError(msg)
        record[key.strip()] = value.strip()
    return record


def _fmt(value: float | int | None, *, percent: bool = False, digits: int = 3) -> str:
    if value is None or pd.isna(value):
        return "n/a"
    factor = 100 if percent else 1
    suffix = "%" if percent else ""
    return f"{value * factor:.{digits}f}{suffix}"


def _print_answers(cohort: dict, auc: float, statistic: float, p_value: float, cv_error: float, cv_adjusted: float) -> None:
    print("Waitlist model quick answers:")
    print(
        f"- Records: {cohort['n_records']} ({cohort['n_dropped']} dropped); "
        f"deaths: {cohort['n_deaths']} ({_fmt(cohort['death_rate'], percent=True, digits=1)})"
    )
    print(f"- AUC: {_fmt(auc)}")
    print(f"- Hosmer-Lemeshow: X2={_fmt(statistic)}, p={_fmt(p_value)}")
    print(f"- CV error: {_fmt(cv_error, digits=4)} (adjusted {_fmt(cv_adjusted, digits=4)})")


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(getattr(logging, args.log_level.upper(), logging.INFO))
    out_dir = ensure_directory(args.out_dir.resolve())

    try:
        if args.data is not None:
            LOGGER.info("Loading waitlist records from %s", args.data)
            raw = read_waitlist_csv(args.data)
        else:
            LOGGER.info("Simulating %d waitlist records", args.simulate)
            raw = simulate_waitlist(args.simulate, seed=args.seed)

        dataset = build_dataset(raw)
        cohort = compute_cohort_summary(dataset)

        LOGGER.info("Fitting logistic model")
        model = fit_logistic(dataset)
        labels = dataset.labels
        fitted = model.fitted_values()

        LOGGER.info("Evaluating discrimination and calibration")
        roc = evaluate_discrimination(labels, fitted)
        table = evaluate_calibration(labels, fitted, num_bins=args.bins, binning=args.binning)
        goodness = goodness_of_fit_test(labels, fitted, num_groups=args.bins, binning=args.binning)

        cv = cross_validate(dataset, fit_logistic, k=args.folds, seed=args.seed, cost=args.cost, n_jobs=args.n_jobs)

        coefficients = coefficient_table(model, dataset)
        LOGGER.info("Coefficients:\n%s", coefficients.to_string(index=False, float_format=lambda x: f"{x:.4f}"))
        export_results(roc, table, coefficients, out_dir)
        write_markdown_summary(cohort, roc, goodness, cv, out_dir / "summary.md")
        _print_answers(cohort, roc.auc, goodness.statistic, goodness.p_value, cv.error, cv.adjusted_error)

        if args.predict:
            record = parse_record(args.predict)
            probability = predict_one(model, record)
            print(f"- Predicted risk of death before transplant: {format_percentage(probability)}")
    except FileNotFoundError as exc:
        LOGGER.error("%s", exc)
        return 1
    except WaitlistRiskError as exc:
        LOGGER.error("Evaluation failed: %s", exc)
        return 1
    except ValueError as exc:
        LOGGER.error("Invalid input: %s", exc)
        return 1

    LOGGER.info("Pipeline complete")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
