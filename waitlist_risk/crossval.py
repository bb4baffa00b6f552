"""K-fold cross-validation of the fitting procedure."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

import numpy as np
from joblib import Parallel, delayed

from .errors import FoldFitFailure, ModelFitError, UnknownCategoryLevel
from .features import OUTCOME_COLUMN, RECORD_COLUMNS, WaitlistDataset
from .model import FittedModel, fit_logistic
from .utils import DEFAULT_SEED, get_logger, make_rng

LOGGER = get_logger("crossval")

FitProcedure = Callable[[WaitlistDataset], FittedModel]

_EPS = 1e-12


def squared_error(labels: np.ndarray, probs: np.ndarray) -> np.ndarray:
    return (labels - probs) ** 2


def binomial_deviance(labels: np.ndarray, probs: np.ndarray) -> np.ndarray:
    clipped = np.clip(probs, _EPS, 1 - _EPS)
    return -2.0 * (labels * np.log(clipped) + (1 - labels) * np.log(1 - clipped))


COST_FUNCTIONS: Dict[str, Callable[[np.ndarray, np.ndarray], np.ndarray]] = {
    "squared": squared_error,
    "deviance": binomial_deviance,
}


@dataclass(frozen=True)
class CrossValidationResult:
    error: float
    adjusted_error: float
    k: int
    cost: str
    fold_sizes: Tuple[int, ...]
    fold_errors: Tuple[float, ...]


def canonical_order(dataset: WaitlistDataset) -> WaitlistDataset:
    """Sort records by content so fold assignment ignores input row order."""
    columns = [*RECORD_COLUMNS, OUTCOME_COLUMN]
    ordered = dataset.frame.sort_values(by=columns, kind="mergesort").index.to_numpy()
    positions = dataset.frame.index.get_indexer(ordered)
    return dataset.subset(positions)


def assign_folds(n: int, k: int, seed: int | None) -> List[np.ndarray]:
    """Seeded permutation split into ``k`` folds whose sizes differ by at most one."""
    if k < 2:
        raise ValueError("k must be at least 2")
    if k > n:
        msg = f"k={k} exceeds the number of records ({n})"
        raise ValueError(msg)
    permutation = make_rng(seed).permutation(n)
    return [np.sort(fold) for fold in np.array_split(permutation, k)]


def _fit_fold(fit_procedure: FitProcedure, training: WaitlistDataset, fold: int) -> FittedModel:
    try:
        return fit_procedure(training)
    except ModelFitError as exc:
        raise FoldFitFailure(fold, column=exc.column, level=exc.level, reason=str(exc)) from exc
    except UnknownCategoryLevel as exc:
        raise FoldFitFailure(fold, column=exc.attribute, level=exc.value) from exc
    except ValueError as exc:
        raise FoldFitFailure(fold, reason=str(exc)) from exc


def _evaluate_fold(
    fit_procedure: FitProcedure,
    dataset: WaitlistDataset,
    held_out: np.ndarray,
    fold: int,
    cost: str,
) -> Tuple[float, float]:
    """Return (summed held-out cost, mean cost of the fold model on all records)."""
    mask = np.zeros(len(dataset), dtype=bool)
    mask[held_out] = True
    training = dataset.subset(np.flatnonzero(~mask))
    testing = dataset.subset(held_out)

    model = _fit_fold(fit_procedure, training, fold)
    cost_fn = COST_FUNCTIONS[cost]
    try:
        held_out_probs = model.predict(testing)
        all_probs = model.predict(dataset)
    except UnknownCategoryLevel as exc:
        # level unseen by the training folds
        raise FoldFitFailure(fold, column=exc.attribute, level=exc.value) from exc
    held_out_cost = float(cost_fn(testing.labels, held_out_probs).sum())
    full_cost = float(cost_fn(dataset.labels, all_probs).mean())
    LOGGER.debug("Fold %d: %d held out, mean cost %.5f", fold, len(testing), held_out_cost / len(testing))
    return held_out_cost, full_cost


def cross_validate(
    dataset: WaitlistDataset,
    fit_procedure: FitProcedure = fit_logistic,
    k: int = 10,
    seed: int | None = DEFAULT_SEED,
    *,
    cost: str = "squared",
    n_jobs: int | None = 1,
) -> CrossValidationResult:
    """Estimate prediction error by K-fold cross-validation.

    ``error`` is the summed held-out cost divided by the number of records.
    ``adjusted_error`` adds the bias correction
    ``cost(full fit) - sum_i (n_i / n) * cost(fold-i fit)``, both evaluated on
    every record. Folds are independent; ``n_jobs`` other than 1 maps them in
    parallel with identical results.
    """
    if cost not in COST_FUNCTIONS:
        msg = f"Unknown cost '{cost}'; choose from {sorted(COST_FUNCTIONS)}"
        raise ValueError(msg)

    ordered = canonical_order(dataset)
    n = len(ordered)
    folds = assign_folds(n, k, seed)
    LOGGER.info("Running %d-fold cross-validation on %d records (seed=%s)", k, n, seed)

    results = Parallel(n_jobs=n_jobs)(
        delayed(_evaluate_fold)(fit_procedure, ordered, held_out, fold, cost)
        for fold, held_out in enumerate(folds, start=1)
    )

    fold_sizes = tuple(len(held_out) for held_out in folds)
    held_out_costs = [held_out_cost for held_out_cost, _ in results]
    error = sum(held_out_costs) / n

    full_model = fit_procedure(ordered)
    cost_fn = COST_FUNCTIONS[cost]
    apparent = float(cost_fn(ordered.labels, full_model.predict(ordered.frame)).mean())
    weighted_fold_cost = sum(size / n * full_cost for size, (_, full_cost) in zip(fold_sizes, results))
    adjusted = error + apparent - weighted_fold_cost

    LOGGER.info("Cross-validated %s error %.5f (adjusted %.5f)", cost, error, adjusted)
    return CrossValidationResult(
        error=float(error),
        adjusted_error=float(adjusted),
        k=k,
        cost=cost,
        fold_sizes=fold_sizes,
        fold_errors=tuple(
            held_out_cost / size for held_out_cost, size in zip(held_out_costs, fold_sizes)
        ),
    )
