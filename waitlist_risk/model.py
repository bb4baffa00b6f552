"""Logistic regression fitting for waitlist mortality."""

from __future__ import annotations

from dataclasses import dataclass
from math import erfc, sqrt
from typing import Dict, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.special import expit
from sklearn.linear_model import LogisticRegression
from sklearn.preprocessing import StandardScaler

from .errors import ModelFitError, UnknownCategoryLevel
from .features import (
    CATEGORICAL_COLUMNS,
    NUMERIC_COLUMNS,
    OUTCOME_COLUMN,
    LevelSets,
    WaitlistDataset,
    normalize_category,
    require_complete,
)
from .utils import get_logger

LOGGER = get_logger("model")

DEFAULT_PREDICTORS: Sequence[str] = ("age", "sex", "abo", "futime")
INTERCEPT = "intercept"
# Large C leaves the lbfgs fit effectively unpenalised (plain maximum likelihood).
DEFAULT_C = 1e6


def indicator_name(column: str, level: str) -> str:
    return f"{column}[{level}]"


def _validate_predictors(predictors: Sequence[str]) -> Tuple[str, ...]:
    if not predictors:
        raise ValueError("At least one predictor is required")
    allowed = set(NUMERIC_COLUMNS) | set(CATEGORICAL_COLUMNS)
    unknown = [name for name in predictors if name not in allowed]
    if unknown:
        msg = f"Unsupported predictors {unknown}; choose from {sorted(allowed)}"
        raise ValueError(msg)
    return tuple(predictors)


def check_levels(frame: pd.DataFrame, levels: Mapping[str, Sequence[str]]) -> None:
    """Raise ``UnknownCategoryLevel`` for the first value outside its stored level set."""
    for column, known in levels.items():
        if column not in frame.columns:
            continue
        allowed = set(known)
        for value in frame[column]:
            if value not in allowed:
                raise UnknownCategoryLevel(column, value, tuple(known))


def design_matrix(
    frame: pd.DataFrame,
    predictors: Sequence[str],
    levels: Mapping[str, Sequence[str]],
) -> pd.DataFrame:
    """Numeric predictors as-is; one indicator per non-reference level."""
    columns: Dict[str, np.ndarray] = {}
    for name in predictors:
        if name in CATEGORICAL_COLUMNS:
            values = frame[name].astype(object).to_numpy()
            for level in list(levels[name])[1:]:
                columns[indicator_name(name, level)] = (values == level).astype(float)
        else:
            columns[name] = frame[name].to_numpy(dtype=float)
    return pd.DataFrame(columns, index=frame.index)


@dataclass(frozen=True, eq=False)
class FittedModel:
    """Immutable result of one fitting call."""

    predictors: Tuple[str, ...]
    terms: Tuple[str, ...]
    estimates: Tuple[float, ...]
    levels: LevelSets
    fitted: np.ndarray
    n_obs: int

    @property
    def coefficients(self) -> Dict[str, float]:
        return dict(zip(self.terms, self.estimates))

    @property
    def level_sets(self) -> Dict[str, Tuple[str, ...]]:
        return dict(self.levels)

    @property
    def intercept(self) -> float:
        return self.coefficients[INTERCEPT]

    def fitted_values(self) -> np.ndarray:
        """Probabilities aligned with the training rows."""
        return self.fitted.copy()

    def linear_predictor(self, frame: pd.DataFrame) -> np.ndarray:
        require_complete(frame, self.predictors)
        canonical = frame.copy()
        for column in self.level_sets:
            canonical[column] = [normalize_category(column, value) for value in canonical[column]]
        check_levels(canonical, self.level_sets)

        X = design_matrix(canonical, self.predictors, self.level_sets)
        coefficients = self.coefficients
        weights = np.array([coefficients[term] for term in X.columns], dtype=float)
        return self.intercept + X.to_numpy(dtype=float) @ weights

    def predict(self, data: WaitlistDataset | pd.DataFrame | Mapping[str, object]) -> np.ndarray | float:
        """Return P(death) for a dataset or frame of records, or a float for a single mapping."""
        if isinstance(data, WaitlistDataset):
            data = data.frame
        if isinstance(data, Mapping):
            frame = pd.DataFrame([dict(data)])
            return float(expit(self.linear_predictor(frame))[0])
        if data.empty:
            return np.array([])
        return expit(self.linear_predictor(data))


def fit_logistic(
    dataset: WaitlistDataset,
    predictors: Sequence[str] = DEFAULT_PREDICTORS,
    *,
    C: float = DEFAULT_C,
    max_iter: int = 1000,
) -> FittedModel:
    """Fit ``event_binary ~ predictors`` and return coefficients on the raw scale."""
    predictors = _validate_predictors(predictors)
    frame = dataset.frame
    if frame.empty:
        raise ValueError("Input dataset is empty")
    require_complete(frame, [*predictors, OUTCOME_COLUMN])

    level_sets = dataset.level_sets
    levels = tuple((column, level_sets[column]) for column in CATEGORICAL_COLUMNS if column in predictors)
    for column, known in levels:
        if not known:
            raise ModelFitError(f"Column '{column}' has an empty level set", column=column)
        counts = frame[column].astype(object).value_counts()
        for level in known:
            if counts.get(level, 0) == 0:
                msg = f"Level {level!r} of '{column}' has no training records"
                raise ModelFitError(msg, column=column, level=level)

    y = frame[OUTCOME_COLUMN].to_numpy(dtype=int)
    if np.unique(y).size < 2:
        raise ModelFitError("Outcome has a single class; logistic regression is undefined")

    X = design_matrix(frame, predictors, dict(levels))
    scaler = StandardScaler()
    X_scaled = scaler.fit_transform(X.to_numpy(dtype=float))

    estimator = LogisticRegression(C=C, solver="lbfgs", max_iter=max_iter)
    estimator.fit(X_scaled, y)

    coef = estimator.coef_.ravel() / scaler.scale_
    intercept = float(estimator.intercept_[0] - np.sum(coef * scaler.mean_))
    fitted = estimator.predict_proba(X_scaled)[:, 1]
    fitted.setflags(write=False)

    LOGGER.debug("Logistic model fitted on %d records with terms %s", len(frame), list(X.columns))
    return FittedModel(
        predictors=predictors,
        terms=(INTERCEPT, *X.columns),
        estimates=(intercept, *(float(value) for value in coef)),
        levels=levels,
        fitted=fitted,
        n_obs=len(frame),
    )


def coefficient_table(model: FittedModel, dataset: WaitlistDataset) -> pd.DataFrame:
    """Wald summary per term: estimate, standard error, z, p-value, odds ratio."""
    X = design_matrix(dataset.frame, model.predictors, model.level_sets)
    design = np.column_stack([np.ones(len(X)), X.to_numpy(dtype=float)])
    probs = model.predict(dataset.frame)
    W = probs * (1 - probs)
    fisher = design.T @ (design * W[:, None])

    estimates = np.asarray(model.estimates, dtype=float)
    try:
        cov = np.linalg.inv(fisher)
        std_err = np.sqrt(np.clip(np.diag(cov), 0, None))
    except np.linalg.LinAlgError:
        LOGGER.warning("Singular Fisher information; std errors unavailable")
        std_err = np.full(len(estimates), np.nan)

    with np.errstate(divide="ignore", invalid="ignore"):
        z_values = estimates / std_err
    p_values = [
        float(erfc(abs(z) / sqrt(2))) if np.isfinite(z) else float("nan")
        for z in z_values
    ]
    return pd.DataFrame(
        {
            "term": list(model.terms),
            "estimate": estimates,
            "std_err": std_err,
            "z_value": z_values,
            "p_value": p_values,
            "odds_ratio": np.exp(estimates),
        }
    )
