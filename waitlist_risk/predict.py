"""Single-record risk prediction."""

from __future__ import annotations

from math import exp
from typing import Mapping

from .errors import MissingValueError, UnknownCategoryLevel
from .features import CATEGORICAL_COLUMNS, is_missing, normalize_category
from .model import INTERCEPT, FittedModel, indicator_name
from .utils import get_logger

LOGGER = get_logger("predict")


def predict_one(model: FittedModel, record: Mapping[str, object]) -> float:
    """Return P(death before transplant) for one record.

    Categorical values are looked up in the level sets stored on ``model``;
    a value outside them raises ``UnknownCategoryLevel`` instead of falling
    back to the reference level.
    """
    coefficients = model.coefficients
    level_sets = model.level_sets
    eta = coefficients[INTERCEPT]

    for name in model.predictors:
        if name not in record or is_missing(record[name]):
            raise MissingValueError(f"Record is missing a value for '{name}'", column=name)
        value = record[name]

        if name in CATEGORICAL_COLUMNS:
            level = normalize_category(name, value)
            known = level_sets[name]
            if level not in known:
                raise UnknownCategoryLevel(name, value, known)
            # the reference level has no indicator term
            if level != known[0]:
                eta += coefficients[indicator_name(name, level)]
        else:
            try:
                numeric = float(value)
            except (TypeError, ValueError) as exc:
                msg = f"Value {value!r} for '{name}' is not numeric"
                raise ValueError(msg) from exc
            eta += coefficients[name] * numeric

    probability = 1.0 / (1.0 + exp(-eta)) if eta >= 0 else exp(eta) / (1.0 + exp(eta))
    LOGGER.debug("Linear predictor %.4f -> probability %.4f", eta, probability)
    return probability


def predict_percentage(model: FittedModel, record: Mapping[str, object], digits: int = 2) -> float:
    """Predicted risk on the 0-100 scale, rounded for display."""
    return round(predict_one(model, record) * 100, digits)


def format_percentage(probability: float, digits: int = 2) -> str:
    return f"{round(probability * 100, digits):.{digits}f}%"
