"""Dataset preparation helpers.

Each pipeline step takes a DataFrame and returns a new one; no step mutates
its input.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import MissingValueError, UnknownCategoryLevel
from .utils import get_logger

LOGGER = get_logger("features")

RECORD_COLUMNS: Sequence[str] = ("age", "sex", "abo", "futime", "event")
NUMERIC_COLUMNS: Sequence[str] = ("age", "futime")
CATEGORICAL_COLUMNS: Sequence[str] = ("sex", "abo")
EVENT_COLUMN = "event"
OUTCOME_COLUMN = "event_binary"
DEATH_EVENT = "death"

# ltx = liver transplant
EVENT_LEVELS: Sequence[str] = ("censored", "death", "ltx", "withdraw")
SEX_LEVELS: Sequence[str] = ("f", "m")
ABO_LEVELS: Sequence[str] = ("A", "AB", "B", "O")

_NORMALIZERS: Mapping[str, Callable[[str], str]] = {
    "sex": str.lower,
    "abo": str.upper,
    "event": str.lower,
}

LevelSets = Tuple[Tuple[str, Tuple[str, ...]], ...]


def normalize_category(column: str, value: object) -> str:
    """Return the canonical spelling of a categorical value."""
    text = str(value).strip()
    normalizer = _NORMALIZERS.get(column)
    return normalizer(text) if normalizer else text


def is_missing(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


@dataclass(frozen=True, eq=False)
class WaitlistDataset:
    """Complete waitlist records plus the canonical level set of each categorical column."""

    frame: pd.DataFrame
    levels: LevelSets
    dropped: int = 0

    def __len__(self) -> int:
        return len(self.frame)

    @property
    def level_sets(self) -> Dict[str, Tuple[str, ...]]:
        return dict(self.levels)

    @property
    def labels(self) -> np.ndarray:
        return self.frame[OUTCOME_COLUMN].to_numpy(dtype=int, copy=True)

    def subset(self, positions: Iterable[int]) -> "WaitlistDataset":
        """Return the rows at ``positions`` while keeping this dataset's level sets."""
        rows = self.frame.iloc[np.asarray(list(positions), dtype=int)].reset_index(drop=True)
        return WaitlistDataset(frame=rows, levels=self.levels)


@dataclass(frozen=True, eq=False)
class PredictionSeries:
    """Index-aligned binary labels and predicted probabilities."""

    labels: np.ndarray
    scores: np.ndarray

    @classmethod
    def from_arrays(cls, labels: Iterable, scores: Iterable) -> "PredictionSeries":
        label_values = np.array(labels, dtype=float).ravel()
        score_values = np.array(scores, dtype=float).ravel()
        if len(label_values) != len(score_values):
            msg = f"labels and scores differ in length ({len(label_values)} vs {len(score_values)})"
            raise ValueError(msg)
        if len(label_values) == 0:
            raise ValueError("labels and scores are empty")
        if np.isnan(label_values).any():
            raise MissingValueError("labels contain missing values", column="labels")
        if np.isnan(score_values).any():
            raise MissingValueError("scores contain missing values", column="scores")
        if not np.isin(label_values, (0.0, 1.0)).all():
            raise ValueError("labels must be 0 or 1")
        if (score_values < 0).any() or (score_values > 1).any():
            raise ValueError("scores must be probabilities in [0, 1]")

        label_array = label_values.astype(int)
        label_array.setflags(write=False)
        score_values.setflags(write=False)
        return cls(labels=label_array, scores=score_values)

    def __len__(self) -> int:
        return len(self.labels)

    @property
    def positives(self) -> int:
        return int(self.labels.sum())

    @property
    def negatives(self) -> int:
        return len(self.labels) - self.positives


def select_columns(raw: pd.DataFrame) -> pd.DataFrame:
    missing = [column for column in RECORD_COLUMNS if column not in raw.columns]
    if missing:
        msg = f"Missing required record columns: {missing}"
        raise ValueError(msg)
    return raw.loc[:, list(RECORD_COLUMNS)].copy()


def normalize_values(frame: pd.DataFrame) -> pd.DataFrame:
    """Canonicalise categorical spellings; blank strings become missing."""
    normalized = frame.copy()
    for column in (*CATEGORICAL_COLUMNS, EVENT_COLUMN):
        normalized[column] = [
            np.nan if is_missing(value) else normalize_category(column, value)
            for value in normalized[column]
        ]
    for column in NUMERIC_COLUMNS:
        normalized[column] = pd.to_numeric(normalized[column], errors="coerce").astype(float)
    return normalized


def drop_missing(frame: pd.DataFrame, columns: Sequence[str] = RECORD_COLUMNS) -> pd.DataFrame:
    """Return the rows that are complete in ``columns``."""
    complete = frame.dropna(subset=list(columns)).reset_index(drop=True)
    removed = len(frame) - len(complete)
    if removed:
        LOGGER.info("Dropped %d of %d records with missing values", removed, len(frame))
    return complete


def require_complete(frame: pd.DataFrame, columns: Sequence[str]) -> None:
    for column in columns:
        if column not in frame.columns:
            raise MissingValueError(f"Column '{column}' is missing", column=column)
        if frame[column].isna().any():
            count = int(frame[column].isna().sum())
            raise MissingValueError(f"Column '{column}' has {count} missing values", column=column)


def add_event_binary(frame: pd.DataFrame) -> pd.DataFrame:
    """Derive ``event_binary`` (1 iff the event is a death) from ``event``."""
    require_complete(frame, [EVENT_COLUMN])
    unknown = sorted(set(frame[EVENT_COLUMN]) - set(EVENT_LEVELS))
    if unknown:
        msg = f"Unknown event values {unknown}; expected one of {list(EVENT_LEVELS)}"
        raise ValueError(msg)
    return frame.assign(**{OUTCOME_COLUMN: (frame[EVENT_COLUMN] == DEATH_EVENT).astype(int)})


def resolve_levels(
    frame: pd.DataFrame,
    levels: Mapping[str, Sequence[str]] | None = None,
) -> LevelSets:
    """Fix the level set of every categorical column.

    Without ``levels`` the set is the sorted distinct observed values. When
    ``levels`` are supplied, every observed value must belong to them.
    """
    resolved = []
    for column in CATEGORICAL_COLUMNS:
        observed = sorted(str(value) for value in frame[column].dropna().unique())
        if levels is not None and column in levels:
            known = tuple(normalize_category(column, level) for level in levels[column])
            for value in observed:
                if value not in known:
                    raise UnknownCategoryLevel(column, value, known)
            resolved.append((column, known))
        else:
            resolved.append((column, tuple(observed)))
    return tuple(resolved)


def apply_levels(frame: pd.DataFrame, levels: LevelSets) -> pd.DataFrame:
    encoded = frame.copy()
    for column, known in levels:
        encoded[column] = pd.Categorical(encoded[column], categories=list(known))
    return encoded


def build_dataset(
    raw: pd.DataFrame,
    levels: Mapping[str, Sequence[str]] | None = None,
) -> WaitlistDataset:
    """Run the preparation pipeline on a raw table and return an immutable dataset."""
    selected = select_columns(raw)
    normalized = normalize_values(selected)
    complete = drop_missing(normalized)
    if complete.empty:
        raise MissingValueError("No complete records remain after removing missing values")
    labelled = add_event_binary(complete)
    level_sets = resolve_levels(labelled, levels)
    encoded = apply_levels(labelled, level_sets)

    LOGGER.info(
        "Dataset prepared with %d records (%d deaths); levels: %s",
        len(encoded),
        int(encoded[OUTCOME_COLUMN].sum()),
        dict(level_sets),
    )
    return WaitlistDataset(frame=encoded, levels=level_sets, dropped=len(raw) - len(encoded))
