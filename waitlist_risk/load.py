"""Data loading utilities for transplant waitlist tables."""

from __future__ import annotations

from pathlib import Path
from typing import Dict

import numpy as np
import pandas as pd

from .features import ABO_LEVELS, EVENT_LEVELS, NUMERIC_COLUMNS, RECORD_COLUMNS, SEX_LEVELS
from .utils import get_logger, have_pyarrow, make_rng, snake_case

LOGGER = get_logger("load")

# Column spellings seen in exports of the waitlist registry.
_COLUMN_ALIASES: Dict[str, str] = {
    "blood_type": "abo",
    "gender": "sex",
    "follow_up_time": "futime",
    "outcome": "event",
}


def _standardize_columns(df: pd.DataFrame) -> pd.DataFrame:
    renamed = {col: snake_case(str(col)) for col in df.columns}
    renamed = {col: _COLUMN_ALIASES.get(target, target) for col, target in renamed.items()}
    df = df.rename(columns=renamed)
    LOGGER.debug("Standardised columns: %s", list(df.columns))
    return df


def _read_with_pyarrow(path: Path) -> pd.DataFrame:
    import pyarrow.csv as pv

    table = pv.read_csv(path)
    return table.to_pandas(strings_to_categorical=False)


def _read_with_pandas(path: Path) -> pd.DataFrame:
    return pd.read_csv(path, keep_default_na=True)


def _read_csv(path: Path) -> pd.DataFrame:
    LOGGER.info("Reading %s", path.name)
    if have_pyarrow():
        try:
            return _read_with_pyarrow(path)
        except Exception as exc:  # pragma: no cover - parser fallback
            LOGGER.warning("PyArrow failed for %s; falling back to pandas", path.name, exc_info=exc)
    return _read_with_pandas(path)


def _coerce_numeric(df: pd.DataFrame) -> pd.DataFrame:
    coerced = df.copy()
    for column in NUMERIC_COLUMNS:
        before = coerced[column].isna().sum()
        coerced[column] = pd.to_numeric(coerced[column], errors="coerce")
        invalid = int(coerced[column].isna().sum() - before)
        if invalid:
            LOGGER.warning("Column '%s' had %d non-numeric values; treated as missing", column, invalid)
    return coerced


def read_waitlist_csv(path: str | Path) -> pd.DataFrame:
    """Read a waitlist table and return the raw record columns.

    Missing values are kept; ``build_dataset`` removes them as an explicit step.
    """
    csv_path = Path(path)
    if not csv_path.exists():
        msg = f"Waitlist file not found: {csv_path}"
        raise FileNotFoundError(msg)

    df = _standardize_columns(_read_csv(csv_path))
    missing = [column for column in RECORD_COLUMNS if column not in df.columns]
    if missing:
        msg = f"Missing required waitlist columns: {missing}"
        raise ValueError(msg)

    df = _coerce_numeric(df.loc[:, list(RECORD_COLUMNS)])
    LOGGER.info("Loaded %d waitlist records from %s", len(df), csv_path.name)
    return df


def simulate_waitlist(
    n: int = 100,
    seed: int | None = None,
    *,
    intercept: float = -6.0,
    age_effect: float = 0.12,
) -> pd.DataFrame:
    """Draw a synthetic waitlist cohort where death risk rises with age.

    ``age`` is uniform on [18, 70] and ``futime`` uniform on [1, 1000] days.
    Non-death outcomes are split among the remaining event levels. A
    ``seed`` of None uses ``DEFAULT_SEED``, so the cohort is always
    reproducible; pass distinct seeds for distinct cohorts.
    """
    if n <= 0:
        raise ValueError("n must be positive")

    rng = make_rng(seed)
    age = rng.uniform(18, 70, size=n)
    futime = rng.integers(1, 1001, size=n).astype(float)
    sex = rng.choice(SEX_LEVELS, size=n)
    abo = rng.choice(ABO_LEVELS, size=n)

    risk = 1.0 / (1.0 + np.exp(-(intercept + age_effect * age)))
    died = rng.uniform(size=n) < risk
    other_events = [level for level in EVENT_LEVELS if level != "death"]
    other = rng.choice(other_events, size=n, p=[0.2, 0.7, 0.1])
    event = np.where(died, "death", other)

    LOGGER.debug("Simulated %d records (%d deaths)", n, int(died.sum()))
    return pd.DataFrame(
        {
            "age": np.round(age, 1),
            "sex": sex,
            "abo": abo,
            "futime": futime,
            "event": event,
        }
    )
