"""Shared utility helpers for the waitlist_risk project."""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from pathlib import Path

import numpy as np

LOGGER_NAME = "waitlist_risk"
DEFAULT_SEED = 20


def setup_logging(level: int = logging.INFO) -> None:
    """Configure global logging once."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a namespaced logger anchored at LOGGER_NAME."""
    resolved_name = f"{LOGGER_NAME}.{name}" if name else LOGGER_NAME
    return logging.getLogger(resolved_name)


def ensure_directory(path: str | Path) -> Path:
    """Create the directory if needed and return it as a Path."""
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def snake_case(name: str) -> str:
    """Return a lowercase, underscore separated column identifier."""
    cleaned = re.sub(r"[\s+/]+", "_", name.strip())
    cleaned = re.sub(r"[^0-9a-zA-Z_]+", "_", cleaned)
    cleaned = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", cleaned)
    cleaned = re.sub(r"_+", "_", cleaned)
    return cleaned.strip("_").lower()


@lru_cache(maxsize=1)
def have_pyarrow() -> bool:
    """Return whether pyarrow is importable."""
    try:
        import pyarrow.csv  # noqa: F401
    except ImportError:
        return False
    return True


def make_rng(seed: int | None) -> np.random.Generator:
    """Return an explicit generator; never touches numpy's global state."""
    return np.random.default_rng(DEFAULT_SEED if seed is None else seed)
