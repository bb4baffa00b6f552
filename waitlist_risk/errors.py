"""Typed errors raised by the evaluation engine. All subclass ``ValueError``."""

from __future__ import annotations


class WaitlistRiskError(ValueError):
    """Base class for all waitlist_risk failures."""


class MissingValueError(WaitlistRiskError):
    """Missing data reached a step that requires complete records."""

    def __init__(self, message: str, *, column: str | None = None) -> None:
        super().__init__(message)
        self.column = column


class UndefinedMetric(WaitlistRiskError):
    """A metric cannot be computed for the given label distribution."""


class DegenerateBinning(WaitlistRiskError):
    """Score binning produced fewer usable groups than requested."""

    def __init__(self, message: str, *, requested: int, usable: int) -> None:
        super().__init__(message)
        self.requested = requested
        self.usable = usable


class ModelFitError(WaitlistRiskError):
    """The fitting procedure could not produce a valid model."""

    def __init__(self, message: str, *, column: str | None = None, level: str | None = None) -> None:
        super().__init__(message)
        self.column = column
        self.level = level


class FoldFitFailure(WaitlistRiskError):
    """A cross-validation training subset could not be fitted."""

    def __init__(
        self,
        fold: int,
        *,
        column: str | None = None,
        level: str | None = None,
        reason: str = "",
    ) -> None:
        if column is not None and level is not None:
            message = f"Fold {fold}: level {level!r} of {column!r} is absent from the training folds"
        else:
            message = f"Fold {fold}: training folds could not be fitted"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.fold = fold
        self.column = column
        self.level = level


class UnknownCategoryLevel(WaitlistRiskError):
    """A categorical value is not part of the model's stored level set."""

    def __init__(self, attribute: str, value: object, known: tuple[str, ...] = ()) -> None:
        message = f"Unknown level {value!r} for {attribute!r}"
        if known:
            message = f"{message}; expected one of {list(known)}"
        super().__init__(message)
        self.attribute = attribute
        self.value = value
        self.known = known
