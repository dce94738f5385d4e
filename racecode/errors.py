from __future__ import annotations

from typing import Iterable, Optional

import pandas as pd


class RaceCodingError(Exception):
    """Base class for every failure that aborts a coding run."""


class ConfigurationError(RaceCodingError):
    """The subcode table is malformed or maps a subcode to two races."""


class InvalidPosteriorError(RaceCodingError, ValueError):
    def __init__(self, message: str, record: Optional[object] = None) -> None:
        if record is not None:
            message = f"record {record!r}: {message}"
        super().__init__(message)
        self.record = record


class MissingColumnError(RaceCodingError, KeyError):
    def __init__(self, columns: Iterable[str], source: str) -> None:
        self.columns = sorted(columns)
        self.source = source
        super().__init__(f"{source} is missing required column(s): {', '.join(self.columns)}")

    def __str__(self) -> str:
        return self.args[0]


class ExternalServiceError(RaceCodingError):
    """The race predictor failed; ``batch`` is the input it was given, untouched."""

    def __init__(self, message: str, batch: Optional[pd.DataFrame] = None) -> None:
        super().__init__(message)
        self.batch = batch


def require_columns(frame: pd.DataFrame, columns: Iterable[str], source: str) -> None:
    missing = set(columns) - set(frame.columns)
    if missing:
        raise MissingColumnError(missing, source)
