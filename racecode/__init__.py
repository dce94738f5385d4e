"""Race/ethnicity coding for vendor marketing files."""

from racecode.codes import RaceLabel, collapse, load_code_map, resolve_baseline
from racecode.errors import (
    ConfigurationError,
    ExternalServiceError,
    InvalidPosteriorError,
    MissingColumnError,
    RaceCodingError,
)
from racecode.posterior import reduce_posterior, reduce_posteriors

__all__ = [
    "ConfigurationError",
    "ExternalServiceError",
    "InvalidPosteriorError",
    "MissingColumnError",
    "RaceCodingError",
    "RaceLabel",
    "collapse",
    "load_code_map",
    "reduce_posterior",
    "reduce_posteriors",
    "resolve_baseline",
]
