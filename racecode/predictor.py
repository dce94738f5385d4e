"""Calling the external surname/geography race predictor.

The predictor is any callable ``predictor(batch, geo, census_data)`` that
returns ``batch`` with the five ``pred.*`` posterior columns added, keeping
the batch index. This module only enforces that contract; the statistical
model lives outside this package.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, Optional

import pandas as pd
from tqdm import tqdm

from racecode.errors import ExternalServiceError, require_columns
from racecode.posterior import POSTERIOR_COLUMNS

logger = logging.getLogger(__name__)

GEO_LEVELS = ("county", "tract", "block", "place")
PREDICTOR_COLUMNS = ["surname", "state", "county", "tract"]

Predictor = Callable[[pd.DataFrame, str, Mapping[str, object]], pd.DataFrame]

STATE_FIPS: Dict[str, str] = {
    "01": "AL", "02": "AK", "04": "AZ", "05": "AR", "06": "CA", "08": "CO",
    "09": "CT", "10": "DE", "11": "DC", "12": "FL", "13": "GA", "15": "HI",
    "16": "ID", "17": "IL", "18": "IN", "19": "IA", "20": "KS", "21": "KY",
    "22": "LA", "23": "ME", "24": "MD", "25": "MA", "26": "MI", "27": "MN",
    "28": "MS", "29": "MO", "30": "MT", "31": "NE", "32": "NV", "33": "NH",
    "34": "NJ", "35": "NM", "36": "NY", "37": "NC", "38": "ND", "39": "OH",
    "40": "OK", "41": "OR", "42": "PA", "44": "RI", "45": "SC", "46": "SD",
    "47": "TN", "48": "TX", "49": "UT", "50": "VT", "51": "VA", "53": "WA",
    "54": "WV", "55": "WI", "56": "WY", "72": "PR",
}


def required_columns(geo: str) -> list:
    if geo not in GEO_LEVELS:
        raise ValueError(f"geo must be one of {GEO_LEVELS}, got {geo!r}")
    columns = list(PREDICTOR_COLUMNS)
    if geo in ("block", "place"):
        columns.append(geo)
    return columns


def load_census_bundle(directory: Path, states: Iterable[str]) -> Dict[str, object]:
    """Load cached per-state reference geography (``<XX>.pkl``) for ``states``."""
    bundle = {}
    for state in sorted(set(states)):
        path = Path(directory) / f"{state}.pkl"
        if not path.exists():
            raise ExternalServiceError(f"No cached census data for {state} at {path}")
        bundle[state] = pd.read_pickle(path)
    logger.info(f"Loaded census reference data for {len(bundle)} state(s)")
    return bundle


def state_codes(batch: pd.DataFrame) -> pd.Series:
    codes = batch["state"].map(STATE_FIPS)
    unknown = sorted(set(batch.loc[codes.isna(), "state"].astype(str)))
    if unknown:
        raise ExternalServiceError(
            f"No reference geography for state FIPS code(s) {unknown}", batch=batch
        )
    return codes


def run_predictor(
    predictor: Predictor,
    batch: pd.DataFrame,
    geo: str,
    census_data: Mapping[str, object],
    source: str = "records",
    progress: bool = True,
) -> pd.DataFrame:
    """Run ``predictor`` once per state and return ``batch`` plus posteriors.

    Rows come back in input order, one per input row. Any failure of the
    predictor is raised once as ExternalServiceError carrying the original
    batch; nothing is retried.
    """
    require_columns(batch, required_columns(geo), source)
    if not batch.index.is_unique:
        raise ValueError(f"{source} index must identify records uniquely")
    if batch.empty:
        return batch.assign(**{c: pd.Series(dtype="float64") for c in POSTERIOR_COLUMNS})

    states = state_codes(batch)
    parts = []
    for state, part in tqdm(batch.groupby(states, sort=True), desc="Predicting race", disable=not progress):
        if state not in census_data:
            raise ExternalServiceError(f"No census reference data loaded for {state}", batch=batch)
        try:
            predicted = predictor(part.copy(), geo, {state: census_data[state]})
        except Exception as exc:
            logger.error(f"Race prediction failed for {state}: {str(exc)[:200]}")
            raise ExternalServiceError(
                f"race prediction failed for {state} ({len(part)} records): {exc}", batch=batch
            ) from exc
        parts.append(_checked_posteriors(predicted, part, state, batch))

    posteriors = pd.concat(parts).loc[batch.index]
    return batch.assign(**{c: posteriors[c].astype("float64") for c in POSTERIOR_COLUMNS})


def _checked_posteriors(
    predicted: pd.DataFrame, part: pd.DataFrame, state: str, batch: pd.DataFrame
) -> pd.DataFrame:
    if not isinstance(predicted, pd.DataFrame):
        raise ExternalServiceError(
            f"predictor returned {type(predicted).__name__} for {state}, not a DataFrame",
            batch=batch,
        )
    missing = [c for c in POSTERIOR_COLUMNS if c not in predicted.columns]
    if missing:
        raise ExternalServiceError(
            f"predictor output for {state} lacks column(s) {missing}", batch=batch
        )
    if len(predicted) != len(part) or not predicted.index.sort_values().equals(part.index.sort_values()):
        raise ExternalServiceError(
            f"predictor returned {len(predicted)} rows for {len(part)} records in {state}",
            batch=batch,
        )
    return predicted[POSTERIOR_COLUMNS]


class CachedPosteriorPredictor:
    """Serves posteriors computed earlier by the BISG tool and saved to CSV.

    The CSV holds a record id column plus the five ``pred.*`` columns. Every
    record asked for must have a cached row.
    """

    def __init__(self, posteriors: pd.DataFrame) -> None:
        require_columns(posteriors, POSTERIOR_COLUMNS, "cached posteriors")
        self.posteriors = posteriors[POSTERIOR_COLUMNS].astype("float64")
        self.posteriors.index = self.posteriors.index.astype(str)
        if not self.posteriors.index.is_unique:
            raise ValueError("cached posteriors contain duplicate record ids")

    @classmethod
    def from_csv(cls, path: Path, id_column: str) -> "CachedPosteriorPredictor":
        frame = pd.read_csv(path, dtype={id_column: "string"})
        require_columns(frame, [id_column], str(path))
        return cls(frame.set_index(id_column))

    def __call__(
        self, batch: pd.DataFrame, geo: str, census_data: Optional[Mapping[str, object]] = None
    ) -> pd.DataFrame:
        ids = batch.index.astype(str)
        unmatched = ids.difference(self.posteriors.index)
        if len(unmatched):
            raise ExternalServiceError(
                f"{len(unmatched)} record(s) have no cached posterior, e.g. {list(unmatched[:5])}",
                batch=batch,
            )
        found = self.posteriors.reindex(ids)
        found.index = batch.index
        return batch.join(found)
