from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from racecode.codes import RaceLabel
from racecode.errors import InvalidPosteriorError, require_columns

logger = logging.getLogger(__name__)

# Column order the predictor emits; position i of a posterior is POSTERIOR_LABELS[i].
POSTERIOR_COLUMNS = ["pred.whi", "pred.bla", "pred.his", "pred.asi", "pred.oth"]
POSTERIOR_LABELS: Dict[int, RaceLabel] = {
    0: RaceLabel.WHITE,
    1: RaceLabel.BLACK,
    2: RaceLabel.HISPANIC,
    3: RaceLabel.ASIAN,
    4: RaceLabel.UNKNOWN,
}

# Lower rank wins an exact tie.
TIE_PRIORITY: Dict[RaceLabel, int] = {
    RaceLabel.WHITE: 0,
    RaceLabel.BLACK: 1,
    RaceLabel.HISPANIC: 2,
    RaceLabel.ASIAN: 3,
    RaceLabel.UNKNOWN: 4,
}

SUM_TOLERANCE = 1e-6


@dataclass(frozen=True)
class PosteriorVector:
    values: Tuple[float, ...]

    @classmethod
    def of(cls, values: Sequence[float], tolerance: float = SUM_TOLERANCE) -> "PosteriorVector":
        return cls(validate_posterior(values, tolerance))


@dataclass(frozen=True)
class Reduction:
    label: RaceLabel
    index: int
    tied: Tuple[int, ...] = ()


def validate_posterior(values: Sequence[float], tolerance: float = SUM_TOLERANCE) -> Tuple[float, ...]:
    if len(values) != len(POSTERIOR_LABELS):
        raise InvalidPosteriorError(
            f"expected {len(POSTERIOR_LABELS)} probabilities, got {len(values)}"
        )
    try:
        probs = tuple(float(v) for v in values)
    except (TypeError, ValueError) as exc:
        raise InvalidPosteriorError(f"non-numeric probability in {list(values)}") from exc
    if any(math.isnan(p) or math.isinf(p) for p in probs):
        raise InvalidPosteriorError(f"missing or infinite probability in {list(probs)}")
    if any(p < 0 for p in probs):
        raise InvalidPosteriorError(f"negative probability in {list(probs)}")
    total = math.fsum(probs)
    if abs(total - 1.0) > tolerance:
        raise InvalidPosteriorError(f"probabilities sum to {total}, not 1")
    return probs


def reduce_posterior(values: Sequence[float], tolerance: float = SUM_TOLERANCE) -> Reduction:
    """Pick the most probable label.

    Exact ties go to the candidate ranked first in ``TIE_PRIORITY``
    (White, Black, Hispanic, Asian, Other) and are reported in ``tied``.
    """
    if isinstance(values, PosteriorVector):
        values = values.values
    probs = validate_posterior(values, tolerance)
    best = max(probs)
    candidates = [i for i, p in enumerate(probs) if p == best]
    index = min(candidates, key=lambda i: TIE_PRIORITY[POSTERIOR_LABELS[i]])
    tied = tuple(candidates) if len(candidates) > 1 else ()
    return Reduction(label=POSTERIOR_LABELS[index], index=index, tied=tied)


def reduce_posteriors(
    frame: pd.DataFrame,
    tolerance: float = SUM_TOLERANCE,
    columns: Sequence[str] = POSTERIOR_COLUMNS,
    in_scope: Optional[pd.Series] = None,
) -> pd.DataFrame:
    """Return a copy of ``frame`` with ``pred_race`` and ``pred_tied`` columns.

    ``in_scope`` marks the rows that were sent to the predictor (default: all
    of them). Rows outside it keep an empty prediction. Any row inside it
    without a valid posterior, including one left entirely empty, fails the
    whole frame.
    """
    require_columns(frame, columns, "posterior frame")
    if in_scope is None:
        in_scope = pd.Series(True, index=frame.index)
    in_scope = in_scope.reindex(frame.index, fill_value=False).astype(bool)
    labels: List[Optional[str]] = []
    ties: List[Optional[str]] = []
    for record, row in frame[list(columns)].iterrows():
        if not in_scope.loc[record]:
            labels.append(None)
            ties.append(None)
            continue
        try:
            reduction = reduce_posterior(row.tolist(), tolerance)
        except InvalidPosteriorError as exc:
            raise InvalidPosteriorError(str(exc), record=record) from exc
        labels.append(reduction.label.value)
        ties.append(
            "|".join(POSTERIOR_LABELS[i].value for i in reduction.tied) if reduction.tied else None
        )

    reduced = frame.assign(
        pred_race=pd.Series(labels, index=frame.index, dtype="string"),
        pred_tied=pd.Series(ties, index=frame.index, dtype="string"),
    )
    n_tied = int(reduced["pred_tied"].notna().sum())
    if n_tied:
        logger.warning(f"{n_tied} posterior(s) had tied maxima; resolved by priority order")
    return reduced
