from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import pandas as pd

from racecode.codes import COLLAPSED_LABELS, RaceLabel, collapse
from racecode.errors import require_columns
from racecode.posterior import POSTERIOR_COLUMNS, PosteriorVector

logger = logging.getLogger(__name__)

LABEL_ORDER = [label.value for label in RaceLabel]
PREDICTED_ORDER = [label.value for label in COLLAPSED_LABELS]


@dataclass(frozen=True)
class ClassificationResult:
    baseline: RaceLabel
    predicted: Optional[RaceLabel] = None
    posterior: Optional[PosteriorVector] = None


def _label(value: object) -> Optional[RaceLabel]:
    if value is None or pd.isna(value):
        return None
    return RaceLabel(value)


def build_results(frame: pd.DataFrame) -> List[ClassificationResult]:
    require_columns(frame, ["baseline_race", "pred_race"], "classified records")
    has_posterior = set(POSTERIOR_COLUMNS).issubset(frame.columns)
    results = []
    for _, row in frame.iterrows():
        predicted = _label(row["pred_race"])
        posterior = None
        if predicted is not None and has_posterior:
            posterior = PosteriorVector(tuple(float(row[c]) for c in POSTERIOR_COLUMNS))
        results.append(
            ClassificationResult(
                baseline=RaceLabel(row["baseline_race"]),
                predicted=predicted,
                posterior=posterior,
            )
        )
    return results


def frequency_table(labels: Iterable[Optional[RaceLabel]], order: List[str] = LABEL_ORDER) -> pd.DataFrame:
    values = pd.Series([label.value for label in labels if label is not None], dtype="object")
    counts = values.value_counts().reindex(order, fill_value=0).astype(int)
    total = int(counts.sum())
    table = pd.DataFrame({"count": counts})
    table["share"] = counts / total if total else 0.0
    table.index.name = "race"
    return table


def confusion_table(results: Iterable[ClassificationResult]) -> pd.DataFrame:
    pairs = [
        (r.baseline.value, r.predicted.value) for r in results if r.predicted is not None
    ]
    if not pairs:
        table = pd.DataFrame(0, index=LABEL_ORDER, columns=PREDICTED_ORDER)
    else:
        frame = pd.DataFrame(pairs, columns=["baseline", "predicted"])
        table = pd.crosstab(frame["baseline"], frame["predicted"])
    table = table.reindex(index=LABEL_ORDER, columns=PREDICTED_ORDER, fill_value=0).astype(int)
    table.index.name = "baseline"
    table.columns.name = "predicted"
    return table


def agreement_rate(results: Iterable[ClassificationResult]) -> Optional[float]:
    """Share of predictions matching the collapsed vendor label.

    Records with an Unknown baseline have nothing to agree with and are left
    out; returns None when nothing is comparable.
    """
    comparable = [
        r
        for r in results
        if r.predicted is not None and collapse(r.baseline) is not RaceLabel.UNKNOWN
    ]
    if not comparable:
        return None
    agree = sum(collapse(r.baseline) is r.predicted for r in comparable)
    return agree / len(comparable)


def summarize(frame: pd.DataFrame) -> Dict[str, object]:
    results = build_results(frame)
    baseline_freq = frequency_table(r.baseline for r in results)
    predicted_freq = frequency_table((r.predicted for r in results), order=PREDICTED_ORDER)
    confusion = confusion_table(results)

    n_baseline = int(baseline_freq["count"].sum())
    n_predicted = int(predicted_freq["count"].sum())
    if n_baseline == n_predicted == len(frame):
        logger.info(f"All {len(frame)} records carry both a baseline and a predicted label")
    else:
        logger.info(
            f"{n_baseline} baseline labels, {n_predicted} predicted labels "
            f"over {len(frame)} records"
        )

    return {
        "baseline_freq": baseline_freq,
        "predicted_freq": predicted_freq,
        "confusion": confusion,
        "agreement": agreement_rate(results),
    }
