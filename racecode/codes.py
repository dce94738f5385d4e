"""Vendor ethnicity subcode to race lookup.

The vendor ships a two-letter ethnicity subcode per person (finer than the
race taxonomy) and a table mapping each subcode to a one-letter race code.
Resolution is an exact, case-sensitive lookup; anything that does not match
resolves to ``Unknown`` rather than a guess.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from racecode.errors import ConfigurationError, require_columns

logger = logging.getLogger(__name__)


class RaceLabel(str, Enum):
    ASIAN = "Asian"
    BLACK = "Black"
    HISPANIC = "Hispanic"
    TWO_OR_MORE = "TwoOrMore"
    AMERICAN_INDIAN = "AmericanIndian"
    PACIFIC_ISLANDER = "PacificIslander"
    WHITE = "White"
    UNKNOWN = "Unknown"


RACE_LETTERS: Dict[str, RaceLabel] = {
    "A": RaceLabel.ASIAN,
    "B": RaceLabel.BLACK,
    "H": RaceLabel.HISPANIC,
    "M": RaceLabel.TWO_OR_MORE,
    "N": RaceLabel.AMERICAN_INDIAN,
    "P": RaceLabel.PACIFIC_ISLANDER,
    "W": RaceLabel.WHITE,
    "Z": RaceLabel.UNKNOWN,
}

# Unknown doubles as "Other/Unknown" in the collapsed taxonomy.
COLLAPSE: Dict[RaceLabel, RaceLabel] = {
    RaceLabel.ASIAN: RaceLabel.ASIAN,
    RaceLabel.BLACK: RaceLabel.BLACK,
    RaceLabel.HISPANIC: RaceLabel.HISPANIC,
    RaceLabel.TWO_OR_MORE: RaceLabel.UNKNOWN,
    RaceLabel.AMERICAN_INDIAN: RaceLabel.UNKNOWN,
    RaceLabel.PACIFIC_ISLANDER: RaceLabel.ASIAN,
    RaceLabel.WHITE: RaceLabel.WHITE,
    RaceLabel.UNKNOWN: RaceLabel.UNKNOWN,
}

COLLAPSED_LABELS = [
    RaceLabel.WHITE,
    RaceLabel.BLACK,
    RaceLabel.HISPANIC,
    RaceLabel.ASIAN,
    RaceLabel.UNKNOWN,
]

CodeMap = Dict[str, RaceLabel]


def collapse(label: RaceLabel) -> RaceLabel:
    return COLLAPSE[RaceLabel(label)]


def canonical_subcode(value: object) -> Optional[str]:
    if value is None or pd.isna(value):
        return None
    value = str(value).strip()
    return value or None


def build_code_map(table: pd.DataFrame, source: str = "code map") -> CodeMap:
    """Validate a subcode table and turn it into a lookup dict.

    A subcode listed twice with the same race is accepted; listed twice with
    different races raises ConfigurationError.
    """
    try:
        require_columns(table, ["subcode", "race"], source)
    except KeyError as exc:
        raise ConfigurationError(str(exc)) from exc

    entries = pd.DataFrame(
        {
            "subcode": table["subcode"].apply(canonical_subcode),
            "race": table["race"].astype("string").str.strip().fillna(""),
        }
    )

    blank = entries["subcode"].isna()
    if blank.any():
        rows = [int(i) for i in entries.index[blank]]
        raise ConfigurationError(f"{source}: blank subcode in row(s) {rows}")

    bad_race = ~entries["race"].isin(list(RACE_LETTERS))
    if bad_race.any():
        bad = entries.loc[bad_race, "subcode"].tolist()
        raise ConfigurationError(
            f"{source}: race code must be one of {''.join(RACE_LETTERS)} "
            f"for subcode(s) {bad}"
        )

    races_per_code = entries.groupby("subcode")["race"].nunique()
    conflicting = races_per_code[races_per_code > 1]
    if not conflicting.empty:
        raise ConfigurationError(
            f"{source}: subcode(s) {sorted(conflicting.index)} map to more than one race"
        )

    entries = entries.drop_duplicates("subcode")
    logger.info(f"Loaded {len(entries)} subcodes from {source}")
    return {code: RACE_LETTERS[race] for code, race in zip(entries["subcode"], entries["race"])}


def load_code_map(path: Path) -> CodeMap:
    # Literal "NA" is a real subcode; only empty cells count as missing.
    table = pd.read_csv(path, dtype="string", keep_default_na=False, na_values=[""])
    return build_code_map(table, source=str(path))


def resolve_subcode(
    subcode: object, code_map: CodeMap, missing_means: Optional[str] = None
) -> RaceLabel:
    code = canonical_subcode(subcode)
    if code is None:
        code = missing_means
    if code is None:
        return RaceLabel.UNKNOWN
    return code_map.get(code, RaceLabel.UNKNOWN)


def resolve_baseline(
    records: pd.DataFrame,
    code_map: CodeMap,
    missing_means: Optional[str] = None,
    subcode_column: str = "subcode",
    source: str = "records",
) -> pd.DataFrame:
    """Return a copy of ``records`` with a ``baseline_race`` column.

    ``missing_means`` is the explicit override for a vendor code whose text
    collides with the missing-value marker: when set, an absent subcode is
    looked up as that literal text instead of resolving to Unknown.
    """
    require_columns(records, [subcode_column], source)
    labels = records[subcode_column].apply(
        lambda value: resolve_subcode(value, code_map, missing_means).value
    )
    resolved = records.assign(baseline_race=labels.astype("string"))
    unknown = int((resolved["baseline_race"] == RaceLabel.UNKNOWN.value).sum())
    logger.info(f"Resolved baseline race for {len(resolved)} records ({unknown} unknown)")
    return resolved
