"""Tests for the vendor subcode lookup."""

import pandas as pd
import pytest

from racecode.codes import (
    COLLAPSED_LABELS,
    RaceLabel,
    build_code_map,
    collapse,
    load_code_map,
    resolve_baseline,
    resolve_subcode,
)
from racecode.errors import ConfigurationError, MissingColumnError


def test_build_code_map_maps_race_letters():
    table = pd.DataFrame({"subcode": ["A1", "B1", "M1", "N1", "P1", "Z1"], "race": list("ABMNPZ")})
    code_map = build_code_map(table)
    assert code_map == {
        "A1": RaceLabel.ASIAN,
        "B1": RaceLabel.BLACK,
        "M1": RaceLabel.TWO_OR_MORE,
        "N1": RaceLabel.AMERICAN_INDIAN,
        "P1": RaceLabel.PACIFIC_ISLANDER,
        "Z1": RaceLabel.UNKNOWN,
    }


def test_exact_duplicate_subcodes_are_accepted():
    table = pd.DataFrame({"subcode": ["A", "A"], "race": ["A", "A"]})
    assert build_code_map(table) == {"A": RaceLabel.ASIAN}


def test_conflicting_duplicate_subcodes_fail():
    table = pd.DataFrame({"subcode": ["A", "B", "A"], "race": ["A", "B", "W"]})
    with pytest.raises(ConfigurationError, match=r"\['A'\]"):
        build_code_map(table)


def test_unknown_race_letter_fails():
    table = pd.DataFrame({"subcode": ["A", "Q"], "race": ["A", "X"]})
    with pytest.raises(ConfigurationError, match="Q"):
        build_code_map(table)


def test_missing_column_is_a_configuration_error():
    with pytest.raises(ConfigurationError, match="race"):
        build_code_map(pd.DataFrame({"subcode": ["A"]}))


def test_blank_subcode_fails():
    table = pd.DataFrame({"subcode": ["A", None], "race": ["A", "B"]})
    with pytest.raises(ConfigurationError, match="blank subcode"):
        build_code_map(table)


def test_load_code_map_keeps_literal_na(tmp_path):
    path = tmp_path / "codes.csv"
    path.write_text("subcode,race\nNA,N\nCH,A\n")
    code_map = load_code_map(path)
    assert code_map["NA"] is RaceLabel.AMERICAN_INDIAN
    assert code_map["CH"] is RaceLabel.ASIAN


def test_resolve_known_and_unknown_subcodes(code_map):
    for subcode, race in code_map.items():
        assert resolve_subcode(subcode, code_map) is race
    for subcode in ["ZZ", "a", "XX", None, pd.NA, ""]:
        assert resolve_subcode(subcode, code_map) is RaceLabel.UNKNOWN


def test_resolve_strips_whitespace_but_keeps_case(code_map):
    assert resolve_subcode(" A ", code_map) is RaceLabel.ASIAN
    assert resolve_subcode("b", code_map) is RaceLabel.UNKNOWN


def test_missing_subcode_override_restores_literal_code():
    code_map = {"NA": RaceLabel.AMERICAN_INDIAN}
    assert resolve_subcode(pd.NA, code_map) is RaceLabel.UNKNOWN
    assert resolve_subcode(pd.NA, code_map, missing_means="NA") is RaceLabel.AMERICAN_INDIAN


def test_resolve_baseline_adds_column_without_touching_input(records, code_map):
    before = records.copy()
    labeled = resolve_baseline(records, code_map)
    assert labeled["baseline_race"].tolist() == ["Asian", "Black", "Unknown"]
    assert labeled.index.equals(records.index)
    pd.testing.assert_frame_equal(records, before)
    assert "baseline_race" not in records.columns


def test_resolve_baseline_requires_subcode_column(code_map):
    with pytest.raises(MissingColumnError, match="subcode"):
        resolve_baseline(pd.DataFrame({"surname": ["Smith"]}), code_map)


def test_collapse_rule():
    assert collapse(RaceLabel.PACIFIC_ISLANDER) is RaceLabel.ASIAN
    assert collapse(RaceLabel.TWO_OR_MORE) is RaceLabel.UNKNOWN
    assert collapse(RaceLabel.AMERICAN_INDIAN) is RaceLabel.UNKNOWN
    for label in [RaceLabel.WHITE, RaceLabel.BLACK, RaceLabel.HISPANIC, RaceLabel.ASIAN, RaceLabel.UNKNOWN]:
        assert collapse(label) is label


def test_collapse_is_total_and_idempotent():
    for label in RaceLabel:
        assert collapse(label) in COLLAPSED_LABELS
        assert collapse(collapse(label)) is collapse(label)
