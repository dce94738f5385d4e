"""Tests for reducing predictor posteriors to a single label."""

import math

import pandas as pd
import pytest

from racecode.codes import RaceLabel
from racecode.errors import InvalidPosteriorError
from racecode.posterior import (
    POSTERIOR_COLUMNS,
    PosteriorVector,
    reduce_posterior,
    reduce_posteriors,
)


@pytest.mark.parametrize(
    "values, expected",
    [
        ((0.9, 0.05, 0.03, 0.02, 0.0), RaceLabel.WHITE),
        ((0.1, 0.8, 0.05, 0.05, 0.0), RaceLabel.BLACK),
        ((0.1, 0.1, 0.7, 0.1, 0.0), RaceLabel.HISPANIC),
        ((0.0, 0.0, 0.1, 0.9, 0.0), RaceLabel.ASIAN),
        ((0.1, 0.1, 0.1, 0.1, 0.6), RaceLabel.UNKNOWN),
    ],
)
def test_reduce_picks_argmax(values, expected):
    reduction = reduce_posterior(values)
    assert reduction.label is expected
    assert reduction.index == values.index(max(values))
    assert reduction.tied == ()


def test_four_way_tie_goes_to_white():
    reduction = reduce_posterior((0.25, 0.25, 0.25, 0.25, 0.0))
    assert reduction.label is RaceLabel.WHITE
    assert reduction.tied == (0, 1, 2, 3)


def test_tie_priority_ignores_position_of_first_maximum():
    reduction = reduce_posterior((0.0, 0.0, 0.5, 0.5, 0.0))
    assert reduction.label is RaceLabel.HISPANIC
    assert reduction.tied == (2, 3)


def test_uniform_posterior_goes_to_white():
    assert reduce_posterior((0.2,) * 5).label is RaceLabel.WHITE


@pytest.mark.parametrize(
    "values",
    [
        (0.1, 0.1, 0.1, 0.1, 0.1),
        (1.2, -0.2, 0.0, 0.0, 0.0),
        (0.5, 0.5, 0.0, 0.0),
        (0.0, 0.0, 0.0, 0.0, 0.0),
        (math.nan, 0.5, 0.5, 0.0, 0.0),
        ("a", 1.0, 0.0, 0.0, 0.0),
    ],
)
def test_invalid_posteriors_are_rejected(values):
    with pytest.raises(InvalidPosteriorError):
        reduce_posterior(values)


def test_sum_tolerance():
    assert reduce_posterior((0.5, 0.5 + 5e-7, 0.0, 0.0, 0.0)).label is RaceLabel.BLACK
    with pytest.raises(InvalidPosteriorError):
        reduce_posterior((0.5, 0.5 + 1e-4, 0.0, 0.0, 0.0))
    assert reduce_posterior((0.5, 0.5 + 1e-4, 0.0, 0.0, 0.0), tolerance=1e-3).label is RaceLabel.BLACK


def test_posterior_vector_validates():
    vector = PosteriorVector.of([0.2, 0.2, 0.2, 0.2, 0.2])
    assert vector.values == (0.2, 0.2, 0.2, 0.2, 0.2)
    assert reduce_posterior(vector).label is RaceLabel.WHITE
    with pytest.raises(InvalidPosteriorError):
        PosteriorVector.of([0.5, 0.0, 0.0, 0.0, 0.0])


def test_reduce_posteriors_frame(posteriors):
    reduced = reduce_posteriors(posteriors)
    assert reduced["pred_race"].tolist() == ["White", "Black", "White"]
    assert pd.isna(reduced.loc["p1", "pred_tied"])
    assert reduced.loc["p3", "pred_tied"] == "White|Black|Hispanic|Asian|Unknown"
    assert "pred_race" not in posteriors.columns


def test_reduce_posteriors_skips_rows_outside_scope(posteriors):
    frame = posteriors.astype("float64")
    frame.loc["p2", POSTERIOR_COLUMNS] = math.nan
    in_scope = pd.Series([True, False, True], index=frame.index)
    reduced = reduce_posteriors(frame, in_scope=in_scope)
    assert reduced.loc["p1", "pred_race"] == "White"
    assert pd.isna(reduced.loc["p2", "pred_race"])


def test_reduce_posteriors_fails_whole_frame_naming_record(posteriors):
    frame = posteriors.copy()
    frame.loc["p2", "pred.bla"] = -0.8
    with pytest.raises(InvalidPosteriorError, match="p2") as excinfo:
        reduce_posteriors(frame)
    assert excinfo.value.record == "p2"


def test_empty_posterior_for_scored_record_fails(posteriors):
    frame = posteriors.astype("float64")
    frame.loc["p2", POSTERIOR_COLUMNS] = math.nan
    with pytest.raises(InvalidPosteriorError, match="p2"):
        reduce_posteriors(frame)
    with pytest.raises(InvalidPosteriorError, match="p2"):
        reduce_posteriors(frame, in_scope=pd.Series(True, index=frame.index))
