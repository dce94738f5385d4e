import pandas as pd
import pytest

from racecode.codes import RaceLabel
from racecode.posterior import POSTERIOR_COLUMNS


@pytest.fixture
def code_map():
    return {"A": RaceLabel.ASIAN, "B": RaceLabel.BLACK, "W": RaceLabel.WHITE}


@pytest.fixture
def records():
    return pd.DataFrame(
        {
            "subcode": ["A", "B", "ZZ"],
            "surname": ["Nguyen", "Washington", "Smith"],
            "state": ["06", "06", "36"],
            "county": ["001", "037", "061"],
            "tract": ["400100", "207400", "000100"],
        },
        index=pd.Index(["p1", "p2", "p3"], name="id"),
    ).astype("string")


@pytest.fixture
def posteriors():
    return pd.DataFrame(
        [
            (0.9, 0.05, 0.03, 0.02, 0.0),
            (0.1, 0.8, 0.05, 0.05, 0.0),
            (0.2, 0.2, 0.2, 0.2, 0.2),
        ],
        columns=POSTERIOR_COLUMNS,
        index=pd.Index(["p1", "p2", "p3"], name="id"),
    )


@pytest.fixture
def census_data():
    return {"CA": {"state": "CA"}, "NY": {"state": "NY"}}
