"""
Unit tests for tsensemble/data/splits.py
"""
import pandas as pd
import pytest

from tsensemble.data.splits import time_series_split


def test_last_rows_are_the_test_window(monthly_df):
    train, test = time_series_split(monthly_df.sample(frac=1.0, random_state=1), assess=12)
    assert len(train) == 84
    assert len(test) == 12
    assert train["date"].max() < test["date"].min()
    assert test["date"].iloc[0] == pd.Timestamp("2022-01-01")


@pytest.mark.parametrize("assess", [0, 96, 200])
def test_invalid_assess(monthly_df, assess):
    with pytest.raises(ValueError, match="assess"):
        time_series_split(monthly_df, assess=assess)
