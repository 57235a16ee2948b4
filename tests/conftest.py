"""
Pytest configuration and shared fixtures.
"""
import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from tsensemble.data.splits import time_series_split
from tsensemble.features.recipe import TimeSeriesRecipe
from tsensemble.modeling.base import BaseForecaster
from tsensemble.modeling.registry import ModelTable
from tsensemble.modeling.sklearn_models import ElasticNetForecaster, GBTForecaster, RandomForestForecaster
from tsensemble.modeling.types import InputSchema


EPOCH = pd.Timestamp("2000-01-01")


class FixedForecaster(BaseForecaster):
    """Deterministic stub: slope * (days since 2000-01-01 / 30) + offset."""

    name = "fixed"
    version = "1"

    def __init__(self, slope=1.0, offset=0.0, sigma=1.0, date_col="date", value_col="value"):
        self.slope = slope
        self.offset = offset
        self.sigma = sigma
        self.date_col = date_col
        self.value_col = value_col
        self.n_fit = None

    def fit(self, df):
        self.n_fit = len(df)
        return self

    def predict(self, new_data):
        t = (pd.to_datetime(new_data[self.date_col]) - EPOCH).dt.days.to_numpy(dtype=float) / 30.0
        return self.slope * t + self.offset

    def input_schema(self):
        return InputSchema(date_col=self.date_col, value_col=self.value_col)

    def clone(self):
        return FixedForecaster(self.slope, self.offset, self.sigma, self.date_col, self.value_col)

    @property
    def is_fitted(self):
        return self.n_fit is not None

    @property
    def residual_sigma(self):
        return self.sigma

    def describe(self):
        return f"FIXED({self.slope:g},{self.offset:g})"


class OracleForecaster(FixedForecaster):
    """Looks up the true value for each date in `truth`."""

    name = "oracle"

    def __init__(self, truth, **kwargs):
        super().__init__(**kwargs)
        self.truth = truth

    def predict(self, new_data):
        lookup = self.truth.set_index(self.date_col)[self.value_col]
        return lookup.reindex(pd.to_datetime(new_data[self.date_col])).to_numpy(dtype=float)

    def clone(self):
        return OracleForecaster(self.truth, sigma=self.sigma, date_col=self.date_col, value_col=self.value_col)

    def describe(self):
        return "ORACLE"


@pytest.fixture(scope="session")
def monthly_df():
    """96 months of trend + yearly seasonality + small noise."""
    rng = np.random.default_rng(0)
    dates = pd.date_range("2015-01-01", periods=96, freq="MS")
    t = np.arange(96, dtype=float)
    value = 100.0 + 0.5 * t + 10.0 * np.sin(2 * np.pi * t / 12.0) + rng.normal(0.0, 1.0, size=96)
    return pd.DataFrame({"date": dates, "value": value})


@pytest.fixture(scope="session")
def train_test(monthly_df):
    return time_series_split(monthly_df, assess=12)


def small_submodels():
    recipe = TimeSeriesRecipe()
    return [
        ElasticNetForecaster(recipe=recipe.clone()),
        RandomForestForecaster(n_estimators=50, recipe=recipe.clone()),
        GBTForecaster(max_iter=100, recipe=recipe.clone()),
    ]


@pytest.fixture(scope="session")
def fitted_table(train_test):
    train, _ = train_test
    return ModelTable(small_submodels()).fit_all(train)


@pytest.fixture
def fixed_table():
    models = [FixedForecaster(1.0, 0.0), FixedForecaster(2.0, 5.0), FixedForecaster(0.5, -3.0)]
    return ModelTable(m.fit(pd.DataFrame()) for m in models)
