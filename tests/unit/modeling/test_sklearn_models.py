"""
Unit tests for tsensemble/modeling/sklearn_models.py
"""
import numpy as np
import pandas as pd
import pytest

from tsensemble.features.recipe import TimeSeriesRecipe
from tsensemble.modeling.errors import NotFittedError
from tsensemble.modeling.metrics import mae
from tsensemble.modeling.sklearn_models import (
    ElasticNetForecaster,
    GBTForecaster,
    RandomForestForecaster,
    default_submodels,
)


class TestSubmodels:
    def test_fitted_models_track_holdout(self, fitted_table, train_test):
        train, test = train_test
        naive = np.full(len(test), train["value"].iloc[-12:].mean())
        for m in fitted_table:
            pred = m.predict(test)
            assert pred.shape == (len(test),)
            assert np.all(np.isfinite(pred))
        # the linear model extrapolates the trend better than a flat mean
        assert mae(test["value"], fitted_table.get(1).predict(test)) < mae(test["value"], naive)

    def test_artifacts(self, fitted_table, train_test):
        train, _ = train_test
        art = fitted_table.get(1).artifacts()
        assert art.n_train == len(train)
        assert art.trained_through == train["date"].max()
        assert art.feature_names[0] == "trend"
        assert art.residual_sigma > 0

    def test_predict_before_fit(self):
        with pytest.raises(NotFittedError):
            ElasticNetForecaster().predict(pd.DataFrame({"date": pd.date_range("2020-01-01", periods=2)}))

    def test_nan_target_rejected(self, monthly_df):
        df = monthly_df.copy()
        df.loc[3, "value"] = np.nan
        with pytest.raises(ValueError, match="NaN"):
            ElasticNetForecaster().fit(df)

    def test_fit_does_not_touch_the_unfitted_recipe(self, monthly_df):
        recipe = TimeSeriesRecipe()
        m = ElasticNetForecaster(recipe=recipe).fit(monthly_df)
        assert m.is_fitted
        assert not recipe.is_fitted
        assert m.recipe is not recipe

    @pytest.mark.parametrize(
        "model",
        [
            ElasticNetForecaster(alpha=0.5, l1_ratio=0.2),
            RandomForestForecaster(n_estimators=10, max_depth=3),
            GBTForecaster(max_iter=20, learning_rate=0.1),
        ],
    )
    def test_clone_keeps_params_and_drops_fit(self, model, monthly_df):
        fitted = model.clone().fit(monthly_df)
        c = fitted.clone()
        assert not c.is_fitted
        assert c.get_params() == model.get_params()
        assert c.input_schema() == fitted.input_schema()

    def test_deterministic_refit(self, monthly_df):
        m = RandomForestForecaster(n_estimators=20)
        a = m.refit(monthly_df).predict(monthly_df)
        b = m.refit(monthly_df).predict(monthly_df)
        assert np.array_equal(a, b)

    def test_diagnostics(self, fitted_table):
        d = fitted_table.get(3).diagnostics()
        assert d["model"] == "gbt"
        assert d["max_iter"] == 100
        assert "residual_sigma" in d


def test_default_submodels_share_schema():
    models = default_submodels(recipe=TimeSeriesRecipe(value_col="sales"))
    assert [m.name for m in models] == ["elastic_net", "random_forest", "gbt"]
    assert len({m.input_schema() for m in models}) == 1
    assert models[0].recipe is not models[1].recipe
