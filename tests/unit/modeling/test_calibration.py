"""
Unit tests for tsensemble/modeling/calibration.py
"""
import numpy as np
import pandas as pd
import pytest

from conftest import FixedForecaster
from tsensemble.modeling.calibration import calibrate
from tsensemble.modeling.errors import InsufficientCalibrationDataError, NotFittedError
from tsensemble.modeling.registry import ModelTable


@pytest.fixture
def flat_table():
    """Two models predicting a constant 10 and 12."""
    models = [FixedForecaster(0.0, 10.0), FixedForecaster(0.0, 12.0)]
    return ModelTable(m.fit(pd.DataFrame()) for m in models)


@pytest.fixture
def holdout():
    return pd.DataFrame(
        {
            "date": pd.date_range("2022-01-01", periods=4, freq="MS"),
            "value": [9.0, 11.0, 12.0, 8.0],
        }
    )


class TestCalibrate:
    def test_residuals_per_model(self, flat_table, holdout):
        cal = calibrate(flat_table, holdout)
        assert np.allclose(cal.result(1).residuals, [-1.0, 1.0, 2.0, -2.0])
        assert np.allclose(cal.result(2).residuals, [-3.0, -1.0, 0.0, -4.0])
        assert cal.result(1).model_desc == "FIXED(0,10)"

    def test_accuracy_table(self, flat_table, holdout):
        acc = calibrate(flat_table, holdout).accuracy()
        assert list(acc.columns) == ["model_id", "model_desc", "n", "mae", "mape", "mase", "smape", "rmse", "rsq"]
        row = acc.set_index("model_id").loc[1]
        assert row["n"] == 4
        assert row["mae"] == pytest.approx(1.5)
        assert row["rmse"] == pytest.approx(np.sqrt(2.5))
        # constant predictions have no correlation
        assert np.isnan(row["rsq"])

    def test_mase_scaled_by_training_series(self, flat_table, holdout):
        train = pd.DataFrame(
            {
                "date": pd.date_range("2021-01-01", periods=4, freq="MS"),
                "value": [10.0, 12.0, 10.0, 12.0],
            }
        )
        acc = calibrate(flat_table, holdout, train_df=train).accuracy().set_index("model_id")
        # naive in-sample error is 2.0
        assert acc.loc[1, "mase"] == pytest.approx(0.75)

    def test_rows_sorted_by_date(self, flat_table, holdout):
        cal = calibrate(flat_table, holdout.iloc[::-1])
        assert np.allclose(cal.result(1).actual, holdout["value"].to_numpy())

    def test_missing_actuals_dropped(self, flat_table, holdout):
        df = holdout.copy()
        df.loc[1, "value"] = np.nan
        cal = calibrate(flat_table, df)
        assert cal.result(1).n == 3

    def test_empty_holdout_raises(self, flat_table, holdout):
        with pytest.raises(InsufficientCalibrationDataError):
            calibrate(flat_table, holdout.iloc[0:0])

    def test_no_value_column_raises(self, flat_table, holdout):
        with pytest.raises(InsufficientCalibrationDataError):
            calibrate(flat_table, holdout[["date"]])

    def test_all_missing_raises(self, flat_table, holdout):
        df = holdout.assign(value=np.nan)
        with pytest.raises(InsufficientCalibrationDataError):
            calibrate(flat_table, df)

    def test_unfitted_models_raise(self, holdout):
        with pytest.raises(NotFittedError):
            calibrate([FixedForecaster(1.0)], holdout)


class TestCalibratedTable:
    def test_unknown_model_id(self, flat_table, holdout):
        with pytest.raises(KeyError):
            calibrate(flat_table, holdout).result(7)

    def test_residuals_frame(self, flat_table, holdout):
        frame = calibrate(flat_table, holdout).residuals_frame()
        assert len(frame) == 8
        assert set(frame["model_id"]) == {1, 2}
        assert np.allclose(frame["actual"] - frame["prediction"], frame["residual"])

    def test_conformal_intervals_use_holdout_residuals(self, flat_table, holdout):
        cal = calibrate(flat_table, holdout)
        lo, hi = cal.intervals(1, np.array([100.0, 200.0]), conf_level=0.5)
        # |r| = [1, 1, 2, 2]; k = ceil(5 * 0.5) = 3 -> 2
        assert np.allclose(hi - lo, 4.0)
        assert np.allclose((lo + hi) / 2.0, [100.0, 200.0])

    def test_refit_keeps_residuals(self, fitted_table, train_test, monthly_df):
        train, test = train_test
        cal = calibrate(fitted_table, test, train_df=train)
        refit = cal.refit(monthly_df)

        assert refit.table.ids == cal.table.ids
        assert all(m.artifacts().n_train == len(monthly_df) for m in refit.table)
        for model_id in cal.table.ids:
            assert np.array_equal(refit.result(model_id).residuals, cal.result(model_id).residuals)
        # MASE stays scaled by the original training series
        assert np.array_equal(refit.train_values, cal.train_values)
        pd.testing.assert_frame_equal(refit.accuracy(), cal.accuracy())
