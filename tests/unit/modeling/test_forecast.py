"""
Unit tests for tsensemble/modeling/forecast.py
"""
import numpy as np
import pandas as pd
import pytest

from conftest import FixedForecaster
from tsensemble.modeling.calibration import calibrate
from tsensemble.modeling.ensemble import ensemble_average
from tsensemble.modeling.forecast import forecast, future_frame, infer_freq
from tsensemble.modeling.registry import ModelTable
from tsensemble.modeling.types import FORECAST_COLUMNS
from tsensemble.modeling.uncertainty import z_value


@pytest.fixture
def history():
    return pd.DataFrame(
        {
            "date": pd.date_range("2022-01-01", periods=12, freq="MS"),
            "value": np.arange(12, dtype=float),
        }
    )


class TestFutureFrame:
    def test_monthly_continuation(self, history):
        fut = future_frame(history, 3)
        assert list(fut["date"]) == list(pd.date_range("2023-01-01", periods=3, freq="MS"))

    def test_irregular_dates_use_median_step(self):
        dates = pd.to_datetime(["2022-01-01", "2022-01-08", "2022-01-15", "2022-01-23"])
        off = infer_freq(pd.Series(dates))
        assert pd.Timestamp("2022-01-23") + off == pd.Timestamp("2022-01-30")

    def test_bad_horizon(self, history):
        with pytest.raises(ValueError):
            future_frame(history, 0)


class TestForecast:
    def test_columns_and_actuals_first(self, fixed_table, history):
        out = forecast(fixed_table, h=6, actual_data=history)
        assert tuple(out.columns) == FORECAST_COLUMNS
        assert out["model_id"].iloc[0] == 0
        assert (out[out["key"] == "actual"]["model_desc"] == "ACTUAL").all()
        assert len(out) == 12 + 3 * 6
        assert out[out["key"] == "actual"]["conf_lo"].isna().all()

    def test_prediction_rows_per_model(self, fixed_table, history):
        new = future_frame(history, 4)
        out = forecast(fixed_table, new_data=new)
        assert set(out["key"]) == {"prediction"}
        for model_id, m in fixed_table.items():
            rows = out[out["model_id"] == model_id]
            assert np.allclose(rows["value"], m.predict(new))
            assert (rows["model_desc"] == fixed_table.describe(model_id)).all()

    def test_uncalibrated_interval_is_normal(self, history):
        table = ModelTable([FixedForecaster(1.0, sigma=2.0).fit(history)])
        out = forecast(table, new_data=future_frame(history, 2), conf_level=0.9)
        width = (out["conf_hi"] - out["conf_lo"]).to_numpy()
        assert np.allclose(width, 2 * z_value(0.9) * 2.0)

    def test_calibrated_interval_contains_point(self, fixed_table, history):
        cal = calibrate(fixed_table, history)
        out = forecast(cal, h=3, actual_data=history)
        preds = out[out["key"] == "prediction"]
        assert (preds["conf_lo"] <= preds["value"]).all()
        assert (preds["value"] <= preds["conf_hi"]).all()

    def test_wider_level_gives_wider_interval(self, fixed_table, history):
        cal = calibrate(fixed_table, history)
        narrow = forecast(cal, h=3, actual_data=history, conf_level=0.5)
        wide = forecast(cal, h=3, actual_data=history, conf_level=0.95)
        assert ((wide["conf_hi"] - wide["conf_lo"]).dropna() >= (narrow["conf_hi"] - narrow["conf_lo"]).dropna()).all()

    def test_ensemble_row_in_table(self, fixed_table, history):
        table = ModelTable(fixed_table.models)
        table.add(ensemble_average(fixed_table))
        out = forecast(table, h=2, actual_data=history)
        ens = out[out["model_id"] == 4]
        assert (ens["model_desc"] == "ENSEMBLE (MEAN)").all()
        expected = fixed_table.predict_matrix(future_frame(history, 2)).mean(axis=1)
        assert np.allclose(ens["value"], expected)

    def test_needs_exactly_one_horizon_source(self, fixed_table, history):
        with pytest.raises(ValueError, match="exactly one"):
            forecast(fixed_table)
        with pytest.raises(ValueError, match="exactly one"):
            forecast(fixed_table, h=2, new_data=future_frame(history, 2))
        with pytest.raises(ValueError, match="actual_data"):
            forecast(fixed_table, h=2)

    def test_bad_conf_settings(self, fixed_table, history):
        with pytest.raises(ValueError):
            forecast(fixed_table, h=2, actual_data=history, conf_level=1.2)
        with pytest.raises(ValueError, match="conf_method"):
            forecast(fixed_table, h=2, actual_data=history, conf_method="bootstrap")
