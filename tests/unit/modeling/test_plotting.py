"""
Unit tests for tsensemble/modeling/plotting.py
"""
import matplotlib.pyplot as plt
import pandas as pd
import pytest

from tsensemble.modeling.forecast import forecast
from tsensemble.modeling.plotting import plot_forecast


@pytest.fixture
def forecast_df(fixed_table):
    history = pd.DataFrame(
        {"date": pd.date_range("2022-01-01", periods=12, freq="MS"), "value": range(12)}
    )
    return forecast(fixed_table, h=6, actual_data=history)


def test_one_line_per_model_plus_actuals(forecast_df, tmp_path):
    out = tmp_path / "plots" / "forecast.png"
    fig = plot_forecast(forecast_df, out_path=out, title="Demo")
    try:
        ax = fig.axes[0]
        assert ax.get_title() == "Demo"
        labels = [line.get_label() for line in ax.get_lines()]
        assert labels[0] == "ACTUAL"
        assert len(labels) == 4
        # one interval ribbon per model
        assert len(ax.collections) == 3
        assert out.exists()
    finally:
        plt.close(fig)


def test_intervals_can_be_hidden(forecast_df):
    fig = plot_forecast(forecast_df, show_intervals=False)
    try:
        assert len(fig.axes[0].collections) == 0
    finally:
        plt.close(fig)


def test_rejects_non_forecast_table():
    with pytest.raises(ValueError, match="missing columns"):
        plot_forecast(pd.DataFrame({"date": [], "value": []}))
