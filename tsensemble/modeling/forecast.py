from __future__ import annotations

import logging
from typing import List, Optional, Union

import numpy as np
import pandas as pd
from pandas.tseries.frequencies import to_offset

from tsensemble.modeling.base import BaseForecaster
from tsensemble.modeling.calibration import CalibratedTable
from tsensemble.modeling.ensemble import EnsembleModel
from tsensemble.modeling.registry import ModelTable
from tsensemble.modeling.types import FORECAST_COLUMNS, KEY_ACTUAL, KEY_PREDICTION
from tsensemble.modeling.uncertainty import CONF_METHODS, check_conf_level, normal_interval, z_value

logger = logging.getLogger(__name__)


def infer_freq(dates: pd.Series):
    """Offset for a regular date column; falls back to the median spacing."""
    d = pd.DatetimeIndex(pd.to_datetime(dates)).sort_values()
    if len(d) < 2:
        raise ValueError("need at least 2 timestamps to infer a frequency")
    freq = pd.infer_freq(d) if len(d) >= 3 else None
    if freq is not None:
        return to_offset(freq)
    step = pd.Series(d).diff().dropna().median()
    if step <= pd.Timedelta(0):
        raise ValueError("timestamps must be increasing")
    return to_offset(step)


def future_frame(df: pd.DataFrame, h: int, *, date_col: str = "date", freq=None) -> pd.DataFrame:
    """The next `h` timestamps after the last date in `df`.

    Exogenous columns are not extrapolated; pass `new_data` to forecast()
    instead when the models need them.
    """
    h = int(h)
    if h < 1:
        raise ValueError("h must be >= 1")
    if date_col not in df.columns:
        raise ValueError(f"missing date column: {date_col}")
    off = to_offset(freq) if freq is not None else infer_freq(df[date_col])
    last = pd.Timestamp(pd.to_datetime(df[date_col]).max())
    dates = pd.date_range(start=last + off, periods=h, freq=off)
    return pd.DataFrame({date_col: dates})


def _unpack(models):
    if isinstance(models, CalibratedTable):
        return models.table, models
    if isinstance(models, ModelTable):
        return models, None
    if isinstance(models, BaseForecaster):
        return ModelTable([models]), None
    return ModelTable(models), None


def forecast(
    models: Union[CalibratedTable, ModelTable, BaseForecaster, List[BaseForecaster]],
    *,
    new_data: Optional[pd.DataFrame] = None,
    h: Optional[int] = None,
    actual_data: Optional[pd.DataFrame] = None,
    conf_level: float = 0.95,
    conf_method: str = "conformal",
    freq=None,
) -> pd.DataFrame:
    """Tidy forecast table: model_id, model_desc, key, date, value, conf_lo, conf_hi.

    Calibrated models get intervals from their hold-out residuals. Otherwise
    the interval is normal with the model's training residual sigma (pooled
    with model disagreement for ensembles). Actuals, when given, come first
    with model_id 0.
    """
    table, cal = _unpack(models)
    schema = table.validate_schema()
    table.require_fitted()
    check_conf_level(conf_level)
    conf_method = str(conf_method or "conformal").strip().lower()
    if conf_method not in CONF_METHODS:
        raise ValueError(f"conf_method must be one of: {', '.join(CONF_METHODS)}")

    if (new_data is None) == (h is None):
        raise ValueError("pass exactly one of new_data or h")
    if new_data is None:
        if actual_data is None:
            raise ValueError("h needs actual_data to extend from")
        new_data = future_frame(actual_data, int(h), date_col=schema.date_col, freq=freq)
    if len(new_data) == 0:
        raise ValueError("new_data is empty")

    new_data = new_data.sort_values(schema.date_col).reset_index(drop=True)
    dates = pd.to_datetime(new_data[schema.date_col]).to_numpy()

    frames = []
    if actual_data is not None:
        act = actual_data.sort_values(schema.date_col)
        frames.append(
            pd.DataFrame(
                {
                    "model_id": 0,
                    "model_desc": "ACTUAL",
                    "key": KEY_ACTUAL,
                    "date": pd.to_datetime(act[schema.date_col]).to_numpy(),
                    "value": act[schema.value_col].to_numpy(dtype=float),
                    "conf_lo": np.nan,
                    "conf_hi": np.nan,
                }
            )
        )

    for model_id, m in table.items():
        if cal is not None and model_id in cal.results:
            mu = np.asarray(m.predict(new_data), dtype=float)
            lo, hi = cal.intervals(model_id, mu, conf_level=conf_level, conf_method=conf_method)
        elif isinstance(m, EnsembleModel):
            mu, sigma = m.predict_with_sigma(new_data)
            half = z_value(conf_level) * sigma
            lo, hi = mu - half, mu + half
        else:
            mu = np.asarray(m.predict(new_data), dtype=float)
            lo, hi = normal_interval(mu, m.residual_sigma, conf_level=conf_level)

        frames.append(
            pd.DataFrame(
                {
                    "model_id": model_id,
                    "model_desc": table.describe(model_id),
                    "key": KEY_PREDICTION,
                    "date": dates,
                    "value": mu,
                    "conf_lo": lo,
                    "conf_hi": hi,
                }
            )
        )

    logger.info(f"Forecast {len(new_data)} steps for {len(table)} models")
    out = pd.concat(frames, ignore_index=True)
    return out[list(FORECAST_COLUMNS)]
