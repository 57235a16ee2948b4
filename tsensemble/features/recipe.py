"""Calendar feature recipe shared by every submodel.

A recipe is fit once on training data (it remembers the trend origin, the
series frequency and the exogenous columns) and then transforms any frame with
the same input columns into a fixed, ordered feature matrix. Keeping the
column set deterministic avoids train/serve skew between calibration, refit
and future forecasts.
"""
from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np
import pandas as pd

from tsensemble.modeling.types import InputSchema


def feature_columns(df: pd.DataFrame, *, ignore: Set[str] | None = None) -> List[str]:
    """Deterministic column selection (sorted, ignored columns dropped)."""

    ig = set(ignore or ())
    cols = [c for c in df.columns if c not in ig]
    cols.sort()
    return cols


class TimeSeriesRecipe:
    """Trend, calendar dummies, Fourier terms and exogenous columns.

    exog=() uses no exogenous columns; exog=None takes every column other than
    the date and value columns at fit time.
    """

    def __init__(
        self,
        *,
        date_col: str = "date",
        value_col: str = "value",
        exog: Optional[Sequence[str]] = (),
        fourier_periods: Iterable[float] = (12.0,),
        fourier_order: int = 2,
        calendar: bool = True,
    ):
        self.date_col = date_col
        self.value_col = value_col
        self.exog = None if exog is None else tuple(exog)
        self.fourier_periods = tuple(float(p) for p in fourier_periods)
        self.fourier_order = int(fourier_order)
        self.calendar = bool(calendar)

        self._origin: pd.Timestamp | None = None
        self._step: pd.Timedelta | None = None
        self._exog: Tuple[str, ...] | None = None

    def get_params(self) -> dict:
        return {
            "date_col": self.date_col,
            "value_col": self.value_col,
            "exog": self.exog,
            "fourier_periods": self.fourier_periods,
            "fourier_order": self.fourier_order,
            "calendar": self.calendar,
        }

    def clone(self) -> "TimeSeriesRecipe":
        return TimeSeriesRecipe(**self.get_params())

    @property
    def is_fitted(self) -> bool:
        return self._origin is not None

    def schema(self) -> InputSchema:
        exog = self._exog if self._exog is not None else (self.exog or ())
        return InputSchema(date_col=self.date_col, value_col=self.value_col, exog=tuple(exog))

    def fit(self, df: pd.DataFrame) -> "TimeSeriesRecipe":
        if self.date_col not in df.columns:
            raise ValueError(f"missing date column: {self.date_col}")
        if len(df) < 2:
            raise ValueError("need at least 2 rows to fit a recipe")

        dates = pd.to_datetime(df[self.date_col]).sort_values().reset_index(drop=True)
        self._origin = pd.Timestamp(dates.iloc[0])
        # median spacing is robust to the odd gap
        self._step = pd.Timedelta(dates.diff().dropna().median())
        if pd.isna(self._step) or self._step <= pd.Timedelta(0):
            raise ValueError("dates must be strictly increasing")

        if self.exog is None:
            self._exog = tuple(feature_columns(df, ignore={self.date_col, self.value_col}))
        else:
            missing = [c for c in self.exog if c not in df.columns]
            if missing:
                raise ValueError(f"missing exogenous columns: {missing}")
            self._exog = tuple(self.exog)
        return self

    def feature_names(self) -> List[str]:
        if not self.is_fitted:
            raise RuntimeError("Recipe not fit")
        names = ["trend"]
        if self.calendar:
            names.append("year")
            names += [f"month_{m:02d}" for m in range(1, 13)]
            names += [f"wday_{d}" for d in range(7)]
        for p in self.fourier_periods:
            for k in range(1, self.fourier_order + 1):
                names += [f"sin_p{p:g}_k{k}", f"cos_p{p:g}_k{k}"]
        names += list(self._exog or ())
        return names

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        if not self.is_fitted:
            raise RuntimeError("Recipe not fit")
        missing = [c for c in self.schema().required_columns() if c not in df.columns]
        if missing:
            raise ValueError(f"missing input columns: {missing}")

        dates = pd.to_datetime(df[self.date_col])
        # trend in units of the training step, so Fourier periods are in steps too
        t = ((dates - self._origin) / self._step).to_numpy(dtype=float)

        out = {"trend": t}
        if self.calendar:
            out["year"] = dates.dt.year.to_numpy(dtype=float)
            month = dates.dt.month.to_numpy()
            for m in range(1, 13):
                out[f"month_{m:02d}"] = (month == m).astype(float)
            wday = dates.dt.dayofweek.to_numpy()
            for d in range(7):
                out[f"wday_{d}"] = (wday == d).astype(float)
        for p in self.fourier_periods:
            for k in range(1, self.fourier_order + 1):
                arg = 2.0 * np.pi * k * t / p
                out[f"sin_p{p:g}_k{k}"] = np.sin(arg)
                out[f"cos_p{p:g}_k{k}"] = np.cos(arg)
        for c in self._exog or ():
            out[c] = pd.to_numeric(df[c], errors="coerce").to_numpy(dtype=float)

        return pd.DataFrame(out, index=df.index)[self.feature_names()]

    def fit_transform(self, df: pd.DataFrame) -> pd.DataFrame:
        return self.fit(df).transform(df)

    def target(self, df: pd.DataFrame) -> np.ndarray:
        if self.value_col not in df.columns:
            raise ValueError(f"missing value column: {self.value_col}")
        return df[self.value_col].to_numpy(dtype=float)
