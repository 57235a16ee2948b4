from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import numpy as np
import pandas as pd


FORECAST_COLUMNS: Tuple[str, ...] = (
    "model_id",
    "model_desc",
    "key",
    "date",
    "value",
    "conf_lo",
    "conf_hi",
)

KEY_ACTUAL = "actual"
KEY_PREDICTION = "prediction"


@dataclass(frozen=True)
class Interval:
    low: float
    high: float


@dataclass(frozen=True)
class InputSchema:
    date_col: str
    value_col: str
    exog: Tuple[str, ...] = ()

    def required_columns(self) -> List[str]:
        return [self.date_col, *self.exog]


@dataclass(frozen=True)
class FitArtifacts:
    feature_names: List[str]
    model: Any
    residual_sigma: float
    n_train: int
    trained_through: Optional[pd.Timestamp] = None


@dataclass(frozen=True)
class CalibrationResult:
    """Hold-out actuals vs predictions for one model."""

    model_id: int
    model_desc: str
    dates: np.ndarray
    actual: np.ndarray
    predicted: np.ndarray

    @property
    def residuals(self) -> np.ndarray:
        return self.actual - self.predicted

    @property
    def n(self) -> int:
        return int(self.actual.shape[0])
