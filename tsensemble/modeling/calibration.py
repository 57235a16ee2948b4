"""Hold-out calibration of a model table.

calibrate() predicts a test window with every model in the table and keeps
the residuals. Those residuals drive the accuracy table and the prediction
intervals of later forecasts, and they survive a refit on the full data.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np
import pandas as pd

from tsensemble.modeling.errors import InsufficientCalibrationDataError
from tsensemble.modeling.metrics import accuracy_metrics
from tsensemble.modeling.registry import ModelTable
from tsensemble.modeling.types import CalibrationResult
from tsensemble.modeling.uncertainty import interval_from_residuals

logger = logging.getLogger(__name__)


@dataclass
class CalibratedTable:
    table: ModelTable
    results: Dict[int, CalibrationResult]
    train_values: Optional[np.ndarray] = field(default=None, repr=False)

    def result(self, model_id: int) -> CalibrationResult:
        try:
            return self.results[model_id]
        except KeyError:
            raise KeyError(f"model {model_id} has no calibration") from None

    def residuals_frame(self) -> pd.DataFrame:
        frames = []
        for model_id, r in self.results.items():
            frames.append(
                pd.DataFrame(
                    {
                        "model_id": model_id,
                        "model_desc": r.model_desc,
                        "date": r.dates,
                        "actual": r.actual,
                        "prediction": r.predicted,
                        "residual": r.residuals,
                    }
                )
            )
        return pd.concat(frames, ignore_index=True)

    def accuracy(self) -> pd.DataFrame:
        """One row per model: mae, mape, mase, smape, rmse, rsq on the hold-out."""
        rows = []
        for model_id, r in self.results.items():
            row = {"model_id": model_id, "model_desc": r.model_desc, "n": r.n}
            row.update(accuracy_metrics(r.actual, r.predicted, y_train=self.train_values))
            rows.append(row)
        return pd.DataFrame(rows)

    def intervals(
        self,
        model_id: int,
        mu: np.ndarray,
        *,
        conf_level: float = 0.95,
        conf_method: str = "conformal",
    ):
        return interval_from_residuals(
            mu,
            self.result(model_id).residuals,
            conf_level=conf_level,
            method=conf_method,
        )

    def refit(self, df: pd.DataFrame, *, n_jobs: int = 1) -> "CalibratedTable":
        """Refit every model on `df`.

        Hold-out residuals and the training series that scales MASE are carried
        over, so accuracy() still describes the original calibration split.
        """
        logger.info(f"Refitting {len(self.table)} calibrated models on {len(df)} rows")
        table = self.table.fit_all(df, n_jobs=n_jobs)
        return CalibratedTable(table=table, results=dict(self.results), train_values=self.train_values)


def calibrate(
    table,
    test_df: pd.DataFrame,
    *,
    train_df: Optional[pd.DataFrame] = None,
) -> CalibratedTable:
    """Predict the hold-out window with every fitted model and record residuals.

    `train_df`, when given, scales MASE by the in-sample naive error.
    """
    if not isinstance(table, ModelTable):
        table = ModelTable(table)
    schema = table.validate_schema()
    table.require_fitted()

    if len(test_df) == 0:
        raise InsufficientCalibrationDataError("calibration data is empty")
    if schema.value_col not in test_df.columns:
        raise InsufficientCalibrationDataError(f"calibration data has no '{schema.value_col}' column")

    test_df = test_df.sort_values(schema.date_col)
    actual = test_df[schema.value_col].to_numpy(dtype=float)
    if np.isnan(actual).all():
        raise InsufficientCalibrationDataError("calibration data has no observed values")
    dates = pd.to_datetime(test_df[schema.date_col]).to_numpy()

    results: Dict[int, CalibrationResult] = {}
    for model_id, m in table.items():
        pred = np.asarray(m.predict(test_df), dtype=float)
        ok = np.isfinite(actual)
        results[model_id] = CalibrationResult(
            model_id=model_id,
            model_desc=table.describe(model_id),
            dates=dates[ok],
            actual=actual[ok],
            predicted=pred[ok],
        )
        logger.debug(f"Calibrated model {model_id} ({table.describe(model_id)}) on {int(ok.sum())} rows")

    logger.info(f"Calibrated {len(table)} models on {len(test_df)} hold-out rows")
    train_values = None
    if train_df is not None and schema.value_col in train_df.columns:
        train_values = train_df.sort_values(schema.date_col)[schema.value_col].to_numpy(dtype=float)
    return CalibratedTable(table=table, results=results, train_values=train_values)
