from __future__ import annotations

from typing import Dict, Optional

import numpy as np


def _pair(y: np.ndarray, yhat: np.ndarray):
    y = np.asarray(y, dtype=float)
    yhat = np.asarray(yhat, dtype=float)
    if y.shape != yhat.shape:
        raise ValueError("y and yhat must have same shape")
    return y, yhat


def mae(y: np.ndarray, yhat: np.ndarray) -> float:
    y, yhat = _pair(y, yhat)
    return float(np.mean(np.abs(y - yhat)))


def rmse(y: np.ndarray, yhat: np.ndarray) -> float:
    y, yhat = _pair(y, yhat)
    return float(np.sqrt(np.mean((y - yhat) ** 2)))


def mape(y: np.ndarray, yhat: np.ndarray) -> float:
    """Mean absolute percentage error (in percent). Zero actuals are skipped."""
    y, yhat = _pair(y, yhat)
    mask = y != 0
    if not np.any(mask):
        return float("nan")
    return float(100.0 * np.mean(np.abs((y[mask] - yhat[mask]) / y[mask])))


def smape(y: np.ndarray, yhat: np.ndarray) -> float:
    """Symmetric MAPE (in percent, 0..200)."""
    y, yhat = _pair(y, yhat)
    denom = (np.abs(y) + np.abs(yhat)) / 2.0
    mask = denom != 0
    if not np.any(mask):
        return 0.0
    return float(100.0 * np.mean(np.abs(y[mask] - yhat[mask]) / denom[mask]))


def mase(y: np.ndarray, yhat: np.ndarray, *, y_train: Optional[np.ndarray] = None, m: int = 1) -> float:
    """Mean absolute scaled error against the lag-m naive forecast.

    Scaled by the in-sample naive error of `y_train` when given, else of `y`.
    """
    y, yhat = _pair(y, yhat)
    ref = np.asarray(y if y_train is None else y_train, dtype=float)
    m = int(max(1, m))
    if ref.shape[0] <= m:
        return float("nan")
    scale = float(np.mean(np.abs(ref[m:] - ref[:-m])))
    if scale == 0:
        return float("nan")
    return float(np.mean(np.abs(y - yhat)) / scale)


def rsq(y: np.ndarray, yhat: np.ndarray) -> float:
    """Squared correlation between actuals and predictions."""
    y, yhat = _pair(y, yhat)
    if y.shape[0] < 2 or np.std(y) == 0 or np.std(yhat) == 0:
        return float("nan")
    return float(np.corrcoef(y, yhat)[0, 1] ** 2)


def coverage(y: np.ndarray, lo: np.ndarray, hi: np.ndarray) -> float:
    y = np.asarray(y, dtype=float)
    lo = np.asarray(lo, dtype=float)
    hi = np.asarray(hi, dtype=float)
    return float(np.mean((y >= lo) & (y <= hi)))


def accuracy_metrics(y: np.ndarray, yhat: np.ndarray, *, y_train: Optional[np.ndarray] = None) -> Dict[str, float]:
    return {
        "mae": mae(y, yhat),
        "mape": mape(y, yhat),
        "mase": mase(y, yhat, y_train=y_train),
        "smape": smape(y, yhat),
        "rmse": rmse(y, yhat),
        "rsq": rsq(y, yhat),
    }
