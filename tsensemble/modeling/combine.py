"""Combination strategies for an aligned submodel prediction matrix.

Every strategy maps a (n_rows, n_models) matrix to one combined column:

- MeanAverage: per-row mean (or median), no fitting
- WeightedAverage: fixed nonnegative loadings, normalised at use time
- Stacking: meta-regressor learned on out-of-fold submodel predictions
"""
from __future__ import annotations

import logging
import warnings
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.base import clone as sk_clone
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import ElasticNet

from tsensemble.modeling.errors import (
    InsufficientCalibrationDataError,
    InsufficientCoverageWarning,
    MetaModelConvergenceWarning,
    NotFittedError,
)
from tsensemble.modeling.folds import FoldSpec, walkforward_folds
from tsensemble.modeling.uncertainty import clamp_sigma

logger = logging.getLogger(__name__)


def simplex_project(v: np.ndarray) -> np.ndarray:
    """Project onto the probability simplex: w>=0, sum w = 1.

    Deterministic O(d log d) algorithm.
    """
    v = np.asarray(v, dtype=float)
    if v.ndim != 1:
        raise ValueError("v must be 1D")

    n = v.shape[0]
    if n == 0:
        raise ValueError("empty vector")

    u = np.sort(v)[::-1]
    cssv = np.cumsum(u)
    rho = np.nonzero(u * np.arange(1, n + 1) > (cssv - 1))[0]
    if len(rho) == 0:
        # fallback: uniform
        return np.ones(n) / n
    rho = rho[-1]
    theta = (cssv[rho] - 1.0) / float(rho + 1)
    w = np.maximum(v - theta, 0.0)

    s = w.sum()
    if s <= 0:
        return np.ones(n) / n
    return w / s


def fit_ensemble_weights(
    base_mu: np.ndarray,
    y: np.ndarray,
    *,
    lr: float = 0.2,
    steps: int = 250,
) -> np.ndarray:
    """Fit non-negative weights that sum to 1.

    base_mu: shape (n_samples, n_models)
    y: shape (n_samples,)

    Uses projected gradient descent on MSE. Columns are rescaled by the
    overall prediction scale first so the step size does not depend on units.
    """
    X = np.asarray(base_mu, dtype=float)
    y = np.asarray(y, dtype=float)
    if X.ndim != 2:
        raise ValueError("base_mu must be 2D")
    if y.ndim != 1:
        raise ValueError("y must be 1D")
    if X.shape[0] != y.shape[0]:
        raise ValueError("mismatched rows")

    scale = float(np.max(np.abs(X))) or 1.0
    Xs = X / scale
    ys = y / scale

    m = X.shape[1]
    w = np.ones(m) / m

    for _ in range(int(steps)):
        pred = Xs @ w
        grad = (2.0 / Xs.shape[0]) * (Xs.T @ (pred - ys))
        w = simplex_project(w - float(lr) * grad)

    return w


def ensemble_mu_sigma(
    base_mus: np.ndarray,
    base_sigmas: Iterable[float],
    weights: Iterable[float],
) -> Tuple[np.ndarray, np.ndarray]:
    """Combine per-model means and sigmas, row by row.

    Framework formula:
      mu* = sum w_i mu_i
      sigma*^2 = sum w_i^2 sigma_i^2 + Var_w(mu_i)

    The Var_w(mu_i) term is the (weighted) model disagreement.
    """
    mu = np.atleast_2d(np.asarray(base_mus, dtype=float))
    sig = np.asarray([clamp_sigma(s) for s in base_sigmas], dtype=float)
    w = simplex_project(np.asarray(list(weights), dtype=float))

    mu_star = mu @ w
    var_mu = ((mu - mu_star[:, None]) ** 2) @ w
    var_noise = float(((sig**2) * (w**2)).sum())
    sigma_star = np.sqrt(np.maximum(1e-8, var_noise + var_mu))
    return (mu_star, sigma_star)


def _check_matrix(matrix: np.ndarray, n_models: Optional[int] = None) -> np.ndarray:
    X = np.asarray(matrix, dtype=float)
    if X.ndim != 2:
        raise ValueError("prediction matrix must be 2D (n_rows, n_models)")
    if X.shape[1] == 0:
        raise ValueError("prediction matrix has no model columns")
    if n_models is not None and X.shape[1] != n_models:
        raise ValueError(f"expected {n_models} model columns, got {X.shape[1]}")
    return X


class CombinationStrategy(ABC):
    name: str

    @property
    def is_fitted(self) -> bool:
        return True

    def fit(self, table, df: pd.DataFrame, *, n_jobs: int = 1):
        """Learn whatever the strategy needs from `df`; returns the table to use."""
        return table

    @abstractmethod
    def combine(self, matrix: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    @abstractmethod
    def weights(self, n_models: int) -> np.ndarray:
        """Effective nonnegative weights summing to 1 (used for sigma pooling)."""
        raise NotImplementedError

    @abstractmethod
    def clone(self) -> "CombinationStrategy":
        raise NotImplementedError

    def describe(self) -> str:
        return self.name.upper()

    def diagnostics(self) -> Dict[str, Any]:
        return {"strategy": self.name}


class MeanAverage(CombinationStrategy):
    KINDS = ("mean", "median")

    def __init__(self, kind: str = "mean"):
        kind = str(kind or "mean").strip().lower()
        if kind not in self.KINDS:
            raise ValueError(f"kind must be one of: {', '.join(self.KINDS)}")
        self.kind = kind
        self.name = kind

    def combine(self, matrix: np.ndarray) -> np.ndarray:
        X = _check_matrix(matrix)
        if self.kind == "median":
            return np.median(X, axis=1)
        return X.mean(axis=1)

    def weights(self, n_models: int) -> np.ndarray:
        return np.ones(int(n_models)) / float(n_models)

    def clone(self) -> "MeanAverage":
        return MeanAverage(self.kind)

    def describe(self) -> str:
        return f"ENSEMBLE ({self.kind.upper()})"

    def diagnostics(self) -> Dict[str, Any]:
        return {"strategy": "average", "kind": self.kind}


class WeightedAverage(CombinationStrategy):
    name = "weighted"

    def __init__(self, loadings: Sequence[float]):
        w = np.asarray(list(loadings), dtype=float)
        if w.ndim != 1 or w.shape[0] == 0:
            raise ValueError("loadings must be a non-empty 1D sequence")
        if not np.all(np.isfinite(w)):
            raise ValueError("loadings must be finite")
        if np.any(w < 0):
            raise ValueError("loadings must be nonnegative")
        if w.sum() <= 0:
            raise ValueError("at least one loading must be positive")
        self.loadings = w

    @classmethod
    def optimize(cls, matrix: np.ndarray, y: np.ndarray, **kwargs) -> "WeightedAverage":
        """Loadings that minimise squared error on held-out predictions."""
        return cls(fit_ensemble_weights(_check_matrix(matrix), y, **kwargs))

    def weights(self, n_models: int) -> np.ndarray:
        if int(n_models) != self.loadings.shape[0]:
            raise ValueError(f"{self.loadings.shape[0]} loadings given for {n_models} models")
        return self.loadings / self.loadings.sum()

    def combine(self, matrix: np.ndarray) -> np.ndarray:
        X = _check_matrix(matrix, self.loadings.shape[0])
        return X @ self.weights(X.shape[1])

    def clone(self) -> "WeightedAverage":
        return WeightedAverage(self.loadings.copy())

    def describe(self) -> str:
        return "ENSEMBLE (WEIGHTED)"

    def diagnostics(self) -> Dict[str, Any]:
        return {
            "strategy": self.name,
            "loadings": self.loadings.tolist(),
            "weights": self.weights(self.loadings.shape[0]).tolist(),
        }


def default_meta_model(*, alpha: float = 0.1, l1_ratio: float = 0.5) -> ElasticNet:
    return ElasticNet(alpha=float(alpha), l1_ratio=float(l1_ratio), max_iter=10000, random_state=0)


def default_stacking_folds(n: int) -> FoldSpec:
    """Half the history to start, then ~5 equal held-out steps.

    Every fold trains on at least 2 rows, the minimum a recipe can be fit on.
    """
    train_min = max(2, n // 2)
    test_size = max(1, (n - train_min) // 5)
    return FoldSpec(train_min=train_min, test_size=test_size, step_size=test_size)


def _oof_predict(model, df: pd.DataFrame, tr: np.ndarray, te: np.ndarray) -> np.ndarray:
    m = model.clone().fit(df.iloc[tr])
    return np.asarray(m.predict(df.iloc[te]), dtype=float)


class Stacking(CombinationStrategy):
    """Meta-learner over out-of-fold submodel predictions.

    fit():
      1. walk-forward folds over the (date-sorted) history
      2. each submodel is cloned, fit on the fold's train slice and predicts
         the held-out slice, giving an out-of-fold matrix
      3. the meta-regressor is fit on that matrix against the actuals
      4. submodels are refit on the full history (refit_submodels=True)

    Low out-of-fold coverage is reported as InsufficientCoverageWarning; the
    ensemble is still usable.
    """

    name = "stacking"

    def __init__(
        self,
        *,
        meta_model=None,
        folds: Optional[FoldSpec] = None,
        min_coverage: float = 0.3,
        refit_submodels: bool = True,
    ):
        if not 0.0 <= float(min_coverage) <= 1.0:
            raise ValueError("min_coverage must be in [0, 1]")
        self.meta_model = meta_model if meta_model is not None else default_meta_model()
        self.folds = folds
        self.min_coverage = float(min_coverage)
        self.refit_submodels = bool(refit_submodels)

        self._meta = None
        self._n_models: Optional[int] = None
        self._passthrough = False
        self.oof_coverage: Optional[float] = None
        self.n_oof: int = 0

    @property
    def is_fitted(self) -> bool:
        return self._passthrough or self._meta is not None

    def clone(self) -> "Stacking":
        return Stacking(
            meta_model=sk_clone(self.meta_model),
            folds=self.folds,
            min_coverage=self.min_coverage,
            refit_submodels=self.refit_submodels,
        )

    def out_of_fold(self, table, df: pd.DataFrame, *, n_jobs: int = 1) -> Tuple[np.ndarray, np.ndarray, float]:
        """Returns (oof_matrix, y_oof, coverage)."""
        schema = table.validate_schema()
        df = df.sort_values(schema.date_col).reset_index(drop=True)
        n = len(df)
        spec = self.folds or default_stacking_folds(n)
        folds = walkforward_folds(n, spec=spec)
        if not folds:
            raise InsufficientCalibrationDataError(
                f"no walk-forward folds fit in {n} rows (train_min={spec.train_min}, test_size={spec.test_size})"
            )

        logger.info(f"Stacking: {len(folds)} folds x {len(table)} models on {n} rows")
        # fold-major order: preds[fold * n_models + model]
        preds = Parallel(n_jobs=n_jobs)(
            delayed(_oof_predict)(m, df, tr, te) for tr, te in folds for m in table.models
        )

        n_models = len(table)
        blocks: List[np.ndarray] = []
        y_blocks: List[np.ndarray] = []
        covered = set()
        y_all = df[schema.value_col].to_numpy(dtype=float)
        for fi, (tr, te) in enumerate(folds):
            cols = [preds[fi * n_models + mi] for mi in range(n_models)]
            blocks.append(np.column_stack(cols))
            y_blocks.append(y_all[te])
            covered.update(int(i) for i in te)
            logger.debug(f"Stacking fold {fi + 1}: train={len(tr)} heldout={len(te)}")

        return np.vstack(blocks), np.concatenate(y_blocks), len(covered) / float(n)

    def fit(self, table, df: pd.DataFrame, *, n_jobs: int = 1):
        if len(table) == 0:
            raise ValueError("model table is empty")
        self._n_models = len(table)
        self._meta = None
        self._passthrough = False

        if len(table) == 1:
            logger.info("Stacking with a single submodel: pass-through")
            self._passthrough = True
            self.oof_coverage = None
            self.n_oof = 0
            return table.fit_all(df, n_jobs=n_jobs) if self.refit_submodels else table

        X_oof, y_oof, cov = self.out_of_fold(table, df, n_jobs=n_jobs)
        self.oof_coverage = cov
        self.n_oof = int(X_oof.shape[0])

        if self.n_oof == 0:
            raise InsufficientCalibrationDataError("no out-of-fold predictions to fit the meta-model on")

        low_cov = cov < self.min_coverage
        few_rows = self.n_oof < self._n_models + 2
        if low_cov or few_rows:
            reasons = []
            if low_cov:
                reasons.append(f"out-of-fold coverage {cov:.0%} is below min_coverage={self.min_coverage:.0%}")
            if few_rows:
                reasons.append(
                    f"only {self.n_oof} out-of-fold rows for {self._n_models} models (need {self._n_models + 2})"
                )
            msg = "; ".join(reasons) + "; meta-model may be unreliable"
            logger.warning(msg)
            warnings.warn(msg, InsufficientCoverageWarning, stacklevel=2)

        meta = sk_clone(self.meta_model)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", ConvergenceWarning)
            meta.fit(X_oof, y_oof)
        for w in caught:
            if issubclass(w.category, ConvergenceWarning):
                msg = f"meta-model did not converge: {w.message}"
                logger.warning(msg)
                warnings.warn(msg, MetaModelConvergenceWarning, stacklevel=2)
            else:
                warnings.warn_explicit(w.message, w.category, w.filename, w.lineno)
        self._meta = meta

        coef = getattr(meta, "coef_", None)
        if coef is not None:
            logger.info(f"Stacking meta-model coefficients: {np.round(np.ravel(coef), 4).tolist()}")

        if self.refit_submodels:
            return table.fit_all(df, n_jobs=n_jobs)
        return table

    def combine(self, matrix: np.ndarray) -> np.ndarray:
        if not self.is_fitted:
            raise NotFittedError("Stacking meta-model not fit")
        X = _check_matrix(matrix, self._n_models)
        if self._passthrough:
            return X[:, 0].copy()
        return np.asarray(self._meta.predict(X), dtype=float)

    def coefficients(self) -> Tuple[np.ndarray, float]:
        if not self.is_fitted:
            raise NotFittedError("Stacking meta-model not fit")
        if self._passthrough:
            return (np.ones(1), 0.0)
        coef = np.ravel(getattr(self._meta, "coef_", np.full(self._n_models, np.nan)))
        intercept = float(np.ravel(getattr(self._meta, "intercept_", 0.0))[0])
        return (coef, intercept)

    def weights(self, n_models: int) -> np.ndarray:
        coef, _ = self.coefficients()
        if coef.shape[0] != int(n_models) or not np.all(np.isfinite(coef)):
            return np.ones(int(n_models)) / float(n_models)
        return simplex_project(coef)

    def describe(self) -> str:
        return "ENSEMBLE (STACKED)"

    def diagnostics(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "strategy": self.name,
            "meta_model": type(self.meta_model).__name__,
            "min_coverage": self.min_coverage,
        }
        if self.is_fitted:
            coef, intercept = self.coefficients()
            d.update(
                coefficients=coef.tolist(),
                intercept=intercept,
                oof_coverage=self.oof_coverage,
                n_oof=self.n_oof,
                passthrough=self._passthrough,
            )
        return d
