"""Ensemble model: a model table plus a combination strategy.

An EnsembleModel is itself a BaseForecaster, so it can sit in a ModelTable
next to its own submodels and be calibrated, refit and forecast the same way.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from tsensemble.modeling.base import BaseForecaster
from tsensemble.modeling.combine import (
    CombinationStrategy,
    MeanAverage,
    Stacking,
    WeightedAverage,
    default_meta_model,
    ensemble_mu_sigma,
)
from tsensemble.modeling.errors import NotFittedError
from tsensemble.modeling.folds import FoldSpec
from tsensemble.modeling.registry import ModelTable, align_forecasts
from tsensemble.modeling.types import InputSchema

logger = logging.getLogger(__name__)


def _as_table(models) -> ModelTable:
    # copied: the ensemble owns its table
    if isinstance(models, ModelTable):
        return models.copy()
    return ModelTable(models)


class EnsembleModel(BaseForecaster):
    version = "1"

    def __init__(self, table, strategy: CombinationStrategy, *, n_jobs: int = 1):
        self.table = _as_table(table)
        if len(self.table) == 0:
            raise ValueError("an ensemble needs at least one submodel")
        if any(isinstance(m, EnsembleModel) for m in self.table):
            raise ValueError("nested ensembles are not supported")
        self.table.validate_schema()
        self.strategy = strategy
        self.n_jobs = int(n_jobs)
        if isinstance(strategy, WeightedAverage):
            # fail early on a loadings/model count mismatch
            strategy.weights(len(self.table))

    @property
    def name(self) -> str:
        return f"ensemble_{self.strategy.name}"

    def describe(self) -> str:
        return self.strategy.describe()

    def input_schema(self) -> InputSchema:
        return self.table.validate_schema()

    @property
    def is_fitted(self) -> bool:
        return self.strategy.is_fitted and all(m.is_fitted for m in self.table)

    def clone(self) -> "EnsembleModel":
        return EnsembleModel(self.table.clone(), self.strategy.clone(), n_jobs=self.n_jobs)

    def fit(self, df: pd.DataFrame) -> "EnsembleModel":
        """Fit submodels and the strategy on `df`, replacing any previous state."""
        logger.info(f"Fitting {self.describe()} with {len(self.table)} submodels on {len(df)} rows")
        strategy = self.strategy.clone()
        if isinstance(strategy, Stacking):
            table = strategy.fit(self.table, df, n_jobs=self.n_jobs)
            if not strategy.refit_submodels:
                table = table.fit_all(df, n_jobs=self.n_jobs)
        else:
            table = strategy.fit(self.table.fit_all(df, n_jobs=self.n_jobs), df, n_jobs=self.n_jobs)
        self.table = table
        self.strategy = strategy
        return self

    def submodel_predictions(self, new_data: pd.DataFrame) -> np.ndarray:
        if not self.is_fitted:
            raise NotFittedError(f"Ensemble not fit: {self.describe()}")
        return self.table.predict_matrix(new_data)

    def predict(self, new_data: pd.DataFrame) -> np.ndarray:
        return self.strategy.combine(self.submodel_predictions(new_data))

    def predict_with_sigma(self, new_data: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray]:
        """Combined prediction and a pooled sigma per row.

        The sigma pools the submodels' training residual sigmas with the
        strategy's effective weights and adds model disagreement.
        """
        X = self.submodel_predictions(new_data)
        mu = self.strategy.combine(X)
        w = self.strategy.weights(X.shape[1])
        _, sigma = ensemble_mu_sigma(X, self.table.residual_sigmas(), w)
        return mu, sigma

    @property
    def residual_sigma(self) -> float:
        sig = self.table.residual_sigmas()
        w = self.strategy.weights(sig.shape[0])
        return float(np.sqrt(np.sum((w**2) * (sig**2))))

    def weights(self) -> np.ndarray:
        return self.strategy.weights(len(self.table))

    def combine_forecasts(
        self,
        tables: Mapping[int, pd.DataFrame],
        *,
        date_col: str = "date",
        value_col: str = "value",
    ) -> pd.DataFrame:
        """Combine externally produced per-model forecasts (one frame per model id)."""
        missing = [i for i in self.table.ids if i not in tables]
        extra = [i for i in tables if i not in self.table.ids]
        if missing or extra:
            raise ValueError(f"forecast tables do not match ensemble models (missing={missing}, extra={extra})")
        wide = align_forecasts({i: tables[i] for i in self.table.ids}, date_col=date_col, value_col=value_col)
        combined = self.strategy.combine(wide.to_numpy(dtype=float))
        return pd.DataFrame({date_col: wide.index, value_col: combined}).reset_index(drop=True)

    def diagnostics(self) -> Dict[str, Any]:
        return {
            "model": self.name,
            "version": self.version,
            "submodels": [
                {"model_id": i, "model_desc": self.table.describe(i), **m.diagnostics()}
                for i, m in self.table.items()
            ],
            **self.strategy.diagnostics(),
        }


# -----------------
# factories
# -----------------


def ensemble_average(models, *, kind: str = "mean", n_jobs: int = 1) -> EnsembleModel:
    """Mean (or median) of already fitted submodels."""
    ens = EnsembleModel(models, MeanAverage(kind), n_jobs=n_jobs)
    ens.table.require_fitted()
    return ens


def ensemble_weighted(models, loadings: Sequence[float], *, n_jobs: int = 1) -> EnsembleModel:
    """Weighted average of already fitted submodels; loadings are normalised."""
    ens = EnsembleModel(models, WeightedAverage(loadings), n_jobs=n_jobs)
    ens.table.require_fitted()
    return ens


def ensemble_stacked(
    models,
    data: pd.DataFrame,
    *,
    folds: Optional[FoldSpec] = None,
    meta_model=None,
    meta_alpha: float = 0.1,
    meta_l1_ratio: float = 0.5,
    min_coverage: float = 0.3,
    refit_submodels: bool = True,
    n_jobs: int = 1,
) -> EnsembleModel:
    """Stacked ensemble: learn the meta-model from out-of-fold predictions on `data`."""
    if meta_model is None:
        meta_model = default_meta_model(alpha=meta_alpha, l1_ratio=meta_l1_ratio)
    strategy = Stacking(
        meta_model=meta_model,
        folds=folds,
        min_coverage=min_coverage,
        refit_submodels=refit_submodels,
    )
    ens = EnsembleModel(models, strategy, n_jobs=n_jobs)
    ens.table = strategy.fit(ens.table, data, n_jobs=n_jobs)
    if not ens.is_fitted:
        raise NotFittedError("submodels must be fit before stacking when refit_submodels=False")
    return ens


def build_ensemble(
    models,
    strategy: str,
    *,
    data: Optional[pd.DataFrame] = None,
    weights: Optional[Iterable[float]] = None,
    **stacking_kwargs,
) -> EnsembleModel:
    """Dispatch on a strategy name: mean, median, weighted or stacking."""
    s = str(strategy or "mean").strip().lower()
    if s in MeanAverage.KINDS:
        return ensemble_average(models, kind=s, n_jobs=stacking_kwargs.get("n_jobs", 1))
    if s == "weighted":
        if weights is None:
            raise ValueError("weighted strategy needs weights")
        return ensemble_weighted(models, list(weights), n_jobs=stacking_kwargs.get("n_jobs", 1))
    if s == "stacking":
        if data is None:
            raise ValueError("stacking strategy needs training data")
        return ensemble_stacked(models, data, **stacking_kwargs)
    raise ValueError("strategy must be one of: mean, median, weighted, stacking")
