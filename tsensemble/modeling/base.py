from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from tsensemble.features.recipe import TimeSeriesRecipe
from tsensemble.modeling.errors import NotFittedError
from tsensemble.modeling.types import FitArtifacts, InputSchema
from tsensemble.modeling.uncertainty import sigma_from_residuals


class BaseForecaster(ABC):
    """Common interface for submodels and ensembles.

    Implementations should:
    - accept a frame with the date column, the value column and any
      exogenous columns in `fit`
    - return one prediction per row of `new_data` in `predict`
    - produce an unfitted copy with identical parameters in `clone`
    """

    name: str
    version: str

    @abstractmethod
    def fit(self, df: pd.DataFrame) -> "BaseForecaster":
        raise NotImplementedError

    @abstractmethod
    def predict(self, new_data: pd.DataFrame) -> np.ndarray:
        raise NotImplementedError

    @abstractmethod
    def input_schema(self) -> InputSchema:
        raise NotImplementedError

    @abstractmethod
    def clone(self) -> "BaseForecaster":
        raise NotImplementedError

    @property
    @abstractmethod
    def is_fitted(self) -> bool:
        raise NotImplementedError

    def refit(self, df: pd.DataFrame) -> "BaseForecaster":
        """Fresh copy fit on `df`; self is left untouched."""
        return self.clone().fit(df)

    @property
    def residual_sigma(self) -> float:
        raise NotImplementedError

    def describe(self) -> str:
        return self.name.upper()

    def diagnostics(self) -> Dict[str, Any]:
        return {"model": self.name, "version": self.version}


class RecipeForecaster(BaseForecaster):
    """Submodel backed by a TimeSeriesRecipe and a scikit-learn estimator."""

    def __init__(self, *, recipe=None):
        self.recipe = recipe if recipe is not None else TimeSeriesRecipe()
        self._fit: Optional[FitArtifacts] = None

    @abstractmethod
    def build_estimator(self):
        raise NotImplementedError

    @abstractmethod
    def get_params(self) -> Dict[str, Any]:
        raise NotImplementedError

    def clone(self) -> "RecipeForecaster":
        return self.__class__(recipe=self.recipe.clone(), **self.get_params())

    def input_schema(self) -> InputSchema:
        return self.recipe.schema()

    @property
    def is_fitted(self) -> bool:
        return self._fit is not None

    def artifacts(self) -> FitArtifacts:
        if not self._fit:
            raise NotFittedError(f"Model not fit: {self.name}")
        return self._fit

    @property
    def residual_sigma(self) -> float:
        return self.artifacts().residual_sigma

    def fit(self, df: pd.DataFrame) -> "RecipeForecaster":
        recipe = self.recipe.clone()
        X = recipe.fit_transform(df)
        y = recipe.target(df)
        if np.isnan(y).any():
            raise ValueError(f"{self.name}: value column contains NaN")

        est = self.build_estimator()
        est.fit(X.to_numpy(dtype=float), y)
        res = y - est.predict(X.to_numpy(dtype=float))

        self.recipe = recipe
        self._fit = FitArtifacts(
            feature_names=list(X.columns),
            model=est,
            residual_sigma=sigma_from_residuals(res),
            n_train=int(len(df)),
            trained_through=pd.Timestamp(pd.to_datetime(df[recipe.date_col]).max()),
        )
        return self

    def predict(self, new_data: pd.DataFrame) -> np.ndarray:
        fit = self.artifacts()
        X = self.recipe.transform(new_data)
        return np.asarray(fit.model.predict(X.to_numpy(dtype=float)), dtype=float)

    def diagnostics(self) -> Dict[str, Any]:
        d = super().diagnostics()
        d.update(self.get_params())
        if self._fit:
            d["n_train"] = self._fit.n_train
            d["residual_sigma"] = self._fit.residual_sigma
        return d
