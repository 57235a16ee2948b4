from __future__ import annotations

from typing import Any, Dict

from sklearn.ensemble import HistGradientBoostingRegressor, RandomForestRegressor
from sklearn.impute import SimpleImputer
from sklearn.linear_model import ElasticNet
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler

from tsensemble.modeling.base import RecipeForecaster


def _with_imputer(est, *, scale: bool = False):
    # Median is robust; also keeps behavior deterministic.
    steps = [("imputer", SimpleImputer(strategy="median"))]
    if scale:
        steps.append(("scaler", StandardScaler()))
    steps.append(("model", est))
    return Pipeline(steps)


class ElasticNetForecaster(RecipeForecaster):
    name = "elastic_net"
    version = "1"

    def __init__(self, *, alpha: float = 0.01, l1_ratio: float = 0.5, max_iter: int = 10000, recipe=None):
        super().__init__(recipe=recipe)
        self.alpha = float(alpha)
        self.l1_ratio = float(l1_ratio)
        self.max_iter = int(max_iter)

    def get_params(self) -> Dict[str, Any]:
        return {"alpha": self.alpha, "l1_ratio": self.l1_ratio, "max_iter": self.max_iter}

    def build_estimator(self):
        return _with_imputer(
            ElasticNet(alpha=self.alpha, l1_ratio=self.l1_ratio, max_iter=self.max_iter, random_state=0),
            scale=True,
        )


class RandomForestForecaster(RecipeForecaster):
    name = "random_forest"
    version = "1"

    def __init__(
        self,
        *,
        n_estimators: int = 300,
        max_depth: int | None = None,
        min_samples_leaf: int = 2,
        recipe=None,
    ):
        super().__init__(recipe=recipe)
        self.n_estimators = int(n_estimators)
        self.max_depth = max_depth
        self.min_samples_leaf = int(min_samples_leaf)

    def get_params(self) -> Dict[str, Any]:
        return {
            "n_estimators": self.n_estimators,
            "max_depth": self.max_depth,
            "min_samples_leaf": self.min_samples_leaf,
        }

    def build_estimator(self):
        return _with_imputer(
            RandomForestRegressor(
                n_estimators=self.n_estimators,
                max_depth=self.max_depth,
                min_samples_leaf=self.min_samples_leaf,
                random_state=0,
                n_jobs=1,
            )
        )


class GBTForecaster(RecipeForecaster):
    """Gradient boosted trees (sklearn HistGradientBoostingRegressor)."""

    name = "gbt"
    version = "1"

    def __init__(
        self,
        *,
        max_depth: int = 4,
        learning_rate: float = 0.05,
        max_iter: int = 300,
        min_samples_leaf: int = 5,
        recipe=None,
    ):
        super().__init__(recipe=recipe)
        self.max_depth = int(max_depth)
        self.learning_rate = float(learning_rate)
        self.max_iter = int(max_iter)
        self.min_samples_leaf = int(min_samples_leaf)

    def get_params(self) -> Dict[str, Any]:
        return {
            "max_depth": self.max_depth,
            "learning_rate": self.learning_rate,
            "max_iter": self.max_iter,
            "min_samples_leaf": self.min_samples_leaf,
        }

    def build_estimator(self):
        return HistGradientBoostingRegressor(
            max_depth=self.max_depth,
            learning_rate=self.learning_rate,
            max_iter=self.max_iter,
            min_samples_leaf=self.min_samples_leaf,
            random_state=0,
        )


def default_submodels(*, recipe=None) -> list:
    """The three submodels used by the CLI and the backtest."""
    mk = (lambda: recipe.clone()) if recipe is not None else (lambda: None)
    return [
        ElasticNetForecaster(recipe=mk()),
        RandomForestForecaster(recipe=mk()),
        GBTForecaster(recipe=mk()),
    ]
