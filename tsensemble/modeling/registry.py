"""Model table: the registry of submodels an ensemble is built from.

Ids are assigned in insertion order starting at 1 and are never reused, so a
model keeps its id across refits.
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from tsensemble.modeling.base import BaseForecaster
from tsensemble.modeling.errors import HorizonMismatchError, NotFittedError, SchemaMismatchError
from tsensemble.modeling.types import InputSchema

logger = logging.getLogger(__name__)


def _fit_clone(model: BaseForecaster, df: pd.DataFrame) -> BaseForecaster:
    return model.clone().fit(df)


class ModelTable:
    def __init__(self, models: Optional[Iterable[BaseForecaster]] = None):
        self._models: "OrderedDict[int, BaseForecaster]" = OrderedDict()
        self._desc: Dict[int, str] = {}
        self._next_id = 1
        for m in models or ():
            self.add(m)

    def add(self, model: BaseForecaster, desc: Optional[str] = None) -> int:
        if not isinstance(model, BaseForecaster):
            raise TypeError(f"expected a BaseForecaster, got {type(model).__name__}")
        model_id = self._next_id
        self._next_id += 1
        self._models[model_id] = model
        self._desc[model_id] = desc or model.describe()
        return model_id

    def remove(self, model_id: int) -> BaseForecaster:
        if model_id not in self._models:
            raise KeyError(f"unknown model id: {model_id}")
        self._desc.pop(model_id)
        return self._models.pop(model_id)

    def get(self, model_id: int) -> BaseForecaster:
        try:
            return self._models[model_id]
        except KeyError:
            raise KeyError(f"unknown model id: {model_id}") from None

    def describe(self, model_id: int) -> str:
        return self._desc[model_id]

    @property
    def ids(self) -> List[int]:
        return list(self._models.keys())

    @property
    def models(self) -> List[BaseForecaster]:
        return list(self._models.values())

    @property
    def descriptions(self) -> List[str]:
        return [self._desc[i] for i in self._models]

    def items(self) -> Iterator[Tuple[int, BaseForecaster]]:
        return iter(list(self._models.items()))

    def __len__(self) -> int:
        return len(self._models)

    def __iter__(self) -> Iterator[BaseForecaster]:
        return iter(self.models)

    def __repr__(self) -> str:
        body = ", ".join(f"{i}:{self._desc[i]}" for i in self._models)
        return f"ModelTable([{body}])"

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                "model_id": self.ids,
                "model_desc": self.descriptions,
                "fitted": [m.is_fitted for m in self.models],
            }
        )

    def _replaced(self, models: List[BaseForecaster]) -> "ModelTable":
        out = ModelTable()
        for (model_id, _), m in zip(self._models.items(), models):
            out._models[model_id] = m
            out._desc[model_id] = self._desc[model_id]
        out._next_id = self._next_id
        return out

    # -----------------
    # invariants
    # -----------------

    def schema(self) -> InputSchema:
        return self.validate_schema()

    def validate_schema(self) -> InputSchema:
        """All submodels must accept the same input columns."""
        if not self._models:
            raise ValueError("model table is empty")
        schemas = {i: m.input_schema() for i, m in self._models.items()}
        first_id = self.ids[0]
        ref = schemas[first_id]
        bad = {i: s for i, s in schemas.items() if s != ref}
        if bad:
            detail = "; ".join(f"model {i}: {s}" for i, s in bad.items())
            raise SchemaMismatchError(f"input schema differs from model {first_id} ({ref}): {detail}")
        return ref

    def require_fitted(self) -> None:
        unfit = [i for i, m in self._models.items() if not m.is_fitted]
        if unfit:
            raise NotFittedError(f"models not fit: {unfit}")

    # -----------------
    # fitting / prediction
    # -----------------

    def fit_all(self, df: pd.DataFrame, *, n_jobs: int = 1) -> "ModelTable":
        """Return a new table whose models are fresh clones fit on `df`.

        Fits are independent, so they run through joblib when n_jobs != 1.
        """
        if not self._models:
            raise ValueError("model table is empty")
        self.validate_schema()
        logger.info(f"Fitting {len(self)} models on {len(df)} rows (n_jobs={n_jobs})")
        fitted = Parallel(n_jobs=n_jobs)(delayed(_fit_clone)(m, df) for m in self.models)
        return self._replaced(list(fitted))

    def refit(self, df: pd.DataFrame, *, n_jobs: int = 1) -> "ModelTable":
        return self.fit_all(df, n_jobs=n_jobs)

    def copy(self) -> "ModelTable":
        """New table holding the same model objects, ids and descriptions."""
        return self._replaced(self.models)

    def clone(self) -> "ModelTable":
        """Unfitted copies of every model, same ids and descriptions."""
        return self._replaced([m.clone() for m in self.models])

    def predict_matrix(self, new_data: pd.DataFrame) -> np.ndarray:
        """Shape (n_rows, n_models), columns in id order."""
        self.validate_schema()
        self.require_fitted()
        cols = []
        for model_id, m in self._models.items():
            p = np.asarray(m.predict(new_data), dtype=float)
            if p.shape != (len(new_data),):
                raise HorizonMismatchError(
                    f"model {model_id} returned {p.shape[0] if p.ndim else 0} predictions for {len(new_data)} rows"
                )
            cols.append(p)
        return np.column_stack(cols)

    def residual_sigmas(self) -> np.ndarray:
        self.require_fitted()
        return np.asarray([m.residual_sigma for m in self.models], dtype=float)


def align_forecasts(
    tables: Mapping[int, pd.DataFrame],
    *,
    date_col: str = "date",
    value_col: str = "value",
) -> pd.DataFrame:
    """Pivot per-model forecast tables to one row per date, one column per model.

    All tables must cover exactly the same timestamps.
    """
    if not tables:
        raise ValueError("no forecast tables given")

    ref_id = next(iter(tables))
    ref_dates = None
    cols = {}
    for model_id, t in tables.items():
        if t[date_col].duplicated().any():
            raise HorizonMismatchError(f"model {model_id}: duplicate timestamps")
        s = t.set_index(pd.to_datetime(t[date_col]))[value_col].sort_index()
        dates = s.index
        if ref_dates is None:
            ref_dates = dates
        elif not dates.equals(ref_dates):
            extra = dates.difference(ref_dates)
            missing = ref_dates.difference(dates)
            raise HorizonMismatchError(
                f"model {model_id} timestamps differ from model {ref_id}: "
                f"{len(missing)} missing, {len(extra)} extra"
            )
        cols[model_id] = s.to_numpy(dtype=float)

    out = pd.DataFrame(cols, index=ref_dates)
    out.index.name = date_col
    return out
