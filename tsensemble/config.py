from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from tsensemble.modeling.folds import FoldSpec
from tsensemble.modeling.uncertainty import CONF_METHODS, check_conf_level

STRATEGIES = ("mean", "median", "weighted", "stacking")


@dataclass(frozen=True)
class EnsembleConfig:
    date_col: str = "date"
    value_col: str = "value"

    # hold-out window for calibration, then forecast horizon after refit
    assess: int = 12
    horizon: int = 12
    conf_level: float = 0.95
    conf_method: str = "conformal"

    strategy: str = "mean"
    weights: Optional[Tuple[float, ...]] = None

    # stacking
    fold_train_min: Optional[int] = None
    fold_test_size: Optional[int] = None
    fold_step_size: Optional[int] = None
    meta_alpha: float = 0.1
    meta_l1_ratio: float = 0.5
    min_coverage: float = 0.3

    n_jobs: int = 1

    def __post_init__(self) -> None:
        if self.strategy not in STRATEGIES:
            raise ValueError(f"strategy must be one of: {', '.join(STRATEGIES)}")
        if self.strategy == "weighted" and not self.weights:
            raise ValueError("strategy 'weighted' needs weights")
        if int(self.assess) < 1 or int(self.horizon) < 1:
            raise ValueError("assess and horizon must be >= 1")
        if self.conf_method not in CONF_METHODS:
            raise ValueError(f"conf_method must be one of: {', '.join(CONF_METHODS)}")
        check_conf_level(self.conf_level)
        if not 0.0 <= float(self.min_coverage) <= 1.0:
            raise ValueError("min_coverage must be in [0, 1]")

    def fold_spec(self) -> Optional[FoldSpec]:
        parts = (self.fold_train_min, self.fold_test_size, self.fold_step_size)
        if all(p is None for p in parts):
            return None
        if any(p is None for p in parts):
            raise ValueError("fold_train_min, fold_test_size and fold_step_size go together")
        return FoldSpec(train_min=int(parts[0]), test_size=int(parts[1]), step_size=int(parts[2]))

    def with_overrides(self, **overrides: Any) -> "EnsembleConfig":
        """Copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def load_config(path: Path) -> EnsembleConfig:
    """Read an EnsembleConfig from JSON. Unknown keys are an error."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    raw = json.loads(path.read_text())
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: config must be a JSON object")

    known = {f.name for f in fields(EnsembleConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"{path}: unknown config keys: {unknown}")
    if raw.get("weights") is not None:
        raw["weights"] = tuple(float(w) for w in raw["weights"])
    return EnsembleConfig(**raw)
