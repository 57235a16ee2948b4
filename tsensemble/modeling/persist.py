from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

import joblib

from tsensemble.modeling.base import BaseForecaster
from tsensemble.modeling.calibration import CalibratedTable
from tsensemble.modeling.registry import ModelTable

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


def _kind(obj: Any) -> str:
    if isinstance(obj, CalibratedTable):
        return "calibrated_table"
    if isinstance(obj, ModelTable):
        return "model_table"
    if isinstance(obj, BaseForecaster):
        return "model"
    raise TypeError(f"cannot save object of type {type(obj).__name__}")


def save_model(obj: Any, path: Path) -> Path:
    """Dump a model, model table or calibrated table with joblib."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload: Dict[str, Any] = {
        "format_version": FORMAT_VERSION,
        "kind": _kind(obj),
        "object": obj,
    }
    if isinstance(obj, BaseForecaster):
        payload["model_name"] = obj.name
        payload["model_version"] = obj.version
    joblib.dump(payload, path)
    logger.info(f"Saved {payload['kind']}: {path}")
    return path


def load_model(path: Path) -> Any:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Model not found: {path}")
    try:
        payload = joblib.load(path)
    except Exception as e:
        raise RuntimeError(f"Error loading model {path}: {e}") from e

    if not isinstance(payload, dict) or "object" not in payload:
        raise RuntimeError(f"Not a tsensemble model file: {path}")
    if payload.get("format_version") != FORMAT_VERSION:
        raise RuntimeError(
            f"Unsupported model format {payload.get('format_version')} in {path} (expected {FORMAT_VERSION})"
        )
    obj = payload["object"]
    if _kind(obj) != payload.get("kind"):
        raise RuntimeError(f"Model file {path} is corrupt: kind {payload.get('kind')} != {_kind(obj)}")
    return obj
