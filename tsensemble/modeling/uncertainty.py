from __future__ import annotations

import math
from typing import Iterable, Tuple

import numpy as np
from scipy.stats import norm

CONF_METHODS = ("conformal", "normal")


def clamp_sigma(sigma: float, *, min_sigma: float = 0.01) -> float:
    try:
        s = float(sigma)
    except (TypeError, ValueError):
        s = min_sigma
    if not math.isfinite(s) or s <= 0:
        return min_sigma
    return max(min_sigma, s)


def check_conf_level(conf_level: float) -> float:
    c = float(conf_level)
    if not 0.0 < c < 1.0:
        raise ValueError(f"conf_level must be in (0, 1), got {conf_level}")
    return c


def z_value(conf_level: float) -> float:
    """Two-sided normal quantile, e.g. 1.96 for 0.95."""
    c = check_conf_level(conf_level)
    return float(norm.ppf(0.5 + c / 2.0))


def normal_interval(mu: np.ndarray, sigma: float, *, conf_level: float = 0.95) -> Tuple[np.ndarray, np.ndarray]:
    mu = np.asarray(mu, dtype=float)
    half = z_value(conf_level) * clamp_sigma(sigma)
    return (mu - half, mu + half)


def conformal_half_width(residuals: Iterable[float], *, conf_level: float = 0.95) -> float:
    """Split-conformal half width: the conf_level quantile of |residuals|.

    Takes the k-th smallest |residual| with k = ceil((n + 1) * conf_level),
    capped at n.
    """
    c = check_conf_level(conf_level)
    r = np.abs(np.asarray(list(residuals), dtype=float))
    r = r[np.isfinite(r)]
    n = r.shape[0]
    if n == 0:
        raise ValueError("no finite residuals")
    k = min(n, max(1, math.ceil((n + 1) * c - 1e-9)))
    return float(np.sort(r)[k - 1])


def rmse(residuals: Iterable[float]) -> float:
    vals = [float(r) for r in residuals]
    if not vals:
        return 1.0
    return math.sqrt(sum(r * r for r in vals) / len(vals))


def sigma_from_residuals(residuals: Iterable[float], *, min_sigma: float = 0.01) -> float:
    return clamp_sigma(rmse(residuals), min_sigma=min_sigma)


def interval_from_residuals(
    mu: np.ndarray,
    residuals: Iterable[float],
    *,
    conf_level: float = 0.95,
    method: str = "conformal",
) -> Tuple[np.ndarray, np.ndarray]:
    method = str(method or "conformal").strip().lower()
    if method not in CONF_METHODS:
        raise ValueError(f"conf_method must be one of: {', '.join(CONF_METHODS)}")

    res = list(residuals)
    mu = np.asarray(mu, dtype=float)
    if method == "normal":
        return normal_interval(mu, sigma_from_residuals(res), conf_level=conf_level)

    half = conformal_half_width(res, conf_level=conf_level)
    return (mu - half, mu + half)
