from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Tuple

import numpy as np


@dataclass(frozen=True)
class FoldSpec:
    train_min: int
    test_size: int
    step_size: int

    def __post_init__(self) -> None:
        if int(self.train_min) < 1:
            raise ValueError("train_min must be >= 1")
        if int(self.test_size) < 1:
            raise ValueError("test_size must be >= 1")
        if int(self.step_size) < 1:
            raise ValueError("step_size must be >= 1")


def iter_walkforward_indices(n: int, *, spec: FoldSpec) -> Iterable[Tuple[np.ndarray, np.ndarray]]:
    """Yield (train_idx, test_idx) in a walk-forward fashion (expanding window)."""

    start = int(spec.train_min)
    while start + spec.test_size <= n:
        train_idx = np.arange(0, start)
        test_idx = np.arange(start, start + spec.test_size)
        yield train_idx, test_idx
        start += int(spec.step_size)


def walkforward_folds(n: int, *, spec: FoldSpec) -> List[Tuple[np.ndarray, np.ndarray]]:
    return list(iter_walkforward_indices(n, spec=spec))


def heldout_coverage(n: int, *, spec: FoldSpec) -> float:
    """Share of the n rows that land in at least one test fold."""
    if n <= 0:
        return 0.0
    covered = set()
    for _, te in iter_walkforward_indices(n, spec=spec):
        covered.update(int(i) for i in te)
    return len(covered) / float(n)
