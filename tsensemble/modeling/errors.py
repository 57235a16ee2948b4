from __future__ import annotations


class SchemaMismatchError(ValueError):
    """Submodels in one table do not accept the same input columns."""


class HorizonMismatchError(ValueError):
    """Per-model forecasts do not cover the same timestamps."""


class InsufficientCalibrationDataError(ValueError):
    """No usable held-out rows to calibrate or to fit a meta-model on."""


class NotFittedError(RuntimeError):
    """Raised when predicting with a model that has not been fit."""


class InsufficientCoverageWarning(UserWarning):
    """Out-of-fold predictions cover too little history for a reliable meta-model."""


class MetaModelConvergenceWarning(UserWarning):
    """The stacking meta-regressor did not converge."""
