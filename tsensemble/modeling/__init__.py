"""Modeling package.

- Submodels: scikit-learn regressors over a shared calendar feature recipe
- Model table: registry of fitted submodels with stable ids
- Combination strategies: mean/median average, weighted average, stacking
- Ensemble model: table + strategy behind the submodel interface
- Calibration, accuracy, refit and forecast tables with prediction intervals
"""
