"""Ensemble forecasting: combine fitted time-series submodels into one forecast."""

__version__ = "0.1.0"
