from tsensemble.features.recipe import TimeSeriesRecipe, feature_columns

__all__ = ["TimeSeriesRecipe", "feature_columns"]
