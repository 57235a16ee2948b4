from tsensemble.data.splits import time_series_split
from tsensemble.data.training_loader import SeriesDataSpec, load_series_df

__all__ = ["SeriesDataSpec", "load_series_df", "time_series_split"]
