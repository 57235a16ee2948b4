from __future__ import annotations

from typing import Tuple

import pandas as pd


def time_series_split(df: pd.DataFrame, *, assess: int, date_col: str = "date") -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Chronological split: the last `assess` rows are the test window."""
    assess = int(assess)
    if assess < 1:
        raise ValueError("assess must be >= 1")
    if assess >= len(df):
        raise ValueError(f"assess={assess} leaves no training rows (series has {len(df)})")

    ordered = df.sort_values(date_col).reset_index(drop=True)
    cut = len(ordered) - assess
    return ordered.iloc[:cut].reset_index(drop=True), ordered.iloc[cut:].reset_index(drop=True)
