from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pandas as pd


DEFAULT_SERIES_CSV = Path("data/series.csv")


@dataclass(frozen=True)
class SeriesDataSpec:
    path: Path
    date_col: str = "date"
    value_col: str = "value"
    min_rows: int = 24


def load_series_df(spec: SeriesDataSpec) -> pd.DataFrame:
    """Load a single time series (CSV or parquet) with guardrails.

    Dates are parsed and sorted; duplicate timestamps and series shorter than
    `min_rows` are rejected.
    """
    path = Path(spec.path)
    if not path.exists():
        raise FileNotFoundError(
            f"Series file not found: {path}. "
            f"Expected default at {DEFAULT_SERIES_CSV}."
        )

    if path.suffix.lower() in {".parquet", ".pq"}:
        df = pd.read_parquet(path)
    else:
        df = pd.read_csv(path)

    for col in (spec.date_col, spec.value_col):
        if col not in df.columns:
            raise ValueError(f"{path}: missing column '{col}' (have {list(df.columns)})")

    df[spec.date_col] = pd.to_datetime(df[spec.date_col], errors="coerce")
    bad = int(df[spec.date_col].isna().sum())
    if bad:
        raise ValueError(f"{path}: {bad} rows have unparseable dates in '{spec.date_col}'")

    dup = df[spec.date_col].duplicated()
    if dup.any():
        first = df.loc[dup, spec.date_col].iloc[0]
        raise ValueError(f"{path}: duplicate timestamps (first: {first})")

    df[spec.value_col] = pd.to_numeric(df[spec.value_col], errors="coerce")

    if len(df) < int(spec.min_rows):
        raise ValueError(
            f"Series too small: {path} has {len(df)} rows, expected >= {spec.min_rows}."
        )

    return df.sort_values(spec.date_col).reset_index(drop=True)
