"""Forecast plots (matplotlib)."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import pandas as pd

from tsensemble.modeling.types import FORECAST_COLUMNS, KEY_ACTUAL


def plot_forecast(
    forecast_df: pd.DataFrame,
    *,
    out_path: Optional[Path] = None,
    title: str = "Forecast Plot",
    show_intervals: bool = True,
):
    """Actuals in black, one line per model, translucent interval ribbons.

    Saves to `out_path` when given. Returns the figure.
    """
    import matplotlib.pyplot as plt

    missing = [c for c in FORECAST_COLUMNS if c not in forecast_df.columns]
    if missing:
        raise ValueError(f"forecast table missing columns: {missing}")

    df = forecast_df.copy()
    df["date"] = pd.to_datetime(df["date"])

    fig, ax = plt.subplots(figsize=(10, 5))

    act = df[df["key"] == KEY_ACTUAL]
    if not act.empty:
        ax.plot(act["date"], act["value"], color="black", linewidth=1.2, label="ACTUAL")

    preds = df[df["key"] != KEY_ACTUAL]
    for (model_id, desc), g in preds.groupby(["model_id", "model_desc"], sort=True):
        g = g.sort_values("date")
        (line,) = ax.plot(g["date"], g["value"], linewidth=1.4, label=f"{model_id}_{desc}")
        if show_intervals and g["conf_lo"].notna().any():
            ax.fill_between(g["date"], g["conf_lo"], g["conf_hi"], color=line.get_color(), alpha=0.15, linewidth=0)

    ax.set_xlabel("date")
    ax.set_ylabel("value")
    ax.set_title(title)
    ax.grid(True, alpha=0.25)
    ax.legend(loc="upper left", fontsize=8)
    fig.autofmt_xdate()
    fig.tight_layout()

    if out_path is not None:
        out_path = Path(out_path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(out_path, dpi=150)
    return fig
