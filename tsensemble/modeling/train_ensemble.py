"""End-to-end ensemble workflow.

    load -> split -> fit submodels -> ensemble -> calibrate on the hold-out
    -> accuracy -> refit on full data -> forecast the horizon -> save/plot
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from tsensemble.config import STRATEGIES, EnsembleConfig, load_config
from tsensemble.data.splits import time_series_split
from tsensemble.data.training_loader import DEFAULT_SERIES_CSV, SeriesDataSpec, load_series_df
from tsensemble.features.recipe import TimeSeriesRecipe
from tsensemble.modeling.calibration import calibrate
from tsensemble.modeling.ensemble import build_ensemble
from tsensemble.modeling.forecast import forecast
from tsensemble.modeling.persist import save_model
from tsensemble.modeling.registry import ModelTable
from tsensemble.modeling.sklearn_models import default_submodels

logger = logging.getLogger(__name__)


def run_workflow(
    df: pd.DataFrame,
    cfg: EnsembleConfig,
    *,
    out_dir: Optional[Path] = None,
    plot: bool = False,
) -> Dict[str, pd.DataFrame]:
    """Returns {"accuracy": ..., "forecast": ...}; writes artifacts when out_dir is set."""
    train, test = time_series_split(df, assess=cfg.assess, date_col=cfg.date_col)
    logger.info(f"Split: train={len(train)} test={len(test)}")

    recipe = TimeSeriesRecipe(date_col=cfg.date_col, value_col=cfg.value_col)
    submodels = ModelTable(default_submodels(recipe=recipe)).fit_all(train, n_jobs=cfg.n_jobs)

    ensemble = build_ensemble(
        submodels,
        cfg.strategy,
        data=train,
        weights=cfg.weights,
        folds=cfg.fold_spec(),
        meta_alpha=cfg.meta_alpha,
        meta_l1_ratio=cfg.meta_l1_ratio,
        min_coverage=cfg.min_coverage,
        n_jobs=cfg.n_jobs,
    )

    # the ensemble sits next to its submodels so the accuracy table compares them
    table = ModelTable()
    for model_id, m in submodels.items():
        table.add(m, submodels.describe(model_id))
    table.add(ensemble)

    cal = calibrate(table, test, train_df=train)
    acc = cal.accuracy()
    print("\n=== Hold-out accuracy ===")
    print(acc.to_string(index=False, float_format=lambda x: f"{x:.4f}"))

    refit = cal.refit(df, n_jobs=cfg.n_jobs)
    fc = forecast(
        refit,
        h=cfg.horizon,
        actual_data=df,
        conf_level=cfg.conf_level,
        conf_method=cfg.conf_method,
    )

    if out_dir is not None:
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        acc.to_csv(out_dir / "accuracy.csv", index=False)
        fc.to_csv(out_dir / "forecast.csv", index=False)
        save_model(refit, out_dir / f"ensemble_{cfg.strategy}.joblib")
        if plot:
            from tsensemble.modeling.plotting import plot_forecast

            plot_forecast(fc, out_path=out_dir / "forecast.png", title=f"Forecast ({cfg.strategy})")
        print(f"\nSaved accuracy, forecast and model -> {out_dir}")

    return {"accuracy": acc, "forecast": fc}


def _parse_weights(s: Optional[str]):
    if s is None:
        return None
    return tuple(float(x) for x in s.split(",") if x.strip())


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

    ap = argparse.ArgumentParser(description="Fit submodels, ensemble them, calibrate, refit and forecast.")
    ap.add_argument(
        "--data",
        type=Path,
        default=DEFAULT_SERIES_CSV,
        help=f"Path to series CSV/parquet (default: {DEFAULT_SERIES_CSV})",
    )
    ap.add_argument("--config", type=Path, default=None, help="JSON EnsembleConfig; flags below override it")
    ap.add_argument("--date-col", default=None)
    ap.add_argument("--value-col", default=None)
    ap.add_argument("--assess", type=int, default=None, help="Hold-out rows for calibration")
    ap.add_argument("--horizon", type=int, default=None, help="Steps to forecast after refit")
    ap.add_argument("--strategy", choices=list(STRATEGIES), default=None)
    ap.add_argument("--weights", default=None, help="Comma-separated loadings for --strategy weighted")
    ap.add_argument("--conf-level", type=float, default=None)
    ap.add_argument("--conf-method", choices=["conformal", "normal"], default=None)
    ap.add_argument("--n-jobs", type=int, default=None)
    ap.add_argument("--min-rows", type=int, default=24)
    ap.add_argument("--out-dir", type=Path, default=Path("reports/ensemble"))
    ap.add_argument("--plot", action="store_true", help="Save forecast.png")
    args = ap.parse_args()

    base = load_config(args.config) if args.config else EnsembleConfig()
    cfg = base.with_overrides(
        date_col=args.date_col,
        value_col=args.value_col,
        assess=args.assess,
        horizon=args.horizon,
        strategy=args.strategy,
        weights=_parse_weights(args.weights),
        conf_level=args.conf_level,
        conf_method=args.conf_method,
        n_jobs=args.n_jobs,
    )

    df = load_series_df(
        SeriesDataSpec(path=args.data, date_col=cfg.date_col, value_col=cfg.value_col, min_rows=args.min_rows)
    )
    run_workflow(df, cfg, out_dir=args.out_dir, plot=bool(args.plot))


if __name__ == "__main__":
    main()
