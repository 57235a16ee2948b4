"""
Unit tests for tsensemble/modeling/walkforward_backtest.py
"""
import pytest

from conftest import FixedForecaster, small_submodels
from tsensemble.modeling.folds import FoldSpec
from tsensemble.modeling.walkforward_backtest import run_backtest, summarize


def _fixed_models():
    return [FixedForecaster(1.0, 0.0), FixedForecaster(0.5, 60.0), FixedForecaster(0.2, 100.0)]


class TestRunBacktest:
    def test_one_row_per_fold_and_model(self, monthly_df):
        res = run_backtest(
            monthly_df,
            spec=FoldSpec(48, 12, 12),
            make_models=_fixed_models,
            strategies=["mean", "weighted"],
            weights=[1, 1, 2],
            progress=False,
        )
        assert len(res) == 4 * 5
        assert res["fold"].unique().tolist() == [1, 2, 3, 4]
        assert res["n_train"].tolist()[::5] == [48, 60, 72, 84]
        assert (res["n_test"] == 12).all()
        assert set(res["model"]) == {
            "FIXED(1,0)",
            "FIXED(0.5,60)",
            "FIXED(0.2,100)",
            "ENSEMBLE (MEAN)",
            "ENSEMBLE (WEIGHTED)",
        }
        assert res["pi_cov"].between(0.0, 1.0).all()
        assert (res["pi_width"] > 0).all()

    def test_models_are_fit_per_fold(self, monthly_df):
        fitted = []

        def make():
            models = _fixed_models()
            fitted.extend(models)
            return models

        run_backtest(monthly_df, spec=FoldSpec(72, 12, 12), make_models=make, strategies=[], progress=False)
        # the table fits clones, so the templates stay unfitted
        assert len(fitted) == 6
        assert all(not m.is_fitted for m in fitted)

    def test_stacking_with_real_submodels(self, monthly_df):
        res = run_backtest(
            monthly_df,
            spec=FoldSpec(84, 12, 12),
            make_models=small_submodels,
            strategies=["stacking"],
            stacking_folds=FoldSpec(48, 12, 12),
            progress=False,
        )
        summary = summarize(res)
        assert "ENSEMBLE (STACKED)" in summary.index
        assert summary["rmse"].is_monotonic_increasing

    def test_no_folds(self, monthly_df):
        with pytest.raises(ValueError, match="no folds"):
            run_backtest(monthly_df, spec=FoldSpec(100, 12, 12), make_models=_fixed_models, progress=False)

    def test_weighted_without_weights(self, monthly_df):
        with pytest.raises(ValueError, match="weights"):
            run_backtest(
                monthly_df,
                spec=FoldSpec(48, 12, 12),
                make_models=_fixed_models,
                strategies=["weighted"],
                progress=False,
            )
