"""
Test Suite for Evaluation Module
================================

Tests for MAE scoring, metrics and the CV report files.
"""

import json

import pytest
import numpy as np

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from claims_pipeline.evaluation import (
    mean_absolute_error, calculate_metrics, evaluate_search,
    print_evaluation_report, print_model_comparison
)
from claims_pipeline.model import PenalizedRegressionTrainer
from claims_pipeline.tuning import make_folds, regular_grid, tune_grid


class TestMeanAbsoluteError:
    """Properties of the tuning score."""

    def test_value(self):
        assert mean_absolute_error([1.0, 2.0, 3.0], [2.0, 2.0, 5.0]) == pytest.approx(1.0)

    def test_symmetric_and_non_negative(self):
        rng = np.random.RandomState(0)
        for _ in range(20):
            a = rng.normal(size=15)
            b = rng.normal(size=15)
            assert mean_absolute_error(a, b) == mean_absolute_error(b, a)
            assert mean_absolute_error(a, b) >= 0.0

    def test_zero_only_for_equal(self):
        a = np.array([1.0, 2.0, 3.0])

        assert mean_absolute_error(a, a.copy()) == 0.0
        assert mean_absolute_error(a, a + np.array([0.0, 0.0, 1e-9])) > 0.0

    def test_length_mismatch(self):
        with pytest.raises(ValueError, match="Length mismatch"):
            mean_absolute_error([1.0, 2.0], [1.0])

    def test_empty(self):
        with pytest.raises(ValueError, match="empty"):
            mean_absolute_error([], [])


class TestCalculateMetrics:

    def test_keys(self):
        metrics = calculate_metrics(np.array([1.0, 2.0, 3.0]), np.array([1.0, 2.0, 4.0]))

        assert metrics['mae'] == pytest.approx(1.0 / 3.0)
        assert metrics['rmse'] == pytest.approx(np.sqrt(1.0 / 3.0))
        assert metrics['n_samples'] == 3
        assert 'r2' in metrics


class TestEvaluateSearch:
    """Tests for the CV report files."""

    @pytest.fixture
    def search(self, claims_train, schema):
        grid = regular_grid({'penalty': [0.01, 10.0], 'mixture': [0.5]},
                            PenalizedRegressionTrainer.param_names)
        folds = make_folds(len(claims_train), 3, seed=0)
        return tune_grid(PenalizedRegressionTrainer(), claims_train, schema, grid, folds)

    def test_writes_reports(self, search, tmp_path):
        result = evaluate_search(search, output_dir=str(tmp_path))

        assert Path(result['cv_file']).exists()
        assert (tmp_path / "figures" / "penalized_regression_tuning.png").exists()
        with open(result['metrics_file']) as f:
            metrics = json.load(f)
        assert metrics['cv_mae'] == pytest.approx(search.best_score)
        assert metrics['n_candidates'] == 2
        assert 'in_sample' not in metrics

    def test_in_sample_diagnostics(self, search, tmp_path):
        y = np.array([1.0, 2.0, 3.0, 4.0])

        result = evaluate_search(search, output_dir=str(tmp_path), y_true=y, y_fit=y + 0.5)

        assert result['metrics']['in_sample']['mae'] == pytest.approx(0.5)
        assert "penalized_regression_residuals.png" in result['figures']

    def test_print_report(self, search, capsys):
        print_evaluation_report(search)

        out = capsys.readouterr().out
        assert "CROSS-VALIDATION REPORT - penalized_regression" in out
        assert "Best MAE" in out


def test_model_comparison_handles_missing_score(capsys):
    print_model_comparison({
        'boosted_trees': {'cv_mae': 1100.0},
        'decision_tree': {'cv_mae': None},
        'penalized_regression': {'cv_mae': 1300.0},
    })

    lines = capsys.readouterr().out.splitlines()
    rows = [line for line in lines if line.split() and line.split()[0] in
            ('boosted_trees', 'decision_tree', 'penalized_regression')]
    assert [row.split()[0] for row in rows] == ['boosted_trees', 'penalized_regression', 'decision_tree']
    assert rows[-1].split()[1] == 'n/a'


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
