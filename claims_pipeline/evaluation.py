"""
Model Evaluation Module
=======================

Scoring, cross-validation reports and diagnostic plots.

Features:
    - Mean absolute error (the tuning score) plus RMSE and R²
    - Cross-validation result tables per model
    - Tuning curves, actual vs predicted and residual plots
    - Side-by-side comparison of the model families
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from sklearn import metrics as sk_metrics

logger = logging.getLogger(__name__)


def mean_absolute_error(y_pred, y_true) -> float:
    """
    Average of |predicted - actual| over all rows.

    Symmetric in its arguments and non-negative.

    Raises:
        ValueError: If the inputs are empty or differ in length
    """
    y_pred = np.asarray(y_pred, dtype=float).ravel()
    y_true = np.asarray(y_true, dtype=float).ravel()

    if len(y_pred) != len(y_true):
        raise ValueError(f"Length mismatch: {len(y_pred)} predictions vs {len(y_true)} actuals")
    if len(y_pred) == 0:
        raise ValueError("Cannot score an empty prediction set")

    return float(sk_metrics.mean_absolute_error(y_true, y_pred))


def calculate_metrics(y_true: np.ndarray, y_pred: np.ndarray) -> Dict[str, Any]:
    """
    Calculate evaluation metrics for a single target.

    Args:
        y_true: Ground truth values
        y_pred: Predicted values

    Returns:
        Dictionary with mae, rmse, r2 and sample statistics
    """
    y_true = np.asarray(y_true, dtype=float).ravel()
    y_pred = np.asarray(y_pred, dtype=float).ravel()

    mae = mean_absolute_error(y_pred, y_true)
    rmse = float(np.sqrt(sk_metrics.mean_squared_error(y_true, y_pred)))
    r2 = float(sk_metrics.r2_score(y_true, y_pred)) if len(y_true) > 1 else float("nan")

    return {
        'mae': mae,
        'rmse': rmse,
        'r2': r2,
        'n_samples': int(len(y_true)),
        'mean_actual': float(y_true.mean()),
        'mean_predicted': float(y_pred.mean())
    }


def plot_tuning_results(
    search_result,
    figsize: Tuple[int, int] = (14, 4),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Plot cross-validated MAE against each hyperparameter.

    Args:
        search_result: SearchResult from tune_grid
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    frame = search_result.to_frame()
    scored = frame[~frame['failed']]
    param_names = list(search_result.param_names)

    fig, axes = plt.subplots(1, len(param_names), figsize=figsize, squeeze=False)
    axes = axes.flatten()

    best = search_result.best_params
    for ax, name in zip(axes, param_names):
        ax.scatter(scored[name], scored['mean_mae'], alpha=0.6, color='steelblue')
        ax.scatter([best[name]], [search_result.best_score], color='red', s=80,
                   zorder=5, label='Best')
        ax.set_xlabel(name)
        ax.set_ylabel('CV MAE')
        if pd.api.types.is_numeric_dtype(scored[name]) and (scored[name] > 0).all() \
                and scored[name].max() / max(scored[name].min(), 1e-300) > 100:
            ax.set_xscale('log')
        ax.legend(fontsize=8)

    plt.suptitle(f'Tuning Results - {search_result.model_name}', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Tuning plot saved to {save_path}")

    return fig


def plot_actual_vs_predicted(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    title: str = "Actual vs Predicted",
    figsize: Tuple[int, int] = (7, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Scatter plot of actual against predicted loss.

    Args:
        y_true: Ground truth values
        y_pred: Predicted values
        title: Plot title
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    ax.scatter(y_true, y_pred, alpha=0.3, s=10)
    lo = min(np.min(y_true), np.min(y_pred))
    hi = max(np.max(y_true), np.max(y_pred))
    ax.plot([lo, hi], [lo, hi], 'r--', linewidth=1.5, label='Perfect prediction')

    ax.set_xlabel('Actual')
    ax.set_ylabel('Predicted')
    ax.set_title(title, fontsize=12, fontweight='bold')
    ax.legend(loc='upper left', fontsize=8)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Actual vs predicted plot saved to {save_path}")

    return fig


def plot_residuals(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    figsize: Tuple[int, int] = (8, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Residual distribution for model diagnostics.

    Args:
        y_true: Ground truth values
        y_pred: Predicted values
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    residuals = np.asarray(y_true, dtype=float) - np.asarray(y_pred, dtype=float)

    fig, ax = plt.subplots(figsize=figsize)
    sns.histplot(residuals, kde=True, ax=ax, bins=50, alpha=0.7)

    ax.axvline(0, color='red', linestyle='--', linewidth=2, label='Zero')
    ax.axvline(np.mean(residuals), color='green', linestyle='--',
               linewidth=2, label=f'Mean: {np.mean(residuals):.2f}')

    ax.set_xlabel('Residual (Actual - Predicted)')
    ax.set_ylabel('Frequency')
    ax.set_title(f'Residuals (Std: {np.std(residuals):.2f})', fontsize=12, fontweight='bold')
    ax.legend(fontsize=8)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Residuals plot saved to {save_path}")

    return fig


def plot_model_comparison(
    summaries: Dict[str, Dict[str, Any]],
    figsize: Tuple[int, int] = (8, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of the best cross-validated MAE per model family.

    Args:
        summaries: model name -> summary dict with 'cv_mae'
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    names = [n for n, s in summaries.items() if s.get('cv_mae') is not None]
    scores = [summaries[n]['cv_mae'] for n in names]

    fig, ax = plt.subplots(figsize=figsize)
    x = np.arange(len(names))
    ax.bar(x, scores, 0.6, color='coral', alpha=0.8)
    for xi, score in zip(x, scores):
        ax.text(xi, score, f'{score:.1f}', ha='center', va='bottom', fontsize=9)

    ax.set_xticks(x)
    ax.set_xticklabels(names, rotation=20, ha='right')
    ax.set_ylabel('CV MAE')
    ax.set_title('Model Comparison (lower is better)', fontweight='bold')

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Model comparison plot saved to {save_path}")

    return fig


def evaluate_search(
    search_result,
    output_dir: str = "reports/",
    y_true: Optional[np.ndarray] = None,
    y_fit: Optional[np.ndarray] = None,
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Persist and plot the outcome of one model's grid search.

    Args:
        search_result: SearchResult from tune_grid
        output_dir: Directory for the reports
        y_true: Training targets (optional, for in-sample diagnostics)
        y_fit: In-sample predictions of the refit model (optional)
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing metrics and file paths
    """
    name = search_result.model_name
    output_dir = Path(output_dir)
    figures_dir = output_dir / "figures"
    metrics_dir = output_dir / "metrics"

    figures_dir.mkdir(parents=True, exist_ok=True)
    metrics_dir.mkdir(parents=True, exist_ok=True)

    cv_file = metrics_dir / f"{name}_cv_results.csv"
    search_result.to_frame().to_csv(cv_file, index=False)
    logger.info(f"CV results saved to {cv_file}")

    metrics = {
        'model': name,
        'cv_mae': search_result.best_score,
        'cv_mae_std': search_result.best.std_score,
        'best_params': search_result.best_params,
        'n_candidates': len(search_result.results),
        'n_failed': search_result.n_failed,
        'n_folds': search_result.n_folds
    }

    figures = []
    plot_tuning_results(search_result, save_path=str(figures_dir / f"{name}_tuning.png"))
    figures.append(f"{name}_tuning.png")

    if y_true is not None and y_fit is not None:
        metrics['in_sample'] = calculate_metrics(y_true, y_fit)

        plot_actual_vs_predicted(
            y_true, y_fit,
            title=f'{name}: Actual vs Predicted (train)',
            save_path=str(figures_dir / f"{name}_actual_vs_predicted.png")
        )
        figures.append(f"{name}_actual_vs_predicted.png")

        plot_residuals(y_true, y_fit, save_path=str(figures_dir / f"{name}_residuals.png"))
        figures.append(f"{name}_residuals.png")

    metrics_file = metrics_dir / f"{name}_metrics.json"
    with open(metrics_file, 'w') as f:
        json.dump(metrics, f, indent=2, default=str)
    logger.info(f"Metrics saved to {metrics_file}")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    return {
        'metrics': metrics,
        'figures': figures,
        'metrics_file': str(metrics_file),
        'cv_file': str(cv_file)
    }


def print_evaluation_report(search_result, top_n: int = 5) -> None:
    """
    Print the best candidates of a grid search.

    Args:
        search_result: SearchResult from tune_grid
        top_n: Number of candidates to show
    """
    print("\n" + "=" * 70)
    print(f"CROSS-VALIDATION REPORT - {search_result.model_name}")
    print("=" * 70)

    best = search_result.show_best(top_n)
    columns = list(search_result.param_names) + ['mean_mae', 'std_mae']
    print(best[columns].to_string(index=False))

    print("-" * 70)
    print(f"  • Best MAE: {search_result.best_score:.4f}")
    print(f"  • Best params: {search_result.best_params}")
    print(f"  • Candidates: {len(search_result.results)} ({search_result.n_failed} disqualified)")
    print("=" * 70 + "\n")


def print_model_comparison(summaries: Dict[str, Dict[str, Any]]) -> None:
    """
    Print the cross-validated MAE of each model family side by side.

    Args:
        summaries: model name -> summary dict with 'cv_mae'
    """
    print("\n" + "=" * 50)
    print("MODEL COMPARISON")
    print("=" * 50)
    print(f"{'Model':<25} {'CV MAE':<12}")
    print("-" * 50)

    ranked = sorted(
        summaries.items(),
        key=lambda item: (item[1].get('cv_mae') is None, item[1].get('cv_mae') or 0.0)
    )
    for name, summary in ranked:
        score = summary.get('cv_mae')
        shown = f"{score:<12.4f}" if score is not None else "n/a"
        print(f"{name:<25} {shown}")

    print("=" * 50 + "\n")
