"""
Exploratory Data Analysis (EDA) Module
======================================

Analysis and visualization of the claims training table.

Functions:
    - plot_target_distribution: Loss histogram, raw and log scale
    - plot_correlation_matrix: Correlation heatmap of numeric features and loss
    - plot_distributions: Histograms of numeric features
    - plot_categorical_cardinality: Number of levels per categorical column
    - generate_eda_report: Full EDA report with all visualizations
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns
from scipy import stats

from .schema import FeatureSchema

logger = logging.getLogger(__name__)

plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")


def plot_target_distribution(
    target: pd.Series,
    figsize: Tuple[int, int] = (14, 5),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, Dict[str, float]]:
    """
    Histogram of the loss on raw and log1p scales.

    Args:
        target: Loss values
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Tuple of (Figure, skewness statistics)
    """
    values = target.dropna().astype(float)
    logged = np.log1p(values.clip(lower=0))

    skewness = {
        'skew': float(stats.skew(values)),
        'log_skew': float(stats.skew(logged))
    }

    fig, axes = plt.subplots(1, 2, figsize=figsize)

    sns.histplot(values, kde=True, ax=axes[0], bins=50, alpha=0.7)
    axes[0].axvline(values.mean(), color='red', linestyle='--', label=f'Mean: {values.mean():.2f}')
    axes[0].axvline(values.median(), color='green', linestyle='--', label=f'Median: {values.median():.2f}')
    axes[0].set_title(f'{target.name} (skew={skewness["skew"]:.2f})', fontsize=12, fontweight='bold')
    axes[0].legend(fontsize=8)

    sns.histplot(logged, kde=True, ax=axes[1], bins=50, alpha=0.7, color='coral')
    axes[1].set_title(f'log1p({target.name}) (skew={skewness["log_skew"]:.2f})',
                      fontsize=12, fontweight='bold')

    plt.suptitle('Target Distribution', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Target distribution plot saved to {save_path}")

    return fig, skewness


def plot_correlation_matrix(
    df: pd.DataFrame,
    method: str = 'pearson',
    figsize: Tuple[int, int] = (10, 8),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.DataFrame]:
    """
    Create a correlation heatmap for all numerical columns.

    Args:
        df: DataFrame with numerical data
        method: Correlation method ('pearson', 'spearman', 'kendall')
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Tuple of (Figure, correlation matrix DataFrame)
    """
    corr_matrix = df.select_dtypes(include=[np.number]).corr(method=method)

    fig, ax = plt.subplots(figsize=figsize)

    mask = np.triu(np.ones_like(corr_matrix, dtype=bool), k=1)
    sns.heatmap(
        corr_matrix,
        mask=mask,
        annot=len(corr_matrix) <= 15,
        fmt='.2f',
        cmap='RdYlBu_r',
        center=0,
        square=True,
        linewidths=0.5,
        cbar_kws={"shrink": 0.8, "label": "Correlation"},
        ax=ax,
        vmin=-1,
        vmax=1
    )

    ax.set_title(f'Correlation Matrix ({method.capitalize()})',
                 fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Correlation matrix saved to {save_path}")

    return fig, corr_matrix


def plot_distributions(
    df: pd.DataFrame,
    columns: List[str],
    figsize: Tuple[int, int] = (14, 10),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create distribution plots (histogram + KDE) for numeric features.

    Args:
        df: Claims table
        columns: Numeric columns to plot
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    n_cols = max(len(columns), 1)
    n_rows = (n_cols + 2) // 3

    fig, axes = plt.subplots(n_rows, 3, figsize=figsize, squeeze=False)
    axes = axes.flatten()

    for idx, col in enumerate(columns):
        ax = axes[idx]
        sns.histplot(df[col].dropna(), kde=True, ax=ax, bins=50, alpha=0.7)
        ax.axvline(df[col].mean(), color='red', linestyle='--', linewidth=1)
        ax.set_title(f'{col} (skew={df[col].skew():.2f})', fontsize=10, fontweight='bold')

    for idx in range(len(columns), len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Numeric Feature Distributions', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Distribution plots saved to {save_path}")

    return fig


def plot_categorical_cardinality(
    df: pd.DataFrame,
    columns: List[str],
    figsize: Tuple[int, int] = (14, 5),
    save_path: Optional[str] = None
) -> Tuple[plt.Figure, pd.Series]:
    """
    Bar chart of the number of distinct levels per categorical column.

    Args:
        df: Claims table
        columns: Categorical columns
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Tuple of (Figure, level counts)
    """
    cardinality = df[columns].nunique(dropna=True) if columns else pd.Series(dtype=int)

    fig, ax = plt.subplots(figsize=figsize)
    if len(cardinality):
        ax.bar(range(len(cardinality)), cardinality.values, color='steelblue', alpha=0.8)
        ax.set_yscale('log')
        step = max(1, len(cardinality) // 30)
        ax.set_xticks(range(0, len(cardinality), step))
        ax.set_xticklabels(cardinality.index[::step], rotation=90, fontsize=7)
    ax.set_ylabel('Distinct levels (log)')
    ax.set_title('Categorical Cardinality', fontsize=14, fontweight='bold')

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Cardinality plot saved to {save_path}")

    return fig, cardinality


def generate_eda_report(
    df: pd.DataFrame,
    schema: FeatureSchema,
    output_dir: str = "reports/figures/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Generate a complete EDA report with all visualizations.

    Args:
        df: Training table
        schema: Feature schema in force for this run
        output_dir: Directory to save figures
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing EDA results and file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    report = {
        "data_shape": df.shape,
        "figures": [],
        "correlation_matrix": None,
        "target": {},
        "cardinality": {}
    }

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS")
    logger.info("=" * 60)

    target = df[schema.target_column]
    numeric = list(schema.numeric)
    categorical = list(schema.categorical)

    logger.info("Plotting target distribution...")
    _, skewness = plot_target_distribution(
        target, save_path=str(output_dir / "01_target_distribution.png")
    )
    report["figures"].append("01_target_distribution.png")
    report["target"] = {
        "mean": float(target.mean()),
        "median": float(target.median()),
        "std": float(target.std()),
        "min": float(target.min()),
        "max": float(target.max()),
        **skewness
    }

    if numeric:
        logger.info("Computing correlation matrix...")
        _, corr_matrix = plot_correlation_matrix(
            df[numeric + [schema.target_column]],
            save_path=str(output_dir / "02_correlation_matrix.png")
        )
        report["figures"].append("02_correlation_matrix.png")
        report["correlation_matrix"] = corr_matrix.to_dict()

        logger.info("Plotting numeric distributions...")
        plot_distributions(df, numeric, save_path=str(output_dir / "03_distributions.png"))
        report["figures"].append("03_distributions.png")

    if categorical:
        logger.info("Counting categorical levels...")
        _, cardinality = plot_categorical_cardinality(
            df, categorical, save_path=str(output_dir / "04_categorical_cardinality.png")
        )
        report["figures"].append("04_categorical_cardinality.png")
        report["cardinality"] = {k: int(v) for k, v in cardinality.items()}

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EDA COMPLETE - All figures saved to: %s", output_dir)
    logger.info("=" * 60)

    return report


def print_correlation_insights(corr_matrix: pd.DataFrame, threshold: float = 0.5) -> None:
    """
    Print insights about strongly correlated variables.

    Args:
        corr_matrix: Correlation matrix DataFrame
        threshold: Correlation threshold for "strong" correlation
    """
    print("\n" + "=" * 50)
    print("CORRELATION INSIGHTS")
    print("=" * 50)

    strong_corr = []
    for i in range(len(corr_matrix.columns)):
        for j in range(i + 1, len(corr_matrix.columns)):
            corr_val = corr_matrix.iloc[i, j]
            if abs(corr_val) >= threshold:
                strong_corr.append({
                    "col1": corr_matrix.columns[i],
                    "col2": corr_matrix.columns[j],
                    "correlation": corr_val
                })

    if strong_corr:
        print(f"\nStrong correlations (|r| >= {threshold}):")
        for item in sorted(strong_corr, key=lambda x: abs(x["correlation"]), reverse=True):
            direction = "positive" if item["correlation"] > 0 else "negative"
            print(f"  • {item['col1']} ↔ {item['col2']}: {item['correlation']:.3f} ({direction})")

        print("\n  Strongly correlated numeric features carry overlapping signal;")
        print("  the penalized regression is the model most affected by it.")
    else:
        print(f"\nNo strong correlations found (|r| >= {threshold})")

    print("=" * 50 + "\n")
