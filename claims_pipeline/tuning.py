"""
Hyperparameter Search Module
============================

K-fold cross-validated grid search scored by mean absolute error.

The fold partition is drawn once and reused for every candidate. Within
each fold the encoding is fit on the analysis rows only and applied to
the held-out rows. A candidate whose fit fails on any fold is scored
+inf instead of aborting the sweep.

Functions:
    - make_folds: Seeded k-fold partition of row indices
    - regular_grid: Cartesian grid over per-knob value ranges
    - prepare_folds: Encode each fold's analysis/held-out partitions
    - score_candidate: Cross-validated MAE for one candidate
    - tune_grid: Score every candidate and select the best
    - finalize_model: Refit encoding and model on the whole table
"""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.model_selection import KFold

from .evaluation import mean_absolute_error
from .exceptions import FitError, SchemaError
from .model import ModelTrainer, FittedModel, train_model
from .preprocessing import ClaimsPreprocessor
from .schema import FeatureSchema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FoldData:
    """Encoded partitions for one fold."""

    X_train: pd.DataFrame
    y_train: np.ndarray
    X_holdout: pd.DataFrame
    y_holdout: np.ndarray


@dataclass
class CandidateResult:
    """Cross-validation outcome of one hyperparameter candidate."""

    index: int
    params: Dict[str, Any]
    fold_scores: List[float] = field(default_factory=list)
    mean_score: float = float("inf")
    std_score: float = float("nan")
    failed: bool = False
    error: Optional[str] = None


@dataclass
class SearchResult:
    """All candidate scores of a grid search plus the selected winner."""

    model_name: str
    param_names: Tuple[str, ...]
    results: List[CandidateResult]
    best_index: int
    n_folds: int

    @property
    def best(self) -> CandidateResult:
        return self.results[self.best_index]

    @property
    def best_params(self) -> Dict[str, Any]:
        return dict(self.best.params)

    @property
    def best_score(self) -> float:
        return self.best.mean_score

    @property
    def n_failed(self) -> int:
        return sum(1 for r in self.results if r.failed)

    def to_frame(self) -> pd.DataFrame:
        """One row per candidate, in grid order."""
        rows = []
        for r in self.results:
            row = {'candidate': r.index}
            row.update(r.params)
            row.update({
                'mean_mae': r.mean_score,
                'std_mae': r.std_score,
                'n_folds': len(r.fold_scores),
                'failed': r.failed,
                'error': r.error
            })
            rows.append(row)
        return pd.DataFrame(rows)

    def show_best(self, n: int = 5) -> pd.DataFrame:
        """The n best candidates, lowest MAE first (stable on ties)."""
        frame = self.to_frame()
        return frame.sort_values('mean_mae', kind='mergesort').head(n).reset_index(drop=True)


def make_folds(n_rows: int, k: int = 5, seed: Optional[int] = 42) -> List[np.ndarray]:
    """
    Partition row indices into k disjoint, roughly equal folds.

    Args:
        n_rows: Number of rows in the training table
        k: Number of folds
        seed: Shuffle seed; the same seed gives the same partition

    Returns:
        List of k index arrays (held-out rows per fold)
    """
    if k < 2 or k > n_rows:
        raise ValueError(f"Number of folds must satisfy 2 <= k <= n_rows, got k={k}, n_rows={n_rows}")

    splitter = KFold(n_splits=k, shuffle=True, random_state=seed)
    folds = [np.sort(holdout) for _, holdout in splitter.split(np.arange(n_rows))]

    logger.info(f"Created {k} folds over {n_rows} rows (sizes: {[len(f) for f in folds]})")
    return folds


def _knob_values(name: str, setting: Any) -> List[Any]:
    if isinstance(setting, (list, tuple)):
        values = list(setting)
    elif isinstance(setting, dict):
        levels = int(setting.get('levels', 3))
        low, high = float(setting['low']), float(setting['high'])
        scale = setting.get('scale', 'linear')
        if scale == 'log10':
            raw = np.logspace(low, high, levels)
        elif scale == 'linear':
            raw = np.linspace(low, high, levels)
        else:
            raise ValueError(f"Unknown scale for '{name}': {scale}")

        if setting.get('integer', False):
            values = list(dict.fromkeys(int(round(v)) for v in raw))
        else:
            values = [float(v) for v in raw]
    else:
        values = [setting]

    if not values:
        raise ValueError(f"No values for hyperparameter '{name}'")
    return values


def regular_grid(space: Dict[str, Any], param_names: Sequence[str]) -> List[Dict[str, Any]]:
    """
    Enumerate a regular hyperparameter grid.

    Each knob is either an explicit list of values or a range
    {low, high, levels, scale, integer}. With scale 'log10', low and high
    are base-10 exponents. Enumeration follows `param_names` order with the
    first knob varying slowest.

    Args:
        space: Per-knob value list or range
        param_names: Knob names of the trainer, in order

    Returns:
        List of candidate dictionaries
    """
    missing = [p for p in param_names if p not in space]
    unknown = [p for p in space if p not in param_names]
    if missing or unknown:
        raise ValueError(f"Grid must cover exactly {list(param_names)}; missing={missing} unknown={unknown}")

    value_lists = [_knob_values(name, space[name]) for name in param_names]
    return [dict(zip(param_names, combo)) for combo in itertools.product(*value_lists)]


def prepare_folds(
    df: pd.DataFrame,
    schema: FeatureSchema,
    folds: Sequence[np.ndarray],
    smoothing: float = 0.0
) -> List[FoldData]:
    """
    Encode the analysis and held-out partitions of every fold.

    The encoding is fit on each fold's analysis rows only.
    """
    n_rows = len(df)
    fold_data = []

    for i, holdout in enumerate(folds):
        mask = np.ones(n_rows, dtype=bool)
        mask[holdout] = False
        analysis = df.iloc[np.flatnonzero(mask)]
        assessment = df.iloc[holdout]

        preprocessor = ClaimsPreprocessor(schema, smoothing=smoothing)
        preprocessor.fit(analysis, table=f"fold {i + 1} analysis")

        fold_data.append(FoldData(
            X_train=preprocessor.feature_matrix(analysis, table=f"fold {i + 1} analysis"),
            y_train=analysis[schema.target_column].to_numpy(dtype=float),
            X_holdout=preprocessor.feature_matrix(assessment, table=f"fold {i + 1} holdout"),
            y_holdout=assessment[schema.target_column].to_numpy(dtype=float)
        ))

    return fold_data


def _predict_holdout(
    trainer: ModelTrainer,
    model: FittedModel,
    fold: FoldData,
    params: Dict[str, Any]
) -> np.ndarray:
    try:
        return model.predict(fold.X_holdout)
    except Exception as e:
        raise FitError(f"{trainer.label} could not predict with {params}: {e}") from e


def score_candidate(
    trainer: ModelTrainer,
    params: Dict[str, Any],
    fold_data: Sequence[FoldData],
    index: int = 0
) -> CandidateResult:
    """
    Cross-validated MAE of one candidate.

    Any FitError, a backend error while predicting, or a non-finite
    prediction disqualifies the whole candidate (mean score +inf).
    """
    result = CandidateResult(index=index, params=dict(params))

    for i, fold in enumerate(fold_data):
        try:
            model = trainer.fit(fold.X_train, fold.y_train, params)
            predictions = _predict_holdout(trainer, model, fold, params)
            if not np.all(np.isfinite(predictions)):
                raise FitError(f"{trainer.label} produced non-finite predictions with {params}")
        except FitError as e:
            logger.debug(f"Candidate {index} failed on fold {i + 1}: {e}")
            result.failed = True
            result.error = f"fold {i + 1}: {e}"
            result.mean_score = float("inf")
            return result

        result.fold_scores.append(mean_absolute_error(predictions, fold.y_holdout))

    result.mean_score = float(np.mean(result.fold_scores))
    result.std_score = float(np.std(result.fold_scores))
    return result


def select_best(results: Sequence[CandidateResult]) -> int:
    """
    Index of the candidate with the lowest mean MAE.

    Ties go to the first candidate in grid order.

    Raises:
        FitError: If every candidate failed
    """
    best_index = None
    for i, r in enumerate(results):
        if r.failed or not np.isfinite(r.mean_score):
            continue
        if best_index is None or r.mean_score < results[best_index].mean_score:
            best_index = i

    if best_index is None:
        raise FitError(f"All {len(results)} candidates failed")
    return best_index


def tune_grid(
    trainer: ModelTrainer,
    df: pd.DataFrame,
    schema: FeatureSchema,
    grid: Sequence[Dict[str, Any]],
    folds: Sequence[np.ndarray],
    smoothing: float = 0.0,
    n_jobs: int = 1
) -> SearchResult:
    """
    Score every candidate on the fixed fold partition and select the best.

    Args:
        trainer: Model family to tune
        df: Raw training table including the target column
        schema: Feature schema in force for this run
        grid: Candidates, in enumeration order
        folds: Held-out index arrays from make_folds
        smoothing: Target-encoding shrinkage weight
        n_jobs: Parallel workers across candidates (1 runs serially)

    Returns:
        SearchResult with per-candidate scores and the winner

    Raises:
        ValueError: If the grid is empty
        SchemaError: If a declared column is absent or the target has gaps
        FitError: If every candidate failed
    """
    if not grid:
        raise ValueError("Hyperparameter grid is empty")

    schema.check(df, require_target=True, table="train")
    missing_target = int(df[schema.target_column].isna().sum())
    if missing_target:
        raise SchemaError(
            f"Target has {missing_target} missing value(s)",
            table="train",
            column=schema.target_column
        )

    logger.info("=" * 60)
    logger.info(f"TUNING {trainer.label.upper()}: {len(grid)} candidates × {len(folds)} folds")
    logger.info("=" * 60)

    fold_data = prepare_folds(df, schema, folds, smoothing=smoothing)

    if n_jobs == 1:
        results = [
            score_candidate(trainer, params, fold_data, index=i)
            for i, params in enumerate(grid)
        ]
    else:
        results = Parallel(n_jobs=n_jobs)(
            delayed(score_candidate)(trainer, params, fold_data, index=i)
            for i, params in enumerate(grid)
        )

    for r in results:
        status = "FAILED" if r.failed else f"MAE {r.mean_score:.4f}"
        logger.debug(f"  candidate {r.index} {r.params}: {status}")

    search = SearchResult(
        model_name=trainer.name,
        param_names=tuple(trainer.param_names),
        results=list(results),
        best_index=select_best(results),
        n_folds=len(folds)
    )

    if search.n_failed:
        logger.warning(f"{search.n_failed} of {len(grid)} candidates disqualified by fit failures")

    logger.info(f"Best {trainer.label}: {search.best_params} (CV MAE {search.best_score:.4f})")
    return search


def finalize_model(
    trainer: ModelTrainer,
    df: pd.DataFrame,
    schema: FeatureSchema,
    params: Dict[str, Any],
    smoothing: float = 0.0,
    save_path: Optional[str] = None
) -> Tuple[ClaimsPreprocessor, FittedModel]:
    """
    Refit the encoding and the winning candidate on the whole training table.

    Returns:
        Tuple of (fitted preprocessor, fitted model)
    """
    preprocessor = ClaimsPreprocessor(schema, smoothing=smoothing)
    preprocessor.fit(df, table="train")

    X_train = preprocessor.feature_matrix(df, table="train")
    y_train = df[schema.target_column].to_numpy(dtype=float)

    model = train_model(X_train, y_train, trainer, params, save_path=save_path)
    return preprocessor, model
