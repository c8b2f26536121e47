"""
Data Preprocessing Module
=========================

Feature engineering for the claims tables.

Categorical columns are target encoded (each symbol replaced by the mean
loss of the training rows holding it) and numeric columns are rescaled to
[0, 1] with the training minimum and maximum. Encoding parameters are
learned once and reused unchanged on any later table.

Functions:
    - fit_encoding: Learn encoding parameters from a training table
    - apply_encoding: Apply learned parameters to any table
    - preprocess_pipeline: Fit on train, transform train and test
"""

import logging
from dataclasses import dataclass
from typing import Dict, Any, Tuple, Optional, List

import pandas as pd
import numpy as np
import joblib

from .exceptions import SchemaError
from .schema import FeatureSchema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncodingParameters:
    """
    Learned encoding state, immutable once fit.

    Attributes:
        category_maps: Per categorical column, symbol -> surrogate value
        fallback: Surrogate for symbols unseen during fitting (global mean target)
        numeric_ranges: Per numeric column, observed (min, max)
        numeric_fill: Per numeric column, value substituted for missing entries
    """

    category_maps: Dict[str, Dict[Any, float]]
    fallback: float
    numeric_ranges: Dict[str, Tuple[float, float]]
    numeric_fill: Dict[str, float]

    @property
    def columns(self) -> List[str]:
        return list(self.category_maps) + list(self.numeric_ranges)


def _symbols(values: pd.Series) -> pd.Series:
    """
    Categorical values as strings, missing entries kept as NaN.

    The loader infers types per file, so one table may read a column of
    codes as integers (or floats, when it has gaps) while another reads it
    as text. Whole floats are rendered without the trailing '.0' so that
    1, 1.0 and '1' are the same symbol.
    """
    if pd.api.types.is_float_dtype(values):
        present = values.dropna()
        if np.isfinite(present).all() and (present == np.floor(present)).all():
            values = values.astype("Int64")
    return values.astype("string").astype(object).where(values.notna(), np.nan)


def fit_encoding(
    df: pd.DataFrame,
    schema: FeatureSchema,
    smoothing: float = 0.0,
    table: str = "train"
) -> EncodingParameters:
    """
    Learn target encoding and rescaling parameters from a training table.

    With `smoothing` m > 0 each symbol's mean is shrunk toward the global
    mean: (n * mean + m * global) / (n + m).

    Args:
        df: Training table including the target column
        schema: Feature schema in force for this run
        smoothing: Shrinkage weight toward the global mean
        table: Label used in error messages

    Returns:
        Fitted EncodingParameters

    Raises:
        SchemaError: If a declared column or the target is absent, or the
            table has no rows
    """
    schema.check(df, require_target=True, table=table)

    if smoothing < 0:
        raise ValueError(f"smoothing must be >= 0, got {smoothing}")

    target = pd.to_numeric(df[schema.target_column], errors='coerce')
    if target.notna().sum() == 0:
        raise SchemaError(
            "Cannot fit encoding without target values",
            table=table,
            column=schema.target_column
        )
    global_mean = float(target.mean())

    category_maps = {}
    for col in schema.categorical:
        grouped = target.groupby(_symbols(df[col])).agg(['mean', 'count'])
        if smoothing > 0:
            values = (
                grouped['count'] * grouped['mean'] + smoothing * global_mean
            ) / (grouped['count'] + smoothing)
        else:
            values = grouped['mean']
        category_maps[col] = {key: float(value) for key, value in values.items()}

    numeric_ranges = {}
    numeric_fill = {}
    for col in schema.numeric:
        values = pd.to_numeric(df[col], errors='coerce')
        numeric_ranges[col] = (float(values.min()), float(values.max()))
        numeric_fill[col] = float(values.mean())

    constant = [
        col for col, (lo, hi) in numeric_ranges.items()
        if not np.isfinite(hi - lo) or hi == lo
    ]
    if constant:
        logger.warning(f"Constant numeric columns will encode to 0.0: {constant}")

    logger.debug(
        f"Fitted encoding on {len(df)} rows: {len(category_maps)} categorical, "
        f"{len(numeric_ranges)} numeric, fallback={global_mean:.4f}"
    )

    return EncodingParameters(
        category_maps=category_maps,
        fallback=global_mean,
        numeric_ranges=numeric_ranges,
        numeric_fill=numeric_fill
    )


def apply_encoding(
    df: pd.DataFrame,
    params: EncodingParameters,
    table: str = "table"
) -> pd.DataFrame:
    """
    Apply learned encoding parameters to a table.

    Values outside the fitted numeric range are not clamped. Columns that
    are not encoded (identifier, target, anything else) pass through
    unchanged. The input table is not modified.

    Args:
        df: Table to transform
        params: Parameters from fit_encoding
        table: Label used in error messages

    Returns:
        New DataFrame with encoded feature columns

    Raises:
        SchemaError: If an encoded column is absent from the table
    """
    missing = [col for col in params.columns if col not in df.columns]
    if missing:
        raise SchemaError(
            f"{len(missing)} feature column(s) missing: {missing[:10]}",
            table=table,
            column=missing[0]
        )

    encoded = df.copy()

    for col, mapping in params.category_maps.items():
        encoded[col] = (
            _symbols(df[col]).map(mapping).astype(float).fillna(params.fallback)
        )

    for col, (lo, hi) in params.numeric_ranges.items():
        values = pd.to_numeric(df[col], errors='coerce').fillna(params.numeric_fill[col])
        span = hi - lo
        if np.isfinite(span) and span > 0:
            encoded[col] = (values - lo) / span
        else:
            encoded[col] = 0.0

    return encoded


class ClaimsPreprocessor:
    """
    Stateful wrapper around fit_encoding/apply_encoding.

    Keeps the schema and fitted parameters together so the same encoding
    can be applied to the test table and persisted with the model.
    """

    def __init__(self, schema: FeatureSchema, smoothing: float = 0.0):
        """
        Initialize the preprocessor.

        Args:
            schema: Feature schema in force for this run
            smoothing: Target-encoding shrinkage weight
        """
        self.schema = schema
        self.smoothing = smoothing

        self.params_: Optional[EncodingParameters] = None
        self._is_fitted = False

    def fit(self, df: pd.DataFrame, table: str = "train") -> 'ClaimsPreprocessor':
        """
        Learn encoding parameters from a training table.

        Args:
            df: Training table including the target column
            table: Label used in error messages

        Returns:
            Self for method chaining
        """
        self.params_ = fit_encoding(df, self.schema, smoothing=self.smoothing, table=table)
        self._is_fitted = True
        return self

    def transform(self, df: pd.DataFrame, table: str = "table") -> pd.DataFrame:
        """
        Transform a table using the fitted parameters.

        Args:
            df: Table to transform
            table: Label used in error messages

        Returns:
            Encoded copy of the table

        Raises:
            ValueError: If called before fit
        """
        if not self._is_fitted:
            raise ValueError("Preprocessor must be fitted before transform. Call fit() first.")

        return apply_encoding(df, self.params_, table=table)

    def fit_transform(self, df: pd.DataFrame, table: str = "train") -> pd.DataFrame:
        """Fit on a training table and return its encoded copy."""
        self.fit(df, table=table)
        return self.transform(df, table=table)

    def feature_matrix(self, df: pd.DataFrame, table: str = "table") -> pd.DataFrame:
        """Encoded feature columns only, in schema order."""
        return self.transform(df, table=table)[self.get_feature_names()]

    def get_feature_names(self) -> List[str]:
        """Feature columns fed to the models, categorical first, in schema order."""
        return self.schema.features

    def save(self, filepath: str) -> None:
        """
        Save the preprocessor state to disk.

        Args:
            filepath: Path to save the preprocessor
        """
        state = {
            'schema': self.schema,
            'smoothing': self.smoothing,
            'params_': self.params_,
            '_is_fitted': self._is_fitted
        }
        joblib.dump(state, filepath)
        logger.info(f"Preprocessor saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'ClaimsPreprocessor':
        """
        Load a preprocessor from disk.

        Args:
            filepath: Path to the saved preprocessor

        Returns:
            Loaded ClaimsPreprocessor instance
        """
        state = joblib.load(filepath)

        preprocessor = cls(schema=state['schema'], smoothing=state['smoothing'])
        preprocessor.params_ = state['params_']
        preprocessor._is_fitted = state['_is_fitted']

        logger.info(f"Preprocessor loaded from {filepath}")
        return preprocessor


def preprocess_pipeline(
    train_df: pd.DataFrame,
    test_df: pd.DataFrame,
    schema: FeatureSchema,
    smoothing: float = 0.0,
    save_preprocessor: Optional[str] = None
) -> Dict[str, Any]:
    """
    Fit the encoding on the training table and transform both tables.

    Args:
        train_df: Raw training table
        test_df: Raw test table
        schema: Feature schema in force for this run
        smoothing: Target-encoding shrinkage weight
        save_preprocessor: Path to save the fitted preprocessor

    Returns:
        Dictionary containing:
            - X_train, y_train: Encoded training features and target
            - X_test, test_ids: Encoded test features and untouched identifiers
            - preprocessor: Fitted ClaimsPreprocessor
            - feature_names: Feature column order
    """
    logger.info("=" * 60)
    logger.info("STARTING FEATURE ENCODING")
    logger.info("=" * 60)

    schema.check(test_df, require_target=False, table="test")

    preprocessor = ClaimsPreprocessor(schema, smoothing=smoothing)
    preprocessor.fit(train_df, table="train")

    X_train = preprocessor.feature_matrix(train_df, table="train")
    X_test = preprocessor.feature_matrix(test_df, table="test")

    if save_preprocessor:
        preprocessor.save(save_preprocessor)

    result = {
        'X_train': X_train,
        'y_train': train_df[schema.target_column].to_numpy(dtype=float),
        'X_test': X_test,
        'test_ids': test_df[schema.id_column].copy(),
        'preprocessor': preprocessor,
        'feature_names': preprocessor.get_feature_names()
    }

    logger.info("=" * 60)
    logger.info("FEATURE ENCODING COMPLETE")
    logger.info(f"  Training rows: {len(X_train)}")
    logger.info(f"  Test rows: {len(X_test)}")
    logger.info(f"  Features per row: {X_train.shape[1]}")
    logger.info("=" * 60)

    return result


def print_preprocessing_summary(result: Dict[str, Any]) -> None:
    """
    Print a summary of the preprocessing results.

    Args:
        result: Dictionary from preprocess_pipeline
    """
    preprocessor = result['preprocessor']
    params = preprocessor.params_

    print("\n" + "=" * 50)
    print("PREPROCESSING SUMMARY")
    print("=" * 50)
    print(f"Training rows: {result['X_train'].shape[0]}")
    print(f"Test rows: {result['X_test'].shape[0]}")
    print(f"Features per row: {result['X_train'].shape[1]}")
    print(f"\nTarget-encoded columns: {len(params.category_maps)}")
    print(f"Rescaled numeric columns: {len(params.numeric_ranges)}")
    print(f"Unseen-symbol fallback: {params.fallback:.4f}")
    print(f"Smoothing: {preprocessor.smoothing}")
    print("=" * 50 + "\n")
