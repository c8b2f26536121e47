"""
Data Loader Module
==================

Handles configuration loading, CSV ingestion and basic data quality checks
for the claims tables.

Functions:
    - load_config: Load YAML configuration file
    - load_data: Load a delimited table with type inference
    - load_datasets: Load the train and test tables together
    - validate_data: Check schema and data quality constraints
    - get_data_summary: Generate basic statistics
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

import pandas as pd
import numpy as np
import yaml

from .exceptions import LoadError, SchemaError
from .schema import FeatureSchema

logger = logging.getLogger(__name__)


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Dictionary containing configuration parameters

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def load_data(
    file_path: str,
    expected_columns: Optional[int] = None,
    sep: str = ","
) -> pd.DataFrame:
    """
    Load delimited tabular data with automatic type detection.

    Column order is preserved and each column's type (numeric or string)
    is inferred from its content.

    Args:
        file_path: Path to the CSV file
        expected_columns: Expected number of columns (optional validation)
        sep: Field delimiter

    Returns:
        DataFrame containing the loaded data

    Raises:
        LoadError: If the file is missing, unreadable, empty or malformed
    """
    file_path = Path(file_path)

    if not file_path.is_file():
        raise LoadError(f"Data file not found: {file_path}", table=file_path.name)

    try:
        df = pd.read_csv(file_path, sep=sep, low_memory=False)
    except pd.errors.EmptyDataError as e:
        raise LoadError(f"Data file is empty: {file_path}", table=file_path.name) from e
    except (pd.errors.ParserError, UnicodeDecodeError, OSError) as e:
        raise LoadError(f"Could not parse {file_path}: {e}", table=file_path.name) from e

    logger.info(f"Loaded data from {file_path}: {df.shape[0]} rows × {df.shape[1]} columns")

    if expected_columns is not None and df.shape[1] != expected_columns:
        raise LoadError(
            f"Expected {expected_columns} columns, but found {df.shape[1]}. "
            f"Columns: {list(df.columns)}",
            table=file_path.name
        )

    return df


def load_datasets(train_path: str, test_path: str) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Load the training and test tables."""
    train_df = load_data(train_path)
    test_df = load_data(test_path)
    return train_df, test_df


def validate_data(
    df: pd.DataFrame,
    schema: FeatureSchema,
    require_target: bool = True,
    strict: bool = False,
    table: str = "train"
) -> Tuple[bool, Dict[str, Any]]:
    """
    Validate a claims table against the feature schema.

    Checks:
        - Identifier, feature and (optionally) target columns are present
        - Identifiers are unique
        - Missing values in feature columns
        - Target is numeric, complete and non-negative

    Missing columns and missing or non-numeric targets always raise; the
    remaining checks only produce warnings unless `strict` is set.

    Args:
        df: DataFrame to validate
        schema: Feature schema in force for this run
        require_target: Whether the target column must be present
        strict: If True, raise errors on validation failure
        table: Label used in log and error messages

    Returns:
        Tuple of (is_valid, validation_report)

    Raises:
        SchemaError: If declared columns are missing, or on any issue when strict
    """
    schema.check(df, require_target=require_target, table=table)

    report = {
        "table": table,
        "total_rows": len(df),
        "total_columns": len(df.columns),
        "issues": []
    }

    # Check 1: Duplicate identifiers
    duplicates = int(df[schema.id_column].duplicated().sum())
    if duplicates > 0:
        issue = f"Duplicate identifiers in '{schema.id_column}': {duplicates}"
        report["issues"].append(issue)
        logger.warning(issue)

    # Check 2: Missing values
    missing_counts = df[schema.features].isnull().sum()
    total_missing = int(missing_counts.sum())
    if total_missing > 0:
        issue = f"Missing feature values: {total_missing}"
        report["issues"].append(issue)
        report["missing_by_column"] = missing_counts[missing_counts > 0].to_dict()
        logger.warning(issue)

    # Check 3: Non-numeric columns declared numeric
    declared_numeric = list(schema.numeric)
    non_numeric = [
        col for col in declared_numeric
        if not pd.api.types.is_numeric_dtype(df[col])
    ]
    if non_numeric:
        issue = f"Numeric columns with non-numeric content: {non_numeric}"
        report["issues"].append(issue)
        logger.warning(issue)

    # Check 4: Target sanity
    if require_target:
        target = df[schema.target_column]
        if not pd.api.types.is_numeric_dtype(target):
            raise SchemaError(
                "Target column is not numeric",
                table=table,
                column=schema.target_column
            )
        missing_target = int(target.isna().sum())
        if missing_target > 0:
            raise SchemaError(
                f"Target has {missing_target} missing value(s)",
                table=table,
                column=schema.target_column
            )
        negatives = int((target < 0).sum())
        if negatives > 0:
            issue = f"Negative target values: {negatives}"
            report["issues"].append(issue)
            logger.warning(issue)

    is_valid = len(report["issues"]) == 0
    report["is_valid"] = is_valid

    if strict and not is_valid:
        raise SchemaError(f"Data validation failed: {report['issues']}", table=table)

    return is_valid, report


def get_data_summary(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Generate summary statistics for the dataset.

    Args:
        df: DataFrame to summarize

    Returns:
        Dictionary containing summary statistics
    """
    summary = {
        "shape": df.shape,
        "columns": list(df.columns),
        "dtypes": df.dtypes.astype(str).to_dict(),
        "memory_usage_mb": df.memory_usage(deep=True).sum() / 1024 / 1024,
        "statistics": {},
        "cardinality": {}
    }

    for col in df.select_dtypes(include=[np.number]).columns:
        summary["statistics"][col] = {
            "count": int(df[col].count()),
            "mean": float(df[col].mean()),
            "std": float(df[col].std()),
            "min": float(df[col].min()),
            "50%": float(df[col].quantile(0.50)),
            "max": float(df[col].max()),
            "skew": float(df[col].skew())
        }

    for col in df.select_dtypes(exclude=[np.number]).columns:
        summary["cardinality"][col] = int(df[col].nunique(dropna=True))

    return summary


def print_data_summary(df: pd.DataFrame, name: str = "DATASET") -> None:
    """
    Print a formatted summary of the dataset to console.

    Args:
        df: DataFrame to summarize
        name: Heading for the summary block
    """
    summary = get_data_summary(df)

    print("\n" + "=" * 60)
    print(f"{name} SUMMARY")
    print("=" * 60)
    print(f"Shape: {df.shape[0]} rows × {df.shape[1]} columns")
    print(f"Memory Usage: {summary['memory_usage_mb'] * 1024:.2f} KB")
    print(f"Numeric columns: {len(summary['statistics'])}")
    print(f"Categorical columns: {len(summary['cardinality'])}")

    if summary["cardinality"]:
        top = sorted(summary["cardinality"].items(), key=lambda x: x[1], reverse=True)[:5]
        print("\nHighest cardinality:")
        for col, n_levels in top:
            print(f"  {col}: {n_levels} levels")

    missing = int(df.isnull().sum().sum())
    print(f"\nMissing values: {missing}")
    print("=" * 60 + "\n")
