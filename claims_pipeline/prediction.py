"""
Prediction Module
=================

Applies a finalized model to the test table and writes the prediction file.

Features:
    - Encode the test table with the frozen training parameters
    - Pair every test identifier with its predicted loss, in input order
    - Export to a two-column CSV (id, loss)
    - Prediction report generation
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime

import numpy as np
import pandas as pd

from .exceptions import ExportError
from .model import FittedModel
from .preprocessing import ClaimsPreprocessor

logger = logging.getLogger(__name__)


def predict_test(
    model: FittedModel,
    preprocessor: ClaimsPreprocessor,
    test_df: pd.DataFrame
) -> np.ndarray:
    """
    Predict loss for every row of the raw test table.

    Args:
        model: Finalized model
        preprocessor: Preprocessor fitted on the full training table
        test_df: Raw test table

    Returns:
        Predictions, one per test row
    """
    X_test = preprocessor.feature_matrix(test_df, table="test")
    return model.predict(X_test)


def build_prediction_records(
    ids,
    predictions,
    id_column: str = "id",
    target_column: str = "loss"
) -> pd.DataFrame:
    """
    Pair identifiers with predictions, preserving row order.

    Raises:
        ExportError: If the number of identifiers and predictions differ
    """
    ids = pd.Series(ids).reset_index(drop=True)
    predictions = np.asarray(predictions, dtype=float).ravel()

    if len(ids) != len(predictions):
        raise ExportError(
            f"{len(ids)} identifiers but {len(predictions)} predictions",
            table="test",
            column=id_column
        )

    return pd.DataFrame({id_column: ids, target_column: predictions})


def export_predictions(
    ids,
    predictions,
    output_path: str,
    id_column: str = "id",
    target_column: str = "loss"
) -> str:
    """
    Export predictions to a CSV file with an (id, loss) header.

    Args:
        ids: Untransformed test identifiers
        predictions: Predicted values
        output_path: File to write
        id_column: Header of the identifier column
        target_column: Header of the prediction column

    Returns:
        Path to the saved file

    Raises:
        ExportError: If identifiers and predictions are misaligned
    """
    records = build_prediction_records(ids, predictions, id_column, target_column)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    records.to_csv(output_path, index=False)

    logger.info(f"Predictions exported to {output_path} ({len(records)} rows)")
    return str(output_path)


def generate_prediction_report(
    model_name: str,
    predictions: np.ndarray,
    params: Dict[str, Any],
    cv_mae: Optional[float] = None,
    output_path: Optional[str] = None
) -> Dict[str, Any]:
    """
    Summarize a prediction run.

    Args:
        model_name: Model family name
        predictions: Predicted values
        params: Hyperparameters of the finalized model
        cv_mae: Cross-validated MAE of those hyperparameters (optional)
        output_path: Path to save the report (optional)

    Returns:
        Report dictionary
    """
    predictions = np.asarray(predictions, dtype=float)

    report = {
        'generated_at': datetime.now().isoformat(),
        'model': model_name,
        'hyperparameters': params,
        'cv_mae': cv_mae,
        'summary': {
            'n_predictions': int(len(predictions)),
            'mean': float(predictions.mean()) if len(predictions) else None,
            'min': float(predictions.min()) if len(predictions) else None,
            'max': float(predictions.max()) if len(predictions) else None,
            'n_negative': int((predictions < 0).sum())
        }
    }

    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w') as f:
            json.dump(report, f, indent=2, default=str)
        logger.info(f"Prediction report saved to {output_path}")

    return report


def run_final_prediction(
    model: FittedModel,
    preprocessor: ClaimsPreprocessor,
    test_df: pd.DataFrame,
    output_dir: str = "data/predictions/",
    cv_mae: Optional[float] = None
) -> Dict[str, Any]:
    """
    Predict the test table and write the prediction file and report.

    Args:
        model: Finalized model
        preprocessor: Preprocessor fitted on the full training table
        test_df: Raw test table
        output_dir: Directory for output files
        cv_mae: Cross-validated MAE of the finalized hyperparameters

    Returns:
        Dictionary containing predictions and file paths
    """
    schema = preprocessor.schema
    name = model.trainer_name

    logger.info("=" * 60)
    logger.info(f"PREDICTING TEST TABLE ({name})")
    logger.info("=" * 60)

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    predictions = predict_test(model, preprocessor, test_df)

    csv_path = export_predictions(
        test_df[schema.id_column],
        predictions,
        str(output_dir / f"{name}_predictions.csv"),
        id_column=schema.id_column,
        target_column=schema.target_column
    )

    report_path = output_dir / f"{name}_prediction_report.json"
    report = generate_prediction_report(
        name, predictions, model.params, cv_mae=cv_mae, output_path=str(report_path)
    )

    return {
        'model': name,
        'predictions': predictions,
        'csv_path': csv_path,
        'report_path': str(report_path),
        'report': report
    }


def print_prediction_results(result: Dict[str, Any]) -> None:
    """
    Print formatted prediction results to console.

    Args:
        result: Result dictionary from run_final_prediction
    """
    summary = result['report']['summary']

    print("\n" + "=" * 60)
    print(f"PREDICTION RESULTS - {result['model']}")
    print("=" * 60)
    print(f"  Rows predicted: {summary['n_predictions']}")
    if summary['n_predictions']:
        print(f"  Mean loss: {summary['mean']:.2f}")
        print(f"  Range: [{summary['min']:.2f}, {summary['max']:.2f}]")
    if summary['n_negative']:
        print(f"  ⚠ Negative predictions: {summary['n_negative']}")
    print(f"\nPredictions exported to: {result['csv_path']}")
    print(f"Report saved to: {result['report_path']}")
    print("=" * 60 + "\n")
