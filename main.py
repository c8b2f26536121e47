#!/usr/bin/env python3
"""
Claims Severity Pipeline - Main Runner
======================================

Orchestrates the complete modelling workflow for claim loss prediction.

Phases:
    1. EDA - Exploratory Data Analysis of the training table
    2. Preprocessing - Target encoding and numeric rescaling
    3. Tuning - K-fold grid search per model family, scored by MAE
    4. Prediction - Refit the best candidate and write id,loss files

Model families (run in order, sharing the data and fold partition):
    penalized_regression, decision_tree, boosted_trees

Usage:
    # Run complete pipeline
    python main.py

    # Run specific phase
    python main.py --phase eda

    # Run selected models with custom config
    python main.py --config config/custom.yaml --models boosted_trees
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, List, Optional

import pandas as pd

from claims_pipeline.data_loader import (
    load_config, load_datasets, validate_data, print_data_summary
)
from claims_pipeline.eda import generate_eda_report, print_correlation_insights
from claims_pipeline.evaluation import (
    evaluate_search, print_evaluation_report, print_model_comparison, plot_model_comparison
)
from claims_pipeline.exceptions import PipelineError, ExportError, FitError
from claims_pipeline.model import TRAINERS, get_trainer, print_model_summary
from claims_pipeline.prediction import run_final_prediction, print_prediction_results
from claims_pipeline.preprocessing import preprocess_pipeline, print_preprocessing_summary
from claims_pipeline.schema import FeatureSchema, resolve_feature_schema
from claims_pipeline.tuning import make_folds, regular_grid, tune_grid, finalize_model

PHASES = ['eda', 'preprocess', 'tune', 'all']


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the pipeline."""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(f'pipeline_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log')
        ]
    )


def run_eda(
    train_df: pd.DataFrame,
    schema: FeatureSchema,
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 1: Exploratory Data Analysis.

    Args:
        train_df: Raw training table
        schema: Feature schema
        config: Configuration dictionary

    Returns:
        EDA report dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 1: EXPLORATORY DATA ANALYSIS")
    print("=" * 70)

    output_dir = config.get('output', {}).get('figures_path', 'reports/figures/')

    report = generate_eda_report(train_df, schema, output_dir=output_dir, show_plots=False)

    if report["correlation_matrix"] is not None:
        print_correlation_insights(pd.DataFrame(report["correlation_matrix"]))

    print(f"\n✓ EDA complete. {len(report['figures'])} figures saved to {output_dir}")

    return report


def run_preprocessing(
    train_df: pd.DataFrame,
    test_df: pd.DataFrame,
    schema: FeatureSchema,
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 2: fit the encoding on train and apply it to both tables.

    Returns:
        Preprocessing result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 2: FEATURE ENCODING")
    print("=" * 70)

    model_dir = Path(config.get('output', {}).get('model_path', 'models/'))
    model_dir.mkdir(parents=True, exist_ok=True)

    result = preprocess_pipeline(
        train_df,
        test_df,
        schema,
        smoothing=config.get('features', {}).get('smoothing', 0.0),
        save_preprocessor=str(model_dir / 'preprocessor.joblib')
    )

    print_preprocessing_summary(result)

    return result


def run_model(
    name: str,
    train_df: pd.DataFrame,
    test_df: pd.DataFrame,
    schema: FeatureSchema,
    folds: List,
    config: Dict[str, Any],
    predict: bool = True
) -> Dict[str, Any]:
    """
    Execute Phases 3-4 for one model family: tune, refit, predict.

    A failed refit or export only ends this model's run.

    Args:
        name: Model family name
        train_df: Raw training table
        test_df: Raw test table
        schema: Feature schema
        folds: Shared fold partition
        config: Configuration dictionary
        predict: Whether to predict the test table after tuning

    Returns:
        Summary dictionary for this model
    """
    print("\n" + "=" * 70)
    print(f"PHASE 3: TUNING - {name}")
    print("=" * 70)

    model_config = config.get('models', {}).get(name, {})
    cv_config = config.get('cv', {})
    output_config = config.get('output', {})
    smoothing = config.get('features', {}).get('smoothing', 0.0)

    trainer = get_trainer(
        name,
        random_state=cv_config.get('seed', 42),
        **model_config.get('options', {})
    )
    grid = regular_grid(model_config.get('grid', {}), trainer.param_names)

    try:
        search = tune_grid(
            trainer, train_df, schema, grid, folds,
            smoothing=smoothing,
            n_jobs=cv_config.get('n_jobs', 1)
        )
    except FitError as e:
        logging.error(f"Tuning of {name} failed: {e}")
        return {'cv_mae': None, 'error': str(e)}

    print_evaluation_report(search)

    summary = {
        'cv_mae': search.best_score,
        'best_params': search.best_params,
        'n_failed': search.n_failed
    }

    model_dir = Path(output_config.get('model_path', 'models/'))
    try:
        preprocessor, model = finalize_model(
            trainer, train_df, schema, search.best_params,
            smoothing=smoothing,
            save_path=str(model_dir / f"{name}.joblib")
        )
    except FitError as e:
        logging.error(f"Final refit of {name} failed: {e}")
        summary['error'] = str(e)
        evaluate_search(search, output_dir=output_config.get('reports_path', 'reports/'))
        return summary

    preprocessor.save(str(model_dir / f"{name}_preprocessor.joblib"))
    print_model_summary(model)

    y_true = train_df[schema.target_column].to_numpy(dtype=float)
    y_fit = model.predict(preprocessor.feature_matrix(train_df, table="train"))
    evaluation = evaluate_search(
        search,
        output_dir=output_config.get('reports_path', 'reports/'),
        y_true=y_true,
        y_fit=y_fit
    )
    summary['in_sample'] = evaluation['metrics'].get('in_sample')

    if not predict:
        return summary

    print("\n" + "=" * 70)
    print(f"PHASE 4: PREDICTION - {name}")
    print("=" * 70)

    try:
        result = run_final_prediction(
            model,
            preprocessor,
            test_df,
            output_dir=output_config.get('predictions_path', 'data/predictions/'),
            cv_mae=search.best_score
        )
    except ExportError as e:
        logging.error(f"Export of {name} predictions failed: {e}")
        summary['error'] = str(e)
        return summary

    print_prediction_results(result)
    summary['csv_path'] = result['csv_path']

    return summary


def run_full_pipeline(
    config_path: str = "config/config.yaml",
    train_path: Optional[str] = None,
    test_path: Optional[str] = None,
    phase: str = 'all',
    models: Optional[List[str]] = None,
    verbose: bool = False
) -> Dict[str, Any]:
    """
    Execute the pipeline.

    Args:
        config_path: Path to configuration file
        train_path: Training CSV (overrides config)
        test_path: Test CSV (overrides config)
        phase: One of PHASES
        models: Model families to run (default: all enabled in config)
        verbose: Log at DEBUG level regardless of config

    Returns:
        Dictionary containing all phase results
    """
    print("\n" + "=" * 70)
    print("CLAIMS SEVERITY PIPELINE")
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    config = load_config(config_path)
    setup_logging("DEBUG" if verbose else config.get('logging', {}).get('level', 'INFO'))

    data_config = config.get('data', {})
    train_path = train_path or data_config.get('train_path', 'data/raw/train.csv')
    test_path = test_path or data_config.get('test_path', 'data/raw/test.csv')

    print("\n📊 Loading data...")
    train_df, test_df = load_datasets(train_path, test_path)
    print_data_summary(train_df, name="TRAIN")
    print_data_summary(test_df, name="TEST")

    schema = resolve_feature_schema(config, list(train_df.columns))

    is_valid, _ = validate_data(train_df, schema, require_target=True, table="train")
    validate_data(test_df, schema, require_target=False, table="test")
    if not is_valid:
        print("⚠️  Data validation warnings detected. Proceeding anyway...")

    results = {
        'config': config,
        'schema': schema,
        'train_shape': train_df.shape,
        'test_shape': test_df.shape
    }

    if phase in ('eda', 'all'):
        results['eda'] = run_eda(train_df, schema, config)

    if phase == 'preprocess':
        results['preprocessing'] = run_preprocessing(train_df, test_df, schema, config)

    if phase in ('tune', 'all'):
        cv_config = config.get('cv', {})
        folds = make_folds(len(train_df), cv_config.get('folds', 5), cv_config.get('seed', 42))

        model_configs = config.get('models', {})
        if models is None:
            models = [
                name for name in TRAINERS
                if model_configs.get(name, {}).get('enabled', True)
            ]

        summaries = {}
        for name in models:
            summaries[name] = run_model(
                name, train_df, test_df, schema, folds, config,
                predict=(phase == 'all')
            )

        print_model_comparison(summaries)
        figures_path = Path(config.get('output', {}).get('figures_path', 'reports/figures/'))
        figures_path.mkdir(parents=True, exist_ok=True)
        plot_model_comparison(summaries, save_path=str(figures_path / "model_comparison.png"))
        results['models'] = summaries

    print("\n" + "=" * 70)
    print("PIPELINE COMPLETE")
    print("=" * 70)
    print(f"  • Train: {train_df.shape[0]} rows × {train_df.shape[1]} columns")
    print(f"  • Test: {test_df.shape[0]} rows × {test_df.shape[1]} columns")
    for name, summary in results.get('models', {}).items():
        score = summary.get('cv_mae')
        shown = f"{score:.4f}" if score is not None else "n/a"
        print(f"  • {name}: CV MAE {shown} -> {summary.get('csv_path', 'no export')}")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return results


def main():
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Claims severity modelling pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py
  python main.py --phase eda
  python main.py --train data/raw/train.csv --test data/raw/test.csv --models boosted_trees
        """
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--train',
        type=str,
        default=None,
        help='Path to the training CSV (overrides config)'
    )

    parser.add_argument(
        '--test',
        type=str,
        default=None,
        help='Path to the test CSV (overrides config)'
    )

    parser.add_argument(
        '--phase', '-p',
        type=str,
        choices=PHASES,
        default='all',
        help='Phase to run (default: all)'
    )

    parser.add_argument(
        '--models', '-m',
        nargs='+',
        choices=list(TRAINERS),
        default=None,
        help='Model families to run (default: all enabled in config)'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    args = parser.parse_args()

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        return 1

    try:
        run_full_pipeline(
            config_path=args.config,
            train_path=args.train,
            test_path=args.test,
            phase=args.phase,
            models=args.models,
            verbose=args.verbose
        )
        return 0

    except PipelineError as e:
        logging.error(f"Pipeline aborted at {e.stage} stage: {e}")
        print(f"\n❌ Pipeline aborted at {e.stage} stage: {e}")
        return 1

    except Exception as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
