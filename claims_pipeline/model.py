"""
Model Training Module
=====================

Regression trainers for claim severity, one per model family:

    - penalized_regression: ElasticNet (penalty, mixture)
    - decision_tree: DecisionTreeRegressor (tree_depth, cost_complexity, min_n)
    - boosted_trees: HistGradientBoostingRegressor (tree_depth, trees, learn_rate)

Every trainer exposes the same contract: fit(X, y, params) -> FittedModel,
and FittedModel.predict(X) -> predictions. Backend failures surface as
FitError so the hyperparameter search can contain them.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Any, Optional, List, Tuple, Type
from datetime import datetime

import numpy as np
import pandas as pd
import joblib
from sklearn.linear_model import ElasticNet
from sklearn.tree import DecisionTreeRegressor
from sklearn.ensemble import HistGradientBoostingRegressor

from .exceptions import FitError

logger = logging.getLogger(__name__)


class FittedModel:
    """
    A fitted estimator plus what is needed to use it on new tables.

    Supports prediction only; refitting means asking the trainer again.
    """

    def __init__(
        self,
        estimator: Any,
        trainer_name: str,
        params: Dict[str, Any],
        feature_names: List[str],
        training_info: Optional[Dict[str, Any]] = None
    ):
        self.estimator = estimator
        self.trainer_name = trainer_name
        self.params = dict(params)
        self.feature_names = list(feature_names)
        self.training_info = training_info or {}

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        """
        Make predictions for encoded feature rows.

        Args:
            X: Encoded features; must contain every training feature column

        Returns:
            Predictions array of shape (n_samples,)
        """
        missing = [col for col in self.feature_names if col not in X.columns]
        if missing:
            raise ValueError(
                f"Expected {len(self.feature_names)} features, missing {missing[:10]}"
            )

        return np.asarray(
            self.estimator.predict(X[self.feature_names].to_numpy(dtype=float)),
            dtype=float
        )

    def save(self, filepath: str) -> None:
        """
        Save the fitted model to disk.

        Args:
            filepath: Path to save the model
        """
        state = {
            'estimator': self.estimator,
            'trainer_name': self.trainer_name,
            'params': self.params,
            'feature_names': self.feature_names,
            'training_info': self.training_info
        }

        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"Model saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'FittedModel':
        """
        Load a fitted model from disk.

        Args:
            filepath: Path to the saved model

        Returns:
            Loaded FittedModel instance
        """
        state = joblib.load(filepath)
        model = cls(**state)
        logger.info(f"Model loaded from {filepath}")
        return model


class ModelTrainer(ABC):
    """Base class for the model families."""

    name: str = ""
    label: str = ""
    param_names: Tuple[str, ...] = ()

    def __init__(self, random_state: int = 42, **options):
        self.random_state = random_state
        self.options = options

    @abstractmethod
    def build_estimator(self, params: Dict[str, Any]) -> Any:
        """Create an unfitted backend estimator for one hyperparameter candidate."""

    def check_params(self, params: Dict[str, Any]) -> None:
        missing = [p for p in self.param_names if p not in params]
        unknown = [p for p in params if p not in self.param_names]
        if missing or unknown:
            raise FitError(
                f"{self.label} expects {list(self.param_names)}; "
                f"missing={missing} unknown={unknown}"
            )

    def fit(self, X: pd.DataFrame, y, params: Dict[str, Any]) -> FittedModel:
        """
        Fit the backend estimator on encoded features.

        Args:
            X: Encoded feature table
            y: Target values
            params: One hyperparameter candidate

        Returns:
            FittedModel

        Raises:
            FitError: If the candidate is malformed or the backend rejects it
        """
        self.check_params(params)
        start_time = datetime.now()

        try:
            estimator = self.build_estimator(params)
            estimator.fit(X.to_numpy(dtype=float), np.asarray(y, dtype=float))
        except FitError:
            raise
        except Exception as e:
            raise FitError(f"{self.label} failed with {params}: {e}") from e

        duration = (datetime.now() - start_time).total_seconds()
        training_info = {
            'training_duration_seconds': duration,
            'n_samples': int(X.shape[0]),
            'n_features': int(X.shape[1]),
            'trained_at': datetime.now().isoformat(),
            'hyperparameters': dict(params)
        }
        return FittedModel(
            estimator,
            trainer_name=self.name,
            params=params,
            feature_names=list(X.columns),
            training_info=training_info
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(random_state={self.random_state}, options={self.options})"


class PenalizedRegressionTrainer(ModelTrainer):
    """Linear regression with a blended L1/L2 penalty."""

    name = "penalized_regression"
    label = "Penalized regression"
    param_names = ("penalty", "mixture")

    def build_estimator(self, params: Dict[str, Any]) -> ElasticNet:
        penalty = float(params["penalty"])
        mixture = float(params["mixture"])
        if penalty < 0:
            raise FitError(f"penalty must be >= 0, got {penalty}")
        if not 0.0 <= mixture <= 1.0:
            raise FitError(f"mixture must be in [0, 1], got {mixture}")

        return ElasticNet(
            alpha=penalty,
            l1_ratio=mixture,
            max_iter=self.options.get('max_iter', 10000),
            random_state=self.random_state
        )


class DecisionTreeTrainer(ModelTrainer):
    """Single regression tree with cost-complexity pruning."""

    name = "decision_tree"
    label = "Decision tree"
    param_names = ("tree_depth", "cost_complexity", "min_n")

    def build_estimator(self, params: Dict[str, Any]) -> DecisionTreeRegressor:
        return DecisionTreeRegressor(
            max_depth=int(params["tree_depth"]),
            ccp_alpha=float(params["cost_complexity"]),
            min_samples_split=int(params["min_n"]),
            criterion=self.options.get('criterion', 'squared_error'),
            random_state=self.random_state
        )


class BoostedTreesTrainer(ModelTrainer):
    """Gradient-boosted tree ensemble."""

    name = "boosted_trees"
    label = "Boosted trees"
    param_names = ("tree_depth", "trees", "learn_rate")

    def build_estimator(self, params: Dict[str, Any]) -> HistGradientBoostingRegressor:
        return HistGradientBoostingRegressor(
            max_depth=int(params["tree_depth"]),
            max_iter=int(params["trees"]),
            learning_rate=float(params["learn_rate"]),
            loss=self.options.get('loss', 'squared_error'),
            min_samples_leaf=self.options.get('min_samples_leaf', 20),
            early_stopping=False,
            random_state=self.random_state,
            verbose=0
        )


TRAINERS: Dict[str, Type[ModelTrainer]] = {
    PenalizedRegressionTrainer.name: PenalizedRegressionTrainer,
    DecisionTreeTrainer.name: DecisionTreeTrainer,
    BoostedTreesTrainer.name: BoostedTreesTrainer,
}


def get_trainer(name: str, random_state: int = 42, **options) -> ModelTrainer:
    """
    Instantiate a trainer by its configuration name.

    Raises:
        ValueError: If the name is not a known model family
    """
    if name not in TRAINERS:
        raise ValueError(f"Unknown model: {name}. Choose from: {', '.join(TRAINERS)}")
    return TRAINERS[name](random_state=random_state, **options)


def train_model(
    X_train: pd.DataFrame,
    y_train: np.ndarray,
    trainer: ModelTrainer,
    params: Dict[str, Any],
    save_path: Optional[str] = None
) -> FittedModel:
    """
    Fit a final model with a chosen hyperparameter candidate.

    Args:
        X_train: Encoded training features
        y_train: Training targets
        trainer: Model family to fit
        params: Hyperparameter candidate
        save_path: Path to save the trained model (optional)

    Returns:
        Trained FittedModel
    """
    logger.info("=" * 60)
    logger.info(f"TRAINING {trainer.label.upper()}")
    logger.info("=" * 60)
    logger.info(f"Training data shape: X={X_train.shape}")
    logger.info("Hyperparameters:")
    for key, value in params.items():
        logger.info(f"  - {key}: {value}")

    model = trainer.fit(X_train, y_train, params)

    logger.info(
        f"MODEL TRAINING COMPLETE in "
        f"{model.training_info['training_duration_seconds']:.2f} seconds"
    )

    if save_path:
        model.save(save_path)

    return model


def print_model_summary(model: FittedModel) -> None:
    """
    Print a summary of the trained model.

    Args:
        model: Trained model instance
    """
    print("\n" + "=" * 50)
    print("MODEL SUMMARY")
    print("=" * 50)
    print(f"Model: {model.trainer_name} ({type(model.estimator).__name__})")
    print(f"Number of input features: {len(model.feature_names)}")
    print("\nHyperparameters:")
    for key, value in model.params.items():
        print(f"  - {key}: {value}")

    if model.training_info:
        print("\nTraining Info:")
        print(f"  - Duration: {model.training_info.get('training_duration_seconds', 0.0):.2f}s")
        print(f"  - Samples: {model.training_info.get('n_samples', 'N/A')}")

    print("=" * 50 + "\n")
