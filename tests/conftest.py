"""Shared fixtures for the claims pipeline tests."""

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from claims_pipeline.schema import FeatureSchema


def _claims_frame(n_rows: int, seed: int, start_id: int, with_target: bool) -> pd.DataFrame:
    rng = np.random.RandomState(seed)
    cat1 = rng.choice(['A', 'B', 'C'], size=n_rows)
    cat2 = rng.choice(['X', 'Y'], size=n_rows, p=[0.7, 0.3])
    cont1 = rng.uniform(0, 1, size=n_rows)
    cont2 = rng.normal(5, 2, size=n_rows)

    df = pd.DataFrame({
        'id': np.arange(start_id, start_id + n_rows),
        'cat1': cat1,
        'cat2': cat2,
        'cont1': cont1,
        'cont2': cont2
    })
    if with_target:
        level = pd.Series(cat1).map({'A': 1000.0, 'B': 2500.0, 'C': 4000.0}).to_numpy()
        df['loss'] = level + 3000.0 * cont1 + (cat2 == 'Y') * 800.0 + rng.exponential(300, n_rows)
    return df


@pytest.fixture
def schema():
    """Schema matching the synthetic claims tables."""
    return FeatureSchema(
        id_column='id',
        target_column='loss',
        categorical=('cat1', 'cat2'),
        numeric=('cont1', 'cont2')
    )


@pytest.fixture
def claims_train():
    """Synthetic training table with a learnable loss."""
    return _claims_frame(120, seed=42, start_id=1, with_target=True)


@pytest.fixture
def claims_test():
    """Synthetic test table without the target column."""
    return _claims_frame(30, seed=7, start_id=1001, with_target=False)


@pytest.fixture
def tiny_train():
    """The three-row training table from the worked example."""
    return pd.DataFrame({
        'id': [1, 2, 3],
        'cat': ['A', 'B', 'A'],
        'num': [10, 20, 30],
        'loss': [100.0, 200.0, 150.0]
    })


@pytest.fixture
def tiny_test():
    """The two-row test table from the worked example."""
    return pd.DataFrame({
        'id': [4, 5],
        'cat': ['A', 'C'],
        'num': [15, 25]
    })


@pytest.fixture
def tiny_schema():
    return FeatureSchema(id_column='id', target_column='loss', categorical=('cat',), numeric=('num',))
