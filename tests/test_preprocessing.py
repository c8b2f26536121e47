"""
Test Suite for Preprocessing Module
=====================================

Tests for target encoding, numeric rescaling and the ClaimsPreprocessor class.
"""

import dataclasses

import pytest
import numpy as np
import pandas as pd

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from claims_pipeline.data_loader import load_data
from claims_pipeline.exceptions import SchemaError
from claims_pipeline.preprocessing import (
    ClaimsPreprocessor, fit_encoding, apply_encoding, preprocess_pipeline
)
from claims_pipeline.schema import FeatureSchema


class TestFitEncoding:
    """Tests for fit_encoding."""

    def test_numeric_range(self, tiny_train, tiny_schema):
        params = fit_encoding(tiny_train, tiny_schema)

        assert params.numeric_ranges['num'] == (10.0, 30.0)

    def test_category_means(self, tiny_train, tiny_schema):
        params = fit_encoding(tiny_train, tiny_schema)

        assert params.category_maps['cat'] == {'A': 125.0, 'B': 200.0}
        assert params.fallback == pytest.approx(150.0)

    def test_smoothing_shrinks_toward_global_mean(self, tiny_train, tiny_schema):
        params = fit_encoding(tiny_train, tiny_schema, smoothing=1.0)

        # (2 * 125 + 1 * 150) / 3
        assert params.category_maps['cat']['A'] == pytest.approx(400.0 / 3.0)
        # (1 * 200 + 1 * 150) / 2
        assert params.category_maps['cat']['B'] == pytest.approx(175.0)

    def test_missing_target_raises(self, tiny_train, tiny_schema):
        with pytest.raises(SchemaError, match="loss"):
            fit_encoding(tiny_train.drop(columns=['loss']), tiny_schema)

    def test_missing_feature_raises(self, tiny_train, tiny_schema):
        with pytest.raises(SchemaError, match="num"):
            fit_encoding(tiny_train.drop(columns=['num']), tiny_schema)

    def test_negative_smoothing_rejected(self, tiny_train, tiny_schema):
        with pytest.raises(ValueError, match="smoothing"):
            fit_encoding(tiny_train, tiny_schema, smoothing=-1.0)

    def test_parameters_are_frozen(self, tiny_train, tiny_schema):
        params = fit_encoding(tiny_train, tiny_schema)

        with pytest.raises(dataclasses.FrozenInstanceError):
            params.fallback = 0.0


class TestApplyEncoding:
    """Tests for apply_encoding."""

    def test_worked_example(self, tiny_train, tiny_test, tiny_schema):
        params = fit_encoding(tiny_train, tiny_schema)
        encoded = apply_encoding(tiny_test, params)

        assert encoded['num'].tolist() == pytest.approx([0.25, 0.75])
        # 'C' never appears in train and falls back to the global mean loss
        assert encoded['cat'].tolist() == pytest.approx([125.0, 150.0])

    def test_identifier_untouched(self, tiny_train, tiny_test, tiny_schema):
        params = fit_encoding(tiny_train, tiny_schema)
        encoded = apply_encoding(tiny_test, params)

        pd.testing.assert_series_equal(encoded['id'], tiny_test['id'])

    def test_target_passes_through(self, tiny_train, tiny_schema):
        params = fit_encoding(tiny_train, tiny_schema)
        encoded = apply_encoding(tiny_train, params)

        pd.testing.assert_series_equal(encoded['loss'], tiny_train['loss'])

    def test_input_not_mutated(self, tiny_train, tiny_schema):
        original = tiny_train.copy()
        params = fit_encoding(tiny_train, tiny_schema)
        apply_encoding(tiny_train, params)

        pd.testing.assert_frame_equal(tiny_train, original)

    def test_in_sample_within_unit_range(self, claims_train, schema):
        params = fit_encoding(claims_train, schema)
        encoded = apply_encoding(claims_train, params)

        for col in schema.numeric:
            assert encoded[col].min() >= 0.0
            assert encoded[col].max() <= 1.0
        assert encoded[list(schema.numeric)].min().min() == 0.0
        assert encoded[list(schema.numeric)].max().max() == 1.0

    def test_out_of_range_not_clamped(self, tiny_train, tiny_schema):
        params = fit_encoding(tiny_train, tiny_schema)
        outside = pd.DataFrame({'id': [9, 10], 'cat': ['A', 'B'], 'num': [40, 0]})

        encoded = apply_encoding(outside, params)

        assert encoded['num'].tolist() == pytest.approx([1.5, -0.5])

    def test_constant_column_encodes_to_zero(self, tiny_train):
        train = tiny_train.assign(flat=5.0)
        schema = FeatureSchema('id', 'loss', ('cat',), ('num', 'flat'))
        params = fit_encoding(train, schema)

        encoded_train = apply_encoding(train, params)
        encoded_other = apply_encoding(train.assign(flat=7.0), params)

        assert (encoded_train['flat'] == 0.0).all()
        assert (encoded_other['flat'] == 0.0).all()
        assert np.isfinite(encoded_other['flat']).all()

    def test_missing_values_use_fallbacks(self, tiny_train, tiny_schema):
        params = fit_encoding(tiny_train, tiny_schema)
        holes = pd.DataFrame({'id': [7], 'cat': [np.nan], 'num': [np.nan]})

        encoded = apply_encoding(holes, params)

        assert encoded['cat'].iloc[0] == pytest.approx(150.0)
        # training mean of num is 20 -> (20 - 10) / 20
        assert encoded['num'].iloc[0] == pytest.approx(0.5)

    def test_missing_column_raises(self, tiny_train, tiny_test, tiny_schema):
        params = fit_encoding(tiny_train, tiny_schema)

        with pytest.raises(SchemaError, match="cat"):
            apply_encoding(tiny_test.drop(columns=['cat']), params, table="test")


class TestSymbolTypes:
    """Symbols match across tables whose columns loaded with different types."""

    @pytest.fixture
    def loaded(self, tmp_path):
        # train has a text level, so its column reads as strings; test reads as integers
        (tmp_path / "train.csv").write_text("id,cat,num,loss\n1,1,10,100.0\n2,2,20,200.0\n3,x,30,150.0\n")
        (tmp_path / "test.csv").write_text("id,cat,num\n4,1,15\n5,2,25\n")
        return load_data(str(tmp_path / "train.csv")), load_data(str(tmp_path / "test.csv"))

    def test_seen_symbols_keep_their_mean(self, loaded, tiny_schema):
        train, test = loaded
        assert pd.api.types.is_integer_dtype(test['cat'])

        params = fit_encoding(train, tiny_schema)
        encoded = apply_encoding(test, params)

        assert encoded['cat'].tolist() == pytest.approx([100.0, 200.0])

    def test_float_codes_with_gaps(self, loaded, tiny_schema, tmp_path):
        train, _ = loaded
        (tmp_path / "gaps.csv").write_text("id,cat,num\n6,2,15\n7,,15\n8,1,15\n")
        gaps = load_data(str(tmp_path / "gaps.csv"))
        assert pd.api.types.is_float_dtype(gaps['cat'])

        encoded = apply_encoding(gaps, fit_encoding(train, tiny_schema))

        assert encoded['cat'].tolist() == pytest.approx([200.0, 150.0, 100.0])

    def test_integer_train_text_test(self, tiny_schema):
        train = pd.DataFrame({'id': [1, 2], 'cat': [7, 8], 'num': [1, 2], 'loss': [10.0, 30.0]})
        test = pd.DataFrame({'id': [3, 4], 'cat': ['8', '7'], 'num': [1, 2]})

        encoded = apply_encoding(test, fit_encoding(train, tiny_schema))

        assert encoded['cat'].tolist() == pytest.approx([30.0, 10.0])


class TestClaimsPreprocessor:
    """Tests for ClaimsPreprocessor class."""

    @pytest.fixture
    def preprocessor(self, schema):
        return ClaimsPreprocessor(schema, smoothing=0.0)

    def test_init(self, preprocessor):
        assert preprocessor.smoothing == 0.0
        assert preprocessor._is_fitted == False
        assert preprocessor.params_ is None

    def test_fit(self, preprocessor, claims_train):
        preprocessor.fit(claims_train)

        assert preprocessor._is_fitted == True
        assert set(preprocessor.params_.category_maps) == {'cat1', 'cat2'}
        assert set(preprocessor.params_.numeric_ranges) == {'cont1', 'cont2'}

    def test_transform_before_fit(self, preprocessor, claims_train):
        with pytest.raises(ValueError, match="must be fitted"):
            preprocessor.transform(claims_train)

    def test_feature_matrix_order(self, preprocessor, claims_train):
        X = preprocessor.fit(claims_train).feature_matrix(claims_train)

        assert list(X.columns) == ['cat1', 'cat2', 'cont1', 'cont2']
        assert X.shape == (120, 4)
        assert np.isfinite(X.to_numpy()).all()

    def test_params_reused_on_test(self, preprocessor, claims_train, claims_test):
        preprocessor.fit(claims_train)
        before = preprocessor.params_

        preprocessor.transform(claims_test)

        assert preprocessor.params_ is before

    def test_save_load(self, preprocessor, claims_train, claims_test, tmp_path):
        preprocessor.fit(claims_train)
        path = tmp_path / "preprocessor.joblib"

        preprocessor.save(str(path))
        loaded = ClaimsPreprocessor.load(str(path))

        assert loaded._is_fitted == True
        assert loaded.schema == preprocessor.schema
        pd.testing.assert_frame_equal(
            loaded.feature_matrix(claims_test),
            preprocessor.feature_matrix(claims_test)
        )


class TestPreprocessPipeline:
    """Tests for the preprocess_pipeline function."""

    def test_pipeline_returns_expected_keys(self, claims_train, claims_test, schema):
        result = preprocess_pipeline(claims_train, claims_test, schema)

        expected_keys = [
            'X_train', 'y_train', 'X_test', 'test_ids', 'preprocessor', 'feature_names'
        ]
        for key in expected_keys:
            assert key in result, f"Missing key: {key}"

    def test_pipeline_shapes(self, claims_train, claims_test, schema):
        result = preprocess_pipeline(claims_train, claims_test, schema)

        assert result['X_train'].shape == (120, 4)
        assert result['X_test'].shape == (30, 4)
        assert len(result['y_train']) == 120
        assert result['test_ids'].tolist() == claims_test['id'].tolist()

    def test_pipeline_rejects_test_without_features(self, claims_train, claims_test, schema):
        with pytest.raises(SchemaError, match="test"):
            preprocess_pipeline(claims_train, claims_test.drop(columns=['cont2']), schema)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
