"""
Test Suite for Feature Schema
=============================

Tests for resolving column roles from configuration.
"""

import dataclasses

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from claims_pipeline.exceptions import SchemaError
from claims_pipeline.schema import FeatureSchema, resolve_feature_schema


HEADER = ['id', 'cat1', 'cat2', 'cat10', 'cont1', 'cont2', 'loss']


class TestResolveFeatureSchema:
    """Tests for resolve_feature_schema."""

    def test_prefix_selection_keeps_file_order(self):
        config = {'features': {'categorical_prefix': 'cat', 'numeric_prefix': 'cont'}}

        schema = resolve_feature_schema(config, HEADER)

        assert schema.categorical == ('cat1', 'cat2', 'cat10')
        assert schema.numeric == ('cont1', 'cont2')
        assert schema.id_column == 'id'
        assert schema.target_column == 'loss'

    def test_explicit_lists_win(self):
        config = {'features': {
            'categorical': ['cat2'],
            'numeric': ['cont1'],
            'categorical_prefix': 'cat',
            'numeric_prefix': 'cont'
        }}

        schema = resolve_feature_schema(config, HEADER)

        assert schema.categorical == ('cat2',)
        assert schema.numeric == ('cont1',)
        assert schema.features == ['cat2', 'cont1']

    def test_custom_id_and_target(self):
        config = {
            'data': {'id_column': 'claim_id', 'target_column': 'severity'},
            'features': {'numeric': ['x']}
        }

        schema = resolve_feature_schema(config, ['claim_id', 'x', 'severity'])

        assert schema.id_column == 'claim_id'
        assert schema.target_column == 'severity'
        assert schema.categorical == ()

    def test_overlap_rejected(self):
        config = {'features': {'categorical': ['cat1', 'cont1'], 'numeric': ['cont1']}}

        with pytest.raises(SchemaError, match="both categorical and numeric"):
            resolve_feature_schema(config, HEADER)

    def test_target_as_feature_rejected(self):
        config = {'features': {'numeric': ['cont1', 'loss']}}

        with pytest.raises(SchemaError, match="column=loss"):
            resolve_feature_schema(config, HEADER)

    def test_no_features(self):
        with pytest.raises(SchemaError, match="No feature columns"):
            resolve_feature_schema({'features': {'numeric_prefix': 'zzz'}}, HEADER)


class TestFeatureSchema:

    def test_check_reports_table(self, schema, claims_test):
        with pytest.raises(SchemaError, match="table=test"):
            schema.check(claims_test.drop(columns=['cat2']), table="test")

    def test_check_target_optional(self, schema, claims_test):
        schema.check(claims_test)

        with pytest.raises(SchemaError, match="loss"):
            schema.check(claims_test, require_target=True)

    def test_frozen(self, schema):
        with pytest.raises(dataclasses.FrozenInstanceError):
            schema.id_column = 'other'


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
