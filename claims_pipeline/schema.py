"""
Feature Schema
==============

Static partition of the claims table into identifier, target, categorical
and numeric columns. Resolved once at startup from the configuration and
reused unchanged for the training and test tables.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Any, List, Sequence, Tuple

import pandas as pd

from .exceptions import SchemaError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureSchema:
    """Column roles shared by every table in a pipeline run."""

    id_column: str
    target_column: str
    categorical: Tuple[str, ...]
    numeric: Tuple[str, ...]

    @property
    def features(self) -> List[str]:
        return list(self.categorical) + list(self.numeric)

    def check(self, df: pd.DataFrame, require_target: bool = False, table: str = "table") -> None:
        """
        Verify that a table carries every column this schema declares.

        Args:
            df: Table to check
            require_target: Whether the target column must be present
            table: Label used in the error message

        Raises:
            SchemaError: On the first missing column
        """
        required = [self.id_column] + self.features
        if require_target:
            required.append(self.target_column)

        missing = [col for col in required if col not in df.columns]
        if missing:
            raise SchemaError(
                f"{len(missing)} declared column(s) missing: {missing[:10]}",
                table=table,
                column=missing[0]
            )


def _select(columns: Sequence[str], explicit, prefix) -> List[str]:
    if explicit:
        return list(explicit)
    if prefix:
        return [col for col in columns if str(col).startswith(prefix)]
    return []


def resolve_feature_schema(config: Dict[str, Any], columns: Sequence[str]) -> FeatureSchema:
    """
    Build the feature schema from configuration.

    Explicit column lists take precedence. Otherwise the categorical and
    numeric sets are selected by name prefix from the training header.

    Args:
        config: Full configuration dictionary
        columns: Training table header, in file order

    Returns:
        Resolved FeatureSchema

    Raises:
        SchemaError: If the partition overlaps, names the id/target columns
            as features, or is empty
    """
    data_config = config.get('data', {})
    feature_config = config.get('features', {})

    id_column = data_config.get('id_column', 'id')
    target_column = data_config.get('target_column', 'loss')

    categorical = _select(
        columns,
        feature_config.get('categorical'),
        feature_config.get('categorical_prefix')
    )
    numeric = _select(
        columns,
        feature_config.get('numeric'),
        feature_config.get('numeric_prefix')
    )

    overlap = set(categorical) & set(numeric)
    if overlap:
        raise SchemaError(
            f"Columns declared both categorical and numeric: {sorted(overlap)}",
            column=sorted(overlap)[0]
        )

    for reserved in (id_column, target_column):
        if reserved in categorical or reserved in numeric:
            raise SchemaError(
                "Identifier and target columns cannot be features",
                column=reserved
            )

    if not categorical and not numeric:
        raise SchemaError("No feature columns configured")

    schema = FeatureSchema(
        id_column=id_column,
        target_column=target_column,
        categorical=tuple(categorical),
        numeric=tuple(numeric)
    )

    logger.info(
        f"Feature schema: {len(schema.categorical)} categorical, "
        f"{len(schema.numeric)} numeric (id='{id_column}', target='{target_column}')"
    )
    return schema
