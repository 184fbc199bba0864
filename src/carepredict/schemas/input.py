"""
Pandera schema for raw source frames.

Column names are configuration-driven, so the schema is built per config
rather than declared as a DataFrameModel.
"""

import pandas as pd
import pandera.pandas as pa
from pandera.errors import SchemaError

from carepredict.config.settings import ModelConfig
from carepredict.errors import ConfigurationError
from carepredict.utils.cleaning import normalize_flags


def build_input_schema(config: ModelConfig, *, require_window: bool = False) -> pa.DataFrameSchema:
    """
    Build a schema requiring every column the config names.

    Args:
        config: Model configuration.
        require_window: Also require the test-window indicator column.

    Returns:
        Non-strict schema (extra columns are allowed).
    """
    columns: dict[str, pa.Column] = {
        config.predicted_col: pa.Column(nullable=True, required=True),
    }
    if config.grain_col is not None:
        columns[config.grain_col] = pa.Column(nullable=False, required=True)
    if config.person_col is not None:
        columns[config.person_col] = pa.Column(nullable=False, required=True)
    if require_window and config.test_window_col is not None:
        columns[config.test_window_col] = pa.Column(
            nullable=False,
            required=True,
            checks=pa.Check(
                lambda s: normalize_flags(s).isin(["Y", "N", "TRUE", "FALSE", "1", "0"]),
                element_wise=False,
                error="test window column must hold Y/N flags",
            ),
        )

    return pa.DataFrameSchema(columns, strict=False, name="SourceFrameSchema")


def validate_input(
    df: pd.DataFrame, config: ModelConfig, *, require_window: bool = False
) -> pd.DataFrame:
    """
    Validate a raw source frame against the config.

    Raises:
        ConfigurationError: If a configured column is missing or invalid.
    """
    schema = build_input_schema(config, require_window=require_window)
    try:
        return schema.validate(df)
    except SchemaError as e:
        msg = f"Source data does not match configuration: {e}"
        raise ConfigurationError(msg) from e
