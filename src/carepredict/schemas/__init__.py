"""
Schema definitions using Pandera for data validation.

Input and output frames are validated where they cross the package
boundary: raw source data on the way in, prediction records on the way out.
"""

from carepredict.schemas.input import build_input_schema, validate_input
from carepredict.schemas.output import (
    FACTOR_COLUMNS,
    OUTPUT_BINDING_ID,
    OUTPUT_BINDING_NAME,
    build_prediction_schema,
)

__all__ = [
    "FACTOR_COLUMNS",
    "OUTPUT_BINDING_ID",
    "OUTPUT_BINDING_NAME",
    "build_input_schema",
    "build_prediction_schema",
    "validate_input",
]
