"""
Pandera schema for deployment output records.

One row per scored test row, in the column order the destination table
expects: binding pair, load timestamp, grain id, prediction, three factors.
"""

import pandera.pandas as pa

OUTPUT_BINDING_ID = 0
OUTPUT_BINDING_NAME = "Python"

FACTOR_COLUMNS = ["Factor1TXT", "Factor2TXT", "Factor3TXT"]


def build_prediction_schema(
    grain_col: str,
    prediction_col: str,
    *,
    probability: bool,
) -> pa.DataFrameSchema:
    """
    Build the schema for assembled prediction records.

    Args:
        grain_col: Name of the grain identifier column.
        prediction_col: ``PredictedProbNBR`` or ``PredictedValueNBR``.
        probability: Constrain predictions to [0, 1].

    Returns:
        Strict, ordered schema.
    """
    prediction_checks = [pa.Check.in_range(0.0, 1.0)] if probability else []

    return pa.DataFrameSchema(
        {
            "BindingID": pa.Column(int, pa.Check.eq(OUTPUT_BINDING_ID)),
            "BindingNM": pa.Column(str, pa.Check.eq(OUTPUT_BINDING_NAME)),
            "LastLoadDTS": pa.Column(pa.DateTime, coerce=True),
            grain_col: pa.Column(nullable=False),
            prediction_col: pa.Column(float, prediction_checks, nullable=False),
            FACTOR_COLUMNS[0]: pa.Column(str, nullable=True),
            FACTOR_COLUMNS[1]: pa.Column(str, nullable=True),
            FACTOR_COLUMNS[2]: pa.Column(str, nullable=True),
        },
        strict=True,
        ordered=True,
        name="PredictionRecordSchema",
    )
