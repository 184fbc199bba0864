"""
Typed configuration models using Pydantic.

A single frozen ``ModelConfig`` is built once and handed to data
preparation, training and deployment. Nothing in the pipeline mutates it.
"""

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class ModelType(str, Enum):
    """Kind of supervised problem."""

    REGRESSION = "regression"
    CLASSIFICATION = "classification"
    MULTICLASS = "multiclass"


class ModelFamily(str, Enum):
    """Primary model family. Also keys the persisted artifact names."""

    RANDOM_FOREST = "random_forest"
    LINEAR_MIXED_MODEL = "linear_mixed_model"


class RandomForestParams(BaseModel):
    """Hyperparameters for the random forest family."""

    model_config = ConfigDict(frozen=True)

    trees: int = Field(default=201, ge=1, description="Number of trees")
    mtry: int | None = Field(
        default=None,
        ge=1,
        description="Candidate features per split; searched by CV when unset",
    )
    tune: bool = Field(default=True, description="Run the cross-validated search")
    cv_folds: int = Field(default=5, ge=2, le=20)


class MixedModelParams(BaseModel):
    """Fitting options for the linear mixed model family."""

    model_config = ConfigDict(frozen=True)

    max_iter: int = Field(default=200, ge=1)
    reml: bool = Field(default=True, description="Use REML for the Gaussian model")


class SinkConfig(BaseModel):
    """Destination table for deployment output."""

    model_config = ConfigDict(frozen=True)

    url: str | None = Field(default=None, description="SQLAlchemy database URL")
    dest_table: str | None = Field(
        default=None, description="Existing table, optionally 'schema.table'"
    )

    @property
    def schema_name(self) -> str | None:
        """Schema part of a qualified table name."""
        if self.dest_table and "." in self.dest_table:
            return self.dest_table.split(".", 1)[0]
        return None

    @property
    def table_name(self) -> str | None:
        """Unqualified table name."""
        if self.dest_table and "." in self.dest_table:
            return self.dest_table.split(".", 1)[1]
        return self.dest_table


class ModelConfig(BaseModel):
    """
    Complete configuration shared by training and deployment.

    The binary-ness check of the predicted column needs data and therefore
    happens in ``modeling.data.prepare``, not here.
    """

    model_config = ConfigDict(frozen=True)

    type: ModelType
    predicted_col: str = Field(min_length=1)
    grain_col: str | None = Field(default=None, description="Row identifier column")
    person_col: str | None = Field(
        default=None, description="Grouping column for longitudinal data"
    )
    test_window_col: str | None = Field(
        default=None, description="Y/N column marking pre-partitioned test rows"
    )
    impute: bool = True
    debug: bool = False
    cores: int = Field(default=1, ge=1, description="Worker count for CV search")

    family: ModelFamily = ModelFamily.RANDOM_FOREST
    random_forest: RandomForestParams = Field(default_factory=RandomForestParams)
    mixed_model: MixedModelParams = Field(default_factory=MixedModelParams)
    xgb_params: dict[str, Any] = Field(
        default_factory=dict, description="Opaque parameters for boosted variants"
    )

    random_state: int = 42
    test_size: float = Field(default=0.2, gt=0.0, lt=1.0)
    model_dir: Path = Field(default=Path("./models"))

    write_to_db: bool = False
    sink: SinkConfig = Field(default_factory=SinkConfig)

    @field_validator("grain_col", "person_col", "test_window_col")
    @classmethod
    def empty_string_is_none(cls, v: str | None) -> str | None:
        """Treat '' like an unset column name."""
        return v or None

    @model_validator(mode="after")
    def check_consistency(self) -> "ModelConfig":
        """Cross-field checks that do not need data."""
        if self.family == ModelFamily.LINEAR_MIXED_MODEL and self.person_col is None:
            msg = "linear_mixed_model requires person_col"
            raise ValueError(msg)
        if self.person_col is not None and self.family != ModelFamily.LINEAR_MIXED_MODEL:
            msg = "person_col is only supported with family=linear_mixed_model"
            raise ValueError(msg)
        if self.person_col is not None and self.person_col == self.predicted_col:
            msg = "person_col must differ from predicted_col"
            raise ValueError(msg)
        if self.grain_col is not None and self.grain_col == self.predicted_col:
            msg = "grain_col must differ from predicted_col"
            raise ValueError(msg)
        if self.write_to_db and (self.sink.url is None or self.sink.dest_table is None):
            msg = "write_to_db requires sink.url and sink.dest_table"
            raise ValueError(msg)
        return self

    @property
    def is_longitudinal(self) -> bool:
        """True when rows are grouped by a person column."""
        return self.person_col is not None

    @property
    def prediction_col_name(self) -> str:
        """Output column holding the prediction."""
        if self.type == ModelType.REGRESSION:
            return "PredictedValueNBR"
        return "PredictedProbNBR"
