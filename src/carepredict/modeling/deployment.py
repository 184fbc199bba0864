"""
Deployment: score held-out rows with a persisted model and explain them.

The pipeline is a strict sequence of phases:

    IDLE -> MODEL_LOADED -> SCORED -> EXPLAINED -> ASSEMBLED -> [PERSISTED] -> DONE

Each phase needs the complete output of the previous one. A missing model
aborts the run before anything is scored or written. A failed write still
leaves the assembled records available through ``get_out_df``.
"""

from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Any

import numpy as np
import pandas as pd
from pandera.errors import SchemaError

from carepredict.config.settings import ModelConfig, ModelType
from carepredict.errors import ConfigurationError, InsufficientDataError, SinkWriteError
from carepredict.modeling.data import DEFAULT_GRAIN_NAME, PreparedData, prepare_deployment
from carepredict.modeling.families import ModelFamilyAdapter, get_adapter
from carepredict.modeling.interpretability import explain_rows
from carepredict.modeling.persistence import ModelArtifacts, load_artifacts
from carepredict.schemas.output import (
    FACTOR_COLUMNS,
    OUTPUT_BINDING_ID,
    OUTPUT_BINDING_NAME,
    build_prediction_schema,
)
from carepredict.sink import DestinationSink
from carepredict.utils.logging import get_logger, log_context

log = get_logger(__name__)


class DeploymentPhase(str, Enum):
    """Named phases of a deployment run."""

    IDLE = "idle"
    MODEL_LOADED = "model_loaded"
    SCORED = "scored"
    EXPLAINED = "explained"
    ASSEMBLED = "assembled"
    PERSISTED = "persisted"
    DONE = "done"


class Deployment:
    """
    Deploy a persisted model against a prepared test partition.

    Works for every model family; family-specific behaviour is limited to
    the adapter's scoring call.

    Args:
        config: Model configuration (same family and type as training).
        sink_factory: Builds the destination sink; replaced in tests.
    """

    def __init__(
        self,
        config: ModelConfig,
        *,
        sink_factory: Callable[[ModelConfig], Any] | None = None,
    ) -> None:
        if config.type == ModelType.MULTICLASS:
            msg = "Deployment supports regression and classification models only"
            raise ConfigurationError(msg)
        self.config = config
        self.adapter: ModelFamilyAdapter = get_adapter(config.family)
        self._sink_factory = sink_factory or (lambda c: DestinationSink(c.sink))
        self.phase = DeploymentPhase.IDLE
        self.artifacts: ModelArtifacts | None = None
        self.predictions: np.ndarray | None = None
        self.contributions: pd.DataFrame | None = None
        self.factors: pd.DataFrame | None = None
        self._out_df: pd.DataFrame | None = None

    def _advance(self, phase: DeploymentPhase) -> None:
        log.debug("Deployment phase", previous=self.phase.value, phase=phase.value)
        self.phase = phase

    @property
    def grain_name(self) -> str:
        """Output column name for grain identifiers."""
        return self.config.grain_col or DEFAULT_GRAIN_NAME

    def deploy(
        self,
        test: pd.DataFrame,
        test_raw: pd.DataFrame,
        test_grain: pd.Series,
    ) -> pd.DataFrame:
        """
        Score, explain and assemble one record per test row.

        Args:
            test: Prepared test rows (features, possibly the predicted column).
            test_raw: Unstandardized feature values for the same rows.
            test_grain: Grain identifiers aligned to ``test``.

        Returns:
            Assembled prediction records.

        Raises:
            ModelNotFoundError: If the persisted artifacts are missing.
            InsufficientDataError: If there are no test rows.
            SinkWriteError: If writing is enabled and the append fails;
                the records are attached to the error.
        """
        if len(test) == 0:
            msg = "No test rows to deploy against"
            raise InsufficientDataError(msg)
        if len(test_grain) != len(test) or len(test_raw) != len(test):
            msg = (
                f"Row counts differ: test={len(test)}, "
                f"raw={len(test_raw)}, grain={len(test_grain)}"
            )
            raise ValueError(msg)

        with log_context(family=self.config.family.value):
            log.info("Starting deployment", n_rows=len(test))
            self._load_model()
            self._score(test)
            self._explain(test_raw)
            self._assemble(test.index, test_grain)
            if self.config.write_to_db:
                self._persist()
            self._advance(DeploymentPhase.DONE)

        log.info("Deployment complete", n_records=len(self._out_df))
        return self.get_out_df()

    def _load_model(self) -> None:
        self.artifacts = load_artifacts(self.config.family, self.config.model_dir)
        trained_type = self.artifacts.metadata.get("type")
        if trained_type is not None and trained_type != self.config.type.value:
            msg = (
                f"Saved model was trained for '{trained_type}', "
                f"deployment is configured for '{self.config.type.value}'"
            )
            raise ConfigurationError(msg)
        self._advance(DeploymentPhase.MODEL_LOADED)

    def _feature_frame(self, test: pd.DataFrame) -> pd.DataFrame:
        """Select the training features from ``test`` by name."""
        expected = self.artifacts.feature_names if self.artifacts else []
        if not expected:
            return test.drop(columns=[self.config.predicted_col], errors="ignore")
        missing = [c for c in expected if c not in test.columns]
        if missing:
            log.warning("Test data is missing training features", columns=missing)
        return test.reindex(columns=expected)

    def _score(self, test: pd.DataFrame) -> None:
        if self.config.is_longitudinal and not self.adapter.supports_unseen_groups:
            msg = f"Family '{self.config.family.value}' cannot score grouped (longitudinal) data"
            raise ConfigurationError(msg)
        X = self._feature_frame(test)
        self.predictions = np.asarray(
            self.adapter.score_primary(self.artifacts.primary, X, self.config),
            dtype=float,
        )
        if self.config.debug:
            log.debug(
                "First predictions",
                n_predictions=len(self.predictions),
                head=np.round(self.predictions[:10], 2).tolist(),
            )
        self._advance(DeploymentPhase.SCORED)

    def _explain(self, test_raw: pd.DataFrame) -> None:
        self.contributions, self.factors = explain_rows(
            self.artifacts.interpretability, test_raw, self.config
        )
        self._advance(DeploymentPhase.EXPLAINED)

    def _assemble(self, index: pd.Index, test_grain: pd.Series) -> None:
        grain = _align(test_grain, index)
        factors = self.factors.reset_index(drop=True)
        n_rows = len(index)

        out = pd.DataFrame({
            "BindingID": np.full(n_rows, OUTPUT_BINDING_ID, dtype=np.int64),
            "BindingNM": pd.Series([OUTPUT_BINDING_NAME] * n_rows, dtype=object),
            "LastLoadDTS": pd.Series([pd.Timestamp(datetime.now())] * n_rows),
            self.grain_name: grain,
            self.config.prediction_col_name: self.predictions,
        })
        for col in FACTOR_COLUMNS:
            out[col] = factors[col].astype(object)

        schema = build_prediction_schema(
            self.grain_name,
            self.config.prediction_col_name,
            probability=self.config.type == ModelType.CLASSIFICATION,
        )
        try:
            out = schema.validate(out)
        except SchemaError as e:
            msg = f"Assembled records failed validation: {e}"
            raise ValueError(msg) from e

        self._out_df = out
        if self.config.debug:
            log.debug("Assembled records", head=out.head(10).astype(str).to_dict(orient="records"))
        self._advance(DeploymentPhase.ASSEMBLED)

    def _persist(self) -> None:
        records = self.get_out_df()
        try:
            with self._sink_factory(self.config) as sink:
                sink.append(records)
        except SinkWriteError as e:
            e.records = records
            log.error("Writing predictions failed", error=str(e), n_records=len(records))
            raise
        self._advance(DeploymentPhase.PERSISTED)

    def get_out_df(self) -> pd.DataFrame | None:
        """Assembled records, available even when writing was skipped or failed."""
        if self._out_df is None:
            return None
        return self._out_df.copy()


def _align(test_grain: pd.Series, index: pd.Index) -> np.ndarray:
    """Grain values in ``index`` order, matched by label where possible."""
    if test_grain.index.equals(index):
        values = test_grain
    elif test_grain.index.is_unique and set(test_grain.index) == set(index):
        values = test_grain.reindex(index)
    else:
        values = test_grain
    return values.astype(object).to_numpy()


def deploy(
    test: pd.DataFrame,
    test_raw: pd.DataFrame,
    test_grain: pd.Series,
    config: ModelConfig,
) -> pd.DataFrame:
    """Convenience wrapper around ``Deployment(config).deploy``."""
    return Deployment(config).deploy(test, test_raw, test_grain)


def run_deployment(raw: pd.DataFrame, config: ModelConfig) -> tuple[pd.DataFrame, PreparedData]:
    """
    Prepare a raw frame and deploy the persisted model against its test rows.

    Returns:
        Tuple of (prediction records, prepared data).
    """
    prepared = prepare_deployment(raw, config)
    records = Deployment(config).deploy(prepared.test, prepared.test_raw, prepared.test_grain)
    return records, prepared
