"""
Model training.

Fits the primary model and the interpretability baseline on the training
partition and persists both. Cross-validated search runs inside a joblib
worker pool scoped to the training call.
"""

import time
from dataclasses import dataclass, field
from typing import Any

import joblib
import numpy as np
import pandas as pd
from joblib.externals.loky import get_reusable_executor
from sklearn.metrics import mean_squared_error, r2_score, roc_auc_score

from carepredict.config.settings import ModelConfig, ModelFamily, ModelType
from carepredict.modeling.data import PreparedData
from carepredict.modeling.families import get_adapter
from carepredict.modeling.interpretability import (
    InterpretabilityModel,
    fit_interpretability_model,
)
from carepredict.modeling.persistence import ModelArtifacts, save_artifacts
from carepredict.utils.cleaning import sorted_levels
from carepredict.utils.logging import get_logger, log_context

log = get_logger(__name__)


@dataclass
class FittedModel:
    """
    Container for a trained model pair with metadata.

    Attributes:
        family: Model family of the primary model.
        primary: Fitted primary predictor.
        interpretability: Interpretability coefficients (None for multiclass).
        feature_names: Input feature names, in training order.
        class_names: Outcome labels for multiclass models.
        best_params: Best hyperparameters (if tuned).
        cv_score: Cross-validated score of the best parameters.
        test_scores: Diagnostic metrics on the test partition.
        test_predictions: In-process predictions for the test partition.
        training_time_s: Total training time in seconds.
    """

    family: ModelFamily
    primary: Any
    interpretability: InterpretabilityModel | None
    feature_names: list[str] = field(default_factory=list)
    class_names: list[object] | None = None
    best_params: dict[str, Any] | None = None
    cv_score: float | None = None
    test_scores: dict[str, float] = field(default_factory=dict)
    test_predictions: np.ndarray | None = None
    training_time_s: float = 0.0


class ModelTrainer:
    """
    Trainer for the primary and interpretability models.

    Handles the worker pool, fitting, diagnostics and persistence.
    """

    def __init__(self, config: ModelConfig) -> None:
        """
        Initialize trainer.

        Args:
            config: Model configuration.
        """
        self.config = config
        self.adapter = get_adapter(config.family)

    def _features(self, frame: pd.DataFrame) -> pd.DataFrame:
        return frame.drop(columns=[self.config.predicted_col])

    def _interpretability_features(self, X: pd.DataFrame) -> pd.DataFrame:
        # The person column is a grouping id, not a feature
        if self.config.person_col is not None and self.config.person_col in X.columns:
            return X.drop(columns=[self.config.person_col])
        return X

    def train(self, prepared: PreparedData, *, persist: bool = True) -> FittedModel:
        """
        Train both models on the training partition.

        Args:
            prepared: Output of ``modeling.data.prepare``.
            persist: Write artifacts to ``config.model_dir``.

        Returns:
            FittedModel with in-process test predictions.
        """
        config = self.config
        X_train = self._features(prepared.train)
        y_train = prepared.train[config.predicted_col]

        log.info(
            "Starting training",
            family=config.family.value,
            n_samples=len(X_train),
            n_features=X_train.shape[1],
            cores=config.cores,
        )

        training_start = time.perf_counter()
        try:
            with log_context(family=config.family.value), joblib.parallel_config(
                backend="loky", n_jobs=config.cores
            ):
                primary_fit = self.adapter.fit_primary(X_train, y_train, config)
                interpretability = None
                if config.type != ModelType.MULTICLASS:
                    interpretability = fit_interpretability_model(
                        self._interpretability_features(X_train), y_train, config
                    )
        finally:
            _release_workers(config.cores)
        training_time_s = time.perf_counter() - training_start

        X_test = self._features(prepared.test)
        test_predictions = self.adapter.score_primary(primary_fit.model, X_test, config)
        test_scores = self._test_scores(
            prepared.test[config.predicted_col], test_predictions, prepared.class_names
        )

        fitted = FittedModel(
            family=config.family,
            primary=primary_fit.model,
            interpretability=interpretability,
            feature_names=primary_fit.feature_names,
            class_names=prepared.class_names,
            best_params=primary_fit.best_params,
            cv_score=primary_fit.cv_score,
            test_scores=test_scores,
            test_predictions=test_predictions,
            training_time_s=training_time_s,
        )

        log.info(
            "Training complete",
            training_time_s=f"{training_time_s:.2f}",
            **{k: f"{v:.4f}" for k, v in test_scores.items()},
        )

        if persist:
            if interpretability is None:
                log.warning("Multiclass model has no interpretability model, not persisting")
            else:
                self.save(fitted)

        return fitted

    def save(self, fitted: FittedModel) -> None:
        """Persist a fitted model pair to the configured model directory."""
        if fitted.interpretability is None:
            msg = "Cannot persist a model without interpretability coefficients"
            raise ValueError(msg)
        metadata = {
            "type": self.config.type.value,
            "predicted_col": self.config.predicted_col,
            "grain_col": self.config.grain_col,
            "person_col": self.config.person_col,
            "feature_names": fitted.feature_names,
            "class_names": fitted.class_names,
            "best_params": fitted.best_params,
            "cv_score": fitted.cv_score,
            "test_scores": fitted.test_scores,
            "xgb_params": self.config.xgb_params,
        }
        save_artifacts(
            ModelArtifacts(
                family=fitted.family,
                primary=fitted.primary,
                interpretability=fitted.interpretability,
                metadata=metadata,
            ),
            self.config.model_dir,
        )

    def _test_scores(
        self,
        y_true: pd.Series,
        predictions: np.ndarray,
        class_names: list[object] | None = None,
    ) -> dict[str, float]:
        """Diagnostic metrics on the held-out partition."""
        scores: dict[str, float] = {}
        known = y_true.notna().to_numpy()
        if not known.any():
            return scores

        if self.config.type == ModelType.CLASSIFICATION:
            labels = y_true[known].astype(object)
            if labels.nunique() == 2:
                positive = sorted_levels(labels)[1]
                scores["auc"] = float(roc_auc_score(labels == positive, predictions[known]))
        elif self.config.type == ModelType.REGRESSION:
            y = y_true[known].astype(float)
            scores["rmse"] = float(np.sqrt(mean_squared_error(y, predictions[known])))
            scores["r2"] = float(r2_score(y, predictions[known]))
        elif class_names:
            predicted = labels_from_probabilities(predictions[known], class_names)
            actual = y_true[known].astype(object).to_numpy()
            scores["accuracy"] = float(np.mean(predicted == actual))
        return scores


def _release_workers(cores: int) -> None:
    """Shut down the loky worker processes started for a parallel search."""
    if cores <= 1:
        return
    get_reusable_executor().shutdown(wait=True)
    log.debug("Released worker pool", cores=cores)


def labels_from_probabilities(
    probabilities: np.ndarray, class_names: list[object]
) -> np.ndarray:
    """Map each row's most probable class index back to its label."""
    if probabilities.shape[1] != len(class_names):
        msg = (
            f"Got {probabilities.shape[1]} probability columns "
            f"for {len(class_names)} classes"
        )
        raise ValueError(msg)
    return np.asarray(class_names, dtype=object)[np.argmax(probabilities, axis=1)]


def train_model(prepared: PreparedData, config: ModelConfig) -> FittedModel:
    """
    Convenience function: train and persist a model pair.

    Args:
        prepared: Output of ``modeling.data.prepare``.
        config: Model configuration.

    Returns:
        Fitted model pair (also written to ``config.model_dir``).
    """
    return ModelTrainer(config).train(prepared)
