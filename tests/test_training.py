"""Tests for model training and artifact persistence."""

import json
import multiprocessing
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from carepredict.config.settings import ModelConfig, ModelFamily, ModelType, RandomForestParams
from carepredict.errors import ModelNotFoundError
from carepredict.modeling.data import prepare
from carepredict.modeling.interpretability import INTERCEPT, InterpretabilityModel
from carepredict.modeling.persistence import artifact_paths, load_artifacts
from carepredict.modeling.training import ModelTrainer, labels_from_probabilities, train_model


class TestRandomForestTraining:
    """Tests for the random forest family."""

    def test_classification_artifacts_written(
        self, classification_df: pd.DataFrame, classification_config: ModelConfig
    ) -> None:
        """Training writes primary, interpretability and metadata files."""
        prepared = prepare(classification_df, classification_config)
        fitted = train_model(prepared, classification_config)

        for path in artifact_paths(ModelFamily.RANDOM_FOREST, classification_config.model_dir):
            assert path.exists()

        assert fitted.best_params is not None
        assert "model__max_features" in fitted.best_params
        assert 0.0 <= fitted.test_scores["auc"] <= 1.0
        assert fitted.feature_names == ["SystolicBPNBR", "LDLNBR", "A1CNBR"]

    def test_metadata_contents(
        self, classification_df: pd.DataFrame, classification_config: ModelConfig
    ) -> None:
        """Metadata records the problem type and feature order."""
        prepared = prepare(classification_df, classification_config)
        train_model(prepared, classification_config)
        _, _, metadata_path = artifact_paths(
            ModelFamily.RANDOM_FOREST, classification_config.model_dir
        )
        metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
        assert metadata["family"] == "random_forest"
        assert metadata["type"] == "classification"
        assert metadata["feature_names"] == ["SystolicBPNBR", "LDLNBR", "A1CNBR"]

    def test_reloaded_model_predicts_identically(
        self, classification_df: pd.DataFrame, classification_config: ModelConfig
    ) -> None:
        """Saved and in-process models give the same test predictions."""
        prepared = prepare(classification_df, classification_config)
        fitted = train_model(prepared, classification_config)
        artifacts = load_artifacts(ModelFamily.RANDOM_FOREST, classification_config.model_dir)

        X_test = prepared.test.drop(columns=["Y"])
        reloaded = artifacts.primary.predict_proba(X_test)[:, 1]
        np.testing.assert_array_equal(reloaded, fitted.test_predictions)
        assert isinstance(artifacts.interpretability, InterpretabilityModel)
        assert artifacts.interpretability.coefficients.index[0] == INTERCEPT

    def test_regression_with_categorical_feature(
        self, regression_df: pd.DataFrame, regression_config: ModelConfig
    ) -> None:
        """Regression reports error metrics and encodes categories."""
        prepared = prepare(regression_df, regression_config)
        fitted = train_model(prepared, regression_config)
        assert fitted.test_scores["rmse"] > 0
        assert "GenderFLG[M]" in fitted.interpretability.coefficients.index

    def test_fixed_mtry_skips_search(
        self, classification_df: pd.DataFrame, model_dir: Path
    ) -> None:
        """A fixed mtry means no cross-validated search."""
        config = ModelConfig(
            type=ModelType.CLASSIFICATION,
            predicted_col="Y",
            grain_col="ID",
            random_forest=RandomForestParams(trees=15, mtry=2),
            model_dir=model_dir,
        )
        fitted = ModelTrainer(config).train(prepare(classification_df, config), persist=False)
        assert fitted.best_params is None
        assert fitted.primary.named_steps["model"].max_features == 2
        assert not any(model_dir.iterdir())

    def test_worker_pool(
        self, classification_df: pd.DataFrame, classification_config: ModelConfig
    ) -> None:
        """Training with several cores gives the same search result."""
        prepared = prepare(classification_df, classification_config)
        single = ModelTrainer(classification_config).train(prepared, persist=False)
        parallel_config = classification_config.model_copy(update={"cores": 2})
        parallel = ModelTrainer(parallel_config).train(prepared, persist=False)
        assert parallel.best_params == single.best_params
        np.testing.assert_allclose(parallel.test_predictions, single.test_predictions)

    def test_worker_pool_released(
        self, classification_df: pd.DataFrame, classification_config: ModelConfig
    ) -> None:
        """No worker processes outlive the training call."""
        prepared = prepare(classification_df, classification_config)
        config = classification_config.model_copy(update={"cores": 2})
        ModelTrainer(config).train(prepared, persist=False)
        assert multiprocessing.active_children() == []

    def test_worker_pool_released_on_error(
        self,
        classification_df: pd.DataFrame,
        classification_config: ModelConfig,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A failure after the parallel search still tears the pool down."""

        def fail(*args: object, **kwargs: object) -> None:
            raise RuntimeError("interpretability fit failed")

        monkeypatch.setattr("carepredict.modeling.training.fit_interpretability_model", fail)
        prepared = prepare(classification_df, classification_config)
        config = classification_config.model_copy(update={"cores": 2})
        with pytest.raises(RuntimeError, match="interpretability fit failed"):
            ModelTrainer(config).train(prepared, persist=False)
        assert multiprocessing.active_children() == []

    @pytest.mark.parametrize(
        ("positive", "negative"),
        [(1, 0), (True, False)],
        ids=["integer", "boolean"],
    )
    def test_non_text_binary_outcome(
        self,
        classification_df: pd.DataFrame,
        classification_config: ModelConfig,
        positive: object,
        negative: object,
    ) -> None:
        """Integer and boolean labels train like Y/N labels, positive class second."""
        df = classification_df.assign(
            Y=np.where(classification_df["Y"] == "Y", positive, negative)
        )
        prepared = prepare(df, classification_config)
        fitted = train_model(prepared, classification_config)

        assert list(fitted.primary.classes_) == [negative, positive]
        assert 0.0 <= fitted.test_scores["auc"] <= 1.0
        assert fitted.interpretability.coefficients["A1CNBR"] > 0

    def test_multiclass_not_persisted(
        self, classification_df: pd.DataFrame, classification_config: ModelConfig
    ) -> None:
        """Multiclass models train but have no interpretability artifact."""
        df = classification_df.copy()
        df["Y"] = np.resize(["high", "low", "med"], len(df))
        config = classification_config.model_copy(update={"type": ModelType.MULTICLASS})
        prepared = prepare(df, config)
        fitted = train_model(prepared, config)

        assert fitted.interpretability is None
        assert fitted.test_predictions.shape == (20, 3)
        assert "accuracy" in fitted.test_scores
        with pytest.raises(ModelNotFoundError):
            load_artifacts(ModelFamily.RANDOM_FOREST, config.model_dir)


class TestMixedModelTraining:
    """Tests for the linear mixed model family."""

    def test_longitudinal_training(
        self, longitudinal_df: pd.DataFrame, longitudinal_config: ModelConfig
    ) -> None:
        """The mixed model trains, persists and excludes the person column."""
        prepared = prepare(longitudinal_df, longitudinal_config)
        fitted = train_model(prepared, longitudinal_config)

        for path in artifact_paths(ModelFamily.LINEAR_MIXED_MODEL, longitudinal_config.model_dir):
            assert path.exists()
        assert "PatientID" not in fitted.interpretability.feature_names
        assert fitted.test_scores["r2"] > 0.5


class TestLabelsFromProbabilities:
    """Tests for mapping probabilities back to class names."""

    def test_argmax_label(self) -> None:
        """Each row takes the label of its most probable column."""
        proba = np.array([[0.1, 0.7, 0.2], [0.5, 0.2, 0.3]])
        labels = labels_from_probabilities(proba, ["high", "low", "med"])
        assert labels.tolist() == ["low", "high"]

    def test_width_mismatch(self) -> None:
        """Column count must match the number of classes."""
        with pytest.raises(ValueError):
            labels_from_probabilities(np.zeros((2, 2)), ["a", "b", "c"])


class TestLoadArtifacts:
    """Tests for loading persisted artifacts."""

    def test_missing_artifacts(self, model_dir: Path) -> None:
        """An empty directory is reported as a missing model."""
        with pytest.raises(ModelNotFoundError, match="Run training"):
            load_artifacts(ModelFamily.RANDOM_FOREST, model_dir)
