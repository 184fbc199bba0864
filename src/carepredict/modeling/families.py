"""
Model family adapters.

Training and deployment are written once against the small
``ModelFamilyAdapter`` capability interface. Each family supplies how to
fit the primary predictor, how to score it and whether it tolerates
grouping values that were not seen during training.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator
from sklearn.ensemble import RandomForestClassifier, RandomForestRegressor
from sklearn.model_selection import GridSearchCV, KFold, StratifiedKFold
from sklearn.pipeline import Pipeline

from carepredict.config.settings import ModelConfig, ModelFamily, ModelType
from carepredict.errors import ConfigurationError
from carepredict.modeling.mixed import MixedEffectsModel
from carepredict.modeling.preprocessing import build_preprocessor, split_feature_types
from carepredict.utils.cleaning import class_labels
from carepredict.utils.logging import get_logger

log = get_logger(__name__)

# Candidate-features-per-split values searched when mtry is not fixed
MAX_FEATURES_GRID: list[Any] = ["sqrt", "log2", None]

SCORING: dict[ModelType, str] = {
    ModelType.CLASSIFICATION: "roc_auc",
    ModelType.MULTICLASS: "accuracy",
    ModelType.REGRESSION: "neg_root_mean_squared_error",
}


@dataclass
class PrimaryFit:
    """
    Result of fitting a primary model.

    Attributes:
        model: Fitted estimator exposing ``predict`` (and ``predict_proba``
            for classification).
        best_params: Hyperparameters chosen by cross-validation, if any.
        cv_score: Mean cross-validated score of the chosen parameters.
        feature_names: Input columns the model expects, in order.
    """

    model: Any
    best_params: dict[str, Any] | None = None
    cv_score: float | None = None
    feature_names: list[str] = field(default_factory=list)


class ModelFamilyAdapter(Protocol):
    """Capabilities a model family provides to training and deployment."""

    family: ModelFamily
    supports_unseen_groups: bool

    def fit_primary(self, X: pd.DataFrame, y: pd.Series, config: ModelConfig) -> PrimaryFit:
        """Fit the primary predictor on training features and outcome."""
        ...

    def score_primary(self, model: Any, X: pd.DataFrame, config: ModelConfig) -> np.ndarray:
        """Positive-class probability (classification) or estimate (regression)."""
        ...


def _positive_class_probability(model: Any, X: pd.DataFrame) -> np.ndarray:
    proba = model.predict_proba(X)
    if proba.shape[1] != 2:
        msg = f"Expected two class-probability columns, got {proba.shape[1]}"
        raise ConfigurationError(msg)
    # Second column is the positive class of the sorted two-class ordering
    return proba[:, 1]


def _cv_splitter(
    y: pd.Series | np.ndarray, config: ModelConfig
) -> KFold | StratifiedKFold | None:
    folds = config.random_forest.cv_folds
    if config.type == ModelType.REGRESSION:
        n_splits = min(folds, len(y))
        if n_splits < 2:
            return None
        return KFold(n_splits=n_splits, shuffle=True, random_state=config.random_state)

    n_splits = min(folds, int(pd.Series(y).value_counts().min()))
    if n_splits < 2:
        return None
    return StratifiedKFold(n_splits=n_splits, shuffle=True, random_state=config.random_state)


class RandomForestAdapter:
    """Random forest classifier/regressor behind a preprocessing pipeline."""

    family = ModelFamily.RANDOM_FOREST
    supports_unseen_groups = False

    def _build_pipeline(self, X: pd.DataFrame, config: ModelConfig) -> Pipeline:
        numeric, categorical = split_feature_types(X)
        params = config.random_forest
        model_cls: type[BaseEstimator] = (
            RandomForestRegressor
            if config.type == ModelType.REGRESSION
            else RandomForestClassifier
        )
        max_features: Any = "sqrt"
        if params.mtry is not None:
            max_features = min(params.mtry, X.shape[1])
        elif config.type == ModelType.REGRESSION:
            max_features = 1.0

        model = model_cls(
            n_estimators=params.trees,
            max_features=max_features,
            random_state=config.random_state,
        )
        return Pipeline(
            steps=[
                ("preprocessor", build_preprocessor(numeric, categorical)),
                ("model", model),
            ]
        )

    def fit_primary(self, X: pd.DataFrame, y: pd.Series, config: ModelConfig) -> PrimaryFit:
        """
        Fit the forest, choosing ``max_features`` by cross-validation.

        The search runs with ``n_jobs=None`` so it uses whatever joblib
        worker pool the caller has configured.
        """
        pipeline = self._build_pipeline(X, config)
        target = class_labels(y) if config.type != ModelType.REGRESSION else y.astype(float)
        cv = _cv_splitter(target, config)

        if config.random_forest.tune and config.random_forest.mtry is None and cv is not None:
            search = GridSearchCV(
                pipeline,
                param_grid={"model__max_features": MAX_FEATURES_GRID},
                cv=cv,
                scoring=SCORING[config.type],
                refit=True,
            )
            search.fit(X, target)
            log.info(
                "Hyperparameter search complete",
                best_params=search.best_params_,
                cv_score=f"{search.best_score_:.4f}",
            )
            return PrimaryFit(
                model=search.best_estimator_,
                best_params=search.best_params_,
                cv_score=float(search.best_score_),
                feature_names=list(X.columns),
            )

        pipeline.fit(X, target)
        return PrimaryFit(model=pipeline, feature_names=list(X.columns))

    def score_primary(self, model: Any, X: pd.DataFrame, config: ModelConfig) -> np.ndarray:
        """Score with the fitted pipeline."""
        if config.type == ModelType.CLASSIFICATION:
            return _positive_class_probability(model, X)
        if config.type == ModelType.MULTICLASS:
            return model.predict_proba(X)
        return np.asarray(model.predict(X), dtype=float)


class LinearMixedModelAdapter:
    """Random-intercept mixed model over the configured person column."""

    family = ModelFamily.LINEAR_MIXED_MODEL
    supports_unseen_groups = True

    def fit_primary(self, X: pd.DataFrame, y: pd.Series, config: ModelConfig) -> PrimaryFit:
        """Fit the mixed model with one random intercept per person."""
        if config.type == ModelType.MULTICLASS:
            msg = "linear_mixed_model does not support multiclass outcomes"
            raise ConfigurationError(msg)
        if config.person_col is None or config.person_col not in X.columns:
            msg = "linear_mixed_model requires the person column among the features"
            raise ConfigurationError(msg)

        model = MixedEffectsModel(
            config.person_col,
            binary=config.type == ModelType.CLASSIFICATION,
            max_iter=config.mixed_model.max_iter,
            reml=config.mixed_model.reml,
        )
        model.fit(X, y)
        return PrimaryFit(model=model, feature_names=list(X.columns))

    def score_primary(self, model: Any, X: pd.DataFrame, config: ModelConfig) -> np.ndarray:
        """Score, allowing person values that were not seen in training."""
        unseen = model.unseen_groups(X)
        if unseen:
            log.info("Scoring rows with unseen groups", n_rows=unseen)
        if config.type == ModelType.CLASSIFICATION:
            return _positive_class_probability(model, X)
        return np.asarray(model.predict(X), dtype=float)


ADAPTERS: dict[ModelFamily, ModelFamilyAdapter] = {
    ModelFamily.RANDOM_FOREST: RandomForestAdapter(),
    ModelFamily.LINEAR_MIXED_MODEL: LinearMixedModelAdapter(),
}


def get_adapter(family: ModelFamily) -> ModelFamilyAdapter:
    """
    Get the adapter for a model family.

    Raises:
        KeyError: If the family has no adapter.
    """
    if family not in ADAPTERS:
        available = ", ".join(f.value for f in ADAPTERS)
        msg = f"Unknown model family '{family}'. Available: {available}"
        raise KeyError(msg)
    return ADAPTERS[family]
