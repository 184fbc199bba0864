"""
Linear interpretability model and per-row factor ranking.

A plain logistic (classification) or linear (regression) model is fitted
next to the primary model, purely to obtain one coefficient per feature.
At deployment each row's raw feature values are multiplied by those
coefficients and the features are ranked by the product. The result is a
local explanation: every row gets its own ordering.

Alignment between raw values and coefficients is always by name.
"""

from collections.abc import Iterable
from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression, LogisticRegression

from carepredict.config.settings import ModelConfig, ModelType
from carepredict.errors import ConfigurationError
from carepredict.modeling.preprocessing import DesignEncoder
from carepredict.schemas.output import FACTOR_COLUMNS
from carepredict.utils.cleaning import class_labels
from carepredict.utils.logging import get_logger

log = get_logger(__name__)

INTERCEPT = "(Intercept)"


@dataclass
class InterpretabilityModel:
    """
    Fitted coefficients of the interpretability baseline.

    Attributes:
        coefficients: Intercept first, then one entry per design column.
        encoder: Design encoder fitted on the training features.
        model_type: Problem type the baseline was fitted for.
    """

    coefficients: pd.Series
    encoder: DesignEncoder
    model_type: ModelType

    @property
    def feature_names(self) -> list[str]:
        """Source features covered by the coefficients."""
        return self.encoder.features


def fit_interpretability_model(
    X: pd.DataFrame,
    y: pd.Series,
    config: ModelConfig,
) -> InterpretabilityModel:
    """
    Fit the additive baseline used only for ranking features.

    Args:
        X: Training features (unencoded, unscaled). The person column, if
            any, must already be removed.
        y: Training outcome.
        config: Model configuration.

    Returns:
        InterpretabilityModel with named coefficients.

    Raises:
        ConfigurationError: For multiclass outcomes.
    """
    if config.type == ModelType.MULTICLASS:
        msg = "Interpretability coefficients are not defined for multiclass models"
        raise ConfigurationError(msg)

    encoder = DesignEncoder()
    design = encoder.fit_transform(X)

    if config.type == ModelType.CLASSIFICATION:
        estimator = LogisticRegression(max_iter=1000)
        estimator.fit(design, class_labels(y))
        slopes = estimator.coef_[0]
        intercept = float(estimator.intercept_[0])
    else:
        estimator = LinearRegression()
        estimator.fit(design, y.astype(float))
        slopes = estimator.coef_
        intercept = float(estimator.intercept_)

    coefficients = pd.Series(
        [intercept, *slopes],
        index=[INTERCEPT, *design.columns],
        dtype=float,
    )

    if config.debug:
        log.debug(
            "Interpretability coefficients",
            coefficients={k: round(v, 4) for k, v in coefficients.items()},
        )

    log.info(
        "Fitted interpretability model",
        estimator=type(estimator).__name__,
        n_coefficients=len(coefficients) - 1,
    )
    return InterpretabilityModel(
        coefficients=coefficients,
        encoder=encoder,
        model_type=config.type,
    )


def slope_coefficients(
    model: InterpretabilityModel,
    *,
    exclude_features: Iterable[str] = (),
) -> pd.Series:
    """
    Coefficients without the intercept (first element).

    Args:
        model: Fitted interpretability model.
        exclude_features: Source features whose coefficients are dropped.

    Returns:
        Series indexed by design column.
    """
    slopes = model.coefficients.iloc[1:]
    excluded = set(exclude_features)
    if excluded:
        keep = [
            name
            for name in slopes.index
            if model.encoder.source_feature(name) not in excluded
        ]
        slopes = slopes.loc[keep]
    return slopes


def contribution_matrix(
    raw: pd.DataFrame,
    slopes: pd.Series,
    encoder: DesignEncoder,
) -> pd.DataFrame:
    """
    Per-row, per-feature contribution scores (raw value x coefficient).

    Columns follow ``raw``'s column order and include only features that
    have at least one coefficient in ``slopes``. A categorical feature
    contributes the coefficient of the row's level (zero for the
    reference level or an unseen level).

    Args:
        raw: Unstandardized feature values, one row per test row.
        slopes: Coefficients keyed by design column name.
        encoder: Encoder mapping design columns to source features.

    Returns:
        DataFrame with the same index as ``raw``.
    """
    contributions: dict[str, np.ndarray] = {}
    for col in raw.columns:
        if col in encoder.numeric and col in slopes.index:
            values = pd.to_numeric(raw[col], errors="coerce").to_numpy(dtype=float)
            contributions[col] = values * slopes[col]
        elif col in encoder.categorical:
            level_coefs = {
                level: slopes[name]
                for name, (feature, level) in encoder.dummies.items()
                if feature == col and name in slopes.index
            }
            if not level_coefs:
                continue
            levels = raw[col].astype(object)
            contributions[col] = (
                levels.map(level_coefs).fillna(0.0).to_numpy(dtype=float)
            )
        else:
            log.debug("No coefficient for column, skipping", column=col)

    return pd.DataFrame(contributions, index=raw.index)


def rank_factors(contributions: pd.DataFrame, top_n: int = 3) -> pd.DataFrame:
    """
    Rank features per row by descending contribution.

    Ties keep the original column order (stable sort). Missing scores sort
    last. Rows with fewer than ``top_n`` features are padded with None.

    Args:
        contributions: Output of ``contribution_matrix``.
        top_n: Number of factors to keep.

    Returns:
        DataFrame with ``Factor1TXT`` .. ``Factor{top_n}TXT`` columns.
    """
    names = np.asarray(contributions.columns, dtype=object)
    scores = contributions.to_numpy(dtype=float)
    n_rows = len(contributions)

    if scores.shape[1] == 0:
        ordered = np.empty((n_rows, 0), dtype=object)
    else:
        # Stable descending order: argsort of negated scores, NaN stays last
        order = np.argsort(-scores, axis=1, kind="stable")
        ordered = names[order]

    columns = [f"Factor{i + 1}TXT" for i in range(top_n)]
    top = np.full((n_rows, top_n), None, dtype=object)
    width = min(top_n, ordered.shape[1])
    top[:, :width] = ordered[:, :width]

    return pd.DataFrame(top, index=contributions.index, columns=columns)


def explain_rows(
    model: InterpretabilityModel,
    raw: pd.DataFrame,
    config: ModelConfig,
    top_n: int = len(FACTOR_COLUMNS),
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """
    Local explanation for every row of ``raw``.

    Drops the intercept, drops the grain coefficient for longitudinal
    models, removes the predicted column from ``raw``, multiplies values by
    coefficients and keeps the top ``top_n`` feature names per row.

    Returns:
        Tuple of (contribution matrix, ranked factor names).
    """
    exclude = []
    if config.person_col is not None and config.grain_col is not None:
        exclude.append(config.grain_col)
    slopes = slope_coefficients(model, exclude_features=exclude)

    drop = [c for c in (config.predicted_col, config.person_col) if c is not None]
    features = raw.drop(columns=[c for c in drop if c in raw.columns])
    features = features.drop(columns=[c for c in exclude if c in features.columns])

    contributions = contribution_matrix(features, slopes, model.encoder)
    factors = rank_factors(contributions, top_n=top_n)

    if config.debug:
        log.debug(
            "Contribution scores (first rows)",
            head=contributions.head(10).round(3).to_dict(orient="records"),
        )
        log.debug(
            "Ranked factors (first rows)",
            head=factors.head(10).to_dict(orient="records"),
        )

    return contributions, factors
