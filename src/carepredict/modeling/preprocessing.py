"""
Preprocessing construction.

Two encodings are used downstream:
- a scikit-learn ColumnTransformer inside the random forest pipeline, and
- a DesignEncoder producing an explicit numeric design matrix with
  named dummy columns, used by the linear interpretability model and the
  mixed-effects model.

Both capture the factor levels seen at training time and are pickled with
the fitted model, so new data is encoded the same way at deployment.
"""

from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd
from sklearn.compose import ColumnTransformer
from sklearn.impute import SimpleImputer
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import FunctionTransformer, OneHotEncoder

from carepredict.utils.cleaning import is_categorical, sorted_levels
from carepredict.utils.logging import get_logger

log = get_logger(__name__)


def split_feature_types(X: pd.DataFrame) -> tuple[list[str], list[str]]:
    """Return (numeric, categorical) feature names in column order."""
    numeric = [col for col in X.columns if not is_categorical(X[col])]
    categorical = [col for col in X.columns if col not in numeric]
    return numeric, categorical


def _to_object(X: Any) -> Any:
    """Cast categorical frames to object so imputers and encoders accept them."""
    if isinstance(X, pd.DataFrame):
        return X.astype(object)
    return X


def build_preprocessor(
    numeric_features: list[str],
    categorical_features: list[str],
) -> ColumnTransformer:
    """
    Build the ColumnTransformer used ahead of tree ensembles.

    Numeric columns are mean-imputed and passed through unscaled.
    Categorical columns are mode-imputed and one-hot encoded; levels not
    seen during training encode to all zeros.

    Args:
        numeric_features: Numeric column names.
        categorical_features: Categorical column names.

    Returns:
        Unfitted ColumnTransformer.
    """
    transformers: list[tuple[str, Any, list[str]]] = []

    if numeric_features:
        transformers.append((
            "numeric",
            SimpleImputer(strategy="mean"),
            numeric_features,
        ))

    if categorical_features:
        transformers.append((
            "categorical",
            Pipeline(
                steps=[
                    ("as_object", FunctionTransformer(_to_object)),
                    ("impute", SimpleImputer(strategy="most_frequent")),
                    (
                        "onehot",
                        OneHotEncoder(handle_unknown="ignore", sparse_output=False),
                    ),
                ]
            ),
            categorical_features,
        ))

    preprocessor = ColumnTransformer(transformers=transformers, remainder="drop")

    log.debug(
        "Built preprocessor",
        numeric=numeric_features,
        categorical=categorical_features,
    )
    return preprocessor


@dataclass
class DesignEncoder:
    """
    Numeric design-matrix encoder with stable, named columns.

    Numeric features pass through (missing values filled with the training
    mean). Each categorical feature expands to one indicator per level
    except the first (reference) level, named ``{feature}[{level}]``.

    Attributes:
        numeric: Numeric feature names.
        categorical: Categorical feature name -> training levels (sorted).
        means: Training means of numeric features.
        dummies: Indicator column name -> (feature, level).
    """

    numeric: list[str] = field(default_factory=list)
    categorical: dict[str, list[Any]] = field(default_factory=dict)
    means: dict[str, float] = field(default_factory=dict)
    dummies: dict[str, tuple[str, Any]] = field(default_factory=dict)

    @property
    def columns(self) -> list[str]:
        """Design matrix column names, in output order."""
        return [*self.numeric, *self.dummies]

    @property
    def features(self) -> list[str]:
        """Source feature names the encoder was fitted on."""
        return [*self.numeric, *self.categorical]

    def fit(self, X: pd.DataFrame) -> "DesignEncoder":
        """Record feature types, means and factor levels."""
        numeric, categorical = split_feature_types(X)
        self.numeric = numeric
        self.means = {col: float(X[col].astype(float).mean()) for col in numeric}
        self.categorical = {}
        self.dummies = {}
        for col in categorical:
            levels = sorted_levels(X[col])
            self.categorical[col] = levels
            for level in levels[1:]:
                self.dummies[f"{col}[{level}]"] = (col, level)
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """Encode ``X`` into the fitted design columns (float)."""
        out: dict[str, np.ndarray] = {}
        for col in self.numeric:
            if col in X.columns:
                values = X[col].astype(float).fillna(self.means[col])
                out[col] = values.to_numpy()
            else:
                out[col] = np.full(len(X), self.means[col])
        for name, (col, level) in self.dummies.items():
            if col in X.columns:
                out[name] = (X[col].astype(object) == level).to_numpy(dtype=float)
            else:
                out[name] = np.zeros(len(X))
        return pd.DataFrame(out, index=X.index, columns=self.columns)

    def fit_transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """Fit then transform."""
        return self.fit(X).transform(X)

    def source_feature(self, column: str) -> str:
        """Map a design column back to the feature it was derived from."""
        if column in self.dummies:
            return self.dummies[column][0]
        return column
