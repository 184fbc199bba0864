"""
Random-intercept mixed-effects model for longitudinal data.

Wraps statsmodels behind a small fit/predict estimator. Only the fitted
fixed effects, the per-group random intercepts and the design encoder are
kept, so the fitted object pickles cleanly and does not depend on the
statsmodels results class at load time.

Groups not seen during fitting get a random intercept of zero, i.e. they
are scored with the population-level fixed effects.
"""

import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.genmod.bayes_mixed_glm import BinomialBayesMixedGLM

from carepredict.modeling.preprocessing import DesignEncoder
from carepredict.utils.cleaning import sorted_levels
from carepredict.utils.logging import get_logger

log = get_logger(__name__)

CONSTANT = "const"


def _expit(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-x))


class MixedEffectsModel:
    """
    Gaussian or binomial mixed model with a random intercept per group.

    Args:
        group_col: Column identifying repeated-measures groups.
        binary: Fit a logistic (binomial) model instead of a linear one.
        max_iter: Optimizer iteration cap.
        reml: Use REML for the Gaussian model.
    """

    def __init__(
        self,
        group_col: str,
        *,
        binary: bool = False,
        max_iter: int = 200,
        reml: bool = True,
    ) -> None:
        self.group_col = group_col
        self.binary = binary
        self.max_iter = max_iter
        self.reml = reml

    def _design(self, X: pd.DataFrame) -> pd.DataFrame:
        design = self.encoder_.transform(X.drop(columns=[self.group_col]))
        design.insert(0, CONSTANT, 1.0)
        return design

    def fit(self, X: pd.DataFrame, y: pd.Series) -> "MixedEffectsModel":
        """
        Fit on features ``X`` (including the group column) and outcome ``y``.

        For the binomial model ``y`` must be two-valued; the second sorted
        level is the positive class.
        """
        groups = X[self.group_col].astype(str)
        self.encoder_ = DesignEncoder().fit(X.drop(columns=[self.group_col]))
        design = self._design(X)

        if self.binary:
            self.classes_ = np.array(sorted_levels(y), dtype=object)
            endog = (y.astype(object) == self.classes_[-1]).astype(float).to_numpy()
            indicators = pd.get_dummies(groups, dtype=float)
            model = BinomialBayesMixedGLM(
                endog,
                design.to_numpy(),
                indicators.to_numpy(),
                np.zeros(indicators.shape[1], dtype=int),
                fep_names=list(design.columns),
            )
            result = model.fit_vb(minim_opts={"maxiter": self.max_iter})
            self.fe_params_ = pd.Series(result.fe_mean, index=design.columns)
            self.random_effects_ = dict(
                zip(indicators.columns, np.asarray(result.vc_mean, dtype=float), strict=True)
            )
        else:
            model = sm.MixedLM(
                y.astype(float).to_numpy(),
                design,
                groups=groups.to_numpy(),
            )
            result = model.fit(reml=self.reml, maxiter=self.max_iter)
            self.fe_params_ = pd.Series(
                np.asarray(result.fe_params, dtype=float), index=design.columns
            )
            self.random_effects_ = {
                str(group): float(np.asarray(effect)[0])
                for group, effect in result.random_effects.items()
            }

        log.debug(
            "Fitted mixed model",
            binary=self.binary,
            n_groups=len(self.random_effects_),
            n_fixed_effects=len(self.fe_params_),
        )
        return self

    def _linear_predictor(self, X: pd.DataFrame) -> np.ndarray:
        design = self._design(X)
        fixed = design.to_numpy() @ self.fe_params_.reindex(design.columns).to_numpy()
        groups = X[self.group_col].astype(str)
        random = groups.map(self.random_effects_).fillna(0.0).to_numpy(dtype=float)
        return fixed + random

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        """Response-scale predictions. Unseen groups use fixed effects only."""
        eta = self._linear_predictor(X)
        return _expit(eta) if self.binary else eta

    def predict_proba(self, X: pd.DataFrame) -> np.ndarray:
        """Two-column class probabilities, positive class second."""
        if not self.binary:
            msg = "predict_proba is only available for binary mixed models"
            raise AttributeError(msg)
        p = _expit(self._linear_predictor(X))
        return np.column_stack([1.0 - p, p])

    def unseen_groups(self, X: pd.DataFrame) -> int:
        """Number of rows whose group was not present during fitting."""
        groups = X[self.group_col].astype(str)
        return int((~groups.isin(list(self.random_effects_))).sum())
