"""Pytest configuration and shared fixtures."""

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from carepredict.config.settings import (
    ModelConfig,
    ModelFamily,
    ModelType,
    RandomForestParams,
)

FEATURES = ["SystolicBPNBR", "LDLNBR", "A1CNBR"]


@pytest.fixture
def classification_df() -> pd.DataFrame:
    """100 encounters with an ID grain, a Y/N label and three numeric features."""
    rng = np.random.default_rng(7)
    n = 100
    df = pd.DataFrame(
        {
            "ID": np.arange(1, n + 1),
            "SystolicBPNBR": rng.normal(130, 15, n).round(1),
            "LDLNBR": rng.normal(110, 30, n).round(1),
            "A1CNBR": rng.normal(6.5, 1.2, n).round(2),
        }
    )
    # 30 positives, 70 negatives
    risk = df["A1CNBR"] + rng.normal(0, 0.5, n)
    positives = risk.rank(method="first", ascending=False) <= 30
    df["Y"] = np.where(positives, "Y", "N")
    return df


@pytest.fixture
def regression_df() -> pd.DataFrame:
    """100 encounters with a continuous outcome and mixed feature types."""
    rng = np.random.default_rng(11)
    n = 100
    df = pd.DataFrame(
        {
            "ID": np.arange(1, n + 1),
            "SystolicBPNBR": rng.normal(130, 15, n).round(1),
            "LDLNBR": rng.normal(110, 30, n).round(1),
            "GenderFLG": rng.choice(["F", "M"], n),
        }
    )
    df["A1CNBR"] = (
        4.0
        + 0.01 * df["SystolicBPNBR"]
        + 0.005 * df["LDLNBR"]
        + np.where(df["GenderFLG"] == "M", 0.4, 0.0)
        + rng.normal(0, 0.3, n)
    )
    return df


@pytest.fixture
def longitudinal_df() -> pd.DataFrame:
    """20 patients with 5 encounters each and a continuous outcome."""
    rng = np.random.default_rng(3)
    patients = [f"P{i:02d}" for i in range(20)]
    person = np.repeat(patients, 5)
    n = len(person)
    patient_effect = dict(zip(patients, rng.normal(0, 0.8, len(patients)), strict=True))
    df = pd.DataFrame(
        {
            "EncounterID": np.arange(1001, 1001 + n),
            "PatientID": person,
            "Age": rng.integers(30, 80, n).astype(float),
            "LDLNBR": rng.normal(110, 30, n).round(1),
            "BMI": rng.normal(28, 4, n).round(1),
        }
    )
    df["A1CNBR"] = (
        3.0
        + 0.03 * df["Age"]
        + 0.004 * df["LDLNBR"]
        + 0.05 * df["BMI"]
        + df["PatientID"].map(patient_effect)
        + rng.normal(0, 0.2, n)
    )
    return df


@pytest.fixture
def model_dir(tmp_path: Path) -> Path:
    """Empty directory for model artifacts."""
    path = tmp_path / "models"
    path.mkdir()
    return path


@pytest.fixture
def fast_forest() -> RandomForestParams:
    """Small forest so tests stay quick."""
    return RandomForestParams(trees=25, cv_folds=3)


@pytest.fixture
def classification_config(model_dir: Path, fast_forest: RandomForestParams) -> ModelConfig:
    """Classification config for ``classification_df``."""
    return ModelConfig(
        type=ModelType.CLASSIFICATION,
        predicted_col="Y",
        grain_col="ID",
        random_forest=fast_forest,
        model_dir=model_dir,
    )


@pytest.fixture
def regression_config(model_dir: Path, fast_forest: RandomForestParams) -> ModelConfig:
    """Regression config for ``regression_df``."""
    return ModelConfig(
        type=ModelType.REGRESSION,
        predicted_col="A1CNBR",
        grain_col="ID",
        random_forest=fast_forest,
        model_dir=model_dir,
    )


@pytest.fixture
def longitudinal_config(model_dir: Path) -> ModelConfig:
    """Linear mixed model config for ``longitudinal_df``."""
    return ModelConfig(
        type=ModelType.REGRESSION,
        predicted_col="A1CNBR",
        grain_col="EncounterID",
        person_col="PatientID",
        family=ModelFamily.LINEAR_MIXED_MODEL,
        model_dir=model_dir,
    )
