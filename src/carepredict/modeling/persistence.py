"""
Model artifact persistence (save/load).

Each model family owns three files in the model directory:
    - {family}_primary.joblib: fitted primary predictor
    - {family}_interpretability.joblib: interpretability coefficients
    - {family}_metadata.json: human-readable training metadata

Both joblib artifacts carry the fitted encoders, so factor levels seen at
training time are reused verbatim when new data is scored.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import joblib

from carepredict.config.settings import ModelFamily
from carepredict.errors import ModelNotFoundError
from carepredict.modeling.interpretability import InterpretabilityModel
from carepredict.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class ModelArtifacts:
    """
    Everything deployment needs from a training run.

    Attributes:
        family: Model family the artifacts belong to.
        primary: Fitted primary predictor.
        interpretability: Fitted interpretability coefficients.
        metadata: Contents of the metadata JSON (empty if absent).
    """

    family: ModelFamily
    primary: Any
    interpretability: InterpretabilityModel
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def feature_names(self) -> list[str]:
        """Feature columns the primary model was trained on."""
        return list(self.metadata.get("feature_names", []))


def artifact_paths(family: ModelFamily, model_dir: Path) -> tuple[Path, Path, Path]:
    """Return (primary, interpretability, metadata) paths for a family."""
    model_dir = Path(model_dir)
    return (
        model_dir / f"{family.value}_primary.joblib",
        model_dir / f"{family.value}_interpretability.joblib",
        model_dir / f"{family.value}_metadata.json",
    )


def save_artifacts(
    artifacts: ModelArtifacts,
    model_dir: Path,
) -> tuple[Path, Path]:
    """
    Save both fitted artifacts and their metadata.

    Args:
        artifacts: Fitted models and metadata.
        model_dir: Target directory (created if missing).

    Returns:
        Tuple of (primary_path, interpretability_path).
    """
    primary_path, interp_path, metadata_path = artifact_paths(artifacts.family, model_dir)
    primary_path.parent.mkdir(parents=True, exist_ok=True)

    joblib.dump(artifacts.primary, primary_path)
    log.info("Saved primary model", path=str(primary_path))

    joblib.dump(artifacts.interpretability, interp_path)
    log.info("Saved interpretability model", path=str(interp_path))

    metadata = {
        "family": artifacts.family.value,
        "saved_at": datetime.now().isoformat(timespec="seconds"),
        **artifacts.metadata,
    }
    with open(metadata_path, "w", encoding="utf-8") as f:
        json.dump(metadata, f, indent=2, default=str)
    log.info("Saved model metadata", path=str(metadata_path))

    return primary_path, interp_path


def load_artifacts(family: ModelFamily, model_dir: Path) -> ModelArtifacts:
    """
    Load both fitted artifacts for a family.

    Args:
        family: Model family to load.
        model_dir: Directory written by training.

    Returns:
        ModelArtifacts ready for scoring.

    Raises:
        ModelNotFoundError: If either artifact is missing or cannot be read.
    """
    primary_path, interp_path, metadata_path = artifact_paths(family, model_dir)

    for path in (interp_path, primary_path):
        if not path.exists():
            msg = (
                f"Saved model not found: {path}. Run training for family "
                f"'{family.value}' to create and save the model, then deploy."
            )
            raise ModelNotFoundError(msg)

    try:
        interpretability = joblib.load(interp_path)
        primary = joblib.load(primary_path)
    except Exception as e:
        msg = (
            f"Could not load saved model from {Path(model_dir)}: {e}. "
            "Re-run training to recreate the artifacts."
        )
        raise ModelNotFoundError(msg) from e

    if not isinstance(interpretability, InterpretabilityModel):
        msg = f"{interp_path} does not hold interpretability coefficients"
        raise ModelNotFoundError(msg)

    metadata: dict[str, Any] = {}
    if metadata_path.exists():
        with open(metadata_path, encoding="utf-8") as f:
            metadata = json.load(f)
    else:
        log.warning("Model metadata not found", path=str(metadata_path))

    log.info("Loaded model artifacts", family=family.value, model_dir=str(model_dir))
    return ModelArtifacts(
        family=family,
        primary=primary,
        interpretability=interpretability,
        metadata=metadata,
    )
