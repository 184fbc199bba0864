"""
Modeling layer: data preparation, training and deployment.

Training and deployment share one configuration and one capability
interface per model family, so both model families run through the same
pipeline.
"""

from carepredict.modeling.data import PreparedData, prepare, prepare_deployment
from carepredict.modeling.deployment import (
    Deployment,
    DeploymentPhase,
    deploy,
    run_deployment,
)
from carepredict.modeling.training import FittedModel, ModelTrainer, train_model

__all__ = [
    "Deployment",
    "DeploymentPhase",
    "FittedModel",
    "ModelTrainer",
    "PreparedData",
    "deploy",
    "prepare",
    "prepare_deployment",
    "run_deployment",
    "train_model",
]
