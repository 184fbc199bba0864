"""
Configuration management with typed Pydantic models.

One frozen ModelConfig drives preparation, training and deployment.
"""

from carepredict.config.loader import build_config, load_config
from carepredict.config.settings import (
    MixedModelParams,
    ModelConfig,
    ModelFamily,
    ModelType,
    RandomForestParams,
    SinkConfig,
)

__all__ = [
    "MixedModelParams",
    "ModelConfig",
    "ModelFamily",
    "ModelType",
    "RandomForestParams",
    "SinkConfig",
    "build_config",
    "load_config",
]
