"""
Exception hierarchy for the training and deployment pipeline.

Every fatal condition the pipeline can hit has its own type so that callers
can tell a bad configuration apart from missing data or a failed write.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import pandas as pd


class CarePredictError(Exception):
    """Base class for all carepredict errors."""


class ConfigurationError(CarePredictError, ValueError):
    """Configuration conflicts with itself or with the data it is applied to."""


class InsufficientDataError(CarePredictError):
    """A partition is empty after cleaning and splitting."""


class ModelNotFoundError(CarePredictError, FileNotFoundError):
    """A persisted model artifact is missing or unreadable."""


class SinkWriteError(CarePredictError):
    """
    Appending records to the destination table failed.

    The assembled records are attached so that computed predictions
    survive the failed write.
    """

    def __init__(self, message: str, records: "pd.DataFrame | None" = None) -> None:
        super().__init__(message)
        self.records = records
