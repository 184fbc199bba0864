"""
Carepredict: supervised model training and deployment for healthcare data.

This package trains random forest and linear mixed models on tabular data,
persists them, and later scores new rows with per-row ranked explanations
that can be appended to a relational table.
"""

from importlib.metadata import version

__version__ = version("carepredict")

__all__ = ["__version__"]
