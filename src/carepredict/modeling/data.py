"""
Data preparation: cleaning, imputation and train/test partitioning.

Turns a raw source frame into train and test partitions plus the grain
identifiers of the test rows, aligned to the test partition's row order.
The same cleaning steps run for training and for deployment so that the
model sees consistently shaped data in both.
"""

import warnings
from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.model_selection import train_test_split

from carepredict.config.settings import ModelConfig, ModelType
from carepredict.errors import ConfigurationError, InsufficientDataError
from carepredict.schemas.input import validate_input
from carepredict.utils.cleaning import (
    MAX_CATEGORY_LEVELS,
    cols_with_many_categories,
    convert_text_to_category,
    drop_na_rows,
    impute_columns,
    is_binary,
    normalize_flags,
    remove_all_na_cols,
    remove_date_cols,
    remove_rows_with_na_in_col,
    remove_zero_variance_cols,
    sorted_levels,
)
from carepredict.utils.logging import get_logger

log = get_logger(__name__)

# Output column used for row ids when no grain column is configured
DEFAULT_GRAIN_NAME = "GrainID"

# Number of quantile bins used to stratify a numeric outcome
REGRESSION_STRATA = 5

TEST_WINDOW_TRUE = {"Y", "YES", "TRUE", "1"}


@dataclass
class PreparedData:
    """
    Container for prepared partitions.

    Attributes:
        train: Training rows (features plus predicted column).
        test: Test rows (features plus predicted column).
        test_grain: Grain identifiers, one per test row, same index as ``test``.
        test_raw: Unencoded feature values of the test rows, predicted column removed.
        feature_names: Feature columns shared by ``train`` and ``test``.
        grain_name: Name used for the grain column in output records.
        class_names: Sorted outcome labels (multiclass only).
    """

    train: pd.DataFrame
    test: pd.DataFrame
    test_grain: pd.Series
    test_raw: pd.DataFrame
    feature_names: list[str]
    grain_name: str
    class_names: list[object] | None = None


def check_type_matches_outcome(df: pd.DataFrame, config: ModelConfig) -> None:
    """
    Reject a model type that contradicts the outcome column.

    Raises:
        ConfigurationError: Classification on a non-binary outcome or
            regression on a binary outcome.
    """
    binary = is_binary(df[config.predicted_col])
    if config.type == ModelType.CLASSIFICATION and not binary:
        msg = (
            f"Predicted column '{config.predicted_col}' must be binary "
            "for classification"
        )
        raise ConfigurationError(msg)
    if config.type == ModelType.REGRESSION and binary:
        msg = (
            f"Predicted column '{config.predicted_col}' cannot be binary "
            "for regression"
        )
        raise ConfigurationError(msg)


def warn_many_categories(df: pd.DataFrame, config: ModelConfig) -> list[str]:
    """Warn (without failing) about categorical columns with many levels."""
    ignore = [c for c in (config.grain_col, config.person_col) if c is not None]
    wide = cols_with_many_categories(df, MAX_CATEGORY_LEVELS, ignore=ignore)
    if wide:
        msg = (
            f"These columns have more than {MAX_CATEGORY_LEVELS} categories: "
            f"{', '.join(repr(c) for c in wide)}. This drastically reduces "
            "performance; consider combining levels into a new column."
        )
        log.warning("High-cardinality categorical columns", columns=wide)
        warnings.warn(msg, UserWarning, stacklevel=3)
    return wide


def _protected_columns(config: ModelConfig) -> list[str]:
    cols = [config.predicted_col, config.grain_col, config.person_col, config.test_window_col]
    return [c for c in cols if c is not None]


def _clean(df: pd.DataFrame, config: ModelConfig) -> pd.DataFrame:
    """Column removal, type coercion and missing-value handling."""
    protected = _protected_columns(config)
    outcome = config.predicted_col

    df = remove_zero_variance_cols(df, keep=protected)
    df = remove_all_na_cols(df, keep=protected)
    df = remove_date_cols(df, keep=protected)

    if config.debug:
        log.debug("Columns after removal steps", columns=list(df.columns))

    df = convert_text_to_category(df, ignore=[outcome])

    feature_cols = [c for c in df.columns if c != outcome]
    if config.impute:
        df = impute_columns(df, ignore=[outcome])
    else:
        df = drop_na_rows(df, subset=feature_cols)

    if config.type in (ModelType.CLASSIFICATION, ModelType.MULTICLASS):
        df[outcome] = _as_sorted_category(df[outcome])

    return df


def _as_sorted_category(series: pd.Series) -> pd.Categorical:
    levels = sorted_levels(series)
    return pd.Categorical(series, categories=levels)


def _capture_class_names(df: pd.DataFrame, config: ModelConfig) -> list[object] | None:
    if config.type != ModelType.MULTICLASS:
        return None
    names = sorted_levels(df[config.predicted_col])
    log.info("Captured class names", class_names=names, n_classes=len(names))
    return names


def _detach_grain(df: pd.DataFrame, config: ModelConfig) -> tuple[pd.DataFrame, pd.Series, str]:
    """
    Separate the grain column from features.

    The grain column stays in the features for longitudinal data (person
    column configured). Without a grain column the row index is used.
    """
    if config.grain_col is None:
        grain = pd.Series(df.index, index=df.index, name=DEFAULT_GRAIN_NAME)
        return df, grain, DEFAULT_GRAIN_NAME

    grain = df[config.grain_col].copy()
    if config.person_col is None:
        df = df.drop(columns=[config.grain_col])
    return df, grain, config.grain_col


def _stratify_labels(y: pd.Series, config: ModelConfig) -> pd.Series | None:
    """Labels for stratified splitting, or None when stratifying is impossible."""
    if config.type == ModelType.REGRESSION:
        n_bins = min(REGRESSION_STRATA, max(2, len(y) // 10))
        strata = pd.qcut(y, q=n_bins, labels=False, duplicates="drop")
    else:
        strata = y.astype(object)

    counts = strata.value_counts()
    if len(counts) < 2 or counts.min() < 2:
        log.warning("Too few rows per stratum, using an unstratified split")
        return None
    return strata


def _check_not_empty(train: pd.DataFrame, test: pd.DataFrame, features: list[str]) -> None:
    if len(train) == 0 or len(test) == 0:
        msg = (
            "Partition is empty after cleaning "
            f"(train rows: {len(train)}, test rows: {len(test)})"
        )
        raise InsufficientDataError(msg)
    if not features:
        msg = "No feature columns remain after cleaning"
        raise InsufficientDataError(msg)


def _starting_frame(raw: pd.DataFrame) -> pd.DataFrame:
    df = raw.copy()
    if not df.index.is_unique:
        log.debug("Source index not unique, resetting")
        df = df.reset_index(drop=True)
    return df


def prepare(raw: pd.DataFrame, config: ModelConfig) -> PreparedData:
    """
    Clean a raw frame and split it into train and test partitions.

    Steps, in order: type/outcome check, high-cardinality warning,
    multiclass label capture, column removal, categorical coercion and
    imputation (or NA-row removal), grain detachment, outcome coercion,
    stratified split, grain alignment, and removal of training rows
    without an outcome.

    Args:
        raw: Source data.
        config: Model configuration.

    Returns:
        PreparedData with aligned test grain ids.

    Raises:
        ConfigurationError: Configured columns missing or type mismatch.
        InsufficientDataError: A partition is empty after cleaning.
    """
    validate_input(raw, config)
    df = _starting_frame(raw)
    outcome = config.predicted_col

    log.info(
        "Preparing data",
        rows=len(df),
        columns=df.shape[1],
        type=config.type.value,
    )

    check_type_matches_outcome(df, config)
    warn_many_categories(df, config)
    class_names = _capture_class_names(df, config)

    if config.test_window_col is not None and config.test_window_col in df.columns:
        df = df.drop(columns=[config.test_window_col])

    df = _clean(df, config)

    # Stratification needs a known outcome
    df = remove_rows_with_na_in_col(df, outcome)
    if len(df) < 2:
        msg = f"Only {len(df)} usable rows after cleaning"
        raise InsufficientDataError(msg)

    df, grain, grain_name = _detach_grain(df, config)

    strata = _stratify_labels(df[outcome], config)
    train, test = train_test_split(
        df,
        test_size=config.test_size,
        random_state=config.random_state,
        stratify=strata,
    )

    test_grain = grain.loc[test.index]
    train = remove_rows_with_na_in_col(train, outcome)

    features = [c for c in df.columns if c != outcome]
    _check_not_empty(train, test, features)

    if config.debug:
        log.debug("Training partition", rows=len(train), dtypes=train.dtypes.astype(str).to_dict())
        log.debug("Test partition", rows=len(test), grain_head=test_grain.head(10).tolist())

    log.info(
        "Prepared data",
        n_train=len(train),
        n_test=len(test),
        n_features=len(features),
    )

    return PreparedData(
        train=train,
        test=test,
        test_grain=test_grain,
        test_raw=test.drop(columns=[outcome]),
        feature_names=features,
        grain_name=grain_name,
        class_names=class_names,
    )


def _window_mask(series: pd.Series) -> np.ndarray:
    return normalize_flags(series).isin(TEST_WINDOW_TRUE).to_numpy()


def prepare_deployment(raw: pd.DataFrame, config: ModelConfig) -> PreparedData:
    """
    Prepare a frame for deployment.

    With a test-window column, rows flagged ``Y`` form the test partition
    (their outcome may be unknown) and the rest form the train partition.
    Without one, this falls back to ``prepare``'s stratified split.

    Raises:
        ConfigurationError: Configured columns missing or type mismatch.
        InsufficientDataError: No rows are flagged for the test window.
    """
    window = config.test_window_col
    if window is None:
        return prepare(raw, config)

    validate_input(raw, config, require_window=True)
    df = _starting_frame(raw)
    outcome = config.predicted_col

    log.info("Preparing deployment data", rows=len(df), test_window_col=window)

    check_type_matches_outcome(df, config)
    warn_many_categories(df, config)
    class_names = _capture_class_names(df, config)

    df = _clean(df, config)
    in_test = _window_mask(df[window])
    df = df.drop(columns=[window])

    df, grain, grain_name = _detach_grain(df, config)

    train = remove_rows_with_na_in_col(df[~in_test], outcome)
    test = df[in_test]
    test_grain = grain.loc[test.index]

    features = [c for c in df.columns if c != outcome]
    if len(test) == 0 or not features:
        msg = f"No usable rows flagged in test window column '{window}'"
        raise InsufficientDataError(msg)

    log.info(
        "Prepared deployment data",
        n_train=len(train),
        n_test=len(test),
        n_features=len(features),
    )

    return PreparedData(
        train=train,
        test=test,
        test_grain=test_grain,
        test_raw=test.drop(columns=[outcome]),
        feature_names=features,
        grain_name=grain_name,
        class_names=class_names,
    )
