"""
Data-cleaning helpers used by the preparation layer.

All functions are pure: they return a new DataFrame and never modify
their input.
"""

from collections.abc import Iterable

import numpy as np
import pandas as pd
from pandas.api.types import is_bool_dtype, is_numeric_dtype

from carepredict.utils.logging import get_logger

log = get_logger(__name__)

DATE_COLUMN_SUFFIX = "DTS"
MAX_CATEGORY_LEVELS = 50


def is_binary(series: pd.Series) -> bool:
    """True if the series holds exactly two distinct non-missing values."""
    return series.dropna().nunique() == 2


def is_categorical(series: pd.Series) -> bool:
    """True for text, category and boolean columns."""
    return not is_numeric_dtype(series) or is_bool_dtype(series)


def cols_with_many_categories(
    df: pd.DataFrame,
    limit: int = MAX_CATEGORY_LEVELS,
    *,
    ignore: Iterable[str] = (),
) -> list[str]:
    """Categorical columns with more than ``limit`` distinct levels."""
    skip = set(ignore)
    return [
        col
        for col in df.columns
        if col not in skip and is_categorical(df[col]) and df[col].nunique() > limit
    ]


def remove_zero_variance_cols(
    df: pd.DataFrame, *, keep: Iterable[str] = ()
) -> pd.DataFrame:
    """Drop columns holding a single distinct non-missing value."""
    protected = set(keep)
    counts = df.nunique(dropna=True)
    drop = [col for col in df.columns if counts[col] == 1 and col not in protected]
    if drop:
        log.debug("Removing zero-variance columns", columns=drop)
    return df.drop(columns=drop)


def remove_all_na_cols(df: pd.DataFrame, *, keep: Iterable[str] = ()) -> pd.DataFrame:
    """Drop columns where every value is missing."""
    protected = set(keep)
    drop = [col for col in df.columns if df[col].isna().all() and col not in protected]
    if drop:
        log.debug("Removing all-missing columns", columns=drop)
    return df.drop(columns=drop)


def remove_date_cols(
    df: pd.DataFrame,
    suffix: str = DATE_COLUMN_SUFFIX,
    *,
    keep: Iterable[str] = (),
) -> pd.DataFrame:
    """Drop columns named like date stamps (``...DTS``)."""
    protected = set(keep)
    drop = [
        col for col in df.columns if str(col).endswith(suffix) and col not in protected
    ]
    if drop:
        log.debug("Removing date-stamp columns", columns=drop)
    return df.drop(columns=drop)


def convert_text_to_category(
    df: pd.DataFrame, *, ignore: Iterable[str] = ()
) -> pd.DataFrame:
    """Convert text and boolean columns to pandas categoricals."""
    skip = set(ignore)
    out = df.copy()
    for col in out.columns:
        if col in skip or isinstance(out[col].dtype, pd.CategoricalDtype):
            continue
        if is_categorical(out[col]):
            out[col] = out[col].astype("category")
    return out


def impute_columns(df: pd.DataFrame, *, ignore: Iterable[str] = ()) -> pd.DataFrame:
    """
    Fill missing values column by column.

    Numeric columns get the column mean, categorical columns the most
    frequent level. Columns listed in ``ignore`` are left untouched.
    """
    skip = set(ignore)
    out = df.copy()
    for col in out.columns:
        if col in skip or not out[col].isna().any() or out[col].isna().all():
            continue
        if is_categorical(out[col]):
            fill_value = out[col].mode(dropna=True).iloc[0]
        else:
            fill_value = out[col].mean()
        out[col] = out[col].fillna(fill_value)
        log.debug("Imputed column", column=col, fill_value=str(fill_value))
    return out


def drop_na_rows(df: pd.DataFrame, *, subset: Iterable[str] | None = None) -> pd.DataFrame:
    """Drop rows with a missing value in any (or any of ``subset``) column."""
    before = len(df)
    out = df.dropna(subset=list(subset) if subset is not None else None)
    if len(out) < before:
        log.debug("Dropped rows with missing values", dropped=before - len(out))
    return out


def remove_rows_with_na_in_col(df: pd.DataFrame, col: str) -> pd.DataFrame:
    """Drop rows where ``col`` is missing."""
    return df[df[col].notna()]


def sorted_levels(values: Iterable[object]) -> list[object]:
    """
    Distinct values in natural sort order.

    Mixed types that cannot be compared fall back to ordering by their
    string form.
    """
    distinct = list(dict.fromkeys(v for v in values if not pd.isna(v)))
    try:
        return sorted(distinct)
    except TypeError:
        return sorted(distinct, key=str)


def class_labels(y: pd.Series) -> np.ndarray:
    """
    Outcome labels as a plain array in their native dtype.

    Categorical outcomes holding integer or boolean levels come back as
    int or bool arrays rather than object arrays, which scikit-learn
    would not recognize as a classification target.
    """
    return pd.Series(y, copy=False).astype(object).infer_objects().to_numpy()


def normalize_flags(series: pd.Series) -> pd.Series:
    """
    Upper-case text form of a Y/N style flag column.

    Numeric flags are rendered without a trailing ``.0`` so that a 1/0
    column read as float compares equal to ``"1"``/``"0"``. Missing values
    become empty strings.
    """
    if is_numeric_dtype(series) and not is_bool_dtype(series):
        values = pd.to_numeric(series, errors="coerce")
        text = values.map(lambda v: "" if pd.isna(v) else f"{v:g}")
    else:
        text = series.astype(str)
    return text.str.strip().str.upper()
