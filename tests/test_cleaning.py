"""Tests for data-cleaning helpers."""

import numpy as np
import pandas as pd

from carepredict.utils.cleaning import (
    class_labels,
    cols_with_many_categories,
    convert_text_to_category,
    drop_na_rows,
    impute_columns,
    is_binary,
    is_categorical,
    normalize_flags,
    remove_all_na_cols,
    remove_date_cols,
    remove_zero_variance_cols,
    sorted_levels,
)


class TestPredicates:
    """Tests for column predicates."""

    def test_is_binary_ignores_missing(self) -> None:
        """Missing values do not count as a level."""
        assert is_binary(pd.Series(["Y", "N", None, "Y"]))
        assert is_binary(pd.Series([0, 1, 1, np.nan]))
        assert not is_binary(pd.Series([1.0, 2.5, 3.0]))
        assert not is_binary(pd.Series(["Y", "Y"]))

    def test_is_categorical(self) -> None:
        """Text and booleans are categorical, numbers are not."""
        assert is_categorical(pd.Series(["a", "b"]))
        assert is_categorical(pd.Series([True, False]))
        assert is_categorical(pd.Series(["a", "b"], dtype="category"))
        assert not is_categorical(pd.Series([1, 2, 3]))


class TestColumnRemoval:
    """Tests for column-removal steps."""

    def test_zero_variance_removed_unless_kept(self) -> None:
        """Single-valued columns are dropped except protected ones."""
        df = pd.DataFrame({"a": [1, 1, 1], "b": [1, 2, 3], "c": ["x", "x", "x"]})
        out = remove_zero_variance_cols(df, keep=["c"])
        assert list(out.columns) == ["b", "c"]

    def test_all_na_columns_removed(self) -> None:
        """Columns without any value are dropped."""
        df = pd.DataFrame({"a": [np.nan, np.nan], "b": [1.0, np.nan]})
        out = remove_all_na_cols(df)
        assert list(out.columns) == ["b"]

    def test_date_columns_removed(self) -> None:
        """Columns ending in DTS are date stamps."""
        df = pd.DataFrame({"AdmitDTS": ["2020-01-01"], "LastLoadDTS": ["x"], "Age": [40]})
        out = remove_date_cols(df, keep=["LastLoadDTS"])
        assert list(out.columns) == ["LastLoadDTS", "Age"]

    def test_input_not_modified(self) -> None:
        """Helpers return new frames."""
        df = pd.DataFrame({"a": [1, 1], "b": [1, 2]})
        remove_zero_variance_cols(df)
        assert list(df.columns) == ["a", "b"]


class TestCategories:
    """Tests for categorical handling."""

    def test_many_categories_detected(self) -> None:
        """Only categorical columns above the limit are reported."""
        df = pd.DataFrame({
            "wide": [f"L{i}" for i in range(60)],
            "narrow": ["a", "b"] * 30,
            "numeric": range(60),
            "ID": [f"E{i}" for i in range(60)],
        })
        assert cols_with_many_categories(df, 50, ignore=["ID"]) == ["wide"]

    def test_text_converted_to_category(self) -> None:
        """Text columns become categoricals, the ignored column does not."""
        df = pd.DataFrame({"g": ["F", "M"], "y": ["Y", "N"], "x": [1.0, 2.0]})
        out = convert_text_to_category(df, ignore=["y"])
        assert isinstance(out["g"].dtype, pd.CategoricalDtype)
        assert not isinstance(out["y"].dtype, pd.CategoricalDtype)
        assert out["x"].dtype == float


class TestMissingValues:
    """Tests for imputation and NA-row removal."""

    def test_impute_mean_and_mode(self) -> None:
        """Numeric columns get the mean, categorical ones the mode."""
        df = pd.DataFrame({
            "x": [1.0, np.nan, 3.0],
            "g": pd.Categorical(["a", "a", None]),
            "y": [1.0, np.nan, 0.0],
        })
        out = impute_columns(df, ignore=["y"])
        assert out["x"].tolist() == [1.0, 2.0, 3.0]
        assert out["g"].tolist() == ["a", "a", "a"]
        assert out["y"].isna().sum() == 1

    def test_drop_na_rows_subset(self) -> None:
        """Only the listed columns decide whether a row is dropped."""
        df = pd.DataFrame({"x": [1.0, np.nan, 3.0], "y": [np.nan, 1.0, 0.0]})
        out = drop_na_rows(df, subset=["x"])
        assert out.index.tolist() == [0, 2]


class TestSortedLevels:
    """Tests for natural level ordering."""

    def test_numeric_levels_sort_numerically(self) -> None:
        """Numbers sort by value, not by their text."""
        assert sorted_levels([10, 2, 1, 2]) == [1, 2, 10]

    def test_text_levels_sort_alphabetically(self) -> None:
        """Missing values are excluded."""
        assert sorted_levels(["Y", "N", None, "Y"]) == ["N", "Y"]

    def test_mixed_levels_fall_back_to_text(self) -> None:
        """Incomparable values sort by their string form."""
        assert sorted_levels([2, "a", 1]) == [1, 2, "a"]


class TestClassLabels:
    """Tests for outcome labels handed to estimators."""

    def test_integer_categories_become_int_array(self) -> None:
        """Integer levels are not left as an object array."""
        labels = class_labels(pd.Series(pd.Categorical([0, 1, 1, 0])))
        assert labels.dtype.kind == "i"
        assert labels.tolist() == [0, 1, 1, 0]

    def test_boolean_categories_become_bool_array(self) -> None:
        """Boolean levels stay booleans."""
        labels = class_labels(pd.Series(pd.Categorical([True, False])))
        assert labels.dtype == bool

    def test_text_labels_unchanged(self) -> None:
        """Text levels keep their values."""
        assert class_labels(pd.Series(pd.Categorical(["N", "Y"]))).tolist() == ["N", "Y"]


class TestNormalizeFlags:
    """Tests for Y/N flag normalization."""

    def test_text_flags(self) -> None:
        """Text flags are stripped and upper-cased."""
        assert normalize_flags(pd.Series([" y", "N", "True"])).tolist() == ["Y", "N", "TRUE"]

    def test_float_flags(self) -> None:
        """1.0/0.0 compare like 1/0, missing values become empty."""
        flags = normalize_flags(pd.Series([1.0, 0.0, np.nan]))
        assert flags.tolist() == ["1", "0", ""]

    def test_boolean_flags(self) -> None:
        """Booleans read as TRUE/FALSE."""
        assert normalize_flags(pd.Series([True, False])).tolist() == ["TRUE", "FALSE"]
