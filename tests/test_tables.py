"""Tests for time series table helpers."""

from __future__ import annotations

from datetime import date

import polars as pl
import pytest
from polars.testing import assert_frame_equal

from cbdata.tables import (
    DATE_COL,
    align_and_merge,
    filter_dates,
    get_frequency,
    make_table,
    normalize_table,
    to_period_end,
    value_columns,
)
from conftest import month_ends


class TestNormalizeTable:
    def test_layout(self) -> None:
        raw = pl.DataFrame({
            "Date": ["2020-02-29", "2020-01-31", "2020-02-29"],
            "gdp": [1.0, float("nan"), 3.0],
        })
        df = normalize_table(raw)
        assert df.columns == [DATE_COL, "GDP"]
        assert df.schema[DATE_COL] == pl.Date
        assert df[DATE_COL].to_list() == [date(2020, 1, 31), date(2020, 2, 29)]
        # NaN becomes missing; the later duplicate date wins
        assert df["GDP"].to_list() == [None, 3.0]

    def test_unparseable_values_become_null(self) -> None:
        raw = pl.DataFrame({"date": ["2020-01-31"], "x": ["n/a"]})
        assert normalize_table(raw)["X"].to_list() == [None]

    def test_needs_value_column(self) -> None:
        with pytest.raises(ValueError):
            normalize_table(pl.DataFrame({"date": ["2020-01-31"]}))

    def test_case_insensitive_duplicates_rejected(self) -> None:
        raw = pl.DataFrame({"date": ["2020-01-31"], "x": [1.0], "X": [2.0]})
        with pytest.raises(ValueError, match="Duplicate"):
            normalize_table(raw)


class TestAlignAndMerge:
    def test_union_of_dates(self, series_a: pl.DataFrame, series_b: pl.DataFrame) -> None:
        merged = align_and_merge(series_a, series_b)
        assert merged.columns == [DATE_COL, "A", "B"]
        assert merged.height == 5
        assert merged["A"].to_list() == [1.0, 2.0, 3.0, 4.0, None]
        assert merged["B"].to_list() == [None, 10.0, 20.0, 30.0, 40.0]

    def test_clashing_names_suffixed(self, series_a: pl.DataFrame) -> None:
        merged = align_and_merge(series_a, series_a, series_a)
        assert value_columns(merged) == ["A", "A_2", "A_3"]

    def test_single_table_unchanged(self, series_a: pl.DataFrame) -> None:
        assert_frame_equal(align_and_merge(series_a), series_a)

    def test_requires_a_table(self) -> None:
        with pytest.raises(ValueError):
            align_and_merge()


class TestGetFrequency:
    def test_monthly(self) -> None:
        assert get_frequency(month_ends(6)) == ("M", 12)

    def test_quarterly(self) -> None:
        dates = [date(2020, 3, 31), date(2020, 6, 30), date(2020, 9, 30)]
        assert get_frequency(dates) == ("Q", 4)

    def test_business_daily(self) -> None:
        # Fri -> Mon is a 3-day gap
        dates = [date(2020, 1, 2), date(2020, 1, 3), date(2020, 1, 6), date(2020, 1, 7)]
        assert get_frequency(dates) == ("D", 251)

    def test_annual_from_table(self) -> None:
        df = make_table([date(2018, 12, 31), date(2019, 12, 31), date(2020, 12, 31)], [1, 2, 3])
        assert get_frequency(df) == ("A", 1)

    def test_frequency_code(self) -> None:
        assert get_frequency("w") == ("W", 52)
        with pytest.raises(ValueError):
            get_frequency("X")

    def test_irregular(self) -> None:
        dates = [date(2020, 1, 1), date(2020, 1, 5), date(2020, 3, 1)]
        assert get_frequency(dates) == ("IRREGULAR", None)

    def test_single_date(self) -> None:
        assert get_frequency([date(2020, 1, 1)]) == ("IRREGULAR", None)


class TestDating:
    def test_to_period_end_monthly(self) -> None:
        df = make_table([date(2020, 1, 1), date(2020, 2, 1), date(2020, 3, 1)], [1, 2, 3])
        assert to_period_end(df)[DATE_COL].to_list() == month_ends(3)

    def test_to_period_end_quarterly(self) -> None:
        df = make_table([date(2020, 1, 1), date(2020, 4, 1), date(2020, 7, 1)], [1, 2, 3])
        assert to_period_end(df)[DATE_COL].to_list() == [
            date(2020, 3, 31), date(2020, 6, 30), date(2020, 9, 30),
        ]

    def test_filter_dates(self, series_a: pl.DataFrame) -> None:
        out = filter_dates(series_a, date(2020, 2, 1), date(2020, 3, 31))
        assert out["A"].to_list() == [2.0, 3.0]
