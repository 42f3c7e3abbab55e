"""Time series tables on Polars DataFrames.

A time series table is a ``pl.DataFrame`` whose first column is ``date``
(``pl.Date``, ascending, unique) followed by one or more Float64 value
columns with upper-case names.  Missing observations are nulls.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Iterable, Sequence

import polars as pl

logger = logging.getLogger(__name__)

DATE_COL = "date"
SERIES_LABEL = "DATASERIES"

# Observations per year, keyed by frequency code (business days for D).
_PERIODS_PER_YEAR = {"D": 251, "W": 52, "M": 12, "Q": 4, "A": 1}
_PERIOD_EVERY = {"M": "1mo", "Q": "1q", "A": "1y"}


def is_table(value: Any) -> bool:
    return isinstance(value, pl.DataFrame)


def value_columns(df: pl.DataFrame) -> list[str]:
    """Names of the value columns (everything but ``date``)."""
    return [c for c in df.columns if c != DATE_COL]


def make_table(
    dates: Sequence[date] | pl.Series,
    values: dict[str, Sequence[Any]] | Sequence[Any],
    name: str = SERIES_LABEL,
) -> pl.DataFrame:
    """Build a normalized table from dates and one or more value columns.

    Args:
        dates: Observation dates.
        values: Either a single sequence (stored under *name*) or a mapping
            of column name to values.
        name: Column name for a single sequence of values.
    """
    if not isinstance(values, dict):
        values = {name: values}
    data: dict[str, Any] = {DATE_COL: list(dates)}
    for col, vals in values.items():
        data[col] = [None if v is None else float(v) for v in vals]
    return normalize_table(pl.DataFrame(data))


def normalize_table(df: pl.DataFrame, date_col: str | None = None) -> pl.DataFrame:
    """Coerce *df* into the time series table layout.

    The date column is *date_col* if given, else a column named ``date``
    (any case), else the first column.  String dates are parsed as ISO.
    Value columns are upper-cased and cast to Float64 (unparseable entries
    become null); NaN becomes null.  Rows are sorted by date and duplicate
    dates keep their last observation.

    Raises:
        ValueError: If the frame has no value columns or duplicate names.
    """
    if date_col is None:
        lowered = {c.lower(): c for c in df.columns}
        date_col = lowered.get(DATE_COL, df.columns[0] if df.columns else None)
    if date_col is None or len(df.columns) < 2:
        raise ValueError("A time series table needs a date column and at least one value column")

    others = [c for c in df.columns if c != date_col]
    upper = [c.upper() for c in others]
    if len(set(upper)) != len(upper):
        raise ValueError(f"Duplicate column names (case-insensitive): {others}")

    date_expr = pl.col(date_col)
    dtype = df.schema[date_col]
    if dtype == pl.Utf8:
        date_expr = date_expr.str.to_date(strict=False)
    elif dtype != pl.Date:
        date_expr = date_expr.cast(pl.Date)

    value_exprs = [
        pl.col(c).cast(pl.Float64, strict=False).fill_nan(None).alias(u)
        for c, u in zip(others, upper)
    ]
    return (
        df.select(date_expr.alias(DATE_COL), *value_exprs)
        .filter(pl.col(DATE_COL).is_not_null())
        .unique(subset=DATE_COL, keep="last", maintain_order=True)
        .sort(DATE_COL)
    )


def _dedupe_columns(tables: Iterable[pl.DataFrame]) -> list[pl.DataFrame]:
    """Rename clashing value columns to ``NAME_2``, ``NAME_3``, ..."""
    seen: dict[str, int] = {}
    out: list[pl.DataFrame] = []
    for df in tables:
        renames: dict[str, str] = {}
        for col in value_columns(df):
            count = seen.get(col, 0) + 1
            seen[col] = count
            if count > 1:
                renames[col] = f"{col}_{count}"
        out.append(df.rename(renames) if renames else df)
    return out


def align_and_merge(*tables: pl.DataFrame) -> pl.DataFrame:
    """Full outer join of tables on ``date``.

    Dates missing from a table give nulls in its columns.  Column order
    follows argument order; clashing names are suffixed.

    Raises:
        ValueError: If called with no tables.
    """
    if not tables:
        raise ValueError("align_and_merge requires at least one table")
    frames = _dedupe_columns(tables)
    merged = frames[0]
    for df in frames[1:]:
        merged = merged.join(df, on=DATE_COL, how="full", coalesce=True)
    return merged.sort(DATE_COL)


def _as_date_list(dates: Any) -> list[date]:
    if isinstance(dates, pl.DataFrame):
        dates = dates[DATE_COL]
    if isinstance(dates, pl.Series):
        return [d for d in dates.cast(pl.Date).to_list() if d is not None]
    return list(dates)


def get_frequency(dates: Any) -> tuple[str, int | None]:
    """Infer the frequency of a date sequence.

    Accepts a table, a ``pl.Series`` of dates, a list of dates, or a single
    frequency code (``"M"`` etc.), which is echoed back with its periods.

    Returns:
        Tuple ``(code, periods_per_year)``.  Irregular spacing gives
        ``("IRREGULAR", None)``.

    Raises:
        ValueError: For an unknown frequency code.
    """
    if isinstance(dates, str):
        code = dates.upper()
        if code not in _PERIODS_PER_YEAR:
            raise ValueError(f"Date input must be a frequency code, {dates!r} not supported")
        return code, _PERIODS_PER_YEAR[code]

    seq = _as_date_list(dates)
    diffs = [(b - a).days for a, b in zip(seq, seq[1:])]
    if not diffs:
        logger.warning("Cannot infer frequency from %d date(s)", len(seq))
        return "IRREGULAR", None

    lo, hi = min(diffs), max(diffs)
    if lo == 1 and hi <= 4:
        return "D", _PERIODS_PER_YEAR["D"]
    if 6 <= lo and hi <= 8:
        return "W", _PERIODS_PER_YEAR["W"]
    if 28 <= lo and hi <= 31:
        return "M", _PERIODS_PER_YEAR["M"]
    if 89 <= lo and hi <= 92:
        return "Q", _PERIODS_PER_YEAR["Q"]
    if 364 <= lo and hi <= 366:
        return "A", _PERIODS_PER_YEAR["A"]
    logger.warning("Dates are irregularly spaced (%d to %d days)", lo, hi)
    return "IRREGULAR", None


def period_end(expr: pl.Expr, freq: str) -> pl.Expr:
    """Move dates in *expr* to the last day of their *freq* period.

    Daily and weekly dates are returned unchanged.
    """
    every = _PERIOD_EVERY.get(freq)
    if every is None:
        return expr
    return expr.dt.truncate(every).dt.offset_by(every).dt.offset_by("-1d")


def to_period_end(df: pl.DataFrame) -> pl.DataFrame:
    """Re-date *df* to end-of-period dates using its inferred frequency."""
    freq, _ = get_frequency(df)
    if freq not in _PERIOD_EVERY:
        return df
    return df.with_columns(period_end(pl.col(DATE_COL), freq).alias(DATE_COL))


def filter_dates(
    df: pl.DataFrame,
    start: date | None = None,
    end: date | None = None,
) -> pl.DataFrame:
    """Keep rows with ``start <= date <= end`` (bounds optional)."""
    if start is not None:
        df = df.filter(pl.col(DATE_COL) >= start)
    if end is not None:
        df = df.filter(pl.col(DATE_COL) <= end)
    return df


def clean_values(expr: pl.Expr) -> pl.Expr:
    """Replace NaN and infinities produced by arithmetic with null."""
    return pl.when(expr.is_nan() | expr.is_infinite()).then(None).otherwise(expr)
