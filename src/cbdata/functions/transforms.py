"""Built-in transformation functions.

Each function receives evaluated expression arguments positionally: tables
(``pl.DataFrame``), floats, or strings from quoted literals.  Table
transforms apply column by column and keep column names.
"""

from __future__ import annotations

import math
from typing import Any, Callable

import polars as pl

from cbdata.expressions.errors import ExpressionTypeError
from cbdata.expressions.options import parse_date
from cbdata.functions.registry import register_transform
from cbdata.tables import (
    DATE_COL,
    align_and_merge,
    clean_values,
    get_frequency,
    is_table,
    period_end,
    value_columns,
)

_AGG_METHODS = ("AVG", "SUM", "EOP")
_AGG_FREQS = ("M", "Q", "A")


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------


def _table(value: Any, fname: str) -> pl.DataFrame:
    if not is_table(value):
        raise ExpressionTypeError(f"{fname.upper()} requires a data series, got {value!r}")
    return value


def _int(value: Any, fname: str, what: str = "period count") -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ExpressionTypeError(f"{fname.upper()}: {what} must be numeric, got {value!r}") from None
    if not number.is_integer():
        raise ExpressionTypeError(f"{fname.upper()}: {what} must be an integer, got {value!r}")
    return int(number)


def _periods(df: pl.DataFrame, fname: str) -> int:
    freq, periods = get_frequency(df)
    if periods is None:
        raise ExpressionTypeError(f"{fname.upper()} cannot annualize {freq.lower()} dates")
    return periods


def _map_columns(df: pl.DataFrame, fn: Callable[[pl.Expr], pl.Expr]) -> pl.DataFrame:
    return df.with_columns(clean_values(fn(pl.col(c))).alias(c) for c in value_columns(df))


def _window(df: pl.DataFrame, start: Any, end: Any, fname: str) -> pl.DataFrame:
    """Rows between *start* and *end* inclusive.

    A numeric *start* counts periods back from the last row.
    """
    if start is not None and start != "" and not isinstance(start, str):
        back = _int(start, fname, "start offset")
        if back < 0 or back >= df.height:
            raise ExpressionTypeError(f"{fname.upper()}: start offset {back} outside series")
        start = df[DATE_COL][df.height - 1 - back]
    try:
        lo = parse_date(start) if start not in (None, "") else None
        hi = parse_date(end) if end not in (None, "") else None
    except ValueError as exc:
        raise ExpressionTypeError(f"{fname.upper()}: {exc}") from exc
    if lo is not None:
        df = df.filter(pl.col(DATE_COL) >= lo)
    if hi is not None:
        df = df.filter(pl.col(DATE_COL) <= hi)
    if df.height == 0:
        raise ExpressionTypeError(f"{fname.upper()}: no observations in date window")
    return df


def _summarize(df: pl.DataFrame, fn: Callable[[pl.Expr], pl.Expr]) -> pl.DataFrame:
    """One-row table dated at the window's last date."""
    return df.select(
        pl.col(DATE_COL).last(),
        *(fn(pl.col(c).drop_nulls()).cast(pl.Float64).alias(c) for c in value_columns(df)),
    )


def _midpoint_quantile(values: list[float], prob: float) -> float | None:
    """Quantile with the i-th of n sorted values placed at (i - 0.5) / n.

    Probabilities outside the first and last midpoints clamp to the extremes.
    """
    if not values:
        return None
    ordered = sorted(values)
    n = len(ordered)
    pos = prob * n + 0.5
    if pos <= 1:
        return ordered[0]
    if pos >= n:
        return ordered[-1]
    lo = math.floor(pos)
    return ordered[lo - 1] + (pos - lo) * (ordered[lo] - ordered[lo - 1])


# ---------------------------------------------------------------------------
# Shifts and differences
# ---------------------------------------------------------------------------


@register_transform("lag")
def lag(data: Any, n: Any = 1) -> pl.DataFrame:
    """Shift observations n periods later."""
    periods = _int(n, "lag")
    return _table(data, "lag").with_columns(pl.col(c).shift(periods) for c in value_columns(data))


@register_transform("lead")
def lead(data: Any, n: Any = 1) -> pl.DataFrame:
    """Shift observations n periods earlier."""
    periods = _int(n, "lead")
    return _table(data, "lead").with_columns(pl.col(c).shift(-periods) for c in value_columns(data))


@register_transform("diff")
def diff(data: Any, n: Any = 1) -> pl.DataFrame:
    """Difference over n periods."""
    periods = _int(n, "diff")
    return _map_columns(_table(data, "diff"), lambda x: x - x.shift(periods))


@register_transform("diffl")
def diffl(data: Any, n: Any = 1) -> pl.DataFrame:
    """Log difference over n periods, times 100."""
    periods = _int(n, "diffl")
    return _map_columns(_table(data, "diffl"), lambda x: 100 * (x.log() - x.shift(periods).log()))


@register_transform("difvl")
def difvl(data: Any, n: Any = 1) -> pl.DataFrame:
    """Average per-period log difference over n periods, times 100."""
    periods = _int(n, "difvl")
    if periods == 0:
        raise ExpressionTypeError("DIFVL: period count must be non-zero")
    return _map_columns(
        _table(data, "difvl"),
        lambda x: 100 * (x.log() - x.shift(periods).log()) / periods,
    )


@register_transform("difpct")
def difpct(data: Any, n: Any = 1) -> pl.DataFrame:
    """Percent change over n periods."""
    periods = _int(n, "dif%")
    return _map_columns(_table(data, "dif%"), lambda x: 100 * (x / x.shift(periods) - 1))


@register_transform("difa")
def difa(data: Any) -> pl.DataFrame:
    """One-period difference at an annual rate."""
    df = _table(data, "difa")
    per_year = _periods(df, "difa")
    return _map_columns(df, lambda x: (x - x.shift(1)) * per_year)


@register_transform("difal")
def difal(data: Any) -> pl.DataFrame:
    """One-period log difference at an annual rate, times 100."""
    df = _table(data, "difal")
    per_year = _periods(df, "difal")
    return _map_columns(df, lambda x: 100 * per_year * (x.log() - x.shift(1).log()))


@register_transform("difapct")
def difapct(data: Any) -> pl.DataFrame:
    """One-period percent change, compounded to an annual rate."""
    df = _table(data, "difa%")
    per_year = _periods(df, "difa%")
    return _map_columns(df, lambda x: 100 * ((x / x.shift(1)).pow(per_year) - 1))


@register_transform("yryr")
def yryr(data: Any) -> pl.DataFrame:
    """Difference from the same period a year earlier."""
    df = _table(data, "yryr")
    per_year = _periods(df, "yryr")
    return _map_columns(df, lambda x: x - x.shift(per_year))


@register_transform("yryrpct")
def yryrpct(data: Any) -> pl.DataFrame:
    """Percent change from the same period a year earlier."""
    df = _table(data, "yryr%")
    per_year = _periods(df, "yryr%")
    return _map_columns(df, lambda x: 100 * (x / x.shift(per_year) - 1))


@register_transform("movv")
def movv(data: Any, n: Any) -> pl.DataFrame:
    """Trailing n-period moving average."""
    window = _int(n, "movv", "window")
    if window < 1:
        raise ExpressionTypeError("MOVV: window must be at least 1")
    return _map_columns(_table(data, "movv"), lambda x: x.rolling_mean(window_size=window))


# ---------------------------------------------------------------------------
# Elementwise
# ---------------------------------------------------------------------------


def _elementwise(data: Any, fname: str, expr_fn: Callable, scalar_fn: Callable) -> Any:
    if is_table(data):
        return _map_columns(data, expr_fn)
    if isinstance(data, str):
        raise ExpressionTypeError(f"{fname.upper()} requires a number or data series")
    try:
        return float(scalar_fn(float(data)))
    except (ValueError, OverflowError) as exc:
        raise ExpressionTypeError(f"{fname.upper()}({data}): {exc}") from exc


@register_transform("log")
def log(data: Any) -> Any:
    """Natural logarithm."""
    return _elementwise(data, "log", lambda x: x.log(), math.log)


@register_transform("exp")
def exp(data: Any) -> Any:
    """Exponential."""
    return _elementwise(data, "exp", lambda x: x.exp(), math.exp)


@register_transform("abs")
def absolute(data: Any) -> Any:
    """Absolute value."""
    return _elementwise(data, "abs", lambda x: x.abs(), abs)


@register_transform("nan2zero")
def nan2zero(data: Any) -> pl.DataFrame:
    """Replace missing observations with zero."""
    return _table(data, "nan2zero").with_columns(
        pl.col(c).fill_null(0.0) for c in value_columns(data)
    )


# ---------------------------------------------------------------------------
# Summaries and reshaping
# ---------------------------------------------------------------------------


@register_transform("mean")
def mean(data: Any, start: Any = None, end: Any = None) -> pl.DataFrame:
    """Mean over a date window, dated at its last observation."""
    df = _window(_table(data, "mean"), start, end, "mean")
    return _summarize(df, lambda x: x.mean())


@register_transform("quantile")
def quantile(data: Any, p: Any, start: Any = None, end: Any = None) -> pl.DataFrame:
    """Quantile p (0 to 1) over a date window, dated at its last observation.

    Sorted observations sit at probabilities (i - 0.5) / n; values in
    between are interpolated linearly.
    """
    try:
        prob = float(p)
    except (TypeError, ValueError):
        raise ExpressionTypeError(f"QUANTILE: probability must be numeric, got {p!r}") from None
    if not 0.0 <= prob <= 1.0:
        raise ExpressionTypeError(f"QUANTILE: probability {prob} outside [0, 1]")
    df = _window(_table(data, "quantile"), start, end, "quantile")
    return df.select(
        pl.col(DATE_COL).last(),
        *(
            pl.lit(_midpoint_quantile(df[c].drop_nulls().to_list(), prob), dtype=pl.Float64).alias(c)
            for c in value_columns(df)
        ),
    )


@register_transform("trim")
def trim(data: Any, start: Any = None, end: Any = None) -> pl.DataFrame:
    """Restrict a series to a date window."""
    return _window(_table(data, "trim"), start, end, "trim")


@register_transform("agg")
def agg(data: Any, freq: Any, method: Any = "AVG") -> pl.DataFrame:
    """Aggregate to a lower frequency (M, Q or A) by AVG, SUM or EOP."""
    df = _table(data, "agg")
    code = str(freq).strip().upper()
    how = str(method).strip().upper()
    if code not in _AGG_FREQS:
        raise ExpressionTypeError(f"AGG: unsupported frequency {freq!r}")
    if how not in _AGG_METHODS:
        raise ExpressionTypeError(f"AGG: method must be one of {', '.join(_AGG_METHODS)}")

    def reducer(col: str) -> pl.Expr:
        x = pl.col(col)
        if how == "SUM":
            return pl.when(x.count() > 0).then(x.sum()).otherwise(None)
        if how == "EOP":
            return x.drop_nulls().last()
        return x.mean()

    return (
        df.group_by(period_end(pl.col(DATE_COL), code).alias(DATE_COL), maintain_order=True)
        .agg(reducer(c).cast(pl.Float64).alias(c) for c in value_columns(df))
        .sort(DATE_COL)
    )


@register_transform("merge")
def merge(*tables: Any) -> pl.DataFrame:
    """Combine series side by side on the union of their dates."""
    if not tables:
        raise ExpressionTypeError("MERGE requires at least one data series")
    return align_and_merge(*(_table(t, "merge") for t in tables))
