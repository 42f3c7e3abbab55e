"""Elementwise arithmetic between tables and scalars."""

from __future__ import annotations

import operator
from typing import Any, Callable

import polars as pl

from cbdata.expressions.errors import ExpressionTypeError
from cbdata.tables import (
    DATE_COL,
    SERIES_LABEL,
    align_and_merge,
    clean_values,
    is_table,
    value_columns,
)

_LEFT = "__LEFT"
_RIGHT = "__RIGHT"


class Operation:
    """A binary operator: symbol, English name, function and NaN stand-in."""

    def __init__(self, symbol: str, name: str, fn: Callable[[Any, Any], Any], neutral: float) -> None:
        self.symbol = symbol
        self.name = name
        self.fn = fn
        self.neutral = neutral

    def __repr__(self) -> str:
        return f"Operation({self.symbol!r}, {self.name!r})"


OPERATIONS: dict[str, Operation] = {
    "+": Operation("+", "addition", operator.add, 0.0),
    "-": Operation("-", "subtraction", operator.sub, 0.0),
    "*": Operation("*", "multiplication", operator.mul, 1.0),
    "/": Operation("/", "division", operator.truediv, 1.0),
}


def _single_column(df: pl.DataFrame, side: str, op: Operation) -> pl.DataFrame:
    cols = value_columns(df)
    if len(cols) != 1:
        raise ExpressionTypeError(
            f"{op.name.capitalize()} requires single-series tables; "
            f"{side} operand has columns {cols}"
        )
    return df


def _operand_expr(name: str, op: Operation, ignore_nan: bool) -> pl.Expr:
    expr = pl.col(name)
    if ignore_nan:
        expr = expr.fill_nan(None).fill_null(op.neutral)
    return expr


def apply_operation(symbol: str, left: Any, right: Any, ignore_nan: bool = False) -> Any:
    """Apply the operator *symbol* to two evaluated operands.

    Two tables are aligned by a full outer join on dates first.  A scalar is
    broadcast against a table's single value column.  Two scalars use plain
    float arithmetic.  With *ignore_nan*, missing table values count as 0 for
    ``+``/``-`` and 1 for ``*``/``/``.

    Returns:
        A table with one ``DATASERIES`` column, or a float.

    Raises:
        ExpressionTypeError: For string operands or multi-column tables.
        ZeroDivisionError: For scalar division by zero.
    """
    op = OPERATIONS[symbol]
    for side, value in (("left", left), ("right", right)):
        if isinstance(value, str):
            raise ExpressionTypeError(f"Cannot apply {op.name} to string {side} operand {value!r}")

    if is_table(left) and is_table(right):
        lhs = _single_column(left, "left", op)
        rhs = _single_column(right, "right", op)
        merged = align_and_merge(
            lhs.rename({value_columns(lhs)[0]: _LEFT}),
            rhs.rename({value_columns(rhs)[0]: _RIGHT}),
        )
        result = op.fn(_operand_expr(_LEFT, op, ignore_nan), _operand_expr(_RIGHT, op, ignore_nan))
        return merged.select(DATE_COL, clean_values(result).alias(SERIES_LABEL))

    if is_table(left):
        col = value_columns(_single_column(left, "left", op))[0]
        result = op.fn(_operand_expr(col, op, ignore_nan), pl.lit(float(right)))
        return left.select(DATE_COL, clean_values(result).alias(SERIES_LABEL))

    if is_table(right):
        col = value_columns(_single_column(right, "right", op))[0]
        result = op.fn(pl.lit(float(left)), _operand_expr(col, op, ignore_nan))
        return right.select(DATE_COL, clean_values(result).alias(SERIES_LABEL))

    return float(op.fn(float(left), float(right)))


def negate(value: Any) -> Any:
    """Unary minus for a table (every value column) or a scalar."""
    if isinstance(value, str):
        raise ExpressionTypeError(f"Cannot negate string {value!r}")
    if is_table(value):
        return value.with_columns(-pl.col(c) for c in value_columns(value))
    return -float(value)
