"""Multi-formula retrieval: ``data()`` and ``expression()``.

Each formula is evaluated with its own copy of the root context, optionally
in a thread pool, and the resulting tables are merged on the union of their
dates.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Sequence
from uuid import uuid4

import polars as pl

from cbdata.expressions.errors import ExpressionTypeError
from cbdata.expressions.evaluator import Evaluator
from cbdata.expressions.options import EvaluationContext
from cbdata.expressions.provenance import Provenance
from cbdata.expressions.scanner import remove_unquoted_spaces
from cbdata.functions.transforms import agg
from cbdata.logging.events import EventType, emit_info
from cbdata.tables import align_and_merge, get_frequency, is_table

logger = logging.getLogger(__name__)

_AGGREGABLE = ("M", "Q", "A")


def data(
    series: str | Sequence[str],
    *,
    evaluator: Evaluator | None = None,
    context: EvaluationContext | None = None,
    max_workers: int = 1,
    **options: Any,
) -> tuple[Any, list[Provenance]]:
    """Retrieve one or more formulas as a single table.

    Args:
        series: A formula or a list of formulas.
        evaluator: Evaluator to use; one with the default registries if
            omitted.
        context: Base context; ``EvaluationContext()`` if omitted.
        max_workers: Evaluate formulas in parallel threads when > 1.
        **options: Context options (``db_id``, ``start_date``,
            ``frequency``, ``ignore_nan``, ``as_of``...).

    Returns:
        Tuple of (merged table, provenance per formula).  A lone formula
        that evaluates to a number or string returns that value.
    """
    return expression(
        series, evaluator=evaluator, context=context, max_workers=max_workers, **options
    )


def expression(
    series: str | Sequence[str],
    *tables: pl.DataFrame,
    evaluator: Evaluator | None = None,
    context: EvaluationContext | None = None,
    max_workers: int = 1,
    **options: Any,
) -> tuple[Any, list[Provenance]]:
    """Like :func:`data`, with *tables* substituted for ``%d`` placeholders.

    Every formula is offered the same *tables*.

    Raises:
        ExpressionTypeError: If several formulas are merged and one of them
            is not a table.
        ExpressionError: Any evaluation failure aborts the whole call.
    """
    formulas = [series] if isinstance(series, str) else list(series)
    if not formulas:
        raise ValueError("At least one formula is required")
    formulas = [remove_unquoted_spaces(f) for f in formulas]

    evaluator = evaluator if evaluator is not None else Evaluator()
    root = (context or EvaluationContext()).with_options(**options)

    batch_id = uuid4().hex
    emit_info(
        EventType.batch_started,
        f"Retrieving {len(formulas)} formula(s)",
        {"batch_id": batch_id, "formulas": formulas, "max_workers": max_workers},
        batch_id=batch_id,
    )

    def run(formula: str) -> tuple[Any, Provenance]:
        return evaluator.evaluate(formula, root, tables, batch_id=batch_id)

    if max_workers > 1 and len(formulas) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            results = list(executor.map(run, formulas))
    else:
        results = [run(f) for f in formulas]

    values = [value for value, _ in results]
    provenance = [prov for _, prov in results]

    if len(values) == 1 and not is_table(values[0]):
        output: Any = values[0]
    else:
        for formula, value in zip(formulas, values):
            if not is_table(value):
                raise ExpressionTypeError(
                    f"Cannot merge non-series result of {formula!r}: {value!r}"
                )
        output = align_and_merge(*values)
        if root.frequency is not None:
            output = to_frequency(output, root.frequency)

    emit_info(
        EventType.batch_completed,
        f"Retrieved {len(formulas)} formula(s)",
        {
            "batch_id": batch_id,
            "rows": output.height if is_table(output) else None,
            "series": [sid for prov in provenance for sid in prov.series_ids()],
        },
        batch_id=batch_id,
    )
    return output, provenance


def to_frequency(table: pl.DataFrame, freq: str) -> pl.DataFrame:
    """Aggregate *table* to *freq* by end-of-period averages.

    Tables already at *freq* are returned unchanged.

    Raises:
        ExpressionTypeError: If *freq* is higher than the table's own
            frequency, or cannot be reached by aggregation.
    """
    current, per_year = get_frequency(table)
    if current == freq:
        return table
    _, target_per_year = get_frequency(freq)
    if per_year is not None and per_year < target_per_year:
        raise ExpressionTypeError(f"Cannot disaggregate {current} data to {freq}")
    if freq not in _AGGREGABLE:
        raise ExpressionTypeError(f"Cannot aggregate {current.lower()} data to {freq}")
    logger.debug("Aggregating %s data to %s", current, freq)
    return agg(table, freq, "AVG")
