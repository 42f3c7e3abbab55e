"""Shared fixtures: in-memory sources and small monthly tables."""

from __future__ import annotations

from datetime import date
from typing import Any

import polars as pl
import pytest

from cbdata.expressions.evaluator import Evaluator
from cbdata.expressions.options import EvaluationContext
from cbdata.expressions.provenance import Provenance, series_leaf
from cbdata.functions.registry import default_registry
from cbdata.logging.events import reset_sink
from cbdata.sources.base import ConnectorError, SourceRegistry, finalize_table
from cbdata.tables import make_table


def month_ends(n: int, start: date = date(2020, 1, 1)) -> list[date]:
    """*n* consecutive month-end dates from *start*'s month."""
    firsts = pl.date_range(start, date(start.year + 10, 1, 1), "1mo", eager=True)[:n]
    return firsts.dt.month_end().to_list()


class StaticSource:
    """Connector serving fixed tables and recording every request."""

    def __init__(self, tables: dict[str, pl.DataFrame]) -> None:
        self.tables = {k.upper(): v for k, v in tables.items()}
        self.calls: list[tuple[str, EvaluationContext]] = []

    def fetch(self, series: str, context: EvaluationContext) -> tuple[pl.DataFrame, Provenance]:
        self.calls.append((series, context))
        name = series.upper()
        if name not in self.tables:
            raise ConnectorError(f"unknown series {name}")
        table = finalize_table(self.tables[name], context)
        return table, series_leaf(f"{name}@{context.db_id}", {"provider": "static"})


@pytest.fixture(autouse=True)
def _detach_event_sink() -> Any:
    yield
    reset_sink()


@pytest.fixture
def series_a() -> pl.DataFrame:
    """Jan-Apr 2020, values 1..4."""
    return make_table(month_ends(4), [1.0, 2.0, 3.0, 4.0], name="A")


@pytest.fixture
def series_b() -> pl.DataFrame:
    """Feb-May 2020, values 10..40."""
    return make_table(month_ends(4, date(2020, 2, 1)), [10.0, 20.0, 30.0, 40.0], name="B")


@pytest.fixture
def static_source(series_a: pl.DataFrame, series_b: pl.DataFrame) -> StaticSource:
    quarterly = make_table(
        [date(2020, 3, 31), date(2020, 6, 30), date(2020, 9, 30)], [1.0, 2.0, 3.0], name="QTR"
    )
    return StaticSource({"A": series_a, "B": series_b, "QTR": quarterly})


@pytest.fixture
def fred_static(series_a: pl.DataFrame) -> StaticSource:
    return StaticSource({"A": series_a.with_columns(pl.col("A") * 100)})


@pytest.fixture
def evaluator(static_source: StaticSource, fred_static: StaticSource) -> Evaluator:
    sources = SourceRegistry({"FRED": fred_static}, default=static_source)
    return Evaluator(sources=sources, transforms=default_registry())
