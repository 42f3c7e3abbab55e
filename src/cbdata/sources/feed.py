"""Terminal-feed connector: the default for vendor database ids.

The feed itself (a data terminal session, a vendor SDK...) is supplied by
the caller as a function ``feed(series, db_id, context) -> DataFrame``.
"""

from __future__ import annotations

from typing import Callable

import polars as pl

from cbdata.expressions.options import EvaluationContext
from cbdata.expressions.provenance import Provenance, series_leaf
from cbdata.sources.base import ConnectorError, finalize_table

FeedFunction = Callable[[str, str, EvaluationContext], pl.DataFrame]


class FeedSource:
    """Delegate series retrieval to a caller-supplied feed function."""

    def __init__(self, feed: FeedFunction | None = None, name: str = "feed") -> None:
        self._feed = feed
        self.name = name

    @property
    def configured(self) -> bool:
        return self._feed is not None

    def fetch(self, series: str, context: EvaluationContext) -> tuple[pl.DataFrame, Provenance]:
        if self._feed is None:
            raise ConnectorError(
                f"No data feed configured for database {context.db_id!r}; "
                "use FRED or CHIDATA, or pass a feed function"
            )
        name = series.upper()
        raw = self._feed(name, context.db_id, context)
        table = finalize_table(raw, context)
        info = {"provider": self.name, "db_id": context.db_id}
        return table, series_leaf(f"{name}@{context.db_id}", info)
