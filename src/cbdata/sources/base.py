"""Source connector protocol and the registry that selects connectors."""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Protocol

import polars as pl

from cbdata.expressions.options import EvaluationContext
from cbdata.expressions.provenance import Provenance
from cbdata.tables import filter_dates, normalize_table


class ConnectorError(Exception):
    """A connector could not deliver the requested series."""


class SourceConnector(Protocol):
    """Anything that turns a series name and context into a table."""

    def fetch(self, series: str, context: EvaluationContext) -> tuple[pl.DataFrame, Provenance]:
        """Return the series as a time series table plus its provenance leaf."""
        ...


def finalize_table(df: pl.DataFrame, context: EvaluationContext) -> pl.DataFrame:
    """Normalize connector output and apply the context's date bounds."""
    return filter_dates(normalize_table(df), context.start_date, context.end_date)


class SourceRegistry:
    """Immutable mapping from database id to connector.

    Ids are matched case-insensitively.  Ids without a dedicated connector
    go to the *default* connector.
    """

    def __init__(self, connectors: Mapping[str, SourceConnector], default: SourceConnector) -> None:
        self._connectors: Mapping[str, SourceConnector] = MappingProxyType(
            {key.upper(): conn for key, conn in connectors.items()}
        )
        self._default = default

    def resolve(self, db_id: str) -> SourceConnector:
        return self._connectors.get(db_id.upper(), self._default)

    def ids(self) -> list[str]:
        return sorted(self._connectors)

    def replaced(self, **connectors: SourceConnector) -> SourceRegistry:
        """A new registry with *connectors* added or overriding existing ids."""
        merged = dict(self._connectors)
        merged.update({k.upper(): v for k, v in connectors.items()})
        return SourceRegistry(merged, self._default)
