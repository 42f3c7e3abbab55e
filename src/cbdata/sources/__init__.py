"""Source connectors and the registry that picks one per database id."""

from __future__ import annotations

from pathlib import Path

from cbdata.sources.base import (
    ConnectorError,
    SourceConnector,
    SourceRegistry,
    finalize_table,
)
from cbdata.sources.chidata import ChidataSource
from cbdata.sources.feed import FeedFunction, FeedSource
from cbdata.sources.fred import FredSource


def default_sources(
    *,
    fred: FredSource | None = None,
    chidata_dir: Path | str | None = None,
    feed: FeedFunction | None = None,
) -> SourceRegistry:
    """Registry with FRED, CHIDATA and the feed connector as default.

    Args:
        fred: FRED connector; a key-from-environment one if omitted.
        chidata_dir: CHIDATA directory; the current directory if omitted.
        feed: Feed function for every other database id.
    """
    return SourceRegistry(
        {
            "FRED": fred or FredSource(),
            "CHIDATA": ChidataSource(chidata_dir if chidata_dir is not None else Path.cwd()),
        },
        default=FeedSource(feed),
    )


__all__ = [
    "ChidataSource",
    "ConnectorError",
    "FeedFunction",
    "FeedSource",
    "FredSource",
    "SourceConnector",
    "SourceRegistry",
    "default_sources",
    "finalize_table",
]
