"""CHIDATA: a local store of CSV files.

Layout of the store directory::

    index.csv            Series,Section   -- which section holds each series
    <section>_data.csv   date,SERIES_A,SERIES_B,...
    <section>_prop.csv   Series,<property>,...   (optional)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import polars as pl

from cbdata.expressions.options import EvaluationContext
from cbdata.expressions.provenance import Provenance, series_leaf
from cbdata.sources.base import ConnectorError, finalize_table
from cbdata.tables import DATE_COL, normalize_table

INDEX_FILE = "index.csv"


class ChidataSource:
    """Read series from a CHIDATA directory."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def section_of(self, series: str) -> str:
        """Section holding *series*, per ``index.csv``.

        Raises:
            ConnectorError: If the index is missing or lacks the series.
        """
        index_path = self.directory / INDEX_FILE
        if not index_path.exists():
            raise ConnectorError(f"CHIDATA index file {index_path} could not be found")
        index = pl.read_csv(index_path, infer_schema_length=0)
        cols = {c.lower(): c for c in index.columns}
        if "series" not in cols or "section" not in cols:
            raise ConnectorError(f"{index_path} must have Series and Section columns")
        match = index.filter(
            pl.col(cols["series"]).str.to_uppercase() == series.upper()
        )
        if match.height == 0:
            raise ConnectorError(f"Series {series!r} not found in CHIDATA index")
        return match[cols["section"]][0]

    def load_section(self, section: str) -> tuple[pl.DataFrame, Path]:
        """The full data table of *section* and its file path."""
        path = self.directory / f"{section}_data.csv"
        if not path.exists():
            raise ConnectorError(f"Data file {path} could not be found")
        return normalize_table(pl.read_csv(path, try_parse_dates=True)), path

    def properties(self, section: str, series: str) -> dict[str, Any]:
        """Row of ``<section>_prop.csv`` for *series*, or an empty dict."""
        path = self.directory / f"{section}_prop.csv"
        if not path.exists():
            return {}
        props = pl.read_csv(path, infer_schema_length=0)
        key = next((c for c in props.columns if c.lower() == "series"), None)
        if key is None:
            return {}
        rows = props.filter(pl.col(key).str.to_uppercase() == series.upper()).to_dicts()
        if not rows:
            return {}
        return {k: v for k, v in rows[0].items() if k != key}

    def fetch(self, series: str, context: EvaluationContext) -> tuple[pl.DataFrame, Provenance]:
        name = series.upper()
        section = self.section_of(name)
        data, path = self.load_section(section)
        if name not in data.columns:
            raise ConnectorError(f"Series {name!r} not found in section {section!r}")
        table = finalize_table(data.select(DATE_COL, name), context)
        info: dict[str, Any] = {"provider": "chidata", "section": section, "file": str(path)}
        info.update(self.properties(section, name))
        return table, series_leaf(f"{name}@CHIDATA", info)
