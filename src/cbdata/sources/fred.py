"""FRED / ALFRED connector over the public HTTP API.

API documentation: https://fred.stlouisfed.org/docs/api/
"""

from __future__ import annotations

import logging
import os
from datetime import date
from typing import Any

import httpx
import polars as pl

from cbdata.expressions.options import EvaluationContext
from cbdata.expressions.provenance import Provenance, series_leaf
from cbdata.sources.base import ConnectorError, finalize_table
from cbdata.tables import DATE_COL, align_and_merge, to_period_end

logger = logging.getLogger(__name__)

DEFAULT_FRED_URL = "https://api.stlouisfed.org/fred/"
API_KEY_ENV = "FRED_API_KEY"


class FredSource:
    """Fetch series (optionally as past vintages) from FRED.

    With ``as_of`` in the context the series is returned as it was published
    on that date.  With ``as_of_start``/``as_of_end`` every vintage released
    in the range becomes a column named ``SERIES_YYYY_MM_DD``.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = DEFAULT_FRED_URL,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
        api_key_env: str = API_KEY_ENV,
    ) -> None:
        self._api_key = api_key
        self._api_key_env = api_key_env
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._timeout = timeout
        self._client = client

    @property
    def api_key(self) -> str:
        key = self._api_key or os.environ.get(self._api_key_env)
        if not key:
            raise ConnectorError(
                f"FRED API key required. Set {self._api_key_env} or configure fred_api_key."
            )
        return key

    def fetch(self, series: str, context: EvaluationContext) -> tuple[pl.DataFrame, Provenance]:
        series_id = series.upper()
        rt_start, rt_end = _realtime_window(context)

        params: dict[str, Any] = {"series_id": series_id, "api_key": self.api_key, "file_type": "json"}
        if rt_start is not None:
            params["realtime_start"] = rt_start.isoformat()
            params["realtime_end"] = rt_end.isoformat()
        else:
            logger.debug("Pulling %s from FRED without a vintage date", series_id)
        if context.start_date is not None:
            params["observation_start"] = context.start_date.isoformat()
        if context.end_date is not None:
            params["observation_end"] = context.end_date.isoformat()

        payload = self._get("series/observations", params)
        observations = payload.get("observations")
        if not observations:
            raise ConnectorError(f"No observations returned for {series_id}")

        ranged = rt_start is not None and rt_start != rt_end
        table = to_period_end(_vintage_table(series_id, observations, ranged))
        table = finalize_table(table, context)

        meta_params = {k: v for k, v in params.items() if not k.startswith("observation_")}
        meta = self._get("series", meta_params)
        info: dict[str, Any] = {"provider": "fred"}
        seriess = meta.get("seriess") or []
        if seriess:
            info.update(seriess[0])
        return table, series_leaf(f"{series_id}@FRED", info)

    def _get(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        # httpx error messages carry the full URL, api_key included; they are
        # re-raised with the endpoint name only.
        url = self._base_url + endpoint
        try:
            if self._client is not None:
                response = self._client.get(url, params=params)
            else:
                with httpx.Client(timeout=self._timeout) as client:
                    response = client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise ConnectorError(f"FRED request to {endpoint} failed: {type(exc).__name__}") from exc
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and "error_message" in payload:
            raise ConnectorError(f"FRED error for {params.get('series_id')}: {payload['error_message']}")
        if response.is_error:
            raise ConnectorError(f"FRED request to {endpoint} failed with HTTP {response.status_code}")
        if not isinstance(payload, dict):
            raise ConnectorError(f"Unexpected FRED response from {endpoint}")
        return payload


def _realtime_window(context: EvaluationContext) -> tuple[date | None, date | None]:
    """ALFRED realtime bounds from ``as_of``/``as_of_start``/``as_of_end``."""
    if context.as_of is not None:
        if context.as_of_start is not None or context.as_of_end is not None:
            raise ConnectorError("asOf cannot be combined with asOfStart or asOfEnd")
        return context.as_of, context.as_of
    start, end = context.as_of_start, context.as_of_end
    if start is None and end is None:
        return None, None
    return start or end, end or start


def _vintage_table(series_id: str, observations: list[dict[str, Any]], ranged: bool) -> pl.DataFrame:
    """Observations as a table.

    For a realtime range there is one column per vintage (each distinct
    ``realtime_start``); otherwise, or when only one vintage exists, a single
    column named after the series.
    """
    obs = pl.DataFrame(observations).select(
        pl.col("date").str.to_date(),
        pl.col("value").cast(pl.Float64, strict=False),
        pl.col("realtime_start").str.to_date().alias("rt_start"),
        pl.col("realtime_end").str.to_date().alias("rt_end"),
    )
    vintages = obs["rt_start"].unique().sort().to_list()
    if not ranged or len(vintages) == 1:
        return (
            obs.sort("rt_start")
            .select(DATE_COL, pl.col("value").alias(series_id))
            .unique(DATE_COL, keep="last", maintain_order=True)
            .sort(DATE_COL)
        )

    frames = []
    for vintage in vintages:
        name = f"{series_id}_{vintage:%Y_%m_%d}"
        current = obs.filter((pl.col("rt_start") <= vintage) & (pl.col("rt_end") >= vintage))
        frames.append(
            current.select(DATE_COL, pl.col("value").alias(name)).unique(DATE_COL, keep="last")
        )
    return align_and_merge(*frames)
