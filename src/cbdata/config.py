"""Project-level configuration (``cbdata.yaml``)."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from cbdata.expressions.options import DEFAULT_DB_ID, EvaluationContext
from cbdata.sources import FeedFunction, FredSource, SourceRegistry, default_sources
from cbdata.sources.fred import API_KEY_ENV, DEFAULT_FRED_URL

CONFIG_FILE = "cbdata.yaml"

DEFAULT_CONFIG = {
    "db_id": DEFAULT_DB_ID,
    "ignore_nan": False,
    "frequency": None,
    "start_date": None,
    "end_date": None,
    "fred_url": DEFAULT_FRED_URL,
    "fred_api_key": None,
    "fred_api_key_env": API_KEY_ENV,
    "fred_timeout": 30.0,
    "chidata_dir": "chidata",
    "max_workers": 1,
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}


def _flatten_fred_block(user_config: dict[str, Any]) -> dict[str, Any]:
    """Flatten a nested ``fred:`` block into ``fred_*`` keys.

    Supports::

        fred:
          url: https://api.stlouisfed.org/fred/
          api_key_env: FRED_API_KEY
          timeout: 10
    """
    block = user_config.pop("fred", None)
    if not isinstance(block, dict):
        return user_config
    for key, value in block.items():
        flat = f"fred_{key}"
        if flat not in user_config:
            user_config[flat] = value
    return user_config


def load_config(project_dir: Path | str) -> dict[str, Any]:
    """Load project configuration from ``cbdata.yaml``, with defaults.

    Args:
        project_dir: Directory holding ``cbdata.yaml``.  A missing file
            yields the defaults.

    Returns:
        Merged configuration dict.  ``chidata_dir`` is resolved against
        *project_dir*.

    Raises:
        ValueError: If the file does not hold a YAML mapping.
    """
    project_dir = Path(project_dir)
    config = dict(DEFAULT_CONFIG)
    config_path = project_dir / CONFIG_FILE
    if config_path.exists():
        user_config = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(user_config, dict):
            raise ValueError(f"{config_path} must contain a mapping")
        config.update(_flatten_fred_block(user_config))

    if config.get("chidata_dir") is not None:
        config["chidata_dir"] = str(project_dir / config["chidata_dir"])
    return config


def context_from_config(config: dict[str, Any], /, **overrides: Any) -> EvaluationContext:
    """Build the root evaluation context from *config* and *overrides*.

    Overrides (e.g. from the command line) win over config values; ``None``
    overrides are ignored.
    """
    options = {
        key: config.get(key)
        for key in ("db_id", "ignore_nan", "frequency", "start_date", "end_date")
    }
    options.update({k: v for k, v in overrides.items() if v is not None})
    return EvaluationContext().with_options(**options)


def sources_from_config(config: dict[str, Any], feed: FeedFunction | None = None) -> SourceRegistry:
    """Build the source registry described by *config*."""
    fred = FredSource(
        api_key=config.get("fred_api_key"),
        base_url=config.get("fred_url") or DEFAULT_FRED_URL,
        timeout=float(config.get("fred_timeout") or 30.0),
        api_key_env=config.get("fred_api_key_env") or API_KEY_ENV,
    )
    return default_sources(fred=fred, chidata_dir=config.get("chidata_dir"), feed=feed)
