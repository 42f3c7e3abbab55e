"""Tests for project configuration loading."""

from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from cbdata.config import (
    DEFAULT_CONFIG,
    context_from_config,
    load_config,
    sources_from_config,
)
from cbdata.sources import ChidataSource, FeedSource, FredSource


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path: Path) -> None:
        config = load_config(tmp_path)
        assert config["db_id"] == DEFAULT_CONFIG["db_id"]
        assert config["max_workers"] == 1
        assert config["chidata_dir"] == str(tmp_path / "chidata")

    def test_user_values_override(self, tmp_path: Path) -> None:
        (tmp_path / "cbdata.yaml").write_text(
            "db_id: FRED\nmax_workers: 4\nstart_date: 2015-01-01\nchidata_dir: store\n"
        )
        config = load_config(tmp_path)
        assert config["db_id"] == "FRED"
        assert config["max_workers"] == 4
        assert config["start_date"] == date(2015, 1, 1)
        assert config["chidata_dir"] == str(tmp_path / "store")

    def test_fred_block_flattened(self, tmp_path: Path) -> None:
        (tmp_path / "cbdata.yaml").write_text(
            "fred:\n  api_key_env: MY_KEY\n  timeout: 5\n"
        )
        config = load_config(tmp_path)
        assert config["fred_api_key_env"] == "MY_KEY"
        assert config["fred_timeout"] == 5
        assert "fred" not in config

    def test_flat_key_wins_over_block(self, tmp_path: Path) -> None:
        (tmp_path / "cbdata.yaml").write_text("fred_timeout: 7\nfred:\n  timeout: 5\n")
        assert load_config(tmp_path)["fred_timeout"] == 7

    def test_empty_file(self, tmp_path: Path) -> None:
        (tmp_path / "cbdata.yaml").write_text("")
        assert load_config(tmp_path)["db_id"] == "USECON"

    def test_non_mapping_rejected(self, tmp_path: Path) -> None:
        (tmp_path / "cbdata.yaml").write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config(tmp_path)


class TestContextFromConfig:
    def test_config_values(self, tmp_path: Path) -> None:
        (tmp_path / "cbdata.yaml").write_text("db_id: chidata\nignore_nan: true\nfrequency: q\n")
        ctx = context_from_config(load_config(tmp_path))
        assert ctx.db_id == "CHIDATA"
        assert ctx.ignore_nan is True
        assert ctx.frequency == "Q"

    def test_overrides_win(self, tmp_path: Path) -> None:
        ctx = context_from_config(
            load_config(tmp_path), db_id="FRED", start_date="2020-01-01", end_date=None, vendor="x"
        )
        assert ctx.db_id == "FRED"
        assert ctx.start_date == date(2020, 1, 1)
        assert ctx.end_date is None
        assert ctx.extras == {"vendor": "x"}

    def test_override_named_config(self, tmp_path: Path) -> None:
        ctx = context_from_config(load_config(tmp_path), config="x")
        assert ctx.extras == {"config": "x"}


class TestSourcesFromConfig:
    def test_registry(self, tmp_path: Path) -> None:
        (tmp_path / "cbdata.yaml").write_text("fred_api_key: abc\nfred_url: http://localhost/fred\n")
        registry = sources_from_config(load_config(tmp_path))
        fred = registry.resolve("FRED")
        assert isinstance(fred, FredSource)
        assert fred.api_key == "abc"
        chidata = registry.resolve("CHIDATA")
        assert isinstance(chidata, ChidataSource)
        assert chidata.directory == tmp_path / "chidata"
        assert isinstance(registry.resolve("HAVER"), FeedSource)
