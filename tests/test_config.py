"""
tests/test_config.py — YAML Configuration Loader
=================================================
"""

from __future__ import annotations

import dataclasses

import pytest

from gamehunt.config import GameHuntConfig, load_config


def _write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_minimal_file_uses_defaults(self, tmp_path):
        cfg = load_config(_write(tmp_path, "site_name: Mobile Game Hunt\n"))
        assert cfg.site_name == "Mobile Game Hunt"
        assert cfg.api_port == 8000
        assert cfg.rate_limit_requests == 30
        assert cfg.rate_limit_window_seconds == 60
        assert cfg.leaderboard_default_limit == 10

    def test_overrides(self, tmp_path):
        cfg = load_config(_write(tmp_path, (
            "site_name: Hunt\n"
            "api_host: 127.0.0.1\n"
            "api_port: 9001\n"
            "rate_limit_requests: 5\n"
            "rate_limit_window_seconds: 10\n"
            "leaderboard_default_limit: 25\n"
        )))
        assert cfg.api_host == "127.0.0.1"
        assert cfg.api_port == 9001
        assert cfg.rate_limit_requests == 5
        assert cfg.rate_limit_window_seconds == 10
        assert cfg.leaderboard_default_limit == 25

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_missing_site_name(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, "api_port: 8000\n"))

    def test_empty_file(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, ""))

    def test_config_is_frozen(self):
        cfg = GameHuntConfig(site_name="Hunt")
        with pytest.raises(dataclasses.FrozenInstanceError):
            cfg.site_name = "Other"
