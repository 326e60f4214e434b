"""
gamehunt.config — YAML Configuration Loader
============================================

Reads ``config.yaml`` for soft, non-secret settings (site identity, API
bind address, rate-limit window, leaderboard size).  Secrets and
infrastructure (``DATABASE_URL``, ``JWT_SECRET``, CORS origins) come from
the environment via ``.env``.

Usage::

    from gamehunt.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.site_name)         # "Mobile Game Hunt"
    print(cfg.api_port)          # 8000
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GameHuntConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    site_name: str

    # API server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Mutation throttling (per user, sliding window)
    rate_limit_requests: int = 30
    rate_limit_window_seconds: int = 60

    # Presentation
    leaderboard_default_limit: int = 10


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> GameHuntConfig:
    """Read *path* and return a :class:`GameHuntConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = GameHuntConfig(site_name="")
    return GameHuntConfig(
        site_name=raw["site_name"],
        api_host=str(raw.get("api_host", defaults.api_host)),
        api_port=int(raw.get("api_port", defaults.api_port)),
        rate_limit_requests=int(raw.get("rate_limit_requests", defaults.rate_limit_requests)),
        rate_limit_window_seconds=int(
            raw.get("rate_limit_window_seconds", defaults.rate_limit_window_seconds)
        ),
        leaderboard_default_limit=int(
            raw.get("leaderboard_default_limit", defaults.leaderboard_default_limit)
        ),
    )
