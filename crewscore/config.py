"""
crewscore.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for deployment settings (public app URL used in
notification links, the health-alert drop threshold, the founding-member
window).  Secrets such as ``DATABASE_URL`` come from the environment.

Usage::

    from crewscore.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.app_url)           # "https://crew.example.com"
    print(cfg.health_alert_drop) # 15
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CrewScoreConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    app_name: str
    app_url: str  # Base URL for links in notifications (no trailing slash)

    # Health score: alert admins when the score drops by at least this much
    health_alert_drop: int = 15

    # Members joining within this many days of group creation are "founding"
    founding_window_days: int = 30

    def link(self, path: str) -> str:
        """Join *path* onto the public app URL."""
        return f"{self.app_url.rstrip('/')}/{path.lstrip('/')}"


DEFAULT_CONFIG = CrewScoreConfig(app_name="Crew", app_url="http://localhost:3000")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> CrewScoreConfig:
    """Read *path* and return a :class:`CrewScoreConfig` instance.

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

    return CrewScoreConfig(
        app_name=raw["app_name"],
        app_url=raw["app_url"],
        health_alert_drop=int(raw.get("health_alert_drop", 15)),
        founding_window_days=int(raw.get("founding_window_days", 30)),
    )
