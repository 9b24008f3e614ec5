"""
tests/test_config.py — Configuration Loader Tests
==================================================
"""

from __future__ import annotations

import pytest

from crewscore.config import DEFAULT_CONFIG, CrewScoreConfig, load_config


def _write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:

    def test_full_file(self, tmp_path):
        cfg = load_config(_write(tmp_path, (
            'app_name: "Riverside"\n'
            'app_url: "https://crew.example.com/"\n'
            "health_alert_drop: 10\n"
            "founding_window_days: 14\n"
        )))
        assert cfg == CrewScoreConfig(
            app_name="Riverside",
            app_url="https://crew.example.com/",
            health_alert_drop=10,
            founding_window_days=14,
        )

    def test_optional_keys_default(self, tmp_path):
        cfg = load_config(_write(tmp_path, 'app_name: "Crew"\napp_url: "https://c.test"\n'))
        assert cfg.health_alert_drop == 15
        assert cfg.founding_window_days == 30

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_missing_required_key(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, 'app_name: "Crew"\n'))

    def test_empty_file(self, tmp_path):
        with pytest.raises(KeyError):
            load_config(_write(tmp_path, ""))


class TestLinks:

    @pytest.mark.parametrize(
        "base,path",
        [
            ("https://crew.example.com", "/g/riverside"),
            ("https://crew.example.com/", "/g/riverside"),
            ("https://crew.example.com/", "g/riverside"),
        ],
    )
    def test_link_joins_cleanly(self, base, path):
        cfg = CrewScoreConfig(app_name="Crew", app_url=base)
        assert cfg.link(path) == "https://crew.example.com/g/riverside"

    def test_default_points_at_localhost(self):
        assert DEFAULT_CONFIG.link("/events/e1") == "http://localhost:3000/events/e1"
