"""Tests for settings loading."""

import json
import logging

from team_flow.core.settings import AnalyticsSettings, load_settings


def test_defaults():
    settings = AnalyticsSettings()
    assert settings.ideal_load == 8
    assert settings.stale_after_days == 7
    assert settings.default_stagnation_days == 7.0
    assert settings.week_starts_on == 0
    assert settings.port == 4301


def test_file_values_override_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_KEY", raising=False)
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps({"analytics": {"ideal_load": 10, "week_starts_on": 6}, "backend": {"port": 9000}})
    )

    settings = load_settings(path)

    assert settings.ideal_load == 10
    assert settings.week_starts_on == 6
    assert settings.port == 9000
    assert settings.supabase_url is None


def test_environment_overrides_credentials(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"analytics": {"supabase_url": "https://file.example"}}))
    monkeypatch.setenv("SUPABASE_URL", "https://env.example")
    monkeypatch.setenv("SUPABASE_KEY", "secret")

    settings = load_settings(path)

    assert settings.supabase_url == "https://env.example"
    assert settings.supabase_key == "secret"


def test_missing_file_uses_defaults(tmp_path):
    settings = load_settings(tmp_path / "absent.json")
    assert settings.ideal_load == 8


def test_invalid_json_uses_defaults(tmp_path, caplog):
    path = tmp_path / "config.json"
    path.write_text("{not json")

    with caplog.at_level(logging.WARNING):
        settings = load_settings(path)

    assert settings.ideal_load == 8
    assert "Could not load" in caplog.text


def test_unknown_keys_are_ignored(caplog):
    with caplog.at_level(logging.WARNING):
        settings = AnalyticsSettings.from_dict({"ideal_load": 5, "colour": "blue"})

    assert settings.ideal_load == 5
    assert "colour" in caplog.text
