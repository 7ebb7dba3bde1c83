from __future__ import annotations

import json

import pytest

from settings import SettingsError, TabiSettings, load_settings, save_settings


def test_missing_file_is_created_with_defaults(tmp_path) -> None:
    path = tmp_path / "config" / "settings.json"

    settings = load_settings(str(path), environ={})

    assert path.exists()
    assert json.loads(path.read_text(encoding="utf-8"))["request_timeout_seconds"] == 10
    assert settings.is_configured is False
    assert settings.probe_interval_seconds == 30


def test_values_are_clamped_and_trimmed(tmp_path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps(
            {
                "supabase_url": " https://example.supabase.co/ ",
                "anon_key": "key",
                "request_timeout_seconds": 500,
                "probe_interval_seconds": "fast",
                "unknown": "ignored",
            }
        ),
        encoding="utf-8",
    )

    settings = load_settings(str(path), environ={})

    assert settings.supabase_url == "https://example.supabase.co"
    assert settings.request_timeout_seconds == 60
    assert settings.probe_interval_seconds == 30
    assert settings.is_configured


def test_environment_overrides_file(tmp_path) -> None:
    path = tmp_path / "settings.json"
    save_settings(TabiSettings(supabase_url="https://file.example", anon_key="file-key"), str(path))

    settings = load_settings(
        str(path),
        environ={"TABI_SUPABASE_URL": "https://env.example/", "TABI_DEFAULT_TRIP_ID": "trip-9"},
    )

    assert settings.supabase_url == "https://env.example"
    assert settings.anon_key == "file-key"
    assert settings.default_trip_id == "trip-9"


def test_invalid_json_raises(tmp_path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(SettingsError):
        load_settings(str(path), environ={})


def test_require_configured_names_missing_value() -> None:
    with pytest.raises(SettingsError, match="anon key"):
        TabiSettings(supabase_url="https://example.supabase.co").require_configured()
