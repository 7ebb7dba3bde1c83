"""Application configuration helpers for Tabi."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from tabi import app_paths


logger = logging.getLogger(__name__)


SETTINGS_FILENAME = "settings.json"
DEFAULT_SETTINGS_PATH = str(app_paths.APP_DIR / SETTINGS_FILENAME)

DEFAULT_REQUEST_TIMEOUT = 10
DEFAULT_PROBE_INTERVAL = 30

# Environment variable -> settings key
ENV_OVERRIDES: Dict[str, str] = {
    "TABI_SUPABASE_URL": "supabase_url",
    "TABI_SUPABASE_ANON_KEY": "anon_key",
    "TABI_ACCESS_TOKEN": "access_token",
    "TABI_DEFAULT_TRIP_ID": "default_trip_id",
}


class SettingsError(RuntimeError):
    """Raised when the configuration cannot be used to reach the backend."""


@dataclass
class TabiSettings:
    supabase_url: str = ""
    anon_key: str = ""
    access_token: str = ""
    default_trip_id: str = ""
    request_timeout_seconds: int = DEFAULT_REQUEST_TIMEOUT
    probe_interval_seconds: int = DEFAULT_PROBE_INTERVAL

    @property
    def is_configured(self) -> bool:
        return bool(self.supabase_url and self.anon_key)

    def require_configured(self) -> None:
        if not self.supabase_url:
            raise SettingsError(
                "Supabase URL is not configured. Set TABI_SUPABASE_URL or edit settings.json."
            )
        if not self.anon_key:
            raise SettingsError(
                "Supabase anon key is not configured. Set TABI_SUPABASE_ANON_KEY or edit settings.json."
            )

    def to_json(self) -> Dict[str, object]:
        return {
            "supabase_url": self.supabase_url,
            "anon_key": self.anon_key,
            "access_token": self.access_token,
            "default_trip_id": self.default_trip_id,
            "request_timeout_seconds": self.request_timeout_seconds,
            "probe_interval_seconds": self.probe_interval_seconds,
        }


def _default_settings() -> Dict[str, object]:
    return TabiSettings().to_json()


def _clamp_int(value: object, default: int, minimum: int, maximum: int) -> int:
    try:
        return max(minimum, min(maximum, int(value)))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def _ensure_settings_file(path: str) -> Dict[str, object]:
    default_settings = _default_settings()
    if not os.path.exists(path):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w", encoding="utf-8") as handle:
            json.dump(default_settings, handle, indent=2)
        return dict(default_settings)

    with open(path, "r", encoding="utf-8") as handle:
        try:
            data = json.load(handle)
        except json.JSONDecodeError as exc:
            raise SettingsError(f"Settings file {path} is not valid JSON: {exc}") from exc

    merged: Dict[str, object] = dict(default_settings)
    if not isinstance(data, Mapping):
        logger.warning("Ignoring settings file %s: expected a JSON object", path)
        return merged

    for key, value in data.items():
        if key == "request_timeout_seconds":
            merged[key] = _clamp_int(value, DEFAULT_REQUEST_TIMEOUT, 1, 60)
        elif key == "probe_interval_seconds":
            merged[key] = _clamp_int(value, DEFAULT_PROBE_INTERVAL, 5, 600)
        elif key in default_settings and isinstance(value, str):
            merged[key] = value.strip()
    return merged


def _apply_environment(data: Dict[str, object], environ: Mapping[str, str]) -> None:
    for env_var, key in ENV_OVERRIDES.items():
        value = environ.get(env_var)
        if value:
            data[key] = value.strip()


def load_settings(
    path: str = DEFAULT_SETTINGS_PATH,
    environ: Optional[Mapping[str, str]] = None,
) -> TabiSettings:
    data = _ensure_settings_file(path)
    _apply_environment(data, os.environ if environ is None else environ)
    return TabiSettings(
        supabase_url=str(data.get("supabase_url", "")).rstrip("/"),
        anon_key=str(data.get("anon_key", "")),
        access_token=str(data.get("access_token", "")),
        default_trip_id=str(data.get("default_trip_id", "")),
        request_timeout_seconds=int(data.get("request_timeout_seconds", DEFAULT_REQUEST_TIMEOUT)),
        probe_interval_seconds=int(data.get("probe_interval_seconds", DEFAULT_PROBE_INTERVAL)),
    )


def save_settings(settings: TabiSettings, path: str = DEFAULT_SETTINGS_PATH) -> None:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(path, "w", encoding="utf-8") as handle:
        json.dump(settings.to_json(), handle, indent=2)


__all__ = [
    "DEFAULT_SETTINGS_PATH",
    "SettingsError",
    "TabiSettings",
    "load_settings",
    "save_settings",
]
