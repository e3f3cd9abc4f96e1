"""Hot reload settings.

Read from a JSON settings file at XDG_CONFIG_HOME/hotview/settings.json,
then overridden by HOTVIEW_* environment variables. The engine itself never
writes settings; save_settings() backs ``hotview config --set``.

This module is a STABLE BOUNDARY: no imports from the rest of hotview.
"""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

DEFAULT_DEBOUNCE_MS = 200
DEFAULT_VIEW_EXTENSIONS = ("fxml", "view")
DEFAULT_STYLESHEET_EXTENSIONS = ("css", "bss", "tcss", "style")

# env var -> settings key
ENV_OVERRIDES = {
    "HOTVIEW_DEBOUNCE_MS": "debounce_ms",
    "HOTVIEW_VIEW_RELOAD": "view_reload",
    "HOTVIEW_STYLESHEET_RELOAD": "stylesheet_reload",
    "HOTVIEW_SYNC_TO_OUTPUT": "sync_to_output",
    "HOTVIEW_VIEW_EXTENSIONS": "view_extensions",
    "HOTVIEW_STYLESHEET_EXTENSIONS": "stylesheet_extensions",
}


@dataclass(frozen=True)
class HotReloadSettings:
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    view_reload: bool = True
    stylesheet_reload: bool = True
    # copy an edited source file over its build-output twin before reloading
    sync_to_output: bool = True
    view_extensions: tuple[str, ...] = DEFAULT_VIEW_EXTENSIONS
    stylesheet_extensions: tuple[str, ...] = DEFAULT_STYLESHEET_EXTENSIONS

    @property
    def debounce_s(self) -> float:
        return self.debounce_ms / 1000.0

    def with_overrides(self, **overrides: object) -> HotReloadSettings:
        """Return a copy with raw values normalized like file/env values."""
        data = {key: _normalize_value(key, value) for key, value in overrides.items() if value is not None}
        return replace(self, **data)


# ─── Normalization ────────────────────────────────────────────────────────────


def _normalize_bool(value: object, *, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    raw = str(value).strip().lower()
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    return default


def _normalize_debounce_ms(value: object) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        parsed = DEFAULT_DEBOUNCE_MS
    return max(0, parsed)


def _normalize_extensions(value: object, default: tuple[str, ...]) -> tuple[str, ...]:
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(v) for v in value]
    else:
        return default
    cleaned = tuple(dict.fromkeys(i.strip().lower().lstrip(".") for i in items if i.strip()))
    return cleaned or default


def _normalize_value(key: str, value: object) -> object:
    # // [LAW:dataflow-not-control-flow] One normalization pipeline for file, env and CLI values.
    if key == "debounce_ms":
        return _normalize_debounce_ms(value)
    if key in {"view_reload", "stylesheet_reload", "sync_to_output"}:
        return _normalize_bool(value, default=True)
    if key == "view_extensions":
        return _normalize_extensions(value, DEFAULT_VIEW_EXTENSIONS)
    if key == "stylesheet_extensions":
        return _normalize_extensions(value, DEFAULT_STYLESHEET_EXTENSIONS)
    return value


# ─── File I/O ─────────────────────────────────────────────────────────────────


def get_config_path() -> Path:
    """Return path to settings file.

    Uses XDG_CONFIG_HOME (default ~/.config) / hotview / settings.json.
    """
    config_home = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
    return Path(config_home) / "hotview" / "settings.json"


def load_settings_file(path: Path | None = None) -> dict:
    """Load settings from JSON file. Returns empty dict on missing/corrupt file."""
    path = path or get_config_path()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def save_settings(data: dict, path: Path | None = None) -> None:
    """Atomic write of settings dict to JSON file."""
    path = path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def load(env: Mapping[str, str] | None = None, path: Path | None = None) -> HotReloadSettings:
    """Defaults, then the settings file, then environment overrides."""
    env = os.environ if env is None else env
    raw: dict[str, object] = {}
    file_data = load_settings_file(path)
    for key in HotReloadSettings.__dataclass_fields__:
        if key in file_data:
            raw[key] = file_data[key]
    for env_key, key in ENV_OVERRIDES.items():
        if env_key in env:
            raw[key] = env[env_key]
    return HotReloadSettings().with_overrides(**raw)
