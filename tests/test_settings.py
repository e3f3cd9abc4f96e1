"""Tests for settings loading, normalization and persistence."""

import json

import pytest

import hotview.settings
from hotview.settings import HotReloadSettings


@pytest.fixture
def config_home(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
    for env_key in hotview.settings.ENV_OVERRIDES:
        monkeypatch.delenv(env_key, raising=False)
    return tmp_path


def test_defaults(config_home):
    settings = hotview.settings.load()
    assert settings == HotReloadSettings()
    assert settings.debounce_ms == 200
    assert settings.debounce_s == pytest.approx(0.2)
    assert settings.sync_to_output is True


def test_config_path_uses_xdg(config_home):
    assert hotview.settings.get_config_path() == config_home / "hotview" / "settings.json"


def test_load_from_file(config_home):
    hotview.settings.save_settings({"debounce_ms": 50, "stylesheet_reload": False, "unknown": 1})
    settings = hotview.settings.load(env={})
    assert settings.debounce_ms == 50
    assert settings.stylesheet_reload is False
    assert settings.view_reload is True


def test_corrupt_file_falls_back_to_defaults(config_home):
    path = hotview.settings.get_config_path()
    path.parent.mkdir(parents=True)
    path.write_text("{not json", encoding="utf-8")
    assert hotview.settings.load_settings_file() == {}
    assert hotview.settings.load(env={}) == HotReloadSettings()


def test_non_object_file_is_ignored(config_home):
    hotview.settings.save_settings([1, 2, 3])
    assert hotview.settings.load_settings_file() == {}


def test_env_overrides_file(config_home):
    hotview.settings.save_settings({"debounce_ms": 50, "sync_to_output": True})
    env = {
        "HOTVIEW_DEBOUNCE_MS": "75",
        "HOTVIEW_SYNC_TO_OUTPUT": "off",
        "HOTVIEW_STYLESHEET_EXTENSIONS": ".QSS, css",
    }
    settings = hotview.settings.load(env=env)
    assert settings.debounce_ms == 75
    assert settings.sync_to_output is False
    assert settings.stylesheet_extensions == ("qss", "css")


@pytest.mark.parametrize(
    "raw, expected",
    [("-5", 0), ("abc", 200), (None, 200), ("0", 0), (300, 300)],
)
def test_debounce_normalization(raw, expected):
    assert hotview.settings._normalize_debounce_ms(raw) == expected


def test_bool_normalization():
    assert hotview.settings._normalize_bool("YES") is True
    assert hotview.settings._normalize_bool("0") is False
    assert hotview.settings._normalize_bool("maybe", default=True) is True


def test_empty_extension_list_keeps_default():
    assert hotview.settings._normalize_extensions(" , ", ("fxml",)) == ("fxml",)
    assert hotview.settings._normalize_extensions(["UI", "ui"], ("fxml",)) == ("ui",)


def test_with_overrides_skips_none():
    settings = HotReloadSettings(debounce_ms=10).with_overrides(debounce_ms=None, view_reload="false")
    assert settings.debounce_ms == 10
    assert settings.view_reload is False


def test_save_is_atomic_json(config_home):
    hotview.settings.save_settings({"debounce_ms": 120})
    path = hotview.settings.get_config_path()
    assert json.loads(path.read_text(encoding="utf-8")) == {"debounce_ms": 120}
    assert [p.name for p in path.parent.iterdir()] == ["settings.json"]
