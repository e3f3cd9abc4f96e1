"""Pytest configuration and shared fixtures for hotview tests."""

import threading
from pathlib import Path

import pytest

import hotview.logging_setup


FX_NS = 'xmlns:fx="http://javafx.com/fxml/1"'


def view_markup(*include_sources, tag="VBox"):
    """A minimal view file including each of ``include_sources``."""
    body = "".join(f'<fx:include source="{source}"/>' for source in include_sources)
    return f'<?xml version="1.0" encoding="UTF-8"?>\n<{tag} {FX_NS}>{body}</{tag}>\n'


class FakeView:
    """Reloadable test double that records every call and the thread it ran on."""

    def __init__(self, resource, location, style_target=None, fail=False):
        self._resource = resource
        self._location = location
        self._style_target = style_target
        self._fail = fail
        self.reloads = 0
        self.reload_threads = []

    def resource_path(self):
        return self._resource

    def source_location(self):
        return self._location

    def reload(self):
        self.reloads += 1
        self.reload_threads.append(threading.current_thread().name)
        if self._fail:
            raise RuntimeError(f"reload failed for {self._resource}")

    def style_refresh_target(self):
        return self._style_target

    def __repr__(self):
        return f"<FakeView {self._resource}>"


class StyleTarget:
    """Object exposing refresh_styles(), as a toolkit scene root would."""

    def __init__(self, fail=False):
        self.refreshes = 0
        self._fail = fail

    def refresh_styles(self):
        self.refreshes += 1
        if self._fail:
            raise RuntimeError("style refresh failed")


class StyledNode:
    """Node with a mutable stylesheet list and children."""

    def __init__(self, stylesheets=(), children=()):
        self.stylesheets = list(stylesheets)
        self.children = list(children)


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_logging():
    """Undo configure() so caplog keeps seeing hotview records."""
    yield
    if hotview.logging_setup.get_runtime() is not None:
        hotview.logging_setup.reset()


# ---------------------------------------------------------------------------
# Filesystem fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def write_file():
    """Write text to a path, creating parent directories."""

    def _write(path, text=""):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def maven_project(tmp_path):
    """Maven-layout project root with empty source and output resource dirs."""
    (tmp_path / "pom.xml").write_text("<project/>\n", encoding="utf-8")
    (tmp_path / "src" / "main" / "resources").mkdir(parents=True)
    (tmp_path / "target" / "classes").mkdir(parents=True)
    return tmp_path


@pytest.fixture
def resources(maven_project):
    return maven_project / "src" / "main" / "resources"


@pytest.fixture
def classes(maven_project):
    return maven_project / "target" / "classes"
