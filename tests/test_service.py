"""End-to-end tests for HotReloadService wiring."""

import gc
import logging
import time

import pytest

from conftest import FakeView, StyleTarget, view_markup
from hotview import Reloadable
from hotview.dispatch import QueueDispatch, call_inline
from hotview.service import HotReloadService
from hotview.settings import HotReloadSettings
from hotview.watcher import normalize_file


def _wait_for(condition, timeout=3.0, interval=0.01):
    """Poll until condition() is truthy or timeout."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(interval)
    return condition()


@pytest.fixture
def service():
    s = HotReloadService(HotReloadSettings(debounce_ms=50), ui=call_inline)
    yield s
    s.reset()


# ─── Registration ─────────────────────────────────────────────────────────────


def test_register_watches_source_not_output(maven_project, resources, classes, write_file, service):
    source = write_file(resources / "app" / "Main.fxml", view_markup("Header.fxml"))
    write_file(resources / "app" / "Header.fxml", view_markup())
    output = write_file(classes / "app" / "Main.fxml", view_markup("Header.fxml"))
    write_file(classes / "app" / "Header.fxml", view_markup())

    assert service.register(FakeView("app/Main.fxml", output)) is True

    watched = service.watched_files()
    assert watched[normalize_file(source)] == "app/Main.fxml"
    assert watched[normalize_file((resources / "app" / "Header.fxml").resolve())] == "app/Header.fxml"
    assert normalize_file(output) not in watched


def test_register_watches_runtime_file_without_source(tmp_path, write_file, service):
    runtime = write_file(tmp_path / "target" / "classes" / "app" / "Main.fxml", view_markup())
    service.register(FakeView("app/Main.fxml", runtime))
    assert normalize_file(runtime) in service.watched_files()


def test_register_watches_existing_conventional_stylesheet(resources, classes, write_file, service):
    write_file(resources / "app" / "Main.fxml", view_markup())
    sheet = write_file(resources / "app" / "Main.css", ".root {}")
    output = write_file(classes / "app" / "Main.fxml", view_markup())

    service.register(FakeView("app/Main.fxml", output))

    assert service.watched_files()[normalize_file(sheet)] == "app/Main.css"
    assert service.graph.stylesheet_users("app/Main.css") == {"app/Main.fxml"}


def test_register_archive_location_is_not_watched(service):
    view = FakeView("app/Main.fxml", "jar:file:/p/app.jar!/app/Main.fxml")
    assert service.register(view) is True
    assert service.watched_files() == {}
    assert "app/Main.fxml" in service.registry


def test_register_never_raises(service, caplog):
    class Broken:
        def resource_path(self):
            raise RuntimeError("no path")

    assert service.register(Broken()) is False
    assert "cannot register" in caplog.text


def test_register_rejects_empty_resource(service, caplog):
    with caplog.at_level(logging.WARNING, logger="hotview.service"):
        assert service.register(FakeView("  ", "/x")) is False
    assert "empty resource path" in caplog.text


def test_register_rejects_non_weakrefable(service, caplog):
    class Slotted:
        __slots__ = ()

        def resource_path(self):
            return "app/Main.fxml"

        def source_location(self):
            return "/x/app/Main.fxml"

        def reload(self):
            pass

    with caplog.at_level(logging.WARNING, logger="hotview.service"):
        assert service.register(Slotted()) is False
    assert "weak references" in caplog.text


# ─── Change handling ──────────────────────────────────────────────────────────


def test_change_to_include_reloads_both(resources, write_file, service):
    main_file = write_file(resources / "app" / "Main.view", view_markup("Header.view"))
    header_file = write_file(resources / "app" / "Header.view", view_markup())
    main = FakeView("app/Main.view", main_file)
    header = FakeView("app/Header.view", header_file)
    service.register(main)
    service.register(header)
    service.enable()

    service.watcher.notify_changed(header_file.resolve())

    assert _wait_for(lambda: main.reloads == 1 and header.reloads == 1)
    time.sleep(0.2)
    assert (main.reloads, header.reloads) == (1, 1)


@pytest.mark.parametrize("header_first", [False, True], ids=["main-first", "header-first"])
def test_include_change_under_src_checkout_reloads_both(tmp_path, write_file, service, header_first):
    project = tmp_path / "src" / "proj"
    main_file = write_file(project / "app" / "Main.view", view_markup("Header.view"))
    header_file = write_file(project / "app" / "Header.view", view_markup())
    main = FakeView("app/Main.view", main_file)
    header = FakeView("app/Header.view", header_file)
    for view in ([header, main] if header_first else [main, header]):
        service.register(view)
    service.enable()

    assert service.watched_files()[normalize_file(header_file.resolve())] == "app/Header.view"
    service.watcher.notify_changed(header_file.resolve())

    assert _wait_for(lambda: main.reloads == 1 and header.reloads == 1)
    time.sleep(0.2)
    assert (main.reloads, header.reloads) == (1, 1)


def test_stylesheet_change_restyles_matching_view(resources, write_file, service):
    main_file = write_file(resources / "app" / "Main.view", view_markup())
    other_file = write_file(resources / "app" / "Other.view", view_markup())
    sheet = write_file(resources / "app" / "Main.style", "")
    target = StyleTarget()
    main = FakeView("app/Main.view", main_file, style_target=target)
    other = FakeView("app/Other.view", other_file, style_target=StyleTarget())
    service.register(main)
    service.register(other)
    service.enable()

    service.watcher.notify_changed(sheet)

    assert _wait_for(lambda: target.refreshes == 1)
    assert main.reloads == 0
    assert other.reloads == 0
    assert other.style_refresh_target().refreshes == 0


def test_disabled_stylesheet_reload(resources, write_file, service):
    main_file = write_file(resources / "app" / "Main.view", view_markup())
    sheet = write_file(resources / "app" / "Main.css", "")
    target = StyleTarget()
    service.register(FakeView("app/Main.view", main_file, style_target=target))
    service.set_stylesheet_reload_enabled(False)
    service.enable()

    service.watcher.notify_changed(sheet)
    time.sleep(0.2)

    assert target.refreshes == 0


def test_source_change_is_synced_to_output(maven_project, resources, classes, write_file, service):
    source = write_file(resources / "app" / "Main.fxml", view_markup())
    output = write_file(classes / "app" / "Main.fxml", "stale")
    view = FakeView("app/Main.fxml", output)
    service.register(view)
    service.enable()

    source.write_text(view_markup(tag="HBox"), encoding="utf-8")
    service.watcher.notify_changed(source)

    assert _wait_for(lambda: view.reloads == 1)
    assert output.read_text(encoding="utf-8") == view_markup(tag="HBox")


def test_sync_can_be_disabled(maven_project, resources, classes, write_file):
    service = HotReloadService(HotReloadSettings(debounce_ms=50, sync_to_output=False), ui=call_inline)
    try:
        source = write_file(resources / "app" / "Main.fxml", view_markup())
        output = write_file(classes / "app" / "Main.fxml", "stale")
        view = FakeView("app/Main.fxml", output)
        service.register(view)
        service.enable()

        service.watcher.notify_changed(source)

        assert _wait_for(lambda: view.reloads == 1)
        assert output.read_text(encoding="utf-8") == "stale"
    finally:
        service.reset()


def test_new_include_becomes_watched(resources, write_file, service):
    main_file = write_file(resources / "Main.fxml", view_markup())
    row_file = write_file(resources / "Row.fxml", view_markup())
    view = FakeView("Main.fxml", main_file)
    service.register(view)
    service.enable()
    assert normalize_file(row_file.resolve()) not in service.watched_files()

    main_file.write_text(view_markup("Row.fxml"), encoding="utf-8")
    service.watcher.notify_changed(main_file)
    assert _wait_for(lambda: view.reloads == 1)
    assert normalize_file(row_file.resolve()) in service.watched_files()

    service.watcher.notify_changed(row_file.resolve())
    assert _wait_for(lambda: view.reloads == 2)


def test_default_service_queues_reloads_for_the_caller(resources, write_file):
    service = HotReloadService(HotReloadSettings(debounce_ms=50))
    try:
        assert isinstance(service.ui, QueueDispatch)
        main_file = write_file(resources / "Main.fxml", view_markup())
        view = FakeView("Main.fxml", main_file)
        service.register(view)
        service.enable()
        service.watcher.notify_changed(main_file)

        assert _wait_for(lambda: service.ui.pending() == 1)
        assert view.reloads == 0
        service.ui.drain()
        assert view.reload_threads == ["MainThread"]
    finally:
        service.reset()


def test_inline_dispatch_runs_on_the_debounce_thread(resources, write_file, service):
    main_file = write_file(resources / "Main.fxml", view_markup())
    view = FakeView("Main.fxml", main_file)
    service.register(view)
    service.enable()
    service.watcher.notify_changed(main_file)

    assert _wait_for(lambda: view.reloads == 1)
    assert view.reload_threads == ["hotview-debounce"]


# ─── Shared stylesheets ───────────────────────────────────────────────────────


class ThemedRoot:
    """Scene-root stand-in holding stylesheet locations."""

    def __init__(self, *stylesheets):
        self.stylesheets = list(stylesheets)


def test_shared_stylesheet_refreshes_every_owner(maven_project, resources, write_file):
    sheet = write_file(resources / "theme" / "base.css", ".root {}")
    service = HotReloadService(HotReloadSettings(debounce_ms=50), ui=call_inline, project_root=maven_project)
    first = ThemedRoot("theme/base.css", "app/other.css")
    second = ThemedRoot("/opt/app/target/classes/theme/base.css")
    try:
        assert service.register_stylesheet("theme/base.css", first) is True
        assert service.register_stylesheet("theme/base.css", second) is True
        assert service.watched_files()[normalize_file(sheet)] == "theme/base.css"
        service.enable()

        service.watcher.notify_changed(sheet)

        uri = normalize_file(sheet).as_uri()
        assert _wait_for(lambda: first.stylesheets[0] == uri and second.stylesheets[0] == uri)
        assert first.stylesheets[1] == "app/other.css"
    finally:
        service.reset()


def test_shared_stylesheet_from_output_location_watches_source(maven_project, resources, classes, write_file, service):
    source = write_file(resources / "theme" / "base.css", ".root {}")
    output = write_file(classes / "theme" / "base.css", ".root {}")
    owner = ThemedRoot(output.as_uri())

    assert service.register_stylesheet(output.as_uri(), owner) is True

    watched = service.watched_files()
    assert watched[normalize_file(source)] == "theme/base.css"
    assert normalize_file(output) not in watched


def test_shared_stylesheet_owner_is_held_weakly(maven_project, resources, write_file, service):
    write_file(resources / "theme" / "base.css", "")
    service.project_root = maven_project
    owner = ThemedRoot("theme/base.css")
    service.register_stylesheet("theme/base.css", owner)
    del owner
    gc.collect()
    assert service.dispatcher.stylesheet_owners.collect_live_components(["theme/base.css"]) == []


def test_register_stylesheet_rejects_owner_without_list(service, caplog):
    with caplog.at_level(logging.WARNING, logger="hotview.service"):
        assert service.register_stylesheet("theme/base.css", object()) is False
    assert "no stylesheets list" in caplog.text


# ─── Lifecycle ────────────────────────────────────────────────────────────────


def test_enable_disable_is_idempotent(service):
    service.enable()
    service.enable()
    assert service.is_enabled and service.watcher.is_running
    service.disable()
    service.disable()
    assert not service.is_enabled and not service.watcher.is_running


def test_re_enable_restores_watches(resources, write_file, service):
    main_file = write_file(resources / "Main.fxml", view_markup())
    view = FakeView("Main.fxml", main_file)
    service.register(view)
    service.enable()
    service.disable()
    service.enable()

    service.watcher.notify_changed(main_file)

    assert _wait_for(lambda: view.reloads == 1)


def test_reset_forgets_registrations(resources, write_file, service):
    main_file = write_file(resources / "Main.fxml", view_markup())
    service.register(FakeView("Main.fxml", main_file))
    service.reset()
    assert service.watched_files() == {}
    assert service.registry.resource_paths() == set()
    assert not service.graph.is_root("Main.fxml")


def test_services_are_independent(resources, write_file):
    main_file = write_file(resources / "Main.fxml", view_markup())
    first, second = HotReloadService(), HotReloadService()
    first.register(FakeView("Main.fxml", main_file))
    assert second.watched_files() == {}
    assert second.registry.resource_paths() == set()


def test_context_manager(service):
    with service as s:
        assert s.is_enabled
    assert not service.is_enabled


# ─── Real filesystem ──────────────────────────────────────────────────────────


@pytest.mark.fs
def test_saving_an_include_reloads_root(resources, write_file):
    main_file = write_file(resources / "app" / "Main.view", view_markup("Header.view"))
    header_file = write_file(resources / "app" / "Header.view", view_markup())
    service = HotReloadService(HotReloadSettings(debounce_ms=100), ui=call_inline)
    main = FakeView("app/Main.view", main_file)
    try:
        service.register(main)
        service.enable()
        time.sleep(0.3)
        header_file.write_text(view_markup(tag="HBox"), encoding="utf-8")
        assert _wait_for(lambda: main.reloads == 1, timeout=5.0)
    finally:
        service.reset()


def test_components_are_structurally_reloadable():
    assert isinstance(FakeView("Main.fxml", "/x"), Reloadable)
    assert not isinstance(StyleTarget(), Reloadable)
