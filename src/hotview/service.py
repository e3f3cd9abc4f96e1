"""HotReloadService: wires resolver, analyzer, watcher, graph and dispatcher.

One instance per application (or per test). Nothing is global: two services
in one process share no state.

Registration reads the component's resource path and location once, stores
the component weakly, analyzes its include tree and watches every file in it
plus the conventional stylesheets next to the root. For each file the
editable source copy is watched when one exists, else the runtime copy;
never both, so one save produces one reload.

Shared stylesheets (a theme used by many views) are registered separately
with register_stylesheet(); their owners are held weakly too.

Reloads are posted to a UI context. Without one the service queues them on a
QueueDispatch that the caller pumps with ``service.ui.drain()``; pass
``ui=call_inline`` only where running reloads on the debounce thread is safe.
"""

from __future__ import annotations

import logging
import shutil
import threading
from pathlib import Path

from hotview import build_systems, paths
from hotview.dispatch import QueueDispatch, UiContext
from hotview.graph import ComponentRegistry, DependencyGraph, normalize_resource_path
from hotview.paths import Converter, PathResolver
from hotview.protocols import Reloadable, StylesheetOwner
from hotview.reloader import ReloadDispatcher
from hotview.settings import HotReloadSettings
from hotview.strategy import ReloadPolicy
from hotview.watcher import FileWatcher, normalize_file

logger = logging.getLogger(__name__)


class HotReloadService:
    def __init__(
        self,
        settings: HotReloadSettings | None = None,
        *,
        ui: UiContext | None = None,
        resolver: PathResolver | None = None,
        watcher: FileWatcher | None = None,
        project_root: str | Path | None = None,
    ) -> None:
        self.settings = settings or HotReloadSettings()
        self.ui = ui if ui is not None else QueueDispatch()
        # where shared stylesheets given as bare resource paths are looked up
        self.project_root = Path(project_root) if project_root is not None else None
        self.resolver = resolver or PathResolver()
        self.watcher = watcher or FileWatcher(debounce_s=self.settings.debounce_s)
        self.graph = DependencyGraph()
        self.registry = ComponentRegistry()
        self.policy = ReloadPolicy(
            view_reload_enabled=self.settings.view_reload,
            stylesheet_reload_enabled=self.settings.stylesheet_reload,
            view_extensions=frozenset(self.settings.view_extensions),
            stylesheet_extensions=self.settings.stylesheet_extensions,
        )
        self.dispatcher = ReloadDispatcher(
            self.graph,
            self.registry,
            ui=self.ui,
            policy=self.policy,
            schedule=self.watcher.schedule,
            debounce_s=self.settings.debounce_s,
            on_tree_changed=self._watch_tree,
        )
        self._lock = threading.Lock()
        self._enabled = False
        # watched file -> resource path
        self._watched: dict[Path, str] = {}
        # watched source file -> runtime file it is built into
        self._runtime_for: dict[Path, Path] = {}

    # ─── Lifecycle ────────────────────────────────────────────────────────────

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        with self._lock:
            if self._enabled:
                return
            self._enabled = True
            watched = dict(self._watched)
        for file in watched:
            self.watcher.watch(file, self._on_file_event)
        self.watcher.start()
        logger.info("hot reload enabled (%d file(s) watched)", len(watched))

    def disable(self) -> None:
        with self._lock:
            if not self._enabled:
                return
            self._enabled = False
        self.watcher.stop()
        self.dispatcher.reset()
        logger.info("hot reload disabled")

    def reset(self) -> None:
        """Disable and forget every registration."""
        self.disable()
        self.registry.reset()
        self.dispatcher.forget_stylesheet_owners()
        self.graph.reset()
        with self._lock:
            self._watched.clear()
            self._runtime_for.clear()

    def __enter__(self) -> HotReloadService:
        self.enable()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.disable()

    # ─── Configuration ────────────────────────────────────────────────────────

    def add_converter(self, converter: Converter) -> None:
        self.resolver.add_converter(converter)

    def set_view_reload_enabled(self, enabled: bool) -> None:
        self.policy.view_reload_enabled = bool(enabled)

    def set_stylesheet_reload_enabled(self, enabled: bool) -> None:
        self.policy.stylesheet_reload_enabled = bool(enabled)

    # ─── Registration ─────────────────────────────────────────────────────────

    def register(self, component: Reloadable) -> bool:
        """Start hot-reloading ``component``. Never raises.

        Returns False when the component could not be registered; the reason
        is logged.
        """
        try:
            return self._register(component)
        except Exception:
            logger.exception("cannot register %r for hot reload", component)
            return False

    def _register(self, component: Reloadable) -> bool:
        raw_resource = component.resource_path()
        if not isinstance(raw_resource, str) or not raw_resource.strip("/ "):
            logger.warning("cannot register %r: empty resource path", component)
            return False
        resource = normalize_resource_path(raw_resource.strip())
        location = component.source_location()

        try:
            self.registry.register(resource, component)
        except TypeError:
            logger.warning("cannot register %r: component does not support weak references", component)
            return False

        runtime = paths.to_filesystem_path(location)
        if runtime is None:
            logger.info("registered %s from archive %s; not watchable", resource, location)
            return True

        runtime_file = normalize_file(runtime)
        source_file = self.resolver.to_source_path(str(runtime_file))
        analyzed_file = source_file or runtime_file
        # loaded straight from a source tree: its build-output twin, if any
        if source_file is None:
            runtime_file = self._runtime_file(resource, runtime_file) or runtime_file

        tree = self.graph.analyze(resource, analyzed_file)
        tree.pop(resource, None)
        self._watch_file(resource, analyzed_file, runtime_file)
        self._watch_tree(tree)

        sheets = self.graph.add_stylesheet_mapping(resource, self.policy.stylesheet_extensions)
        for sheet in sheets:
            self._watch_stylesheet(sheet, analyzed_file, runtime_file)

        logger.info("registered %s (%s)", resource, analyzed_file)
        return True

    def register_stylesheet(self, location: str | Path, owner: StylesheetOwner) -> bool:
        """Hot-reload a shared stylesheet for ``owner``. Never raises.

        ``location`` is a path, a ``file:`` URI or a bare resource path such
        as ``theme/base.css``; bare paths are looked up under the project
        root's source directories. On change, every entry of
        ``owner.stylesheets`` naming the same resource is pointed at the
        edited source file.
        """
        try:
            return self._register_stylesheet(location, owner)
        except Exception:
            logger.exception("cannot register stylesheet %s for hot reload", location)
            return False

    def _register_stylesheet(self, location: str | Path, owner: StylesheetOwner) -> bool:
        if not isinstance(owner, StylesheetOwner):
            logger.warning("cannot register %r: it has no stylesheets list", owner)
            return False
        raw_resource = paths.to_resource_path(location)
        if not raw_resource:
            logger.warning("cannot register stylesheet %s: no resource path", location)
            return False
        resource = normalize_resource_path(raw_resource)
        source = self._stylesheet_source(location, resource)

        try:
            self.dispatcher.add_stylesheet_owner(resource, owner, source.as_uri() if source else None)
        except TypeError:
            logger.warning("cannot register %r: owner does not support weak references", owner)
            return False

        if source is None:
            logger.info("registered stylesheet %s; no source file to watch", resource)
            return True
        self._watch_file(resource, source, self._runtime_file(resource, source))
        logger.info("registered stylesheet %s (%s)", resource, source)
        return True

    def _stylesheet_source(self, location: str | Path, resource: str) -> Path | None:
        file = paths.to_filesystem_path(location)
        if file is not None and Path(file).is_absolute():
            source = self.resolver.to_source_path(file)
            if source is not None:
                return normalize_file(source)
            if Path(file).exists():
                return normalize_file(file)
        root = self.project_root or paths.find_project_root(Path.cwd())
        if root is None:
            return None
        found = paths.find_source_file(resource, root)
        return normalize_file(found) if found is not None else None

    def _watch_tree(self, tree: dict[str, Path]) -> None:
        for resource, file in tree.items():
            self._watch_file(resource, normalize_file(file), self._runtime_file(resource, file))

    def _watch_stylesheet(self, sheet: str, view_file: Path, runtime_view: Path) -> None:
        name = Path(sheet).name
        candidates = [view_file.with_name(name), runtime_view.with_name(name)]
        for candidate in candidates:
            if candidate.exists():
                self._watch_file(sheet, candidate, runtime_view.with_name(name))
                return

    def _runtime_file(self, resource: str, file: Path) -> Path | None:
        """Build-output twin of a source file; None for files already in the output."""
        if not build_systems.is_source_path(str(file)):
            return None
        output_dir = paths.infer_output_directory(file)
        return output_dir / resource if output_dir is not None else None

    def _watch_file(self, resource: str, file: Path, runtime: Path | None) -> None:
        with self._lock:
            if runtime is not None and runtime != file:
                self._runtime_for[file] = runtime
            if file in self._watched:
                return
            self._watched[file] = resource
            enabled = self._enabled
        if enabled:
            self.watcher.watch(file, self._on_file_event)
        logger.debug("tracking %s as %s", file, resource)

    # ─── Change handling ──────────────────────────────────────────────────────

    def _on_file_event(self, path: Path) -> None:
        """FileWatcher callback; runs on the debounce thread."""
        with self._lock:
            resource = self._watched.get(path)
            runtime = self._runtime_for.get(path)
        if resource is None:
            return
        if runtime is not None and self.settings.sync_to_output:
            self.sync_to_output(path, runtime)
        self.dispatcher.on_file_changed(resource)

    def sync_to_output(self, source: Path, runtime: Path) -> bool:
        """Copy an edited source file over its build-output twin."""
        try:
            runtime.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, runtime)
        except OSError as e:
            logger.warning("cannot sync %s to %s: %s", source, runtime, e)
            return False
        logger.debug("synced %s -> %s", source, runtime)
        return True

    def watched_files(self) -> dict[Path, str]:
        with self._lock:
            return dict(self._watched)

