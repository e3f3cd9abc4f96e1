"""Turns settled file changes into component reloads on the UI context.

Per resource path a small state machine prevents duplicate work:

    IDLE -> RELOADING -> IDLE
                 |
                 +-- change arrives --> (queued) -> PENDING_DEBOUNCE -> RELOADING ...

The first quiet window is enforced by the FileWatcher. A change that lands
while a reload batch for the same resource is still running is not dropped:
it starts a fresh debounce window once the batch finishes. A change while
that window is pending restarts it.

Reload callbacks always run on the UI context; each one is isolated so a
failing component never blocks the others.
"""

from __future__ import annotations

import logging
import threading
import weakref
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from hotview import strategy
from hotview.dispatch import UiContext
from hotview.graph import ComponentRegistry, DependencyGraph, normalize_resource_path, sibling_resource
from hotview.scheduler import ScheduledTask
from hotview.strategy import ReloadPolicy, ReloadStrategy

logger = logging.getLogger(__name__)

Scheduler = Callable[[float, Callable[[], None]], "ScheduledTask | None"]
TreeListener = Callable[[dict[str, Path]], None]


class ReloadState(Enum):
    IDLE = "idle"
    PENDING_DEBOUNCE = "pending_debounce"
    RELOADING = "reloading"


class ReloadDispatcher:
    def __init__(
        self,
        graph: DependencyGraph,
        registry: ComponentRegistry,
        *,
        ui: UiContext,
        policy: ReloadPolicy | None = None,
        schedule: Scheduler | None = None,
        debounce_s: float = 0.2,
        on_tree_changed: TreeListener | None = None,
    ) -> None:
        self.graph = graph
        self.registry = registry
        self.ui = ui
        self.policy = policy or ReloadPolicy()
        self.debounce_s = debounce_s
        self._schedule = schedule
        self._on_tree_changed = on_tree_changed

        self._lock = threading.Lock()
        self._states: dict[str, ReloadState] = {}
        self._requeued: set[str] = set()
        self._pending: dict[str, ScheduledTask] = {}
        # shared stylesheet resource -> weakly held owners, plus the source URI to point them at
        self.stylesheet_owners = ComponentRegistry()
        self._stylesheet_sources: dict[str, str] = {}

    def add_stylesheet_owner(self, resource_path: str, owner: object, source_uri: str | None = None) -> None:
        """Raises TypeError when ``owner`` does not support weak references."""
        resource = normalize_resource_path(resource_path)
        self.stylesheet_owners.register(resource, owner)
        if source_uri is not None:
            with self._lock:
                self._stylesheet_sources[resource] = source_uri

    def state_of(self, resource_path: str) -> ReloadState:
        with self._lock:
            return self._states.get(normalize_resource_path(resource_path), ReloadState.IDLE)

    # ─── Entry points ─────────────────────────────────────────────────────────

    def on_file_changed(self, resource_path: str) -> None:
        """Classify a settled change and start (or queue) the matching reload."""
        resource = normalize_resource_path(resource_path)
        kind = self.policy.for_path(resource)
        if kind is ReloadStrategy.IGNORE:
            logger.debug("ignoring change to %s", resource)
            return

        if kind is ReloadStrategy.STYLESHEET_RELOAD:
            self.on_stylesheet_changed(resource)
        else:
            self.on_view_changed(resource)

    def on_view_changed(self, resource_path: str) -> None:
        """Full reload of every live component that is, or includes, ``resource_path``."""
        self._run(normalize_resource_path(resource_path), self._dispatch_view)

    def on_stylesheet_changed(self, resource_path: str) -> None:
        """Style refresh of the views using ``resource_path`` and of its registered owners."""
        self._run(normalize_resource_path(resource_path), self._dispatch_stylesheet)

    def _run(self, resource: str, dispatch: Callable[[str], None]) -> None:
        with self._lock:
            state = self._states.get(resource, ReloadState.IDLE)
            if state is ReloadState.RELOADING:
                self._requeued.add(resource)
                logger.debug("change to %s during reload; queued", resource)
                return
            if state is ReloadState.PENDING_DEBOUNCE:
                self._restart_window(resource)
                return
            self._states[resource] = ReloadState.RELOADING
        try:
            dispatch(resource)
        except Exception:
            logger.exception("reload dispatch failed for %s", resource)
            self._finish(resource)

    # ─── Affected sets ────────────────────────────────────────────────────────

    def _dispatch_view(self, resource: str) -> None:
        discovered = self.graph.reanalyze_containing(resource)
        if discovered and self._on_tree_changed is not None:
            try:
                self._on_tree_changed(discovered)
            except Exception:
                logger.exception("include tree listener failed for %s", resource)

        affected = self.graph.find_affected(resource)
        refs = self.registry.live_refs(sorted(affected))
        logger.info("view changed: %s -> %d component(s)", resource, len(refs))
        self._post_batch(resource, ReloadStrategy.FULL_RELOAD, refs)

    def _dispatch_stylesheet(self, resource: str) -> None:
        views = self.graph.stylesheet_users(resource)
        # views registered under the same base name, even without a recorded mapping
        for ext in self.policy.view_extensions:
            candidate = sibling_resource(resource, ext)
            if candidate in self.registry:
                views.add(candidate)

        affected: set[str] = set()
        for view in views:
            affected |= self.graph.find_affected(view)
        refs = self.registry.live_refs(sorted(affected))
        owners = self.stylesheet_owners.live_refs([resource])
        logger.info(
            "stylesheet changed: %s -> %d component(s), %d owner(s)", resource, len(refs), len(owners)
        )
        self._post_batch(resource, ReloadStrategy.STYLESHEET_RELOAD, refs, owners)

    # ─── Batch execution ──────────────────────────────────────────────────────

    def _post_batch(
        self,
        resource: str,
        kind: ReloadStrategy,
        refs: list[weakref.ref],
        owners: list[weakref.ref] | None = None,
    ) -> None:
        owners = owners or []
        if not refs and not owners:
            self._finish(resource)
            return
        try:
            self.ui(lambda: self._run_batch(resource, kind, refs, owners))
        except Exception:
            logger.exception("cannot post reload of %s to the UI context", resource)
            self._finish(resource)

    def _run_batch(
        self,
        resource: str,
        kind: ReloadStrategy,
        refs: list[weakref.ref],
        owners: list[weakref.ref],
    ) -> None:
        try:
            for ref in refs:
                component = ref()
                if component is None:
                    continue
                try:
                    strategy.apply(kind, component)
                except Exception:
                    logger.exception("reload of %r failed (changed: %s)", component, resource)
            with self._lock:
                source_uri = self._stylesheet_sources.get(resource)
            for ref in owners:
                owner = ref()
                if owner is None:
                    continue
                try:
                    strategy.refresh_stylesheet_owner(owner, resource, source_uri)
                except Exception:
                    logger.exception("stylesheet refresh of %r failed (changed: %s)", owner, resource)
        finally:
            self._finish(resource)

    def _finish(self, resource: str) -> None:
        with self._lock:
            if resource not in self._requeued:
                self._states.pop(resource, None)
                return
            self._requeued.discard(resource)
            self._states[resource] = ReloadState.PENDING_DEBOUNCE
            self._restart_window(resource)

    def _restart_window(self, resource: str) -> None:
        # caller holds self._lock
        previous = self._pending.pop(resource, None)
        if previous is not None:
            previous.cancel()
        holder: list[ScheduledTask] = []
        task = self._schedule(self.debounce_s, lambda: self._window_elapsed(resource, holder)) if self._schedule else None
        if task is None:
            # no scheduler (stopped service): the queued change is dropped
            logger.debug("no scheduler; dropping queued change to %s", resource)
            self._states.pop(resource, None)
            return
        holder.append(task)
        self._pending[resource] = task

    def _window_elapsed(self, resource: str, holder: list[ScheduledTask]) -> None:
        with self._lock:
            if self._pending.get(resource) is not holder[0]:
                return
            del self._pending[resource]
            if self._states.get(resource) is not ReloadState.PENDING_DEBOUNCE:
                return
            self._states.pop(resource, None)
        self.on_file_changed(resource)

    def reset(self) -> None:
        with self._lock:
            for task in self._pending.values():
                task.cancel()
            self._pending.clear()
            self._requeued.clear()
            self._states.clear()

    def forget_stylesheet_owners(self) -> None:
        self.stylesheet_owners.reset()
        with self._lock:
            self._stylesheet_sources.clear()
