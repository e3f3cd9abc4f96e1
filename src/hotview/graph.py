"""Reverse include graph and weak component registry.

Everything is keyed by resource path (forward slashes, no leading slash), the
location-independent name a view has in both the source tree and the build
output.

// [LAW:one-source-of-truth] Include edges are only written by analyze(); everyone else reads snapshots.
"""

from __future__ import annotations

import logging
import threading
import weakref
from collections import deque
from collections.abc import Callable, Iterable
from pathlib import Path, PurePosixPath

from hotview import includes, paths

logger = logging.getLogger(__name__)

Analyzer = Callable[[Path], "includes.IncludeTree"]


def normalize_resource_path(resource_path: str) -> str:
    return resource_path.replace("\\", "/").lstrip("/")


def sibling_resource(resource_path: str, extension: str) -> str:
    """``app/Main.view`` + ``css`` -> ``app/Main.css``."""
    return str(PurePosixPath(resource_path).with_suffix(f".{extension.lstrip('.')}"))


# ─── Component registry ───────────────────────────────────────────────────────


class ComponentRegistry:
    """resource path -> weak references to live components.

    Components are never kept alive by the registry. Dead references are
    skipped on lookup and dropped by prune().
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._refs: dict[str, list[weakref.ref]] = {}

    def register(self, resource_path: str, component: object) -> None:
        """Raises TypeError when ``component`` does not support weak references."""
        key = normalize_resource_path(resource_path)
        ref = weakref.ref(component)
        with self._lock:
            refs = self._refs.setdefault(key, [])
            if any(r() is component for r in refs):
                return
            refs.append(ref)
        logger.debug("registered %r under %s", component, key)

    def __contains__(self, resource_path: object) -> bool:
        if not isinstance(resource_path, str):
            return False
        with self._lock:
            return normalize_resource_path(resource_path) in self._refs

    def resource_paths(self) -> set[str]:
        with self._lock:
            return set(self._refs)

    def live_refs(self, resource_paths: Iterable[str]) -> list[weakref.ref]:
        """Weak references to live components, one per component, in key order."""
        seen: set[int] = set()
        result: list[weakref.ref] = []
        with self._lock:
            snapshot = {key: list(self._refs.get(key, ())) for key in resource_paths}
        for refs in snapshot.values():
            for ref in refs:
                component = ref()
                if component is None or id(component) in seen:
                    continue
                seen.add(id(component))
                result.append(ref)
        return result

    def collect_live_components(self, resource_paths: Iterable[str]) -> list[object]:
        return [c for c in (ref() for ref in self.live_refs(resource_paths)) if c is not None]

    def prune(self) -> int:
        """Drop dead references and empty keys. Returns the number dropped."""
        dropped = 0
        with self._lock:
            for key in list(self._refs):
                alive = [r for r in self._refs[key] if r() is not None]
                dropped += len(self._refs[key]) - len(alive)
                if alive:
                    self._refs[key] = alive
                else:
                    del self._refs[key]
        if dropped:
            logger.debug("pruned %d dead component reference(s)", dropped)
        return dropped

    def reset(self) -> None:
        with self._lock:
            self._refs.clear()


# ─── Dependency graph ─────────────────────────────────────────────────────────


class DependencyGraph:
    """Reverse include edges (child -> direct includer) plus stylesheet users.

    Each root's include tree is analyzed once and cached until invalidated.
    Re-analysis replaces that root's contribution: edges it no longer declares
    are removed unless another root still contributes them.
    """

    def __init__(self, analyzer: Analyzer = includes.analyze_tree) -> None:
        self._analyzer = analyzer
        self._lock = threading.Lock()
        self._parents: dict[str, set[str]] = {}
        self._edge_owners: dict[tuple[str, str], set[str]] = {}
        self._root_files: dict[str, Path] = {}
        # root -> (edges it contributed, resources in its tree)
        self._trees: dict[str, tuple[frozenset[tuple[str, str]], frozenset[str]]] = {}
        self._stale: set[str] = set()
        self._stylesheet_users: dict[str, set[str]] = {}

    # ─── Analysis ─────────────────────────────────────────────────────────────

    def analyze(self, root_resource: str, root_file: str | Path, *, force: bool = False) -> dict[str, Path]:
        """Walk ``root_file``'s includes and record the reverse edges.

        Returns resource path -> file for every file in the tree, root
        included. A cached root returns {} unless ``force`` is set.
        """
        root = normalize_resource_path(root_resource)
        root_path = Path(root_file)
        with self._lock:
            cached = root in self._trees and root not in self._stale and self._root_files.get(root) == root_path
            self._root_files[root] = root_path
        if cached and not force:
            return {}

        tree = self._analyzer(root_path)
        members: dict[str, Path] = {root: tree.root}
        for file in tree.files[1:]:
            resource = self._resource_for(file, tree.root, root)
            if resource is None:
                logger.debug("no resource path for included file %s", file)
                continue
            members[resource] = file

        by_file = {file: resource for resource, file in members.items()}
        edges = frozenset(
            (by_file[child], by_file[parent])
            for parent, child in tree.edges
            if parent in by_file and child in by_file and by_file[parent] != by_file[child]
        )
        self._replace_contribution(root, edges, frozenset(members))
        logger.debug("analyzed %s: %d file(s), %d edge(s)", root, len(members), len(edges))
        return members

    def _resource_for(self, file: Path, root_file: Path, root_resource: str) -> str | None:
        # relative to the directory the root's own resource path starts in, so
        # included files get the same kind of key the root was registered with
        base = paths.normalize(str(root_file))
        if base.endswith("/" + root_resource):
            base_dir = base[: -len(root_resource)]
            text = paths.normalize(str(file))
            if text.startswith(base_dir):
                return text[len(base_dir):]
        resource = paths.extract_resource_path(file)
        return normalize_resource_path(resource) if resource is not None else None

    def _replace_contribution(self, root: str, edges: frozenset[tuple[str, str]], members: frozenset[str]) -> None:
        with self._lock:
            previous = self._trees.get(root)
            old_edges = previous[0] if previous is not None else frozenset()
            for edge in old_edges - edges:
                owners = self._edge_owners.get(edge)
                if owners is None:
                    continue
                owners.discard(root)
                if not owners:
                    del self._edge_owners[edge]
                    child, parent = edge
                    self._parents.get(child, set()).discard(parent)
            for edge in edges:
                self._edge_owners.setdefault(edge, set()).add(root)
                child, parent = edge
                self._parents.setdefault(child, set()).add(parent)
            self._trees[root] = (edges, members)
            self._stale.discard(root)

    def invalidate(self, root_resource: str) -> None:
        """Force the next analyze() of this root to re-read its files."""
        with self._lock:
            root = normalize_resource_path(root_resource)
            if root in self._trees:
                self._stale.add(root)

    def reanalyze_containing(self, resource_path: str) -> dict[str, Path]:
        """Re-analyze every root whose include tree contains ``resource_path``.

        Returns the merged resource -> file map of the re-analyzed trees.
        """
        changed = normalize_resource_path(resource_path)
        with self._lock:
            roots = [
                root
                for root, tree in self._trees.items()
                if root == changed or changed in tree[1]
            ]
            files = {root: self._root_files[root] for root in roots if root in self._root_files}
        merged: dict[str, Path] = {}
        for root, file in files.items():
            merged.update(self.analyze(root, file, force=True))
        return merged

    # ─── Edges ────────────────────────────────────────────────────────────────

    def add_edge(self, child: str, parent: str) -> None:
        """Record an edge outside of analysis; kept until reset()."""
        child, parent = normalize_resource_path(child), normalize_resource_path(parent)
        with self._lock:
            self._parents.setdefault(child, set()).add(parent)

    def parents_of(self, resource_path: str) -> set[str]:
        with self._lock:
            return set(self._parents.get(normalize_resource_path(resource_path), ()))

    def is_root(self, resource_path: str) -> bool:
        with self._lock:
            return normalize_resource_path(resource_path) in self._root_files

    def find_affected(self, changed: str) -> set[str]:
        """``changed`` plus every view that transitively includes it.

        Breadth-first over the reverse edges with a visited set, so cycles end.
        """
        start = normalize_resource_path(changed)
        with self._lock:
            parents = {child: set(p) for child, p in self._parents.items()}
        affected = {start}
        queue = deque([start])
        while queue:
            current = queue.popleft()
            for parent in parents.get(current, ()):
                if parent in affected:
                    continue
                affected.add(parent)
                queue.append(parent)
        return affected

    # ─── Stylesheets ──────────────────────────────────────────────────────────

    def add_stylesheet_mapping(self, view_resource: str, extensions: Iterable[str]) -> list[str]:
        """Map each conventional stylesheet of ``view_resource`` to it.

        ``app/Main.view`` -> ``app/Main.css``, ``app/Main.bss``, ...; returns the
        stylesheet resource paths.
        """
        view = normalize_resource_path(view_resource)
        sheets = [sibling_resource(view, ext) for ext in extensions]
        with self._lock:
            for sheet in sheets:
                self._stylesheet_users.setdefault(sheet, set()).add(view)
        return sheets

    def stylesheet_users(self, stylesheet_resource: str) -> set[str]:
        with self._lock:
            return set(self._stylesheet_users.get(normalize_resource_path(stylesheet_resource), ()))

    def reset(self) -> None:
        with self._lock:
            self._parents.clear()
            self._edge_owners.clear()
            self._root_files.clear()
            self._trees.clear()
            self._stale.clear()
            self._stylesheet_users.clear()
