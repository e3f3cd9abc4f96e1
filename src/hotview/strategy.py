"""Reload strategy per changed-file type.

View files, resource bundles and images force a full reload of every
affected component. Stylesheets get a lightweight style refresh when the
component supports it. Source code and compiled artifacts are ignored: they
need a process restart, not a view reload.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import PurePosixPath

from hotview import paths
from hotview.protocols import Reloadable, StyleRefreshable

logger = logging.getLogger(__name__)

VIEW_EXTENSIONS: frozenset[str] = frozenset({"fxml", "view"})
STYLESHEET_EXTENSIONS: tuple[str, ...] = ("css", "bss", "tcss", "style")
# reload the view because its content is baked in at load time
ASSET_EXTENSIONS: frozenset[str] = frozenset({"properties", "png", "jpg", "jpeg", "gif", "svg"})
CODE_EXTENSIONS: frozenset[str] = frozenset({"java", "class", "jar", "py", "pyc"})


class ReloadStrategy(Enum):
    FULL_RELOAD = "full"
    STYLESHEET_RELOAD = "stylesheet"
    IGNORE = "ignore"


def get_extension(path: str | None) -> str:
    """Lower-cased extension without the dot; "" when there is none."""
    if not path:
        return ""
    return PurePosixPath(path.replace("\\", "/")).suffix.lstrip(".").lower()


class ReloadPolicy:
    """Extension classification plus the view/stylesheet on-off switches.

    Mutable: the switches can be flipped at runtime from any thread; reads of
    a single attribute are atomic.
    """

    def __init__(
        self,
        *,
        view_reload_enabled: bool = True,
        stylesheet_reload_enabled: bool = True,
        view_extensions: frozenset[str] = VIEW_EXTENSIONS,
        stylesheet_extensions: tuple[str, ...] = STYLESHEET_EXTENSIONS,
    ) -> None:
        self.view_reload_enabled = view_reload_enabled
        self.stylesheet_reload_enabled = stylesheet_reload_enabled
        self.view_extensions = frozenset(e.lower().lstrip(".") for e in view_extensions)
        self.stylesheet_extensions = tuple(e.lower().lstrip(".") for e in stylesheet_extensions)

    def for_extension(self, extension: str) -> ReloadStrategy:
        ext = extension.lower().lstrip(".")
        if ext in self.stylesheet_extensions:
            return ReloadStrategy.STYLESHEET_RELOAD if self.stylesheet_reload_enabled else ReloadStrategy.IGNORE
        if ext in self.view_extensions or ext in ASSET_EXTENSIONS:
            return ReloadStrategy.FULL_RELOAD if self.view_reload_enabled else ReloadStrategy.IGNORE
        return ReloadStrategy.IGNORE

    def for_path(self, path: str) -> ReloadStrategy:
        return self.for_extension(get_extension(path))

    def is_view(self, path: str) -> bool:
        return get_extension(path) in self.view_extensions

    def is_stylesheet(self, path: str) -> bool:
        return get_extension(path) in self.stylesheet_extensions

    def __repr__(self) -> str:
        return (
            f"ReloadPolicy(view={self.view_reload_enabled}, "
            f"stylesheet={self.stylesheet_reload_enabled})"
        )


def for_extension(extension: str) -> ReloadStrategy:
    """Classification with every category enabled."""
    return _DEFAULT_POLICY.for_extension(extension)


_DEFAULT_POLICY = ReloadPolicy()


# ─── Style refresh ────────────────────────────────────────────────────────────


def refresh_styles(target: object) -> None:
    """Re-apply stylesheets on ``target`` and, recursively, its children.

    A target with ``refresh_styles()`` handles the refresh itself. Otherwise a
    mutable ``stylesheets`` list is copied, cleared and re-filled, which makes
    the toolkit drop its cached styles and parse the files again.
    """
    refresh = getattr(target, "refresh_styles", None)
    if callable(refresh):
        refresh()
        return

    sheets = getattr(target, "stylesheets", None)
    if isinstance(sheets, list) and sheets:
        saved = list(sheets)
        sheets.clear()
        sheets.extend(saved)

    for child in getattr(target, "children", None) or ():
        refresh_styles(child)


def refresh_stylesheet_owner(owner: object, resource_path: str, source_uri: str | None = None) -> int:
    """Refresh every entry of ``owner.stylesheets`` naming ``resource_path``.

    Matching entries are pointed at ``source_uri`` when the editable source is
    known, else removed and re-inserted in place. Returns how many matched.
    """
    sheets = getattr(owner, "stylesheets", None)
    if not isinstance(sheets, list):
        return 0
    count = 0
    for i, location in enumerate(list(sheets)):
        if not paths.matches_resource_path(location, resource_path):
            continue
        del sheets[i]
        sheets.insert(i, source_uri or location)
        count += 1
    return count


def apply(strategy: ReloadStrategy, component: Reloadable) -> None:
    """Run ``strategy`` against one component.

    A stylesheet refresh falls back to a full reload when the component has no
    style target or the refresh raises.
    """
    if strategy is ReloadStrategy.IGNORE:
        return
    if strategy is ReloadStrategy.FULL_RELOAD:
        component.reload()
        return

    target = component.style_refresh_target() if isinstance(component, StyleRefreshable) else None
    if target is None:
        logger.debug("no style target on %r; full reload", component)
        component.reload()
        return
    try:
        refresh_styles(target)
    except Exception:
        logger.warning("style refresh failed on %r; falling back to full reload", component, exc_info=True)
        component.reload()
