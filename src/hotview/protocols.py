"""Protocol definitions for hot-reloadable view components.

This module defines the contract a component must satisfy to be registered
with a HotReloadService. It has no dependencies on other project modules.

The reload flow:
1. A component registers; the service reads resource_path() and
   source_location() once, stores the component weakly and watches its files
2. A watched view file (or anything it includes) settles after a change
3. The service calls reload() on every live affected component, on the UI
   context the service was built with
4. For a stylesheet change, style_refresh_target() is tried first; the
   component is fully reloaded only when it has no target or refreshing fails
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class Reloadable(Protocol):
    """A live view built from a declarative view file.

    Structural: components don't need to inherit from this protocol. They
    must support weak references (plain classes do; classes with
    ``__slots__`` need a ``__weakref__`` slot), since the service never keeps
    a component alive.

    Example:
        class MainView:
            def resource_path(self) -> str:
                return "app/Main.view"

            def source_location(self) -> Path:
                return self._loaded_from

            def reload(self) -> None:
                self._root = build_view(self._loaded_from)
    """

    def resource_path(self) -> str:
        """Location-independent name of the view, e.g. ``app/Main.view``.

        Forward slashes; a leading slash is ignored.
        """
        ...

    def source_location(self) -> Path | str:
        """Where the view file was loaded from.

        A filesystem path, a ``file:`` URI, or an archive location
        (``jar:file:/app.jar!/app/Main.view``). Archive entries are registered
        but cannot be watched.
        """
        ...

    def reload(self) -> None:
        """Rebuild the component from its view file. Runs on the UI context."""
        ...


@runtime_checkable
class StyleRefreshable(Protocol):
    """Optional extension: lightweight stylesheet refresh.

    style_refresh_target() returns either an object with ``refresh_styles()``
    or a node tree whose ``stylesheets`` lists are re-applied recursively
    through ``children``. Returning None means a full reload.
    """

    def style_refresh_target(self) -> object | None:
        ...


@runtime_checkable
class StylesheetOwner(Protocol):
    """Anything holding a list of stylesheet locations, e.g. a scene root.

    Registered with HotReloadService.register_stylesheet() for shared
    stylesheets that are not tied to one view file. Held weakly.
    """

    stylesheets: list[str]
