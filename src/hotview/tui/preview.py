"""Live include-tree preview.

A Textual app that shows the include tree of one view file and rebuilds it
whenever the file, anything it includes, or its stylesheet changes on disk.
The tree widget is itself the hot-reloadable component.
"""

from __future__ import annotations

from pathlib import Path

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header, Tree
from textual.widgets.tree import TreeNode

from hotview import includes, paths
from hotview.service import HotReloadService
from hotview.settings import HotReloadSettings
from hotview.tui.dispatch import HotReloadAppMixin, TextualDispatch


def _label_for(path: Path) -> str:
    label = paths.extract_resource_path(path) or path.name
    if not path.exists():
        label += " (missing)"
    return label


class IncludeTreeView(Tree[str]):
    """Tree of includes rooted at one view file; reload() re-reads it from disk."""

    def __init__(self, root_file: Path, resource: str, **kwargs) -> None:
        super().__init__(resource, **kwargs)
        self._root_file = root_file
        self._resource = resource
        self.reload_count = 0

    def resource_path(self) -> str:
        return self._resource

    def source_location(self) -> Path:
        return self._root_file

    def reload(self) -> None:
        tree = includes.analyze_tree(self._root_file)
        self.clear()
        self.root.set_label(self._resource)
        self._add_children(self.root, tree, tree.root, frozenset({tree.root}))
        self.root.expand_all()
        self.reload_count += 1
        self.app.sub_title = f"{len(tree.files)} file(s), reloaded {self.reload_count}x"

    def _add_children(
        self,
        node: TreeNode[str],
        tree: includes.IncludeTree,
        parent: Path,
        ancestors: frozenset[Path],
    ) -> None:
        for child in tree.children_of(parent):
            label = _label_for(child)
            if child in ancestors:
                node.add_leaf(f"{label} (cycle)", data=str(child))
                continue
            if tree.children_of(child):
                branch = node.add(label, data=str(child))
                self._add_children(branch, tree, child, ancestors | {child})
            else:
                node.add_leaf(label, data=str(child))


class PreviewApp(HotReloadAppMixin, App):
    """Include-tree preview for one view file."""

    TITLE = "hotview preview"
    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("r", "reload", "Reload"),
    ]

    def __init__(
        self,
        root_file: str | Path,
        resource: str | None = None,
        settings: HotReloadSettings | None = None,
    ) -> None:
        super().__init__()
        self.root_file = Path(root_file).resolve()
        self.resource = resource or paths.extract_resource_path(self.root_file) or self.root_file.name
        self.settings = settings or HotReloadSettings()
        self.service: HotReloadService | None = None

    def compose(self) -> ComposeResult:
        yield Header()
        yield IncludeTreeView(self.root_file, self.resource, id="includes")
        yield Footer()

    def on_mount(self) -> None:
        view = self.query_one(IncludeTreeView)
        view.reload()
        self.service = HotReloadService(self.settings, ui=TextualDispatch(self))
        self.service.register(view)
        self.service.enable()

    def on_unmount(self) -> None:
        if self.service is not None:
            self.service.disable()

    def action_reload(self) -> None:
        self.query_one(IncludeTreeView).reload()
