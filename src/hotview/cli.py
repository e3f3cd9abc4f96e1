"""CLI entry point for hotview."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table
from rich.tree import Tree

import hotview.logging_setup
import hotview.settings
from hotview import build_systems, includes, paths
from hotview.dispatch import QueueDispatch
from hotview.service import HotReloadService
from hotview.settings import HotReloadSettings
from hotview.tui.preview import PreviewApp

logger = logging.getLogger(__name__)


# ─── watch ────────────────────────────────────────────────────────────────────


class ConsoleView:
    """Stand-in component that reports reloads instead of rebuilding a UI."""

    def __init__(self, file: Path, resource: str, console: Console) -> None:
        self._file = file
        self._resource = resource
        self._console = console
        self.reloads = 0
        self.style_refreshes = 0

    def resource_path(self) -> str:
        return self._resource

    def source_location(self) -> Path:
        return self._file

    def reload(self) -> None:
        self.reloads += 1
        self._console.print(f"[bold green]reload[/] {self._resource} [dim](#{self.reloads})[/]")

    def style_refresh_target(self) -> ConsoleView:
        return self

    def refresh_styles(self) -> None:
        self.style_refreshes += 1
        self._console.print(f"[bold cyan]restyle[/] {self._resource} [dim](#{self.style_refreshes})[/]")

    def __repr__(self) -> str:
        return f"<ConsoleView {self._resource}>"


def resource_for(file: Path) -> str:
    """Resource path of a file given on the command line."""
    return paths.extract_resource_path(file) or file.name


def _cmd_watch(args: argparse.Namespace, settings: HotReloadSettings, console: Console) -> int:
    ui = QueueDispatch()
    service = HotReloadService(settings, ui=ui)
    views = []
    for raw in args.roots:
        file = Path(raw).resolve()
        if not file.is_file():
            console.print(f"[red]not a file:[/] {raw}")
            return 2
        view = ConsoleView(file, resource_for(file), console)
        if service.register(view):
            views.append(view)

    service.enable()
    console.print(
        f"watching {len(service.watched_files())} file(s) for {len(views)} view(s); Ctrl+C to stop"
    )
    try:
        while True:
            ui.drain(timeout=0.5)
    except KeyboardInterrupt:
        pass
    finally:
        service.disable()
    return 0


# ─── deps ─────────────────────────────────────────────────────────────────────


def build_include_tree(root: Path) -> Tree:
    tree = includes.analyze_tree(root)
    rendered = Tree(f"[bold]{resource_for(tree.root)}[/]")

    def add(node: Tree, parent: Path, ancestors: frozenset[Path]) -> None:
        for child in tree.children_of(parent):
            label = resource_for(child)
            if not child.exists():
                label += " [red](missing)[/]"
            if child in ancestors:
                node.add(f"{label} [yellow](cycle)[/]")
                continue
            add(node.add(label), child, ancestors | {child})

    add(rendered, tree.root, frozenset({tree.root}))
    return rendered


def _cmd_deps(args: argparse.Namespace, settings: HotReloadSettings, console: Console) -> int:
    root = Path(args.root).resolve()
    if not root.is_file():
        console.print(f"[red]not a file:[/] {args.root}")
        return 2
    console.print(build_include_tree(root))
    return 0


# ─── resolve ──────────────────────────────────────────────────────────────────


def describe_path(location: str) -> dict[str, str]:
    """Everything the path heuristics derive from one location."""
    resolver = paths.PathResolver()
    fs_path = paths.to_filesystem_path(location)
    profile = build_systems.from_output_path(fs_path)
    project = paths.extract_project_root(location) or paths.extract_project_root_from_source(location)
    source = resolver.to_source_path(location)
    output = paths.infer_output_directory(location) if build_systems.is_source_path(fs_path) else None
    source_dir = paths.infer_source_directory(fs_path) if profile else None
    return {
        "location": location,
        "resource path": paths.extract_resource_path(location) or "-",
        "build profile": profile.name if profile else "-",
        "project root": project or "-",
        "source file": str(source) if source else "-",
        "source directory": str(source_dir or paths.resource_root(fs_path or location) or "-"),
        "output directory": str(output or paths.find_output_root(location) or "-"),
    }


def _cmd_resolve(args: argparse.Namespace, settings: HotReloadSettings, console: Console) -> int:
    for location in args.paths:
        table = Table(show_header=False, box=None)
        table.add_column(style="bold")
        table.add_column()
        for key, value in describe_path(location).items():
            table.add_row(key, value)
        console.print(table)
    return 0


# ─── config ───────────────────────────────────────────────────────────────────


def apply_config_assignments(assignments: list[str], path: Path | None = None) -> dict:
    """Merge ``key=value`` pairs into the settings file and return the saved dict.

    Raises ValueError for a malformed pair or an unknown key.
    """
    data = hotview.settings.load_settings_file(path)
    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"expected key=value, got {assignment!r}")
        if key not in HotReloadSettings.__dataclass_fields__:
            raise ValueError(f"unknown setting {key!r}")
        # store normalized, so the file holds what the engine will see
        normalized = getattr(HotReloadSettings().with_overrides(**{key: value}), key)
        data[key] = list(normalized) if isinstance(normalized, tuple) else normalized
    hotview.settings.save_settings(data, path)
    return data


def _cmd_config(args: argparse.Namespace, settings: HotReloadSettings, console: Console) -> int:
    if args.set:
        try:
            apply_config_assignments(args.set)
        except ValueError as e:
            console.print(f"[red]{e}[/]")
            return 2
        settings = hotview.settings.load()
        console.print(f"saved {hotview.settings.get_config_path()}")

    table = Table(show_header=False, box=None)
    table.add_column(style="bold")
    table.add_column()
    for key in HotReloadSettings.__dataclass_fields__:
        value = getattr(settings, key)
        table.add_row(key, ", ".join(value) if isinstance(value, tuple) else str(value))
    console.print(table)
    return 0


# ─── preview ──────────────────────────────────────────────────────────────────


def _cmd_preview(args: argparse.Namespace, settings: HotReloadSettings, console: Console) -> int:
    root = Path(args.root).resolve()
    if not root.is_file():
        console.print(f"[red]not a file:[/] {args.root}")
        return 2
    PreviewApp(root, settings=settings).run()
    return 0


# ─── main ─────────────────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hotview", description="Hot reload for declarative view files")
    parser.add_argument("--log-level", default=None, help="Log level (default: $HOTVIEW_LOG_LEVEL or INFO)")
    parser.add_argument("--debounce-ms", type=int, default=None, help="Quiet window before a reload fires")
    parser.add_argument(
        "--no-sync",
        action="store_true",
        help="Don't copy edited source files into the build output",
    )
    parser.add_argument("--no-css", action="store_true", help="Ignore stylesheet changes")
    sub = parser.add_subparsers(dest="command", required=True)

    watch = sub.add_parser("watch", help="Watch view files and print reload events")
    watch.add_argument("roots", nargs="+", help="Root view files")
    watch.set_defaults(handler=_cmd_watch)

    deps = sub.add_parser("deps", help="Print the include tree of a view file")
    deps.add_argument("root", help="Root view file")
    deps.set_defaults(handler=_cmd_deps)

    resolve = sub.add_parser("resolve", help="Show source/resource paths derived from a location")
    resolve.add_argument("paths", nargs="+", help="Paths, file: URIs or archive locations")
    resolve.set_defaults(handler=_cmd_resolve)

    config = sub.add_parser("config", help="Show effective settings, or save some with --set")
    config.add_argument(
        "--set",
        action="append",
        metavar="KEY=VALUE",
        default=[],
        help="Write a setting to the settings file (repeatable)",
    )
    config.set_defaults(handler=_cmd_config)

    preview = sub.add_parser("preview", help="Live include-tree preview (Textual)")
    preview.add_argument("root", help="Root view file")
    preview.set_defaults(handler=_cmd_preview)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    hotview.logging_setup.configure(
        command=args.command,
        level=args.log_level,
        stream=args.command != "preview",
    )
    settings = hotview.settings.load().with_overrides(
        debounce_ms=args.debounce_ms,
        sync_to_output=False if args.no_sync else None,
        stylesheet_reload=False if args.no_css else None,
    )
    logger.debug("settings: %s", settings)
    return args.handler(args, settings, Console())


if __name__ == "__main__":
    sys.exit(main())
