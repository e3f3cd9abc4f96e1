"""Include analysis for view files.

Finds every view file a root transitively embeds through include elements,
without loading the markup engine. Used to build the reverse dependency
graph.

Stateless and thread-safe. Never raises for bad input: unreadable files,
malformed markup and unresolvable includes are logged and skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from lxml import etree

from hotview import paths

logger = logging.getLogger(__name__)

FXML_NAMESPACE = "http://javafx.com/fxml/1"
FXML_NAMESPACE_ALT = "http://javafx.com/fxml"

INCLUDE_TAGS = frozenset(
    {
        f"{{{FXML_NAMESPACE}}}include",
        f"{{{FXML_NAMESPACE_ALT}}}include",
        # prefix used without a namespace declaration
        "fx:include",
        # namespace-free fallback
        "include",
    }
)

SOURCE_ATTRIBUTE = "source"

# Files without this byte sequence cannot contain an include element.
_INCLUDE_MARKER = b"include"


def _make_parser() -> etree.XMLParser:
    # No entity expansion, no DTD loading, no network: view files live in
    # developer-writable trees that may come from untrusted repositories.
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        load_dtd=False,
        dtd_validation=False,
        huge_tree=False,
        remove_comments=True,
        remove_pis=True,
    )


def parse_include_sources(content: bytes) -> list[str]:
    """Return the ``source`` attribute of every include element in ``content``.

    Raises lxml.etree.XMLSyntaxError for malformed markup.
    """
    if _INCLUDE_MARKER not in content:
        return []
    root = etree.fromstring(content, parser=_make_parser())
    sources = []
    for element in root.iter():
        if not isinstance(element.tag, str) or element.tag not in INCLUDE_TAGS:
            continue
        source = (element.get(SOURCE_ATTRIBUTE) or "").strip()
        if source:
            sources.append(source)
    return sources


def find_include_sources(path: str | Path) -> list[str]:
    """Raw include references declared directly in ``path``; [] on any failure."""
    try:
        content = Path(path).read_bytes()
    except OSError as e:
        logger.warning("cannot read view file %s: %s", path, e)
        return []
    try:
        return parse_include_sources(content)
    except etree.XMLSyntaxError as e:
        logger.warning("cannot parse view file %s: %s", path, e)
        return []


def resolve_include(including_file: Path, source: str) -> Path:
    """Resolve an include reference against the file that declares it.

    Relative references resolve against the including file's directory. A
    leading ``/`` is resource-root relative (the output or source directory
    the including file lives in); without a known root it is taken as an
    absolute filesystem path.
    """
    source = paths.strip_query(source.replace("\\", "/"))
    if source.startswith("/"):
        root = paths.resource_root(including_file)
        if root is not None:
            return Path(root, source.lstrip("/")).resolve()
        return Path(source).resolve()
    return (including_file.parent / source).resolve()


@dataclass(frozen=True)
class IncludeTree:
    """Result of walking one root: every file reached plus the direct include edges."""

    root: Path
    files: tuple[Path, ...]
    # (including file, included file), in discovery order
    edges: tuple[tuple[Path, Path], ...]

    def children_of(self, path: Path) -> list[Path]:
        return [child for parent, child in self.edges if parent == path]

    def parents_of(self, path: Path) -> list[Path]:
        return [parent for parent, child in self.edges if child == path]


def analyze_tree(root: str | Path) -> IncludeTree:
    """Walk the include tree of ``root`` depth-first.

    Cycles are reported once per detection and cut; files shared by several
    branches are analyzed once. Edges are recorded even when the target was
    already visited, so a cycle still shows up as an edge.
    """
    root_path = Path(root).resolve()
    found: dict[Path, None] = {}
    edges: dict[tuple[Path, Path], None] = {}
    _walk(root_path, found, edges, set())
    logger.debug("found %d view file(s) in include tree of %s", len(found), root_path)
    return IncludeTree(root=root_path, files=tuple(found), edges=tuple(edges))


def find_all_included(root: str | Path) -> list[Path]:
    """Every view file in the include tree of ``root``, root first, no duplicates."""
    return list(analyze_tree(root).files)


def _walk(
    current: Path,
    found: dict[Path, None],
    edges: dict[tuple[Path, Path], None],
    path_stack: set[Path],
) -> None:
    if current in path_stack:
        logger.warning("circular include detected: %s", current)
        return
    if current in found:
        return

    path_stack.add(current)
    found[current] = None
    try:
        for source in find_include_sources(current):
            try:
                included = resolve_include(current, source)
            except (OSError, ValueError, RuntimeError) as e:
                logger.warning("cannot resolve include '%s' in %s: %s", source, current, e)
                continue
            logger.debug("include %s -> %s", source, included)
            edges[(current, included)] = None
            _walk(included, found, edges, path_stack)
    finally:
        path_stack.discard(current)
