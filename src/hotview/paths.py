"""Runtime <-> source path heuristics across build-system layouts.

A view is usually loaded from a build output directory (``target/classes``,
``build/resources/main``, ``build/lib`` ...) while the developer edits the copy
under the source tree. This module maps between the two and derives the
canonical resource path used as a key everywhere else.

Converters are plain functions ``str -> Path | None`` tried in order:
user-supplied converters first, then one built-in converter per build tool.
Adding support for a new layout means appending a converter, never editing
the lookup loop.

Pure string helpers do no I/O; the converters and the ``infer_*`` / ``find_*``
helpers check the filesystem.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path
from urllib.parse import unquote, urlsplit
from urllib.request import url2pathname

from hotview import build_systems
from hotview.build_systems import normalize

logger = logging.getLogger(__name__)

Converter = Callable[[str], "Path | None"]

ARCHIVE_SEPARATOR = "!/"

# (output segment, source segment) pairs per tool, tried in order.
_MAVEN_PAIRS = (
    ("target/classes", "src/main/resources"),
    ("target/classes", "src/main/java"),
    ("target/test-classes", "src/test/resources"),
    ("target/test-classes", "src/test/java"),
)
_GRADLE_PAIRS = (
    ("build/resources/main", "src/main/resources"),
    ("build/classes/java/main", "src/main/resources"),
    ("build/classes/java/main", "src/main/java"),
    ("build/classes/kotlin/main", "src/main/resources"),
    ("build/classes/kotlin/main", "src/main/kotlin"),
    ("build/resources/test", "src/test/resources"),
    ("build/classes/java/test", "src/test/resources"),
    ("build/classes/java/test", "src/test/java"),
    ("build/classes/kotlin/test", "src/test/resources"),
    ("build/classes/kotlin/test", "src/test/kotlin"),
)
_SETUPTOOLS_PAIRS = (
    ("build/lib", "src"),
    # flat layout: package sits directly under the project root
    ("build/lib", ""),
)
_IDEA_PAIRS = (
    ("out/production/resources", "src/main/resources"),
    ("out/production/classes", "src/main/resources"),
    ("out/production/classes", "src/main/java"),
    ("out/test/resources", "src/test/resources"),
    ("out/test/classes", "src/test/resources"),
    ("out/test/classes", "src/test/java"),
)
_ECLIPSE_PAIRS = (
    ("bin/main", "src/main/resources"),
    ("bin/main", "src/main/java"),
    ("bin/test", "src/test/resources"),
    ("bin/test", "src/test/java"),
)


# ─── Location normalization ───────────────────────────────────────────────────


def strip_query(location: str) -> str:
    """Drop cache-busting ``?query`` and ``#fragment`` suffixes."""
    for sep in ("?", "#"):
        idx = location.find(sep)
        if idx >= 0:
            location = location[:idx]
    return location


def is_archive_location(location: str) -> bool:
    return ARCHIVE_SEPARATOR in location or location.startswith("jar:")


def to_filesystem_path(location: str | Path) -> str | None:
    """Turn a path, ``file:`` URI or archive location into a normalized path string.

    Returns None for archive entries, which have no editable file on disk.
    """
    text = strip_query(str(location))
    if is_archive_location(text):
        return None
    if text.startswith("file:"):
        text = url2pathname(unquote(urlsplit(text).path))
    return normalize(text)


# ─── Pure operations (no I/O) ─────────────────────────────────────────────────


def extract_resource_path(full_path: str | Path | None) -> str | None:
    """Return the resource-relative remainder of ``full_path``.

    ``/p/target/classes/com/app/Main.fxml`` -> ``com/app/Main.fxml``
    ``/p/src/main/resources/com/app/Main.css`` -> ``com/app/Main.css``
    ``jar:file:/p/app.jar!/com/app/Main.fxml`` -> ``com/app/Main.fxml``
    """
    if full_path is None:
        return None
    text = strip_query(normalize(str(full_path)))
    idx = text.find(ARCHIVE_SEPARATOR)
    if idx >= 0:
        return text[idx + len(ARCHIVE_SEPARATOR):] or None
    if text.startswith("file:"):
        text = normalize(url2pathname(unquote(urlsplit(text).path)))

    for profile in build_systems.PROFILES:
        idx = text.find(profile.output_marker)
        if idx >= 0:
            return text[idx + len(profile.output_marker):] or None

    for marker in build_systems.SOURCE_MARKERS:
        idx = build_systems.find_source_marker(text, marker)
        if idx >= 0:
            return text[idx + len(marker):] or None

    return None


def to_resource_path(location: str | Path | None) -> str | None:
    """Like extract_resource_path, but already-relative resource strings pass through."""
    if location is None:
        return None
    text = strip_query(normalize(str(location)))
    if not text:
        return None
    if ":" not in text and not text.startswith("/"):
        return text
    return extract_resource_path(text)


def matches_resource_path(location: str | Path | None, resource_path: str | None) -> bool:
    """True when ``location`` (path, URI or resource string) names ``resource_path``."""
    if location is None or resource_path is None:
        return False
    return to_resource_path(location) == resource_path


def resource_root(path: str | Path) -> Path | None:
    """Directory that resource paths inside ``path`` are relative to."""
    text = normalize(str(path))
    for marker in [p.output_marker for p in build_systems.PROFILES] + list(build_systems.SOURCE_MARKERS):
        idx = build_systems.find_source_marker(text, marker)
        if idx >= 0:
            return Path(text[: idx + len(marker) - 1])
    return None


def extract_project_root(path: str | Path) -> str | None:
    """``/p/target/classes/com/App.class`` -> ``/p``."""
    profile = build_systems.from_output_path(str(path))
    if profile is None:
        return None
    text = normalize(str(path))
    text = text if text.endswith("/") else text + "/"
    idx = text.find(profile.output_marker)
    return text[:idx] if idx >= 0 else None


def extract_project_root_from_source(path: str | Path) -> str | None:
    """``/p/src/main/resources/app.css`` -> ``/p``."""
    text = normalize(str(path))
    text = text if text.endswith("/") else text + "/"
    for marker in build_systems.SOURCE_MARKERS:
        idx = build_systems.find_source_marker(text, marker)
        if idx >= 0:
            return text[:idx]
    return None


def find_output_root(path: str | Path) -> Path | None:
    """``/p/target/classes/com/app.css`` -> ``/p/target/classes``."""
    profile = build_systems.from_output_path(str(path))
    if profile is None:
        return None
    text = normalize(str(path))
    text = text if text.endswith("/") else text + "/"
    idx = text.find(profile.output_marker)
    return Path(text[: idx + len(profile.output_marker) - 1])


def infer_source_directory(output_dir: str | Path) -> Path | None:
    root = extract_project_root(output_dir)
    profile = build_systems.from_output_path(str(output_dir))
    if root is None or profile is None:
        return None
    return Path(root) / profile.source_dir


# ─── I/O operations ───────────────────────────────────────────────────────────


def infer_output_directory(source_dir: str | Path) -> Path | None:
    """First existing output directory of the project owning ``source_dir``."""
    root = extract_project_root_from_source(source_dir)
    if root is None:
        return None
    project = Path(root)
    for output in build_systems.output_paths(build_systems.is_test_source_path(str(source_dir))):
        candidate = project / output
        if candidate.exists():
            return candidate
    return None


def looks_like_project_root(directory: str | Path) -> bool:
    directory = Path(directory)
    if not directory.is_dir():
        return False
    if any((directory / marker).exists() for marker in build_systems.PROJECT_MARKER_FILES):
        return True
    return any((directory / src).exists() for src in build_systems.MAIN_SOURCE_DIRS)


def find_project_root(start: str | Path) -> Path | None:
    """Nearest directory at or above ``start`` that looks like a project root."""
    directory = Path(start).absolute()
    for candidate in (directory, *directory.parents):
        if looks_like_project_root(candidate):
            return candidate
    return None


def find_source_file(resource_path: str, project_root: str | Path) -> Path | None:
    """Look ``resource_path`` up under every known source directory of a project."""
    project = Path(project_root)
    for source_dir in build_systems.source_directories():
        candidate = project / source_dir / resource_path
        if candidate.exists():
            return candidate
    return None


def _try_convert(path: str, pairs: Sequence[tuple[str, str]]) -> Path | None:
    for output_seg, source_seg in pairs:
        needle = f"/{output_seg}/"
        idx = path.find(needle)
        if idx < 0:
            continue
        replacement = f"/{source_seg}/" if source_seg else "/"
        candidate = Path(path[:idx] + replacement + path[idx + len(needle):])
        if candidate.exists():
            logger.debug("converted %s -> %s", path, candidate)
            return candidate
    return None


def _converter(pairs: Sequence[tuple[str, str]]) -> Converter:
    def convert(path: str) -> Path | None:
        return _try_convert(path, pairs)

    return convert


MAVEN: Converter = _converter(_MAVEN_PAIRS)
GRADLE: Converter = _converter(_GRADLE_PAIRS)
SETUPTOOLS: Converter = _converter(_SETUPTOOLS_PAIRS)
INTELLIJ: Converter = _converter(_IDEA_PAIRS)
ECLIPSE: Converter = _converter(_ECLIPSE_PAIRS)

DEFAULT_CONVERTERS: tuple[Converter, ...] = (MAVEN, GRADLE, SETUPTOOLS, INTELLIJ, ECLIPSE)


class PathResolver:
    """Ordered converter list: user converters, then the built-in defaults.

    Stateless apart from the converter list, which is only appended to.
    """

    def __init__(self, converters: Sequence[Converter] = ()) -> None:
        self._custom: list[Converter] = list(converters)

    def add_converter(self, converter: Converter) -> None:
        self._custom.append(converter)

    @property
    def converters(self) -> list[Converter]:
        return [*self._custom, *DEFAULT_CONVERTERS]

    def to_source_path(self, runtime_location: str | Path | None) -> Path | None:
        """Editable source file for ``runtime_location``, or None.

        None means no converter matched or no candidate exists on disk; callers
        fall back to the runtime location.
        """
        if runtime_location is None:
            return None
        path = to_filesystem_path(runtime_location)
        if path is None:
            logger.debug("no source path for archive location %s", runtime_location)
            return None
        for converter in self.converters:
            try:
                result = converter(path)
            except Exception:
                logger.debug("converter %r failed for %s", converter, path, exc_info=True)
                continue
            if result is not None:
                return Path(result)
        logger.debug("no source path found for %s", path)
        return None

    def extract_resource_path(self, full_path: str | Path | None) -> str | None:
        return extract_resource_path(full_path)
