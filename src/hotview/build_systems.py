"""Build-system directory conventions.

One table of output layouts, ordered by matching priority. Every other module
that needs to know where compiled resources land reads it from here.

This module is STABLE: pure data plus string helpers, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BuildSystemProfile:
    """One output-directory layout and the source directory it is built from."""

    name: str
    tool: str
    output_marker: str
    source_dir: str
    output_dir: str
    is_test: bool = False


# Order matters: more specific markers first, first match wins.
PROFILES: tuple[BuildSystemProfile, ...] = (
    # Maven
    BuildSystemProfile("maven-main", "maven", "/target/classes/", "src/main/resources", "target/classes"),
    BuildSystemProfile("maven-test", "maven", "/target/test-classes/", "src/test/resources", "target/test-classes", True),
    # Gradle (Java)
    BuildSystemProfile("gradle-java-main", "gradle", "/build/classes/java/main/", "src/main/resources", "build/resources/main"),
    BuildSystemProfile("gradle-java-test", "gradle", "/build/classes/java/test/", "src/test/resources", "build/resources/test", True),
    # Gradle (Kotlin)
    BuildSystemProfile("gradle-kotlin-main", "gradle", "/build/classes/kotlin/main/", "src/main/resources", "build/resources/main"),
    BuildSystemProfile("gradle-kotlin-test", "gradle", "/build/classes/kotlin/test/", "src/test/resources", "build/resources/test", True),
    # Gradle (processed resources)
    BuildSystemProfile("gradle-resources-main", "gradle", "/build/resources/main/", "src/main/resources", "build/resources/main"),
    BuildSystemProfile("gradle-resources-test", "gradle", "/build/resources/test/", "src/test/resources", "build/resources/test", True),
    # setuptools (python -m build / setup.py build)
    BuildSystemProfile("setuptools-lib", "setuptools", "/build/lib/", "src", "build/lib"),
    # IntelliJ IDEA
    BuildSystemProfile("idea-production-classes", "idea", "/out/production/classes/", "src/main/resources", "out/production/resources"),
    BuildSystemProfile("idea-production-resources", "idea", "/out/production/resources/", "src/main/resources", "out/production/resources"),
    BuildSystemProfile("idea-test-classes", "idea", "/out/test/classes/", "src/test/resources", "out/test/resources", True),
    BuildSystemProfile("idea-test-resources", "idea", "/out/test/resources/", "src/test/resources", "out/test/resources", True),
    # Eclipse (Buildship / JDT default output folders)
    BuildSystemProfile("eclipse-main", "eclipse", "/bin/main/", "src/main/resources", "bin/main"),
    BuildSystemProfile("eclipse-test", "eclipse", "/bin/test/", "src/test/resources", "bin/test", True),
)

# Python src layout; also common as a checkout directory (~/src/proj), so the
# last occurrence in a path is the one that counts.
GENERIC_SOURCE_MARKER = "/src/"

# Source-side markers. The generic marker must stay last.
SOURCE_MARKERS: tuple[str, ...] = (
    "/src/main/resources/",
    "/src/test/resources/",
    "/src/main/java/",
    "/src/test/java/",
    "/src/main/kotlin/",
    "/src/test/kotlin/",
    GENERIC_SOURCE_MARKER,
)

PROJECT_MARKER_FILES: tuple[str, ...] = (
    "pom.xml",
    "build.gradle",
    "build.gradle.kts",
    "settings.gradle",
    "settings.gradle.kts",
    "pyproject.toml",
    "setup.py",
)

MAIN_SOURCE_DIRS: tuple[str, ...] = (
    "src/main/resources",
    "src/main/java",
    "src/main/kotlin",
)


def normalize(path: str) -> str:
    """Forward slashes only."""
    return path.replace("\\", "/")


def _with_trailing_slash(path: str) -> str:
    return path if path.endswith("/") else path + "/"


def find_source_marker(path: str, marker: str) -> int:
    """Index of ``marker`` in ``path``, -1 if absent.

    Build-tool markers match their first occurrence, the generic ``/src/``
    its last.
    """
    if marker == GENERIC_SOURCE_MARKER:
        return path.rfind(marker)
    return path.find(marker)


def from_output_path(path: str | None) -> BuildSystemProfile | None:
    """Return the first profile whose output marker occurs in ``path``."""
    if not path:
        return None
    candidate = _with_trailing_slash(normalize(path))
    for profile in PROFILES:
        if profile.output_marker in candidate:
            return profile
    return None


def is_source_path(path: str | None) -> bool:
    if not path:
        return False
    candidate = _with_trailing_slash(normalize(path))
    return any(marker in candidate for marker in SOURCE_MARKERS)


def is_test_source_path(path: str | None) -> bool:
    return bool(path) and "/src/test/" in normalize(path)


def source_directories() -> list[str]:
    """Source markers without the surrounding slashes, e.g. ``src/main/resources``."""
    return [marker.strip("/") for marker in SOURCE_MARKERS]


def output_paths(is_test: bool) -> list[str]:
    """Distinct resource output directories for main or test builds, in profile order."""
    seen: list[str] = []
    for profile in PROFILES:
        if profile.is_test == is_test and profile.output_dir not in seen:
            seen.append(profile.output_dir)
    return seen
