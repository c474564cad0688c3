"""Core data models shared across manifestgen components."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from .errors import InvalidRecordError, MergeConflict

# (attribute, manifest key) pairs in canonical output order.
FILE_CATEGORIES: Tuple[Tuple[str, str], ...] = (
    ("buildable", "buildable-files"),
    ("cgo", "cgo-files"),
    ("test", "test-files"),
    ("x_test", "x-test-files"),
    ("c", "c-files"),
    ("header", "h-files"),
    ("assembly", "s-files"),
    ("swig", "swig-files"),
    ("swig_cxx", "swig-cxx-files"),
    ("syso", "syso-files"),
)

CGO_FLAG_KEYS: Tuple[Tuple[str, str], ...] = (
    ("cflags", "cgo-cflags"),
    ("cppflags", "cgo-cppflags"),
    ("cxxflags", "cgo-cxxflags"),
    ("fflags", "cgo-fflags"),
    ("ldflags", "cgo-ldflags"),
    ("pkg_config", "cgo-pkg-config"),
)

SCRIPT_KEYS: Tuple[Tuple[str, str], ...] = (
    ("environment", "env"),
    ("build_flags", "build-flags"),
    ("build_commands", "build"),
    ("run_commands", "run"),
    ("test_commands", "test"),
)

DEFAULT_COVER_MODE = "set"
DEFAULT_FILE_NAME_PATTERN = ".*"
DEFAULT_GIT_BRANCH = "master"
DEFAULT_GIT_PATH = "."
DEFAULT_GIT_DEPTH = 1


@dataclass(frozen=True)
class FileGroup:
    """Files of one category, split into selected and constraint-ignored names."""

    files: Tuple[str, ...] = ()
    ignored: Tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.files or self.ignored)


@dataclass(frozen=True)
class SourceFiles:
    """Categorised source files for a single package."""

    buildable: FileGroup = FileGroup()
    cgo: FileGroup = FileGroup()
    test: FileGroup = FileGroup()
    x_test: FileGroup = FileGroup()
    c: FileGroup = FileGroup()
    header: FileGroup = FileGroup()
    assembly: FileGroup = FileGroup()
    swig: FileGroup = FileGroup()
    swig_cxx: FileGroup = FileGroup()
    syso: FileGroup = FileGroup()

    def group(self, category: str) -> FileGroup:
        return getattr(self, category)

    def without_ignored(self) -> "SourceFiles":
        return SourceFiles(
            **{name: FileGroup(files=self.group(name).files) for name, _ in FILE_CATEGORIES}
        )


@dataclass(frozen=True)
class CoverageConfig:
    """Coverage instrumentation settings; present only when coverage was requested."""

    mode: str = DEFAULT_COVER_MODE
    exclude_patterns: Tuple[str, ...] = ()
    file_name_pattern: str = DEFAULT_FILE_NAME_PATTERN
    parallel: bool = False
    exclude_all: bool = False
    labels: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.mode.strip():
            raise InvalidRecordError("coverage mode must not be empty")
        if not self.file_name_pattern:
            raise InvalidRecordError("coverage file name pattern must not be empty")
        for label, weight in self.labels.items():
            if not label or "." in label or "*" in label:
                raise InvalidRecordError(f"invalid coverage label {label!r}")
            if isinstance(weight, bool) or not isinstance(weight, int) or weight < 0:
                raise InvalidRecordError(
                    f"coverage label {label!r} must map to a non-negative integer"
                )
        # Labels render in key order; normalise so equal configs compare and serialise alike.
        object.__setattr__(self, "labels", dict(sorted(self.labels.items())))

    def mode_words(self) -> Tuple[str, ...]:
        return tuple(word.strip() for word in self.mode.split(",") if word.strip())


@dataclass(frozen=True)
class Provenance:
    """Remote repository location a package was fetched from."""

    repo_url: str
    resolved_version: str
    branch: str = DEFAULT_GIT_BRANCH
    sub_path: str = DEFAULT_GIT_PATH
    depth: int = DEFAULT_GIT_DEPTH

    def __post_init__(self) -> None:
        if not self.repo_url:
            raise InvalidRecordError("provenance repo_url must not be empty")
        if not self.resolved_version:
            raise InvalidRecordError("provenance resolved_version must not be empty")
        if not self.branch or not self.sub_path:
            raise InvalidRecordError("provenance branch and sub_path must not be empty")
        if isinstance(self.depth, bool) or not isinstance(self.depth, int) or self.depth < 1:
            raise InvalidRecordError("provenance depth must be a positive integer")


@dataclass(frozen=True)
class CgoFlags:
    """Compiler and linker flags for packages that use cgo."""

    cflags: Tuple[str, ...] = ()
    cppflags: Tuple[str, ...] = ()
    cxxflags: Tuple[str, ...] = ()
    fflags: Tuple[str, ...] = ()
    ldflags: Tuple[str, ...] = ()
    pkg_config: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Scripts:
    """Free-form environment, flags and commands passed through verbatim."""

    environment: Tuple[str, ...] = ()
    build_flags: Tuple[str, ...] = ()
    build_commands: Tuple[str, ...] = ()
    run_commands: Tuple[str, ...] = ()
    test_commands: Tuple[str, ...] = ()

    def __bool__(self) -> bool:
        return any(getattr(self, name) for name, _ in SCRIPT_KEYS)


@dataclass(frozen=True)
class RawFact:
    """Unmerged single-package facts as reported by a fact source."""

    package: str
    files: SourceFiles = SourceFiles()
    imports: Tuple[str, ...] = ()
    test_imports: Tuple[str, ...] = ()
    external_test_imports: Tuple[str, ...] = ()
    build_tags: Tuple[str, ...] = ()
    incomplete: bool = False
    coverage: Optional[CoverageConfig] = None
    provenance: Optional[Provenance] = None
    cgo: CgoFlags = CgoFlags()
    scripts: Scripts = Scripts()
    toolchain_version: str = ""

    def __post_init__(self) -> None:
        if not self.package:
            raise InvalidRecordError("fact package path must not be empty")


@dataclass(frozen=True)
class ManifestRecord:
    """Canonical build facts for one package of a closure."""

    package: str
    files: SourceFiles = SourceFiles()
    imports: Tuple[str, ...] = ()
    test_imports: Tuple[str, ...] = ()
    external_test_imports: Tuple[str, ...] = ()
    deps: Tuple[str, ...] = ()
    build_tags: Tuple[str, ...] = ()
    incomplete: bool = False
    coverage: Optional[CoverageConfig] = None
    provenance: Optional[Provenance] = None
    cgo: CgoFlags = CgoFlags()
    scripts: Scripts = Scripts()
    toolchain_version: str = ""

    def __post_init__(self) -> None:
        if not self.package:
            raise InvalidRecordError("record package path must not be empty")
        if self.package in self.deps:
            raise InvalidRecordError(f"{self.package} must not depend on itself")

    def all_imports(self) -> Tuple[str, ...]:
        seen: Dict[str, None] = {}
        for path in (*self.imports, *self.test_imports, *self.external_test_imports):
            seen.setdefault(path, None)
        return tuple(seen)

    def is_complete(self, records: Mapping[str, "ManifestRecord"]) -> bool:
        """Return True when the record is fully classified and every import resolved."""
        if self.incomplete:
            return False
        return all(path in records for path in self.all_imports())


@dataclass(frozen=True)
class FetchFailure:
    """A package the fact source could not load."""

    package: str
    message: str
    error: Optional[LookupError] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ClosureResult:
    """Merged records for a root package and everything it transitively imports."""

    root: str
    records: Dict[str, ManifestRecord] = field(default_factory=dict)
    root_deps: Tuple[str, ...] = ()
    errors: Tuple[FetchFailure, ...] = ()
    conflicts: Tuple[MergeConflict, ...] = ()

    def incomplete_packages(self) -> list[str]:
        return [name for name, record in self.records.items() if not record.is_complete(self.records)]


__all__ = [
    "CGO_FLAG_KEYS",
    "CgoFlags",
    "ClosureResult",
    "CoverageConfig",
    "FILE_CATEGORIES",
    "FetchFailure",
    "FileGroup",
    "ManifestRecord",
    "Provenance",
    "RawFact",
    "SCRIPT_KEYS",
    "Scripts",
    "SourceFiles",
]
