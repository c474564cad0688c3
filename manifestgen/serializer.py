"""TOML rendering and parsing of closure manifests."""

from __future__ import annotations

import tomllib
from typing import Any, Dict, List, Mapping, Optional, Tuple

import tomli_w

from .errors import InvalidRecordError, MergeConflict
from .models import (
    CGO_FLAG_KEYS,
    DEFAULT_COVER_MODE,
    DEFAULT_FILE_NAME_PATTERN,
    DEFAULT_GIT_BRANCH,
    DEFAULT_GIT_DEPTH,
    DEFAULT_GIT_PATH,
    FILE_CATEGORIES,
    SCRIPT_KEYS,
    CgoFlags,
    ClosureResult,
    CoverageConfig,
    FetchFailure,
    FileGroup,
    ManifestRecord,
    Provenance,
    Scripts,
    SourceFiles,
)

_IGNORED_PREFIX = "ignored-"


def serialize(result: ClosureResult, *, include_ignored: bool = False) -> str:
    """Render ``result`` as a TOML manifest.

    Packages are written in package-path order and empty fields are left out,
    so equal results always render to identical text. Files excluded by build
    constraints are only written when ``include_ignored`` is set.
    """
    document: Dict[str, Any] = {"root": result.root}
    if result.root_deps:
        document["root-deps"] = list(result.root_deps)

    packages = [
        _record_to_table(result.records[name], include_ignored)
        for name in sorted(result.records)
    ]
    if packages:
        document["package"] = packages

    if result.errors:
        document["error"] = [
            {"package": failure.package, "message": failure.message} for failure in result.errors
        ]
    if result.conflicts:
        document["conflict"] = [
            {
                "package": conflict.package,
                "field": conflict.field,
                "kept": conflict.kept,
                "rejected": conflict.rejected,
            }
            for conflict in result.conflicts
        ]
    return tomli_w.dumps(document)


def parse(text: str) -> ClosureResult:
    """Rebuild a ``ClosureResult`` from manifest text produced by ``serialize``."""
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise InvalidRecordError(f"Manifest is not valid TOML: {exc}") from exc

    root = data.get("root")
    if not isinstance(root, str) or not root:
        raise InvalidRecordError("Manifest is missing the root package")

    records: Dict[str, ManifestRecord] = {}
    for table in _tables(data, "package"):
        record = _record_from_table(table)
        if record.package in records:
            raise InvalidRecordError(f"Duplicate package entry {record.package!r}")
        records[record.package] = record

    errors = tuple(
        FetchFailure(package=_required_str(table, "package"), message=_required_str(table, "message"))
        for table in _tables(data, "error")
    )
    conflicts = tuple(
        MergeConflict(
            package=_required_str(table, "package"),
            field=_required_str(table, "field"),
            kept=_required_str(table, "kept"),
            rejected=_required_str(table, "rejected"),
        )
        for table in _tables(data, "conflict")
    )
    return ClosureResult(
        root=root,
        records=records,
        root_deps=_str_tuple(data, "root-deps"),
        errors=errors,
        conflicts=conflicts,
    )


# ------------------------------------------------------------------
# Rendering helpers


def _record_to_table(record: ManifestRecord, include_ignored: bool) -> Dict[str, Any]:
    table: Dict[str, Any] = {"package": record.package}
    _put_list(table, "imports", record.imports)
    _put_list(table, "test-imports", record.test_imports)
    _put_list(table, "x-test-imports", record.external_test_imports)
    _put_list(table, "deps", record.deps)

    for name, key in FILE_CATEGORIES:
        _put_list(table, key, record.files.group(name).files)
    if include_ignored:
        for name, key in FILE_CATEGORIES:
            _put_list(table, f"{_IGNORED_PREFIX}{key}", record.files.group(name).ignored)

    for name, key in CGO_FLAG_KEYS:
        _put_list(table, key, getattr(record.cgo, name))

    _put_list(table, "build-tags", record.build_tags)
    if record.incomplete:
        table["incomplete"] = True
    if record.toolchain_version:
        table["toolchain-version"] = record.toolchain_version

    if record.coverage is not None:
        table["coverage"] = _coverage_to_table(record.coverage)
    if record.provenance is not None:
        provenance = record.provenance
        table["git"] = {
            "repo": provenance.repo_url,
            "branch": provenance.branch,
            "path": provenance.sub_path,
            "depth": provenance.depth,
            "version": provenance.resolved_version,
        }
    if record.scripts:
        scripts: Dict[str, Any] = {}
        for name, key in SCRIPT_KEYS:
            _put_list(scripts, key, getattr(record.scripts, name))
        table["scripts"] = scripts
    return table


def _coverage_to_table(coverage: CoverageConfig) -> Dict[str, Any]:
    table: Dict[str, Any] = {"mode": coverage.mode, "file-name": coverage.file_name_pattern}
    _put_list(table, "exclude", coverage.exclude_patterns)
    if coverage.parallel:
        table["parallel"] = True
    if coverage.exclude_all:
        table["exclude-all"] = True
    # An empty label map is treated as absent.
    if coverage.labels:
        table["labels"] = dict(coverage.labels)
    return table


def _put_list(table: Dict[str, Any], key: str, values: Tuple[str, ...]) -> None:
    if values:
        table[key] = list(values)


# ------------------------------------------------------------------
# Parsing helpers


def _record_from_table(table: Mapping[str, Any]) -> ManifestRecord:
    package = _required_str(table, "package")
    files = SourceFiles(
        **{
            name: FileGroup(
                files=_str_tuple(table, key),
                ignored=_str_tuple(table, f"{_IGNORED_PREFIX}{key}"),
            )
            for name, key in FILE_CATEGORIES
        }
    )
    scripts_table = _optional_table(table, "scripts")
    scripts = Scripts(
        **{name: _str_tuple(scripts_table or {}, key) for name, key in SCRIPT_KEYS}
    )
    incomplete = table.get("incomplete", False)
    if not isinstance(incomplete, bool):
        raise InvalidRecordError(f"{package}: incomplete must be a boolean")
    toolchain_version = table.get("toolchain-version", "")
    if not isinstance(toolchain_version, str):
        raise InvalidRecordError(f"{package}: toolchain-version must be a string")

    return ManifestRecord(
        package=package,
        files=files,
        imports=_str_tuple(table, "imports"),
        test_imports=_str_tuple(table, "test-imports"),
        external_test_imports=_str_tuple(table, "x-test-imports"),
        deps=_str_tuple(table, "deps"),
        build_tags=_str_tuple(table, "build-tags"),
        incomplete=incomplete,
        coverage=_coverage_from_table(_optional_table(table, "coverage")),
        provenance=_provenance_from_table(_optional_table(table, "git")),
        cgo=CgoFlags(**{name: _str_tuple(table, key) for name, key in CGO_FLAG_KEYS}),
        scripts=scripts,
        toolchain_version=toolchain_version,
    )


def _coverage_from_table(table: Optional[Mapping[str, Any]]) -> Optional[CoverageConfig]:
    if table is None:
        return None
    labels = _optional_table(table, "labels") or {}
    return CoverageConfig(
        mode=_defaulted_str(table, "mode", DEFAULT_COVER_MODE),
        exclude_patterns=_str_tuple(table, "exclude"),
        file_name_pattern=_defaulted_str(table, "file-name", DEFAULT_FILE_NAME_PATTERN),
        parallel=_bool(table, "parallel"),
        exclude_all=_bool(table, "exclude-all"),
        labels=dict(labels),
    )


def _provenance_from_table(table: Optional[Mapping[str, Any]]) -> Optional[Provenance]:
    if table is None:
        return None
    return Provenance(
        repo_url=_required_str(table, "repo"),
        resolved_version=_required_str(table, "version"),
        branch=_defaulted_str(table, "branch", DEFAULT_GIT_BRANCH),
        sub_path=_defaulted_str(table, "path", DEFAULT_GIT_PATH),
        depth=table.get("depth", DEFAULT_GIT_DEPTH),
    )


def _tables(data: Mapping[str, Any], key: str) -> List[Mapping[str, Any]]:
    value = data.get(key, [])
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        raise InvalidRecordError(f"Manifest key {key!r} must be an array of tables")
    return value


def _optional_table(data: Mapping[str, Any], key: str) -> Optional[Mapping[str, Any]]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise InvalidRecordError(f"Manifest key {key!r} must be a table")
    return value


def _required_str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidRecordError(f"Manifest key {key!r} must be a non-empty string")
    return value


def _defaulted_str(data: Mapping[str, Any], key: str, default: str) -> str:
    if key not in data:
        return default
    return _required_str(data, key)


def _bool(data: Mapping[str, Any], key: str) -> bool:
    value = data.get(key, False)
    if not isinstance(value, bool):
        raise InvalidRecordError(f"Manifest key {key!r} must be a boolean")
    return value


def _str_tuple(data: Mapping[str, Any], key: str) -> Tuple[str, ...]:
    value = data.get(key, [])
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise InvalidRecordError(f"Manifest key {key!r} must be a list of strings")
    return tuple(value)


__all__ = ["parse", "serialize"]
