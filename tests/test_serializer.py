"""Tests for manifestgen.serializer."""

from __future__ import annotations

import tomllib

import pytest

from manifestgen.closure import build_closure
from manifestgen.errors import InvalidRecordError, MergeConflict
from manifestgen.models import (
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
from manifestgen.serializer import parse, serialize
from tests._fixtures.fact_graph import FactGraph


def _rich_result() -> ClosureResult:
    app = ManifestRecord(
        package="example.com/app",
        files=SourceFiles(
            buildable=FileGroup(files=("main.go", "server.go"), ignored=("server_windows.go",)),
            test=FileGroup(files=("main_test.go",)),
            c=FileGroup(files=("shim.c",)),
            header=FileGroup(files=("shim.h",)),
        ),
        imports=("example.com/lib", "golang.org/x/text"),
        test_imports=("example.com/testutil",),
        deps=("example.com/lib", "golang.org/x/text"),
        build_tags=("linux", "netgo"),
        coverage=CoverageConfig(mode="set,count", exclude_patterns=("_gen\\.go$",), labels={"core": 2}),
        cgo=CgoFlags(cflags=("-O2",), pkg_config=("zlib",)),
        scripts=Scripts(environment=("CGO_ENABLED=1",), test_commands=("go vet ./...",)),
        toolchain_version="1.22",
    )
    lib = ManifestRecord(package="example.com/lib", files=SourceFiles(buildable=FileGroup(files=("lib.go",))))
    text = ManifestRecord(
        package="golang.org/x/text",
        files=SourceFiles(buildable=FileGroup(files=("doc.go",))),
        provenance=Provenance(
            repo_url="https://golang.org/x/text",
            resolved_version="v0.14.0",
            sub_path=".",
            depth=3,
        ),
    )
    testutil = ManifestRecord(package="example.com/testutil", incomplete=True)
    return ClosureResult(
        root="example.com/app",
        records={record.package: record for record in (app, lib, text, testutil)},
        root_deps=("example.com/lib", "golang.org/x/text"),
        errors=(FetchFailure(package="example.com/testutil", message="example.com/testutil: not found"),),
        conflicts=(MergeConflict("example.com/lib", "toolchain-version", "1.21", "1.22"),),
    )


def test_serialize_renders_canonical_layout() -> None:
    text = serialize(_rich_result())
    data = tomllib.loads(text)

    assert data["root"] == "example.com/app"
    assert data["root-deps"] == ["example.com/lib", "golang.org/x/text"]
    assert [table["package"] for table in data["package"]] == [
        "example.com/app",
        "example.com/lib",
        "example.com/testutil",
        "golang.org/x/text",
    ]

    app = data["package"][0]
    assert list(app)[:5] == ["package", "imports", "test-imports", "deps", "buildable-files"]
    assert app["buildable-files"] == ["main.go", "server.go"]
    assert "ignored-buildable-files" not in app
    assert "cgo-files" not in app
    assert "incomplete" not in app
    assert app["coverage"] == {
        "mode": "set,count",
        "file-name": ".*",
        "exclude": ["_gen\\.go$"],
        "labels": {"core": 2},
    }
    assert app["scripts"] == {"env": ["CGO_ENABLED=1"], "test": ["go vet ./..."]}
    assert "git" not in app

    testutil = data["package"][2]
    assert testutil == {"package": "example.com/testutil", "incomplete": True}

    git = data["package"][3]["git"]
    assert git == {
        "repo": "https://golang.org/x/text",
        "branch": "master",
        "path": ".",
        "depth": 3,
        "version": "v0.14.0",
    }
    assert data["error"] == [{"package": "example.com/testutil", "message": "example.com/testutil: not found"}]
    assert data["conflict"][0]["field"] == "toolchain-version"


def test_serialize_is_byte_stable_regardless_of_record_order() -> None:
    result = _rich_result()
    reordered = ClosureResult(
        root=result.root,
        records=dict(reversed(list(result.records.items()))),
        root_deps=result.root_deps,
        errors=result.errors,
        conflicts=result.conflicts,
    )

    assert serialize(result) == serialize(reordered)
    assert serialize(result) == serialize(result)


def test_round_trip_without_ignored_files_drops_only_ignored() -> None:
    result = _rich_result()

    parsed = parse(serialize(result))

    expected_app = result.records["example.com/app"]
    assert parsed.records["example.com/app"].files == expected_app.files.without_ignored()
    assert parsed.records["golang.org/x/text"] == result.records["golang.org/x/text"]
    assert parsed.root_deps == result.root_deps
    assert parsed.errors == result.errors
    assert parsed.conflicts == result.conflicts


def test_round_trip_with_ignored_files_is_exact() -> None:
    result = _rich_result()

    parsed = parse(serialize(result, include_ignored=True))

    assert parsed == result


def test_omitted_groups_parse_back_as_absent() -> None:
    parsed = parse(serialize(_rich_result()))

    lib = parsed.records["example.com/lib"]
    assert lib.coverage is None
    assert lib.provenance is None
    assert lib.scripts == Scripts()
    assert lib.incomplete is False


def test_empty_label_map_is_omitted() -> None:
    record = ManifestRecord(package="app", coverage=CoverageConfig())
    result = ClosureResult(root="app", records={"app": record})

    data = tomllib.loads(serialize(result))

    assert data["package"][0]["coverage"] == {"mode": "set", "file-name": ".*"}
    assert parse(serialize(result)) == result


def test_closure_output_round_trips(fact_graph: FactGraph) -> None:
    fact_graph.edges({"app": ["lib/a", "lib/b"], "lib/a": ["lib/b"], "lib/b": []})
    fact_graph.missing("lib/c")
    fact_graph.package("app", ["lib/a", "lib/b", "lib/c"])

    result = build_closure(fact_graph.source(), "app")
    parsed = parse(serialize(result))

    assert parsed == result
    assert parsed.records["lib/c"].incomplete is True


def test_parse_fills_defaults_for_partial_groups() -> None:
    text = (
        'root = "app"\n'
        "[[package]]\n"
        'package = "app"\n'
        "[package.coverage]\n"
        "parallel = true\n"
        "[package.git]\n"
        'repo = "https://example.com/app"\n'
        'version = "v1.0.0"\n'
    )

    record = parse(text).records["app"]

    assert record.coverage == CoverageConfig(parallel=True)
    assert record.coverage.mode == "set"
    assert record.coverage.file_name_pattern == ".*"
    assert record.provenance == Provenance(
        repo_url="https://example.com/app", resolved_version="v1.0.0"
    )
    assert (record.provenance.branch, record.provenance.sub_path, record.provenance.depth) == (
        "master",
        ".",
        1,
    )


@pytest.mark.parametrize(
    "text",
    [
        "not = [valid",
        'package = "x"',
        'root = "app"\npackage = "oops"',
        'root = "app"\n[[package]]\nimports = ["a"]',
        'root = "app"\n[[package]]\npackage = "a"\nimports = [1]',
        'root = "app"\n[[package]]\npackage = "a"\n[[package]]\npackage = "a"',
        'root = "app"\n[[package]]\npackage = "a"\n[package.git]\nrepo = "https://x"',
        'root = "app"\n[[package]]\npackage = "a"\n[package.coverage]\nparallel = "false"',
        'root = "app"\n[[package]]\npackage = "a"\n[package.coverage]\nfile-name = 3',
        'root = "app"\n[[package]]\npackage = "a"\n[package.git]\nrepo = "https://x"\nversion = "v1"\nbranch = ""',
    ],
)
def test_parse_rejects_malformed_manifests(text: str) -> None:
    with pytest.raises(InvalidRecordError):
        parse(text)
