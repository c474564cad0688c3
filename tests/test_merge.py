"""Tests for manifestgen.merge."""

from __future__ import annotations

from manifestgen.merge import OrderedSet, RecordDraft, merge_coverage, merge_fact
from manifestgen.models import (
    CgoFlags,
    CoverageConfig,
    FileGroup,
    Provenance,
    RawFact,
    Scripts,
    SourceFiles,
)


def test_ordered_set_keeps_first_seen_order_and_renames() -> None:
    items = OrderedSet(["b", "a", "b"])
    items.update(["c", "a"])

    assert items.as_tuple() == ("b", "a", "c")

    items.rename({"b": "c"})
    assert items.as_tuple() == ("c", "a")
    assert "a" in items
    assert len(items) == 2


def test_merge_fact_unions_every_sequence() -> None:
    draft = RecordDraft(package="lib/x")
    merge_fact(
        draft,
        RawFact(
            package="lib/x",
            files=SourceFiles(
                buildable=FileGroup(files=("x.go",)),
                header=FileGroup(files=("x.h",), ignored=("x_win.h",)),
            ),
            cgo=CgoFlags(ldflags=("-lz",)),
            scripts=Scripts(environment=("CGO_ENABLED=1",)),
        ),
    )
    merge_fact(
        draft,
        RawFact(
            package="lib/x",
            files=SourceFiles(
                buildable=FileGroup(files=("y.go", "x.go")),
                header=FileGroup(ignored=("x_win.h", "x_bsd.h")),
            ),
            cgo=CgoFlags(ldflags=("-lz", "-lm")),
            scripts=Scripts(environment=("CGO_ENABLED=1", "GOOS=linux")),
            incomplete=True,
        ),
    )

    record = draft.freeze(("lib/y",))

    assert draft.sightings == 2
    assert record.files.buildable.files == ("x.go", "y.go")
    assert record.files.header == FileGroup(files=("x.h",), ignored=("x_win.h", "x_bsd.h"))
    assert record.cgo.ldflags == ("-lz", "-lm")
    assert record.scripts.environment == ("CGO_ENABLED=1", "GOOS=linux")
    assert record.incomplete is True
    assert record.deps == ("lib/y",)


def test_merge_fact_reports_toolchain_conflict_and_keeps_first() -> None:
    draft = RecordDraft(package="lib/x")
    assert merge_fact(draft, RawFact(package="lib/x", toolchain_version="1.21")) == []

    conflicts = merge_fact(draft, RawFact(package="lib/x", toolchain_version="1.22"))

    assert draft.toolchain_version == "1.21"
    assert [(c.field, c.kept, c.rejected) for c in conflicts] == [("toolchain-version", "1.21", "1.22")]


def test_merge_fact_identical_provenance_is_not_a_conflict() -> None:
    provenance = Provenance(repo_url="https://example.com/x", resolved_version="v1.0.0")
    draft = RecordDraft(package="lib/x")
    merge_fact(draft, RawFact(package="lib/x", provenance=provenance))

    assert merge_fact(draft, RawFact(package="lib/x", provenance=provenance)) == []
    assert merge_fact(draft, RawFact(package="lib/x")) == []
    assert draft.provenance == provenance


def test_merge_coverage_flags_and_conflicts() -> None:
    current = CoverageConfig(mode="set", labels={"core": 1})
    incoming = CoverageConfig(
        mode="count,set",
        file_name_pattern=r"\.go$",
        parallel=True,
        exclude_all=True,
        labels={"core": 2, "io": 0},
    )

    merged, conflicts = merge_coverage("lib/x", current, incoming)

    assert merged.mode == "set,count"
    assert merged.file_name_pattern == ".*"
    assert merged.parallel is True
    assert merged.exclude_all is True
    assert merged.labels == {"core": 1, "io": 0}
    assert sorted(conflict.field for conflict in conflicts) == [
        "coverage.file-name",
        "coverage.labels.core",
    ]
