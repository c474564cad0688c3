"""Merge rules for combining raw facts into manifest records."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import MergeConflict
from .models import (
    CGO_FLAG_KEYS,
    FILE_CATEGORIES,
    SCRIPT_KEYS,
    CgoFlags,
    CoverageConfig,
    FileGroup,
    ManifestRecord,
    Provenance,
    RawFact,
    Scripts,
    SourceFiles,
)


class OrderedSet:
    """Insertion-ordered set of strings used for file and import lists."""

    def __init__(self, items: Iterable[str] = ()) -> None:
        self._items: Dict[str, None] = {}
        self.update(items)

    def update(self, items: Iterable[str]) -> None:
        for item in items:
            self._items.setdefault(item, None)

    def rename(self, mapping: Mapping[str, str]) -> None:
        renamed: Dict[str, None] = {}
        for item in self._items:
            renamed.setdefault(mapping.get(item, item), None)
        self._items = renamed

    def __iter__(self):
        return iter(self._items)

    def __contains__(self, item: object) -> bool:
        return item in self._items

    def __len__(self) -> int:
        return len(self._items)

    def as_tuple(self) -> Tuple[str, ...]:
        return tuple(self._items)


@dataclass
class RecordDraft:
    """Mutable record owned by the closure builder while it walks the graph."""

    package: str
    files: Dict[str, Tuple[OrderedSet, OrderedSet]] = field(default_factory=dict)
    imports: OrderedSet = field(default_factory=OrderedSet)
    test_imports: OrderedSet = field(default_factory=OrderedSet)
    external_test_imports: OrderedSet = field(default_factory=OrderedSet)
    build_tags: OrderedSet = field(default_factory=OrderedSet)
    incomplete: bool = False
    coverage: Optional[CoverageConfig] = None
    provenance: Optional[Provenance] = None
    cgo: Dict[str, OrderedSet] = field(default_factory=dict)
    scripts: Dict[str, OrderedSet] = field(default_factory=dict)
    toolchain_version: str = ""
    sightings: int = 0

    def __post_init__(self) -> None:
        for name, _ in FILE_CATEGORIES:
            self.files.setdefault(name, (OrderedSet(), OrderedSet()))
        for name, _ in CGO_FLAG_KEYS:
            self.cgo.setdefault(name, OrderedSet())
        for name, _ in SCRIPT_KEYS:
            self.scripts.setdefault(name, OrderedSet())

    def import_sets(self) -> Tuple[OrderedSet, OrderedSet, OrderedSet]:
        return self.imports, self.test_imports, self.external_test_imports

    def freeze(self, deps: Sequence[str] = ()) -> ManifestRecord:
        """Return the immutable record for this draft."""
        files = SourceFiles(
            **{
                name: FileGroup(files=selected.as_tuple(), ignored=ignored.as_tuple())
                for name, (selected, ignored) in self.files.items()
            }
        )
        return ManifestRecord(
            package=self.package,
            files=files,
            imports=self.imports.as_tuple(),
            test_imports=self.test_imports.as_tuple(),
            external_test_imports=self.external_test_imports.as_tuple(),
            deps=tuple(deps),
            build_tags=self.build_tags.as_tuple(),
            incomplete=self.incomplete,
            coverage=self.coverage,
            provenance=self.provenance,
            cgo=CgoFlags(**{name: values.as_tuple() for name, values in self.cgo.items()}),
            scripts=Scripts(**{name: values.as_tuple() for name, values in self.scripts.items()}),
            toolchain_version=self.toolchain_version,
        )


def merge_fact(draft: RecordDraft, fact: RawFact) -> List[MergeConflict]:
    """Fold ``fact`` into ``draft`` and return any irreconcilable scalars.

    Sequences are unioned in first-seen order. Conflicting scalars keep the
    value seen first and are reported back to the caller.
    """
    conflicts: List[MergeConflict] = []
    draft.sightings += 1

    for name, _ in FILE_CATEGORIES:
        group = fact.files.group(name)
        selected, ignored = draft.files[name]
        selected.update(group.files)
        ignored.update(group.ignored)

    draft.imports.update(fact.imports)
    draft.test_imports.update(fact.test_imports)
    draft.external_test_imports.update(fact.external_test_imports)
    draft.build_tags.update(fact.build_tags)
    draft.incomplete = draft.incomplete or fact.incomplete

    for name, _ in CGO_FLAG_KEYS:
        draft.cgo[name].update(getattr(fact.cgo, name))
    for name, _ in SCRIPT_KEYS:
        draft.scripts[name].update(getattr(fact.scripts, name))

    if fact.toolchain_version:
        if not draft.toolchain_version:
            draft.toolchain_version = fact.toolchain_version
        elif draft.toolchain_version != fact.toolchain_version:
            conflicts.append(
                MergeConflict(
                    draft.package, "toolchain-version", draft.toolchain_version, fact.toolchain_version
                )
            )

    if fact.coverage is not None:
        if draft.coverage is None:
            draft.coverage = fact.coverage
        else:
            draft.coverage, found = merge_coverage(draft.package, draft.coverage, fact.coverage)
            conflicts.extend(found)

    if fact.provenance is not None:
        if draft.provenance is None:
            draft.provenance = fact.provenance
        else:
            conflicts.extend(_provenance_conflicts(draft.package, draft.provenance, fact.provenance))

    return conflicts


def merge_coverage(
    package: str, current: CoverageConfig, incoming: CoverageConfig
) -> Tuple[CoverageConfig, List[MergeConflict]]:
    """Combine two coverage configurations for the same package."""
    conflicts: List[MergeConflict] = []

    mode_words = OrderedSet(current.mode_words())
    mode_words.update(incoming.mode_words())

    excludes = OrderedSet(current.exclude_patterns)
    excludes.update(incoming.exclude_patterns)

    if current.file_name_pattern != incoming.file_name_pattern:
        conflicts.append(
            MergeConflict(package, "coverage.file-name", current.file_name_pattern, incoming.file_name_pattern)
        )

    labels = dict(current.labels)
    for label, weight in incoming.labels.items():
        existing = labels.get(label)
        if existing is None:
            labels[label] = weight
        elif existing != weight:
            conflicts.append(MergeConflict(package, f"coverage.labels.{label}", str(existing), str(weight)))

    merged = CoverageConfig(
        mode=",".join(mode_words),
        exclude_patterns=excludes.as_tuple(),
        file_name_pattern=current.file_name_pattern,
        parallel=current.parallel or incoming.parallel,
        exclude_all=current.exclude_all or incoming.exclude_all,
        labels=labels,
    )
    return merged, conflicts


def _provenance_conflicts(package: str, current: Provenance, incoming: Provenance) -> List[MergeConflict]:
    conflicts: List[MergeConflict] = []
    for item in fields(Provenance):
        kept = getattr(current, item.name)
        rejected = getattr(incoming, item.name)
        if kept != rejected:
            conflicts.append(MergeConflict(package, f"provenance.{item.name}", str(kept), str(rejected)))
    return conflicts


__all__ = ["OrderedSet", "RecordDraft", "merge_coverage", "merge_fact"]
