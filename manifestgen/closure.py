"""Dependency closure assembly."""

from __future__ import annotations

from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from threading import Event
from typing import Deque, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from .errors import Cancelled, MergeConflict, RootUnresolvable
from .logging import get_logger
from .merge import RecordDraft, merge_fact
from .models import ClosureResult, FetchFailure, ManifestRecord, RawFact
from .sources.base import FactSource

FetchOutcome = Union[RawFact, LookupError]


@dataclass
class _WalkState:
    """Mutable bookkeeping for a single ``build`` call."""

    root: str
    worklist: Deque[str] = field(default_factory=deque)
    visited: Set[str] = field(default_factory=set)
    resolved: Set[str] = field(default_factory=set)
    drafts: Dict[str, RecordDraft] = field(default_factory=dict)
    aliases: Dict[str, str] = field(default_factory=dict)
    errors: List[FetchFailure] = field(default_factory=list)
    conflicts: List[MergeConflict] = field(default_factory=list)

    def draft(self, package: str) -> RecordDraft:
        existing = self.drafts.get(package)
        if existing is None:
            existing = RecordDraft(package=package)
            self.drafts[package] = existing
        return existing

    def canonical(self, path: str) -> str:
        return self.aliases.get(path, path)


class ClosureBuilder:
    """Walks transitive imports from a root package and merges their facts.

    With ``workers > 1`` each worklist wave is fetched on a thread pool while
    the calling thread alone merges results, in worklist order, so the output
    matches a serial build exactly.
    """

    def __init__(
        self,
        source: FactSource,
        *,
        workers: int = 1,
        cancel: Optional[Event] = None,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self.source = source
        self.workers = workers
        self.cancel = cancel
        self.logger = get_logger("closure")

    def build(self, root_path: str) -> ClosureResult:
        """Return the merged closure rooted at ``root_path``.

        Raises ``RootUnresolvable`` when the root cannot be fetched and
        ``Cancelled`` (carrying the partial result) when the cancel signal fires.
        """
        if not root_path:
            raise ValueError("root package path must not be empty")
        state = _WalkState(root=root_path)
        state.worklist.append(root_path)
        self.logger.info("Building closure for %s", root_path)

        executor = ThreadPoolExecutor(max_workers=self.workers) if self.workers > 1 else None
        try:
            while state.worklist:
                if self.cancel is not None and self.cancel.is_set():
                    raise Cancelled("Build cancelled")
                wave = self._next_wave(state)
                if not wave:
                    continue
                for path, outcome in self._fetch_wave(wave, executor):
                    self._absorb(state, path, outcome)
        except Cancelled as exc:
            partial = self._finish(state)
            self.logger.warning(
                "Closure build for %s cancelled after %d packages", root_path, len(partial.records)
            )
            raise Cancelled(str(exc), partial=partial) from exc
        finally:
            if executor is not None:
                executor.shutdown(wait=True, cancel_futures=True)

        result = self._finish(state)
        self.logger.info(
            "Resolved %d packages for %s (%d failed, %d conflicts)",
            len(result.records),
            result.root,
            len(result.errors),
            len(result.conflicts),
        )
        return result

    # ------------------------------------------------------------------
    # Internal helpers

    def _next_wave(self, state: _WalkState) -> List[str]:
        wave: List[str] = []
        limit = 1 if self.workers == 1 else len(state.worklist)
        while state.worklist and len(wave) < limit:
            path = state.worklist.popleft()
            if path in state.visited:
                continue
            state.visited.add(path)
            wave.append(path)
        return wave

    def _fetch_wave(
        self, wave: List[str], executor: Optional[ThreadPoolExecutor]
    ) -> Iterable[Tuple[str, FetchOutcome]]:
        if executor is None or len(wave) == 1:
            return [(path, self._fetch_one(path)) for path in wave]
        futures: List[Tuple[str, Future[FetchOutcome]]] = [
            (path, executor.submit(self._fetch_one, path)) for path in wave
        ]
        outcomes: List[Tuple[str, FetchOutcome]] = []
        try:
            for path, future in futures:
                outcomes.append((path, future.result()))
        except Cancelled:
            for _, future in futures:
                future.cancel()
            raise
        return outcomes

    def _fetch_one(self, path: str) -> FetchOutcome:
        self.logger.debug("Fetching facts for %s", path)
        try:
            return self.source.fetch(path, cancel=self.cancel)
        except LookupError as exc:
            return exc

    def _absorb(self, state: _WalkState, path: str, outcome: FetchOutcome) -> None:
        if path in state.resolved:
            # An alias fetched earlier in the same wave already resolved to this package.
            return

        if isinstance(outcome, LookupError):
            if path == state.root:
                raise RootUnresolvable(path, outcome)
            self.logger.warning("Could not load %s: %s", path, outcome)
            state.errors.append(FetchFailure(package=path, message=str(outcome), error=outcome))
            draft = state.draft(path)
            draft.incomplete = True
            return

        package = outcome.package
        if package != path:
            self.logger.debug("%s resolved to %s", path, package)
            state.aliases[path] = package
            if path == state.root:
                state.root = package
        state.visited.add(package)
        state.resolved.add(package)

        draft = state.draft(package)
        if draft.sightings:
            self.logger.debug("Merging another sighting of %s", package)
        for conflict in merge_fact(draft, outcome):
            self.logger.warning("Merge conflict: %s", conflict.describe())
            state.conflicts.append(conflict)

        for imports in draft.import_sets():
            for dependency in imports:
                if dependency not in state.visited:
                    state.worklist.append(dependency)

    def _finish(self, state: _WalkState) -> ClosureResult:
        if state.aliases:
            for draft in state.drafts.values():
                for imports in draft.import_sets():
                    imports.rename(state.aliases)

        graph = {name: tuple(draft.imports) for name, draft in state.drafts.items()}
        deps = compute_deps(graph)
        records: Dict[str, ManifestRecord] = {
            name: draft.freeze(deps[name]) for name, draft in state.drafts.items()
        }
        root = state.canonical(state.root)
        root_record = records.get(root)
        return ClosureResult(
            root=root,
            records=records,
            root_deps=root_record.deps if root_record is not None else (),
            errors=tuple(state.errors),
            conflicts=tuple(state.conflicts),
        )


def compute_deps(graph: Mapping[str, Iterable[str]]) -> Dict[str, Tuple[str, ...]]:
    """Return the sorted transitive imports of every package in ``graph``.

    Reachability is iterative so import cycles terminate; a package never
    appears in its own dependency list.
    """
    deps: Dict[str, Tuple[str, ...]] = {}
    for package in graph:
        seen: Set[str] = set()
        queue: Deque[str] = deque(graph[package])
        while queue:
            current = queue.popleft()
            if current == package or current in seen:
                continue
            seen.add(current)
            queue.extend(graph.get(current, ()))
        deps[package] = tuple(sorted(seen))
    return deps


def build_closure(
    source: FactSource,
    root_path: str,
    *,
    workers: int = 1,
    cancel: Optional[Event] = None,
) -> ClosureResult:
    """Convenience wrapper around ``ClosureBuilder.build``."""
    return ClosureBuilder(source, workers=workers, cancel=cancel).build(root_path)


__all__ = ["ClosureBuilder", "build_closure", "compute_deps"]
