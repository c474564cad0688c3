"""Fact source that replays a saved ``go list -json`` stream."""

from __future__ import annotations

from pathlib import Path
from threading import Event
from typing import Any, Dict, Optional, Sequence

from ..errors import PackageLookupError
from ..logging import get_logger
from ..models import CoverageConfig, RawFact, Scripts
from .base import FactSource, check_cancelled
from .golist import fact_from_go_list, iter_go_list_objects


class RecordedFactSource(FactSource):
    """Serves facts from the output of ``go list -e -json all`` captured to a file.

    Test variants (``pkg [pkg.test]``) are skipped; the plain package entry
    already lists its test files and imports.
    """

    def __init__(
        self,
        path: Path,
        *,
        tags: Sequence[str] = (),
        coverage: Optional[CoverageConfig] = None,
        scripts: Optional[Scripts] = None,
    ) -> None:
        self.path = path
        self.tags = list(tags)
        self.coverage = coverage
        self.scripts = scripts
        self.logger = get_logger("sources.recorded")
        self._payloads = self._load(path)

    def fetch(self, path: str, *, cancel: Optional[Event] = None) -> RawFact:
        check_cancelled(cancel, path)
        payload = self._payloads.get(path)
        if payload is None:
            raise PackageLookupError(path, f"not present in {self.path.name}")
        return fact_from_go_list(
            payload,
            build_tags=self.tags,
            coverage=self.coverage,
            scripts=self.scripts,
        )

    def _load(self, path: Path) -> Dict[str, Dict[str, Any]]:
        text = path.read_text(encoding="utf-8")
        payloads: Dict[str, Dict[str, Any]] = {}
        for obj in iter_go_list_objects(text):
            import_path = obj.get("ImportPath")
            if not isinstance(import_path, str) or not import_path:
                continue
            if obj.get("ForTest") or " [" in import_path:
                self.logger.debug("Skipping test variant %s", import_path)
                continue
            if import_path in payloads:
                self.logger.warning(
                    "Duplicate entry for %s in %s; keeping the first", import_path, path.name
                )
                continue
            payloads[import_path] = obj
        self.logger.debug("Loaded %d recorded packages from %s", len(payloads), path)
        return payloads


__all__ = ["RecordedFactSource"]
