"""In-memory fact source."""

from __future__ import annotations

from threading import Event
from typing import Mapping, Optional, Union

from ..errors import PackageLookupError
from ..models import RawFact
from .base import FactSource, check_cancelled

FactOrError = Union[RawFact, LookupError]


class StaticFactSource(FactSource):
    """Serves facts from a mapping of package path to fact or lookup error.

    Several paths may map to facts naming the same package; the closure
    builder treats the extra paths as aliases.
    """

    def __init__(self, facts: Mapping[str, FactOrError]) -> None:
        self._facts = dict(facts)

    def fetch(self, path: str, *, cancel: Optional[Event] = None) -> RawFact:
        check_cancelled(cancel, path)
        entry = self._facts.get(path)
        if entry is None:
            raise PackageLookupError(path, "package not found")
        if isinstance(entry, LookupError):
            raise entry
        return entry


__all__ = ["StaticFactSource"]
