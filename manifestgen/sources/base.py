"""Base classes for fact source adapters."""

from __future__ import annotations

from abc import ABC, abstractmethod
from threading import Event
from typing import Optional

from ..errors import Cancelled
from ..models import RawFact


class FactSource(ABC):
    """Contract for adapters that report raw facts for a single package path."""

    @abstractmethod
    def fetch(self, path: str, *, cancel: Optional[Event] = None) -> RawFact:
        """Return the facts for ``path`` or raise ``PackageLookupError``.

        Implementations must raise ``Cancelled`` once ``cancel`` is set.
        """


def check_cancelled(cancel: Optional[Event], path: str) -> None:
    """Raise ``Cancelled`` when the caller has set the cancel signal."""
    if cancel is not None and cancel.is_set():
        raise Cancelled(f"Cancelled before fetching {path}")
