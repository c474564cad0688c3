"""Error taxonomy for manifest generation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .models import ClosureResult


class ManifestError(RuntimeError):
    """Base class for failures that abort a closure build."""


class PackageLookupError(LookupError):
    """Raised by fact sources when a package path cannot be loaded."""

    def __init__(self, package: str, message: str) -> None:
        super().__init__(f"{package}: {message}")
        self.package = package
        self.message = message


class RootUnresolvable(ManifestError):
    """Raised when the root package itself cannot be fetched."""

    def __init__(self, package: str, cause: LookupError) -> None:
        super().__init__(f"Root package {package!r} could not be resolved: {cause}")
        self.package = package
        self.cause = cause


class Cancelled(ManifestError):
    """Raised when the caller aborts a build through its cancel signal."""

    def __init__(self, message: str = "Build cancelled", partial: Optional["ClosureResult"] = None) -> None:
        super().__init__(message)
        self.partial = partial


class InvalidRecordError(ValueError):
    """Raised for malformed manifest groups or unparseable manifest text."""


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass(frozen=True)
class MergeConflict:
    """A scalar that could not be reconciled across two sightings of a package."""

    package: str
    field: str
    kept: str
    rejected: str

    def describe(self) -> str:
        return f"{self.package}: conflicting {self.field} ({self.kept!r} kept, {self.rejected!r} rejected)"


__all__ = [
    "Cancelled",
    "ConfigError",
    "InvalidRecordError",
    "ManifestError",
    "MergeConflict",
    "PackageLookupError",
    "RootUnresolvable",
]
