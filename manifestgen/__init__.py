"""Build manifests for a package and its transitive dependency closure."""

from .closure import ClosureBuilder, build_closure
from .errors import Cancelled, MergeConflict, PackageLookupError, RootUnresolvable
from .models import ClosureResult, ManifestRecord, RawFact
from .serializer import parse, serialize

__all__ = [
    "Cancelled",
    "ClosureBuilder",
    "ClosureResult",
    "ManifestRecord",
    "MergeConflict",
    "PackageLookupError",
    "RawFact",
    "RootUnresolvable",
    "build_closure",
    "parse",
    "serialize",
]
