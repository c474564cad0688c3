"""Fact source implementations and discovery utilities."""

from __future__ import annotations

from importlib import metadata
from typing import Callable, Iterable, List

from ..config import ManifestGenConfig
from ..errors import ConfigError
from .base import FactSource
from .golist import GoListFactSource
from .recorded import RecordedFactSource
from .static import StaticFactSource

_ENTRY_POINT_GROUP = "manifestgen.sources"

SourceFactory = Callable[[ManifestGenConfig], FactSource]


def _golist_factory(config: ManifestGenConfig) -> FactSource:
    return GoListFactSource(
        go_binary=config.source.go_binary,
        workdir=config.source.workdir or config.root,
        tags=config.source.tags,
        coverage=config.coverage,
        scripts=config.scripts.to_scripts(),
        timeout=config.source.timeout,
    )


def _recorded_factory(config: ManifestGenConfig) -> FactSource:
    if config.source.facts_file is None:
        raise ConfigError("source.facts_file is required for the 'facts' source")
    if not config.source.facts_file.exists():
        raise ConfigError(f"Facts file not found: {config.source.facts_file}")
    return RecordedFactSource(
        config.source.facts_file,
        tags=config.source.tags,
        coverage=config.coverage,
        scripts=config.scripts.to_scripts(),
    )


_BUILTIN_FACTORIES: dict[str, SourceFactory] = {
    "golist": _golist_factory,
    "facts": _recorded_factory,
}


def available_sources() -> List[str]:
    """Return the names of built-in and plugin fact sources."""
    names = list(_BUILTIN_FACTORIES)
    for entry in _iter_entry_points():
        if entry.name not in names:
            names.append(entry.name)
    return names


def resolve_source(name: str, config: ManifestGenConfig) -> FactSource:
    """Instantiate the fact source registered under ``name``."""
    key = name.lower()
    factory = _BUILTIN_FACTORIES.get(key)
    if factory is not None:
        return factory(config)

    for entry in _iter_entry_points():
        if entry.name.lower() != key:
            continue
        try:
            loaded = entry.load()
        except Exception as exc:  # pragma: no cover - broken plugin
            raise RuntimeError(f"Failed to load fact source entry point '{name}': {exc}") from exc
        return _coerce_source(loaded, config)

    raise ConfigError(f"Unknown fact source '{name}'. Available: {', '.join(available_sources())}")


def _coerce_source(obj: object, config: ManifestGenConfig) -> FactSource:
    if isinstance(obj, FactSource):
        return obj
    if callable(obj):
        instance = obj(config)
        if isinstance(instance, FactSource):
            return instance
    raise TypeError("Fact source entry point must be a FactSource or a factory taking the config")


def _iter_entry_points() -> Iterable[metadata.EntryPoint]:
    return metadata.entry_points().select(group=_ENTRY_POINT_GROUP)


__all__ = [
    "FactSource",
    "GoListFactSource",
    "RecordedFactSource",
    "StaticFactSource",
    "available_sources",
    "resolve_source",
]
