"""Configuration loading for manifestgen (.manifestgen.yml)."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .errors import ConfigError, InvalidRecordError
from .models import CoverageConfig, Scripts

CONFIG_FILENAME = ".manifestgen.yml"


@dataclass
class SourceConfig:
    """Fact source selection and its settings."""

    kind: str = "golist"
    go_binary: str = "go"
    workdir: Optional[Path] = None
    facts_file: Optional[Path] = None
    timeout: Optional[float] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class ClosureConfig:
    """Closure walk settings."""

    workers: int = 1


@dataclass
class ScriptSettings:
    """Commands and flags attached to the project's own packages."""

    env: List[str] = field(default_factory=list)
    build_flags: List[str] = field(default_factory=list)
    build: List[str] = field(default_factory=list)
    run: List[str] = field(default_factory=list)
    test: List[str] = field(default_factory=list)

    def to_scripts(self) -> Scripts:
        return Scripts(
            environment=tuple(self.env),
            build_flags=tuple(self.build_flags),
            build_commands=tuple(self.build),
            run_commands=tuple(self.run),
            test_commands=tuple(self.test),
        )


@dataclass
class OutputConfig:
    """Where and how the manifest is written."""

    path: Optional[Path] = None
    include_ignored: bool = False


@dataclass
class ManifestGenConfig:
    """Represents the high-level settings defined in .manifestgen.yml."""

    root: Path
    source: SourceConfig = field(default_factory=SourceConfig)
    closure: ClosureConfig = field(default_factory=ClosureConfig)
    coverage: Optional[CoverageConfig] = None
    scripts: ScriptSettings = field(default_factory=ScriptSettings)
    output: OutputConfig = field(default_factory=OutputConfig)


def load_config(config_path: Path) -> ManifestGenConfig:
    """Load configuration from disk."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return ManifestGenConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    source_data = _as_dict(data.get("source"))
    source = SourceConfig()
    if source_data:
        source.kind = _as_str(source_data.get("kind")) or source.kind
        source.go_binary = _as_str(source_data.get("go_binary")) or source.go_binary
        workdir = _as_str(source_data.get("workdir"))
        source.workdir = root / workdir if workdir else None
        facts_file = _as_str(source_data.get("facts_file"))
        source.facts_file = root / facts_file if facts_file else None
        source.timeout = _as_float(source_data.get("timeout"))
        source.tags = _as_str_list(source_data.get("tags"))

    closure_data = _as_dict(data.get("closure"))
    closure = ClosureConfig()
    if closure_data:
        workers = _as_int(closure_data.get("workers"))
        if workers is not None:
            if workers < 1:
                raise ConfigError("closure.workers must be at least 1")
            closure.workers = workers

    coverage = _load_coverage(_as_dict(data.get("coverage")))

    scripts_data = _as_dict(data.get("scripts"))
    scripts = ScriptSettings()
    if scripts_data:
        scripts.env = _as_str_list(scripts_data.get("env"))
        scripts.build_flags = _as_str_list(scripts_data.get("build_flags"))
        scripts.build = _as_str_list(scripts_data.get("build"))
        scripts.run = _as_str_list(scripts_data.get("run"))
        scripts.test = _as_str_list(scripts_data.get("test"))

    output_data = _as_dict(data.get("output"))
    output = OutputConfig()
    if output_data:
        output_path = _as_str(output_data.get("path"))
        output.path = root / output_path if output_path else None
        output.include_ignored = _as_bool(output_data.get("include_ignored")) or False

    return ManifestGenConfig(
        root=root,
        source=source,
        closure=closure,
        coverage=coverage,
        scripts=scripts,
        output=output,
    )


def _load_coverage(coverage_data: Dict[str, Any]) -> Optional[CoverageConfig]:
    if not coverage_data:
        return None
    labels_data = _as_dict(coverage_data.get("labels"))
    labels: Dict[str, int] = {}
    for label, weight in labels_data.items():
        value = _as_int(weight)
        if value is None:
            raise ConfigError(f"coverage label {label!r} must be an integer")
        labels[str(label)] = value
    try:
        return CoverageConfig(
            mode=_as_str(coverage_data.get("mode")) or "set",
            exclude_patterns=tuple(_as_str_list(coverage_data.get("exclude"))),
            file_name_pattern=_as_str(coverage_data.get("file_name")) or ".*",
            parallel=_as_bool(coverage_data.get("parallel")) or False,
            exclude_all=_as_bool(coverage_data.get("exclude_all")) or False,
            labels=labels,
        )
    except InvalidRecordError as exc:
        raise ConfigError(f"Invalid coverage settings: {exc}") from exc


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return {} if loaded is None else loaded


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    return str(value) if isinstance(value, (str, int, float)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "CONFIG_FILENAME",
    "ClosureConfig",
    "ManifestGenConfig",
    "OutputConfig",
    "ScriptSettings",
    "SourceConfig",
    "load_config",
]
