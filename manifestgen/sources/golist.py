"""Fact source backed by ``go list -json``."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from threading import Event
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from ..errors import Cancelled, InvalidRecordError, PackageLookupError
from ..logging import get_logger
from ..models import (
    CgoFlags,
    CoverageConfig,
    FileGroup,
    Provenance,
    RawFact,
    Scripts,
    SourceFiles,
)
from .base import FactSource, check_cancelled

Runner = Callable[..., str]

_POLL_INTERVAL = 0.1

# Pseudo-import enabling cgo; it never resolves to a package.
_CGO_PSEUDO_IMPORT = "C"

_FILE_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("buildable", "GoFiles"),
    ("cgo", "CgoFiles"),
    ("test", "TestGoFiles"),
    ("x_test", "XTestGoFiles"),
    ("c", "CFiles"),
    ("header", "HFiles"),
    ("assembly", "SFiles"),
    ("swig", "SwigFiles"),
    ("swig_cxx", "SwigCXXFiles"),
    ("syso", "SysoFiles"),
)

_IGNORED_SUFFIXES: Dict[str, str] = {
    ".c": "c",
    ".h": "header",
    ".s": "assembly",
    ".S": "assembly",
    ".swig": "swig",
    ".swigcxx": "swig_cxx",
    ".syso": "syso",
}

_CGO_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("cflags", "CgoCFLAGS"),
    ("cppflags", "CgoCPPFLAGS"),
    ("cxxflags", "CgoCXXFLAGS"),
    ("fflags", "CgoFFLAGS"),
    ("ldflags", "CgoLDFLAGS"),
    ("pkg_config", "CgoPkgConfig"),
)


def fact_from_go_list(
    payload: Mapping[str, Any],
    *,
    build_tags: Sequence[str] = (),
    coverage: Optional[CoverageConfig] = None,
    scripts: Optional[Scripts] = None,
) -> RawFact:
    """Translate one ``go list -json`` package object into a raw fact.

    Coverage and scripts are attached only to packages of the main module.
    Raises ``PackageLookupError`` for packages that failed to load entirely.
    """
    import_path = payload.get("ImportPath")
    if not isinstance(import_path, str) or not import_path:
        raise InvalidRecordError("go list output is missing ImportPath")

    groups: Dict[str, Tuple[List[str], List[str]]] = {
        name: (_str_list(payload.get(key)), []) for name, key in _FILE_FIELDS
    }
    _classify_ignored(groups, payload)

    error = payload.get("Error")
    has_files = any(selected or ignored for selected, ignored in groups.values())
    if isinstance(error, dict) and not has_files:
        message = error.get("Err") if isinstance(error.get("Err"), str) else "package failed to load"
        raise PackageLookupError(import_path, message)

    files = SourceFiles(
        **{name: FileGroup(files=tuple(selected), ignored=tuple(ignored)) for name, (selected, ignored) in groups.items()}
    )
    incomplete = bool(payload.get("Incomplete")) or bool(payload.get("DepsErrors")) or error is not None

    module = payload.get("Module") if isinstance(payload.get("Module"), dict) else {}
    is_main = bool(module.get("Main"))

    return RawFact(
        package=import_path,
        files=files,
        imports=_imports(payload.get("Imports")),
        test_imports=_imports(payload.get("TestImports")),
        external_test_imports=_imports(payload.get("XTestImports")),
        build_tags=tuple(build_tags),
        incomplete=incomplete,
        coverage=coverage if is_main else None,
        provenance=None if is_main else _provenance(import_path, module),
        cgo=CgoFlags(**{name: tuple(_str_list(payload.get(key))) for name, key in _CGO_FIELDS}),
        scripts=(scripts or Scripts()) if is_main else Scripts(),
        toolchain_version=_as_str(module.get("GoVersion")),
    )


def iter_go_list_objects(text: str) -> Iterator[Dict[str, Any]]:
    """Yield each object of a concatenated ``go list -json`` stream."""
    decoder = json.JSONDecoder()
    index = 0
    length = len(text)
    while True:
        while index < length and text[index].isspace():
            index += 1
        if index >= length:
            return
        try:
            obj, index = decoder.raw_decode(text, index)
        except json.JSONDecodeError as exc:
            raise InvalidRecordError(f"Malformed go list output: {exc}") from exc
        if not isinstance(obj, dict):
            raise InvalidRecordError("go list output must contain JSON objects")
        yield obj


class GoListFactSource(FactSource):
    """Runs ``go list -e -json`` for each requested package."""

    def __init__(
        self,
        *,
        go_binary: str = "go",
        workdir: Path | None = None,
        tags: Sequence[str] = (),
        coverage: Optional[CoverageConfig] = None,
        scripts: Optional[Scripts] = None,
        timeout: Optional[float] = None,
        runner: Runner | None = None,
    ) -> None:
        self.go_binary = go_binary
        self.workdir = workdir
        self.tags = list(tags)
        self.coverage = coverage
        self.scripts = scripts
        self.timeout = timeout
        self._runner = runner or self._default_runner
        self.logger = get_logger("sources.golist")

    def fetch(self, path: str, *, cancel: Optional[Event] = None) -> RawFact:
        check_cancelled(cancel, path)
        args = [self.go_binary, "list", "-e", "-json"]
        if self.tags:
            args.append(f"-tags={','.join(self.tags)}")
        args.append(path)
        self.logger.debug("Running %s", " ".join(args))

        try:
            output = self._runner(args, cwd=self.workdir, cancel=cancel, timeout=self.timeout)
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or "").strip() or f"exit status {exc.returncode}"
            raise PackageLookupError(path, stderr) from exc
        except subprocess.TimeoutExpired as exc:
            raise PackageLookupError(path, f"go list timed out after {exc.timeout}s") from exc
        except OSError as exc:
            raise PackageLookupError(path, f"could not run {self.go_binary}: {exc}") from exc

        try:
            payloads = list(iter_go_list_objects(output))
            if not payloads:
                raise PackageLookupError(path, "go list returned no packages")
            return fact_from_go_list(
                payloads[0],
                build_tags=self.tags,
                coverage=self.coverage,
                scripts=self.scripts,
            )
        except InvalidRecordError as exc:
            raise PackageLookupError(path, str(exc)) from exc

    @staticmethod
    def _default_runner(
        args: Sequence[str],
        *,
        cwd: Path | None = None,
        cancel: Optional[Event] = None,
        timeout: Optional[float] = None,
    ) -> str:
        process = subprocess.Popen(
            list(args),
            cwd=str(cwd) if cwd is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        waited = 0.0
        while True:
            try:
                stdout, stderr = process.communicate(timeout=_POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                waited += _POLL_INTERVAL
                if cancel is not None and cancel.is_set():
                    process.kill()
                    process.communicate()
                    raise Cancelled(f"Cancelled while running {' '.join(args)}")
                if timeout is not None and waited >= timeout:
                    process.kill()
                    process.communicate()
                    raise subprocess.TimeoutExpired(list(args), timeout)
        if process.returncode != 0:
            raise subprocess.CalledProcessError(process.returncode, list(args), stdout, stderr)
        return stdout


def _classify_ignored(groups: Dict[str, Tuple[List[str], List[str]]], payload: Mapping[str, Any]) -> None:
    for name in _str_list(payload.get("IgnoredGoFiles")):
        category = "test" if name.endswith("_test.go") else "buildable"
        groups[category][1].append(name)
    for name in _str_list(payload.get("IgnoredOtherFiles")):
        category = _IGNORED_SUFFIXES.get(Path(name).suffix)
        if category is not None:
            groups[category][1].append(name)


def _provenance(import_path: str, module: Mapping[str, Any]) -> Optional[Provenance]:
    replace = module.get("Replace")
    if isinstance(replace, dict) and replace.get("Path"):
        module = {**module, "Path": replace.get("Path"), "Version": replace.get("Version")}
    module_path = _as_str(module.get("Path"))
    version = _as_str(module.get("Version"))
    # Local replacements and the standard library carry no remote version.
    if not module_path or not version:
        return None
    if import_path == module_path or not import_path.startswith(f"{module_path}/"):
        sub_path = "."
    else:
        sub_path = import_path[len(module_path) + 1 :]
    return Provenance(repo_url=f"https://{module_path}", resolved_version=version, sub_path=sub_path)


def _imports(value: Any) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for path in _str_list(value):
        if path != _CGO_PSEUDO_IMPORT:
            seen.setdefault(path, None)
    return tuple(seen)


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


__all__ = ["GoListFactSource", "fact_from_go_list", "iter_go_list_objects"]
