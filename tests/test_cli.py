"""CLI behaviour tests."""

from __future__ import annotations

import json
import threading
import tomllib
from pathlib import Path

import pytest

from manifestgen import cli
from manifestgen.cli import EXIT_CANCELLED, _build_parser, main
from manifestgen.models import ClosureResult, ManifestRecord, RawFact
from manifestgen.serializer import serialize
from manifestgen.sources.base import FactSource


def _write_facts(path: Path) -> Path:
    objects = [
        {
            "ImportPath": "example.com/app",
            "Module": {"Path": "example.com/app", "Main": True},
            "GoFiles": ["main.go"],
            "IgnoredGoFiles": ["main_windows.go"],
            "Imports": ["example.com/app/lib", "example.com/gone"],
        },
        {
            "ImportPath": "example.com/app/lib",
            "Module": {"Path": "example.com/app", "Main": True},
            "GoFiles": ["lib.go"],
        },
    ]
    path.write_text("\n".join(json.dumps(obj) for obj in objects), encoding="utf-8")
    return path


def test_cli_accepts_verbose_before_and_after_command() -> None:
    parser = _build_parser()

    assert parser.parse_args(["--verbose", "build"]).verbose is True
    args = parser.parse_args(["build", "--verbose"])
    assert args.verbose is True
    assert args.command == "build"
    assert args.root == "."


def test_cli_parses_build_overrides() -> None:
    parser = _build_parser()
    args = parser.parse_args(
        ["build", "example.com/app", "--workers", "3", "--tags", "netgo", "--cover-mode", "atomic", "--include-ignored"]
    )

    assert args.root == "example.com/app"
    assert args.workers == 3
    assert args.tags == "netgo"
    assert args.cover_mode == "atomic"
    assert args.include_ignored is True


def test_build_writes_manifest_to_stdout_and_warns_on_partial_success(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    facts = _write_facts(tmp_path / "facts.json")

    main(["build", "example.com/app", "--config", str(tmp_path), "--facts", str(facts), "--cover-mode", "count"])

    captured = capsys.readouterr()
    data = tomllib.loads(captured.out)
    assert data["root"] == "example.com/app"
    assert data["root-deps"] == ["example.com/app/lib", "example.com/gone"]
    app = data["package"][0]
    assert app["coverage"]["mode"] == "count"
    assert "ignored-buildable-files" not in app
    assert data["error"][0]["package"] == "example.com/gone"
    assert "could not be loaded" in captured.err


def test_build_writes_output_file_with_ignored_files(tmp_path: Path) -> None:
    facts = _write_facts(tmp_path / "facts.json")
    output = tmp_path / "out" / "manifest.toml"

    main(
        [
            "build",
            "example.com/app",
            "--config",
            str(tmp_path),
            "--facts",
            str(facts),
            "-o",
            str(output),
            "--include-ignored",
        ]
    )

    data = tomllib.loads(output.read_text(encoding="utf-8"))
    assert data["package"][0]["ignored-buildable-files"] == ["main_windows.go"]


def test_build_exits_non_zero_when_root_is_unresolvable(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    facts = _write_facts(tmp_path / "facts.json")

    with pytest.raises(SystemExit) as excinfo:
        main(["build", "example.com/elsewhere", "--config", str(tmp_path), "--facts", str(facts)])

    assert excinfo.value.code == 1
    assert "example.com/elsewhere" in capsys.readouterr().err


def test_build_exits_non_zero_on_config_error(tmp_path: Path) -> None:
    (tmp_path / ".manifestgen.yml").write_text("closure:\n  workers: 0\n", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        main(["build", "example.com/app", "--config", str(tmp_path)])

    assert excinfo.value.code == 1


@pytest.mark.parametrize(
    "facts_name, extra",
    [
        ("broken.json", []),
        ("facts.json", ["--cover-mode", " "]),
    ],
)
def test_build_exits_non_zero_on_invalid_inputs(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], facts_name: str, extra: list[str]
) -> None:
    (tmp_path / "broken.json").write_text("{not json", encoding="utf-8")
    _write_facts(tmp_path / "facts.json")

    with pytest.raises(SystemExit) as excinfo:
        main(
            ["build", "example.com/app", "--config", str(tmp_path), "--facts", str(tmp_path / facts_name)]
            + extra
        )

    assert excinfo.value.code == 1
    assert "manifestgen build failed" in capsys.readouterr().err


class _InterruptingSource(FactSource):
    """Sets the cancel signal on its first fetch, as SIGINT would."""

    def fetch(self, path: str, *, cancel: threading.Event | None = None) -> RawFact:
        assert cancel is not None
        cancel.set()
        return RawFact(package=path, imports=("example.com/app/lib",))


def test_build_exits_with_cancelled_status(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(cli, "resolve_source", lambda name, config: _InterruptingSource())

    with pytest.raises(SystemExit) as excinfo:
        main(["build", "example.com/app", "--config", str(tmp_path)])

    captured = capsys.readouterr()
    assert excinfo.value.code == EXIT_CANCELLED == 130
    assert "cancelled (1 packages resolved)" in captured.err
    assert captured.out == ""


def test_check_reports_incomplete_packages(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    manifest = tmp_path / "manifest.toml"
    records = {
        "app": ManifestRecord(package="app", imports=("lib/a", "lib/b")),
        "lib/a": ManifestRecord(package="lib/a", incomplete=True),
    }
    manifest.write_text(serialize(ClosureResult(root="app", records=records)), encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        main(["check", str(manifest)])

    captured = capsys.readouterr()
    assert excinfo.value.code == 1
    assert "app (unresolved imports): lib/b" in captured.out
    assert "lib/a (incomplete)" in captured.out


def test_check_accepts_complete_manifest(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    manifest = tmp_path / "manifest.toml"
    records = {"app": ManifestRecord(package="app")}
    manifest.write_text(serialize(ClosureResult(root="app", records=records)), encoding="utf-8")

    main(["check", str(manifest)])

    assert "1 packages, all complete" in capsys.readouterr().out
