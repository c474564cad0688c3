"""CLI entrypoints for manifestgen commands."""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from dataclasses import replace
from pathlib import Path
from typing import Optional

from .closure import ClosureBuilder
from .config import ManifestGenConfig, load_config
from .errors import Cancelled, ConfigError, InvalidRecordError, RootUnresolvable
from .logging import configure_logging, get_logger
from .models import ClosureResult, CoverageConfig
from .serializer import parse, serialize
from .sources import resolve_source

EXIT_CANCELLED = 130


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="manifestgen",
        description="Describe a package and its dependency closure as a build manifest.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser(
        "build",
        help="Resolve the dependency closure of a package and write its manifest.",
    )
    _add_verbose_option(build_parser, suppress_default=True)
    build_parser.add_argument(
        "root",
        nargs="?",
        default=".",
        help="Import path of the root package (defaults to the package in the current directory).",
    )
    build_parser.add_argument(
        "--config",
        type=Path,
        default=Path("."),
        help="Path to .manifestgen.yml or the directory holding it.",
    )
    build_parser.add_argument(
        "--source",
        default=None,
        help="Fact source to use (golist, facts, or a plugin name).",
    )
    build_parser.add_argument(
        "--facts",
        type=Path,
        default=None,
        help="Replay a saved `go list -e -json` stream instead of running go list.",
    )
    build_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Write the manifest to this file instead of standard output.",
    )
    build_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Fetch up to this many packages concurrently.",
    )
    build_parser.add_argument(
        "--tags",
        default=None,
        help="Comma separated build tags passed to the fact source.",
    )
    build_parser.add_argument(
        "--cover-mode",
        default=None,
        help="Request coverage instrumentation with this mode (set, count, atomic).",
    )
    build_parser.add_argument(
        "--include-ignored",
        action="store_true",
        default=None,
        help="Also list files excluded by build constraints (diagnostic output).",
    )

    check_parser = subparsers.add_parser(
        "check",
        help="Parse a manifest and report incomplete packages.",
    )
    _add_verbose_option(check_parser, suppress_default=True)
    check_parser.add_argument("manifest", type=Path, help="Manifest file to check.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for manifestgen commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    if args.command == "build":
        _run_build(parser, args)
    elif args.command == "check":
        _run_check(parser, args)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _run_build(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    logger = get_logger("cli")
    try:
        config = _apply_overrides(load_config(args.config), args)
        source_name = args.source or config.source.kind
        if args.facts is not None and args.source is None:
            source_name = "facts"
        source = resolve_source(source_name, config)
    except (ConfigError, InvalidRecordError) as exc:
        parser.exit(1, f"manifestgen build failed: {exc}\n")

    cancel = threading.Event()
    previous_handler = _install_interrupt_handler(cancel)
    builder = ClosureBuilder(source, workers=config.closure.workers, cancel=cancel)
    try:
        result = builder.build(args.root)
    except RootUnresolvable as exc:
        parser.exit(1, f"manifestgen build failed: {exc}\n")
    except Cancelled as exc:
        partial = exc.partial
        resolved = len(partial.records) if partial is not None else 0
        parser.exit(EXIT_CANCELLED, f"manifestgen build cancelled ({resolved} packages resolved)\n")
    finally:
        if previous_handler is not None:
            signal.signal(signal.SIGINT, previous_handler)

    text = serialize(result, include_ignored=config.output.include_ignored)
    if config.output.path is not None:
        config.output.path.parent.mkdir(parents=True, exist_ok=True)
        config.output.path.write_text(text, encoding="utf-8")
        logger.info("Manifest written to %s", _relativize(config.output.path))
    else:
        sys.stdout.write(text)

    _report_warnings(result)


def _run_check(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    try:
        result = parse(args.manifest.read_text(encoding="utf-8"))
    except FileNotFoundError:
        parser.exit(1, f"Manifest not found: {args.manifest}\n")
    except InvalidRecordError as exc:
        parser.exit(1, f"Invalid manifest: {exc}\n")

    incomplete = result.incomplete_packages()
    if not incomplete:
        print(f"{len(result.records)} packages, all complete")
        return
    for name in incomplete:
        record = result.records[name]
        missing = [path for path in record.all_imports() if path not in result.records]
        detail = "incomplete" if record.incomplete else "unresolved imports"
        suffix = f": {', '.join(missing)}" if missing else ""
        print(f"{name} ({detail}){suffix}")
    parser.exit(1, f"{len(incomplete)} of {len(result.records)} packages are not complete\n")


def _apply_overrides(config: ManifestGenConfig, args: argparse.Namespace) -> ManifestGenConfig:
    source = config.source
    if args.facts is not None:
        source = replace(source, facts_file=args.facts)
    if args.tags is not None:
        source = replace(source, tags=[tag.strip() for tag in args.tags.split(",") if tag.strip()])

    closure = config.closure
    if args.workers is not None:
        if args.workers < 1:
            raise ConfigError("--workers must be at least 1")
        closure = replace(closure, workers=args.workers)

    coverage: Optional[CoverageConfig] = config.coverage
    if args.cover_mode:
        coverage = replace(coverage, mode=args.cover_mode) if coverage else CoverageConfig(mode=args.cover_mode)

    output = config.output
    if args.output is not None:
        output = replace(output, path=args.output)
    if args.include_ignored:
        output = replace(output, include_ignored=True)

    return replace(config, source=source, closure=closure, coverage=coverage, output=output)


def _install_interrupt_handler(cancel: threading.Event):
    if threading.current_thread() is not threading.main_thread():
        return None

    def _handler(signum, frame):  # type: ignore[no-untyped-def]
        get_logger("cli").warning("Interrupt received; cancelling build")
        cancel.set()

    return signal.signal(signal.SIGINT, _handler)


def _report_warnings(result: ClosureResult) -> None:
    if not result.errors and not result.conflicts:
        return
    logger = get_logger("cli")
    if result.errors:
        logger.warning("%d package(s) could not be loaded:", len(result.errors))
        for failure in result.errors:
            logger.warning("  %s: %s", failure.package, failure.message)
    if result.conflicts:
        logger.warning("%d merge conflict(s):", len(result.conflicts))
        for conflict in result.conflicts:
            logger.warning("  %s", conflict.describe())


def _relativize(path: Path) -> str:
    try:
        return str(path.resolve().relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
