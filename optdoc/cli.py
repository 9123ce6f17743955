"""CLI entrypoints for optdoc commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List

from .config import ConfigError, OptDocConfig, load_config
from .logging import configure_logging
from .models import RecordDescriptor, records_from_payload
from .orchestrator import METADATA_FILENAME, BuildOutcome, Orchestrator
from .registry import CycleError
from .render import available_formats
from .session import SessionError
from .transport import TransportError


def _add_logging_options(
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
    parser.add_argument(
        "--log-file",
        default=argparse.SUPPRESS if suppress_default else None,
        help="Also write a DEBUG log to this file.",
    )


def _add_render_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c",
        "--config",
        default=".",
        help="Path to .optdoc.yml or the directory containing it (defaults to current directory).",
    )
    parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Directory for rendered files and metadata.",
    )
    parser.add_argument(
        "-r",
        "--render",
        choices=available_formats(),
        default=None,
        help="Output format to render.",
    )
    parser.add_argument(
        "--root",
        dest="roots",
        action="append",
        default=None,
        help="Only render this root record (repeatable).",
    )
    parser.add_argument(
        "--delimiter",
        default=None,
        help="Separator used between segments of expanded field names.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="optdoc",
        description="Collect option documentation from a build and render reference docs.",
    )
    _add_logging_options(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser(
        "build",
        help="Run the build, collect described types and render them.",
    )
    _add_logging_options(build_parser, suppress_default=True)
    _add_render_options(build_parser)
    build_parser.add_argument(
        "--address",
        default=None,
        help="Address the collector binds to (host:port or unix:/path).",
    )
    build_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Stop the build after this many seconds and keep what was collected.",
    )
    build_parser.add_argument(
        "build_command",
        nargs=argparse.REMAINDER,
        help="Build command to run instead of the configured one (after `--`).",
    )

    render_parser = subparsers.add_parser(
        "render",
        help="Render records from a metadata file saved by an earlier build.",
    )
    _add_logging_options(render_parser, suppress_default=True)
    _add_render_options(render_parser)
    render_parser.add_argument(
        "metadata",
        nargs="?",
        default=None,
        help=f"Metadata file (defaults to <output>/{METADATA_FILENAME}).",
    )

    send_parser = subparsers.add_parser(
        "send",
        help="Send records from a JSON file to a running collector.",
    )
    _add_logging_options(send_parser, suppress_default=True)
    send_parser.add_argument("file", help="JSON file holding a record or a list of records ('-' for stdin).")
    send_parser.add_argument(
        "--address",
        default=None,
        help="Collector address (defaults to $OPTDOC_URL).",
    )

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP service for expanding and rendering records.",
    )
    _add_logging_options(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to listen on.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for optdoc commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    log_file = getattr(args, "log_file", None)
    configure_logging(
        verbose=bool(args.verbose),
        log_file=Path(log_file).expanduser() if log_file else None,
    )

    orchestrator = Orchestrator()

    if args.command == "build":
        try:
            config = _resolve_config(args)
            outcome = orchestrator.run_build(config)
        except SessionError as exc:
            parser.exit(1, f"optdoc build failed during {exc.stage}: {exc}\n")
        except ConfigError as exc:
            parser.exit(1, f"optdoc build failed during config: {exc}\n")
        except CycleError as exc:
            parser.exit(1, f"optdoc build failed during expand: {exc}\n")
        except TransportError as exc:
            parser.exit(1, f"optdoc build failed during collect: {exc}\n")
        except (OSError, ValueError) as exc:
            parser.exit(1, f"optdoc build failed: {exc}\nRun with --verbose for more details.\n")
        _report(outcome)
    elif args.command == "render":
        try:
            config = _resolve_config(args)
            metadata = Path(args.metadata) if args.metadata else config.output_dir / METADATA_FILENAME
            outcome = orchestrator.run_render(metadata, config)
        except FileNotFoundError as exc:
            parser.exit(1, f"{exc}\n")
        except ConfigError as exc:
            parser.exit(1, f"optdoc render failed during config: {exc}\n")
        except CycleError as exc:
            parser.exit(1, f"optdoc render failed during expand: {exc}\n")
        except (OSError, ValueError) as exc:
            parser.exit(1, f"optdoc render failed during decode: {exc}\n")
        _report(outcome)
    elif args.command == "send":
        try:
            records = _read_records(args.file)
            sent = orchestrator.run_send(records, args.address)
        except FileNotFoundError as exc:
            parser.exit(1, f"{exc}\n")
        except TransportError as exc:
            parser.exit(1, f"optdoc send failed during send: {exc}\n")
        except ValueError as exc:
            parser.exit(1, f"optdoc send failed during decode: {exc}\n")
        print(f"Sent {sent} of {len(records)} record(s)")
    elif args.command == "serve":
        from .service import run_service

        run_service(host=args.host, port=args.port)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _resolve_config(args: argparse.Namespace) -> OptDocConfig:
    config = load_config(Path(args.config))
    command = list(getattr(args, "build_command", None) or [])
    if command and command[0] == "--":
        command = command[1:]
    return config.with_overrides(
        address=getattr(args, "address", None),
        output_dir=Path(args.output).expanduser().resolve() if args.output else None,
        render=args.render,
        roots=args.roots,
        delimiter=args.delimiter,
        timeout=getattr(args, "timeout", None),
        command=command or None,
    )


def _read_records(source: str) -> List[RecordDescriptor]:
    if source == "-":
        text = sys.stdin.read()
    else:
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Record file not found: {path}")
        text = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Record file is not valid JSON: {exc}") from exc
    return records_from_payload(payload)


def _report(outcome: BuildOutcome) -> None:
    if outcome.timed_out:
        print("Build timed out; rendered what was collected")
    if not outcome.documents:
        print(f"Collected {len(outcome.records)} record(s); nothing rendered")
        return
    for path in outcome.written:
        print(f"Rendered {_relativize(path)}")


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
