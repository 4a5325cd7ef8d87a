"""
CLI Entry Point for ecc-bridge

Commands:
    ecc-bridge doctor [--json]              Show which kernel (if any) is in use
    ecc-bridge run COMMAND [--input FILE]   Send a JSON request to the kernel
    ecc-bridge repo-info                    Show validated repository status
    ecc-bridge extract JSON FIELD OUT       Stream a string field to a file
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from ecc_core.config import EccConfig, load_config
from ecc_core.errors import EccError
from ecc_core.json_extract import extract_json_string_field
from ecc_core.logging_utils import KernelEventLog, setup_logging
from ecc_core.version import __version__, get_short_banner
from ecc_kernel.invoker import KernelInvoker
from ecc_kernel.session import get_session

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 2
EXIT_UNAVAILABLE = 3


def build_parser() -> argparse.ArgumentParser:
    """Build argument parser for the ecc-bridge CLI."""
    parser = argparse.ArgumentParser(
        prog="ecc-bridge",
        description="Bridge to the ecc-kernel command engine"
    )
    parser.add_argument("--version", action="version", version=get_short_banner())
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config file (default: nearest ecc.yaml)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: logging.level from config)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging (shortcut for --log-level DEBUG)"
    )

    sub = parser.add_subparsers(dest="command")

    p_doctor = sub.add_parser("doctor", help="Show kernel resolution status")
    p_doctor.add_argument("--json", action="store_true", help="Print status as JSON")
    p_doctor.set_defaults(func=cmd_doctor)

    p_run = sub.add_parser("run", help="Run a kernel command")
    p_run.add_argument("kernel_command", help="Kernel command name (e.g. worktree.ensure)")
    p_run.add_argument("--input", default=None,
                       help="JSON request file, or '-' for stdin (default: {})")
    p_run.set_defaults(func=cmd_run)

    p_repo = sub.add_parser("repo-info", help="Query repository status through the kernel")
    p_repo.set_defaults(func=cmd_repo_info)

    p_extract = sub.add_parser("extract", help="Stream a top-level string field to a file")
    p_extract.add_argument("source", type=Path, help="JSON document")
    p_extract.add_argument("field", help="Top-level field name")
    p_extract.add_argument("destination", type=Path, help="Output file")
    p_extract.add_argument("--chunk-size", type=int, default=None,
                           help="Bytes read per chunk (default: from config)")
    p_extract.set_defaults(func=cmd_extract)

    return parser


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, ensure_ascii=False))


def _read_request(source: Optional[str]) -> Any:
    if source is None:
        return {}
    if source == "-":
        text = sys.stdin.read()
    else:
        text = Path(source).read_text(encoding="utf-8")
    return json.loads(text) if text.strip() else {}


def _invoker(config: EccConfig) -> KernelInvoker:
    return KernelInvoker(get_session(config), event_log=KernelEventLog.from_config(config.logging))


def cmd_doctor(args: argparse.Namespace, config: EccConfig) -> int:
    session = get_session(config)
    if args.json:
        _print_json({**session.to_dict(), "bridgeVersion": __version__})
        return EXIT_OK

    print(get_short_banner())
    print(f"mode:     {session.mode.value}")
    if session.enabled:
        print(f"kernel:   {session.kernel_version} (protocol {session.protocol})")
        print(f"binary:   {session.locator} [{session.label}]")
        print(f"commands: {', '.join(sorted(session.commands))}")
    else:
        print("kernel:   disabled (using local fallback)")
        if session.reason:
            print(f"reason:   {session.reason}")
    return EXIT_OK


def cmd_run(args: argparse.Namespace, config: EccConfig) -> int:
    try:
        request = _read_request(args.input)
    except ValueError as e:
        print(f"Error: request is not valid JSON: {e}", file=sys.stderr)
        return EXIT_USAGE

    result = _invoker(config).run(args.kernel_command, request)
    if not result.available:
        print("ecc-kernel not available (fallback mode)", file=sys.stderr)
        return EXIT_UNAVAILABLE
    _print_json(result.value)
    return EXIT_OK


def cmd_repo_info(args: argparse.Namespace, config: EccConfig) -> int:
    result = _invoker(config).repo_info()
    if not result.available:
        print("ecc-kernel not available (fallback mode)", file=sys.stderr)
        return EXIT_UNAVAILABLE
    _print_json(result.value)
    return EXIT_OK


def cmd_extract(args: argparse.Namespace, config: EccConfig) -> int:
    result = extract_json_string_field(
        args.source,
        args.field,
        args.destination,
        chunk_size=args.chunk_size or config.extract.chunk_size,
        flush_threshold=config.extract.flush_threshold,
    )
    print(f"{result.destination}: {result.chars_written} chars")
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the ecc-bridge CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_USAGE

    config = load_config(args.config)

    level = "DEBUG" if args.debug else (args.log_level or config.logging.level)
    setup_logging(level)

    try:
        return args.func(args, config)
    except EccError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
