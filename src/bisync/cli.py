"""Command-line entry point: ``bisync PATH1 PATH2 [options]``.

Exit status: 0 on success, 1 on error (prior listings kept), 2 when the
run was aborted on a critical error and ``--resync`` may be required.
"""

import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from bisync import __version__
from bisync.backends import create_backend
from bisync.config import load_options
from bisync.config_loader import load_hierarchical_config
from bisync.config_schema import CheckSyncMode, build_config
from bisync.core.lifecycle import CancelToken
from bisync.errors import BisyncAborted, BisyncError
from bisync.logger import setup_logging
from bisync.sync import (
    bisync,
    format_dry_run_preview,
    format_run_report,
    report_to_json,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_ABORTED = 2

# argparse dest -> BisyncOptions field, for options given on the command line
_OPTION_ARGS = (
    "resync",
    "dry_run",
    "force",
    "check_access",
    "check_filename",
    "check_sync",
    "max_delete",
    "max_delete_count",
    "remove_empty_dirs",
    "create_empty_src_dirs",
    "resilient",
    "no_cleanup",
    "workdir",
    "exclude",
    "transfers",
    "compare_hash",
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bisync",
        description="Bidirectional synchronisation of two file trees",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # First run: establish the baseline (Path1 wins on differences)
  bisync ~/docs /mnt/backup/docs --resync

  # Preview what a normal run would do
  bisync ~/docs /mnt/backup/docs --dry-run

  # Normal run with access check files on both sides
  bisync ~/docs /mnt/backup/docs --check-access

Exit status: 0 success, 1 error, 2 aborted (run --resync to recover).
        """,
    )
    parser.add_argument("path1", help="First tree (local path or type:root)")
    parser.add_argument("path2", help="Second tree (local path or type:root)")

    # store_true flags default to None so unset flags fall through to
    # env vars and the config file
    flag = {"action": "store_true", "default": None}
    parser.add_argument(
        "--resync", **flag, help="Rebuild listings; Path1 wins on differences"
    )
    parser.add_argument(
        "--dry-run", **flag, help="Show what would be done without changes"
    )
    parser.add_argument(
        "--force", **flag, help="Bypass excess-delete and all-changed guards"
    )
    parser.add_argument(
        "--check-access",
        **flag,
        help="Require matching check files on both sides",
    )
    parser.add_argument(
        "--check-filename", help="Check file name (default: BISYNC_CHECK)"
    )
    parser.add_argument(
        "--check-sync",
        choices=[m.value for m in CheckSyncMode],
        help="Compare final listings: true (default), false, or only",
    )
    parser.add_argument(
        "--max-delete",
        type=int,
        help="Safety abort above this percentage of deletes (default: 50)",
    )
    parser.add_argument(
        "--max-delete-count",
        type=int,
        help="Safety abort above this number of deletes",
    )
    parser.add_argument(
        "--remove-empty-dirs",
        **flag,
        help="Remove empty directories after the run",
    )
    parser.add_argument(
        "--create-empty-src-dirs",
        **flag,
        help="Sync empty directories as well",
    )
    parser.add_argument(
        "--resilient",
        **flag,
        help="Allow retry after retryable critical errors without --resync",
    )
    parser.add_argument(
        "--no-cleanup", **flag, help="Keep intermediate -new listings"
    )
    parser.add_argument(
        "--workdir", help="Listings and lock directory (default: ~/.cache/bisync)"
    )
    parser.add_argument(
        "--exclude",
        action="append",
        metavar="PATTERN",
        help="Ignore paths matching this glob (repeatable)",
    )
    parser.add_argument(
        "--transfers", type=int, help="Parallel transfers (default: 4)"
    )
    parser.add_argument(
        "--compare-hash",
        **flag,
        help="Also compare hashes when detecting changes",
    )
    parser.add_argument("--config", help="Config file (skips discovery)")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        help="Log line format (default: text)",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--json", action="store_true", help="Print the run report as JSON"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"bisync version {__version__}",
    )
    return parser


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides = {}
    for name in _OPTION_ARGS:
        value = getattr(args, name)
        if value is not None:
            overrides[name] = value
    return overrides


def _print_report(report, args: argparse.Namespace) -> None:
    if args.json:
        print(json.dumps(report_to_json(report), indent=2))
    elif report.dry_run:
        print(format_dry_run_preview(report))
    else:
        print(format_run_report(report))


def main(argv: list[str] | None = None) -> int:
    """Parse *argv*, run bisync and return the exit status."""
    args = build_parser().parse_args(argv)
    load_dotenv()

    try:
        raw = load_hierarchical_config(
            Path(args.config).expanduser() if args.config else None
        )
        unified = build_config(raw)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        return EXIT_ERROR

    setup_logging(
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        log_format=args.log_format or unified.logging.format,
        level=unified.logging.level,
    )

    try:
        options = load_options(
            _cli_overrides(args),
            unified.bisync.model_dump(exclude_unset=True),
        )
        fs1 = create_backend(args.path1, hashes=options.compare_hash)
        fs2 = create_backend(args.path2, hashes=options.compare_hash)
    except (OSError, ValueError) as exc:
        logger.error("%s", exc)
        return EXIT_ERROR

    cancel = CancelToken()

    def _on_sigint(signum, frame):
        cancel.cancel("interrupt signal received")

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        report = bisync(fs1, fs2, options, cancel)
    except BisyncAborted as exc:
        if args.json and exc.report is not None:
            _print_report(exc.report, args)
        return EXIT_ABORTED
    except BisyncError as exc:
        if exc.report is not None:
            _print_report(exc.report, args)
        return EXIT_ERROR
    finally:
        signal.signal(signal.SIGINT, previous)

    _print_report(report, args)
    return EXIT_OK


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
