#!/usr/bin/env python3
"""
rotsniff – bit-rot detection.

Keeps a gzip-compressed index of BLAKE2b-512 fingerprints and re-hashes
files later to detect silent corruption.

Commands:
  append  Hash files under a directory that are not in the index yet.
  remove  Drop index entries whose files no longer exist.
  update  Re-hash indexed files and record fingerprints that changed.
  verify  Re-hash indexed files and walk a directory; exit 1 on any difference.

Use --help for full options and examples.
"""

import argparse
import logging
import re
import sys
from pathlib import Path
from typing import List, Optional

from append_cmd import append_files
from common import (
    DEFAULT_DB_NAME,
    DEFAULT_WORKERS,
    FatalHashError,
    compile_filename_filter,
    setup_logging,
    write_report,
)
from database import IndexLoadError
from remove_cmd import remove_entries
from update_cmd import update_entries
from verify_cmd import verify_files


def _build_parser() -> argparse.ArgumentParser:
    options = argparse.ArgumentParser(add_help=False)
    options.add_argument(
        '--db',
        type=Path,
        default=Path(DEFAULT_DB_NAME),
        help=f'Path to the index file (default: {DEFAULT_DB_NAME})',
    )
    options.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Also log matching and newly hashed files (debug logging)',
    )
    options.add_argument(
        '-f', '--fnfilter',
        metavar='REGEX',
        help='Restrict directory scans to paths matching this regex',
    )
    options.add_argument(
        '-F', '--negate-fnfilter',
        action='store_true',
        help='Invert --fnfilter: scan paths that do NOT match',
    )
    options.add_argument(
        '--workers',
        type=int,
        default=DEFAULT_WORKERS,
        help=f'Number of parallel hashing threads (default: {DEFAULT_WORKERS})',
    )
    options.add_argument(
        '--log',
        type=Path,
        help='Write log output to this file',
    )
    options.add_argument(
        '--report',
        type=Path,
        help='Write a JSON report to this file',
    )

    parser = argparse.ArgumentParser(
        description='Detect bit rot by fingerprinting files and re-checking them later.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  rotsniff append /path/to/archive --db archive.db
  rotsniff append /path/to/photos --fnfilter '\\.jpe?g$'
  rotsniff update --db archive.db --workers 4
  rotsniff remove --db archive.db
  rotsniff verify /path/to/archive --db archive.db --report verify.json
        """,
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    append_parser = subparsers.add_parser(
        'append',
        parents=[options],
        help='Add files not found in the index',
    )
    append_parser.add_argument('directory', type=Path, help='Directory to scan recursively')

    subparsers.add_parser(
        'remove',
        parents=[options],
        help='Remove index entries for files that no longer exist',
    )
    subparsers.add_parser(
        'update',
        parents=[options],
        help='Update index entries for files whose content changed',
    )

    verify_parser = subparsers.add_parser(
        'verify',
        parents=[options],
        help='Verify indexed files are intact and every file under directory is indexed',
    )
    verify_parser.add_argument('directory', type=Path, help='Directory to scan recursively')
    return parser


def _check_directory(root: Path) -> None:
    if not root.exists():
        logging.error(f"Root directory does not exist: {root}")
        sys.exit(1)
    if not root.is_dir():
        logging.error(f"Root path is not a directory: {root}")
        sys.exit(1)


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the script."""
    args = _build_parser().parse_args(argv)

    try:
        name_filter = compile_filename_filter(args.fnfilter, args.negate_fnfilter)
    except re.error as exc:
        print(f"Invalid --fnfilter pattern {args.fnfilter!r}: {exc}", file=sys.stderr)
        sys.exit(1)

    setup_logging(args.log, args.verbose)

    try:
        if args.command == 'append':
            _check_directory(args.directory)
            report = append_files(
                root=args.directory,
                db_path=args.db,
                name_filter=name_filter,
                workers=args.workers,
                report_path=args.report,
            )
        elif args.command == 'remove':
            report = remove_entries(db_path=args.db)
        elif args.command == 'update':
            report = update_entries(db_path=args.db, workers=args.workers)
        else:
            _check_directory(args.directory)
            report = verify_files(
                root=args.directory,
                db_path=args.db,
                name_filter=name_filter,
                workers=args.workers,
                report_path=args.report,
            )

        if args.report:
            report["fnfilter"] = args.fnfilter
            write_report(report, args.report)
    except (IndexLoadError, FatalHashError, OSError) as exc:
        logging.error(str(exc))
        sys.exit(1)

    if args.command == 'verify' and report["diff"]:
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
