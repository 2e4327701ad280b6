"""
Shared code for rotsniff commands: constants, logging, walking, hashing pool, reporting.
"""

import json
import logging
import os
import re
import sys
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set

from fingerprint import Fingerprint, HashAlgorithm, compute_fingerprint


DEFAULT_DB_NAME = "rotsniff.db"
DEFAULT_HASH_ALGO = HashAlgorithm.BLAKE2B512.value
DEFAULT_WORKERS = os.cpu_count() or 1
PROGRESS_EVERY = 1000
HASH_BATCH_SIZE = 100

PathFilter = Callable[[str], bool]


@dataclass
class HashResult:
    """Result of a hash computation."""
    path: str
    fingerprint: Optional[Fingerprint] = None
    error: Optional[OSError] = None

    @property
    def missing(self) -> bool:
        return isinstance(self.error, FileNotFoundError)


class FatalHashError(Exception):
    """An I/O error other than not-found while hashing; aborts the whole operation."""

    def __init__(self, path: str, error: OSError) -> None:
        super().__init__(f"Failed to hash {path}: {error}")
        self.path = path
        self.error = error


def setup_logging(log_file: Optional[Path] = None, verbose: bool = False) -> None:
    """Configure logging to file and console."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        handlers.append(logging.FileHandler(log_file, mode='w', encoding='utf-8'))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def compile_filename_filter(pattern: Optional[str], negate: bool = False) -> Optional[PathFilter]:
    """Compile a regex into a path predicate. Raises re.error on a bad pattern."""
    if pattern is None:
        return None
    regex = re.compile(pattern)
    if negate:
        return lambda path: regex.search(path) is None
    return lambda path: regex.search(path) is not None


def excluded_state_paths(*paths: Optional[Path]) -> Set[str]:
    """Absolute forms of the tool's own files, which must never be tracked."""
    return {os.path.abspath(p) for p in paths if p is not None}


def iter_files(root: Path) -> Iterable[str]:
    """Iterate through files under root without descending into symlinked directories."""
    stack = [str(root)]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as entries:
                for entry in entries:
                    try:
                        if entry.is_dir(follow_symlinks=False):
                            stack.append(entry.path)
                        elif entry.is_file():
                            yield entry.path
                    except OSError as exc:
                        logging.debug(f"Skipping entry {entry.path}: {exc}")
        except OSError as exc:
            logging.debug(f"Skipping directory {current}: {exc}")


def walk_files(
    root: Path,
    name_filter: Optional[PathFilter] = None,
    excluded_paths: Optional[Set[str]] = None,
) -> Iterator[str]:
    """Files under root accepted by name_filter, minus the excluded paths."""
    for path in iter_files(root):
        if excluded_paths and os.path.abspath(path) in excluded_paths:
            continue
        if name_filter is not None and not name_filter(path):
            continue
        yield path


def compute_hash_task(path: str) -> HashResult:
    """Compute the fingerprint of a file, returning a HashResult (for use in thread pool)."""
    try:
        return HashResult(path=path, fingerprint=compute_fingerprint(path))
    except OSError as exc:
        return HashResult(path=path, error=exc)


def _check_result(result: HashResult) -> HashResult:
    if result.error is not None and not result.missing:
        raise FatalHashError(result.path, result.error)
    return result


def hash_paths(paths: Iterable[str], workers: int = DEFAULT_WORKERS) -> Iterator[HashResult]:
    """Fingerprint paths, yielding results in completion order.

    Results for files that vanished carry a FileNotFoundError. Any other
    error raises FatalHashError and cancels the work not yet started.
    """
    total = 0

    def tick() -> None:
        nonlocal total
        total += 1
        if total % PROGRESS_EVERY == 0:
            logging.info(f"Progress: hashed={total}")

    if workers <= 1:
        for path in paths:
            result = _check_result(compute_hash_task(path))
            tick()
            yield result
        return

    logging.debug(f"Using {workers} worker threads for hashing")
    with ThreadPoolExecutor(max_workers=workers) as executor:
        batch: List[str] = []

        def flush_batch() -> Iterator[HashResult]:
            futures: List[Future] = [executor.submit(compute_hash_task, p) for p in batch]
            batch.clear()
            try:
                for future in as_completed(futures):
                    result = _check_result(future.result())
                    tick()
                    yield result
            except BaseException:
                for future in futures:
                    future.cancel()
                raise

        for path in paths:
            batch.append(path)
            if len(batch) >= HASH_BATCH_SIZE:
                yield from flush_batch()
        yield from flush_batch()


def build_report(
    root: Optional[Path],
    db_path: Path,
    stats: Dict[str, int],
    run_started: int,
    run_finished: int,
    mode: str,
    details: Optional[Dict[str, object]],
) -> Dict[str, object]:
    """Build JSON-compatible report."""
    report: Dict[str, object] = {
        "run_started": datetime.fromtimestamp(run_started).isoformat(),
        "run_finished": datetime.fromtimestamp(run_finished).isoformat(),
        "duration_seconds": run_finished - run_started,
        "root": str(root) if root is not None else None,
        "db": str(db_path),
        "hash_algo": DEFAULT_HASH_ALGO,
        "mode": mode,
        "stats": stats,
    }
    if details:
        report.update(details)
    return report


def write_report(report: Dict[str, object], report_path: Path) -> None:
    """Write report to file."""
    report_json = json.dumps(report, indent=2, sort_keys=True)
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(report_json, encoding='utf-8')
    logging.info(f"Report written to {report_path}")
