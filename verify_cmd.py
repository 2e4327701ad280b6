"""
Verify command: re-hash tracked files and compare to stored fingerprints.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Set

from common import (
    DEFAULT_WORKERS,
    PathFilter,
    build_report,
    excluded_state_paths,
    hash_paths,
    walk_files,
)
from database import FingerprintIndex
from fingerprint import Fingerprint


class DiffOutcome(Enum):
    MODIFIED = "modified"
    MISSING = "missing"
    UNTRACKED = "untracked"


@dataclass(frozen=True)
class DiffEntry:
    """One divergence between the index and the filesystem."""
    path: str
    outcome: DiffOutcome
    expected: Optional[Fingerprint] = None
    actual: Optional[Fingerprint] = None

    def to_dict(self) -> Dict[str, object]:
        item: Dict[str, object] = {"path": self.path, "outcome": self.outcome.value}
        if self.expected is not None:
            item["expected_hash"] = str(self.expected)
        if self.actual is not None:
            item["actual_hash"] = str(self.actual)
        return item


def _check_tracked(
    tracked: Mapping[str, Fingerprint],
    workers: int,
    stats: Dict[str, int],
) -> List[DiffEntry]:
    """Re-hash every indexed file; returns modified and missing entries."""
    diff: List[DiffEntry] = []
    for result in hash_paths(tracked.keys(), workers):
        if result.missing:
            stats["missing"] += 1
            logging.info(f"MISSING: {result.path}")
            diff.append(DiffEntry(result.path, DiffOutcome.MISSING))
            continue

        expected = tracked[result.path]
        if result.fingerprint == expected:
            stats["verified"] += 1
            logging.debug(f"MATCH: {result.path}")
            continue

        stats["modified"] += 1
        logging.info(
            f"MODIFIED: {result.path} (expected {expected}, actual {result.fingerprint})"
        )
        diff.append(
            DiffEntry(result.path, DiffOutcome.MODIFIED, expected=expected, actual=result.fingerprint)
        )
    return diff


def _find_untracked(
    root: Path,
    tracked: Mapping[str, Fingerprint],
    name_filter: Optional[PathFilter],
    excluded_paths: Set[str],
    stats: Dict[str, int],
) -> List[DiffEntry]:
    """Walk root for files the index does not know about."""
    diff: List[DiffEntry] = []
    for path in walk_files(root, name_filter, excluded_paths):
        stats["scanned"] += 1
        if path in tracked:
            continue
        stats["untracked"] += 1
        logging.info(f"UNTRACKED: {path}")
        diff.append(DiffEntry(path, DiffOutcome.UNTRACKED))
    return diff


def verify_files(
    root: Path,
    db_path: Path,
    name_filter: Optional[PathFilter] = None,
    workers: int = DEFAULT_WORKERS,
    report_path: Optional[Path] = None,
) -> Dict[str, object]:
    """Audit the index against the filesystem without modifying either.

    Every indexed file is re-hashed (wherever it lives), then root is walked
    for untracked files. The report's "diff" is empty only when the tree is
    intact.
    """
    stats = {
        "db_entries": 0,
        "scanned": 0,
        "verified": 0,
        "modified": 0,
        "missing": 0,
        "untracked": 0,
    }

    run_started = int(time.time())
    index = FingerprintIndex.load(db_path)
    tracked = index.snapshot()
    stats["db_entries"] = len(tracked)
    excluded_paths = excluded_state_paths(db_path, report_path)

    diff = _check_tracked(tracked, workers, stats)
    diff.extend(_find_untracked(root, tracked, name_filter, excluded_paths, stats))

    run_finished = int(time.time())
    logging.info(
        f"Completed: db entries={stats['db_entries']}, verified={stats['verified']}, "
        f"modified={stats['modified']}, missing={stats['missing']}, "
        f"untracked={stats['untracked']}"
    )

    details: Dict[str, object] = {
        "diff": [entry.to_dict() for entry in diff],
        "modified": [entry.to_dict() for entry in diff if entry.outcome is DiffOutcome.MODIFIED],
        "missing": [entry.to_dict() for entry in diff if entry.outcome is DiffOutcome.MISSING],
        "untracked": [entry.to_dict() for entry in diff if entry.outcome is DiffOutcome.UNTRACKED],
    }
    if workers > 1:
        details["workers"] = workers
    return build_report(
        root=root,
        db_path=db_path,
        stats=stats,
        run_started=run_started,
        run_finished=run_finished,
        mode="verify",
        details=details,
    )
