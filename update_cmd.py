"""
Update command: re-hash tracked files and record new fingerprints for changed content.
"""

import logging
import time
from pathlib import Path
from typing import Dict, List, Tuple

from common import DEFAULT_WORKERS, build_report, hash_paths
from database import FingerprintIndex
from fingerprint import Fingerprint


def update_entries(
    db_path: Path,
    workers: int = DEFAULT_WORKERS,
) -> Dict[str, object]:
    """Re-hash every tracked file and store fingerprints that changed.

    Files that no longer exist are skipped and keep their stale entry; use
    the remove command to prune them. Any other I/O error raises
    FatalHashError before anything is saved.
    """
    stats = {
        "checked": 0,
        "unchanged": 0,
        "updated": 0,
        "skipped_missing": 0,
        "db_entries": 0,
    }
    updated: List[Dict[str, object]] = []
    staged: List[Tuple[str, Fingerprint]] = []

    run_started = int(time.time())
    index = FingerprintIndex.load(db_path)
    tracked = index.snapshot()

    for result in hash_paths(tracked.keys(), workers):
        stats["checked"] += 1
        if result.missing:
            stats["skipped_missing"] += 1
            logging.debug(f"Skipping missing file: {result.path}")
            continue

        previous = tracked[result.path]
        if result.fingerprint == previous:
            stats["unchanged"] += 1
            continue

        stats["updated"] += 1
        logging.info(f"UPDATED: {result.path}")
        staged.append((result.path, result.fingerprint))
        updated.append(
            {
                "path": result.path,
                "hash": str(result.fingerprint),
                "previous_hash": str(previous),
            }
        )

    index.extend(staged)
    index.save(db_path)
    stats["db_entries"] = len(index)

    run_finished = int(time.time())
    logging.info(
        f"Update summary: checked={stats['checked']}, updated={stats['updated']}, "
        f"unchanged={stats['unchanged']}, skipped missing={stats['skipped_missing']}"
    )

    details: Dict[str, object] = {"updated": updated}
    if workers > 1:
        details["workers"] = workers
    return build_report(
        root=None,
        db_path=db_path,
        stats=stats,
        run_started=run_started,
        run_finished=run_finished,
        mode="update",
        details=details,
    )
