"""
Append command: hash files under a root that the index does not track yet.
"""

import logging
import time
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

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


def append_files(
    root: Path,
    db_path: Path,
    name_filter: Optional[PathFilter] = None,
    workers: int = DEFAULT_WORKERS,
    report_path: Optional[Path] = None,
) -> Dict[str, object]:
    """Add fingerprints for untracked files under root, then save the index.

    Paths already in the index are never re-hashed; this operation only adds.
    """
    stats = {
        "scanned": 0,
        "already_tracked": 0,
        "hashed_new": 0,
        "vanished": 0,
        "db_entries": 0,
    }
    added: List[Dict[str, object]] = []
    new_entries: List[Tuple[str, Fingerprint]] = []

    run_started = int(time.time())
    index = FingerprintIndex.load(db_path)
    tracked = index.snapshot()
    excluded_paths = excluded_state_paths(db_path, report_path)

    def candidates() -> Iterator[str]:
        for path in walk_files(root, name_filter, excluded_paths):
            stats["scanned"] += 1
            if path in tracked:
                stats["already_tracked"] += 1
                continue
            yield path

    for result in hash_paths(candidates(), workers):
        if result.missing:
            stats["vanished"] += 1
            logging.warning(f"File vanished before hashing: {result.path}")
            continue
        stats["hashed_new"] += 1
        logging.debug(f"{result.path}: {result.fingerprint}")
        new_entries.append((result.path, result.fingerprint))
        added.append({"path": result.path, "hash": str(result.fingerprint)})

    index.extend(new_entries)
    index.save(db_path)
    stats["db_entries"] = len(index)

    run_finished = int(time.time())
    logging.info(
        f"Append summary: {stats['scanned']} files walked | "
        f"already tracked: {stats['already_tracked']} | hashed this run: {stats['hashed_new']} | "
        f"vanished: {stats['vanished']} | DB total: {stats['db_entries']}"
    )

    details: Dict[str, object] = {"added": added}
    if workers > 1:
        details["workers"] = workers
    return build_report(
        root=root,
        db_path=db_path,
        stats=stats,
        run_started=run_started,
        run_finished=run_finished,
        mode="append",
        details=details,
    )
