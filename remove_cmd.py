"""
Remove command: drop index entries whose files no longer exist.
"""

import logging
import os
import time
from pathlib import Path
from typing import Dict, List

from common import build_report
from database import FingerprintIndex


def remove_entries(db_path: Path) -> Dict[str, object]:
    """Prune entries for deleted files and save the index.

    Only existing entries are checked; the filesystem is not walked.
    """
    stats = {"checked": 0, "removed": 0, "db_entries": 0}
    removed: List[Dict[str, object]] = []

    run_started = int(time.time())
    index = FingerprintIndex.load(db_path)

    gone = set()
    for path, _ in index.items():
        stats["checked"] += 1
        if not os.path.exists(path):
            gone.add(path)
            removed.append({"path": path})
            logging.info(f"REMOVED: {path}")

    stats["removed"] = len(gone)
    index.retain(lambda path: path not in gone)
    index.save(db_path)
    stats["db_entries"] = len(index)

    run_finished = int(time.time())
    logging.info(
        f"Remove summary: checked={stats['checked']}, removed={stats['removed']}, "
        f"DB total={stats['db_entries']}"
    )
    return build_report(
        root=None,
        db_path=db_path,
        stats=stats,
        run_started=run_started,
        run_finished=run_finished,
        mode="remove",
        details={"removed": removed},
    )
