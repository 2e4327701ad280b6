"""
Fingerprint index: path -> Fingerprint map persisted as gzip-compressed CSV.

Each record is ``<path>,blake2b:<HEX>`` with no header row. Paths are quoted
with standard CSV rules when they contain commas, quotes, carriage returns or
newlines. Names that are not valid UTF-8 are kept with surrogateescape.
"""

import csv
import gzip
import io
import os
import shutil
import tempfile
import zlib
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Dict, Iterable, Iterator, Mapping, Optional, Tuple

from fingerprint import Fingerprint, FingerprintFormatError


class IndexLoadError(Exception):
    """Raised when the index file cannot be read or holds a malformed record."""


class FingerprintIndex:
    """In-memory map from path to its last recorded fingerprint."""

    def __init__(self, entries: Optional[Mapping[str, Fingerprint]] = None) -> None:
        self._entries: Dict[str, Fingerprint] = dict(entries or {})

    @classmethod
    def load(cls, db_path: Path) -> "FingerprintIndex":
        """Load the index, creating an empty file if none exists yet.

        Any unreadable or malformed record fails the whole load; a partial
        index would report tracked files as new.
        """
        db_path = Path(db_path)
        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            db_path.touch(exist_ok=True)
            if db_path.stat().st_size == 0:
                return cls()
        except OSError as exc:
            raise IndexLoadError(f"Cannot open index {db_path}: {exc}") from exc

        entries: Dict[str, Fingerprint] = {}
        line_num = 0
        try:
            with gzip.open(
                db_path, 'rt', encoding='utf-8', errors='surrogateescape', newline=''
            ) as handle:
                reader = csv.reader(handle)
                for row in reader:
                    line_num = reader.line_num
                    if not row:
                        continue
                    if len(row) != 2:
                        raise IndexLoadError(
                            f"{db_path}:{line_num}: expected 2 fields, got {len(row)}"
                        )
                    path, text = row
                    entries[path] = Fingerprint.parse(text)
        except FingerprintFormatError as exc:
            raise IndexLoadError(f"{db_path}:{line_num}: {exc}") from exc
        except (OSError, EOFError, zlib.error, UnicodeDecodeError, csv.Error) as exc:
            raise IndexLoadError(f"Cannot read index {db_path}: {exc}") from exc

        return cls(entries)

    def save(self, db_path: Path) -> None:
        """Write every entry and atomically replace the index file.

        Records are sorted and the gzip header carries no timestamp, so the
        same entries always serialize to the same bytes.
        """
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(db_path.parent), prefix=f".{db_path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, 'wb') as raw:
                with gzip.GzipFile(fileobj=raw, mode='wb', mtime=0) as compressed:
                    with io.TextIOWrapper(
                        compressed, encoding='utf-8', errors='surrogateescape', newline=''
                    ) as text:
                        writer = csv.writer(text, lineterminator='\n')
                        # QUOTE_MINIMAL quotes only the terminator's \n, never a bare \r
                        quoted_writer = csv.writer(text, lineterminator='\n', quoting=csv.QUOTE_ALL)
                        for path in sorted(self._entries):
                            row = (path, str(self._entries[path]))
                            if '\r' in path:
                                quoted_writer.writerow(row)
                            else:
                                writer.writerow(row)
                raw.flush()
                os.fsync(raw.fileno())
            if db_path.exists():
                shutil.copymode(db_path, tmp_name)
            os.replace(tmp_name, db_path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    def get(self, path: str) -> Optional[Fingerprint]:
        return self._entries.get(path)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def items(self) -> Iterator[Tuple[str, Fingerprint]]:
        return iter(self._entries.items())

    def snapshot(self) -> Mapping[str, Fingerprint]:
        """Return a read-only copy safe to share with hashing threads."""
        return MappingProxyType(dict(self._entries))

    def extend(self, entries: Iterable[Tuple[str, Fingerprint]]) -> None:
        """Insert or overwrite entries; later duplicates win."""
        self._entries.update(entries)

    def retain(self, keep: Callable[[str], bool]) -> None:
        """Drop every entry whose path fails ``keep``."""
        self._entries = {path: fp for path, fp in self._entries.items() if keep(path)}
