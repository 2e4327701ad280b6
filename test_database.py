#!/usr/bin/env python3
"""
Unit tests for the fingerprint index file format.
"""

import gzip
import hashlib
from pathlib import Path

import pytest

from database import FingerprintIndex, IndexLoadError
from fingerprint import Fingerprint, HashAlgorithm


HELLO_WORLD_RECORD = (
    "/some/path,blake2b:021CED8799296CECA557832AB941A50B4A11F83478CF141F51F933F653AB9FBC"
    "C05A037CDDBED06E309BF334942C4E58CDF1A46E237911CCD7FCF9787CBC7FD0\n"
)


def _fp(content: bytes) -> Fingerprint:
    return Fingerprint(HashAlgorithm.BLAKE2B512, hashlib.blake2b(content).digest())


def _write_gzip(path: Path, text: str) -> None:
    with gzip.open(path, 'wt', encoding='utf-8', newline='') as handle:
        handle.write(text)


def test_load_creates_missing_file_as_empty_index(tmp_path: Path):
    db_path = tmp_path / "nested" / "rotsniff.db"

    index = FingerprintIndex.load(db_path)

    assert len(index) == 0
    assert db_path.exists()
    assert db_path.stat().st_size == 0


def test_save_writes_headerless_csv_record(tmp_path: Path):
    db_path = tmp_path / "rotsniff.db"
    index = FingerprintIndex({"/some/path": _fp(b"hello world")})

    index.save(db_path)

    with gzip.open(db_path, 'rt', encoding='utf-8', newline='') as handle:
        assert handle.read() == HELLO_WORLD_RECORD


def test_load_reads_record(tmp_path: Path):
    db_path = tmp_path / "rotsniff.db"
    _write_gzip(db_path, HELLO_WORLD_RECORD)

    index = FingerprintIndex.load(db_path)

    assert len(index) == 1
    assert index.get("/some/path") == _fp(b"hello world")
    assert index.get("/other/path") is None


def test_save_then_load_round_trips_entries(tmp_path: Path):
    db_path = tmp_path / "rotsniff.db"
    entries = {
        "/data/a.txt": _fp(b"a"),
        "relative/b.bin": _fp(b"b"),
        "/data/with,comma.txt": _fp(b"c"),
        '/data/with "quotes".txt': _fp(b"d"),
        "/data/with\nnewline.txt": _fp(b"e"),
        "/data/with\rcarriage.txt": _fp(b"cr"),
        "/data/with\r\ncrlf.txt": _fp(b"crlf"),
        "/data/bad\udcff.txt": _fp(b"not utf-8"),
        "/data/ünïcode.txt": _fp(b"f"),
    }

    FingerprintIndex(entries).save(db_path)
    loaded = FingerprintIndex.load(db_path)

    assert dict(loaded.items()) == entries


def test_save_is_deterministic_and_leaves_no_temp_files(tmp_path: Path):
    db_path = tmp_path / "rotsniff.db"
    entries = {f"/data/{i}.txt": _fp(str(i).encode()) for i in range(20)}

    FingerprintIndex(entries).save(db_path)
    first = db_path.read_bytes()
    FingerprintIndex(dict(reversed(list(entries.items())))).save(db_path)

    assert db_path.read_bytes() == first
    assert [p.name for p in tmp_path.iterdir()] == ["rotsniff.db"]


def test_load_accepts_lowercase_fingerprint(tmp_path: Path):
    db_path = tmp_path / "rotsniff.db"
    _write_gzip(db_path, HELLO_WORLD_RECORD.lower())

    index = FingerprintIndex.load(db_path)

    assert index.get("/some/path") == _fp(b"hello world")


@pytest.mark.parametrize(
    "text",
    [
        "/some/path\n",
        "/some/path,blake2b:ABC\n",
        "/some/path,sha256:" + "A" * 128 + "\n",
        "/some/path,blake2b:" + "A" * 128 + ",extra\n",
        HELLO_WORLD_RECORD + "/broken,not-a-hash\n",
    ],
)
def test_load_rejects_malformed_records(tmp_path: Path, text: str):
    db_path = tmp_path / "rotsniff.db"
    _write_gzip(db_path, text)

    with pytest.raises(IndexLoadError):
        FingerprintIndex.load(db_path)


def test_load_rejects_uncompressed_file(tmp_path: Path):
    db_path = tmp_path / "rotsniff.db"
    db_path.write_text(HELLO_WORLD_RECORD, encoding='utf-8')

    with pytest.raises(IndexLoadError):
        FingerprintIndex.load(db_path)


def test_load_rejects_corrupt_compressed_data(tmp_path: Path):
    db_path = tmp_path / "rotsniff.db"
    entries = {f"/data/{i}.txt": _fp(str(i).encode()) for i in range(50)}
    FingerprintIndex(entries).save(db_path)
    data = bytearray(db_path.read_bytes())
    for i in range(20, 60):
        data[i] ^= 0xFF
    db_path.write_bytes(bytes(data))

    with pytest.raises(IndexLoadError):
        FingerprintIndex.load(db_path)


def test_load_rejects_truncated_file(tmp_path: Path):
    db_path = tmp_path / "rotsniff.db"
    entries = {f"/data/{i}.txt": _fp(str(i).encode()) for i in range(50)}
    FingerprintIndex(entries).save(db_path)
    data = db_path.read_bytes()
    db_path.write_bytes(data[: len(data) // 2])

    with pytest.raises(IndexLoadError):
        FingerprintIndex.load(db_path)


def test_extend_overwrites_and_last_duplicate_wins():
    index = FingerprintIndex({"/a": _fp(b"old")})

    index.extend([("/a", _fp(b"first")), ("/b", _fp(b"b")), ("/a", _fp(b"second"))])

    assert index.get("/a") == _fp(b"second")
    assert index.get("/b") == _fp(b"b")
    assert len(index) == 2


def test_retain_drops_entries_failing_predicate():
    index = FingerprintIndex({"/keep": _fp(b"1"), "/drop": _fp(b"2")})

    index.retain(lambda path: path != "/drop")

    assert "/keep" in index
    assert "/drop" not in index


def test_snapshot_is_read_only_and_detached():
    index = FingerprintIndex({"/a": _fp(b"a")})
    snapshot = index.snapshot()

    with pytest.raises(TypeError):
        snapshot["/b"] = _fp(b"b")  # type: ignore[index]

    index.extend([("/b", _fp(b"b"))])
    assert "/b" not in snapshot
