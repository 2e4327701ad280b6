"""
Content fingerprints: BLAKE2b-512 digests of file contents and their text form.
"""

import hashlib
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Union


class HashAlgorithm(Enum):
    """Supported digest algorithms, valued by their text tag."""
    BLAKE2B512 = "blake2b"


DIGEST_SIZE = 64
BLOCK_SIZE = hashlib.blake2b().block_size
CHUNK_SIZE = BLOCK_SIZE * 8192

_TEXT_PATTERN = re.compile(r"(?P<tag>[^:]*):(?P<hex>[0-9A-Fa-f]{128})")


class FingerprintFormatError(ValueError):
    """Raised when fingerprint text does not look like ``blake2b:<128 hex digits>``."""


@dataclass(frozen=True)
class Fingerprint:
    """A digest of a file's content, tagged with the algorithm that produced it."""
    algorithm: HashAlgorithm
    digest: bytes

    def __post_init__(self) -> None:
        if len(self.digest) != DIGEST_SIZE:
            raise ValueError(
                f"{self.algorithm.value} digest must be {DIGEST_SIZE} bytes, got {len(self.digest)}"
            )

    def __str__(self) -> str:
        return f"{self.algorithm.value}:{self.digest.hex().upper()}"

    @classmethod
    def parse(cls, text: str) -> "Fingerprint":
        """Decode the ``<tag>:<hex>`` form written by ``str()``.

        Hex digits may be in either case; the tag must be known and the
        digest must be exactly 128 hex characters.
        """
        match = _TEXT_PATTERN.fullmatch(text)
        if match is None:
            raise FingerprintFormatError(
                f"Invalid fingerprint {text!r}: expected 'blake2b:' followed by 128 hex digits"
            )
        try:
            algorithm = HashAlgorithm(match.group("tag"))
        except ValueError:
            raise FingerprintFormatError(
                f"Unsupported hash algorithm {match.group('tag')!r} in {text!r}"
            ) from None
        return cls(algorithm=algorithm, digest=bytes.fromhex(match.group("hex")))


def compute_fingerprint(file_path: Union[str, Path], chunk_size: int = CHUNK_SIZE) -> Fingerprint:
    """Compute the BLAKE2b-512 fingerprint of a file.

    Raises OSError; a file that no longer exists raises FileNotFoundError.
    """
    hasher = hashlib.blake2b(digest_size=DIGEST_SIZE)
    with open(file_path, 'rb') as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b''):
            hasher.update(chunk)
    return Fingerprint(algorithm=HashAlgorithm.BLAKE2B512, digest=hasher.digest())
