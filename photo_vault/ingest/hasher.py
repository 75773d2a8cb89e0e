from __future__ import annotations

import hashlib
from pathlib import Path
from typing import BinaryIO

FINGERPRINT_ALGO = "sha256"
FINGERPRINT_LENGTH = 64
_HEX_DIGITS = frozenset("0123456789abcdef")


def compute_fingerprint(data: bytes) -> str:
    """Return the SHA-256 hex digest of an in-memory payload."""
    return hashlib.sha256(data).hexdigest()


def hash_stream(stream: BinaryIO, chunk_size: int = 1024 * 1024) -> str:
    digest = hashlib.sha256()
    for chunk in iter(lambda: stream.read(chunk_size), b""):
        digest.update(chunk)
    return digest.hexdigest()


def hash_file(path: Path, chunk_size: int = 1024 * 1024) -> str:
    with path.open("rb") as infile:
        return hash_stream(infile, chunk_size=chunk_size)


def is_fingerprint(value: str) -> bool:
    return len(value) == FINGERPRINT_LENGTH and all(ch in _HEX_DIGITS for ch in value.lower())
