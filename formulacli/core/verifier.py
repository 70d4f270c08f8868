#!/usr/bin/env python3

import hashlib

from .errors import IntegrityError

CHUNK_SIZE = 65536


def sha256_file(path: str) -> str:
    """Calculate the SHA-256 of a file's full content"""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        while True:
            data = f.read(CHUNK_SIZE)
            if not data:
                break
            digest.update(data)
    return digest.hexdigest()


def verify(path: str, expected: str) -> str:
    """Return ``path`` if its content hashes to ``expected``, else raise IntegrityError"""
    actual = sha256_file(path)
    if actual != expected.lower():
        raise IntegrityError(path, expected, actual)
    return path
