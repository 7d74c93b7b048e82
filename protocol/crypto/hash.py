# MIT License
# Copyright (c) 2025 Hashborn

import hashlib


def sha256(data: bytes) -> bytes:
    """Returns SHA256 hash of bytes."""
    return hashlib.sha256(data).digest()


def content_key(raw_address: bytes) -> bytes:
    """Deduplication key of an address: SHA256 over its binary form."""
    return sha256(raw_address)
