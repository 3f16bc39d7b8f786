"""SHA-256 content hashing for cache keys and change detection"""

import hashlib


def sha256(content: str) -> str:
    """Return hex-encoded SHA-256 hash of content (64 chars)."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def short_hash(content: str, length: int = 8) -> str:
    """Return the first `length` hex chars of the SHA-256 of content."""
    return sha256(content)[:length]
