"""Content hashing for change detection."""

import xxhash


def compute_hash(text: str) -> str:
    """Compute the xxhash64 digest of text content.

    Args:
        text: Text to hash

    Returns:
        Hex-encoded hash string
    """
    return xxhash.xxh64(text.encode("utf-8")).hexdigest()
