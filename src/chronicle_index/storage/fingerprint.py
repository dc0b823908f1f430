"""Content fingerprints for change detection."""
import hashlib
from typing import Optional

# 8-byte digest, rendered as 16 hex characters
DIGEST_SIZE = 8


def content_fingerprint(content: str) -> str:
    """Short, deterministic fingerprint of a note's text (not cryptographic)."""
    return hashlib.blake2b(content.encode("utf-8"), digest_size=DIGEST_SIZE).hexdigest()


def has_changed(content: str, stored_fingerprint: Optional[str]) -> bool:
    """True when ``content`` no longer matches ``stored_fingerprint``.

    A missing stored fingerprint always counts as changed.
    """
    if stored_fingerprint is None:
        return True
    return content_fingerprint(content) != stored_fingerprint
