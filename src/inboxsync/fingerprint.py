"""Content fingerprinting.

A fingerprint is the idempotency key for an inbox item: the SHA-256 of a
canonical serialization of the item's normalized content, its project id,
and a schema version. Whitespace and line-ending noise never changes it.
"""

import hashlib
import json
import unicodedata

from .db.schemas import InboxItem

FINGERPRINT_VERSION = 1


def normalize_content(content: str) -> str:
    """Canonical form of raw content used for hashing and comparison."""
    if not content:
        return ""
    text = unicodedata.normalize("NFC", content)
    # Collapse every whitespace run (spaces, tabs, CR/LF, NBSP) to one space
    return " ".join(text.split())


def fingerprint_content(project_id: str, content: str) -> str:
    """Fingerprint raw content within a project."""
    canonical = json.dumps(
        {
            "v": FINGERPRINT_VERSION,
            "project": project_id,
            "content": normalize_content(content),
        },
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def fingerprint(item: InboxItem) -> str:
    """Compute the fingerprint of an inbox item."""
    return fingerprint_content(item.project_id, item.raw_content)
