"""Deterministic fallback used when no AI classification is available."""

from .base import ClassificationResult

MAX_TITLE_LENGTH = 100
UNTITLED = "Untitled"


def passthrough_title(content: str) -> str:
    """First non-empty line, whitespace collapsed, truncated to 100 chars."""
    for line in (content or "").splitlines():
        title = " ".join(line.split())
        if title:
            if len(title) > MAX_TITLE_LENGTH:
                return title[: MAX_TITLE_LENGTH - 3].rstrip() + "..."
            return title
    return UNTITLED


def passthrough(content: str) -> ClassificationResult:
    return ClassificationResult(title=passthrough_title(content))
