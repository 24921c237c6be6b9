"""Classification result and the provider capability interface."""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from ..errors import ClassificationError

MAX_TAGS = 10


@dataclass
class ClassificationResult:
    """Title, tags and extra properties derived from an inbox item."""

    title: str
    tags: list[str] = field(default_factory=list)
    properties: dict[str, Any] = field(default_factory=dict)
    provider: str = "passthrough"


@runtime_checkable
class ClassificationProvider(Protocol):
    """An AI backend able to classify raw content."""

    name: str

    async def classify(self, content: str) -> ClassificationResult:
        """Classify content, raising ClassificationError on any failure."""
        ...


_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


def parse_classification(text: str, provider: str) -> ClassificationResult:
    """Parse a provider's JSON reply into a ClassificationResult."""
    text = _FENCE_RE.sub("", (text or "").strip())
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ClassificationError(f"{provider} returned invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ClassificationError(f"{provider} returned {type(data).__name__}, expected object")

    title = str(data.get("title") or "").strip()
    if not title:
        raise ClassificationError(f"{provider} returned no title")

    tags = data.get("tags") or []
    if not isinstance(tags, list):
        tags = [tags]
    # Notion multi-select options cannot contain commas
    tags = [str(t).replace(",", " ").strip() for t in tags if str(t).strip()][:MAX_TAGS]

    properties = data.get("properties") or {}
    if not isinstance(properties, dict):
        properties = {}

    return ClassificationResult(
        title=title,
        tags=tags,
        properties=properties,
        provider=provider,
    )
