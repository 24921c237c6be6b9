"""Anthropic Messages API provider."""

from typing import Optional

import httpx

from ..errors import ClassificationError
from .base import ClassificationResult, parse_classification
from .prompts import SYSTEM_PROMPT, build_prompt

ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider:
    """Classifies content with Claude over the Messages API."""

    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        timeout: float = 30.0,
        max_tokens: int = 512,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise ValueError("Anthropic API key is required")
        self.model = model
        self.max_tokens = max_tokens
        self._owns_client = http_client is None
        self.client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._headers = {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self.client.aclose()

    async def classify(self, content: str) -> ClassificationResult:
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": build_prompt(content)}],
        }
        try:
            response = await self.client.post(
                ANTHROPIC_API_URL, json=payload, headers=self._headers
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ClassificationError(
                f"Anthropic API error {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ClassificationError(f"Anthropic request failed: {e}") from e

        blocks = data.get("content") if isinstance(data, dict) else None
        if not isinstance(blocks, list):
            raise ClassificationError("Anthropic response has no content blocks")

        text = "".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
        return parse_classification(text, self.name)
