"""AI-assisted classification with provider fallback.

Providers are tried in priority order. A provider failure, a timeout or
an exhausted call budget never fails the item: the passthrough
transform is used instead.
"""

import asyncio
from typing import Optional, Sequence

from loguru import logger

from ..config import Config
from ..db.schemas import InboxItem
from ..errors import ClassificationError
from .anthropic import AnthropicProvider
from .base import ClassificationProvider, ClassificationResult
from .budget import RateBudget
from .gemini import GeminiProvider
from .passthrough import passthrough


class Classifier:
    """Enriches inbox items with a title, tags and properties."""

    def __init__(
        self,
        providers: Sequence[ClassificationProvider] = (),
        max_calls_per_run: Optional[int] = None,
        max_calls_per_minute: Optional[int] = None,
        timeout: float = 30.0,
        budget: Optional[RateBudget] = None,
    ):
        self.providers = list(providers)
        self.timeout = timeout
        self.budget = budget or RateBudget(max_calls_per_run, max_calls_per_minute)
        self._budget_warned = False

    @property
    def enabled(self) -> bool:
        return bool(self.providers)

    def begin_run(self) -> None:
        """Reset the per-run call allowance."""
        self.budget.reset()
        self._budget_warned = False

    async def classify(self, item: InboxItem, use_ai: bool = True) -> ClassificationResult:
        if not use_ai or not self.providers:
            return passthrough(item.raw_content)

        for provider in self.providers:
            if not self.budget.try_acquire():
                if not self._budget_warned:
                    logger.warning("Classifier call budget exhausted, using passthrough")
                    self._budget_warned = True
                break

            try:
                return await asyncio.wait_for(
                    provider.classify(item.raw_content), timeout=self.timeout
                )
            except ClassificationError as e:
                logger.warning(f"{provider.name} failed for item {item.id}: {e}")
            except asyncio.TimeoutError:
                logger.warning(
                    f"{provider.name} timed out after {self.timeout}s for item {item.id}"
                )
            except Exception as e:
                logger.exception(f"{provider.name} raised unexpectedly for item {item.id}: {e}")

        return passthrough(item.raw_content)

    async def aclose(self) -> None:
        for provider in self.providers:
            close = getattr(provider, "close", None)
            if close is not None:
                await close()


def build_providers(config: Config) -> list[ClassificationProvider]:
    """Instantiate the configured providers in priority order."""
    providers: list[ClassificationProvider] = []
    for name in config.configured_providers():
        if name == "anthropic":
            providers.append(
                AnthropicProvider(
                    config.anthropic_api_key,
                    model=config.anthropic_model,
                    timeout=config.classifier_timeout,
                )
            )
        elif name == "gemini":
            providers.append(GeminiProvider(config.gemini_api_key, model=config.gemini_model))
    return providers


def build_classifier(config: Config) -> Classifier:
    providers = build_providers(config)
    if not providers:
        logger.info("No AI provider configured, classification uses passthrough")
    return Classifier(
        providers,
        max_calls_per_run=config.classifier_max_calls,
        max_calls_per_minute=config.classifier_max_per_minute,
        timeout=config.classifier_timeout,
    )
