"""Content classification.

Two interchangeable AI providers behind one capability interface, a
deterministic passthrough fallback, and a non-blocking call budget.
"""

from .anthropic import AnthropicProvider
from .base import ClassificationProvider, ClassificationResult, parse_classification
from .budget import RateBudget
from .classifier import Classifier, build_classifier, build_providers
from .gemini import GeminiProvider
from .passthrough import passthrough, passthrough_title

__all__ = [
    "AnthropicProvider",
    "GeminiProvider",
    "ClassificationProvider",
    "ClassificationResult",
    "parse_classification",
    "RateBudget",
    "Classifier",
    "build_classifier",
    "build_providers",
    "passthrough",
    "passthrough_title",
]
