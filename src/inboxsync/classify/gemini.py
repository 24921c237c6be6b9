"""Google Gemini provider."""

import google.generativeai as genai

from ..errors import ClassificationError
from .base import ClassificationResult, parse_classification
from .prompts import SYSTEM_PROMPT, build_prompt


class GeminiProvider:
    """Classifies content with a Gemini model."""

    name = "gemini"

    def __init__(self, api_key: str, model: str = "gemini-1.5-pro"):
        if not api_key:
            raise ValueError("Gemini API key is required")
        # The SDK keeps the key in module state
        genai.configure(api_key=api_key)
        self.model_name = model
        self._model = genai.GenerativeModel(model, system_instruction=SYSTEM_PROMPT)

    async def close(self) -> None:
        pass

    async def classify(self, content: str) -> ClassificationResult:
        try:
            response = await self._model.generate_content_async(
                build_prompt(content),
                generation_config={"response_mime_type": "application/json"},
            )
            text = response.text
        except Exception as e:
            # The SDK raises google.api_core exceptions and ValueError for blocked replies
            raise ClassificationError(f"Gemini request failed: {e}") from e

        return parse_classification(text, self.name)
