"""Gemini provider implementation using the google-genai SDK."""

from __future__ import annotations

import logging
from typing import Final

from google import genai
from google.genai import types

from folio.ai.providers.base import AIModel, ModelResponse, Provider, SimpleModelResponse
from folio.ai.providers.openai_provider import SYSTEM_PROMPT


class GeminiModel(AIModel):
  """Gemini model client."""

  provider = "gemini"

  def __init__(self, name: str, api_key: str | None, *, max_output_tokens: int = 8192) -> None:
    if not api_key:
      raise ValueError("GEMINI_API_KEY is required for the gemini provider.")
    self.name: str = name
    self._client = genai.Client(api_key=api_key)
    self._config = types.GenerateContentConfig(system_instruction=SYSTEM_PROMPT, max_output_tokens=max_output_tokens, temperature=0.7)

  async def generate(self, prompt: str) -> ModelResponse:
    """Generate text response from Gemini."""
    logger = logging.getLogger("folio.ai.providers.gemini")

    # Use the async client to avoid blocking the asyncio event loop.
    response = await self._client.aio.models.generate_content(model=self.name, contents=prompt, config=self._config)

    content = response.text or ""
    logger.debug("gemini response from %s (%d chars)", self.name, len(content))
    usage = None

    if response.usage_metadata:
      usage = {"prompt_tokens": response.usage_metadata.prompt_token_count or 0, "completion_tokens": response.usage_metadata.candidates_token_count or 0, "total_tokens": response.usage_metadata.total_token_count or 0}
    return SimpleModelResponse(content=content, usage=usage)

  async def aclose(self) -> None:
    await self._client.aio.aclose()


class GeminiProvider(Provider):
  """Gemini provider."""

  name = "gemini"
  _DEFAULT_MODEL: Final[str] = "gemini-2.5-flash"

  def __init__(self, api_key: str | None) -> None:
    self._api_key = api_key

  def get_model(self, model: str | None = None) -> AIModel:
    return GeminiModel(model or self._DEFAULT_MODEL, self._api_key)
