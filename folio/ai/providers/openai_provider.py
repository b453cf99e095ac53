"""OpenAI provider implementation using the openai SDK."""

from __future__ import annotations

import logging
from typing import Any, Final

from openai import AsyncOpenAI

from folio.ai.providers.base import AIModel, ModelResponse, Provider, SimpleModelResponse

SYSTEM_PROMPT: Final[str] = "You are a professional ebook writer. Write high-quality, engaging, well-structured content in Markdown."


class OpenAIChatModel(AIModel):
  """Chat-completions client shared by OpenAI and OpenAI-compatible gateways."""

  provider = "openai"

  def __init__(self, name: str, api_key: str | None, *, base_url: str | None = None, default_headers: dict[str, str] | None = None, max_tokens: int = 4000, temperature: float = 0.7) -> None:
    if not api_key:
      raise ValueError(f"An API key is required for the {self.provider} provider.")
    self.name: str = name
    self._max_tokens = max_tokens
    self._temperature = temperature
    # SDK-level retries are disabled; the executor owns retry policy.
    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, default_headers=default_headers or None, max_retries=0)

  async def generate(self, prompt: str) -> ModelResponse:
    """Generate text with a single chat completion."""
    logger = logging.getLogger(f"folio.ai.providers.{self.provider}")
    messages: list[Any] = [{"role": "system", "content": SYSTEM_PROMPT}, {"role": "user", "content": prompt}]
    response = await self._client.chat.completions.create(model=self.name, messages=messages, max_tokens=self._max_tokens, temperature=self._temperature)

    content = ""
    if response.choices:
      content = response.choices[0].message.content or ""
    logger.debug("%s response from %s (%d chars)", self.provider, self.name, len(content))
    usage = None

    if response.usage:
      usage = {"prompt_tokens": response.usage.prompt_tokens, "completion_tokens": response.usage.completion_tokens, "total_tokens": response.usage.total_tokens}

    return SimpleModelResponse(content=content, usage=usage)

  async def aclose(self) -> None:
    await self._client.close()


class OpenAIProvider(Provider):
  """OpenAI provider."""

  name = "openai"
  _DEFAULT_MODEL: Final[str] = "gpt-4o-mini"

  def __init__(self, api_key: str | None) -> None:
    self._api_key = api_key

  def get_model(self, model: str | None = None) -> AIModel:
    return OpenAIChatModel(model or self._DEFAULT_MODEL, self._api_key)
