"""OpenRouter provider implementation using the openai SDK."""

from __future__ import annotations

from typing import Final

from folio.ai.providers.base import AIModel, Provider
from folio.ai.providers.openai_provider import OpenAIChatModel

OPENROUTER_BASE_URL: Final[str] = "https://openrouter.ai/api/v1"


class OpenRouterModel(OpenAIChatModel):
  """OpenRouter speaks the OpenAI chat API; only the endpoint and attribution headers differ."""

  provider = "openrouter"

  def __init__(self, name: str, api_key: str | None, *, referer: str | None = None, title: str | None = None) -> None:
    default_headers: dict[str, str] = {}
    if referer:
      default_headers["HTTP-Referer"] = referer
    if title:
      default_headers["X-Title"] = title
    super().__init__(name, api_key, base_url=OPENROUTER_BASE_URL, default_headers=default_headers)


class OpenRouterProvider(Provider):
  """OpenRouter provider."""

  name = "openrouter"
  _DEFAULT_MODEL: Final[str] = "openai/gpt-4o-mini"

  def __init__(self, api_key: str | None, *, referer: str | None = None, title: str | None = None) -> None:
    self._api_key = api_key
    self._referer = referer
    self._title = title

  def get_model(self, model: str | None = None) -> AIModel:
    return OpenRouterModel(model or self._DEFAULT_MODEL, self._api_key, referer=self._referer, title=self._title)
