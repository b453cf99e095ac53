"""Bounded retry with exponential backoff and one cross-provider fallback."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from folio.ai.errors import ProviderCallError, classify_exception
from folio.ai.providers.base import AIModel, ModelResponse
from folio.ai.router import ProviderRoute
from folio.config import Settings

logger = logging.getLogger(__name__)

ModelResolver = Callable[[ProviderRoute], AIModel]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
  """Attempt budget and backoff schedule applied to each provider route."""

  max_attempts: int = 4
  base_delay_seconds: float = 1.0
  max_delay_seconds: float = 30.0
  timeout_seconds: float | None = None

  @classmethod
  def from_settings(cls, settings: Settings) -> RetryPolicy:
    return cls(max_attempts=settings.max_attempts, base_delay_seconds=settings.retry_base_delay_seconds, max_delay_seconds=settings.retry_max_delay_seconds, timeout_seconds=settings.provider_timeout_seconds)

  def backoff_delay(self, retry_number: int) -> float:
    """Delay before the given retry (1-based): base, 2x base, 4x base, capped."""
    return min(self.base_delay_seconds * (2 ** (retry_number - 1)), self.max_delay_seconds)


@dataclass(frozen=True)
class CallAttempt:
  """One provider call made by the executor."""

  route: ProviderRoute
  number: int
  error: str | None = None
  retryable: bool | None = None

  @property
  def ok(self) -> bool:
    return self.error is None


@dataclass(frozen=True)
class ExecutorResult:
  """Successful outcome of an executor call."""

  text: str
  route: ProviderRoute
  attempts: tuple[CallAttempt, ...]
  usage: dict[str, int] | None = None
  used_fallback: bool = False


@dataclass(frozen=True)
class ExecutorError:
  """Every route was exhausted; carries the last failure message."""

  message: str
  attempts: tuple[CallAttempt, ...]


ExecutorOutcome = ExecutorResult | ExecutorError


class RetryFallbackExecutor:
  """Wrap provider calls with retry and fallback; never raises past this boundary.

  Failures are classified as retryable or fatal. Retryable failures are retried
  up to ``policy.max_attempts`` per route with doubling delays; fatal failures
  end the current route at once. When the primary route is exhausted and a
  fallback route is given, the same prompt is issued against it under the same
  policy. Only task cancellation propagates.
  """

  def __init__(self, resolve_model: ModelResolver, policy: RetryPolicy, *, sleep: Sleep = asyncio.sleep) -> None:
    self._resolve_model = resolve_model
    self._policy = policy
    self._sleep = sleep

  @property
  def policy(self) -> RetryPolicy:
    return self._policy

  async def execute(self, prompt: str, *, primary: ProviderRoute, fallback: ProviderRoute | None = None, label: str = "call") -> ExecutorOutcome:
    attempts: list[CallAttempt] = []
    routes = [primary]
    if fallback is not None and fallback != primary:
      routes.append(fallback)

    last_error = "No provider route was attempted."
    for position, route in enumerate(routes):
      if position > 0:
        logger.warning("%s: primary route %s exhausted; falling back to %s", label, primary.label(), route.label())
      outcome = await self._run_route(prompt, route, attempts, label)
      if not isinstance(outcome, ProviderCallError):
        return ExecutorResult(text=outcome.content, route=route, attempts=tuple(attempts), usage=outcome.usage, used_fallback=position > 0)
      last_error = f"{route.provider.value}: {outcome}"

    logger.error("%s: all provider routes exhausted after %d attempts: %s", label, len(attempts), last_error)
    return ExecutorError(message=last_error, attempts=tuple(attempts))

  async def _run_route(self, prompt: str, route: ProviderRoute, attempts: list[CallAttempt], label: str) -> ModelResponse | ProviderCallError:
    error = ProviderCallError("No attempts allowed by policy.", retryable=False)
    for number in range(1, self._policy.max_attempts + 1):
      try:
        response = await self._call(route, prompt)
      except Exception as exc:  # noqa: BLE001
        error = classify_exception(exc)
        attempts.append(CallAttempt(route=route, number=number, error=str(error), retryable=error.retryable))
        if not error.retryable:
          logger.warning("%s: fatal error from %s on attempt %d: %s", label, route.label(), number, error)
          return error
        if number < self._policy.max_attempts:
          delay = self._policy.backoff_delay(number)
          logger.warning("%s: retryable error from %s on attempt %d/%d: %s. Retrying in %.1fs", label, route.label(), number, self._policy.max_attempts, error, delay)
          await self._sleep(delay)
        continue

      attempts.append(CallAttempt(route=route, number=number))
      if number > 1:
        logger.info("%s: %s succeeded on attempt %d", label, route.label(), number)
      return response
    return error

  async def _call(self, route: ProviderRoute, prompt: str) -> ModelResponse:
    model = self._resolve_model(route)
    if self._policy.timeout_seconds is not None:
      response = await asyncio.wait_for(model.generate(prompt), timeout=self._policy.timeout_seconds)
    else:
      response = await model.generate(prompt)
    if not (response.content or "").strip():
      raise ProviderCallError("Provider returned an empty response.", retryable=True)
    return response
