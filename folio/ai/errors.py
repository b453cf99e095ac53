"""Shared error classification helpers for AI provider handling."""

from __future__ import annotations

from collections.abc import Iterable

import httpx
import openai

# Status codes worth another attempt: timeouts, conflicts, rate limits and upstream failures.
_RETRYABLE_STATUS: frozenset[int] = frozenset({408, 409, 425, 429})

_RETRYABLE_HINTS: tuple[str, ...] = (
  "429",
  "500",
  "502",
  "503",
  "504",
  "rate limit",
  "too many requests",
  "resource exhausted",
  "quota exceeded",
  "overloaded",
  "timeout",
  "timed out",
  "network",
  "connection",
  "temporarily unavailable",
  "service unavailable",
  "bad gateway",
  "empty response",
)

_FATAL_HINTS: tuple[str, ...] = (
  "401",
  "403",
  "unauthorized",
  "forbidden",
  "invalid api key",
  "incorrect api key",
  "api key is required",
  "permission denied",
  "model not found",
  "unsupported model",
  "invalid request",
  "malformed",
)


class ProviderCallError(RuntimeError):
  """A provider call failure tagged as retryable or fatal."""

  def __init__(self, message: str, *, retryable: bool, status_code: int | None = None) -> None:
    super().__init__(message)
    self.retryable = retryable
    self.status_code = status_code


def _match_hint(message: str, hints: Iterable[str]) -> bool:
  """Return True when any hint appears in the message."""
  return any(hint in message for hint in hints)


def _status_code(exc: BaseException) -> int | None:
  if isinstance(exc, httpx.HTTPStatusError):
    return exc.response.status_code
  # openai exposes status_code; google-genai exposes code.
  for attr in ("status_code", "code"):
    value = getattr(exc, attr, None)
    if isinstance(value, int):
      return value
  return None


def is_retryable_status(status_code: int) -> bool:
  return status_code in _RETRYABLE_STATUS or status_code >= 500


def classify_exception(exc: BaseException) -> ProviderCallError:
  """Normalize any provider exception into a ProviderCallError."""
  if isinstance(exc, ProviderCallError):
    return exc

  message = str(exc) or type(exc).__name__

  # Transport-level failures never reached the model, so they are always worth retrying.
  if isinstance(exc, openai.APIConnectionError | httpx.TransportError | TimeoutError):
    return ProviderCallError(message, retryable=True)

  status_code = _status_code(exc)
  if status_code is not None and 400 <= status_code < 600:
    return ProviderCallError(message, retryable=is_retryable_status(status_code), status_code=status_code)

  # Missing credentials surface as ValueError when the client is built.
  if isinstance(exc, ValueError):
    return ProviderCallError(message, retryable=False)

  lowered = message.lower()
  if _match_hint(lowered, _FATAL_HINTS):
    return ProviderCallError(message, retryable=False)
  if _match_hint(lowered, _RETRYABLE_HINTS):
    return ProviderCallError(message, retryable=True)
  return ProviderCallError(message, retryable=False)
