from __future__ import annotations

import httpx
import openai
import pytest

from folio.ai.errors import ProviderCallError, classify_exception


class StatusError(Exception):
  def __init__(self, message: str, status_code: int) -> None:
    super().__init__(message)
    self.status_code = status_code


@pytest.mark.parametrize("status_code", [408, 409, 425, 429, 500, 502, 503])
def test_transient_status_codes_are_retryable(status_code: int) -> None:
  error = classify_exception(StatusError("upstream", status_code))

  assert error.retryable is True
  assert error.status_code == status_code


@pytest.mark.parametrize("status_code", [400, 401, 403, 404, 422])
def test_client_errors_are_fatal(status_code: int) -> None:
  assert classify_exception(StatusError("bad request", status_code)).retryable is False


def test_http_status_error_uses_response_code() -> None:
  request = httpx.Request("POST", "https://example.invalid/v1/chat")
  response = httpx.Response(429, request=request)
  error = classify_exception(httpx.HTTPStatusError("Too Many Requests", request=request, response=response))

  assert error.retryable is True
  assert error.status_code == 429


def test_transport_failures_are_retryable() -> None:
  request = httpx.Request("POST", "https://example.invalid/v1/chat")

  assert classify_exception(httpx.ReadTimeout("read timed out", request=request)).retryable is True
  assert classify_exception(openai.APIConnectionError(request=request)).retryable is True
  assert classify_exception(TimeoutError()).retryable is True


def test_missing_credentials_are_fatal() -> None:
  assert classify_exception(ValueError("OPENAI_API_KEY is required")).retryable is False


def test_message_hints_decide_untyped_errors() -> None:
  assert classify_exception(RuntimeError("Resource exhausted, try later")).retryable is True
  assert classify_exception(RuntimeError("Permission denied for this connection")).retryable is False
  assert classify_exception(RuntimeError("something odd")).retryable is False


def test_provider_call_errors_pass_through() -> None:
  original = ProviderCallError("already classified", retryable=True)

  assert classify_exception(original) is original
