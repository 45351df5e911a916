"""Error categories and classification of model-backend failures."""

from __future__ import annotations

import asyncio
from enum import Enum

import httpx
from google.genai import errors as genai_errors
from pydantic import BaseModel


class ErrorCategory(str, Enum):
    """Categories of errors for diagnostics."""

    CONFIG_MISSING_CREDENTIAL = "CONFIG_MISSING_CREDENTIAL"
    BACKEND_INIT_FAILED = "BACKEND_INIT_FAILED"
    API_PERMISSION_DENIED = "API_PERMISSION_DENIED"
    API_QUOTA_EXCEEDED = "API_QUOTA_EXCEEDED"
    API_INVALID_ARGUMENT = "API_INVALID_ARGUMENT"
    API_UNAVAILABLE = "API_UNAVAILABLE"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    UNKNOWN = "UNKNOWN"


class InvariantViolation(RuntimeError):
    """A programming invariant was broken.

    The only exception type allowed to escape the analysis core. Never raised
    for user input or network conditions.
    """


class MalformedResponseError(ValueError):
    """The backend answered, but the payload is unusable (no text, no candidates)."""


class BackendFailure(BaseModel):
    """Structured record of a failed backend call, used for logging."""

    error: str
    category: str
    hint: str
    retryable: bool = False


_HINTS: dict[ErrorCategory, str] = {
    ErrorCategory.CONFIG_MISSING_CREDENTIAL: "Set GEMINI_API_KEY to enable the live model backend",
    ErrorCategory.BACKEND_INIT_FAILED: "Gemini client could not be created — check GEMINI_API_KEY",
    ErrorCategory.API_PERMISSION_DENIED: "API key rejected or lacks permission for this model",
    ErrorCategory.API_QUOTA_EXCEEDED: "Rate limit hit — wait and retry, or lower request volume",
    ErrorCategory.API_INVALID_ARGUMENT: "Bad request — check GEMINI_MODEL and prompt size",
    ErrorCategory.API_UNAVAILABLE: "Gemini service unavailable — retry later",
    ErrorCategory.NETWORK_ERROR: "Network failure reaching Gemini — check connectivity",
    ErrorCategory.TIMEOUT: "Request timed out — raise GEMINI_TIMEOUT_SECONDS or retry",
    ErrorCategory.MALFORMED_RESPONSE: "Model returned no usable text",
}

_RETRYABLE = {
    ErrorCategory.API_QUOTA_EXCEEDED,
    ErrorCategory.API_UNAVAILABLE,
    ErrorCategory.NETWORK_ERROR,
    ErrorCategory.TIMEOUT,
}


def hint_for(category: ErrorCategory) -> str:
    """Operator hint for *category*; empty for ``UNKNOWN``."""
    return _HINTS.get(category, "")


def _categorize_status(code: int) -> ErrorCategory:
    if code in (401, 403):
        return ErrorCategory.API_PERMISSION_DENIED
    if code == 429:
        return ErrorCategory.API_QUOTA_EXCEEDED
    if 400 <= code < 500:
        return ErrorCategory.API_INVALID_ARGUMENT
    if code >= 500:
        return ErrorCategory.API_UNAVAILABLE
    return ErrorCategory.UNKNOWN


def categorize_error(error: BaseException) -> tuple[ErrorCategory, str]:
    """Map an exception to an ErrorCategory + human-readable hint."""
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException)):
        cat = ErrorCategory.TIMEOUT
    elif isinstance(error, httpx.TransportError):
        cat = ErrorCategory.NETWORK_ERROR
    elif isinstance(error, MalformedResponseError):
        cat = ErrorCategory.MALFORMED_RESPONSE
    elif isinstance(error, genai_errors.APIError) and isinstance(error.code, int):
        cat = _categorize_status(error.code)
    else:
        cat = _categorize_message(str(error).lower())

    if cat is ErrorCategory.UNKNOWN:
        return cat, str(error) or type(error).__name__
    return cat, _HINTS[cat]


def _categorize_message(s: str) -> ErrorCategory:
    if "401" in s or "403" in s or "permission" in s or "api key not valid" in s:
        return ErrorCategory.API_PERMISSION_DENIED
    if "429" in s or "quota" in s or "resource_exhausted" in s:
        return ErrorCategory.API_QUOTA_EXCEEDED
    if "timeout" in s or "timed out" in s:
        return ErrorCategory.TIMEOUT
    if "503" in s or "unavailable" in s:
        return ErrorCategory.API_UNAVAILABLE
    if "400" in s or "invalid_argument" in s:
        return ErrorCategory.API_INVALID_ARGUMENT
    if "connect" in s or "network" in s:
        return ErrorCategory.NETWORK_ERROR
    return ErrorCategory.UNKNOWN


def describe_failure(error: BaseException) -> BackendFailure:
    """Build a :class:`BackendFailure` record from an exception."""
    cat, hint = categorize_error(error)
    return BackendFailure(
        error=str(error) or type(error).__name__,
        category=cat.value,
        hint=hint,
        retryable=cat in _RETRYABLE,
    )
