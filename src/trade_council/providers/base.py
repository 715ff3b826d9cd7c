"""Provider adapter contract and failure taxonomy for trade-council.

Every failure a provider call can produce is reduced to an :class:`ErrorType`.
The type, not the exception class, decides which layer reacts: the retry
layer handles throttling, the health registry handles everything else.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any, ClassVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, model_validator


class ErrorType(str, Enum):
    """Classification of a failed provider call."""

    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"  # 429, retried with backoff
    RETRY_EXHAUSTED = "retry_exhausted"  # Still throttled after the last attempt
    BILLING = "billing"  # Quota or credits exhausted
    AUTH = "auth"  # Key missing, invalid or revoked
    MODEL_UNAVAILABLE = "model_unavailable"
    SERVER = "server"  # 5xx
    NETWORK = "network"
    MALFORMED = "malformed"  # Answer was not a usable analysis
    UNKNOWN = "unknown"


# Open the circuit on the first occurrence
CREDENTIAL_ERRORS = frozenset({ErrorType.BILLING, ErrorType.AUTH})

_STATUS_TYPES: Mapping[int, ErrorType] = {
    401: ErrorType.AUTH,
    402: ErrorType.BILLING,
    403: ErrorType.AUTH,
    404: ErrorType.MODEL_UNAVAILABLE,
    429: ErrorType.RATE_LIMIT,
}

# Checked in order. Quota exhaustion is often reported as a 429, so billing goes first.
_MESSAGE_RULES: tuple[tuple[ErrorType, tuple[str, ...]], ...] = (
    (
        ErrorType.BILLING,
        (
            "insufficient_quota",
            "insufficient balance",
            "insufficient credits",
            "exceeded your current quota",
            "billing",
            "credit",
            "payment",
            "account has been suspended",
            "upgrade your plan",
        ),
    ),
    (ErrorType.RATE_LIMIT, ("rate_limit", "rate limit", "too many requests", "429", "throttl")),
    (
        ErrorType.AUTH,
        (
            "invalid_api_key",
            "invalid api key",
            "incorrect api key",
            "api key not found",
            "unauthorized",
            "authentication",
            "permission denied",
            "401",
            "403",
        ),
    ),
    (
        ErrorType.MODEL_UNAVAILABLE,
        ("model_not_found", "model not found", "does not exist", "overloaded", "capacity"),
    ),
    (
        ErrorType.NETWORK,
        ("connection", "network", "dns", "socket", "econnrefused", "econnreset", "etimedout"),
    ),
)


class ProviderError(RuntimeError):
    """A provider call failed at the transport or HTTP level."""

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class MalformedResponseError(ValueError):
    """A provider answered, but not with a usable trading analysis."""


class RetryExhaustedError(RuntimeError):
    """A provider was still rate limited after the final backoff attempt."""

    def __init__(self, provider: str, attempts: int) -> None:
        super().__init__(f"{provider}: still rate limited after {attempts} attempt(s)")
        self.provider = provider
        self.attempts = attempts


def classify_error(error_text: str, status_code: int | None = None) -> ErrorType:
    """Map an HTTP status and/or error text to an :class:`ErrorType`.

    Quota wording in the text wins over a 4xx status (providers report an
    exhausted quota as 429); otherwise a known status code wins over the text.
    """
    text = (error_text or "").lower()
    billing_needles = _MESSAGE_RULES[0][1]
    if (status_code is None or status_code < 500) and any(n in text for n in billing_needles):
        return ErrorType.BILLING

    if status_code is not None:
        if status_code in _STATUS_TYPES:
            return _STATUS_TYPES[status_code]
        if status_code >= 500:
            return ErrorType.SERVER

    for error_type, needles in _MESSAGE_RULES[1:]:
        if any(needle in text for needle in needles):
            return error_type
    return ErrorType.UNKNOWN


def classify_exception(error: BaseException | str) -> ErrorType:
    """Classify an exception raised by a provider call.

    Typed exceptions are classified structurally; anything else falls back
    to :func:`classify_error` on its message.
    """
    if isinstance(error, str):
        return classify_error(error)
    if isinstance(error, RetryExhaustedError):
        return ErrorType.RETRY_EXHAUSTED
    if isinstance(error, MalformedResponseError):
        return ErrorType.MALFORMED
    if isinstance(error, ProviderError):
        if error.status_code is None and error.__cause__ is not None:
            return classify_exception(error.__cause__)
        return classify_error(str(error), error.status_code)
    if isinstance(error, httpx.HTTPStatusError):
        return classify_error(error.response.text, error.response.status_code)
    if isinstance(error, (httpx.TimeoutException, TimeoutError)):
        return ErrorType.TIMEOUT
    if isinstance(error, httpx.TransportError):
        return ErrorType.NETWORK
    return classify_error(str(error))


def is_rate_limit_error(error: BaseException | str) -> bool:
    """Return True if *error* is an explicit throttling signal."""
    return classify_exception(error) == ErrorType.RATE_LIMIT


def is_credential_error(error: BaseException | str) -> bool:
    """Return True if *error* signals bad credentials or exhausted quota."""
    return classify_exception(error) in CREDENTIAL_ERRORS


class Message(BaseModel):
    """One chat message in an analysis request."""

    model_config = ConfigDict(extra="allow", frozen=True)

    role: str = Field(..., description="system, user or assistant.")
    content: Any = Field(..., description="Message body, normally text.")
    name: str | None = Field(default=None, description="Optional author name.")


class GenerateRequest(BaseModel):
    """A single structured-analysis call as handed to an adapter."""

    model_config = ConfigDict(extra="allow")

    model: str | None = Field(default=None, description="Overrides the adapter's model.")
    prompt: str | None = Field(default=None, description="Sent as one user message.")
    messages: Sequence[Message] | None = Field(default=None, description="Full chat transcript.")
    max_tokens: int | None = Field(default=None, description="Completion token cap.")
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    response_format: Mapping[str, Any] | None = Field(
        default=None, description="e.g. {'type': 'json_object'} to force a JSON answer."
    )
    metadata: Mapping[str, Any] | None = Field(
        default=None, description="Caller context (asset and provider id); never sent upstream."
    )

    @model_validator(mode="after")
    def _require_content(self) -> GenerateRequest:
        if not self.prompt and not self.messages:
            raise ValueError("Either 'prompt' or 'messages' must be provided.")
        return self


class GenerateResponse(BaseModel):
    """What an adapter hands back: the raw answer text plus call metadata."""

    model_config = ConfigDict(extra="allow")

    text: str | None = Field(default=None, description="Answer text, expected to hold JSON.")
    usage: Mapping[str, int] | None = Field(default=None, description="Token counts.")
    model: str | None = Field(default=None, description="Model that actually answered.")
    finish_reason: str | None = None
    raw: Any | None = Field(default=None, description="Decoded upstream body, for debugging.")


class DoctorResult(BaseModel):
    """Outcome of an adapter connectivity check."""

    model_config = ConfigDict(extra="allow", frozen=True)

    ok: bool
    message: str | None = None
    latency_ms: float | None = None
    details: Mapping[str, Any] | None = None


class ProviderAdapter(ABC):
    """Transport for one opinion source.

    Subclasses set :attr:`kind` (the ``adapter`` value used in provider
    configuration) and raise :class:`ProviderError`, with the HTTP status
    when there is one, for every failed call. They never retry or sleep;
    spacing and backoff belong to the engine.
    """

    kind: ClassVar[str]

    @abstractmethod
    async def generate(self, request: GenerateRequest) -> GenerateResponse:
        """Send *request* and return the answer."""

    @abstractmethod
    async def doctor(self) -> DoctorResult:
        """Check that the endpoint and credential work."""

    async def aclose(self) -> None:
        """Release network resources held by the adapter."""


__all__ = [
    "CREDENTIAL_ERRORS",
    "DoctorResult",
    "ErrorType",
    "GenerateRequest",
    "GenerateResponse",
    "MalformedResponseError",
    "Message",
    "ProviderAdapter",
    "ProviderError",
    "RetryExhaustedError",
    "classify_error",
    "classify_exception",
    "is_credential_error",
    "is_rate_limit_error",
]
