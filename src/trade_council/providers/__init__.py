"""Provider adapters and registry utilities."""

from .base import (
    DoctorResult,
    ErrorType,
    GenerateRequest,
    GenerateResponse,
    MalformedResponseError,
    Message,
    ProviderAdapter,
    ProviderError,
    RetryExhaustedError,
    classify_error,
    classify_exception,
)
from .openai_compat import OpenAICompatibleProvider
from .registry import ProviderRegistry, get_registry

__all__ = [
    "DoctorResult",
    "ErrorType",
    "GenerateRequest",
    "GenerateResponse",
    "MalformedResponseError",
    "Message",
    "OpenAICompatibleProvider",
    "ProviderAdapter",
    "ProviderError",
    "ProviderRegistry",
    "RetryExhaustedError",
    "classify_error",
    "classify_exception",
    "get_registry",
]
