"""
OpenAI-compatible provider adapter.

Most hosted inference services (Cerebras, Groq, DeepSeek, Together AI,
OpenRouter, xAI, Google's OpenAI endpoint) accept the OpenAI
chat-completions wire format, so one adapter covers the whole catalogue.
Only the base URL, model and API key differ per provider.
"""

from __future__ import annotations

import time
from typing import Any, ClassVar

import httpx

from trade_council.providers.base import (
    DoctorResult,
    GenerateRequest,
    GenerateResponse,
    ProviderAdapter,
    ProviderError,
)
from trade_council.providers.registry import get_registry


class OpenAICompatibleProvider(ProviderAdapter):
    """Chat-completions adapter for any OpenAI-compatible endpoint.

    Args:
        name: Provider id used in errors and logs.
        base_url: API root, e.g. ``https://api.groq.com/openai/v1``.
        model: Default model when the request does not name one.
        api_key: Bearer token. A missing key fails at call time, not here.
        timeout: Total request timeout in seconds.
        http_client: Optional custom HTTP client for testing.
    """

    kind: ClassVar[str] = "openai"

    def __init__(
        self,
        name: str,
        base_url: str,
        model: str,
        api_key: str | None = None,
        timeout: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._name = name
        self._base_url = base_url.rstrip("/")
        self._default_model = model
        self._api_key = api_key
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def name(self) -> str:
        return self._name

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=10.0),
            )
        return self._http_client

    async def aclose(self) -> None:
        """Close the HTTP client if we own it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    def _get_headers(self) -> dict[str, str]:
        if not self._api_key:
            raise ProviderError(self._name, "API key not configured", status_code=401)
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _build_request_body(self, request: GenerateRequest) -> dict[str, Any]:
        """Convert GenerateRequest to chat-completions format."""
        body: dict[str, Any] = {
            "model": request.model or self._default_model,
        }

        if request.messages:
            body["messages"] = [
                {"role": m.role, "content": m.content, **({"name": m.name} if m.name else {})}
                for m in request.messages
            ]
        elif request.prompt:
            body["messages"] = [{"role": "user", "content": request.prompt}]

        if request.max_tokens is not None:
            body["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.response_format:
            body["response_format"] = dict(request.response_format)

        return body

    async def generate(self, request: GenerateRequest) -> GenerateResponse:
        """Send one chat-completions request.

        Raises:
            ProviderError: On transport failure or a non-2xx status. The
                status code and response body are kept for classification.
        """
        client = await self._get_client()
        body = self._build_request_body(request)

        try:
            response = await client.post(
                f"{self._base_url}/chat/completions",
                headers=self._get_headers(),
                json=body,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                self._name,
                f"HTTP {e.response.status_code}: {e.response.text[:300]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.TimeoutException as e:
            raise ProviderError(self._name, f"request timed out: {e}") from e
        except httpx.TransportError as e:
            raise ProviderError(self._name, f"connection error: {e}") from e

        return self._parse_response(response.json())

    def _parse_response(self, data: dict[str, Any]) -> GenerateResponse:
        """Parse a chat-completions response."""
        choices = data.get("choices") or [{}]
        choice = choices[0]
        message = choice.get("message", {})

        usage = data.get("usage", {})
        usage_dict = None
        if usage:
            usage_dict = {
                "prompt_tokens": usage.get("prompt_tokens", 0),
                "completion_tokens": usage.get("completion_tokens", 0),
                "total_tokens": usage.get("total_tokens", 0),
            }

        return GenerateResponse(
            text=message.get("content"),
            usage=usage_dict,
            model=data.get("model"),
            finish_reason=choice.get("finish_reason"),
            raw=data,
        )

    async def doctor(self) -> DoctorResult:
        """List the endpoint's models to check reachability and the key."""
        if not self._api_key:
            return DoctorResult(
                ok=False,
                message="API key not configured",
                details={"error": "missing_api_key"},
            )

        started = time.perf_counter()
        ok, message = True, f"{self._name} API is accessible"
        details: dict[str, Any] = {"model": self._default_model}
        try:
            client = await self._get_client()
            response = await client.get(f"{self._base_url}/models", headers=self._get_headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            ok, message, details = False, f"API error: {status}", {"status_code": status}
        except httpx.HTTPError as e:
            ok, message, details = False, f"Connection error: {e}", {"error": str(e)}

        return DoctorResult(
            ok=ok,
            message=message,
            latency_ms=(time.perf_counter() - started) * 1000,
            details=details,
        )


get_registry().register_adapter(OpenAICompatibleProvider.kind, OpenAICompatibleProvider)
