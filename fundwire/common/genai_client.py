"""
Generation-service clients.

Every transport exposes the same coroutine:

    text = await client.send(prompt, model)

and fails with GenerationServiceError. The error message always carries the
HTTP status code and the provider's status / error type, so the retry
vocabulary ("503", "overloaded", "UNAVAILABLE") in common.retry works across
providers.

Transports:
- GeminiClient: Gemini REST API (generateContent) over httpx
- AnthropicClient: Anthropic Messages API through the official SDK
"""

import logging
from typing import Optional, Protocol

import httpx
from anthropic import AsyncAnthropic, APIStatusError, APIConnectionError, APITimeoutError

from ..config.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


class GenerationServiceError(Exception):
    """Raised when the generation service returns an error or cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None, status: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.status = status


class GenerationClient(Protocol):
    """Boundary to the external text-generation service."""

    async def send(self, prompt: str, model: str) -> str:
        ...


class GeminiClient:
    """
    Async client for the Gemini generateContent endpoint.

    Usage:
        async with GeminiClient(api_key) as client:
            text = await client.send(prompt, "gemini-2.0-flash-lite")
    """

    def __init__(
        self,
        api_key: str,
        timeout: float = 90,
        connect_timeout: float = 30,
        temperature: float = 0.0,
        max_tokens: int = 2048,
        api_base: str = GEMINI_API_BASE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_base = api_base.rstrip("/")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout, connect=self.connect_timeout),
                headers={"Content-Type": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def send(self, prompt: str, model: str) -> str:
        if not self.api_key:
            raise GenerationServiceError("GEMINI_API_KEY not configured")

        client = await self._get_client()
        url = f"{self.api_base}/models/{model}:generateContent"
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.temperature,
                "maxOutputTokens": self.max_tokens,
            },
        }

        try:
            response = await client.post(url, params={"key": self.api_key}, json=payload)
        except httpx.TimeoutException as e:
            raise GenerationServiceError(f"Gemini API timeout: {e}") from e
        except httpx.RequestError as e:
            raise GenerationServiceError(f"Gemini API network error: {e}") from e

        if response.status_code != 200:
            raise _gemini_error(response)

        try:
            data = response.json()
        except ValueError as e:
            raise GenerationServiceError(f"Gemini API returned non-JSON body: {e}") from e

        return _gemini_text(data)


def _gemini_error(response: httpx.Response) -> GenerationServiceError:
    """Build an error from a Gemini error body ({"error": {code, message, status}})."""
    status = None
    message = response.text[:500]
    try:
        error = response.json().get("error", {})
        status = error.get("status")
        message = error.get("message", message)
    except ValueError:
        pass

    return GenerationServiceError(
        f"Gemini API error {response.status_code} {status or ''}: {message}".strip(),
        status_code=response.status_code,
        status=status,
    )


def _gemini_text(data: dict) -> str:
    """First candidate's first text part, or an empty string."""
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    if not parts:
        return ""
    return parts[0].get("text", "") or ""


class AnthropicClient:
    """Async client for the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        timeout: float = 90,
        max_tokens: int = 2048,
        temperature: float = 0.0,
        client: Optional[AsyncAnthropic] = None,
    ):
        self.max_tokens = max_tokens
        self.temperature = temperature
        # Retries are owned by RetryController
        self._client = client or AsyncAnthropic(api_key=api_key, timeout=timeout, max_retries=0)

    async def close(self):
        await self._client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def send(self, prompt: str, model: str) -> str:
        try:
            message = await self._client.messages.create(
                model=model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except APIStatusError as e:
            error_type = None
            if isinstance(e.body, dict):
                error_type = (e.body.get("error") or {}).get("type")
            raise GenerationServiceError(
                f"Anthropic API error {e.status_code} {error_type or ''}: {e.message}",
                status_code=e.status_code,
                status=error_type,
            ) from e
        except APITimeoutError as e:
            raise GenerationServiceError(f"Anthropic API timeout: {e}") from e
        except APIConnectionError as e:
            raise GenerationServiceError(f"Anthropic API network error: {e}") from e

        return "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        )


def create_generation_client(config: Optional[Settings] = None) -> GenerationClient:
    """Build the configured transport."""
    config = config or default_settings
    if config.llm_provider == "anthropic":
        return AnthropicClient(
            api_key=config.anthropic_api_key,
            timeout=config.llm_timeout,
            max_tokens=config.llm_max_tokens,
            temperature=config.llm_temperature,
        )
    return GeminiClient(
        api_key=config.gemini_api_key,
        timeout=config.llm_timeout,
        connect_timeout=config.llm_connect_timeout,
        temperature=config.llm_temperature,
        max_tokens=config.llm_max_tokens,
    )
