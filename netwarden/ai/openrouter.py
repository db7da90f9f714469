"""
NetWarden OpenRouter API Client

Thin async client for OpenRouter chat completions, used only to
classify anomaly findings. Every failure is returned as an LLMError
so the caller decides how to degrade.
"""

from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

from netwarden.config import settings

logger = structlog.get_logger(__name__)

API_BASE = "https://openrouter.ai/api/v1"


# =============================================================================
# Results
# =============================================================================


@dataclass
class LLMResponse:
    """A completed chat request."""

    content: str
    model: str
    finish_reason: str = "unknown"
    usage: dict[str, int] = field(default_factory=dict)


@dataclass
class LLMError:
    """A chat request that produced no usable completion."""

    error_type: str
    """configuration, timeout, network_error, api_error or empty_response."""

    message: str
    status_code: int | None = None


def parse_completion(data: dict[str, Any], model: str) -> LLMResponse | LLMError:
    """Extract the first choice from a chat completions payload."""
    choices = data.get("choices") or []
    if not choices:
        return LLMError(error_type="empty_response", message="No choices in API response")

    choice = choices[0]
    usage = data.get("usage") or {}
    return LLMResponse(
        content=(choice.get("message") or {}).get("content") or "",
        model=data.get("model") or model,
        finish_reason=choice.get("finish_reason") or "unknown",
        usage={
            key: usage.get(key, 0)
            for key in ("prompt_tokens", "completion_tokens", "total_tokens")
        },
    )


# =============================================================================
# Client
# =============================================================================


class OpenRouterClient:
    """OpenRouter chat client with a lazily created, reusable HTTP client."""

    def __init__(self, api_key: str | None = None, model: str | None = None):
        self.api_key = api_key or settings.openrouter_api_key
        self.model = model or settings.llm_model_classification
        self.timeout = float(settings.llm_timeout_default)
        self._http: httpx.AsyncClient | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=API_BASE,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "X-Title": "NetWarden",
                },
                timeout=self.timeout,
            )
        return self._http

    async def close(self) -> None:
        """Release the HTTP connection pool."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def chat(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 1024,
        json_mode: bool = False,
    ) -> LLMResponse | LLMError:
        """
        Send one chat completion request.

        Returns:
            LLMResponse on success, LLMError on any failure
        """
        if not self.is_configured:
            return LLMError(error_type="configuration", message="OpenRouter API key not configured")

        model = model or self.model
        payload: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        try:
            response = await self._client().post("/chat/completions", json=payload)
        except httpx.TimeoutException:
            logger.error("llm_request_timeout", model=model, timeout=self.timeout)
            return LLMError(error_type="timeout", message=f"No response within {self.timeout:g}s")
        except httpx.HTTPError as e:
            logger.error("llm_request_error", model=model, error=str(e))
            return LLMError(error_type="network_error", message=str(e))

        if response.status_code != 200:
            logger.error("llm_request_failed", model=model, status_code=response.status_code)
            return LLMError(
                error_type="api_error",
                message=f"API returned {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            return LLMError(error_type="api_error", message="API returned a non-JSON body")

        result = parse_completion(data, model)
        if isinstance(result, LLMResponse):
            logger.info(
                "llm_request_complete",
                model=result.model,
                finish_reason=result.finish_reason,
                total_tokens=result.usage.get("total_tokens", 0),
            )
        return result

    async def classify(self, prompt: str, system_prompt: str) -> LLMResponse | LLMError:
        """Ask for a JSON verdict at low temperature."""
        return await self.chat(
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            temperature=0.1,
            json_mode=True,
        )


# =============================================================================
# Singleton Instance
# =============================================================================


_client_instance: OpenRouterClient | None = None


def get_openrouter_client() -> OpenRouterClient:
    """Get the singleton OpenRouter client instance."""
    global _client_instance
    if _client_instance is None:
        _client_instance = OpenRouterClient()
    return _client_instance


async def close_openrouter_client() -> None:
    """Close the singleton client's connections, if it was ever created."""
    if _client_instance is not None:
        await _client_instance.close()
