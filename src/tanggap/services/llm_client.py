"""Ollama HTTP client for local LLM generation."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.1
DEFAULT_TOP_P = 0.9


class OllamaError(Exception):
    """Raised when the Ollama server cannot produce a completion."""


@dataclass
class LLMResponse:
    """Completion returned by the Ollama generate endpoint."""

    text: str
    model: str
    latency_ms: int = 0
    raw_response: dict[str, Any] = field(default_factory=dict)


class OllamaClient:
    """Minimal async client for the Ollama REST API.

    Args:
        base_url: Server URL, e.g. http://ollama:11434. Empty or containing
            "disabled" turns the client off.
        model: Model tag to generate with.
        timeout: Request timeout in seconds.
        client: Optional pre-built httpx.AsyncClient (used in tests).
    """

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        from tanggap.config import settings

        self.base_url = (base_url if base_url is not None else settings.ollama_base_url).rstrip("/")
        self.model = model or settings.ollama_model
        self.timeout = timeout or settings.ollama_timeout
        self._client = client

    @property
    def is_disabled(self) -> bool:
        return not self.base_url or "disabled" in self.base_url

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def generate(
        self,
        prompt: str,
        *,
        temperature: float = DEFAULT_TEMPERATURE,
        top_p: float = DEFAULT_TOP_P,
    ) -> LLMResponse:
        """Run a non-streaming completion.

        Raises:
            OllamaError: If the client is disabled or the request fails.
        """
        if self.is_disabled:
            raise OllamaError("Ollama is disabled")

        start_time = time.monotonic()
        logger.debug(f"Generating with {self.model} (prompt length {len(prompt)})")

        try:
            response = await self._get_client().post(
                f"{self.base_url}/api/generate",
                json={
                    "model": self.model,
                    "prompt": prompt,
                    "stream": False,
                    "options": {"temperature": temperature, "top_p": top_p},
                },
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise OllamaError(f"Ollama request failed: {e}") from e

        latency_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(f"Ollama response from {self.model} in {latency_ms}ms")

        return LLMResponse(
            text=data.get("response", ""),
            model=self.model,
            latency_ms=latency_ms,
            raw_response=data,
        )

    async def list_models(self) -> list[str]:
        """Names of the models pulled on the server."""
        response = await self._get_client().get(f"{self.base_url}/api/tags")
        response.raise_for_status()
        return [m.get("name", "") for m in response.json().get("models", [])]

    async def health_check(self) -> dict[str, Any]:
        if self.is_disabled:
            return {"status": "disabled", "available": False}

        try:
            models = await self.list_models()
        except Exception as e:
            return {"status": "unhealthy", "available": False, "error": str(e)}

        return {
            "status": "healthy",
            "available": True,
            "model": self.model,
            "model_available": any(name.startswith(self.model) for name in models),
        }
