"""AI backend clients.

Each client takes a model id and an ordered (system, user) message pair and
returns the raw text the model produced. Transport and HTTP failures are
raised as BackendError so the orchestrator can retry them.
"""

from __future__ import annotations

from typing import Any, Protocol, Sequence

import httpx

from .config import (
    ANTHROPIC_BASE_URL,
    OLLAMA_BASE_URL,
    OPENAI_BASE_URL,
    REQUEST_TIMEOUT,
    BackendConfig,
)
from .domain import Message
from .errors import BackendError
from .logging_config import get_logger

logger = get_logger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


class Backend(Protocol):
    """Anything that can turn a message pair into model output."""

    def complete(
        self,
        model: str,
        messages: Sequence[Message],
        *,
        temperature: float = 0.1,
        max_tokens: int = 2500,
        timeout: float = REQUEST_TIMEOUT,
    ) -> str: ...


def _split_system(messages: Sequence[Message]) -> tuple[str, list[dict[str, str]]]:
    system = "\n\n".join(m.content for m in messages if m.role == "system")
    chat = [m.to_dict() for m in messages if m.role != "system"]
    return system, chat


class _HTTPBackend:
    """Shared POST + error mapping for the JSON chat APIs."""

    provider = "backend"

    def __init__(self, base_url: str, timeout: float = REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(timeout=timeout)

    def _headers(self) -> dict[str, str]:
        return {}

    def _post(self, path: str, payload: dict[str, Any], timeout: float) -> dict[str, Any]:
        try:
            resp = self._client.post(
                f"{self.base_url}{path}",
                json=payload,
                headers=self._headers(),
                timeout=timeout,
            )
        except httpx.TimeoutException:
            raise BackendError(f"{self.provider} request timed out after {timeout}s")
        except httpx.ConnectError:
            raise BackendError(f"Cannot connect to {self.provider} at {self.base_url}")
        except httpx.HTTPError as e:
            raise BackendError(f"{self.provider} request failed: {e}")

        if resp.status_code != 200:
            raise BackendError(f"{self.provider} returned {resp.status_code}: {resp.text[:200]}")
        try:
            return resp.json()
        except ValueError:
            raise BackendError(f"{self.provider} returned a non-JSON body: {resp.text[:200]}")

    def close(self) -> None:
        self._client.close()


class OllamaClient(_HTTPBackend):
    """Client for a local Ollama server's chat API."""

    provider = "Ollama"

    def __init__(self, base_url: str = OLLAMA_BASE_URL, timeout: float = REQUEST_TIMEOUT):
        super().__init__(base_url, timeout)

    def is_ollama_running(self) -> bool:
        """Check if Ollama server is reachable."""
        try:
            resp = self._client.get(f"{self.base_url}/api/tags", timeout=5)
            return resp.status_code == 200
        except (httpx.ConnectError, httpx.TimeoutException):
            return False

    def list_models(self) -> list[str]:
        """Names of locally installed models, empty when unreachable."""
        try:
            resp = self._client.get(f"{self.base_url}/api/tags", timeout=10)
            if resp.status_code != 200:
                return []
            return [m.get("name", "") for m in resp.json().get("models", [])]
        except (httpx.HTTPError, ValueError):
            return []

    def is_model_available(self, model: str) -> bool:
        """Check if the model is downloaded (exact, bare or :latest match)."""
        return any(
            model == m or model == m.split(":")[0] or f"{model}:latest" == m
            for m in self.list_models()
        )

    def complete(
        self,
        model: str,
        messages: Sequence[Message],
        *,
        temperature: float = 0.1,
        max_tokens: int = 2500,
        timeout: float = REQUEST_TIMEOUT,
    ) -> str:
        payload: dict[str, Any] = {
            "model": model,
            "messages": [m.to_dict() for m in messages],
            "stream": False,
            "format": "json",
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            },
        }
        data = self._post("/api/chat", payload, timeout)
        return data.get("message", {}).get("content", "")


class AnthropicClient(_HTTPBackend):
    """Client for the Anthropic Messages API."""

    provider = "Anthropic"

    def __init__(self, api_key: str, base_url: str = ANTHROPIC_BASE_URL, timeout: float = REQUEST_TIMEOUT):
        super().__init__(base_url, timeout)
        self.api_key = api_key

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def complete(
        self,
        model: str,
        messages: Sequence[Message],
        *,
        temperature: float = 0.1,
        max_tokens: int = 2500,
        timeout: float = REQUEST_TIMEOUT,
    ) -> str:
        system, chat = _split_system(messages)
        payload: dict[str, Any] = {
            "model": model,
            "messages": chat,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if system:
            payload["system"] = system
        data = self._post("/v1/messages", payload, timeout)
        return "".join(
            block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"
        )


class OpenAIClient(_HTTPBackend):
    """Client for the OpenAI chat completions API."""

    provider = "OpenAI"

    def __init__(self, api_key: str, base_url: str = OPENAI_BASE_URL, timeout: float = REQUEST_TIMEOUT):
        super().__init__(base_url, timeout)
        self.api_key = api_key

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def complete(
        self,
        model: str,
        messages: Sequence[Message],
        *,
        temperature: float = 0.1,
        max_tokens: int = 2500,
        timeout: float = REQUEST_TIMEOUT,
    ) -> str:
        payload = {
            "model": model,
            "messages": [m.to_dict() for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "response_format": {"type": "json_object"},
        }
        data = self._post("/v1/chat/completions", payload, timeout)
        choices = data.get("choices") or [{}]
        return choices[0].get("message", {}).get("content") or ""


def provider_for(model: str) -> str:
    """Name of the provider serving ``model``: Anthropic, OpenAI or Ollama."""
    name = model.lower()
    if name.startswith("claude"):
        return "Anthropic"
    if name.startswith(("gpt", "o1", "o3")):
        return "OpenAI"
    return "Ollama"


class BackendRouter:
    """Dispatches a call to the provider that serves the model id.

    ``claude*`` goes to Anthropic, ``gpt*``/``o1*``/``o3*`` to OpenAI and
    anything else to the local Ollama server.
    """

    def __init__(
        self,
        anthropic: AnthropicClient | None = None,
        openai: OpenAIClient | None = None,
        ollama: OllamaClient | None = None,
    ):
        self.anthropic = anthropic
        self.openai = openai
        self.ollama = ollama

    @classmethod
    def from_config(cls, config: BackendConfig) -> BackendRouter:
        return cls(
            anthropic=(
                AnthropicClient(config.anthropic_api_key, config.anthropic_url, config.timeout)
                if config.anthropic_api_key
                else None
            ),
            openai=(
                OpenAIClient(config.openai_api_key, config.openai_url, config.timeout)
                if config.openai_api_key
                else None
            ),
            ollama=OllamaClient(config.ollama_url, config.timeout),
        )

    def backend_for(self, model: str) -> Backend:
        provider = provider_for(model)
        client = {"Anthropic": self.anthropic, "OpenAI": self.openai, "Ollama": self.ollama}[provider]
        if client is None:
            raise BackendError(f"No {provider} backend configured for model {model}")
        return client

    def complete(
        self,
        model: str,
        messages: Sequence[Message],
        *,
        temperature: float = 0.1,
        max_tokens: int = 2500,
        timeout: float = REQUEST_TIMEOUT,
    ) -> str:
        backend = self.backend_for(model)
        logger.debug("Dispatching to %s: model=%s", type(backend).__name__, model)
        return backend.complete(
            model, messages, temperature=temperature, max_tokens=max_tokens, timeout=timeout
        )
