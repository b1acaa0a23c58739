"""Abstract base for the LLM backends that drive the deliberation agents."""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from config.config_loader import ModelConfig
from src.models import ModelResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class AIProvider(ABC):
    """Abstract base for all AI model providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'openai', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        purpose: str,
        *,
        system: str | None = None,
        temperature: float | None = None,
    ) -> ModelResponse:
        """Generate a completion for the given prompt.

        Args:
            prompt: The user message.
            purpose: What the call is for ("decision", "execution", "final",
                "persona", "judge", "ping"); recorded on the response and in logs.
            system: Optional system instructions.
            temperature: Overrides the configured sampling temperature.

        Returns:
            ModelResponse with content and metadata.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        ...


class ConfiguredProvider(AIProvider):
    """Provider built from a ModelConfig, with its API key read from the environment."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = self._make_client(api_key)

    @abstractmethod
    def _make_client(self, api_key: str) -> Any:
        ...

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    def _temperature(self, override: float | None) -> float:
        return override if override is not None else self._config.temperature

    async def _call(self, make_request: Callable[[], Awaitable[T]]) -> tuple[T, float]:
        """Start an SDK request and await it under the configured timeout; return (result, latency).

        Errors raised while building the request are wrapped as ProviderError too.
        """
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(make_request(), timeout=self._config.timeout_sec)
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc
        return result, time.monotonic() - start

    def _response(self, purpose: str, content: str, latency: float, token_count: int | None) -> ModelResponse:
        logger.info("%s %s call: %.2fs, %s tokens", self._config.name, purpose, latency, token_count)
        return ModelResponse(
            provider=self._config.name,
            model=self._config.model,
            purpose=purpose,
            content=content,
            latency_sec=latency,
            token_count=token_count,
        )
