"""OpenAI provider, also used for OpenAI-compatible endpoints such as xAI."""

from openai import AsyncOpenAI

from src.models import ModelResponse
from src.providers.base import ConfiguredProvider, ProviderError


class OpenAIProvider(ConfiguredProvider):
    """Chat-completions provider via the openai SDK.

    Setting ``base_url`` in the model config points the client at any
    OpenAI-compatible API; ``sdk: openai-compatible`` requires it.
    """

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        if self._config.sdk == "openai-compatible" and not self._config.base_url:
            raise ProviderError(self._config.name, "base_url is required for OpenAI-compatible providers")
        return AsyncOpenAI(api_key=api_key, base_url=self._config.base_url)

    async def generate(
        self,
        prompt: str,
        purpose: str,
        *,
        system: str | None = None,
        temperature: float | None = None,
    ) -> ModelResponse:
        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})

        response, latency = await self._call(
            lambda: self._client.chat.completions.create(
                model=self._config.model,
                messages=messages,
                max_tokens=self._config.max_tokens,
                temperature=self._temperature(temperature),
            )
        )

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        token_count = response.usage.total_tokens if response.usage else None
        return self._response(purpose, choice.message.content, latency, token_count)
