"""Anthropic Claude provider using anthropic SDK with native async."""

import anthropic as anthropic_sdk

from src.models import ModelResponse
from src.providers.base import ConfiguredProvider, ProviderError


class AnthropicProvider(ConfiguredProvider):
    """Anthropic Claude provider via anthropic SDK."""

    def _make_client(self, api_key: str) -> anthropic_sdk.AsyncAnthropic:
        return anthropic_sdk.AsyncAnthropic(api_key=api_key)

    async def generate(
        self,
        prompt: str,
        purpose: str,
        *,
        system: str | None = None,
        temperature: float | None = None,
    ) -> ModelResponse:
        kwargs = {
            "model": self._config.model,
            "max_tokens": self._config.max_tokens,
            "temperature": self._temperature(temperature),
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system

        response, latency = await self._call(lambda: self._client.messages.create(**kwargs))

        # Tool-use and thinking blocks carry no prose.
        text_blocks = [b.text for b in response.content or [] if b.type == "text"]
        if not text_blocks:
            raise ProviderError(self._config.name, "No text blocks in response")

        token_count: int | None = None
        if response.usage:
            token_count = response.usage.input_tokens + response.usage.output_tokens
        return self._response(purpose, "\n".join(text_blocks), latency, token_count)
