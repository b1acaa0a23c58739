"""Gemini provider using google-genai SDK with native async."""

from google import genai
from google.genai import types as genai_types

from src.models import ModelResponse
from src.providers.base import ConfiguredProvider, ProviderError


class GeminiProvider(ConfiguredProvider):
    """Google Gemini provider via google-genai SDK."""

    def _make_client(self, api_key: str) -> genai.Client:
        return genai.Client(api_key=api_key)

    async def generate(
        self,
        prompt: str,
        purpose: str,
        *,
        system: str | None = None,
        temperature: float | None = None,
    ) -> ModelResponse:
        generation_config = genai_types.GenerateContentConfig(
            max_output_tokens=self._config.max_tokens,
            temperature=self._temperature(temperature),
            system_instruction=system or None,
        )

        response, latency = await self._call(
            lambda: self._client.aio.models.generate_content(
                model=self._config.model,
                contents=prompt,
                config=generation_config,
            )
        )

        if not response.text:
            raise ProviderError(self._config.name, "Empty response text")

        token_count = response.usage_metadata.total_token_count if response.usage_metadata else None
        return self._response(purpose, response.text, latency, token_count)
