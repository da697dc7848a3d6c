"""OpenAI chat completions inference backend."""

from __future__ import annotations

from ..errors import UpstreamError
from . import MAX_TOKENS, TEMPERATURE, InferenceBackend


class OpenAIBackend(InferenceBackend):
    """Guess product details using OpenAI chat completions."""

    provider = "OpenAI"
    key_env = "OPENAI_API_KEY"

    def __init__(self, api_key: str = "", model: str = "gpt-4o-mini") -> None:
        super().__init__(api_key=api_key, model=model)

    async def _complete(self, system: str, prompt: str) -> str | None:
        try:
            import openai
        except ImportError:
            raise ImportError("openai SDK is required: pip install openai") from None

        client = openai.AsyncOpenAI(api_key=self._api_key)
        try:
            response = await client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                temperature=TEMPERATURE,
                max_tokens=MAX_TOKENS,
            )
        except openai.APIError as e:
            raise UpstreamError(f"OpenAI request failed: {e}") from e

        if not response.choices:
            return None
        return response.choices[0].message.content
