"""Claude API inference backend."""

from __future__ import annotations

from ..errors import UpstreamError
from . import MAX_TOKENS, TEMPERATURE, InferenceBackend


class ClaudeBackend(InferenceBackend):
    """Guess product details using Anthropic's Messages API."""

    provider = "Anthropic"
    key_env = "ANTHROPIC_API_KEY"

    def __init__(
        self, api_key: str = "", model: str = "claude-sonnet-4-5-20250929"
    ) -> None:
        super().__init__(api_key=api_key, model=model)

    async def _complete(self, system: str, prompt: str) -> str | None:
        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic SDK is required: pip install anthropic"
            ) from None

        client = anthropic.AsyncAnthropic(api_key=self._api_key)
        try:
            response = await client.messages.create(
                model=self._model,
                max_tokens=MAX_TOKENS,
                temperature=TEMPERATURE,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            raise UpstreamError(f"Anthropic request failed: {e}") from e

        if not response.content:
            return None
        return response.content[0].text
