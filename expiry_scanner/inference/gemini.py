"""Gemini API inference backend."""

from __future__ import annotations

from ..errors import UpstreamError
from . import MAX_TOKENS, TEMPERATURE, InferenceBackend


class GeminiBackend(InferenceBackend):
    """Guess product details using Google Gemini."""

    provider = "Gemini"
    key_env = "GEMINI_API_KEY"

    def __init__(self, api_key: str = "", model: str = "gemini-2.0-flash") -> None:
        super().__init__(api_key=api_key, model=model)

    async def _complete(self, system: str, prompt: str) -> str | None:
        try:
            import google.generativeai as genai
            from google.api_core import exceptions as google_exceptions
        except ImportError:
            raise ImportError(
                "google-generativeai SDK is required: pip install google-generativeai"
            ) from None

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(self._model, system_instruction=system)

        try:
            response = await model.generate_content_async(
                prompt,
                generation_config={
                    "temperature": TEMPERATURE,
                    "max_output_tokens": MAX_TOKENS,
                },
            )
        except google_exceptions.GoogleAPIError as e:
            raise UpstreamError(f"Gemini request failed: {e}") from e

        try:
            return response.text
        except ValueError:
            # Raised when the reply was blocked or has no text parts.
            return None
