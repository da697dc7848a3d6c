"""Inference backend base class, prompts, and factory."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import TYPE_CHECKING

from ..errors import ConfigError
from ..models import AnalysisResult
from .parsing import extract_json_object, parse_response

if TYPE_CHECKING:
    from ..config import ScannerConfig

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a product information assistant. Based on a barcode or product code, \
estimate product details.
Return a JSON object with: productName (string), category (string like "Dairy", \
"Meat", "Produce", "Beverages", "Snacks", etc.), expiryDate (ISO date string \
YYYY-MM-DD, estimate based on typical shelf life), and confidenceScore (float 0-1).
If uncertain, use "Unknown Product" for productName and a generic category. \
Make realistic estimates for expiry dates based on product type.
"""

TEMPERATURE = 0.7
MAX_TOKENS = 200


def build_user_prompt(code: str) -> str:
    return (
        f"Guess the product details based on this barcode/text: {code}. "
        "Return ONLY valid JSON in this exact format: "
        '{"productName": "...", "category": "...", '
        '"expiryDate": "YYYY-MM-DD", "confidenceScore": 0.0-1.0}'
    )


class InferenceBackend(ABC):
    """Abstract base for text-generation providers that guess product details.

    Subclasses only implement the provider call; credential checks and reply
    parsing are shared.
    """

    provider = ""
    key_env = ""

    def __init__(self, api_key: str = "", model: str = "") -> None:
        self._api_key = api_key
        self._model = model

    async def infer(self, code: str, today: date | None = None) -> AnalysisResult:
        """Ask the provider about ``code`` and parse its reply.

        Content problems (empty or undecodable replies) never raise; they
        yield the low-confidence fallback result.

        Raises:
            ConfigError: If the provider API key is not configured.
            UpstreamError: If the provider request itself fails.
        """
        if not self._api_key:
            raise ConfigError(
                f"{self.provider} API key is not configured. "
                f"Set it in the config file or the {self.key_env} environment variable."
            )

        today = today or date.today()
        logger.info("Querying %s (%s) for code %r", self.provider, self._model, code)
        text = await self._complete(SYSTEM_PROMPT, build_user_prompt(code))
        return parse_response(text, today)

    @abstractmethod
    async def _complete(self, system: str, prompt: str) -> str | None:
        """Send one chat turn to the provider and return the reply text.

        Raises:
            UpstreamError: On transport or HTTP status failures.
        """
        ...


def create_backend(config: ScannerConfig) -> InferenceBackend:
    """Create an inference backend based on configuration."""
    backend_name = config.inference.backend

    match backend_name:
        case "claude":
            from .claude import ClaudeBackend

            return ClaudeBackend(
                api_key=config.inference.claude.api_key,
                model=config.inference.claude.model,
            )
        case "gemini":
            from .gemini import GeminiBackend

            return GeminiBackend(
                api_key=config.inference.gemini.api_key,
                model=config.inference.gemini.model,
            )
        case "openai":
            from .gpt import OpenAIBackend

            return OpenAIBackend(
                api_key=config.inference.openai.api_key,
                model=config.inference.openai.model,
            )
        case _:
            raise ConfigError(
                f"Unknown inference backend: {backend_name!r} "
                "(choose claude, gemini or openai)"
            )


__all__ = [
    "InferenceBackend",
    "SYSTEM_PROMPT",
    "build_user_prompt",
    "create_backend",
    "extract_json_object",
    "parse_response",
]
