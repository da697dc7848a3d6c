"""Extraction of structured product data from free-form provider replies."""

from __future__ import annotations

import json
import logging
import re
from datetime import date
from typing import Any

from ..errors import ParseError
from ..models import (
    DEFAULT_CATEGORY,
    UNKNOWN_PRODUCT,
    AnalysisResult,
    default_expiry,
)

logger = logging.getLogger(__name__)

_FENCED_OBJECT = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL)
_BARE_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

# Used when the provider omits the score or sends something non-numeric.
_MISSING_CONFIDENCE = 0.5


def extract_json_object(text: str) -> dict[str, Any]:
    """Return the JSON object embedded in a provider reply.

    A fenced ```json block wins over a bare ``{...}`` span.

    Raises:
        ParseError: If no JSON object can be decoded.
    """
    match = _FENCED_OBJECT.search(text)
    if match:
        candidate = match.group(1)
    else:
        match = _BARE_OBJECT.search(text)
        candidate = match.group(0) if match else text

    try:
        data = json.loads(candidate.strip())
    except json.JSONDecodeError as e:
        raise ParseError(f"Provider reply is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ParseError(
            f"Provider reply decoded to {type(data).__name__}, expected an object"
        )
    return data


def coerce_result(data: dict[str, Any], today: date) -> AnalysisResult:
    """Normalize a decoded provider object into an AnalysisResult."""
    name = data.get("productName")
    category = data.get("category")

    expiry = default_expiry(today)
    raw_expiry = data.get("expiryDate")
    if isinstance(raw_expiry, str) and raw_expiry.strip():
        try:
            # Providers occasionally append a time component.
            expiry = date.fromisoformat(raw_expiry.strip()[:10])
        except ValueError:
            logger.debug("Ignoring unparseable expiryDate %r", raw_expiry)

    raw_score = data.get("confidenceScore")
    if isinstance(raw_score, bool) or not isinstance(raw_score, (int, float)):
        score = _MISSING_CONFIDENCE
    else:
        score = float(raw_score)

    return AnalysisResult(
        product_name=str(name).strip() if name and str(name).strip() else UNKNOWN_PRODUCT,
        category=(
            str(category).strip()
            if category and str(category).strip()
            else DEFAULT_CATEGORY
        ),
        expiry_date=expiry,
        confidence_score=score,
    )


def parse_response(text: str | None, today: date) -> AnalysisResult:
    """Parse a provider reply, falling back to the default result.

    Never raises: any decoding problem yields ``AnalysisResult.fallback``.
    """
    if not text or not text.strip():
        logger.warning("Provider returned an empty reply, using fallback result")
        return AnalysisResult.fallback(today)

    try:
        data = extract_json_object(text)
    except ParseError as e:
        logger.warning("%s; using fallback result. Reply: %r", e, text[:200])
        return AnalysisResult.fallback(today)

    return coerce_result(data, today)
