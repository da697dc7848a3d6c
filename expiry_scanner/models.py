"""Data models shared by the resolver, the coordinator and the stores."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

UNKNOWN_PRODUCT = "Unknown Product"
DEFAULT_CATEGORY = "General"
DEFAULT_SHELF_LIFE_DAYS = 7


def clamp_confidence(value: float) -> float:
    """Clamp a confidence score into [0, 1]. NaN counts as no confidence."""
    value = float(value)
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def default_expiry(today: date) -> date:
    return today + timedelta(days=DEFAULT_SHELF_LIFE_DAYS)


@dataclass
class ScanInput:
    """A raw scan or manual-entry event."""

    code: str = ""
    image_ref: str | None = None


@dataclass
class AnalysisResult:
    """Product information produced by any tier of the cascade."""

    product_name: str
    category: str
    expiry_date: date
    confidence_score: float  # 0.0-1.0, 1.0 only for catalog matches
    manual_entry_required: bool = False

    def __post_init__(self) -> None:
        self.confidence_score = clamp_confidence(self.confidence_score)

    @classmethod
    def fallback(cls, today: date, confidence_score: float = 0.3) -> AnalysisResult:
        """Default result used when the provider reply cannot be decoded."""
        return cls(
            product_name=UNKNOWN_PRODUCT,
            category=DEFAULT_CATEGORY,
            expiry_date=default_expiry(today),
            confidence_score=confidence_score,
        )

    @classmethod
    def escalated(cls, today: date) -> AnalysisResult:
        """Terminal result signalling that a human must supply the data."""
        return cls(
            product_name=UNKNOWN_PRODUCT,
            category=DEFAULT_CATEGORY,
            expiry_date=default_expiry(today),
            confidence_score=0.0,
            manual_entry_required=True,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "productName": self.product_name,
            "category": self.category,
            "expiryDate": self.expiry_date.isoformat(),
            "confidenceScore": self.confidence_score,
        }
        if self.manual_entry_required:
            data["manualEntryRequired"] = True
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisResult:
        """Build a result from its JSON wire form.

        Raises:
            KeyError, TypeError, ValueError: If a field is missing or malformed.
        """
        return cls(
            product_name=str(data["productName"]),
            category=str(data["category"]),
            expiry_date=date.fromisoformat(data["expiryDate"]),
            confidence_score=float(data["confidenceScore"]),
            manual_entry_required=bool(data.get("manualEntryRequired", False)),
        )


@dataclass
class CatalogEntry:
    """A row of the reference product catalog."""

    code: str
    name: str
    category: str | None = None
    shelf_life_days: int | None = None


@dataclass
class Resolution:
    """Terminal state of one cascade run."""

    result: AnalysisResult
    source: str  # "ai", "catalog" or "manual"

    @property
    def escalated(self) -> bool:
        return self.result.manual_entry_required


@dataclass
class NewItem:
    """An accepted result on its way to the inventory."""

    code: str
    product_name: str
    category: str
    expiry_date: date
    confidence_score: float
    idempotency_key: str
    user_id: str | None = None

    @classmethod
    def from_result(
        cls,
        code: str,
        result: AnalysisResult,
        idempotency_key: str,
        user_id: str | None = None,
    ) -> NewItem:
        return cls(
            code=code,
            product_name=result.product_name,
            category=result.category,
            expiry_date=result.expiry_date,
            confidence_score=result.confidence_score,
            idempotency_key=idempotency_key,
            user_id=user_id,
        )


@dataclass
class StoredItem:
    """An inventory row as returned by the persistence gateway."""

    id: int
    code: str
    product_name: str
    category: str
    expiry_date: date
    confidence_score: float
    idempotency_key: str
    user_id: str | None = None
    created_at: str = ""
