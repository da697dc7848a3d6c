"""Resolution cascade: AI inference → validation → catalog → manual entry."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import TYPE_CHECKING, Callable

from .errors import CatalogLookupError, InputError
from .models import (
    DEFAULT_CATEGORY,
    DEFAULT_SHELF_LIFE_DAYS,
    AnalysisResult,
    Resolution,
    ScanInput,
)

if TYPE_CHECKING:
    from .config import ScannerConfig
    from .db.catalog import CatalogStore
    from .inference import InferenceBackend

logger = logging.getLogger(__name__)

CONFIDENCE_THRESHOLD = 0.6
_UNKNOWN_MARKER = "unknown"


def normalize(scan: ScanInput) -> str:
    """Return the trimmed code of a scan.

    Image-only scans pass with an empty code.

    Raises:
        InputError: If neither a code nor an image reference is present.
    """
    code = (scan.code or "").strip()
    if not code and not scan.image_ref:
        raise InputError("code/image required")
    return code


def accept(result: AnalysisResult) -> bool:
    """Whether an AI result is trustworthy enough to return as-is."""
    return (
        result.confidence_score >= CONFIDENCE_THRESHOLD
        and _UNKNOWN_MARKER not in result.product_name.lower()
    )


def catalog_lookup(
    catalog: CatalogStore | None, code: str, today: date
) -> AnalysisResult | None:
    """Look the code up in the reference catalog.

    Misses and store failures both return None.
    """
    if catalog is None:
        return None

    try:
        entry = catalog.get(code)
    except CatalogLookupError as e:
        logger.error("Catalog lookup failed for %r: %s", code, e)
        return None

    if entry is None:
        logger.info("No catalog entry for %r", code)
        return None

    days = (
        entry.shelf_life_days
        if entry.shelf_life_days is not None
        else DEFAULT_SHELF_LIFE_DAYS
    )
    return AnalysisResult(
        product_name=entry.name,
        category=entry.category or DEFAULT_CATEGORY,
        expiry_date=today + timedelta(days=days),
        confidence_score=1.0,
    )


class ProductResolver:
    """Runs the resolution cascade once per call.

    Args:
        backend: Inference provider used for the first tier.
        catalog: Reference catalog; None makes every lookup miss.
        today: Clock used for all date arithmetic.
    """

    def __init__(
        self,
        backend: InferenceBackend,
        catalog: CatalogStore | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._backend = backend
        self._catalog = catalog
        self._today = today

    async def resolve(self, scan: ScanInput | str) -> Resolution:
        """Resolve a scan into a Resolution.

        Raises:
            InputError: If the scan has no usable code.
            ConfigError: If the inference provider is not configured.
            UpstreamError: If the inference provider could not be reached.
        """
        if isinstance(scan, str):
            scan = ScanInput(code=scan)

        code = normalize(scan)
        if not code:
            logger.warning("Image analysis is not supported; rejecting image-only scan")
            raise InputError("image analysis is not supported; a code is required")

        today = self._today()
        ai_result = await self._backend.infer(code, today=today)

        if accept(ai_result):
            logger.info(
                "Accepted AI result for %r (confidence %.2f)",
                code,
                ai_result.confidence_score,
            )
            return Resolution(result=ai_result, source="ai")

        logger.info(
            "AI result for %r not trusted (%r, confidence %.2f); trying catalog",
            code,
            ai_result.product_name,
            ai_result.confidence_score,
        )
        catalog_result = catalog_lookup(self._catalog, code, today)
        if catalog_result is not None:
            return Resolution(result=catalog_result, source="catalog")

        logger.info("Escalating %r to manual entry", code)
        return Resolution(result=AnalysisResult.escalated(today), source="manual")


def build_resolver(config: ScannerConfig) -> ProductResolver:
    """Wire a resolver from configuration."""
    from .db.catalog import CatalogDB
    from .inference import create_backend

    backend = create_backend(config)

    catalog = None
    if config.catalog.db_path:
        catalog = CatalogDB(config.catalog.db_path)
    else:
        logger.warning("Catalog is not configured; catalog lookups will always miss")

    return ProductResolver(backend=backend, catalog=catalog)
