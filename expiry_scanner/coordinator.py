"""Client-side scan coordinator.

Turns a stream of camera frames and typed codes into at most one in-flight
resolution per distinct code, and classifies failures for the presentation
layer. All scan state lives in an explicit ``ScanSession`` owned by the
caller; the coordinator itself only holds its collaborators.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from enum import Enum

from .client import ResolverClient
from .db.inventory import InventoryGateway
from .errors import ConfigError, InputError, PersistenceError, UpstreamError
from .models import AnalysisResult, NewItem, ScanInput, StoredItem
from .resolver import normalize

logger = logging.getLogger(__name__)


class ScanStatus(str, Enum):
    ACCEPTED = "accepted"  # trusted result, ready to save
    ESCALATED = "escalated"  # human must supply the product data
    IGNORED = "ignored"  # duplicate, concurrent, or stale event
    FAILED = "failed"


class ScanErrorKind(str, Enum):
    NOT_CONFIGURED = "not_configured"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    INVALID_INPUT = "invalid_input"
    PERSISTENCE = "persistence"
    UNKNOWN = "unknown"


@dataclass
class ScanSession:
    """Ephemeral state of one scan screen."""

    last_resolved_code: str | None = None
    in_flight: bool = False
    pending_code: str | None = None
    result: AnalysisResult | None = None
    result_code: str | None = None  # code the unsaved result belongs to
    idempotency_key: str | None = None
    epoch: int = 0

    def try_begin(self, code: str) -> bool:
        """Claim the session for resolving ``code``.

        Test and set happen without yielding to the event loop.
        """
        if self.in_flight or code == self.last_resolved_code:
            return False
        self.in_flight = True
        self.pending_code = code
        return True

    def reset(self) -> None:
        self.last_resolved_code = None
        self.in_flight = False
        self.pending_code = None
        self.result = None
        self.result_code = None
        self.idempotency_key = None


@dataclass
class ScanOutcome:
    status: ScanStatus
    code: str = ""
    result: AnalysisResult | None = None
    error: ScanErrorKind | None = None
    message: str = ""

    @property
    def needs_manual_entry(self) -> bool:
        return self.status is ScanStatus.ESCALATED


@dataclass
class SaveOutcome:
    item: StoredItem | None = None
    error: ScanErrorKind | None = None
    message: str = ""

    @property
    def saved(self) -> bool:
        return self.item is not None


def classify_error(exc: Exception) -> ScanErrorKind:
    """Map a resolution failure onto the presentation error taxonomy."""
    if isinstance(exc, InputError):
        return ScanErrorKind.INVALID_INPUT
    if isinstance(exc, ConfigError):
        return ScanErrorKind.NOT_CONFIGURED
    if isinstance(exc, UpstreamError):
        return ScanErrorKind.UPSTREAM_UNAVAILABLE
    if isinstance(exc, PersistenceError):
        return ScanErrorKind.PERSISTENCE
    return ScanErrorKind.UNKNOWN


class ScanCoordinator:
    """Coordinates scan events, resolution calls and saving.

    Args:
        resolver: Client for the resolution cascade.
        gateway: Persistence gateway for accepted results.
        user_id: Identity passed through to the gateway.
    """

    def __init__(
        self,
        resolver: ResolverClient,
        gateway: InventoryGateway,
        user_id: str | None = None,
    ) -> None:
        self._resolver = resolver
        self._gateway = gateway
        self._user_id = user_id

    def open_session(self) -> ScanSession:
        return ScanSession()

    def cancel(self, session: ScanSession) -> None:
        """Abandon the session; any in-flight result will be discarded."""
        session.reset()
        session.epoch += 1

    async def handle_scan(self, session: ScanSession, code: str) -> ScanOutcome:
        """Handle a code decoded from a camera frame."""
        return await self._resolve(session, code, manual=False)

    async def submit_manual_code(self, session: ScanSession, code: str) -> ScanOutcome:
        """Handle a code typed by the user."""
        return await self._resolve(session, code, manual=True)

    async def _resolve(
        self, session: ScanSession, raw_code: str, *, manual: bool
    ) -> ScanOutcome:
        if session.in_flight:
            logger.debug("Ignoring scan of %r while a resolution is pending", raw_code)
            return ScanOutcome(status=ScanStatus.IGNORED, code=raw_code.strip())

        try:
            code = normalize(ScanInput(code=raw_code))
        except InputError as e:
            session.reset()
            return ScanOutcome(
                status=ScanStatus.FAILED,
                error=ScanErrorKind.INVALID_INPUT,
                message=str(e),
            )

        if not session.try_begin(code):
            if manual:
                # Clears dedupe only; an unsaved result stays for save().
                session.last_resolved_code = None
            logger.debug("Ignoring scan of %r", code)
            return ScanOutcome(status=ScanStatus.IGNORED, code=code)

        epoch = session.epoch
        try:
            result = await self._resolver.analyze(code)
        except Exception as e:  # noqa: BLE001 - classified for the caller
            if session.epoch != epoch:
                return ScanOutcome(status=ScanStatus.IGNORED, code=code)
            kind = classify_error(e)
            if kind is ScanErrorKind.UNKNOWN:
                logger.exception("Unexpected error resolving %r", code)
            else:
                logger.warning("Resolving %r failed (%s): %s", code, kind.value, e)
            session.reset()
            return ScanOutcome(
                status=ScanStatus.FAILED, code=code, error=kind, message=str(e)
            )
        finally:
            if session.epoch == epoch:
                session.in_flight = False
                session.pending_code = None

        if session.epoch != epoch:
            logger.debug("Discarding result for %r from a cancelled session", code)
            return ScanOutcome(status=ScanStatus.IGNORED, code=code)

        session.last_resolved_code = code
        session.result = result
        session.result_code = code
        session.idempotency_key = uuid.uuid4().hex

        status = (
            ScanStatus.ESCALATED if result.manual_entry_required else ScanStatus.ACCEPTED
        )
        return ScanOutcome(status=status, code=code, result=result)

    async def save(self, session: ScanSession) -> SaveOutcome:
        """Persist the session's resolved result.

        On failure the result stays on the session so the save can be retried
        without resolving the code again.
        """
        result = session.result
        if result is None or session.result_code is None:
            return SaveOutcome(
                error=ScanErrorKind.INVALID_INPUT, message="No resolved result to save"
            )
        if result.manual_entry_required:
            return SaveOutcome(
                error=ScanErrorKind.INVALID_INPUT,
                message="Manual entry required before saving",
            )

        return await self._save(session, session.result_code, result)

    async def save_manual(
        self,
        session: ScanSession,
        code: str,
        product_name: str,
        category: str,
        expiry_date: date,
    ) -> SaveOutcome:
        """Persist product data supplied by the user."""
        if not product_name.strip():
            return SaveOutcome(
                error=ScanErrorKind.INVALID_INPUT, message="Product name is required"
            )

        result = AnalysisResult(
            product_name=product_name.strip(),
            category=category.strip() or "General",
            expiry_date=expiry_date,
            confidence_score=0.0,
        )
        code = code.strip()
        if session.result != result or session.result_code != code:
            # New data gets a new key; a retry of the same data reuses it.
            session.result = result
            session.result_code = code
            session.idempotency_key = uuid.uuid4().hex
        return await self._save(session, code, result)

    async def _save(
        self, session: ScanSession, code: str, result: AnalysisResult
    ) -> SaveOutcome:
        if session.idempotency_key is None:
            session.idempotency_key = uuid.uuid4().hex

        item = NewItem.from_result(
            code,
            result,
            idempotency_key=session.idempotency_key,
            user_id=self._user_id,
        )
        try:
            stored = await self._gateway.add_item(item)
        except PersistenceError as e:
            logger.warning("Saving %r failed: %s", code, e)
            return SaveOutcome(error=ScanErrorKind.PERSISTENCE, message=str(e))
        except Exception as e:  # noqa: BLE001 - any gateway failure is retryable
            logger.exception("Unexpected error saving %r", code)
            return SaveOutcome(error=ScanErrorKind.PERSISTENCE, message=str(e))

        logger.info("Saved %r as inventory item %d", code, stored.id)
        session.reset()
        return SaveOutcome(item=stored)
