"""Tests for the client-side scan coordinator."""

import asyncio
from datetime import date

import pytest

from expiry_scanner.client import ResolverClient
from expiry_scanner.coordinator import (
    ScanCoordinator,
    ScanErrorKind,
    ScanStatus,
    classify_error,
)
from expiry_scanner.db.inventory import InventoryDB, InventoryGateway
from expiry_scanner.errors import (
    ConfigError,
    InputError,
    PersistenceError,
    UpstreamError,
)
from expiry_scanner.models import AnalysisResult, StoredItem

TODAY = date(2025, 1, 10)
MILK = AnalysisResult("Organic Milk", "Dairy", date(2025, 1, 12), 0.85)
ESCALATED = AnalysisResult.escalated(TODAY)


class FakeClient(ResolverClient):
    """Returns a canned result and records every code it was asked for."""

    def __init__(self, result=MILK, error=None, gate: asyncio.Event | None = None):
        self.result = result
        self.error = error
        self.gate = gate
        self.calls: list[str] = []

    async def analyze(self, code):
        self.calls.append(code)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result


class FlakyGateway(InventoryGateway):
    """Fails a fixed number of times before delegating to a real store."""

    def __init__(self, inner: InventoryGateway, failures: int = 1):
        self.inner = inner
        self.failures = failures
        self.keys: list[str] = []

    async def add_item(self, item) -> StoredItem:
        self.keys.append(item.idempotency_key)
        if self.failures > 0:
            self.failures -= 1
            raise PersistenceError("database is locked")
        return await self.inner.add_item(item)


@pytest.fixture
def inventory(tmp_path):
    db = InventoryDB(tmp_path / "inventory.db")
    yield db
    db.close()


class TestClassifyError:
    @pytest.mark.parametrize("exc, kind", [
        (InputError("x"), ScanErrorKind.INVALID_INPUT),
        (ConfigError("x"), ScanErrorKind.NOT_CONFIGURED),
        (UpstreamError("x"), ScanErrorKind.UPSTREAM_UNAVAILABLE),
        (PersistenceError("x"), ScanErrorKind.PERSISTENCE),
        (RuntimeError("x"), ScanErrorKind.UNKNOWN),
    ])
    def test_mapping(self, exc, kind):
        assert classify_error(exc) is kind


class TestHandleScan:
    @pytest.mark.asyncio
    async def test_accepted(self, inventory):
        client = FakeClient()
        coordinator = ScanCoordinator(client, inventory)
        session = coordinator.open_session()

        outcome = await coordinator.handle_scan(session, " 123456 ")

        assert outcome.status is ScanStatus.ACCEPTED
        assert outcome.code == "123456"
        assert outcome.result == MILK
        assert session.last_resolved_code == "123456"
        assert session.in_flight is False
        assert session.idempotency_key
        assert client.calls == ["123456"]

    @pytest.mark.asyncio
    async def test_escalated(self, inventory):
        coordinator = ScanCoordinator(FakeClient(result=ESCALATED), inventory)
        session = coordinator.open_session()

        outcome = await coordinator.handle_scan(session, "999999")

        assert outcome.status is ScanStatus.ESCALATED
        assert outcome.needs_manual_entry

    @pytest.mark.asyncio
    async def test_same_code_rescanned_is_ignored(self, inventory):
        client = FakeClient()
        coordinator = ScanCoordinator(client, inventory)
        session = coordinator.open_session()

        await coordinator.handle_scan(session, "123456")
        outcome = await coordinator.handle_scan(session, "123456")

        assert outcome.status is ScanStatus.IGNORED
        assert client.calls == ["123456"]
        assert session.result == MILK

    @pytest.mark.asyncio
    async def test_concurrent_frames_make_one_call(self, inventory):
        gate = asyncio.Event()
        client = FakeClient(gate=gate)
        coordinator = ScanCoordinator(client, inventory)
        session = coordinator.open_session()

        first = asyncio.create_task(coordinator.handle_scan(session, "123456"))
        await asyncio.sleep(0)
        assert session.in_flight is True

        others = await asyncio.gather(
            coordinator.handle_scan(session, "123456"),
            coordinator.handle_scan(session, "777777"),
        )
        gate.set()
        outcome = await first

        assert [o.status for o in others] == [ScanStatus.IGNORED, ScanStatus.IGNORED]
        assert outcome.status is ScanStatus.ACCEPTED
        assert client.calls == ["123456"]

    @pytest.mark.asyncio
    async def test_blank_event_mid_flight_keeps_guard(self, inventory):
        gate = asyncio.Event()
        client = FakeClient(gate=gate)
        coordinator = ScanCoordinator(client, inventory)
        session = coordinator.open_session()

        first = asyncio.create_task(coordinator.handle_scan(session, "123456"))
        await asyncio.sleep(0)

        blank = await coordinator.submit_manual_code(session, "   ")
        assert blank.status is ScanStatus.IGNORED
        assert session.in_flight is True

        again = await coordinator.handle_scan(session, "123456")
        assert again.status is ScanStatus.IGNORED

        gate.set()
        assert (await first).status is ScanStatus.ACCEPTED
        assert client.calls == ["123456"]

    @pytest.mark.asyncio
    async def test_cancelled_call_releases_in_flight(self, inventory):
        gate = asyncio.Event()
        client = FakeClient(gate=gate)
        coordinator = ScanCoordinator(client, inventory)
        session = coordinator.open_session()

        task = asyncio.create_task(coordinator.handle_scan(session, "123456"))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert session.in_flight is False
        gate.set()
        outcome = await coordinator.handle_scan(session, "123456")
        assert outcome.status is ScanStatus.ACCEPTED
        assert client.calls == ["123456", "123456"]

    @pytest.mark.asyncio
    async def test_blank_code_fails_without_call(self, inventory):
        client = FakeClient()
        coordinator = ScanCoordinator(client, inventory)
        session = coordinator.open_session()

        outcome = await coordinator.handle_scan(session, "   ")

        assert outcome.status is ScanStatus.FAILED
        assert outcome.error is ScanErrorKind.INVALID_INPUT
        assert client.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("exc, kind", [
        (ConfigError("ANTHROPIC_API_KEY is not set"), ScanErrorKind.NOT_CONFIGURED),
        (UpstreamError("HTTP 503"), ScanErrorKind.UPSTREAM_UNAVAILABLE),
        (InputError("Code is required"), ScanErrorKind.INVALID_INPUT),
        (RuntimeError("boom"), ScanErrorKind.UNKNOWN),
    ])
    async def test_failure_resets_session(self, inventory, exc, kind):
        client = FakeClient(error=exc)
        coordinator = ScanCoordinator(client, inventory)
        session = coordinator.open_session()

        outcome = await coordinator.handle_scan(session, "123456")

        assert outcome.status is ScanStatus.FAILED
        assert outcome.error is kind
        assert outcome.message == str(exc)
        assert session.in_flight is False
        assert session.last_resolved_code is None

        # The same code may be retried after a failure.
        client.error = None
        retry = await coordinator.handle_scan(session, "123456")
        assert retry.status is ScanStatus.ACCEPTED
        assert client.calls == ["123456", "123456"]


class TestSubmitManualCode:
    @pytest.mark.asyncio
    async def test_retyping_resolved_code_starts_over(self, inventory):
        client = FakeClient()
        coordinator = ScanCoordinator(client, inventory)
        session = coordinator.open_session()

        await coordinator.submit_manual_code(session, "123456")
        ignored = await coordinator.submit_manual_code(session, "123456")
        assert ignored.status is ScanStatus.IGNORED
        assert session.last_resolved_code is None

        again = await coordinator.submit_manual_code(session, "123456")
        assert again.status is ScanStatus.ACCEPTED
        assert client.calls == ["123456", "123456"]

    @pytest.mark.asyncio
    async def test_typed_code_while_in_flight_is_ignored(self, inventory):
        gate = asyncio.Event()
        client = FakeClient(gate=gate)
        coordinator = ScanCoordinator(client, inventory)
        session = coordinator.open_session()

        first = asyncio.create_task(coordinator.handle_scan(session, "123456"))
        await asyncio.sleep(0)
        typed = await coordinator.submit_manual_code(session, "555555")
        assert typed.status is ScanStatus.IGNORED
        assert session.in_flight is True

        gate.set()
        assert (await first).status is ScanStatus.ACCEPTED


class TestCancel:
    @pytest.mark.asyncio
    async def test_result_after_cancel_is_discarded(self, inventory):
        gate = asyncio.Event()
        coordinator = ScanCoordinator(FakeClient(gate=gate), inventory)
        session = coordinator.open_session()

        task = asyncio.create_task(coordinator.handle_scan(session, "123456"))
        await asyncio.sleep(0)
        coordinator.cancel(session)
        gate.set()
        outcome = await task

        assert outcome.status is ScanStatus.IGNORED
        assert session.result is None
        assert session.last_resolved_code is None
        assert session.in_flight is False

    @pytest.mark.asyncio
    async def test_failure_after_cancel_is_discarded(self, inventory):
        gate = asyncio.Event()
        client = FakeClient(error=UpstreamError("HTTP 503"), gate=gate)
        coordinator = ScanCoordinator(client, inventory)
        session = coordinator.open_session()

        task = asyncio.create_task(coordinator.handle_scan(session, "123456"))
        await asyncio.sleep(0)
        coordinator.cancel(session)
        gate.set()

        assert (await task).status is ScanStatus.IGNORED


class TestSave:
    @pytest.mark.asyncio
    async def test_save_accepted_result(self, inventory):
        coordinator = ScanCoordinator(FakeClient(), inventory, user_id="user-1")
        session = coordinator.open_session()
        await coordinator.handle_scan(session, "123456")
        key = session.idempotency_key

        outcome = await coordinator.save(session)

        assert outcome.saved
        item = outcome.item
        assert item.code == "123456"
        assert item.product_name == "Organic Milk"
        assert item.confidence_score == 0.85
        assert item.user_id == "user-1"
        assert item.idempotency_key == key
        assert session.result is None
        assert session.last_resolved_code is None

    @pytest.mark.asyncio
    async def test_save_without_result_is_refused(self, inventory):
        coordinator = ScanCoordinator(FakeClient(), inventory)
        outcome = await coordinator.save(coordinator.open_session())
        assert not outcome.saved
        assert outcome.error is ScanErrorKind.INVALID_INPUT

    @pytest.mark.asyncio
    async def test_escalated_result_is_not_saved(self, inventory):
        coordinator = ScanCoordinator(FakeClient(result=ESCALATED), inventory)
        session = coordinator.open_session()
        await coordinator.handle_scan(session, "999999")

        outcome = await coordinator.save(session)

        assert outcome.error is ScanErrorKind.INVALID_INPUT
        assert inventory.get_items() == []

    @pytest.mark.asyncio
    async def test_failed_save_keeps_result_and_retry_reuses_key(self, inventory):
        client = FakeClient()
        gateway = FlakyGateway(inventory, failures=1)
        coordinator = ScanCoordinator(client, gateway)
        session = coordinator.open_session()
        await coordinator.handle_scan(session, "123456")

        failed = await coordinator.save(session)
        assert failed.error is ScanErrorKind.PERSISTENCE
        assert "locked" in failed.message
        assert session.result == MILK

        retried = await coordinator.save(session)
        assert retried.saved
        assert gateway.keys[0] == gateway.keys[1]
        assert client.calls == ["123456"]
        assert len(inventory.get_items()) == 1

    @pytest.mark.asyncio
    async def test_retyping_code_after_failed_save_keeps_result(self, inventory):
        client = FakeClient()
        gateway = FlakyGateway(inventory, failures=1)
        coordinator = ScanCoordinator(client, gateway)
        session = coordinator.open_session()
        await coordinator.submit_manual_code(session, "123456")

        failed = await coordinator.save(session)
        assert failed.error is ScanErrorKind.PERSISTENCE

        retyped = await coordinator.submit_manual_code(session, "123456")
        assert retyped.status is ScanStatus.IGNORED
        assert session.result == MILK

        saved = await coordinator.save(session)
        assert saved.saved
        assert saved.item.code == "123456"
        assert gateway.keys[0] == gateway.keys[1]
        assert client.calls == ["123456"]

    @pytest.mark.asyncio
    async def test_unexpected_gateway_error_is_persistence(self, inventory):
        class BrokenGateway(InventoryGateway):
            async def add_item(self, item):
                raise RuntimeError("connection dropped")

        coordinator = ScanCoordinator(FakeClient(), BrokenGateway())
        session = coordinator.open_session()
        await coordinator.handle_scan(session, "123456")

        outcome = await coordinator.save(session)

        assert outcome.error is ScanErrorKind.PERSISTENCE
        assert session.result == MILK


class TestSaveManual:
    @pytest.mark.asyncio
    async def test_saves_user_supplied_data(self, inventory):
        coordinator = ScanCoordinator(FakeClient(result=ESCALATED), inventory)
        session = coordinator.open_session()
        outcome = await coordinator.handle_scan(session, "999999")

        saved = await coordinator.save_manual(
            session, outcome.code, " Oat Milk ", "", date(2025, 3, 1)
        )

        assert saved.saved
        assert saved.item.product_name == "Oat Milk"
        assert saved.item.category == "General"
        assert saved.item.expiry_date == date(2025, 3, 1)
        assert saved.item.confidence_score == 0.0
        assert session.result is None

    @pytest.mark.asyncio
    async def test_blank_name_is_refused(self, inventory):
        coordinator = ScanCoordinator(FakeClient(), inventory)
        outcome = await coordinator.save_manual(
            coordinator.open_session(), "999999", "  ", "Dairy", TODAY
        )
        assert outcome.error is ScanErrorKind.INVALID_INPUT
        assert inventory.get_items() == []

    @pytest.mark.asyncio
    async def test_retry_reuses_key_but_new_data_does_not(self, inventory):
        gateway = FlakyGateway(inventory, failures=2)
        coordinator = ScanCoordinator(FakeClient(result=ESCALATED), gateway)
        session = coordinator.open_session()
        await coordinator.handle_scan(session, "999999")

        await coordinator.save_manual(session, "999999", "Oat Milk", "Dairy", TODAY)
        await coordinator.save_manual(session, "999999", "Oat Milk", "Dairy", TODAY)
        saved = await coordinator.save_manual(
            session, "999999", "Soy Milk", "Dairy", TODAY
        )

        assert saved.saved
        assert gateway.keys[0] == gateway.keys[1]
        assert gateway.keys[2] != gateway.keys[1]
        assert [i.product_name for i in inventory.get_items()] == ["Soy Milk"]
