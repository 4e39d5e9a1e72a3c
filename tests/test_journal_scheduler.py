"""
Tests — SyncJournal bookkeeping and the ReconciliationScheduler loop.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.journal import SyncJournal
from core.scheduler import ReconciliationScheduler
from models.schemas import EntityType, ReconciliationTally, SyncOutcome, SyncStatus


def outcome(status: SyncStatus, entity_id: str = "C1") -> SyncOutcome:
    return SyncOutcome(operation="update", entity=EntityType.CLIENT,
                       entity_id=entity_id, status=status)


class TestSyncJournal:

    def test_counters(self):
        journal = SyncJournal()
        journal.record(outcome(SyncStatus.OK))
        journal.record(outcome(SyncStatus.OK))
        journal.record(outcome(SyncStatus.FAILED))
        journal.record(outcome(SyncStatus.SKIPPED))

        assert (journal.synced, journal.failed, journal.skipped) == (2, 1, 1)
        assert journal.failure_rate == pytest.approx(1 / 3)

    def test_empty_failure_rate(self):
        assert SyncJournal().failure_rate == 0.0

    def test_bounded_and_newest_first(self):
        journal = SyncJournal(max_entries=3)
        for i in range(5):
            journal.record(outcome(SyncStatus.OK, entity_id=f"C{i}"))

        assert [o.entity_id for o in journal.recent()] == ["C4", "C3", "C2"]
        assert journal.synced == 5
        assert len(journal.recent(limit=1)) == 1

    def test_failures_only(self):
        journal = SyncJournal()
        journal.record(outcome(SyncStatus.OK, "C1"))
        journal.record(outcome(SyncStatus.FAILED, "C2"))
        assert [o.entity_id for o in journal.recent(failures_only=True)] == ["C2"]

    def test_last_reconciliation(self):
        journal = SyncJournal()
        old = ReconciliationTally(entity=EntityType.CLIENT, success=True, count=1)
        new = ReconciliationTally(entity=EntityType.CLIENT, success=False)
        journal.record_reconciliation(old)
        journal.record_reconciliation(new)

        assert journal.last_reconciliation(EntityType.CLIENT) is new
        assert journal.last_reconciliation(EntityType.BRAND) is None

    def test_to_dict(self):
        journal = SyncJournal()
        journal.record(outcome(SyncStatus.FAILED, "C7"))
        journal.record_reconciliation(ReconciliationTally(entity=EntityType.PRODUCT, success=True, count=4))

        data = journal.to_dict()

        assert data["failed"] == 1
        assert data["failure_rate"] == 1.0
        assert data["recent_failures"][0]["entity_id"] == "C7"
        assert data["recent_failures"][0]["status"] == "failed"
        assert data["last_reconciliations"]["product"]["count"] == 4


class TestReconciliationScheduler:

    @pytest.fixture
    def mock_facade(self):
        facade = MagicMock()
        facade.reconcile_all = AsyncMock(return_value={
            "client": ReconciliationTally(entity=EntityType.CLIENT, success=True),
        })
        return facade

    def test_entities_are_normalized(self, mock_facade):
        scheduler = ReconciliationScheduler(mock_facade, entities=["client", EntityType.BRAND])
        assert scheduler.entities == [EntityType.CLIENT, EntityType.BRAND]
        assert ReconciliationScheduler(mock_facade).entities is None

    @pytest.mark.asyncio
    async def test_run_once(self, mock_facade):
        scheduler = ReconciliationScheduler(mock_facade, entities=["product"])

        results = await scheduler.run_once()

        assert "client" in results
        assert scheduler.runs == 1
        mock_facade.reconcile_all.assert_awaited_once_with([EntityType.PRODUCT])

    @pytest.mark.asyncio
    async def test_overlapping_run_is_skipped(self, mock_facade):
        gate = asyncio.Event()

        async def slow_reconcile(entities):
            await gate.wait()
            return {}

        mock_facade.reconcile_all = AsyncMock(side_effect=slow_reconcile)
        scheduler = ReconciliationScheduler(mock_facade)

        first = asyncio.create_task(scheduler.run_once())
        await asyncio.sleep(0)
        assert await scheduler.run_once() is None

        gate.set()
        assert await first == {}
        assert scheduler.runs == 1

    @pytest.mark.asyncio
    async def test_loop_survives_failing_cycle(self, mock_facade):
        calls = []

        async def flaky(entities):
            calls.append(entities)
            if len(calls) == 1:
                raise RuntimeError("boom")
            return {}

        mock_facade.reconcile_all = AsyncMock(side_effect=flaky)
        scheduler = ReconciliationScheduler(mock_facade, interval_seconds=0)

        await scheduler.start()
        assert scheduler.running
        for _ in range(20):
            if mock_facade.reconcile_all.await_count >= 2:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert mock_facade.reconcile_all.await_count >= 2
        assert scheduler.runs >= 1
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_stop_without_start(self, mock_facade):
        scheduler = ReconciliationScheduler(mock_facade)
        await scheduler.stop()
        assert not scheduler.running
