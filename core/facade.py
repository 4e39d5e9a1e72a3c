"""
Unified Integration Facade — the single entry point for business features.

One service object per entity type. Reads go through the router alone;
writes go through the router and, when the primary answered, the
replicator. Every call returns an OperationResult so callers can tell a
clean primary answer from a fallback answer or a stale mirror, without
ever branching on which backend they are talking to.

Contract notes:
  - Only BothBackendsFailed escapes a routed call. Unrouted calls
    (reconciliation, connection test, full sync) never raise.
  - Concurrent writes to the same id are NOT serialized here. Last write
    wins or conflict detection is up to each backend, and a later write's
    mirror may overtake an earlier one's. There is no cross-store atomicity.
  - A create served by the secondary (primary down) carries the
    secondary's own id. Nothing reconciles that id with the primary once it
    recovers; the outcome is journaled as skipped with reason
    "served_by_secondary" so it can be found.

Usage:
    facade = IntegrationFacade.from_factory(AdapterFactory(settings))
    result = await facade.clients.update("C1", {"creditLimit": 60000})
    result.data        # {"id": "C1", "creditLimit": 60000}
    result.sync.status # "ok" | "failed"
"""
from __future__ import annotations

import structlog
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from backend.base import BackendAdapter
from backend.factory import AdapterFactory
from core.journal import SyncJournal
from core.replicator import SyncReplicator, record_id
from core.router import RequestRouter, RoutedResult
from models.schemas import (
    BackendKind, EntityType, OperationResult, ReconciliationTally,
    StatisticsKind, SyncOutcome, SyncStatus,
)

logger = structlog.get_logger()

DEFAULT_RECONCILE_ENTITIES = (EntityType.CLIENT, EntityType.PRODUCT, EntityType.CATEGORY)


def _describe(exc: Optional[BaseException]) -> Optional[str]:
    if exc is None:
        return None
    return f"{type(exc).__name__}: {exc}"


class EntityService:
    """getAll / getById / create / update / delete plus reconciliation for one entity type."""

    def __init__(
        self,
        entity: EntityType,
        router: RequestRouter,
        replicator: SyncReplicator,
        journal: Optional[SyncJournal] = None,
    ):
        self.entity = entity
        self.router = router
        self.replicator = replicator
        self.journal = journal

    @property
    def primary(self) -> BackendAdapter:
        return self.router.primary

    @property
    def secondary(self) -> BackendAdapter:
        return self.router.secondary

    # ── Reads ─────────────────────────────────────────────────

    async def _read(self, operation: str, *args: Any) -> OperationResult:
        routed = await self.router.route(operation, *args)
        return OperationResult(data=routed.value, source=routed.source,
                               primary_error=_describe(routed.primary_error))

    async def get_all(self, filters: dict[str, Any] = None) -> OperationResult:
        return await self._read("list", self.entity, filters)

    async def get_by_id(self, entity_id: str) -> OperationResult:
        return await self._read("get", self.entity, entity_id)

    # ── Writes ────────────────────────────────────────────────

    async def _write(
        self,
        operation: str,
        routed: RoutedResult,
        entity_id: Optional[str] = None,
        record: Any = None,
        payload: Any = None,
    ) -> OperationResult:
        if routed.source == BackendKind.PRIMARY:
            sync = await self.replicator.replicate(
                operation, self.entity, record=record, entity_id=entity_id, payload=payload,
            )
        else:
            entity_id = entity_id or record_id(routed.value)
            if operation == "create":
                logger.warning("created_on_secondary", entity=self.entity.value, entity_id=entity_id)
            sync = self.replicator.skipped(operation, self.entity, entity_id,
                                           reason="served_by_secondary")
        return OperationResult(data=routed.value, source=routed.source,
                               primary_error=_describe(routed.primary_error), sync=sync)

    async def create(self, data: dict[str, Any]) -> OperationResult:
        routed = await self.router.route("create", self.entity, data)
        return await self._write("create", routed, record=routed.value)

    async def update(self, entity_id: str, data: dict[str, Any]) -> OperationResult:
        routed = await self.router.route("update", self.entity, entity_id, data)
        record = routed.value if routed.value is not None else data
        return await self._write("update", routed, entity_id=entity_id, record=record)

    async def delete(self, entity_id: str) -> OperationResult:
        routed = await self.router.route("delete", self.entity, entity_id)
        return await self._write("delete", routed, entity_id=entity_id)

    # ── Reconciliation ────────────────────────────────────────

    async def reconcile(self) -> ReconciliationTally:
        """
        Re-mirror the whole collection from the primary into the secondary.

        Never raises: per-record failures are collected in `errors`, and a
        failed collection fetch yields success=False with one general error.
        """
        tally = ReconciliationTally(entity=self.entity)
        logger.info("reconciliation_started", entity=self.entity.value)
        try:
            records = await self.primary.list(self.entity)
        except Exception as e:
            tally.errors.append(f"general error: {e}")
            logger.error("reconciliation_fetch_failed", entity=self.entity.value, error=str(e))
        else:
            tally.success = True
            tally.total = len(records)
            for record in records:
                try:
                    await self.secondary.sync_record(self.entity, record)
                    tally.count += 1
                except Exception as e:
                    tally.errors.append(f"{self.entity.value} {record_id(record)}: {e}")

        tally.finished_at = datetime.now(timezone.utc)
        if self.journal is not None:
            self.journal.record_reconciliation(tally)
        logger.info("reconciliation_finished", entity=self.entity.value,
                    count=tally.count, total=tally.total, errors=len(tally.errors))
        return tally

    async def reconcile_one(self, entity_id: str) -> SyncOutcome:
        """Re-mirror a single record from the primary. Never raises."""
        try:
            record = await self.primary.get(self.entity, entity_id)
            await self.secondary.sync_record(self.entity, record)
        except Exception as e:
            logger.warning("record_reconciliation_failed", entity=self.entity.value,
                           entity_id=entity_id, error=str(e))
            outcome = SyncOutcome(operation="reconcile", entity=self.entity, entity_id=entity_id,
                                  status=SyncStatus.FAILED, reason=f"{type(e).__name__}: {e}")
        else:
            outcome = SyncOutcome(operation="reconcile", entity=self.entity, entity_id=entity_id,
                                  status=SyncStatus.OK)
        if self.journal is not None:
            self.journal.record(outcome)
        return outcome


class ProductService(EntityService):

    async def update_stock(self, product_id: str, quantity: int) -> OperationResult:
        routed = await self.router.route("update_stock", product_id, quantity)
        return await self._write("update_stock", routed, entity_id=product_id, payload=quantity)


class OrderService(EntityService):

    async def update_status(self, order_id: str, status: str) -> OperationResult:
        routed = await self.router.route("update_status", order_id, status)
        return await self._write("update_status", routed, entity_id=order_id, payload=status)

    async def get_by_status(self, status: str) -> OperationResult:
        return await self._read("list", self.entity, {"status": status})


class InvoiceService(EntityService):

    async def mark_paid(self, invoice_id: str, payment_data: dict[str, Any]) -> OperationResult:
        routed = await self.router.route("mark_paid", invoice_id, payment_data)
        return await self._write("mark_paid", routed, entity_id=invoice_id, payload=payment_data)

    async def get_unpaid(self) -> OperationResult:
        return await self._read("list_unpaid_invoices")


class AccountService(EntityService):

    async def get_balance(self, account_id: str) -> OperationResult:
        return await self._read("get_account_balance", account_id)


class StatisticsService:
    """Read-only reports. Not an entity: nothing to write or mirror."""

    def __init__(self, router: RequestRouter):
        self.router = router

    async def _report(self, kind: StatisticsKind, filters: dict[str, Any] = None) -> OperationResult:
        routed = await self.router.route("get_statistics", kind, filters)
        return OperationResult(data=routed.value, source=routed.source,
                               primary_error=_describe(routed.primary_error))

    async def sales(self, filters: dict[str, Any] = None) -> OperationResult:
        return await self._report(StatisticsKind.SALES, filters)

    async def financial(self, filters: dict[str, Any] = None) -> OperationResult:
        return await self._report(StatisticsKind.FINANCIAL, filters)


_SERVICE_CLASSES: dict[EntityType, type[EntityService]] = {
    EntityType.PRODUCT: ProductService,
    EntityType.ORDER: OrderService,
    EntityType.INVOICE: InvoiceService,
    EntityType.ACCOUNT: AccountService,
}


class IntegrationFacade:

    def __init__(
        self,
        primary: BackendAdapter,
        secondary: BackendAdapter,
        journal: Optional[SyncJournal] = None,
    ):
        self.primary = primary
        self.secondary = secondary
        self.journal = journal if journal is not None else SyncJournal()
        self.router = RequestRouter(primary, secondary)
        self.replicator = SyncReplicator(secondary, self.journal)

        self._services: dict[EntityType, EntityService] = {}
        for entity in EntityType:
            cls = _SERVICE_CLASSES.get(entity, EntityService)
            self._services[entity] = cls(entity, self.router, self.replicator, self.journal)
        self.statistics = StatisticsService(self.router)

    @classmethod
    def from_factory(cls, factory: AdapterFactory, journal: Optional[SyncJournal] = None) -> "IntegrationFacade":
        if journal is None:
            journal = SyncJournal(max_entries=factory.settings.sync.journal_size)
        return cls(factory.get_instance(), factory.create_secondary(), journal)

    def service(self, entity: EntityType | str) -> EntityService:
        return self._services[EntityType(entity)]

    @property
    def clients(self) -> EntityService:
        return self._services[EntityType.CLIENT]

    @property
    def products(self) -> ProductService:
        return self._services[EntityType.PRODUCT]

    @property
    def categories(self) -> EntityService:
        return self._services[EntityType.CATEGORY]

    @property
    def brands(self) -> EntityService:
        return self._services[EntityType.BRAND]

    @property
    def orders(self) -> OrderService:
        return self._services[EntityType.ORDER]

    @property
    def invoices(self) -> InvoiceService:
        return self._services[EntityType.INVOICE]

    @property
    def accounts(self) -> AccountService:
        return self._services[EntityType.ACCOUNT]

    # ── Reconciliation ────────────────────────────────────────

    async def reconcile(self, entity: EntityType | str) -> ReconciliationTally:
        return await self.service(entity).reconcile()

    async def reconcile_all(
        self, entities: Iterable[EntityType | str] = None,
    ) -> dict[str, ReconciliationTally]:
        """Reconcile each entity type in turn; one type failing does not stop the others."""
        results: dict[str, ReconciliationTally] = {}
        for entity in entities or DEFAULT_RECONCILE_ENTITIES:
            tally = await self.reconcile(entity)
            results[tally.entity.value] = tally
        return results

    # ── Diagnostics ───────────────────────────────────────────

    async def test_connection(self) -> bool:
        try:
            return bool(await self.primary.health_check())
        except Exception as e:
            logger.warning("primary_connection_test_failed", error=str(e))
            return False

    async def trigger_full_sync(self) -> SyncOutcome:
        """
        Ask the ERP to run its own bulk sync. Not routed: the local store has
        no equivalent. Never raises; a refused request is a FAILED outcome.
        """
        try:
            await self.primary.trigger_full_sync()
        except Exception as e:
            logger.warning("full_sync_failed", error_type=type(e).__name__, error=str(e))
            return SyncOutcome(operation="full_sync", status=SyncStatus.FAILED,
                               reason=f"{type(e).__name__}: {e}")
        return SyncOutcome(operation="full_sync", status=SyncStatus.OK)

    def service_info(self) -> dict[str, Any]:
        return {
            "primary": type(self.primary).__name__,
            "secondary": type(self.secondary).__name__,
            "sync": self.journal.to_dict(),
        }

    async def close(self) -> None:
        await self.primary.close()
        await self.secondary.close()
