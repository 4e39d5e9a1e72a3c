"""Shared test fixtures for erp-bridge."""
import copy
import uuid
from typing import Any

import pytest
import pytest_asyncio

from backend.base import BackendAdapter
from backend.errors import NotFoundError, TransportError
from backend.factory import AdapterFactory
from config.settings import PrimaryConfig, SecondaryConfig, Settings, SyncConfig
from core.facade import IntegrationFacade
from core.journal import SyncJournal
from models.schemas import BackendKind, EntityType, StatisticsKind


class InMemoryBackendAdapter(BackendAdapter):
    """
    Dict-backed adapter double.

    - `down = True` makes every call raise TransportError(503)
    - `fail_ops` makes the named operations raise
    - `fail_sync_ids` makes sync_record fail for those record ids
    - `calls` records (operation, args) in order
    """

    def __init__(self, kind: BackendKind, id_prefix: str = ""):
        self.kind = kind
        self.id_prefix = id_prefix or kind.value[:1].upper()
        self.records: dict[EntityType, dict[str, dict[str, Any]]] = {e: {} for e in EntityType}
        self.statistics: dict[StatisticsKind, dict[str, Any]] = {
            StatisticsKind.SALES: {"totalSales": 0, "source": kind.value},
            StatisticsKind.FINANCIAL: {"totalRevenue": 0, "source": kind.value},
        }
        self.calls: list[tuple[str, tuple]] = []
        self.down = False
        self.fail_ops: set[str] = set()
        self.fail_sync_ids: set[str] = set()
        self.healthy = True

    def seed(self, entity: EntityType, *records: dict[str, Any]) -> None:
        for record in records:
            self.records[entity][str(record["id"])] = copy.deepcopy(record)

    def called(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    def _enter(self, operation: str, *args: Any) -> None:
        self.calls.append((operation, args))
        if self.down or operation in self.fail_ops:
            raise TransportError(f"{self.kind.value} unavailable", 503, self.kind.value)

    def _find(self, entity: EntityType, entity_id: str) -> dict[str, Any]:
        record = self.records[entity].get(str(entity_id))
        if record is None:
            raise NotFoundError(f"{entity.value} {entity_id} not found", 404, self.kind.value)
        return record

    async def list(self, entity, filters=None):
        self._enter("list", entity, filters)
        items = list(self.records[entity].values())
        for key, value in (filters or {}).items():
            items = [r for r in items if r.get(key) == value]
        return copy.deepcopy(items)

    async def get(self, entity, entity_id):
        self._enter("get", entity, entity_id)
        return copy.deepcopy(self._find(entity, entity_id))

    async def create(self, entity, data):
        self._enter("create", entity, data)
        record = dict(data)
        record.setdefault("id", f"{self.id_prefix}-{uuid.uuid4().hex[:6]}")
        self.records[entity][str(record["id"])] = record
        return copy.deepcopy(record)

    async def update(self, entity, entity_id, data):
        self._enter("update", entity, entity_id, data)
        record = self.records[entity].setdefault(str(entity_id), {"id": entity_id})
        record.update(data)
        return copy.deepcopy(record)

    async def delete(self, entity, entity_id):
        self._enter("delete", entity, entity_id)
        self._find(entity, entity_id)
        del self.records[entity][str(entity_id)]

    async def update_stock(self, product_id, quantity):
        self._enter("update_stock", product_id, quantity)
        record = self._find(EntityType.PRODUCT, product_id)
        record["stock"] = quantity
        return copy.deepcopy(record)

    async def update_status(self, order_id, status):
        self._enter("update_status", order_id, status)
        record = self._find(EntityType.ORDER, order_id)
        record["status"] = status
        return copy.deepcopy(record)

    async def mark_paid(self, invoice_id, payment_data):
        self._enter("mark_paid", invoice_id, payment_data)
        record = self._find(EntityType.INVOICE, invoice_id)
        record["status"] = "paid"
        record["payment"] = dict(payment_data or {})
        return copy.deepcopy(record)

    async def list_unpaid_invoices(self):
        self._enter("list_unpaid_invoices")
        return [copy.deepcopy(r) for r in self.records[EntityType.INVOICE].values()
                if r.get("status") != "paid"]

    async def get_account_balance(self, account_id):
        self._enter("get_account_balance", account_id)
        record = self._find(EntityType.ACCOUNT, account_id)
        return {"accountId": account_id, "balance": record.get("balance", 0)}

    async def get_statistics(self, kind, filters=None):
        self._enter("get_statistics", kind, filters)
        return dict(self.statistics[StatisticsKind(kind)])

    async def health_check(self):
        self._enter("health_check")
        return self.healthy

    async def sync_record(self, entity, record):
        self._enter("sync_record", entity, record)
        if str(record.get("id")) in self.fail_sync_ids:
            raise TransportError(f"cannot sync {record.get('id')}", 500, self.kind.value)
        self.records[entity][str(record["id"])] = copy.deepcopy(record)
        return copy.deepcopy(record)


@pytest.fixture
def primary() -> InMemoryBackendAdapter:
    return InMemoryBackendAdapter(BackendKind.PRIMARY, id_prefix="ERP")


@pytest.fixture
def secondary() -> InMemoryBackendAdapter:
    return InMemoryBackendAdapter(BackendKind.SECONDARY, id_prefix="LOC")


@pytest.fixture
def journal() -> SyncJournal:
    return SyncJournal(max_entries=100)


@pytest.fixture
def facade(primary, secondary, journal) -> IntegrationFacade:
    return IntegrationFacade(primary, secondary, journal)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="test",
        primary=PrimaryConfig(
            base_url="https://erp.test",
            api_key="secret-key",
            company_id="ACME",
            timeout_seconds=2.0,
        ),
        secondary=SecondaryConfig(base_url="http://local.test/api"),
        sync=SyncConfig(enabled=False, interval_seconds=60, journal_size=50),
    )


@pytest.fixture
def sample_client() -> dict[str, Any]:
    return {"id": "C1", "name": "Atlas Distribution", "creditLimit": 50000}


@pytest_asyncio.fixture
async def factory(settings):
    f = AdapterFactory(settings)
    yield f
    await f.close()
