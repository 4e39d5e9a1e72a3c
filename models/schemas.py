"""
Core data models for the erp-bridge integration layer.
These are the universal types shared across adapters, router and facade.

Entity records themselves stay plain dicts: the layer brokers them between
backends without owning their shape.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class EntityType(str, Enum):
    CLIENT = "client"
    PRODUCT = "product"
    CATEGORY = "category"
    BRAND = "brand"
    ORDER = "order"
    INVOICE = "invoice"
    ACCOUNT = "account"


class BackendKind(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class SyncStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


class StatisticsKind(str, Enum):
    SALES = "sales"
    FINANCIAL = "financial"


# ──────────────────────────────────────────────────────────────
#  Response normalization
# ──────────────────────────────────────────────────────────────

class ResponseEnvelope(BaseModel):
    """
    The `{data: ...}` wrapper some backends put around payloads.

    Only a dict made exclusively of envelope keys counts as an envelope, so a
    record that happens to own a `data` field is left alone.
    """
    model_config = ConfigDict(extra="forbid")

    data: Any = None
    success: Optional[bool] = None
    message: Any = None
    status: Any = None
    meta: Optional[dict[str, Any]] = None
    pagination: Optional[dict[str, Any]] = None
    total: Optional[int] = None
    count: Optional[int] = None

    @classmethod
    def unwrap(cls, body: Any) -> Any:
        """Strip (possibly nested) envelopes; bare payloads pass through unchanged."""
        while isinstance(body, dict) and "data" in body:
            try:
                envelope = cls.model_validate(body)
            except ValidationError:
                break
            body = envelope.data
        return body

    @classmethod
    def unwrap_collection(cls, body: Any) -> list[Any]:
        value = cls.unwrap(body)
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError(f"expected a collection, got {type(value).__name__}")
        return value


# ──────────────────────────────────────────────────────────────
#  Outcomes
# ──────────────────────────────────────────────────────────────

class SyncOutcome(BaseModel):
    """Whether a primary write was mirrored into the secondary store."""
    operation: str
    entity: Optional[EntityType] = None
    entity_id: Optional[str] = None
    status: SyncStatus
    reason: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)

    @property
    def ok(self) -> bool:
        return self.status == SyncStatus.OK


class OperationResult(BaseModel):
    """
    What every facade call returns.

    `data` is the unchanged value from whichever backend answered.
    `primary_error` is set when the fallback path was taken; `sync` is set
    for writes only.
    """
    data: Any = None
    source: BackendKind
    primary_error: Optional[str] = None
    sync: Optional[SyncOutcome] = None

    @property
    def via_fallback(self) -> bool:
        return self.source == BackendKind.SECONDARY

    @property
    def degraded(self) -> bool:
        """Served by the secondary, or the secondary mirror is now stale."""
        if self.via_fallback:
            return True
        return self.sync is not None and self.sync.status == SyncStatus.FAILED


class ReconciliationTally(BaseModel):
    """Per-entity result of a bulk primary → secondary reconciliation pass."""
    entity: EntityType
    success: bool = False
    count: int = 0
    total: int = 0
    errors: list[str] = []
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None


class ServiceInfo(BaseModel):
    active_kind: Optional[BackendKind] = None
    configured: bool = False
    initialized: bool = False
    environment: str = ""
    base_url: str = ""
    has_api_key: bool = False
    has_company_id: bool = False
