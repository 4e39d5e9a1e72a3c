"""
Sync Replicator — mirror a successful primary write into the secondary store.

Best effort and failure-isolated: whatever the secondary does, the caller
still gets the primary's result. No retry and no queue; a missed mirror
stays missed until the next bulk reconciliation. Flows primary → secondary
only.
"""
from __future__ import annotations

import structlog
from typing import Any, Optional

from backend.base import BackendAdapter
from core.journal import SyncJournal
from models.schemas import EntityType, SyncOutcome, SyncStatus

logger = structlog.get_logger()


def record_id(record: Any) -> Optional[str]:
    if isinstance(record, dict) and record.get("id") is not None:
        return str(record["id"])
    return None


class SyncReplicator:

    def __init__(self, secondary: BackendAdapter, journal: Optional[SyncJournal] = None):
        self.secondary = secondary
        self.journal = journal

    async def replicate(
        self,
        operation: str,
        entity: Optional[EntityType] = None,
        record: Any = None,
        entity_id: Optional[str] = None,
        payload: Any = None,
    ) -> SyncOutcome:
        """
        Apply `operation` to the secondary. Never raises.

        create/update send the primary's returned record so the mirror carries
        the primary-assigned id; domain mutations resend the original payload.
        """
        entity_id = entity_id or record_id(record)
        if operation == "create" and entity_id is None:
            # the mirror must carry the primary-assigned id
            logger.warning("replication_refused", operation=operation,
                           entity=entity.value if entity else None, reason="primary returned no id")
            outcome = SyncOutcome(operation=operation, entity=entity, status=SyncStatus.FAILED,
                                  reason="primary returned no id")
            if self.journal is not None:
                self.journal.record(outcome)
            return outcome

        try:
            await self._apply(operation, entity, record, entity_id, payload)
        except Exception as e:
            logger.warning("replication_failed", operation=operation,
                           entity=entity.value if entity else None,
                           entity_id=entity_id, error=str(e))
            outcome = SyncOutcome(operation=operation, entity=entity, entity_id=entity_id,
                                  status=SyncStatus.FAILED, reason=f"{type(e).__name__}: {e}")
        else:
            logger.debug("replication_succeeded", operation=operation, entity_id=entity_id)
            outcome = SyncOutcome(operation=operation, entity=entity, entity_id=entity_id,
                                  status=SyncStatus.OK)

        if self.journal is not None:
            self.journal.record(outcome)
        return outcome

    async def _apply(self, operation: str, entity: Optional[EntityType], record: Any,
                     entity_id: Optional[str], payload: Any) -> None:
        if operation == "create":
            await self.secondary.create(entity, record)
        elif operation == "update":
            await self.secondary.update(entity, entity_id, record)
        elif operation == "delete":
            await self.secondary.delete(entity, entity_id)
        elif operation == "update_stock":
            await self.secondary.update_stock(entity_id, payload)
        elif operation == "update_status":
            await self.secondary.update_status(entity_id, payload)
        elif operation == "mark_paid":
            await self.secondary.mark_paid(entity_id, payload)
        else:
            raise ValueError(f"operation {operation!r} cannot be replicated")

    def skipped(self, operation: str, entity: Optional[EntityType] = None,
                entity_id: Optional[str] = None, reason: str = "") -> SyncOutcome:
        """Outcome for a write the secondary already served itself."""
        outcome = SyncOutcome(operation=operation, entity=entity, entity_id=entity_id,
                              status=SyncStatus.SKIPPED, reason=reason)
        if self.journal is not None:
            self.journal.record(outcome)
        return outcome
