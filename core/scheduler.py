"""
Reconciliation Scheduler — periodic bulk re-mirroring of ERP data.

Replication of individual writes is best effort, so mirrors missed while
the local store was down stay missed until a bulk pass. This runs that
pass on an interval as a background task inside the API lifespan.

Configure in settings:
    sync:
      enabled: true
      interval_seconds: 3600
      entities: [client, product, category]
"""
from __future__ import annotations

import asyncio
import structlog
from typing import Iterable, Optional

from core.facade import IntegrationFacade
from models.schemas import EntityType, ReconciliationTally

logger = structlog.get_logger()


class ReconciliationScheduler:

    def __init__(
        self,
        facade: IntegrationFacade,
        interval_seconds: int = 3600,
        entities: Iterable[EntityType | str] = None,
    ):
        self.facade = facade
        self.interval_seconds = interval_seconds
        self.entities = [EntityType(e) for e in entities] if entities else None
        self.runs: int = 0
        self._running = False
        self._busy = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the reconciliation loop as a background task."""
        self._running = True
        self._task = asyncio.create_task(self._loop(), name="reconciliation_scheduler")
        logger.info("reconciliation_scheduler_started", interval_s=self.interval_seconds)

    async def stop(self) -> None:
        """Gracefully stop the scheduler."""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("reconciliation_scheduler_stopped")

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("reconciliation_cycle_error", error=str(e))

            await asyncio.sleep(self.interval_seconds)

    async def run_once(self) -> Optional[dict[str, ReconciliationTally]]:
        """One reconciliation cycle. Returns None if a cycle is already in progress."""
        if self._busy:
            logger.info("reconciliation_cycle_skipped", reason="already_running")
            return None
        self._busy = True
        try:
            results = await self.facade.reconcile_all(self.entities)
            self.runs += 1
            return results
        finally:
            self._busy = False
