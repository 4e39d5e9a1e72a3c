"""
Sync Journal — in-memory record of mirror outcomes and reconciliation runs.

Lets operators see drift between the ERP and the local store instead of
losing it: every replicated write and every bulk pass lands here. Bounded,
single-process, lost on restart.
"""
from __future__ import annotations

from collections import deque
from typing import Any, Optional

from models.schemas import EntityType, ReconciliationTally, SyncOutcome, SyncStatus


class SyncJournal:
    """Tracks mirror successes, failures and skips plus recent reconciliation tallies."""

    def __init__(self, max_entries: int = 500):
        self.max_entries = max_entries
        self._outcomes: deque[SyncOutcome] = deque(maxlen=max_entries)
        self._tallies: deque[ReconciliationTally] = deque(maxlen=50)
        self.synced: int = 0
        self.failed: int = 0
        self.skipped: int = 0

    def record(self, outcome: SyncOutcome) -> None:
        self._outcomes.append(outcome)
        if outcome.status == SyncStatus.OK:
            self.synced += 1
        elif outcome.status == SyncStatus.FAILED:
            self.failed += 1
        else:
            self.skipped += 1

    def record_reconciliation(self, tally: ReconciliationTally) -> None:
        self._tallies.append(tally)

    def recent(self, limit: int = 50, failures_only: bool = False) -> list[SyncOutcome]:
        items = [o for o in self._outcomes if not failures_only or o.status == SyncStatus.FAILED]
        return list(reversed(items))[:limit]

    def last_reconciliation(self, entity: EntityType) -> Optional[ReconciliationTally]:
        for tally in reversed(self._tallies):
            if tally.entity == entity:
                return tally
        return None

    @property
    def failure_rate(self) -> float:
        total = self.synced + self.failed
        return self.failed / total if total > 0 else 0.0

    def to_dict(self) -> dict[str, Any]:
        last_runs = {}
        for tally in self._tallies:
            last_runs[tally.entity.value] = {
                "success": tally.success,
                "count": tally.count,
                "errors": len(tally.errors),
                "finished_at": tally.finished_at.isoformat() if tally.finished_at else None,
            }
        return {
            "synced": self.synced,
            "failed": self.failed,
            "skipped": self.skipped,
            "failure_rate": round(self.failure_rate, 4),
            "recent_failures": [o.model_dump(mode="json") for o in self.recent(10, failures_only=True)],
            "last_reconciliations": last_runs,
        }
