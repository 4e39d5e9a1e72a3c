"""
FastAPI Application — integration diagnostics and reconciliation.

Provides:
- Health and integration status (active backend, credentials, sync drift)
- ERP connectivity probe
- Manual bulk reconciliation, per entity type or all at once
- Recent sync outcomes from the journal
- Scheduler for periodic reconciliation

The factory, facade and scheduler are built once in the lifespan and kept
on app.state; business features import the facade from there.
"""
from __future__ import annotations

import structlog
from datetime import datetime, timezone
from contextlib import asynccontextmanager
from typing import Optional

# Load .env before any config is read
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, HTTPException, Query, Request

from backend.factory import AdapterFactory
from config.settings import Settings, get_settings
from core.facade import IntegrationFacade
from core.journal import SyncJournal
from core.scheduler import ReconciliationScheduler
from models.schemas import EntityType

logger = structlog.get_logger()


def create_app(
    settings: Settings = None,
    factory: AdapterFactory = None,
    facade: IntegrationFacade = None,
) -> FastAPI:
    """Build the app. Pass a factory or facade to inject adapters (tests, embedding)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or get_settings()
        app.state.settings = cfg
        app.state.factory = factory or AdapterFactory(cfg)
        app.state.facade = facade or IntegrationFacade.from_factory(
            app.state.factory, SyncJournal(max_entries=cfg.sync.journal_size),
        )
        app.state.scheduler = ReconciliationScheduler(
            app.state.facade,
            interval_seconds=cfg.sync.interval_seconds,
            entities=cfg.sync.entities,
        )
        if cfg.sync.enabled:
            await app.state.scheduler.start()

        logger.info("erp_bridge_started", configured=cfg.primary.configured,
                    scheduler=cfg.sync.enabled)
        yield

        await app.state.scheduler.stop()
        await app.state.facade.close()
        logger.info("erp_bridge_stopped")

    app = FastAPI(
        title=(settings.app_name if settings else "erp-bridge"),
        description="Primary/secondary backend integration layer",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.get("/health")
    async def health():
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/api/v1/integration/status")
    async def integration_status(request: Request):
        state = request.app.state
        return {
            "service": state.factory.describe().model_dump(mode="json"),
            "facade": state.facade.service_info(),
            "scheduler": {
                "running": state.scheduler.running,
                "runs": state.scheduler.runs,
                "interval_seconds": state.scheduler.interval_seconds,
            },
        }

    @app.post("/api/v1/integration/test-connection")
    async def test_connection(request: Request):
        return {"connected": await request.app.state.facade.test_connection()}

    @app.post("/api/v1/integration/full-sync")
    async def full_sync(request: Request):
        outcome = await request.app.state.facade.trigger_full_sync()
        return outcome.model_dump(mode="json")

    @app.post("/api/v1/integration/reconcile")
    async def reconcile_all(request: Request):
        results = await request.app.state.facade.reconcile_all()
        return {name: tally.model_dump(mode="json") for name, tally in results.items()}

    @app.post("/api/v1/integration/reconcile/{entity}")
    async def reconcile_entity(entity: str, request: Request):
        try:
            entity_type = EntityType(entity)
        except ValueError:
            raise HTTPException(404, f"Unknown entity type: {entity}")
        tally = await request.app.state.facade.reconcile(entity_type)
        return tally.model_dump(mode="json")

    @app.get("/api/v1/integration/sync-log")
    async def sync_log(
        request: Request,
        limit: int = Query(50, ge=1, le=500),
        failures_only: bool = False,
    ):
        journal = request.app.state.facade.journal
        return {
            "entries": [o.model_dump(mode="json") for o in journal.recent(limit, failures_only)],
            "stats": journal.to_dict(),
        }

    @app.post("/api/v1/integration/scheduler/run")
    async def run_scheduler(request: Request):
        results: Optional[dict] = await request.app.state.scheduler.run_once()
        if results is None:
            return {"status": "busy"}
        return {
            "status": "completed",
            "results": {name: tally.model_dump(mode="json") for name, tally in results.items()},
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("api.main:app", host="0.0.0.0", port=8000, reload=True)
