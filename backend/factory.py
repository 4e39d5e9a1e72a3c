"""
Adapter Factory — single point of construction for the primary ERP adapter.

The primary is expensive to configure (credentials, base URL), so one
instance is built and cached. The factory itself is an ordinary object:
build it once at process start and hand it (or the adapters it returns) to
the router and facade.

Usage:
    factory = AdapterFactory(settings)
    primary = factory.get_instance()
    secondary = factory.create_secondary()
    ok = await factory.test_connection()
"""
from __future__ import annotations

import structlog
from typing import Optional

import httpx

from backend.primary import PrimaryERPAdapter
from backend.secondary import SecondaryStoreAdapter
from config.settings import Settings, get_settings
from models.schemas import BackendKind, ServiceInfo

logger = structlog.get_logger()


class AdapterFactory:
    """
    Creates and caches the primary adapter.

    No lock guards the cache: two concurrent first calls may both build an
    adapter and the last assignment wins. Construction only holds
    configuration, so either instance is equivalent.
    """

    def __init__(
        self,
        settings: Settings = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self._instance: Optional[PrimaryERPAdapter] = None

    def get_instance(self) -> PrimaryERPAdapter:
        """Return the cached primary adapter, creating it on first use."""
        if self._instance is None:
            self._instance = PrimaryERPAdapter(self.settings.primary, transport=self._transport)
            logger.info("primary_adapter_created",
                        base_url=self._instance.base_url,
                        configured=self.settings.primary.configured)
        return self._instance

    def force_new(self) -> PrimaryERPAdapter:
        """Discard the cached adapter and build a fresh one (credential rotation, tests)."""
        self._instance = None
        return self.get_instance()

    def create_secondary(self) -> SecondaryStoreAdapter:
        return SecondaryStoreAdapter(self.settings.secondary, transport=self._transport)

    async def test_connection(self) -> bool:
        """Health-check the primary. Any failure reads as False, never raises."""
        try:
            return bool(await self.get_instance().health_check())
        except Exception as e:
            logger.warning("primary_connection_test_failed", error=str(e))
            return False

    def describe(self) -> ServiceInfo:
        """Diagnostics snapshot. Never raises."""
        try:
            primary = self.settings.primary
            return ServiceInfo(
                active_kind=BackendKind.PRIMARY if self._instance is not None else None,
                configured=primary.configured,
                initialized=self._instance is not None,
                environment=self.settings.environment,
                base_url=primary.base_url,
                has_api_key=bool(primary.api_key),
                has_company_id=bool(primary.company_id),
            )
        except Exception as e:
            logger.error("describe_failed", error=str(e))
            return ServiceInfo()

    async def close(self) -> None:
        if self._instance is not None:
            await self._instance.close()
