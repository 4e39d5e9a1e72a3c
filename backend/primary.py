"""
Primary ERP adapter — the authoritative backend, consulted first on every call.

Attaches bearer + company headers to each request and enforces a fixed
deadline. Missing credentials do not break construction; every call then
raises NotConfiguredError before touching the network, which the router
treats like any other primary failure.
"""
from __future__ import annotations

import structlog
from typing import Any, Optional

import httpx

from backend.base import RESTBackendAdapter
from backend.errors import NotConfiguredError
from config.settings import PrimaryConfig
from models.schemas import BackendKind, ResponseEnvelope

logger = structlog.get_logger()


class PrimaryERPAdapter(RESTBackendAdapter):
    kind = BackendKind.PRIMARY

    DEFAULT_ENDPOINTS = {
        "client": "/api/v1/customers",
        "product": "/api/v1/products",
        "category": "/api/v1/categories",
        "brand": "/api/v1/brands",
        "order": "/api/v1/orders",
        "invoice": "/api/v1/invoices",
        "account": "/api/v1/accounts",
        "product_stock": "/api/v1/products/{id}/stock",
        "order_status": "/api/v1/orders/{id}/status",
        "invoice_payment": "/api/v1/invoices/{id}/payment",
        "account_balance": "/api/v1/accounts/{id}/balance",
        "statistics": "/api/v1/statistics/{kind}",
        "health": "/api/v1/health",
        "full_sync": "/api/v1/sync",
    }

    def __init__(self, config: PrimaryConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        super().__init__(
            base_url=config.base_url,
            endpoints=config.endpoints,
            retry_attempts=config.retry_attempts,
            retry_backoff=config.retry_backoff,
            transport=transport,
        )
        if not config.configured:
            logger.warning("primary_not_configured", missing=self.missing_credentials())

    def missing_credentials(self) -> list[str]:
        missing = []
        if not self.config.api_key:
            missing.append("api_key")
        if not self.config.company_id:
            missing.append("company_id")
        return missing

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["Authorization"] = f"Bearer {self.config.api_key}"
        headers["X-Company-Id"] = self.config.company_id
        return headers

    def _timeout(self) -> Optional[float]:
        return self.config.timeout_seconds

    def _preflight(self) -> None:
        missing = self.missing_credentials()
        if missing:
            raise NotConfiguredError(missing, self.kind.value)

    async def trigger_full_sync(self) -> dict[str, Any]:
        body = await self._request("POST", self._path("full_sync"), json={"fullSync": True})
        logger.info("primary_full_sync_triggered")
        return ResponseEnvelope.unwrap(body)
