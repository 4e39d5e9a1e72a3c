"""
Secondary store adapter — the local application datastore.

Serves as the fallback when the ERP is down and as the best-effort mirror
of ERP writes. Reached without the ERP's auth/tenant headers and without an
explicit deadline beyond the transport default.
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from backend.base import RESTBackendAdapter
from config.settings import SecondaryConfig
from models.schemas import BackendKind, EntityType, ResponseEnvelope


class SecondaryStoreAdapter(RESTBackendAdapter):
    kind = BackendKind.SECONDARY

    DEFAULT_ENDPOINTS = {
        "client": "/clients",
        "product": "/products",
        "category": "/categories",
        "brand": "/brands",
        "order": "/orders",
        "invoice": "/invoices",
        "account": "/accounts",
        "product_stock": "/products/{id}/stock",
        "order_status": "/orders/{id}/status",
        "invoice_payment": "/invoices/{id}/payment",
        "invoices_unpaid": "/invoices/unpaid",
        "account_balance": "/accounts/{id}/balance",
        "statistics": "/statistics/{kind}",
        "health": "/health",
    }

    def __init__(self, config: SecondaryConfig = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or SecondaryConfig()
        super().__init__(
            base_url=self.config.base_url,
            endpoints=self.config.endpoints,
            retry_attempts=self.config.retry_attempts,
            retry_backoff=self.config.retry_backoff,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self.config.auth_token:
            headers["Authorization"] = f"Bearer {self.config.auth_token}"
        return headers

    def _unwrap_collection(self, body: Any) -> list[dict[str, Any]]:
        """
        The local API pages its collections as
        `{success, data: {clients: [...], pagination: {...}}}`: take the one
        list-valued key out of the page before the usual checks.
        """
        value = ResponseEnvelope.unwrap(body)
        if isinstance(value, dict):
            lists = [v for v in value.values() if isinstance(v, list)]
            if len(lists) == 1:
                value = lists[0]
        return super()._unwrap_collection(value)

    async def list_unpaid_invoices(self) -> list[dict[str, Any]]:
        body = await self._request("GET", self._path("invoices_unpaid"))
        return self._unwrap_collection(body)

    async def sync_record(self, entity: EntityType, record: dict[str, Any]) -> dict[str, Any]:
        body = await self._request("POST", f"{self._collection(entity)}/sync", json=record)
        return ResponseEnvelope.unwrap(body)
