"""
Backend Adapter — uniform CRUD contract over one concrete backend.

Every business entity (clients, products, categories, brands, orders,
invoices, accounts) is reached through the same contract, whichever backend
answers. RESTBackendAdapter owns the HTTP plumbing shared by the primary ERP
and the secondary store: endpoint resolution, error mapping, envelope
unwrapping and retries of idempotent reads.
"""
from __future__ import annotations

import abc
import asyncio
import structlog
from typing import Any, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from backend.errors import (
    IntegrationError, NotFoundError, PayloadValidationError,
    RequestTimeoutError, TransportError,
)
from models.schemas import BackendKind, EntityType, ResponseEnvelope, StatisticsKind

logger = structlog.get_logger()


class BackendAdapter(abc.ABC):
    """Abstract base for the primary and secondary adapters."""

    kind: BackendKind

    # ── CRUD ──────────────────────────────────────────────────

    @abc.abstractmethod
    async def list(self, entity: EntityType, filters: dict[str, Any] = None) -> list[dict[str, Any]]:
        ...

    @abc.abstractmethod
    async def get(self, entity: EntityType, entity_id: str) -> dict[str, Any]:
        """Fetch one record. Raises NotFoundError if absent."""
        ...

    @abc.abstractmethod
    async def create(self, entity: EntityType, data: dict[str, Any]) -> dict[str, Any]:
        ...

    @abc.abstractmethod
    async def update(self, entity: EntityType, entity_id: str, data: dict[str, Any]) -> dict[str, Any]:
        ...

    @abc.abstractmethod
    async def delete(self, entity: EntityType, entity_id: str) -> None:
        ...

    # ── Domain extensions ─────────────────────────────────────

    @abc.abstractmethod
    async def update_stock(self, product_id: str, quantity: int) -> dict[str, Any]:
        ...

    @abc.abstractmethod
    async def update_status(self, order_id: str, status: str) -> dict[str, Any]:
        ...

    @abc.abstractmethod
    async def mark_paid(self, invoice_id: str, payment_data: dict[str, Any]) -> dict[str, Any]:
        ...

    @abc.abstractmethod
    async def list_unpaid_invoices(self) -> list[dict[str, Any]]:
        ...

    @abc.abstractmethod
    async def get_account_balance(self, account_id: str) -> dict[str, Any]:
        ...

    @abc.abstractmethod
    async def get_statistics(self, kind: StatisticsKind, filters: dict[str, Any] = None) -> dict[str, Any]:
        ...

    # ── Lifecycle / sync ──────────────────────────────────────

    @abc.abstractmethod
    async def health_check(self) -> bool:
        ...

    async def sync_record(self, entity: EntityType, record: dict[str, Any]) -> dict[str, Any]:
        """Upsert a full record keyed by its id. Only the secondary store supports this."""
        raise IntegrationError(f"sync_record is not supported by the {self.kind.value} backend",
                               self.kind.value)

    async def trigger_full_sync(self) -> dict[str, Any]:
        """Ask the backend to run its own bulk synchronization."""
        raise IntegrationError(f"full sync is not supported by the {self.kind.value} backend",
                               self.kind.value)

    async def close(self) -> None:
        pass


def _is_retryable(exc: BaseException) -> bool:
    # Timeouts are not retried: the caller already paid the full deadline.
    if isinstance(exc, RequestTimeoutError):
        return False
    if isinstance(exc, (NotFoundError, PayloadValidationError)):
        return False
    return isinstance(exc, TransportError) and (exc.status_code == 0 or exc.status_code >= 500)


class RESTBackendAdapter(BackendAdapter):
    """
    REST implementation of the adapter contract.

    Subclasses provide DEFAULT_ENDPOINTS (entity collections plus extension
    paths with {id}/{kind} placeholders), headers and timeout.
    """

    DEFAULT_ENDPOINTS: dict[str, str] = {}

    def __init__(
        self,
        base_url: str,
        endpoints: dict[str, str] = None,
        retry_attempts: int = 1,
        retry_backoff: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.endpoints = {**self.DEFAULT_ENDPOINTS, **(endpoints or {})}
        self.retry_attempts = max(1, retry_attempts)
        self.retry_backoff = retry_backoff
        self._transport = transport
        self.client: Optional[httpx.AsyncClient] = None

    # ── Hooks ─────────────────────────────────────────────────

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "Content-Type": "application/json"}

    def _timeout(self) -> Optional[float]:
        """Overall request deadline in seconds; None keeps the transport default."""
        return None

    def _preflight(self) -> None:
        """Raise before any I/O if the adapter cannot possibly succeed."""

    # ── HTTP plumbing ─────────────────────────────────────────

    async def _get_client(self) -> httpx.AsyncClient:
        if self.client is None or self.client.is_closed:
            kwargs: dict[str, Any] = {"base_url": self.base_url, "headers": self._headers()}
            timeout = self._timeout()
            if timeout is not None:
                kwargs["timeout"] = timeout
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self.client = httpx.AsyncClient(**kwargs)
        return self.client

    def _path(self, endpoint: str, **path_params: Any) -> str:
        url = self.endpoints.get(endpoint, endpoint)
        for k, v in path_params.items():
            url = url.replace(f"{{{k}}}", str(v))
        return url

    def _collection(self, entity: EntityType) -> str:
        return self._path(entity.value)

    def _item(self, entity: EntityType, entity_id: str) -> str:
        return f"{self._collection(entity)}/{entity_id}"

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """
        Send one logical request. The adapter timeout bounds the whole call,
        retries included, not just each httpx phase.
        """
        self._preflight()
        deadline = self._timeout()
        if deadline is None:
            return await self._attempt(method, path, **kwargs)
        try:
            return await asyncio.wait_for(self._attempt(method, path, **kwargs), deadline)
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(deadline, self.kind.value) from e

    async def _attempt(self, method: str, path: str, **kwargs) -> Any:
        client = await self._get_client()
        if method != "GET" or self.retry_attempts <= 1:
            return await self._send(client, method, path, **kwargs)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=self.retry_backoff, max=10),
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._send(client, method, path, **kwargs)

    async def _send(self, client: httpx.AsyncClient, method: str, path: str, **kwargs) -> Any:
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(self._timeout(), self.kind.value) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}", 0, self.kind.value) from e

        if response.is_error:
            raise self._error_for(response)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TransportError("response body is not valid JSON",
                                 response.status_code, self.kind.value) from e

    def _error_for(self, response: httpx.Response) -> TransportError:
        try:
            body = response.json()
        except ValueError:
            body = None
        message = ""
        if isinstance(body, dict):
            message = body.get("message") or body.get("error") or ""
        message = str(message or response.reason_phrase or "request failed")

        if response.status_code == 404:
            return NotFoundError(message, 404, self.kind.value)
        if response.status_code in (400, 422):
            return PayloadValidationError(message, response.status_code, self.kind.value)
        return TransportError(message, response.status_code, self.kind.value)

    def _unwrap_collection(self, body: Any) -> list[dict[str, Any]]:
        try:
            return ResponseEnvelope.unwrap_collection(body)
        except ValueError as e:
            raise TransportError(str(e), 0, self.kind.value) from e

    # ── CRUD ──────────────────────────────────────────────────

    async def list(self, entity: EntityType, filters: dict[str, Any] = None) -> list[dict[str, Any]]:
        params = {k: v for k, v in (filters or {}).items() if v is not None}
        body = await self._request("GET", self._collection(entity), params=params)
        return self._unwrap_collection(body)

    async def get(self, entity: EntityType, entity_id: str) -> dict[str, Any]:
        body = ResponseEnvelope.unwrap(await self._request("GET", self._item(entity, entity_id)))
        if body is None:
            raise NotFoundError(f"{entity.value} {entity_id} not found", 404, self.kind.value)
        return body

    async def create(self, entity: EntityType, data: dict[str, Any]) -> dict[str, Any]:
        body = await self._request("POST", self._collection(entity), json=data)
        return ResponseEnvelope.unwrap(body)

    async def update(self, entity: EntityType, entity_id: str, data: dict[str, Any]) -> dict[str, Any]:
        body = await self._request("PUT", self._item(entity, entity_id), json=data)
        return ResponseEnvelope.unwrap(body)

    async def delete(self, entity: EntityType, entity_id: str) -> None:
        await self._request("DELETE", self._item(entity, entity_id))

    # ── Domain extensions ─────────────────────────────────────

    async def update_stock(self, product_id: str, quantity: int) -> dict[str, Any]:
        body = await self._request("PATCH", self._path("product_stock", id=product_id),
                                   json={"quantity": quantity})
        return ResponseEnvelope.unwrap(body)

    async def update_status(self, order_id: str, status: str) -> dict[str, Any]:
        body = await self._request("PATCH", self._path("order_status", id=order_id),
                                   json={"status": status})
        return ResponseEnvelope.unwrap(body)

    async def mark_paid(self, invoice_id: str, payment_data: dict[str, Any]) -> dict[str, Any]:
        body = await self._request("POST", self._path("invoice_payment", id=invoice_id),
                                   json=payment_data or {})
        return ResponseEnvelope.unwrap(body)

    async def list_unpaid_invoices(self) -> list[dict[str, Any]]:
        return await self.list(EntityType.INVOICE, {"status": "unpaid"})

    async def get_account_balance(self, account_id: str) -> dict[str, Any]:
        body = await self._request("GET", self._path("account_balance", id=account_id))
        return ResponseEnvelope.unwrap(body)

    async def get_statistics(self, kind: StatisticsKind, filters: dict[str, Any] = None) -> dict[str, Any]:
        kind = StatisticsKind(kind)
        params = {k: v for k, v in (filters or {}).items() if v is not None}
        body = await self._request("GET", self._path("statistics", kind=kind.value), params=params)
        return ResponseEnvelope.unwrap(body)

    # ── Lifecycle ─────────────────────────────────────────────

    async def health_check(self) -> bool:
        body = await self._request("GET", self._path("health"))
        if not isinstance(body, dict):
            return False
        return body.get("status") == "ok" or body.get("healthy") is True

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
