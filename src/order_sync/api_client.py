"""Order API adapter used as the engine's data-access collaborator."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from .config import Settings
from .exceptions import MutationRejectedError, OrderApiError, OrderRequestError
from .models import Order, Role
from .redaction import sanitize_text


class OrderApiClient:
    """Thin async adapter over the order-management REST API."""

    def __init__(
        self,
        settings: Settings,
        logger: logging.Logger,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self.logger = logger
        self.max_retries = settings.order_api_max_retries
        self.retry_delay_seconds = settings.order_api_retry_delay_seconds
        self._sleep = asyncio.sleep
        headers = {
            "Accept": "application/json",
            "User-Agent": "order-status-sync/0.1",
        }
        if settings.order_api_bearer_token:
            headers["Authorization"] = f"Bearer {settings.order_api_bearer_token}"
        self._client = httpx.AsyncClient(
            base_url=str(settings.order_api_base_url),
            timeout=settings.order_api_timeout_seconds,
            headers=headers,
            transport=transport,
        )

    async def __aenter__(self) -> OrderApiClient:
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close underlying HTTP client."""
        await self._client.aclose()

    async def list_orders(
        self,
        role: Role,
        tenant_id: str | None,
        status_filter: str | None = None,
    ) -> list[Order]:
        """Fetch the caller's orders, scoped to role and tenant."""
        params: dict[str, Any] = {}
        if role == "admin":
            endpoint = self.settings.order_api_admin_orders_endpoint
            params["limit"] = self.settings.order_api_admin_list_limit
            if status_filter and status_filter != "all":
                params["status"] = status_filter
        else:
            endpoint = self.settings.order_api_customer_orders_endpoint

        payload = await self._request_json(
            "GET",
            endpoint,
            params=params or None,
            tenant_id=tenant_id,
        )
        return self.normalize_orders(self._unwrap_data(payload))

    async def update_order_status(
        self,
        order_id: str,
        new_status: str,
        estimated_minutes: int | None = None,
    ) -> Order | None:
        """Ask the server to move order_id to new_status."""
        body: dict[str, Any] = {"status": new_status}
        if estimated_minutes is not None:
            body["estimatedMinutes"] = estimated_minutes
        endpoint = self.settings.order_api_admin_status_endpoint_template.format(
            order_id=order_id
        )
        try:
            payload = await self._request_json(
                "PATCH",
                endpoint,
                json_body=body,
                tenant_id=self.settings.sync_restaurant_id,
            )
        except OrderRequestError as exc:
            if exc.category in {"validation", "permission"} and exc.status_code is not None:
                raise MutationRejectedError(
                    str(exc),
                    reason=_rejection_reason(exc.status_code),
                    category=exc.category,
                    status_code=exc.status_code,
                ) from exc
            raise

        if isinstance(payload, dict) and payload.get("success") is False:
            raise MutationRejectedError(
                f"Status update refused: {payload.get('error') or 'unknown error'}",
                reason="refused",
            )
        data = self._unwrap_data(payload)
        if not isinstance(data, dict):
            return None
        try:
            return Order.model_validate(data)
        except ValidationError:
            self.logger.warning("Status update response did not contain an order payload.")
            return None

    def normalize_orders(self, records: Any) -> list[Order]:
        """Validate raw records, skipping malformed ones."""
        if not isinstance(records, list):
            raise OrderApiError("Order list payload shape invalid: expected a list of orders.")
        orders: list[Order] = []
        skipped = 0
        for record in records:
            if not isinstance(record, dict):
                skipped += 1
                continue
            try:
                orders.append(Order.model_validate(record))
            except ValidationError:
                skipped += 1
        if skipped:
            self.logger.warning("Skipped %d malformed order record(s).", skipped)
        return orders

    @staticmethod
    def _unwrap_data(payload: dict[str, Any] | list[Any]) -> Any:
        if isinstance(payload, dict) and "data" in payload:
            return payload["data"]
        return payload

    async def _request_json(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        tenant_id: str | None = None,
    ) -> dict[str, Any] | list[Any]:
        headers = {"X-Restaurant-Id": tenant_id} if tenant_id else None
        attempt = 0
        while True:
            attempt += 1
            final = attempt > self.max_retries
            try:
                response = await self._client.request(
                    method,
                    endpoint,
                    params=params,
                    json=json_body,
                    headers=headers,
                )
            except httpx.HTTPError as exc:
                # Timeouts land here too.
                if not final:
                    await self._backoff(attempt, type(exc).__name__)
                    continue
                raise OrderRequestError(
                    f"{method} {endpoint} failed: "
                    f"{sanitize_text(str(exc)) or type(exc).__name__}",
                    category="network",
                ) from exc

            if response.is_success:
                return _decode_json(response)
            status_code = response.status_code
            if _is_retryable(status_code) and not final:
                await self._backoff(
                    attempt,
                    f"HTTP {status_code}",
                    retry_after=_retry_after_seconds(response),
                )
                continue
            raise OrderRequestError(
                f"{method} {endpoint} returned {status_code}: "
                f"{sanitize_text(_error_text(response))}",
                category=_category_for_status(status_code),
                status_code=status_code,
            )

    async def _backoff(
        self,
        attempt: int,
        reason: str,
        *,
        retry_after: float | None = None,
    ) -> None:
        if retry_after is not None:
            delay = min(retry_after, self.settings.order_api_timeout_seconds)
        else:
            delay = self.retry_delay_seconds * 2 ** (attempt - 1)
        self.logger.warning(
            "Order API request failed (%s); retrying in %.2fs",
            reason,
            delay,
            extra={"attempt": attempt, "max_retries": self.max_retries},
        )
        await self._sleep(delay)


_VALIDATION_STATUSES = frozenset({400, 404, 409, 422})


def _category_for_status(status_code: int) -> str:
    if status_code == 401:
        return "auth"
    if status_code == 403:
        return "permission"
    if status_code == 429:
        return "rate_limit"
    if status_code >= 500:
        return "server"
    if status_code in _VALIDATION_STATUSES:
        return "validation"
    return "unknown"


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def _retry_after_seconds(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        # HTTP-date form is not used by the order API.
        return None


def _decode_json(response: httpx.Response) -> dict[str, Any] | list[Any]:
    try:
        body: dict[str, Any] | list[Any] = response.json()
    except ValueError as exc:
        raise OrderRequestError(
            "Order API response was not valid JSON.",
            category="unknown",
            status_code=response.status_code,
        ) from exc
    return body


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:300]
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"][:300]
    return response.text[:300]


def _rejection_reason(status_code: int) -> str:
    if status_code == 400:
        return "invalid_status"
    if status_code == 403:
        return "forbidden"
    if status_code == 404:
        return "order_not_found"
    if status_code == 409:
        return "conflict"
    return f"http_{status_code}"
