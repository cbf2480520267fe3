import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from ..config.settings import get_settings
from ..core.exceptions.vapi_exceptions import VAPIAPIError
from ..core.logging import get_logger
from ..core.models import ResourceKind

logger = get_logger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for transient failures."""
    max_attempts: int = 3
    base_delay: float = 1.0
    backoff_multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Delay after the given zero-based failed attempt."""
        return self.base_delay * (self.backoff_multiplier ** attempt)

    @staticmethod
    def is_retryable_status(status_code: int) -> bool:
        return status_code == 429 or status_code >= 500

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        settings = get_settings()
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            backoff_multiplier=settings.retry_backoff_multiplier
        )


class _BorrowedTransport(httpx.AsyncBaseTransport):
    """Delegates to a caller-owned transport and leaves closing it to the caller."""

    def __init__(self, transport: httpx.AsyncBaseTransport):
        self._transport = transport

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        return await self._transport.handle_async_request(request)

    async def aclose(self) -> None:
        pass


class VAPIClient:
    """HTTP client for VAPI API interactions.

    Each request opens a short-lived ``httpx.AsyncClient``. An injected
    ``transport`` is shared by those clients and is never closed by them.
    """

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[SleepFunc] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not api_key:
            raise ValueError("api_key is required")

        settings = get_settings()
        self.api_key = api_key
        self.base_url = (base_url or settings.vapi_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.timeout
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self._sleep = sleep or asyncio.sleep
        self._transport = _BorrowedTransport(transport) if transport is not None else None

        self.headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

    @staticmethod
    def _parse_body(response: httpx.Response) -> Any:
        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                return response.json()
            except ValueError:
                return response.text
        return response.text

    @staticmethod
    def _error_message(body: Any) -> str:
        if isinstance(body, dict):
            message = body.get("message") or body.get("error")
            if isinstance(message, list):
                message = "; ".join(str(item) for item in message)
            return str(message or "VAPI API error")
        return str(body) if body else "VAPI API error"

    async def _send_with_retry(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        data: Optional[Dict[str, Any]],
        params: Optional[Dict[str, Any]]
    ) -> httpx.Response:
        policy = self.retry_policy
        last_error: Optional[httpx.RequestError] = None

        for attempt in range(policy.max_attempts):
            is_last = attempt == policy.max_attempts - 1
            try:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=self.headers,
                    json=data,
                    params=params
                )
            except httpx.RequestError as e:
                last_error = e
                if is_last:
                    break
                delay = policy.delay_for(attempt)
                logger.warning(
                    "Network error on %s %s (attempt %d/%d), retrying in %.1fs: %s",
                    method, url, attempt + 1, policy.max_attempts, delay, e
                )
                await self._sleep(delay)
                continue

            if not RetryPolicy.is_retryable_status(response.status_code) or is_last:
                return response

            delay = policy.delay_for(attempt)
            logger.warning(
                "Request %s %s failed with %d (attempt %d/%d), retrying in %.1fs",
                method, url, response.status_code, attempt + 1, policy.max_attempts, delay
            )
            await self._sleep(delay)

        raise VAPIAPIError(f"Request failed: {last_error}") from last_error

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Make HTTP request to VAPI API."""
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        logger.debug("%s /%s", method, endpoint.lstrip('/'))

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await self._send_with_retry(client, method, url, data, params)

        body = self._parse_body(response)
        if response.is_success:
            return body

        message = self._error_message(body)
        logger.error("VAPI error %d: %s", response.status_code, message)
        raise VAPIAPIError(
            message=f"VAPI API error: {message}",
            status_code=response.status_code,
            response_body=body
        )

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Make GET request."""
        return await self._make_request("GET", endpoint, params=params)

    async def post(self, endpoint: str, data: Dict[str, Any]) -> Any:
        """Make POST request."""
        return await self._make_request("POST", endpoint, data=data)

    async def patch(self, endpoint: str, data: Dict[str, Any]) -> Any:
        """Make PATCH request."""
        return await self._make_request("PATCH", endpoint, data=data)

    async def delete(self, endpoint: str) -> Any:
        """Make DELETE request."""
        return await self._make_request("DELETE", endpoint)

    async def get_with_fallback(
        self,
        primary: str,
        fallback: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """GET ``primary``; on a 404 only, GET ``fallback`` instead."""
        try:
            return await self.get(primary, params=params)
        except VAPIAPIError as e:
            if not e.is_not_found:
                raise
            logger.debug("Endpoint /%s not found, trying /%s", primary, fallback)
            return await self.get(fallback, params=params)

    # Resource-kind helpers

    async def list_resources(self, kind: ResourceKind) -> List[Dict[str, Any]]:
        """List a collection, tolerating either the singular or plural path."""
        kind = ResourceKind(kind)
        response = await self.get_with_fallback(kind.singular_path, kind.plural_path)

        # Handle both paginated and direct list responses
        if isinstance(response, dict) and "data" in response:
            response = response["data"]
        if not isinstance(response, list):
            raise VAPIAPIError(f"Unexpected list response for {kind.value}", response_body=response)
        return response

    async def get_resource(self, kind: ResourceKind, resource_id: str) -> Dict[str, Any]:
        return await self.get(f"{ResourceKind(kind).singular_path}/{resource_id}")

    async def create_resource(self, kind: ResourceKind, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.post(ResourceKind(kind).singular_path, data)

    async def update_resource(self, kind: ResourceKind, resource_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return await self.patch(f"{ResourceKind(kind).singular_path}/{resource_id}", data)

    async def delete_resource(self, kind: ResourceKind, resource_id: str) -> None:
        await self.delete(f"{ResourceKind(kind).singular_path}/{resource_id}")
