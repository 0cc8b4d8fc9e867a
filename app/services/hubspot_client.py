"""
HubSpot CRM API client.
Low-level bearer-token HTTP access to CRM objects, searches and associations,
with bounded concurrency, retry on transient failures and a typed error taxonomy.
"""

import asyncio
from typing import Any

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 15  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 0.5
RETRY_STATUS_CODES = {500, 502, 503, 504}

MISSING_SCOPES_CATEGORY = "MISSING_SCOPES"


class HubSpotError(Exception):
    """Base exception for HubSpot CRM errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        category: str | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.category = category
        self.response_data = response_data or {}


class HubSpotConfigurationError(HubSpotError):
    """Raised when no HubSpot access token is configured."""


class HubSpotRateLimitError(HubSpotError):
    """Raised on HTTP 429. Never retried here; callers surface retry_after."""

    def __init__(self, message: str, retry_after: int | None = None, **kwargs):
        super().__init__(message, status_code=429, **kwargs)
        self.retry_after = retry_after


class HubSpotAPIError(HubSpotError):
    """Non-2xx response, malformed body, or transport failure after retries."""

    @property
    def is_missing_scope(self) -> bool:
        return self.category == MISSING_SCOPES_CATEGORY or self.status_code == 403 and (
            "scope" in str(self).lower()
        )


def _parse_retry_after(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return max(0, int(float(value)))
    except ValueError:
        return None


class HubSpotClient:
    """
    Async client for the HubSpot CRM v3/v4 REST API.

    Every outbound request passes through one semaphore so concurrent
    aggregations share a single cap on in-flight calls to HubSpot.
    """

    def __init__(
        self,
        access_token: str | None,
        base_url: str | None = None,
        max_concurrency: int | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_factor: float = BACKOFF_FACTOR,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not access_token:
            raise HubSpotConfigurationError("HubSpot not configured")

        self._access_token = access_token
        self._base_url = (base_url or settings.HUBSPOT_BASE_URL).rstrip("/")
        self._max_retries = max_retries or settings.HUBSPOT_MAX_RETRIES or MAX_RETRIES
        self._backoff_factor = backoff_factor
        self._semaphore = asyncio.Semaphore(
            max_concurrency or settings.get_pipeline_config()["max_concurrency"]
        )
        self._client = self._create_client(
            timeout or settings.HUBSPOT_REQUEST_TIMEOUT_SECONDS or REQUEST_TIMEOUT,
            transport,
        )

    def _create_client(
        self, timeout: float, transport: httpx.AsyncBaseTransport | None
    ) -> httpx.AsyncClient:
        """Create async HTTP client for the CRM API."""
        limits = httpx.Limits(max_keepalive_connections=20, max_connections=50)
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._get_auth_headers(),
            timeout=httpx.Timeout(timeout),
            limits=limits,
            transport=transport,
        )

    def _get_auth_headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _request_with_retry(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request, retrying transport errors and 5xx with backoff."""
        for attempt in range(1, self._max_retries + 1):
            backoff = self._backoff_factor * (2 ** (attempt - 1))
            try:
                async with self._semaphore:
                    response = await self._client.request(method, path, **kwargs)
            except httpx.RequestError as e:
                if attempt >= self._max_retries:
                    raise HubSpotAPIError(f"HubSpot request failed: {e}") from e
                logger.debug(
                    "HubSpot request error, retrying",
                    attempt=attempt,
                    path=path,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
                continue

            if response.status_code in RETRY_STATUS_CODES and attempt < self._max_retries:
                logger.debug(
                    "HubSpot API retrying request",
                    attempt=attempt,
                    path=path,
                    status_code=response.status_code,
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
                continue
            return response
        raise RuntimeError("HubSpot retry loop exhausted")

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict:
        """
        Validate a CRM response and return its JSON body.

        Raises:
            HubSpotRateLimitError: On HTTP 429
            HubSpotAPIError: On any other non-2xx status or a non-JSON body
        """
        if response.is_success:
            try:
                data = response.json() if response.text else {}
            except ValueError as e:
                logger.error(f"Failed to parse HubSpot {operation} response", error=str(e))
                raise HubSpotAPIError(
                    f"Invalid response format from HubSpot {operation}",
                    status_code=response.status_code,
                ) from e
            if not isinstance(data, dict):
                raise HubSpotAPIError(
                    f"Unexpected response shape from HubSpot {operation}",
                    status_code=response.status_code,
                )
            return data

        try:
            error_data = response.json() if response.text else {}
        except ValueError:
            error_data = {}
        if not isinstance(error_data, dict):
            error_data = {}

        category = error_data.get("category")
        message = error_data.get("message") or f"HubSpot {operation} failed (HTTP {response.status_code})"

        if response.status_code == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            logger.warning(
                f"HubSpot {operation} rate limited",
                retry_after=retry_after,
                category=category,
            )
            raise HubSpotRateLimitError(
                message,
                retry_after=retry_after,
                category=category,
                response_data=error_data,
            )

        raise HubSpotAPIError(
            message,
            status_code=response.status_code,
            category=category,
            response_data=error_data,
        )

    async def search_objects(
        self,
        object_type: str,
        filters: list[dict[str, Any]],
        properties: list[str],
        limit: int = 100,
    ) -> list[dict[str, Any]]:
        """POST /crm/v3/objects/{object_type}/search and return the result rows."""
        body = {
            "filterGroups": [{"filters": filters}],
            "properties": properties,
            "limit": limit,
        }
        response = await self._request_with_retry(
            "POST", f"/crm/v3/objects/{object_type}/search", json=body
        )
        data = self._handle_api_response(response, f"{object_type}_search")
        results = data.get("results") or []
        return [row for row in results if isinstance(row, dict)]

    async def get_object(
        self, object_type: str, object_id: str, properties: list[str] | tuple[str, ...]
    ) -> dict[str, Any]:
        """GET /crm/v3/objects/{object_type}/{object_id} and return its properties."""
        response = await self._request_with_retry(
            "GET",
            f"/crm/v3/objects/{object_type}/{object_id}",
            params={"properties": ",".join(properties)},
        )
        data = self._handle_api_response(response, f"{object_type}_get")
        props = data.get("properties") or {}
        return props if isinstance(props, dict) else {}

    async def get_associations(
        self, from_object_type: str, object_id: str, to_object_type: str
    ) -> list[str]:
        """GET /crm/v4/objects/{from}/{id}/associations/{to} and return target ids as strings."""
        response = await self._request_with_retry(
            "GET", f"/crm/v4/objects/{from_object_type}/{object_id}/associations/{to_object_type}"
        )
        data = self._handle_api_response(response, f"{from_object_type}_{to_object_type}_associations")
        ids: list[str] = []
        for row in data.get("results") or []:
            if not isinstance(row, dict):
                continue
            target = row.get("toObjectId")
            if isinstance(target, bool) or target is None:
                continue
            if isinstance(target, (str, int)):
                ids.append(str(target))
        return ids


_hubspot_client: HubSpotClient | None = None


def get_hubspot_client() -> HubSpotClient:
    """Return the process-wide client, creating it on first use."""
    global _hubspot_client
    if _hubspot_client is None:
        _hubspot_client = HubSpotClient(settings.HUBSPOT_ACCESS_TOKEN)
    return _hubspot_client


async def close_hubspot_client() -> None:
    global _hubspot_client
    if _hubspot_client is not None:
        await _hubspot_client.close()
        _hubspot_client = None
