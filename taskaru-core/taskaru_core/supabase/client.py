import logging
import httpx
from typing import Optional, Any, Dict, List
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log

from ..config import SecuritySettings, get_settings
from .exceptions import (
    SupabaseError,
    SupabaseUnavailableError,
    SupabaseTimeoutError,
    SupabaseAuthError,
)

logger = logging.getLogger(__name__)

Filters = Dict[str, str]


class SupabaseRestClient:
    """
    Resilient async client for the Supabase PostgREST API.

    Features:
    - Automatic retries on network errors and 5xx responses.
    - Connection pooling (via httpx.AsyncClient).
    - Standardized exception mapping.

    Filters use PostgREST syntax, e.g. ``{"phone_number": "eq.09012345678"}``.
    """

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        headers = {
            "User-Agent": "Taskaru-Core/supabase",
            "Accept": "application/json",
            "apikey": service_role_key,
            "Authorization": f"Bearer {service_role_key}",
        }

        self.client = httpx.AsyncClient(
            base_url=f"{self.base_url}/rest/v1",
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Optional[SecuritySettings] = None) -> "SupabaseRestClient":
        """
        Build a client from SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY.

        Raises:
            ConfigurationError: Either setting is missing
        """
        settings = settings or get_settings()
        return cls(
            base_url=settings.require("supabase_url"),
            service_role_key=settings.require("supabase_service_role_key"),
            timeout=settings.http_timeout_seconds,
        )

    async def aclose(self):
        """Close the underlying HTTP client."""
        await self.client.aclose()

    def _map_exception(self, exc: Exception, table: str) -> Exception:
        """Map httpx exceptions to database exceptions."""
        if isinstance(exc, httpx.TimeoutException):
            return SupabaseTimeoutError("Request timed out", table=table)
        if isinstance(exc, (httpx.ConnectError, httpx.NetworkError)):
            return SupabaseUnavailableError(f"Failed to connect: {str(exc)}", table=table)
        if isinstance(exc, httpx.HTTPStatusError):
            status = exc.response.status_code
            text = exc.response.text
            if status in (401, 403):
                return SupabaseAuthError("Service role key rejected", table=table, status_code=status)
            if status >= 500:
                return SupabaseUnavailableError("Server error", table=table, status_code=status, details=text)

            return SupabaseError(f"HTTP {status} Error", table=table, status_code=status, details=text)

        return SupabaseError(f"Unexpected error: {str(exc)}", table=table)

    @retry(
        retry=retry_if_exception_type((SupabaseUnavailableError, SupabaseTimeoutError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    async def _request(
        self,
        method: str,
        path: str,
        table: str,
        **kwargs
    ) -> Any:
        """Execute request with retries and error handling."""
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()

            if response.status_code == 204 or not response.content:
                return None

            return response.json()

        except httpx.HTTPError as e:
            raise self._map_exception(e, table)
        except ValueError as e:
            raise SupabaseError(f"Invalid JSON response: {e}", table=table)

    async def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        columns: str = "*",
        order: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"select": columns}
        params.update(filters or {})
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = str(limit)
        return await self._request("GET", f"/{table}", table, params=params) or []

    async def insert(self, table: str, rows: Any) -> List[Dict[str, Any]]:
        return await self._request(
            "POST",
            f"/{table}",
            table,
            json=rows,
            headers={"Prefer": "return=representation"},
        ) or []

    async def update(self, table: str, filters: Filters, values: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self._request(
            "PATCH",
            f"/{table}",
            table,
            params=filters,
            json=values,
            headers={"Prefer": "return=representation"},
        ) or []

    async def delete(self, table: str, filters: Filters) -> List[Dict[str, Any]]:
        return await self._request(
            "DELETE",
            f"/{table}",
            table,
            params=filters,
            headers={"Prefer": "return=representation"},
        ) or []

    async def rpc(self, function: str, args: Optional[Dict[str, Any]] = None) -> Any:
        return await self._request("POST", f"/rpc/{function}", function, json=args or {})
