"""
REST client for the hosted backend (PostgREST data API + auth).
"""

import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import httpx

from erp_core.errors import BackendError, ExternalServiceError
from erp_core.logging import get_logger
from erp_core.metrics import MetricsCollector
from erp_core.results import QueryResult


FilterValue = Union[Any, Tuple[str, Any]]
Rows = Union[Mapping[str, Any], List[Mapping[str, Any]]]


def encode_filters(filters: Optional[Mapping[str, FilterValue]]) -> List[Tuple[str, str]]:
    """Turn ``{"status": ("neq", "cancelled"), "id": 7}`` into PostgREST query params."""
    params: List[Tuple[str, str]] = []
    for column, value in (filters or {}).items():
        if isinstance(value, tuple):
            operator, operand = value
        else:
            operator, operand = "eq", value
        if operator == "in" and not isinstance(operand, str):
            operand = "(" + ",".join(str(item) for item in operand) + ")"
        elif operator == "is" and operand is None:
            operand = "null"
        elif isinstance(operand, bool):
            operand = "true" if operand else "false"
        params.append((column, f"{operator}.{operand}"))
    return params


def parse_content_range(header: Optional[str]) -> Optional[int]:
    """Total row count from a ``Content-Range: 0-24/573`` header."""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1]
    return int(total) if total.isdigit() else None


class BackendClient:
    """Thin async client over the backend's generated REST API.

    Data calls return ``QueryResult``; error statuses become
    ``QueryResult(error=BackendError)`` and only transport failures raise.
    """

    def __init__(self,
                 base_url: str,
                 api_key: str,
                 *,
                 timeout: float = 10.0,
                 access_token: Optional[str] = None,
                 refresh_token: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 metrics: Optional[MetricsCollector] = None):
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.metrics = metrics
        self._transport = transport
        self.logger = get_logger("gateway.backend.client")

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _request(self,
                       method: str,
                       table: str,
                       *,
                       params: Optional[List[Tuple[str, str]]] = None,
                       json: Any = None,
                       prefer: Iterable[str] = ()) -> QueryResult:
        url = f"{self.base_url}/rest/v1/{table}"
        extra = {"Prefer": ",".join(prefer)} if prefer else None
        start_time = time.time()

        try:
            async with self._client() as client:
                response = await client.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=self._headers(extra),
                )
        except httpx.TimeoutException:
            self.logger.error("Backend timeout", method=method, table=table)
            raise ExternalServiceError("backend", "Request timed out")
        except httpx.RequestError as e:
            self.logger.error("Backend request error", method=method, table=table, error=str(e))
            raise ExternalServiceError("backend", "Backend unavailable", {"error": str(e)})
        finally:
            if self.metrics is not None:
                self.metrics.observe_histogram(
                    "backend_request_duration_seconds",
                    time.time() - start_time,
                    method=method,
                    table=table,
                )

        count = parse_content_range(response.headers.get("content-range"))

        if response.status_code >= 400:
            error = BackendError.from_response(response)
            self.logger.warning(
                "Backend returned error",
                method=method,
                table=table,
                status_code=response.status_code,
                code=error.code,
            )
            return QueryResult(error=error, status_code=response.status_code)

        data = None
        if method != "HEAD" and response.content:
            data = response.json()
        return QueryResult(data=data, count=count, status_code=response.status_code)

    async def select(self,
                     table: str,
                     columns: str = "*",
                     *,
                     filters: Optional[Mapping[str, FilterValue]] = None,
                     order: Optional[str] = None,
                     ascending: bool = True,
                     limit: Optional[int] = None,
                     count: Optional[str] = None,
                     head: bool = False) -> QueryResult:
        """Read rows. ``count="exact"`` fills ``QueryResult.count``; ``head`` skips the body."""
        params = [("select", columns)] + encode_filters(filters)
        if order:
            params.append(("order", f"{order}.{'asc' if ascending else 'desc'}"))
        if limit is not None:
            params.append(("limit", str(limit)))
        prefer = [f"count={count}"] if count else []
        return await self._request("HEAD" if head else "GET", table, params=params, prefer=prefer)

    async def insert(self, table: str, rows: Rows, *, returning: bool = True) -> QueryResult:
        prefer = ["return=representation" if returning else "return=minimal"]
        return await self._request("POST", table, json=rows, prefer=prefer)

    async def upsert(self,
                     table: str,
                     rows: Rows,
                     *,
                     on_conflict: Optional[str] = None,
                     returning: bool = True) -> QueryResult:
        params = [("on_conflict", on_conflict)] if on_conflict else None
        prefer = [
            "resolution=merge-duplicates",
            "return=representation" if returning else "return=minimal",
        ]
        return await self._request("POST", table, params=params, json=rows, prefer=prefer)

    async def update(self,
                     table: str,
                     values: Mapping[str, Any],
                     *,
                     filters: Mapping[str, FilterValue],
                     returning: bool = True) -> QueryResult:
        if not filters:
            raise ValueError("update requires at least one filter")
        prefer = ["return=representation" if returning else "return=minimal"]
        return await self._request("PATCH", table, params=encode_filters(filters), json=dict(values), prefer=prefer)

    async def delete(self, table: str, *, filters: Mapping[str, FilterValue]) -> QueryResult:
        if not filters:
            raise ValueError("delete requires at least one filter")
        return await self._request("DELETE", table, params=encode_filters(filters))

    async def refresh_session(self) -> Optional[Dict[str, Any]]:
        """Exchange the refresh token for a new session so JWT claims (role) are current.

        Returns the session, or None when refreshing failed.
        """
        if not self.refresh_token:
            self.logger.warning("No refresh token available, cannot refresh session")
            return None

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/auth/v1/token",
                    params={"grant_type": "refresh_token"},
                    json={"refresh_token": self.refresh_token},
                    headers=self._headers(),
                )
        except httpx.RequestError as e:
            self.logger.error("Error refreshing session", error=str(e))
            return None

        if response.status_code != 200:
            error = BackendError.from_response(response)
            self.logger.error(
                "Error refreshing session",
                status_code=response.status_code,
                error=error.message,
            )
            return None

        session = response.json()
        self.access_token = session.get("access_token", self.access_token)
        self.refresh_token = session.get("refresh_token", self.refresh_token)
        self.logger.info("Session refreshed", user_id=(session.get("user") or {}).get("id"))
        return session

    async def health_check(self) -> bool:
        """Check if the REST endpoint answers."""
        try:
            async with self._client() as client:
                response = await client.get(f"{self.base_url}/rest/v1/", headers=self._headers())
                return response.status_code < 500
        except httpx.RequestError:
            return False
