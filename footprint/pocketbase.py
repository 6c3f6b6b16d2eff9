# footprint/pocketbase.py
"""A *very* thin async wrapper around the PocketBase HTTP API.

* Authenticates once with admin e-mail/password (from settings).
* Exposes the handful of record endpoints the transaction store needs:
  filtered list, point read, create, merge-update and delete.
* Every failure – transport or non-2xx – surfaces as
  :class:`~footprint.exceptions.UpstreamQueryError`. Queries are **not**
  retried; only the login handshake is, since it is a connectivity concern.

Dependencies
------------
``httpx``, ``tenacity`` and :mod:`footprint.sentry`.
"""
from __future__ import annotations

import asyncio
import datetime as _dt
import logging
from typing import Any, List, Mapping, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from footprint.config import get_settings
from footprint.exceptions import UpstreamQueryError
from footprint.sentry import sentry_capture

__all__ = [
    "AsyncPocketBaseClient",
    "get_async_pb_client",
    "close_async_pb_client",
    "format_pb_datetime",
]

logger = logging.getLogger(__name__)


def format_pb_datetime(value: _dt.datetime) -> str:
    """PocketBase filter literal: ``2024-07-01 00:00:00.000Z`` (UTC)."""
    if value.tzinfo is not None:
        value = value.astimezone(_dt.timezone.utc)
    return value.strftime("%Y-%m-%d %H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


class AsyncPocketBaseClient:
    """
    Tiny async client for the subset of PocketBase endpoints we use.
    """

    def __init__(
        self,
        *,
        base_url: str,
        email: str,
        password: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._email = email
        self._password = password
        self._client = httpx.AsyncClient(
            base_url=self._base_url, timeout=timeout, transport=transport
        )
        self._token: str | None = None
        self._auth_lock = asyncio.Lock()

    # ------------------------------------------------------------------ auth
    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    async def _authenticate(self) -> str:
        resp = await self._client.post(
            "/api/admins/auth-with-password",
            json={"identity": self._email, "password": self._password},
        )
        resp.raise_for_status()
        return resp.json()["token"]

    async def _ensure_token(self) -> None:
        if self._token is not None:
            return
        async with self._auth_lock:
            # concurrent callers wait for the first login
            if self._token is not None:
                return
            self._token = await self._authenticate()
            self._client.headers["Authorization"] = f"Bearer {self._token}"
            logger.info("PB: authenticated as %s", self._email)

    # ------------------------------------------------------------- low level
    async def _request(self, method: str, path: str, *, allow_404: bool = False, **kwargs: Any) -> Optional[httpx.Response]:
        try:
            await self._ensure_token()
            resp = await self._client.request(method, path, **kwargs)
            if allow_404 and resp.status_code == 404:
                return None
            if resp.status_code == 401:
                # expired token: log in again on the next call
                self._token = None
                self._client.headers.pop("Authorization", None)
            resp.raise_for_status()
            return resp
        except httpx.HTTPStatusError as exc:
            logger.error("PB: %s %s failed: %s", method, path, exc)
            sentry_capture(exc, extras={"path": path, "status": exc.response.status_code})
            raise UpstreamQueryError(
                str(exc), status=exc.response.status_code, body=exc.response.text
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("PB: %s %s failed: %r", method, path, exc)
            sentry_capture(exc, extras={"path": path})
            raise UpstreamQueryError(str(exc) or exc.__class__.__name__) from exc

    def _records(self, collection: str) -> str:
        return f"/api/collections/{collection}/records"

    # -------------------------------------------------------------- business
    async def list_records(
        self,
        collection: str,
        *,
        filter: str | None = None,
        sort: str | None = None,
        per_page: int = 500,
    ) -> List[Mapping[str, Any]]:
        """First page of *collection* – PocketBase caps ``perPage`` at 500."""
        params: dict[str, Any] = {"page": 1, "perPage": per_page, "skipTotal": 1}
        if filter:
            params["filter"] = filter
        if sort:
            params["sort"] = sort
        logger.debug("PB: list %s filter=%s sort=%s", collection, filter, sort)
        resp = await self._request("GET", self._records(collection), params=params)
        items = resp.json().get("items", [])
        logger.info("PB: fetched %d records from %s", len(items), collection)
        return items

    async def get_record(self, collection: str, record_id: str) -> Optional[Mapping[str, Any]]:
        resp = await self._request("GET", f"{self._records(collection)}/{record_id}", allow_404=True)
        return None if resp is None else resp.json()

    async def create_record(self, collection: str, record: Mapping[str, Any]) -> Mapping[str, Any]:
        resp = await self._request("POST", self._records(collection), json=dict(record))
        data = resp.json()
        logger.info("PB: inserted %s into %s", data.get("id"), collection)
        return data

    async def update_record(
        self, collection: str, record_id: str, record: Mapping[str, Any]
    ) -> Optional[Mapping[str, Any]]:
        """PATCH merges fields; ``None`` when the record does not exist."""
        resp = await self._request(
            "PATCH", f"{self._records(collection)}/{record_id}", json=dict(record), allow_404=True
        )
        if resp is None:
            return None
        logger.info("PB: patched %s in %s", record_id, collection)
        return resp.json()

    async def delete_record(self, collection: str, record_id: str) -> bool:
        """``False`` when there was nothing to delete."""
        resp = await self._request("DELETE", f"{self._records(collection)}/{record_id}", allow_404=True)
        return resp is not None

    async def close(self) -> None:
        """Closes the underlying async HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------

_async_pb_client: Optional[AsyncPocketBaseClient] = None


async def get_async_pb_client() -> AsyncPocketBaseClient:
    """
    Return singleton AsyncPocketBaseClient.
    The instance is created only on the first call.
    """
    global _async_pb_client

    if _async_pb_client is None:
        settings = get_settings()
        email, password = settings.require_pb_credentials()
        logger.info("Creating PocketBase client for %s", settings.pb_url)
        _async_pb_client = AsyncPocketBaseClient(
            base_url=settings.pb_url,
            email=email,
            password=password,
            timeout=settings.pb_timeout,
        )
    return _async_pb_client


async def close_async_pb_client() -> None:
    global _async_pb_client
    if _async_pb_client is not None:
        await _async_pb_client.close()
        _async_pb_client = None
