"""Remote content-addressed object store reached over HTTP.

Talks to a gateway exposing a minimal blob API:

    POST   {base_url}/objects          body = bytes  -> {"ref": "sha256-..."}
    GET    {base_url}/objects/{ref}    -> bytes (404 if absent)
    HEAD   {base_url}/objects/{ref}    -> 200 / 404
    DELETE {base_url}/objects/{ref}    -> 2xx / 404

Every response is classified explicitly.  A put is only successful when the
gateway answers 2xx with JSON naming the same reference docpod computed
locally; an HTML error page, an unparseable body or a mismatched reference
is a failure, never an assumed success.  Timeouts, transport errors and 5xx
responses are retried a bounded number of times with a fixed delay.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx
import structlog

from docpod.interfaces.object_store import IObjectStore, content_ref
from docpod.utils.errors import ObjectNotFoundError, StorageError

logger = structlog.get_logger(logger_name=__name__)

_T = TypeVar("_T")


class HTTPObjectStore(IObjectStore):
    """Object store backed by a remote HTTP blob gateway."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        api_token: str = "",
        max_attempts: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {api_token}"} if api_token else {}
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay

    # ------------------------------------------------------------------
    # IObjectStore implementation
    # ------------------------------------------------------------------

    async def put(self, data: bytes, content_type: str = "application/octet-stream") -> str:
        expected = content_ref(data)

        async def _attempt() -> str:
            response = await self._http.post(
                f"{self._base_url}/objects",
                content=data,
                headers={**self._headers, "Content-Type": content_type},
            )
            self._raise_for_status(response, expected)
            try:
                payload = response.json()
            except ValueError as exc:
                raise StorageError(
                    message=f"Gateway returned a non-JSON body for put ({response.headers.get('content-type', 'unknown')})",
                    provider_name=self.get_provider_name(),
                ) from exc
            ref = payload.get("ref") if isinstance(payload, dict) else None
            if ref != expected:
                raise StorageError(
                    message=f"Gateway acknowledged {ref!r}, expected {expected}",
                    provider_name=self.get_provider_name(),
                )
            return ref

        ref = await self._with_retry("put", _attempt)
        logger.debug("object_put", ref=ref, size=len(data), content_type=content_type)
        return ref

    async def get(self, ref: str) -> bytes:
        async def _attempt() -> bytes:
            response = await self._http.get(
                f"{self._base_url}/objects/{ref}", headers=self._headers
            )
            self._raise_for_status(response, ref)
            if content_ref(response.content) != ref:
                raise StorageError(
                    message=f"Gateway returned bytes that do not hash to {ref}",
                    provider_name=self.get_provider_name(),
                )
            return response.content

        return await self._with_retry("get", _attempt)

    async def exists(self, ref: str) -> bool:
        async def _attempt() -> bool:
            response = await self._http.head(
                f"{self._base_url}/objects/{ref}", headers=self._headers
            )
            if response.status_code == 404:
                return False
            self._raise_for_status(response, ref)
            return True

        return await self._with_retry("exists", _attempt)

    async def delete(self, ref: str) -> None:
        async def _attempt() -> None:
            response = await self._http.delete(
                f"{self._base_url}/objects/{ref}", headers=self._headers
            )
            if response.status_code == 404:
                return
            self._raise_for_status(response, ref)

        await self._with_retry("delete", _attempt)

    def get_provider_name(self) -> str:
        return "http_store"

    # ------------------------------------------------------------------
    # Classification / retry
    # ------------------------------------------------------------------

    def _raise_for_status(self, response: httpx.Response, ref: str) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        if status == 404:
            raise ObjectNotFoundError(
                message=f"No object stored under {ref}",
                provider_name=self.get_provider_name(),
            )
        raise StorageError(
            message=f"Gateway responded {status} for {ref}",
            provider_name=self.get_provider_name(),
            retryable=status >= 500 or status in (408, 429),
        )

    async def _with_retry(self, operation: str, attempt_fn: Callable[[], Awaitable[_T]]) -> _T:
        last_error: StorageError | None = None
        for attempt in range(1, self._max_attempts + 1):
            if attempt > 1:
                logger.warning(
                    "object_store_retry",
                    operation=operation,
                    attempt=attempt,
                    error=str(last_error),
                )
                await asyncio.sleep(self._retry_delay)
            try:
                return await attempt_fn()
            except httpx.TimeoutException as exc:
                last_error = StorageError(
                    message=f"Gateway {operation} timed out",
                    provider_name=self.get_provider_name(),
                    retryable=True,
                )
                last_error.__cause__ = exc
            except httpx.TransportError as exc:
                last_error = StorageError(
                    message=f"Gateway {operation} transport error: {exc}",
                    provider_name=self.get_provider_name(),
                    retryable=True,
                )
                last_error.__cause__ = exc
            except StorageError as exc:
                if not exc.retryable:
                    raise
                last_error = exc
        if last_error is None:
            raise StorageError(
                message=f"Gateway {operation} was never attempted",
                provider_name=self.get_provider_name(),
            )
        raise last_error
