"""Executes rendered requests over HTTP with an optional response cache."""

from __future__ import annotations

import copy
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..logging_config import get_logger
from ..templates.request_builder import RenderedRequest


@dataclass
class ApiResponse:
    """HTTP response from an upstream API."""

    status: int
    body: Any
    headers: dict[str, str] = field(default_factory=dict)
    cache_hit: bool = False

    def is_success(self) -> bool:
        """Check if response indicates success (2xx)."""
        return 200 <= self.status < 300

    def is_error(self) -> bool:
        """Check if response indicates error (4xx or 5xx)."""
        return self.status >= 400

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "status": self.status,
            "body": self.body,
            "headers": self.headers,
        }


class ResponseCache:
    """Small TTL cache of successful responses, evicting oldest first."""

    def __init__(self, max_entries: int = 256):
        self.max_entries = max_entries
        self._entries: OrderedDict[str, tuple[float, ApiResponse]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> ApiResponse | None:
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, response = entry
            if expires_at <= now:
                del self._entries[key]
                return None
            return response

    def set(self, key: str, response: ApiResponse, ttl: float) -> None:
        with self._lock:
            self._entries[key] = (time.monotonic() + ttl, response)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class ApiExecutor:
    """Sends RenderedRequests with a shared httpx.AsyncClient.

    Transport failures (httpx.HTTPError) propagate to the caller; HTTP error
    statuses come back as an ApiResponse.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        cache: ResponseCache | None = None,
        logger: logging.Logger | None = None,
    ):
        self.transport = transport
        self.cache = cache or ResponseCache()
        self.logger = logger or get_logger("executor")
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(transport=self.transport)
        return self._client

    async def execute(self, request: RenderedRequest, cache_ttl: float | None = None) -> ApiResponse:
        cacheable = bool(cache_ttl) and request.method == "GET"
        key = request.cache_key() if cacheable else None

        if key is not None:
            cached = self.cache.get(key)
            if cached is not None:
                self.logger.debug("Cache hit for %s %s", request.method, request.url)
                return ApiResponse(
                    cached.status,
                    copy.deepcopy(cached.body),
                    dict(cached.headers),
                    cache_hit=True,
                )

        kwargs: dict[str, Any] = {"headers": request.headers, "params": request.params}
        if request.json is not None:
            kwargs["json"] = request.json
        if request.content is not None:
            kwargs["content"] = request.content
        if request.timeout is not None:
            kwargs["timeout"] = request.timeout

        self.logger.debug("Sending %s %s", request.method, request.url)
        response = await self._get_client().request(request.method, request.url, **kwargs)

        result = ApiResponse(
            status=response.status_code,
            body=_decode_body(response),
            headers=dict(response.headers),
        )
        if key is not None and result.is_success():
            self.cache.set(
                key,
                ApiResponse(result.status, copy.deepcopy(result.body), dict(result.headers)),
                cache_ttl,
            )
        return result

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    content_type = response.headers.get("content-type", "")
    if "json" in content_type:
        try:
            return response.json()
        except ValueError:
            return response.text
    return response.text
