"""Default reachability probe for HTTP upstream servers."""

from __future__ import annotations

import httpx

from ..errors import ErrorCode, UpstreamConnectionError
from ..models import ServerConfig
from ..templates.request_builder import join_url


class HttpHealthCheck:
    """Connector that GETs ``base_url + health_path``.

    Any response below 500 means the server is reachable; auth errors and
    404s still prove the host answers. Servers without a base_url are local
    and always reachable.
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self.transport = transport

    async def __call__(self, server_id: str, config: ServerConfig) -> None:
        if not config.base_url:
            return

        url = join_url(config.base_url, config.health_path)
        async with httpx.AsyncClient(transport=self.transport) as client:
            response = await client.get(url)

        if response.status_code >= 500:
            raise UpstreamConnectionError(
                f"Health check for '{server_id}' returned HTTP {response.status_code}",
                ErrorCode.SERVER_UNAVAILABLE,
                context={"server_id": server_id, "url": url, "status": response.status_code},
            )
