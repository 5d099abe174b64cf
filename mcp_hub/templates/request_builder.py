"""Builds concrete HTTP requests from templated endpoint configs."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any

from ..errors import TemplateError
from ..models import ApiEndpointConfig, TemplateContext
from .engine import TemplateEngine


@dataclass
class RenderedRequest:
    """A fully rendered outbound request."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)
    json: Any = None
    content: str | None = None
    timeout: float | None = None

    def cache_key(self) -> str:
        """Stable key identifying this request for response caching.

        Covers method, URL, query parameters, headers and body. Ordering of
        parameters and headers does not matter; header names are matched
        case-insensitively. Returned as a sha256 hex digest.
        """
        material = {
            "method": self.method,
            "url": self.url,
            "params": sorted(self.params.items()),
            "headers": sorted((k.lower(), v) for k, v in self.headers.items()),
            "body": self.content if self.content is not None else self.json,
        }
        encoded = json.dumps(material, sort_keys=True, default=str)
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "method": self.method,
            "url": self.url,
            "headers": self.headers,
            "params": self.params,
            "json": self.json,
            "content": self.content,
            "timeout": self.timeout,
        }


@dataclass
class RequestBuildResult:
    success: bool
    request: RenderedRequest | None = None
    error: str | None = None
    used_variables: list[str] = field(default_factory=list)


class HttpRequestBuilder:
    """Renders an ApiEndpointConfig into a RenderedRequest.

    The URL, every query parameter, every header and every string leaf of a
    dict body go through the template engine. The first failed render
    aborts the build; the error names the part of the request that failed.
    """

    def __init__(self, template_engine: TemplateEngine | None = None):
        self.template_engine = template_engine or TemplateEngine()

    def build_request(
        self,
        endpoint: ApiEndpointConfig,
        context: TemplateContext,
        base_url: str | None = None,
    ) -> RequestBuildResult:
        used: list[str] = []

        try:
            url = join_url(base_url, self._render(endpoint.url, context, used, "URL"))

            params: dict[str, str] = {}
            for key, value in endpoint.query_params.items():
                rendered = self._render(value, context, used, f"query parameter '{key}'")
                # Empty values come from absent optional variables
                if rendered != "":
                    params[key] = rendered

            headers = {
                key: self._render(value, context, used, f"header '{key}'")
                for key, value in endpoint.headers.items()
            }

            json_body: Any = None
            content: str | None = None
            if isinstance(endpoint.body, str):
                content = self._render(endpoint.body, context, used, "body")
            elif endpoint.body is not None:
                json_body = self._render_value(endpoint.body, context, used, "body")
        except TemplateError as e:
            return RequestBuildResult(success=False, error=e.message)

        request = RenderedRequest(
            method=endpoint.method,
            url=url,
            headers=headers,
            params=params,
            json=json_body,
            content=content,
            timeout=endpoint.timeout,
        )
        return RequestBuildResult(success=True, request=request, used_variables=used)

    def _render(self, template: str, context: TemplateContext, used: list[str], part: str) -> str:
        result = self.template_engine.render(template, context)
        if not result.success:
            raise TemplateError(f"Failed to render {part}: {result.error}")
        for name in result.used_variables:
            if name not in used:
                used.append(name)
        return result.result

    def _render_value(self, obj: Any, context: TemplateContext, used: list[str], part: str) -> Any:
        """Recursively render string leaves of a JSON-like body."""
        if isinstance(obj, str):
            return self._render(obj, context, used, part)
        elif isinstance(obj, dict):
            return {
                k: self._render_value(v, context, used, f"{part}.{k}") for k, v in obj.items()
            }
        elif isinstance(obj, list):
            return [
                self._render_value(item, context, used, f"{part}[{i}]")
                for i, item in enumerate(obj)
            ]
        return obj


def join_url(base_url: str | None, path: str) -> str:
    """Join a relative path onto a base URL; absolute URLs pass through."""
    if not base_url or path.startswith(("http://", "https://")):
        return path
    if not path:
        return base_url
    return base_url.rstrip("/") + "/" + path.lstrip("/")
