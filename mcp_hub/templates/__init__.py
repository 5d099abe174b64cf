"""Template rendering for outbound API requests."""

from .engine import TemplateEngine
from .request_builder import HttpRequestBuilder, RenderedRequest, RequestBuildResult, join_url

__all__ = [
    "TemplateEngine",
    "HttpRequestBuilder",
    "RenderedRequest",
    "RequestBuildResult",
    "join_url",
]
