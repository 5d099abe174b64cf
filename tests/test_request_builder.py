"""Tests for HttpRequestBuilder and join_url."""

import pytest

from mcp_hub.models import ApiEndpointConfig, TemplateContext
from mcp_hub.templates import HttpRequestBuilder, RenderedRequest, join_url


@pytest.fixture
def builder():
    return HttpRequestBuilder()


@pytest.fixture
def context():
    return TemplateContext(
        data={"city": "Oslo", "user": {"id": 7}, "tags": ["x", "y"]},
        env={"API_KEY": "secret"},
    )


class TestJoinUrl:
    """Tests for join_url."""

    def test_relative_path(self):
        assert join_url("https://api.example.com/", "/v1/items") == "https://api.example.com/v1/items"

    def test_no_slashes(self):
        assert join_url("https://api.example.com", "v1") == "https://api.example.com/v1"

    def test_absolute_url_passes_through(self):
        assert join_url("https://a.example.com", "https://b.example.com/x") == "https://b.example.com/x"

    def test_no_base(self):
        assert join_url(None, "/x") == "/x"

    def test_empty_path(self):
        assert join_url("https://api.example.com", "") == "https://api.example.com"


class TestBuildRequest:
    """Tests for HttpRequestBuilder.build_request."""

    def test_get_with_query_and_headers(self, builder, context):
        endpoint = ApiEndpointConfig(
            url="/weather/{{data.city}}",
            method="get",
            headers={"Authorization": "Bearer {{env.API_KEY}}"},
            query_params={"units": "metric", "page": "{{data.page?}}"},
            timeout=5,
        )
        result = builder.build_request(endpoint, context, base_url="https://api.example.com")

        assert result.success is True
        request = result.request
        assert request.method == "GET"
        assert request.url == "https://api.example.com/weather/Oslo"
        assert request.headers == {"Authorization": "Bearer secret"}
        # Empty optional parameter is dropped
        assert request.params == {"units": "metric"}
        assert request.timeout == 5
        assert result.used_variables == ["data.city", "env.API_KEY"]

    def test_dict_body_rendered_recursively(self, builder, context):
        endpoint = ApiEndpointConfig(
            url="/users",
            method="POST",
            body={
                "id": "{{data.user.id}}",
                "profile": {"city": "{{data.city}}", "count": 3},
                "labels": ["static", "{{data.tags}}"],
            },
        )
        result = builder.build_request(endpoint, context)

        assert result.success is True
        assert result.request.json == {
            "id": "7",
            "profile": {"city": "Oslo", "count": 3},
            "labels": ["static", '["x","y"]'],
        }
        assert result.request.content is None

    def test_string_body_becomes_content(self, builder, context):
        endpoint = ApiEndpointConfig(url="/echo", method="POST", body="city={{data.city}}")
        result = builder.build_request(endpoint, context)
        assert result.request.content == "city=Oslo"
        assert result.request.json is None

    def test_missing_variable_names_the_part(self, builder, context):
        endpoint = ApiEndpointConfig(url="/x", headers={"X-Token": "{{env.TOKEN}}"})
        result = builder.build_request(endpoint, context)
        assert result.success is False
        assert result.request is None
        assert result.error == "Failed to render header 'X-Token': Missing required variable: env.TOKEN"

    def test_missing_query_variable(self, builder, context):
        endpoint = ApiEndpointConfig(url="/x", query_params={"q": "{{data.query}}"})
        result = builder.build_request(endpoint, context)
        assert result.success is False
        assert result.error.startswith("Failed to render query parameter 'q'")

    def test_missing_body_leaf(self, builder, context):
        endpoint = ApiEndpointConfig(url="/x", method="POST", body={"a": {"b": "{{data.nope}}"}})
        result = builder.build_request(endpoint, context)
        assert result.success is False
        assert "body.a.b" in result.error


class TestRenderedRequest:
    """Tests for RenderedRequest helpers."""

    def test_cache_key_ignores_param_order(self):
        a = RenderedRequest(method="GET", url="https://x", params={"a": "1", "b": "2"})
        b = RenderedRequest(method="GET", url="https://x", params={"b": "2", "a": "1"})
        assert a.cache_key() == b.cache_key()

    def test_cache_key_differs_by_url(self):
        a = RenderedRequest(method="GET", url="https://x/1")
        b = RenderedRequest(method="GET", url="https://x/2")
        assert a.cache_key() != b.cache_key()

    def test_cache_key_differs_by_header(self):
        en = RenderedRequest(method="GET", url="https://x", headers={"Accept-Language": "en"})
        fr = RenderedRequest(method="GET", url="https://x", headers={"Accept-Language": "fr"})
        assert en.cache_key() != fr.cache_key()

    def test_cache_key_header_names_are_case_insensitive(self):
        a = RenderedRequest(method="GET", url="https://x", headers={"X-Key": "k", "Accept": "a"})
        b = RenderedRequest(method="GET", url="https://x", headers={"accept": "a", "x-key": "k"})
        assert a.cache_key() == b.cache_key()

    def test_to_dict(self):
        request = RenderedRequest(method="POST", url="https://x", json={"a": 1})
        d = request.to_dict()
        assert d["method"] == "POST"
        assert d["json"] == {"a": 1}
        assert d["content"] is None
