"""
Tests for the HTTP and GraphQL transports.
"""

import json

import httpx
import pytest

from pmbridge.transport import GraphQLError, GraphQLTransport, HttpTransport, TransportError
from pmbridge.transport.http import decode_json, parse_retry_after
from conftest import RecordingHandler, gql


def make_transport(handler, **kwargs):
    base_url = kwargs.pop("base_url", "https://api.example.com/1/")
    kwargs.setdefault("retry_delay", 0.0)
    transport = HttpTransport(base_url, **kwargs)
    transport._client = httpx.AsyncClient(
        base_url=base_url,
        headers=transport._headers,
        transport=httpx.MockTransport(handler),
    )
    return transport


# =============================================================================
# Retry behaviour
# =============================================================================


class TestRetry:
    """Tests for the transport retry loop."""

    @pytest.mark.asyncio
    async def test_retries_server_error_then_succeeds(self):
        handler = RecordingHandler(
            httpx.Response(503, text="busy"),
            httpx.Response(200, json={"ok": True}),
        )
        transport = make_transport(handler, max_retries=2)

        assert await transport.request_json("GET", "boards/1") == {"ok": True}
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        handler = RecordingHandler(*(httpx.Response(503, text="busy") for _ in range(5)))
        transport = make_transport(handler, max_retries=2)

        with pytest.raises(TransportError) as exc_info:
            await transport.request("GET", "boards/1")

        assert exc_info.value.status_code == 503
        assert exc_info.value.response_body == "busy"
        assert len(handler.requests) == 3

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        handler = RecordingHandler(httpx.Response(404, json={"message": "Not Found"}))
        transport = make_transport(handler, max_retries=3)

        with pytest.raises(TransportError) as exc_info:
            await transport.request("GET", "boards/missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.retryable is False
        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    async def test_timeout_has_no_status(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ReadTimeout("read timed out", request=request)

        transport = make_transport(handler, max_retries=1)

        with pytest.raises(TransportError) as exc_info:
            await transport.request("GET", "boards/1")

        assert exc_info.value.status_code is None
        assert exc_info.value.retryable is True
        assert "timeout" in exc_info.value.message.lower()
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        transport = make_transport(handler, max_retries=0)

        with pytest.raises(TransportError, match="Network error"):
            await transport.request("GET", "boards/1")

    def test_backoff_honours_retry_after(self):
        transport = HttpTransport("https://api.example.com/", retry_delay=1.0)
        error = TransportError("slow down", status_code=429, retry_after=7.0)
        assert transport._calculate_backoff(0, error) == 7.0

    def test_backoff_grows_exponentially(self):
        transport = HttpTransport("https://api.example.com/", retry_delay=1.0)
        error = TransportError("busy", status_code=503)
        assert 0.75 <= transport._calculate_backoff(0, error) <= 1.25
        assert 3.0 <= transport._calculate_backoff(2, error) <= 5.0

    def test_backoff_is_capped(self):
        transport = HttpTransport("https://api.example.com/", retry_delay=100.0)
        error = TransportError("busy", status_code=503)
        assert transport._calculate_backoff(5, error) == 60.0


# =============================================================================
# Requests
# =============================================================================


class TestRequests:
    """Tests for request construction and decoding."""

    @pytest.mark.asyncio
    async def test_default_params_merge_with_call_params(self):
        handler = RecordingHandler(httpx.Response(200, json=[]))
        transport = make_transport(handler, params={"key": "k", "token": "t"})

        await transport.request_json("GET", "members/me/boards", params={"fields": "id,name"})

        query = handler.requests[0].url.params
        assert query["key"] == "k"
        assert query["token"] == "t"
        assert query["fields"] == "id,name"
        assert handler.requests[0].url.path == "/1/members/me/boards"

    @pytest.mark.asyncio
    async def test_json_body_and_headers(self):
        handler = RecordingHandler(httpx.Response(201, json={"id": "c1"}))
        transport = make_transport(handler, headers={"Authorization": "Bearer abc"})

        result = await transport.request_json("POST", "cards", json={"name": "Fix"})

        request = handler.requests[0]
        assert result == {"id": "c1"}
        assert request.headers["Authorization"] == "Bearer abc"
        assert json.loads(request.content) == {"name": "Fix"}

    @pytest.mark.asyncio
    async def test_empty_response_decodes_to_none(self):
        handler = RecordingHandler(httpx.Response(204))
        transport = make_transport(handler)
        assert await transport.request_json("DELETE", "cards/1") is None

    def test_non_json_body_raises(self):
        request = httpx.Request("GET", "https://api.example.com/x")
        response = httpx.Response(200, text="<html>", request=request)
        with pytest.raises(TransportError, match="Non-JSON"):
            decode_json(response)

    def test_parse_retry_after(self):
        assert parse_retry_after("12") == 12.0
        assert parse_retry_after("-3") == 0.0
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None
        assert parse_retry_after(None) is None

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        transport = make_transport(RecordingHandler())
        async with transport:
            pass
        await transport.close()
        assert transport._client is None


# =============================================================================
# GraphQL
# =============================================================================


def make_graphql(handler, endpoint="https://api.github.com/graphql"):
    transport = GraphQLTransport(endpoint, max_retries=0, headers={"Authorization": "Bearer t"})
    transport._client = httpx.AsyncClient(
        base_url=transport.base_url,
        headers=transport._headers,
        transport=httpx.MockTransport(handler),
    )
    return transport


class TestGraphQLTransport:
    """Tests for GraphQL execution."""

    @pytest.mark.asyncio
    async def test_posts_query_and_variables(self):
        handler = RecordingHandler(gql({"viewer": {"login": "octocat"}}))
        transport = make_graphql(handler)

        data = await transport.execute("query { viewer { login } }", {"first": 10})

        request = handler.requests[0]
        assert data == {"viewer": {"login": "octocat"}}
        assert request.method == "POST"
        assert str(request.url) == "https://api.github.com/graphql"
        assert handler.graphql_bodies()[0] == {
            "query": "query { viewer { login } }",
            "variables": {"first": 10},
        }

    @pytest.mark.asyncio
    async def test_errors_array_raises(self):
        handler = RecordingHandler(
            httpx.Response(200, json={"data": None, "errors": [{"message": "Could not resolve to a node"}]})
        )
        transport = make_graphql(handler)

        with pytest.raises(GraphQLError) as exc_info:
            await transport.execute("query { node(id: \"x\") { id } }")

        assert exc_info.value.errors == [{"message": "Could not resolve to a node"}]
        assert exc_info.value.retryable is False
        assert "Could not resolve" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_data_is_empty(self):
        handler = RecordingHandler(httpx.Response(200, json={}))
        assert await make_graphql(handler).execute("query { viewer { id } }") == {}

    def test_endpoint_split(self):
        transport = GraphQLTransport("https://ghe.example.com/api/graphql/")
        assert transport.base_url == "https://ghe.example.com/api/"
        assert transport.path == "graphql"
