"""Tests for the storefront GraphQL client against a mocked transport."""

import json
import logging

import httpx
import pytest

from app.errors import DownstreamFailure, MissingCredential
from app.services.storefront_client import StorefrontClient

QUERY = "query { shop { name } }"


def make_client(handler, **kwargs) -> StorefrontClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return StorefrontClient(http=http, api_version="2024-10", **kwargs)


def graphql_response(data=None, errors=None, available=1000):
    body = {
        "extensions": {
            "cost": {
                "requestedQueryCost": 12,
                "actualQueryCost": 8,
                "throttleStatus": {
                    "maximumAvailable": 1000,
                    "currentlyAvailable": available,
                    "restoreRate": 50,
                },
            }
        }
    }
    if data is not None:
        body["data"] = data
    if errors is not None:
        body["errors"] = errors
    return httpx.Response(200, json=body)


class TestQuery:
    """Successful calls and request shape."""

    @pytest.mark.asyncio
    async def test_sends_tenant_token_to_tenant_endpoint(self):
        """The request goes to the tenant's endpoint with its own token."""
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = str(request.url)
            seen["token"] = request.headers.get("x-shopify-access-token")
            seen["body"] = json.loads(request.content)
            return graphql_response(data={"shop": {"name": "A"}})

        client = make_client(handler)
        data = await client.query("shop-a.example", "tok_abc", QUERY, {"first": 2})

        assert data == {"shop": {"name": "A"}}
        assert seen["url"] == "https://shop-a.example/admin/api/2024-10/graphql.json"
        assert seen["token"] == "tok_abc"
        assert seen["body"] == {"query": QUERY, "variables": {"first": 2}}
        await client.aclose()

    @pytest.mark.asyncio
    async def test_missing_token_makes_no_request(self):
        """An empty token fails before any request."""
        calls = []

        def handler(request):
            calls.append(request)
            return graphql_response(data={})

        client = make_client(handler)
        with pytest.raises(MissingCredential):
            await client.query("shop-a.example", "", QUERY)
        assert calls == []


class TestFailures:
    """Everything that is not a clean success raises DownstreamFailure."""

    @pytest.mark.asyncio
    async def test_non_2xx(self):
        """Non-2xx answers raise with the status."""
        client = make_client(lambda request: httpx.Response(401, text="Invalid API key or access token"))

        with pytest.raises(DownstreamFailure) as exc_info:
            await client.query("shop-a.example", "tok_abc", QUERY)
        assert exc_info.value.status == 401

    @pytest.mark.asyncio
    async def test_graphql_errors_with_partial_data(self):
        """GraphQL errors fail the call even with partial data."""
        client = make_client(lambda request: graphql_response(
            data={"shop": None}, errors=[{"message": "Field 'x' doesn't exist"}],
        ))

        with pytest.raises(DownstreamFailure) as exc_info:
            await client.query("shop-a.example", "tok_abc", QUERY)
        assert "Field 'x' doesn't exist" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Timeouts raise a downstream failure."""
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)
        with pytest.raises(DownstreamFailure, match="in time"):
            await client.query("shop-a.example", "tok_abc", QUERY)

    @pytest.mark.asyncio
    async def test_connection_error(self):
        """Connection errors raise a downstream failure."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(DownstreamFailure):
            await client.query("shop-a.example", "tok_abc", QUERY)

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        """Non-JSON bodies raise a downstream failure."""
        client = make_client(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

        with pytest.raises(DownstreamFailure):
            await client.query("shop-a.example", "tok_abc", QUERY)

    @pytest.mark.asyncio
    async def test_missing_data(self):
        """A body without data raises a downstream failure."""
        client = make_client(lambda request: graphql_response())

        with pytest.raises(DownstreamFailure):
            await client.query("shop-a.example", "tok_abc", QUERY)

    @pytest.mark.asyncio
    async def test_error_logs_never_contain_token(self, caplog):
        """Failure logs never include the access token."""
        client = make_client(lambda request: httpx.Response(500, text="boom"))

        with caplog.at_level(logging.DEBUG):
            with pytest.raises(DownstreamFailure):
                await client.query("shop-a.example", "shpat_supersecret", QUERY)
        assert "shpat_supersecret" not in caplog.text


class TestThrottle:
    """Cost/throttle warnings."""

    @pytest.mark.asyncio
    async def test_warns_below_low_water(self, caplog):
        """A low query-cost budget logs a warning."""
        client = make_client(lambda request: graphql_response(data={"ok": True}, available=5), low_water=10)

        with caplog.at_level(logging.WARNING, logger="app.services.storefront_client"):
            data = await client.query("shop-a.example", "tok_abc", QUERY)

        assert data == {"ok": True}
        assert "rate limit low" in caplog.text

    @pytest.mark.asyncio
    async def test_quiet_with_budget(self, caplog):
        """A healthy budget logs nothing."""
        client = make_client(lambda request: graphql_response(data={"ok": True}, available=900), low_water=10)

        with caplog.at_level(logging.WARNING, logger="app.services.storefront_client"):
            await client.query("shop-a.example", "tok_abc", QUERY)

        assert "rate limit low" not in caplog.text
