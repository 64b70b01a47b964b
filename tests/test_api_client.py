"""Tests for the BFFlix API client."""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from bfflix.config import Settings
from bfflix.context import ANONYMOUS, SessionContext
from bfflix.errors import ApiError, AuthError, NetworkError, NotFoundError
from bfflix.services.api import BFFlixClient


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


def build_settings(**overrides: Any) -> Settings:
    """Return a settings object with defaults suitable for tests."""

    base: dict[str, Any] = {"REQUEST_RETRY_LIMIT": 0}
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


SESSION = SessionContext(access_token="token-123", user_id="u1")


@pytest.mark.anyio("asyncio")
async def test_requests_carry_the_session_bearer_token() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"items": [], "nextCursor": None})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com") as http_client:
        client = BFFlixClient(build_settings(), http_client)
        await client.fetch_feed(session=SESSION, cursor="c1")
        await client.fetch_viewings(session=ANONYMOUS)

    assert requests[0].headers["Authorization"] == "Bearer token-123"
    assert requests[0].url.path == "/feed"
    assert requests[0].url.params["cursor"] == "c1"
    assert requests[0].url.params["limit"] == "20"
    assert "Authorization" not in requests[1].headers


@pytest.mark.anyio("asyncio")
async def test_write_bodies_match_the_api() -> None:
    seen: list[tuple[str, str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        seen.append((request.method, request.url.raw_path.decode(), body))
        return httpx.Response(200, json={"ok": True})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com") as http_client:
        client = BFFlixClient(build_settings(), http_client)
        await client.replace_user_services(["s1", "s2"], session=SESSION)
        await client.update_profile({"name": "Ana"}, session=SESSION)
        await client.join_circle("c/1", "INVITE", session=SESSION)
        await client.add_comment("p1", "nice", session=SESSION)

    assert seen == [
        ("PUT", "/api/users/me/streaming-services", {"serviceIds": ["s1", "s2"]}),
        ("PATCH", "/me", {"name": "Ana"}),
        ("POST", "/circles/c%2F1/join", {"inviteCode": "INVITE"}),
        ("POST", "/posts/p1/comments", {"text": "nice"}),
    ]


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(
    ("status", "body", "error_type", "message"),
    [
        (401, {}, AuthError, "access denied"),
        (403, {"error": "Not a member of this circle"}, AuthError, "Not a member of this circle"),
        (404, {"message": "Circle not found"}, NotFoundError, "Circle not found"),
        (422, {"error": "Username taken"}, ApiError, "Username taken"),
        (400, None, ApiError, "Request failed: 400"),
        (503, None, NetworkError, "Request failed: 503"),
    ],
)
async def test_error_statuses_map_to_the_taxonomy(status, body, error_type, message) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if body is None:
            return httpx.Response(status, text="<html>oops</html>")
        return httpx.Response(status, json=body)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com") as http_client:
        client = BFFlixClient(build_settings(), http_client)
        with pytest.raises(error_type) as excinfo:
            await client.fetch_circle("c1", session=SESSION)

    assert type(excinfo.value) is error_type
    assert excinfo.value.status_code == status
    assert excinfo.value.message == message


@pytest.mark.anyio("asyncio")
async def test_transport_errors_become_network_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com") as http_client:
        client = BFFlixClient(build_settings(), http_client)
        with pytest.raises(NetworkError) as excinfo:
            await client.fetch_profile(session=SESSION)

    assert excinfo.value.status_code is None
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)


@pytest.mark.anyio("asyncio")
async def test_get_requests_retry_server_errors(monkeypatch) -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            return httpx.Response(502)
        return httpx.Response(200, json={"name": "Ana"})

    monkeypatch.setattr(BFFlixClient, "_backoff", staticmethod(lambda attempt: 0.0))
    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com") as http_client:
        client = BFFlixClient(build_settings(REQUEST_RETRY_LIMIT=2), http_client)
        payload = await client.fetch_profile(session=SESSION)

    assert payload == {"name": "Ana"}
    assert attempts == 2


@pytest.mark.anyio("asyncio")
async def test_writes_are_not_retried(monkeypatch) -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        return httpx.Response(500, json={"error": "boom"})

    monkeypatch.setattr(BFFlixClient, "_backoff", staticmethod(lambda attempt: 0.0))
    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com") as http_client:
        client = BFFlixClient(build_settings(REQUEST_RETRY_LIMIT=3), http_client)
        with pytest.raises(NetworkError, match="boom"):
            await client.toggle_like("p1", session=SESSION)

    assert attempts == 1


@pytest.mark.anyio("asyncio")
async def test_empty_bodies_decode_to_none() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(204))
    async with httpx.AsyncClient(transport=transport, base_url="https://api.example.com") as http_client:
        client = BFFlixClient(build_settings(), http_client)
        assert await client.fetch_user_services(session=SESSION) is None
