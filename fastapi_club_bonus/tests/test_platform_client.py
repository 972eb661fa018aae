from __future__ import annotations

import json

import httpx
import pytest

from app.core.config import Settings
from app.schemas.bonus_codes import Channel
from app.services import platform_client
from app.services.platform_client import (
    CodeConflictError,
    PlatformAPIError,
    RenderedMessage,
    build_platform_clients,
)


def _settings(**overrides) -> Settings:
    values = {
        "PLATFORM_BASE_URL": "https://platform.example",
        "PLATFORM_API_KEY": "rt-key",
        "PLATFORM_MOCK_MODE": False,
    }
    values.update(overrides)
    return Settings(**values)


def _clients(handler, **overrides):
    config = _settings(**overrides)
    http_client = httpx.AsyncClient(
        base_url=config.platform_base_url,
        headers=config.platform_headers,
        transport=httpx.MockTransport(handler),
    )
    return build_platform_clients(config, http_client=http_client)


@pytest.mark.asyncio
async def test_directory_lists_users_for_club_with_bearer_key():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        users = [{"club_gg_id": "1001", "club_gg_username": "ace", "email": "a@example.com", "clubs": ["RT"]}]
        return httpx.Response(200, json={"ok": True, "data": users, "count": 1})

    clients = _clients(handler)
    try:
        users = await clients.directory.list_users("RT")
    finally:
        await clients.aclose()

    assert users[0]["club_gg_id"] == "1001"
    assert seen[0].url.path == "/users"
    assert seen[0].url.params["club"] == "RT"
    assert seen[0].headers["Authorization"] == "Bearer rt-key"


@pytest.mark.asyncio
async def test_directory_retries_server_errors(monkeypatch):
    monkeypatch.setattr(platform_client, "BASE_RETRY_DELAY", 0.0)
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] < 3:
            return httpx.Response(503, json={"ok": False, "error": "warming up"})
        return httpx.Response(200, json={"ok": True, "data": []})

    clients = _clients(handler)
    try:
        users = await clients.directory.list_users("CC")
    finally:
        await clients.aclose()

    assert users == []
    assert calls["count"] == 3


@pytest.mark.asyncio
async def test_directory_gives_up_on_client_errors():
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(401, json={"ok": False, "error": "invalid api key"})

    clients = _clients(handler)
    try:
        with pytest.raises(PlatformAPIError) as exc_info:
            await clients.directory.list_users("RT")
    finally:
        await clients.aclose()

    assert exc_info.value.status_code == 401
    assert "invalid api key" in str(exc_info.value)
    assert calls["count"] == 1


@pytest.mark.asyncio
async def test_code_store_posts_record_and_returns_data():
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        return httpx.Response(201, json={"ok": True, "data": {**body, "id": "c-1"}})

    clients = _clients(handler)
    try:
        record = await clients.code_store.create_bonus_code(
            code="BULKAAAA", bonus_type="referral", club_gg_id="1001", player_email="a@example.com"
        )
    finally:
        await clients.aclose()

    assert record["id"] == "c-1"
    assert bodies == [
        {
            "code": "BULKAAAA",
            "bonus_type": "referral",
            "player_email": "a@example.com",
            "club_gg_id": "1001",
            "is_redeemed": False,
        }
    ]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(409, json={"ok": False, "error": "code exists"}),
        httpx.Response(400, json={"ok": False, "error": "duplicate key value violates unique constraint"}),
    ],
)
async def test_code_store_reports_conflicts(response):
    clients = _clients(lambda request: response)
    try:
        with pytest.raises(CodeConflictError):
            await clients.code_store.create_bonus_code(
                code="BULKAAAA", bonus_type="referral", club_gg_id="1001", player_email=None
            )
    finally:
        await clients.aclose()


@pytest.mark.asyncio
async def test_code_store_other_errors_are_not_conflicts():
    clients = _clients(lambda request: httpx.Response(500, text="boom"))
    try:
        with pytest.raises(PlatformAPIError) as exc_info:
            await clients.code_store.create_bonus_code(
                code="BULKAAAA", bonus_type="referral", club_gg_id="1001", player_email=None
            )
    finally:
        await clients.aclose()

    assert not isinstance(exc_info.value, CodeConflictError)
    assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_email_sender_uses_plain_or_html_body():
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"ok": True, "data": {"success": True, "message": "queued"}})

    clients = _clients(handler)
    try:
        await clients.email.deliver("a@example.com", RenderedMessage(body="code X", subject="Hi"))
        await clients.email.deliver("a@example.com", RenderedMessage(body="<b>X</b>", subject="Hi", options={"html": True}))
    finally:
        await clients.aclose()

    assert bodies[0] == {"to": ["a@example.com"], "subject": "Hi", "plain_text_body": "code X"}
    assert bodies[1]["html_body"] == "<b>X</b>"
    assert "plain_text_body" not in bodies[1]
    assert clients.senders[Channel.EMAIL] is clients.email


@pytest.mark.asyncio
async def test_email_sender_raises_on_provider_rejection():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True, "data": {"success": False, "message": "address suppressed"}})

    clients = _clients(handler)
    try:
        with pytest.raises(PlatformAPIError, match="address suppressed"):
            await clients.email.deliver("a@example.com", RenderedMessage(body="x", subject="y"))
    finally:
        await clients.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "data",
    [
        {"sent": False},
        {"sent": False, "error": "mailbox full"},
    ],
)
async def test_email_sender_raises_when_not_sent(data):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True, "data": data})

    clients = _clients(handler)
    try:
        with pytest.raises(PlatformAPIError) as exc_info:
            await clients.email.deliver("a@example.com", RenderedMessage(body="x", subject="y"))
    finally:
        await clients.aclose()

    assert exc_info.value.payload == data
    if "error" in data:
        assert "mailbox full" in str(exc_info.value)


@pytest.mark.asyncio
async def test_email_sender_accepts_sent_true():
    clients = _clients(lambda request: httpx.Response(200, json={"ok": True, "data": {"sent": True}}))
    try:
        await clients.email.deliver("a@example.com", RenderedMessage(body="x", subject="y"))
    finally:
        await clients.aclose()


@pytest.mark.asyncio
async def test_telegram_sender_accepts_club_broadcast_result_shape():
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        if body["chat_id"] == "9001":
            return httpx.Response(200, json={"ok": True, "data": {"sent": 1, "failed": 0, "failures": []}})
        return httpx.Response(
            200,
            json={"ok": True, "data": {"sent": 0, "failed": 1, "failures": [{"chat_id": "9002", "error": "bot was blocked"}]}},
        )

    clients = _clients(handler)
    message = RenderedMessage(body="code X", options={"parse_mode": "MarkdownV2", "disable_web_page_preview": True})
    try:
        await clients.telegram.deliver("9001", message)
        with pytest.raises(PlatformAPIError, match="bot was blocked"):
            await clients.telegram.deliver("9002", message)
    finally:
        await clients.aclose()

    assert bodies[0] == {
        "chat_id": "9001",
        "text": "code X",
        "disable_web_page_preview": True,
        "parse_mode": "MarkdownV2",
    }


@pytest.mark.asyncio
async def test_network_errors_become_retryable_platform_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    clients = _clients(handler)
    try:
        with pytest.raises(PlatformAPIError) as exc_info:
            await clients.telegram.deliver("9001", RenderedMessage(body="x"))
    finally:
        await clients.aclose()

    assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_mock_mode_serves_users_and_enforces_unique_codes():
    clients = build_platform_clients(Settings(PLATFORM_MOCK_MODE=True))
    try:
        users = await clients.directory.list_users("RT")
        await clients.code_store.create_bonus_code(
            code="MOCK0001", bonus_type="special", club_gg_id=users[0]["club_gg_id"], player_email=None
        )
        with pytest.raises(CodeConflictError):
            await clients.code_store.create_bonus_code(
                code="MOCK0001", bonus_type="special", club_gg_id=users[1]["club_gg_id"], player_email=None
            )
        await clients.email.deliver("a@example.com", RenderedMessage(body="x", subject="y"))
        await clients.telegram.deliver("9001", RenderedMessage(body="x"))
    finally:
        await clients.aclose()

    assert {user["club_gg_id"] for user in users} == {"4821-1090", "4821-1091", "4821-1092"}
