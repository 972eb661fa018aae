from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar
from uuid import uuid4

import httpx

from app.core.config import Settings, settings
from app.schemas.bonus_codes import Channel

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRY_ATTEMPTS = 3
BASE_RETRY_DELAY = 0.4
DUPLICATE_MARKERS = ("duplicate", "already exists", "unique constraint")


class PlatformAPIError(RuntimeError):
    """Platform REST API call failure."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool = False,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable
        self.payload = payload or {}


class CodeConflictError(PlatformAPIError):
    """The Code Store already holds a record for this code."""


@dataclass
class RenderedMessage:
    body: str
    subject: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)


class _PlatformHTTP:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def call(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        params: Dict[str, Any] | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await self._client.request(method, path, params=params, json=payload)
        except httpx.HTTPError as exc:
            raise PlatformAPIError(f"{operation} call failed: {exc}", retryable=True) from exc
        return _unwrap(response, operation)


class DirectoryClient:
    def __init__(self, http: _PlatformHTTP, *, users_path: str, retry: bool = True) -> None:
        self._http = http
        self._users_path = users_path
        self._retry = retry

    async def list_users(self, club: str) -> List[Dict[str, Any]]:
        async def _call() -> List[Dict[str, Any]]:
            data = await self._http.call("GET", self._users_path, "directory.list", params={"club": club})
            if data is None:
                return []
            if not isinstance(data, list):
                raise PlatformAPIError("directory.list returned a non-list payload", payload={"data": data})
            return [item for item in data if isinstance(item, dict)]

        if not self._retry:
            return await _call()
        return await _run_with_retry("directory.list", _call)


class CodeStoreClient:
    def __init__(self, http: _PlatformHTTP, *, codes_path: str) -> None:
        self._http = http
        self._codes_path = codes_path

    async def create_bonus_code(
        self,
        *,
        code: str,
        bonus_type: str,
        club_gg_id: str,
        player_email: str | None,
    ) -> Dict[str, Any]:
        payload = {
            "code": code,
            "bonus_type": bonus_type,
            "player_email": player_email,
            "club_gg_id": club_gg_id,
            "is_redeemed": False,
        }
        try:
            data = await self._http.call("POST", self._codes_path, "bonus_codes.create", payload=payload)
        except CodeConflictError:
            raise
        except PlatformAPIError as exc:
            if not exc.retryable and _looks_like_duplicate(str(exc)):
                raise CodeConflictError(
                    str(exc), status_code=exc.status_code, payload=exc.payload
                ) from exc
            raise
        return data if isinstance(data, dict) else {}


class EmailSender:
    channel = Channel.EMAIL

    def __init__(self, http: _PlatformHTTP, *, send_path: str) -> None:
        self._http = http
        self._send_path = send_path

    async def deliver(self, address: str, message: RenderedMessage) -> None:
        payload: Dict[str, Any] = {"to": [address], "subject": message.subject or ""}
        if message.options.get("html"):
            payload["html_body"] = message.body
        else:
            payload["plain_text_body"] = message.body
        data = await self._http.call("POST", self._send_path, "emails.send", payload=payload)
        _ensure_email_sent(data)


class TelegramSender:
    channel = Channel.TELEGRAM

    def __init__(self, http: _PlatformHTTP, *, send_path: str) -> None:
        self._http = http
        self._send_path = send_path

    async def deliver(self, address: str, message: RenderedMessage) -> None:
        payload: Dict[str, Any] = {
            "chat_id": address,
            "text": message.body,
            "disable_web_page_preview": bool(message.options.get("disable_web_page_preview")),
        }
        if message.options.get("parse_mode"):
            payload["parse_mode"] = message.options["parse_mode"]
        data = await self._http.call("POST", self._send_path, "telegram.send", payload=payload)
        _ensure_telegram_sent(data)


@dataclass
class PlatformClients:
    """Explicit bundle of the external collaborators used by a batch."""

    directory: DirectoryClient
    code_store: CodeStoreClient
    email: EmailSender
    telegram: TelegramSender
    http_client: httpx.AsyncClient | None = None

    @property
    def senders(self) -> Dict[Channel, Any]:
        return {Channel.EMAIL: self.email, Channel.TELEGRAM: self.telegram}

    async def aclose(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()


def build_platform_clients(
    config: Settings = settings,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> PlatformClients:
    if http_client is None:
        transport = httpx.MockTransport(_mock_handler(config)) if config.platform_mock_mode else None
        http_client = httpx.AsyncClient(
            base_url=config.platform_base_url.rstrip("/"),
            headers=config.platform_headers,
            timeout=config.platform_timeout,
            transport=transport,
        )
        if config.platform_mock_mode:
            logger.info("Platform mock mode enabled (PLATFORM_MOCK_MODE=true)")

    http = _PlatformHTTP(http_client)
    return PlatformClients(
        directory=DirectoryClient(
            http,
            users_path=config.directory_users_path,
            retry=not config.platform_mock_mode,
        ),
        code_store=CodeStoreClient(http, codes_path=config.bonus_codes_path),
        email=EmailSender(http, send_path=config.email_send_path),
        telegram=TelegramSender(http, send_path=config.telegram_send_path),
        http_client=http_client,
    )


# --------------------------------------------------------------------------- #
# Internal helpers

def _unwrap(response: httpx.Response, operation: str) -> Any:
    try:
        body = response.json()
    except ValueError:
        body = None

    if response.status_code >= 400:
        detail = _error_detail(body) or response.reason_phrase or "HTTP error"
        message = f"{operation} HTTP {response.status_code}: {detail}"
        payload = body if isinstance(body, dict) else None
        if response.status_code == 409:
            raise CodeConflictError(message, status_code=409, payload=payload)
        raise PlatformAPIError(
            message,
            status_code=response.status_code,
            retryable=response.status_code >= 500,
            payload=payload,
        )

    if isinstance(body, dict) and "ok" in body:
        if not body.get("ok"):
            raise PlatformAPIError(
                f"{operation} failed: {_error_detail(body) or 'unknown error'}",
                status_code=response.status_code,
                payload=body,
            )
        return body.get("data")
    return body


def _error_detail(body: Any) -> str | None:
    if not isinstance(body, dict):
        return None
    for key in ("error", "detail", "message"):
        value = body.get(key)
        if value:
            return str(value)
    return None


def _looks_like_duplicate(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in DUPLICATE_MARKERS)


def _ensure_email_sent(data: Any) -> None:
    # Provider replies either {"sent": bool} or {"success": bool, "message": ...}.
    if not isinstance(data, dict):
        return
    if data.get("sent") is False or data.get("success") is False:
        raise PlatformAPIError(_error_detail(data) or "email provider rejected the message", payload=data)


def _ensure_telegram_sent(data: Any) -> None:
    if not isinstance(data, dict):
        return
    sent = data.get("sent")
    if isinstance(sent, bool):
        if not sent:
            raise PlatformAPIError(_error_detail(data) or "telegram message not sent", payload=data)
        return
    if isinstance(sent, int) and sent <= 0:
        failures = data.get("failures") or []
        reason = None
        if failures and isinstance(failures[0], dict):
            reason = failures[0].get("error")
        raise PlatformAPIError(reason or "telegram message not sent", payload=data)


async def _run_with_retry(operation: str, func: Callable[[], Awaitable[T]]) -> T:
    attempt = 1
    while True:
        try:
            return await func()
        except PlatformAPIError as exc:
            if not exc.retryable or attempt >= MAX_RETRY_ATTEMPTS:
                raise
            delay = min(BASE_RETRY_DELAY * (2 ** (attempt - 1)), 2.0)
            logger.warning("%s failed (attempt %s), retrying in %.1fs: %s", operation, attempt, delay, exc)
            await asyncio.sleep(delay)
            attempt += 1


MOCK_USERS: List[Dict[str, Any]] = [
    {
        "club_gg_id": "4821-1090",
        "club_gg_username": "river_rat",
        "email": "river.rat@example.com",
        "telegram_chat_id": "700100001",
        "clubs": ["RT"],
    },
    {
        "club_gg_id": "4821-1091",
        "club_gg_username": "nut_flush",
        "email": "nut.flush@example.com",
        "telegram_chat_id": "700100002",
        "clubs": ["RT", "CC"],
    },
    {
        "club_gg_id": "4821-1092",
        "club_gg_username": "tight_aggro",
        "email": "",
        "telegram_chat_id": "700100003",
        "clubs": ["RT"],
    },
    {
        "club_gg_id": "5530-2040",
        "club_gg_username": "check_raise",
        "email": "check.raise@example.com",
        "clubs": ["CC", "AT"],
    },
]


def _mock_handler(config: Settings) -> Callable[[httpx.Request], httpx.Response]:
    issued: Dict[str, Dict[str, Any]] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET" and path.endswith(config.directory_users_path):
            club = request.url.params.get("club")
            users = [user for user in MOCK_USERS if not club or club in user["clubs"]]
            return httpx.Response(200, json={"ok": True, "data": users, "count": len(users)})

        body = json.loads(request.content or b"{}")
        if request.method == "POST" and path.endswith(config.bonus_codes_path):
            code = body.get("code")
            if code in issued:
                return httpx.Response(409, json={"ok": False, "error": f"duplicate bonus code {code}"})
            now = datetime.now(timezone.utc).isoformat()
            record = {**body, "id": uuid4().hex, "created_at": now, "updated_at": now}
            issued[code] = record
            return httpx.Response(201, json={"ok": True, "data": record})
        if request.method == "POST" and path.endswith(config.email_send_path):
            return httpx.Response(200, json={"ok": True, "data": {"success": True, "message": "MOCK"}})
        if request.method == "POST" and path.endswith(config.telegram_send_path):
            return httpx.Response(200, json={"ok": True, "data": {"sent": True}})
        return httpx.Response(404, json={"ok": False, "error": "not found"})

    return handler
