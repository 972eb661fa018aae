from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from app.core.config import settings


@dataclass
class TokenPayload:
    subject: str
    expires_at: datetime
    email: str | None = None
    roles: set[str] = field(default_factory=set)


class TokenDecodeError(RuntimeError):
    pass


def create_access_token(
    subject: str,
    *,
    roles: list[str] | None = None,
    email: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Issue a token in the identity provider's shape (local tooling and tests)."""
    now = datetime.now(timezone.utc)
    expires = now + (expires_delta or timedelta(minutes=30))
    payload: dict[str, Any] = {
        "sub": subject,
        "exp": int(expires.timestamp()),
        "iat": int(now.timestamp()),
        "app_metadata": {"roles": list(roles or [])},
    }
    if email:
        payload["email"] = email
    if settings.jwt_audience:
        payload["aud"] = settings.jwt_audience
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> TokenPayload:
    options = {"verify_aud": bool(settings.jwt_audience)}
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    except JWTError as exc:  # noqa: PERF203 - explicit conversion needed
        raise TokenDecodeError("Token verification failed.") from exc

    subject = payload.get("sub")
    exp = payload.get("exp")
    if not subject or exp is None:
        raise TokenDecodeError("Token payload is incomplete.")

    return TokenPayload(
        subject=str(subject),
        expires_at=datetime.fromtimestamp(int(exp), tz=timezone.utc),
        email=payload.get("email"),
        roles=_extract_roles(payload),
    )


def _extract_roles(payload: dict[str, Any]) -> set[str]:
    metadata = payload.get("app_metadata") or {}
    roles = metadata.get("roles")
    if isinstance(roles, list):
        return {str(role).upper() for role in roles if role}
    role = metadata.get("role")
    if role:
        return {str(role).upper()}
    return set()
