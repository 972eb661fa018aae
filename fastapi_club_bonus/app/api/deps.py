from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.security import TokenDecodeError, decode_access_token
from app.services.platform_client import PlatformClients

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class AuthenticatedUser:
    subject: str
    expires_at: datetime
    email: str | None = None
    roles: set[str] = field(default_factory=set)

    @property
    def username(self) -> str:
        return self.email or self.subject


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthenticatedUser:
    unauthorized = HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required.")
    if credentials is None or not credentials.credentials:
        raise unauthorized
    try:
        payload = decode_access_token(credentials.credentials)
    except TokenDecodeError as exc:
        raise unauthorized from exc

    return AuthenticatedUser(
        subject=payload.subject,
        expires_at=payload.expires_at,
        email=payload.email,
        roles=payload.roles,
    )


def require_roles(allowed_roles: set[str]):
    def _dependency(current_user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        if not current_user.roles.intersection(allowed_roles):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role.")
        return current_user

    return _dependency


def get_platform_clients(request: Request) -> PlatformClients:
    clients = getattr(request.app.state, "platform_clients", None)
    if clients is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Platform clients not ready.")
    return clients
