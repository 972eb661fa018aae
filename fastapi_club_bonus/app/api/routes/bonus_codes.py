from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.api import deps
from app.core.config import settings
from app.core.roles import BULK_SEND_ROLES
from app.schemas.bonus_codes import ApiResponse, BulkCreateSendRequest, BulkCreateSendResult
from app.services.audit_service import log_action
from app.services.bulk_service import BatchLimits, bulk_create_and_send
from app.services.platform_client import PlatformAPIError, PlatformClients

router = APIRouter(prefix="/bonus-codes", tags=["bonus-codes"])


@router.post("/bulk-create-send", response_model=ApiResponse[BulkCreateSendResult])
async def bulk_create_send_endpoint(
    payload: BulkCreateSendRequest,
    clients: PlatformClients = Depends(deps.get_platform_clients),
    current_user: deps.AuthenticatedUser = Depends(deps.require_roles(BULK_SEND_ROLES)),
):
    """
    Generates one code per eligible club member and sends it by email / Telegram.
    Partial failures are reported in `failures`; only a batch that cannot start is an error.
    """
    audit = {
        "actor": current_user.username,
        "action": "bonus_codes.bulk_create_send",
        "target_type": "club",
        "target_id": payload.club.value,
    }
    try:
        result = await bulk_create_and_send(clients, payload, limits=BatchLimits.from_settings(settings))
    except ValueError as exc:
        log_action(**audit, success=False, reason=str(exc))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except PlatformAPIError as exc:
        log_action(**audit, success=False, reason=str(exc))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    log_action(
        **audit,
        created=result.created,
        email_sent=result.email_sent,
        telegram_sent=result.telegram_sent,
        failures=len(result.failures),
    )
    return ApiResponse[BulkCreateSendResult](data=result, count=result.created)
