from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Union

from app.services.code_generator import CodeGenerationExhausted
from app.services.eligibility_service import Recipient
from app.services.platform_client import CodeConflictError

logger = logging.getLogger(__name__)

GENERATION_EXHAUSTED = "generation_exhausted"
CODE_CONFLICT = "code_conflict"
STORE_ERROR = "store_error"


@dataclass
class IssuedCode:
    code: str
    club_gg_id: str
    bonus_type: str
    is_redeemed: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    raw_payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class IssuanceFailure:
    club_gg_id: str
    reason: str
    kind: str


IssuanceResult = Union[IssuedCode, IssuanceFailure]


async def issue_for_recipient(
    code_store,
    recipient: Recipient,
    bonus_type: str,
    mint: Callable[[], str],
) -> IssuanceResult:
    try:
        code = mint()
    except CodeGenerationExhausted as exc:
        return IssuanceFailure(recipient.club_gg_id, f"code generation exhausted: {exc}", GENERATION_EXHAUSTED)
    return await issue_code(code_store, recipient, bonus_type, code, regenerate=mint)


async def issue_code(
    code_store,
    recipient: Recipient,
    bonus_type: str,
    code: str,
    *,
    regenerate: Callable[[], str],
) -> IssuanceResult:
    """Create one code record; a conflict is retried once with a fresh code."""
    current = code
    for attempt in (1, 2):
        try:
            record = await code_store.create_bonus_code(
                code=current,
                bonus_type=bonus_type,
                club_gg_id=recipient.club_gg_id,
                player_email=recipient.email,
            )
        except CodeConflictError:
            if attempt == 2:
                return IssuanceFailure(
                    recipient.club_gg_id,
                    f"code conflict: {current} already exists after retry",
                    CODE_CONFLICT,
                )
            logger.info("Code %s already exists, regenerating for %s", current, recipient.club_gg_id)
            try:
                current = regenerate()
            except CodeGenerationExhausted as exc:
                return IssuanceFailure(
                    recipient.club_gg_id, f"code generation exhausted: {exc}", GENERATION_EXHAUSTED
                )
            continue
        except Exception as exc:  # noqa: BLE001
            return IssuanceFailure(recipient.club_gg_id, f"code store error: {exc}", STORE_ERROR)

        return _issued_from_record(record, current, recipient, bonus_type)

    raise AssertionError("unreachable")


def _issued_from_record(
    record: Dict[str, Any],
    code: str,
    recipient: Recipient,
    bonus_type: str,
) -> IssuedCode:
    created_at = _parse_timestamp(record.get("created_at")) or datetime.now(timezone.utc)
    return IssuedCode(
        code=record.get("code") or code,
        club_gg_id=record.get("club_gg_id") or recipient.club_gg_id,
        bonus_type=record.get("bonus_type") or bonus_type,
        is_redeemed=bool(record.get("is_redeemed", False)),
        created_at=created_at,
        raw_payload=record,
    )


def _parse_timestamp(value: Any) -> datetime | None:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
