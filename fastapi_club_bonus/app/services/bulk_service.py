from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Optional

from app.core.config import Settings, settings
from app.core.throttle import ChannelThrottle
from app.schemas.bonus_codes import BulkCreateSendRequest, BulkCreateSendResult, Channel
from app.services.code_generator import DEFAULT_MAX_ATTEMPTS, make_minter
from app.services.dispatch_service import DispatchOutcome, MessageTemplate, dispatch_code
from app.services.eligibility_service import Recipient, resolve_eligible
from app.services.issuance_service import (
    STORE_ERROR,
    IssuanceFailure,
    IssuanceResult,
    issue_for_recipient,
)
from app.services.platform_client import PlatformClients
from app.services.result_service import aggregate

logger = logging.getLogger(__name__)

NOT_STARTED = "not_started"
NOT_STARTED_REASON = "not started: batch deadline exceeded"


class PreconditionFailed(ValueError):
    """The batch cannot start; nothing was issued or sent."""


@dataclass
class BatchLimits:
    max_concurrency: int = 8
    deadline_seconds: Optional[float] = None
    code_generation_max_attempts: int = DEFAULT_MAX_ATTEMPTS
    email_max_concurrency: int = 4
    email_max_per_second: Optional[float] = 5.0
    telegram_max_concurrency: int = 4
    telegram_max_per_second: Optional[float] = 25.0

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "BatchLimits":
        return cls(
            max_concurrency=config.bulk_max_concurrency,
            deadline_seconds=config.bulk_deadline_seconds,
            code_generation_max_attempts=config.code_generation_max_attempts,
            email_max_concurrency=config.email_max_concurrency,
            email_max_per_second=config.email_max_per_second,
            telegram_max_concurrency=config.telegram_max_concurrency,
            telegram_max_per_second=config.telegram_max_per_second,
        )

    def throttles(self, payload: BulkCreateSendRequest) -> Dict[Channel, ChannelThrottle]:
        return {
            Channel.EMAIL: ChannelThrottle(
                payload.email_max_concurrency or self.email_max_concurrency,
                payload.email_max_per_second or self.email_max_per_second,
            ),
            Channel.TELEGRAM: ChannelThrottle(
                payload.telegram_max_concurrency or self.telegram_max_concurrency,
                payload.telegram_max_per_second or self.telegram_max_per_second,
            ),
        }


def build_templates(payload: BulkCreateSendRequest) -> Dict[Channel, MessageTemplate]:
    templates: Dict[Channel, MessageTemplate] = {}
    if payload.send_email:
        templates[Channel.EMAIL] = MessageTemplate(
            body=payload.email_body or "",
            subject=payload.email_subject or "",
            options={"html": payload.email_html},
        )
    if payload.send_telegram:
        templates[Channel.TELEGRAM] = MessageTemplate(
            body=payload.telegram_text or "",
            options={
                "parse_mode": payload.telegram_parse_mode,
                "disable_web_page_preview": payload.disable_web_page_preview,
            },
        )
    return templates


async def bulk_create_and_send(
    clients: PlatformClients,
    payload: BulkCreateSendRequest,
    *,
    limits: BatchLimits | None = None,
    rng: random.Random | None = None,
) -> BulkCreateSendResult:
    """Issue one code per eligible club member and deliver it over the selected channels.

    Only `PreconditionFailed` (or a Directory error before anything was issued)
    escapes; per-recipient and per-channel errors end up in `failures`.
    """
    channels = payload.channels
    if not channels:
        raise PreconditionFailed("Select at least one delivery channel (email or Telegram).")

    club = payload.club.value
    recipients = await resolve_eligible(clients.directory, club, channels)
    if not recipients:
        raise PreconditionFailed(f"No eligible players found for club {club}.")

    limits = limits or BatchLimits.from_settings()
    logger.info(
        "Bulk bonus batch started (club=%s, eligible=%s, channels=%s, bonus_type=%s)",
        club,
        len(recipients),
        ",".join(channel.value for channel in channels),
        payload.bonus_type.value,
    )

    mint = make_minter(
        payload.code_prefix,
        payload.code_length,
        set(),
        max_attempts=limits.code_generation_max_attempts,
        rng=rng,
    )
    templates = build_templates(payload)
    throttles = limits.throttles(payload)
    senders = clients.senders

    issuance: List[Optional[IssuanceResult]] = [None] * len(recipients)
    dispatch: List[List[DispatchOutcome]] = [[] for _ in recipients]
    pending = iter(enumerate(recipients))
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    deadline = loop.time() + limits.deadline_seconds if limits.deadline_seconds else None

    async def process(index: int, recipient: Recipient) -> None:
        try:
            result = await issue_for_recipient(clients.code_store, recipient, payload.bonus_type.value, mint)
        except Exception as exc:  # noqa: BLE001
            result = IssuanceFailure(recipient.club_gg_id, f"unexpected issuance error: {exc}", STORE_ERROR)
        issuance[index] = result
        if isinstance(result, IssuanceFailure):
            logger.warning("Issuance failed for %s: %s", recipient.club_gg_id, result.reason)
            return
        dispatch[index] = await dispatch_code(result, recipient, channels, templates, senders, throttles)

    async def worker() -> None:
        for index, recipient in pending:
            if stop.is_set() or (deadline is not None and loop.time() >= deadline):
                return
            await process(index, recipient)

    workers = [
        asyncio.create_task(worker())
        for _ in range(min(max(limits.max_concurrency, 1), len(recipients)))
    ]
    try:
        await asyncio.shield(asyncio.gather(*workers))
    except asyncio.CancelledError:
        stop.set()
        logger.warning("Bulk bonus batch cancelled (club=%s); finishing in-flight recipients", club)
        drain = asyncio.gather(*workers, return_exceptions=True)
        while not drain.done():
            # Repeated cancellation must not orphan the workers.
            try:
                await asyncio.shield(drain)
            except asyncio.CancelledError:
                continue
        raise

    results: List[IssuanceResult] = []
    for index, recipient in enumerate(recipients):
        result = issuance[index]
        if result is None:
            result = IssuanceFailure(recipient.club_gg_id, NOT_STARTED_REASON, NOT_STARTED)
        results.append(result)

    summary = aggregate(results, dispatch, channels)
    logger.info(
        "Bulk bonus batch finished (club=%s, created=%s, email_sent=%s, telegram_sent=%s, failures=%s)",
        club,
        summary.created,
        summary.email_sent,
        summary.telegram_sent,
        len(summary.failures),
    )
    return summary
