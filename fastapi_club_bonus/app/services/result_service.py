from __future__ import annotations

from typing import List, Sequence

from app.schemas.bonus_codes import ISSUANCE_STAGE, BulkCreateSendResult, BulkFailure, Channel
from app.services.dispatch_service import SENT, DispatchOutcome
from app.services.issuance_service import IssuanceFailure, IssuanceResult, IssuedCode


def aggregate(
    issuance_results: Sequence[IssuanceResult],
    dispatch_results: Sequence[Sequence[DispatchOutcome]],
    channels: Sequence[Channel],
) -> BulkCreateSendResult:
    """Merge per-recipient slots (recipient order) into the batch summary."""
    created = sum(1 for result in issuance_results if isinstance(result, IssuedCode))
    sent = {channel: 0 for channel in channels}
    failures: List[BulkFailure] = []

    for result, outcomes in zip(issuance_results, dispatch_results):
        if isinstance(result, IssuanceFailure):
            failures.append(
                BulkFailure(club_gg_id=result.club_gg_id, reason=result.reason, channel=ISSUANCE_STAGE)
            )
            continue
        for outcome in outcomes:
            if outcome.status == SENT:
                sent[outcome.channel] = sent.get(outcome.channel, 0) + 1
                continue
            failures.append(
                BulkFailure(
                    club_gg_id=outcome.club_gg_id,
                    reason=outcome.reason or outcome.status,
                    channel=outcome.channel.value,
                )
            )

    return BulkCreateSendResult(
        eligible=len(issuance_results),
        created=created,
        email_sent=sent.get(Channel.EMAIL, 0),
        telegram_sent=sent.get(Channel.TELEGRAM, 0),
        failures=failures,
    )
