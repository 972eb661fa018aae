from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from app.schemas.bonus_codes import Channel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recipient:
    club_gg_id: str
    username: str = ""
    email: Optional[str] = None
    telegram_chat_id: Optional[str] = None
    clubs: Tuple[str, ...] = field(default_factory=tuple)

    def address_for(self, channel: Channel) -> Optional[str]:
        if channel == Channel.EMAIL:
            return self.email
        if channel == Channel.TELEGRAM:
            return self.telegram_chat_id
        return None


def recipient_from_record(record: Mapping[str, Any]) -> Recipient:
    chat_id = record.get("telegram_chat_id") or record.get("chat_id")
    clubs = record.get("clubs") or []
    return Recipient(
        club_gg_id=_clean(record.get("club_gg_id")) or "",
        username=_clean(record.get("club_gg_username")) or "",
        email=_clean(record.get("email")),
        telegram_chat_id=_clean(chat_id),
        clubs=tuple(str(club).strip().upper() for club in clubs if club),
    )


def filter_eligible(
    records: Iterable[Mapping[str, Any]],
    club: str,
    channels: Sequence[Channel],
) -> List[Recipient]:
    """Directory records -> recipients that can receive at least one requested channel.

    Order follows the directory. A repeated club_gg_id is judged on its first
    record only, so a later duplicate never stands in for an ineligible one.
    """
    club_code = club.strip().upper()
    eligible: List[Recipient] = []
    seen: set[str] = set()
    for record in records:
        recipient = recipient_from_record(record)
        if not recipient.club_gg_id or recipient.club_gg_id in seen:
            continue
        seen.add(recipient.club_gg_id)
        if recipient.clubs and club_code not in recipient.clubs:
            continue
        if not any(recipient.address_for(channel) for channel in channels):
            continue
        eligible.append(recipient)
    return eligible


async def resolve_eligible(directory, club: str, channels: Sequence[Channel]) -> List[Recipient]:
    records = await directory.list_users(club)
    eligible = filter_eligible(records, club, channels)
    logger.info(
        "Eligibility resolved (club=%s, members=%s, eligible=%s)",
        club,
        len(records),
        len(eligible),
    )
    return eligible


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
