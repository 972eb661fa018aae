from __future__ import annotations

import asyncio
import logging
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from app.core.throttle import ChannelThrottle
from app.schemas.bonus_codes import Channel
from app.services.eligibility_service import Recipient
from app.services.issuance_service import IssuedCode
from app.services.platform_client import RenderedMessage

logger = logging.getLogger(__name__)

CODE_PLACEHOLDER = "{{code}}"
SENT = "sent"
SKIPPED = "skipped"
FAILED = "failed"
NO_ADDRESS = "no address"


@dataclass(frozen=True)
class DispatchOutcome:
    club_gg_id: str
    channel: Channel
    status: str
    reason: Optional[str] = None


@dataclass
class MessageTemplate:
    body: str
    subject: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    def render(self, code: str) -> RenderedMessage:
        return RenderedMessage(
            body=render_template(self.body, code),
            subject=render_template(self.subject, code) if self.subject is not None else None,
            options=dict(self.options),
        )


def render_template(template: str, code: str) -> str:
    return template.replace(CODE_PLACEHOLDER, code)


async def dispatch_code(
    issued: IssuedCode,
    recipient: Recipient,
    channels: Sequence[Channel],
    templates: Mapping[Channel, MessageTemplate],
    senders: Mapping[Channel, Any],
    throttles: Mapping[Channel, ChannelThrottle] | None = None,
) -> List[DispatchOutcome]:
    """Send one issued code over every requested channel; one outcome per channel, in channel order."""
    sends = [
        _send_channel(issued, recipient, channel, templates[channel], senders[channel], (throttles or {}).get(channel))
        for channel in channels
    ]
    return list(await asyncio.gather(*sends))


async def _send_channel(
    issued: IssuedCode,
    recipient: Recipient,
    channel: Channel,
    template: MessageTemplate,
    sender: Any,
    throttle: ChannelThrottle | None,
) -> DispatchOutcome:
    address = recipient.address_for(channel)
    if not address:
        return DispatchOutcome(recipient.club_gg_id, channel, SKIPPED, NO_ADDRESS)

    message = template.render(issued.code)
    try:
        async with throttle.slot() if throttle else nullcontext():
            await sender.deliver(address, message)
    except Exception as exc:  # noqa: BLE001
        reason = str(exc) or exc.__class__.__name__
        logger.warning("%s delivery failed for %s: %s", channel.value, recipient.club_gg_id, reason)
        return DispatchOutcome(recipient.club_gg_id, channel, FAILED, reason)
    return DispatchOutcome(recipient.club_gg_id, channel, SENT)
