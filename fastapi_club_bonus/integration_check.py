from __future__ import annotations

import argparse
import asyncio

from app.core.config import settings
from app.schemas.bonus_codes import BonusType, BulkCreateSendRequest, Channel
from app.services.bulk_service import bulk_create_and_send
from app.services.eligibility_service import resolve_eligible
from app.services.platform_client import build_platform_clients


async def _run(args: argparse.Namespace) -> None:
    clients = build_platform_clients(settings)
    try:
        if args.eligible:
            recipients = await resolve_eligible(clients.directory, args.eligible, [Channel.EMAIL, Channel.TELEGRAM])
            print("Eligible recipients:", len(recipients))
            for recipient in recipients[:10]:
                print(recipient.club_gg_id, recipient.username, recipient.email or "-", recipient.telegram_chat_id or "-")

        if args.bulk:
            payload = BulkCreateSendRequest(
                club=args.bulk,
                bonus_type=BonusType(args.bonus_type),
                code_prefix=args.prefix,
                code_length=args.length,
                email_subject="Your bonus code",
                email_body="Your code: {{code}}",
                telegram_text="Your code: {{code}}",
            )
            result = await bulk_create_and_send(clients, payload)
            print(f"Created {result.created} · email {result.email_sent} · telegram {result.telegram_sent}")
            for failure in result.failures:
                print(" ", failure.club_gg_id, failure.channel, failure.reason)
    finally:
        await clients.aclose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Platform API integration check")
    parser.add_argument("--eligible", metavar="CLUB", help="List eligible recipients for a club")
    parser.add_argument("--bulk", metavar="CLUB", help="Run a bulk batch (use with PLATFORM_MOCK_MODE=true)")
    parser.add_argument("--bonus-type", default=BonusType.PROMOTION.value, choices=[b.value for b in BonusType])
    parser.add_argument("--prefix", default="CHECK")
    parser.add_argument("--length", type=int, default=10)
    args = parser.parse_args()
    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
