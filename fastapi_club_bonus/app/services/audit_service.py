from __future__ import annotations

import logging
from typing import Any

audit_logger = logging.getLogger("app.audit")


def log_action(
    *,
    actor: str | None,
    action: str,
    target_type: str | None = None,
    target_id: str | None = None,
    success: bool = True,
    **details: Any,
) -> None:
    extra = " ".join(f"{key}={value}" for key, value in sorted(details.items()))
    audit_logger.log(
        logging.INFO if success else logging.WARNING,
        "action=%s actor=%s target=%s:%s success=%s %s",
        action,
        actor or "-",
        target_type or "-",
        target_id or "-",
        success,
        extra,
    )
