from __future__ import annotations

from enum import Enum


class RoleCode(str, Enum):
    ADMIN = "ADMIN"
    PROMOTIONS = "PROMOTIONS"
    SUPPORT = "SUPPORT"


# Bulk issuance mints live codes and messages a whole club.
BULK_SEND_ROLES: set[str] = {
    RoleCode.ADMIN.value,
    RoleCode.PROMOTIONS.value,
}
