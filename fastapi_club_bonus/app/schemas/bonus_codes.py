from __future__ import annotations

from enum import Enum
from typing import Generic, List, Literal, TypeVar

from pydantic import BaseModel, Field, model_validator

T = TypeVar("T")


class Club(str, Enum):
    RT = "RT"
    CC = "CC"
    AT = "AT"


class BonusType(str, Enum):
    ONBOARDING = "onboarding"
    REFERRAL = "referral"
    SPECIAL = "special"
    PROMOTION = "promotion"


class Channel(str, Enum):
    EMAIL = "email"
    TELEGRAM = "telegram"


ISSUANCE_STAGE = "issuance"


class ApiResponse(BaseModel, Generic[T]):
    ok: bool = True
    data: T | None = None
    error: str | None = None
    count: int | None = None


class BulkCreateSendRequest(BaseModel):
    club: Club
    bonus_type: BonusType = BonusType.ONBOARDING
    code_prefix: str = Field(default="BULK", max_length=32, pattern=r"^[A-Za-z0-9_-]*$")
    code_length: int = Field(default=8, ge=4, le=64, description="total length including the prefix")
    send_email: bool = True
    send_telegram: bool = True
    email_subject: str | None = Field(default=None, max_length=200)
    email_body: str | None = None
    email_html: bool = False
    telegram_text: str | None = Field(default=None, max_length=4096)
    telegram_parse_mode: Literal["MarkdownV2", "HTML"] | None = None
    disable_web_page_preview: bool = False
    email_max_per_second: float | None = Field(default=None, gt=0)
    email_max_concurrency: int | None = Field(default=None, ge=1, le=50)
    telegram_max_per_second: float | None = Field(default=None, gt=0)
    telegram_max_concurrency: int | None = Field(default=None, ge=1, le=50)

    @model_validator(mode="after")
    def _check_templates(self) -> "BulkCreateSendRequest":
        if self.code_length <= len(self.code_prefix):
            raise ValueError("code_length must be greater than the prefix length")
        if self.send_email and not (self.email_subject and self.email_body):
            raise ValueError("email_subject and email_body are required when send_email is set")
        if self.send_telegram and not self.telegram_text:
            raise ValueError("telegram_text is required when send_telegram is set")
        return self

    @property
    def channels(self) -> list[Channel]:
        selected: list[Channel] = []
        if self.send_email:
            selected.append(Channel.EMAIL)
        if self.send_telegram:
            selected.append(Channel.TELEGRAM)
        return selected


class BulkFailure(BaseModel):
    club_gg_id: str
    reason: str
    channel: str


class BulkCreateSendResult(BaseModel):
    eligible: int = 0
    created: int
    email_sent: int = 0
    telegram_sent: int = 0
    failures: List[BulkFailure] = Field(default_factory=list)
