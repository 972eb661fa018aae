import pytest

from app.schemas.bonus_codes import BulkCreateSendRequest


@pytest.fixture
def bulk_request():
    def _build(**overrides) -> BulkCreateSendRequest:
        data = {
            "club": "RT",
            "bonus_type": "onboarding",
            "code_prefix": "BULK",
            "code_length": 8,
            "send_email": True,
            "send_telegram": True,
            "email_subject": "Welcome bonus {{code}}",
            "email_body": "Hi! Your bonus code is {{code}}.",
            "telegram_text": "Your bonus code: {{code}}",
        }
        data.update(overrides)
        return BulkCreateSendRequest(**data)

    return _build
