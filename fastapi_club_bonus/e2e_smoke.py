from __future__ import annotations

from datetime import datetime, timezone

from fastapi.testclient import TestClient

from app.api import deps
from app.main import app


def _override_current_user():
    return deps.AuthenticatedUser(
        subject="smoke",
        expires_at=datetime.now(timezone.utc),
        email="smoke@example.com",
        roles={"ADMIN"},
    )


def run_smoke() -> None:
    app.dependency_overrides[deps.get_current_user] = _override_current_user
    with TestClient(app) as client:
        client.get("/healthz").raise_for_status()
        resp = client.post(
            "/bonus-codes/bulk-create-send",
            json={
                "club": "RT",
                "bonus_type": "promotion",
                "code_prefix": "SMOKE",
                "code_length": 10,
                "email_subject": "Bonus",
                "email_body": "Code {{code}}",
                "telegram_text": "Code {{code}}",
            },
        )
        resp.raise_for_status()
        data = resp.json()["data"]
        print("Smoke test completed. created=", data["created"], "failures=", len(data["failures"]))


if __name__ == "__main__":
    run_smoke()
