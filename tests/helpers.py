"""
Shared test helpers - settings factory, recording stream handle, Telnyx payloads.
"""
from smsdash.config import Settings
from smsdash.services.broadcaster import StreamClosedError

USER_ID = "dashboard-user-1"
OUR_NUMBER = "+13076249136"


def make_settings(**overrides) -> Settings:
    """Real Settings object with test defaults, ignoring any local .env."""
    values = {
        "app_env": "test",
        "database_url": "sqlite+aiosqlite:///:memory:",
        "log_level": "WARNING",
        "app_base_url": "https://sms.example.com",
        "telnyx_api_key": "KEY_test",
        "telnyx_public_key": "",
        "default_user_id": USER_ID,
        "default_user_email": "owner@example.com",
        "default_user_name": "Owner",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class RecordingHandle:
    """Stream handle stand-in that records every event it is sent."""

    def __init__(self, fail: bool = False):
        self.events: list[dict] = []
        self.fail = fail
        self.closed = False

    def send(self, event: dict) -> None:
        if self.fail or self.closed:
            raise StreamClosedError("write failed")
        self.events.append(event)

    def close(self) -> None:
        self.closed = True

    def types(self) -> list[str]:
        return [e["type"] for e in self.events]


def telnyx_envelope(
    event_type: str = "message.received",
    envelope_id: str = "evt-1",
    **payload,
) -> dict:
    """Build a Telnyx webhook body. payload keys override the message defaults."""
    message = {
        "id": "msg-in-1",
        "record_type": "message",
        "direction": "inbound",
        "type": "SMS",
        "from": {"phone_number": "+15551112222", "carrier": "T-Mobile USA", "line_type": "Wireless"},
        "to": [{"phone_number": OUR_NUMBER, "status": "webhook_delivered"}],
        "text": "Hello",
        "media": [],
    }
    message.update(payload)
    return {
        "data": {
            "event_type": event_type,
            "id": envelope_id,
            "occurred_at": "2026-10-17T14:00:00.000+00:00",
            "payload": message,
        }
    }
