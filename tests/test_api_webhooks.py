"""
Tests for the Telnyx webhook endpoint - signature gate, parsing, dedup, and
the full receive -> store -> broadcast path.
"""
import base64
import json
import time
import pytest
from unittest.mock import AsyncMock, patch
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from smsdash.services import store
from smsdash.services.store import PersistenceError
from tests.helpers import OUR_NUMBER, USER_ID, make_settings, telnyx_envelope

URL = "/api/webhooks/telnyx"


def _body(**kwargs) -> bytes:
    return json.dumps(telnyx_envelope(**kwargs)).encode()


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestTelnyxWebhook:
    async def test_inbound_message_end_to_end(self, client, db, user_handle, mock_redis):
        response = await client.post(URL, content=_body(text="Is the order ready?"))

        assert response.status_code == 200
        data = response.json()
        assert data["received"] is True
        assert data["processed"] is True
        assert data["outcome"]["status"] == "stored"

        assert user_handle.types() == ["message.received"]
        live = user_handle.events[0]["message"]
        assert live["content"] == "Is the order ready?"
        assert live["from_number"] == "+15551112222"
        assert live["to_number"] == OUR_NUMBER

        history = await client.get("/api/messages")
        assert history.status_code == 200
        assert history.json()["total"] == 1
        assert history.json()["messages"][0]["id"] == data["outcome"]["message_id"]

    async def test_status_update_via_webhook(self, client, db, user_handle, mock_redis):
        sent = await client.post(
            "/api/send-message",
            json={"to": "+15551112222", "from": OUR_NUMBER, "text": "Your order shipped"},
        )
        assert sent.status_code == 200

        response = await client.post(
            URL, content=_body(event_type="message.delivered", envelope_id="evt-2", id="out-msg-1"),
        )

        assert response.json()["outcome"]["status"] == "updated"
        message = await store.get_message_by_carrier_id(db, "out-msg-1")
        assert message.status == "delivered"
        assert user_handle.types() == ["new_message", "message.status"]

    async def test_unhandled_event_acknowledged(self, client, mock_redis):
        body = json.dumps({"data": {"event_type": "call.initiated", "id": "evt-c", "payload": {}}})
        response = await client.post(URL, content=body)
        assert response.status_code == 200
        assert response.json()["outcome"]["status"] == "ignored"


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------


class TestWebhookFailures:
    async def test_malformed_json_acknowledged(self, client, db, mock_redis):
        response = await client.post(URL, content=b"{not json")
        assert response.status_code == 200
        assert response.json() == {"received": True, "processed": False, "error": "Malformed payload"}
        assert await store.count_messages(db, USER_ID) == 0

    async def test_missing_message_id_acknowledged(self, client, mock_redis):
        body = telnyx_envelope()
        del body["data"]["payload"]["id"]
        response = await client.post(URL, content=json.dumps(body))
        assert response.status_code == 200
        assert response.json()["processed"] is False

    async def test_duplicate_delivery_not_processed(self, client, db, mock_redis):
        mock_redis.set = AsyncMock(return_value=None)
        response = await client.post(URL, content=_body())
        assert response.json() == {"received": True, "duplicate": True}
        assert await store.count_messages(db, USER_ID) == 0

    async def test_persistence_failure_still_200(self, client, mock_redis):
        with patch(
            "smsdash.api.webhooks.process_carrier_event",
            AsyncMock(side_effect=PersistenceError("database unavailable")),
        ):
            response = await client.post(URL, content=_body())
        assert response.status_code == 200
        assert response.json()["processed"] is False

    async def test_processor_error_still_200(self, client, db, mock_redis):
        with patch(
            "smsdash.services.store.get_or_create_contact",
            AsyncMock(side_effect=KeyError("contact")),
        ):
            response = await client.post(URL, content=_body())
        assert response.status_code == 200
        assert response.json() == {"received": True, "processed": False}
        assert await store.count_messages(db, USER_ID) == 0

    async def test_unexpected_processor_error_still_200(self, client, mock_redis):
        with patch(
            "smsdash.api.webhooks.process_carrier_event",
            AsyncMock(side_effect=RuntimeError("boom")),
        ):
            response = await client.post(URL, content=_body())
        assert response.status_code == 200
        assert response.json()["processed"] is False

    async def test_error_outside_processor_is_500(self, client, mock_redis):
        with patch(
            "smsdash.api.webhooks.is_duplicate_event",
            AsyncMock(side_effect=RuntimeError("boom")),
        ):
            response = await client.post(URL, content=_body())
        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}


# ---------------------------------------------------------------------------
# Signatures (production only)
# ---------------------------------------------------------------------------


class TestWebhookSignatures:
    @pytest.fixture
    def signing_key(self, ctx):
        private_key = Ed25519PrivateKey.generate()
        public_b64 = base64.b64encode(
            private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        ).decode()
        ctx.settings = make_settings(app_env="production", telnyx_public_key=public_b64)
        return private_key

    async def test_bad_signature_rejected(self, client, db, signing_key, mock_redis):
        response = await client.post(
            URL,
            content=_body(),
            headers={
                "telnyx-signature-ed25519": base64.b64encode(b"0" * 64).decode(),
                "telnyx-timestamp": str(int(time.time())),
            },
        )
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid signature"}
        assert await store.count_messages(db, USER_ID) == 0

    async def test_missing_signature_rejected(self, client, signing_key, mock_redis):
        response = await client.post(URL, content=_body())
        assert response.status_code == 401

    async def test_valid_signature_accepted(self, client, signing_key, mock_redis):
        body = _body()
        ts = str(int(time.time()))
        signature = base64.b64encode(signing_key.sign(f"{ts}|".encode() + body)).decode()

        response = await client.post(
            URL,
            content=body,
            headers={"telnyx-signature-ed25519": signature, "telnyx-timestamp": ts},
        )
        assert response.status_code == 200
        assert response.json()["processed"] is True

    async def test_development_skips_verification(self, client, mock_redis):
        response = await client.post(
            URL, content=_body(), headers={"telnyx-signature-ed25519": "garbage"},
        )
        assert response.status_code == 200
