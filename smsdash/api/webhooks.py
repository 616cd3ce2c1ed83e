"""
Telnyx webhook endpoint - inbound messages, delivery receipts, profile updates.

Layers (in order):
1. Signature validation (production only, 401 on failure)
2. Envelope parsing (malformed bodies are acknowledged, not retried)
3. Delivery dedup on the envelope id (Redis, 30 minutes)
4. Inbound processor

Anything that goes wrong inside the processor is logged and still answered with
200 so Telnyx does not retry into a storm.
"""
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from smsdash.api.deps import get_app_context, get_current_user
from smsdash.context import AppContext
from smsdash.database import get_db
from smsdash.schemas.api_responses import UserContext
from smsdash.schemas.carrier_events import WebhookEnvelope, parse_carrier_event
from smsdash.services.inbound import process_carrier_event
from smsdash.services.store import PersistenceError
from smsdash.utils.dedup import is_duplicate_event
from smsdash.utils.logging import bind_log_context
from smsdash.utils.webhook_signatures import validate_webhook_request

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def _carrier_message_id(event) -> Optional[str]:
    message = getattr(event, "message", None)
    return message.id if message is not None else None


@router.post("/telnyx")
async def telnyx_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_app_context),
    user: UserContext = Depends(get_current_user),
):
    """Receive a Telnyx messaging webhook."""
    try:
        body = await request.body()

        if not validate_webhook_request(request.headers, body, ctx.settings):
            logger.error("Invalid Telnyx webhook signature")
            return JSONResponse(status_code=401, content={"error": "Invalid signature"})

        try:
            envelope = WebhookEnvelope.model_validate(json.loads(body))
            event = parse_carrier_event(envelope)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            logger.warning("Malformed Telnyx webhook body: %s", str(e))
            return {"received": True, "processed": False, "error": "Malformed payload"}

        with bind_log_context(
            event_type=event.event_type,
            envelope_id=event.envelope_id,
            carrier_message_id=_carrier_message_id(event),
            user_id=user.user_id,
        ):
            logger.info("Telnyx webhook received")

            if await is_duplicate_event(event.envelope_id):
                return {"received": True, "duplicate": True}

            try:
                outcome = await process_carrier_event(db, event, ctx, user)
            except PersistenceError as e:
                logger.error("Telnyx webhook not persisted: %s", str(e))
                await db.rollback()
                return {"received": True, "processed": False, "error": "Persistence failure"}
            except Exception as e:
                # Dedup already marked this envelope, a retry would not reprocess it
                logger.error("Telnyx webhook processing failed: %s", str(e), exc_info=True)
                await db.rollback()
                return {"received": True, "processed": False}

            logger.info("Telnyx webhook handled: %s", outcome.status)
            return {
                "received": True,
                "processed": True,
                "outcome": outcome.model_dump(exclude_none=True),
            }
    except Exception as e:
        logger.error("Telnyx webhook error: %s", str(e), exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
