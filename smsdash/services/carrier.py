"""
Telnyx carrier client - outbound message send and messaging profile lookup.

Sends go straight to the Telnyx v2 REST API over httpx. Any non-2xx response
raises CarrierError carrying the first error detail Telnyx returned, so callers
can show the provider's own reason.
"""
import logging
from typing import Optional

import httpx

from smsdash.utils.phone import mask_phone, normalize_phone

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.telnyx.com/v2"
DEFAULT_TIMEOUT_SECONDS = 10.0


class CarrierError(Exception):
    """The carrier rejected the request or could not be reached."""

    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class CarrierNotConfigured(CarrierError):
    """No API key is configured, so nothing can be sent."""


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors:
        first = errors[0] or {}
        return first.get("detail") or first.get("title") or "Unknown error"
    return "Unknown error"


class TelnyxClient:
    """Thin async wrapper around the Telnyx messaging endpoints."""

    provider = "telnyx"

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        webhook_url: Optional[str] = None,
        webhook_failover_url: Optional[str] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.webhook_url = webhook_url
        self.webhook_failover_url = webhook_failover_url

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        if not self.is_configured:
            raise CarrierNotConfigured("TELNYX_API_KEY is not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers=self._headers(),
                    json=payload,
                )
        except httpx.HTTPError as e:
            logger.error(
                "Telnyx %s %s failed: %s", method, path, str(e),
                extra={"provider": self.provider},
            )
            raise CarrierError(f"Telnyx request failed: {e}") from e

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.warning(
                "Telnyx %s %s returned %d: %s", method, path, response.status_code, detail,
                extra={"provider": self.provider, "error_code": str(response.status_code)},
            )
            raise CarrierError(detail, status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise CarrierError("Telnyx returned a non-JSON response") from e

    async def send_message(
        self,
        to: str,
        from_: str,
        text: Optional[str] = None,
        media_urls: Optional[list[str]] = None,
    ) -> dict:
        """
        Send an SMS/MMS. Numbers are normalized before sending.

        Returns the carrier message record (the "data" object); its "id" is the
        carrier message id used to reconcile later status webhooks.
        """
        payload = {
            "from": normalize_phone(from_),
            "to": normalize_phone(to),
        }
        if text:
            payload["text"] = text
        if media_urls:
            payload["media_urls"] = list(media_urls)
        if self.webhook_url:
            payload["webhook_url"] = self.webhook_url
        if self.webhook_failover_url:
            payload["webhook_failover_url"] = self.webhook_failover_url

        body = await self._request("POST", "/messages", payload)
        data = body.get("data") or {}
        if not data.get("id"):
            raise CarrierError("Telnyx response did not include a message id")

        logger.info(
            "Message sent via Telnyx to %s: %s", mask_phone(payload["to"]), data["id"],
            extra={"provider": self.provider, "carrier_message_id": data["id"]},
        )
        return data

    async def list_messaging_profiles(self) -> list[dict]:
        body = await self._request("GET", "/messaging_profiles")
        return body.get("data") or []
