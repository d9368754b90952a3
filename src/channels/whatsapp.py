"""WhatsApp Cloud API adapter — outbound text messages to patients.

Sends via POST {graph_url}/{version}/{phone_number_id}/messages with a bearer
token. Every outcome is returned as a NotificationResult; nothing raises
past ``send()`` so a delivery problem can never interrupt the caller.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from src.config import settings
from src.schemas.appointment import NotificationResult

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")

CREDENTIALS_MISSING = "credentials missing"


class ChannelConfigMissing(Exception):
    """Access token or sender phone number ID is not configured."""


class ChannelDeliveryError(Exception):
    """The provider answered with a non-success status."""

    def __init__(self, detail: Any, status_code: int | None = None) -> None:
        self.detail = detail
        self.status_code = status_code
        super().__init__(f"WhatsApp API error ({status_code}): {detail}")


# ── Helpers ──────────────────────────────────────────────────────────


def normalize_phone(raw: str, country_code: str = "91") -> str:
    """Strip every non-digit; prefix the country code onto bare 10-digit numbers.

    A heuristic, not a validator: anything that is not exactly 10 digits
    is returned as the digit string unchanged.
    """
    digits = _NON_DIGITS.sub("", raw or "")
    if len(digits) == 10:
        return f"{country_code}{digits}"
    return digits


def _mask(phone: str) -> str:
    """Keep the last 4 digits for log lines."""
    digits = _NON_DIGITS.sub("", phone or "")
    return f"***{digits[-4:]}" if digits else "<empty>"


def _response_payload(response: httpx.Response) -> Any:
    """Decode the provider's JSON body, falling back to raw text."""
    try:
        return response.json()
    except ValueError:
        return response.text


# ── Channel ──────────────────────────────────────────────────────────


class WhatsAppChannel:
    """Single-attempt message sender for the WhatsApp Cloud API.

    Credentials default to ``settings.whatsapp``; pass them explicitly to
    override (tests, multi-sender setups).
    """

    def __init__(
        self,
        access_token: str | None = None,
        phone_number_id: str | None = None,
        *,
        api_version: str | None = None,
        graph_url: str | None = None,
        country_code: str | None = None,
    ) -> None:
        wa = settings.whatsapp
        self._access_token = wa.whatsapp_access_token if access_token is None else access_token
        self._phone_number_id = wa.whatsapp_phone_number_id if phone_number_id is None else phone_number_id
        self._api_version = api_version or wa.whatsapp_api_version
        self._graph_url = (graph_url or wa.whatsapp_graph_url).rstrip("/")
        self._country_code = country_code or wa.whatsapp_default_country_code

    @property
    def is_configured(self) -> bool:
        return bool(self._access_token and self._phone_number_id)

    @property
    def messages_url(self) -> str:
        return f"{self._graph_url}/{self._api_version}/{self._phone_number_id}/messages"

    def _auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }

    def _require_credentials(self) -> None:
        if not self.is_configured:
            raise ChannelConfigMissing("WhatsApp access token or phone number ID not set")

    async def send(self, destination_raw: str, body: str) -> NotificationResult:
        """Send a plain text message.

        Returns ``delivered=True`` with the provider payload on success; on
        any failure ``delivered=False`` with the error in ``detail``.
        """
        try:
            self._require_credentials()
        except ChannelConfigMissing:
            logger.warning("WhatsApp credentials missing. Message to %s not sent", _mask(destination_raw))
            return NotificationResult(delivered=False, detail=CREDENTIALS_MISSING)

        to = normalize_phone(destination_raw, self._country_code)
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": body},
        }

        try:
            data = await self._post(payload)
        except ChannelDeliveryError as exc:
            logger.error("WhatsApp API error for %s (HTTP %s): %s", _mask(to), exc.status_code, exc.detail)
            return NotificationResult(delivered=False, detail=exc.detail)
        except Exception as exc:
            logger.exception("Failed to send WhatsApp message to %s", _mask(to))
            return NotificationResult(delivered=False, detail=str(exc) or type(exc).__name__)

        logger.info("WhatsApp message sent to %s", _mask(to))
        return NotificationResult(delivered=True, detail=data)

    async def _post(self, payload: dict[str, Any]) -> Any:
        async with httpx.AsyncClient() as client:
            response = await client.post(self.messages_url, json=payload, headers=self._auth_headers())

        data = _response_payload(response)
        if not response.is_success:
            raise ChannelDeliveryError(data, status_code=response.status_code)
        return data
