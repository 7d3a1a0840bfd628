"""Webhook notifier — posts waiting-list openings to the message gateway."""

import logging
from typing import Optional

import httpx

from booking_engine.config import settings
from booking_engine.models.waiting_list import Contact
from booking_engine.stores.base import NotificationResult, Notifier

logger = logging.getLogger(__name__)


class WebhookNotifier(Notifier):
    """Send "a slot opened up" messages through an HTTP message gateway.

    The gateway (WhatsApp/SMS bridge) exposes ``POST /api/send-waiting-list``
    taking ``{phone, clientName, date, time, serviceName}`` and answering
    ``{"success": bool, "error": str}``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = (base_url if base_url is not None else settings.notifier_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.notifier_timeout_seconds
        self._transport = transport

    async def send_waiting_list_notification(
        self,
        contact: Contact,
        date: str,
        time: str,
        service_name: str = "",
    ) -> NotificationResult:
        if not contact.phone:
            return NotificationResult(success=False, error="No phone number")
        if not self._base_url:
            return NotificationResult(success=False, error="Notifier URL not configured")

        payload = {
            "phone": contact.phone,
            "clientName": contact.name,
            "date": date,
            "time": time,
            "serviceName": service_name,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    f"{self._base_url}/api/send-waiting-list",
                    json=payload,
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.ConnectError:
            logger.warning("Message gateway unreachable at %s", self._base_url)
            return NotificationResult(success=False, error="Message gateway unreachable")
        except httpx.HTTPStatusError as exc:
            return NotificationResult(
                success=False,
                error=f"Message gateway returned status {exc.response.status_code}",
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Message gateway request failed: %s", exc)
            return NotificationResult(success=False, error=str(exc))

        if not data.get("success", False):
            return NotificationResult(success=False, error=data.get("error", "Unknown error"))
        return NotificationResult(success=True)
