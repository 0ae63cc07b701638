from __future__ import annotations

import logging

import httpx

from appointment_engine.application.ports.notifier import NotificationTransportPort
from appointment_engine.core.config import settings
from appointment_engine.domain.entities.notification import NotificationEvent


class WebhookTransport(NotificationTransportPort):
    """POSTs each event as JSON to an external email / in-app delivery service."""

    def __init__(
        self,
        url: str | None = None,
        timeout_seconds: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._url = url or settings.NOTIFY_WEBHOOK_URL
        self._client = client or httpx.Client(timeout=timeout_seconds or settings.NOTIFY_TIMEOUT_SECONDS)
        self._logger = logging.getLogger(__name__)

        if not self._url:
            raise ValueError("NOTIFY_WEBHOOK_URL is required for the webhook transport")

    def deliver(self, event: NotificationEvent) -> None:
        payload = {
            "event_type": event.event_type,
            "appointment_id": event.appointment_id,
            "recipient_id": event.recipient_id,
            "payload": event.payload,
        }
        try:
            response = self._client.post(self._url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            self._logger.error(
                "Error delivering notification",
                extra={"event_type": event.event_type, "recipient_id": event.recipient_id, "error": str(e)},
            )
            raise
        self._logger.info(
            "Notification delivered",
            extra={"event_type": event.event_type, "appointment_id": event.appointment_id},
        )
