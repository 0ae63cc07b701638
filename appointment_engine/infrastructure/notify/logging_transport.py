from __future__ import annotations

import logging

from appointment_engine.application.ports.notifier import NotificationTransportPort
from appointment_engine.domain.entities.notification import NotificationEvent


class LoggingTransport(NotificationTransportPort):
    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    def deliver(self, event: NotificationEvent) -> None:
        self._logger.info(
            "Notification",
            extra={
                "event_type": event.event_type,
                "appointment_id": event.appointment_id,
                "recipient_id": event.recipient_id,
            },
        )
