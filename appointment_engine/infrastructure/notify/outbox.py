from __future__ import annotations

import logging
import queue

from appointment_engine.application.ports.notifier import NotificationTransportPort, NotifierPort
from appointment_engine.domain.entities.notification import NotificationEvent


class OutboxNotifier(NotifierPort):
    """Queues events on publish; delivery happens later in flush()."""

    def __init__(self, transport: NotificationTransportPort, max_size: int = 10_000) -> None:
        self._transport = transport
        self._queue: queue.Queue[NotificationEvent] = queue.Queue(maxsize=max_size)
        self._logger = logging.getLogger(__name__)

    def publish(self, event: NotificationEvent) -> None:
        self._queue.put_nowait(event)

    def pending(self) -> int:
        return self._queue.qsize()

    def flush(self) -> int:
        """Deliver everything queued so far. Returns the number delivered; failures are logged and dropped."""
        delivered = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                break
            try:
                self._transport.deliver(event)
                delivered += 1
            except Exception as e:
                self._logger.error(
                    "Notification delivery failed",
                    extra={
                        "event_type": event.event_type,
                        "appointment_id": event.appointment_id,
                        "recipient_id": event.recipient_id,
                        "error": str(e),
                    },
                )
            finally:
                self._queue.task_done()
        return delivered
