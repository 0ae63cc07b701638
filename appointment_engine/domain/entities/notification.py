from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class NotificationEvent:
    event_type: str
    appointment_id: str
    recipient_id: str
    payload: dict[str, Any] = field(default_factory=dict)
