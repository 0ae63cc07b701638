from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Slot:
    start_time: int
    end_time: int
    staff_id: str | None = None

    def sort_key(self) -> tuple[int, str]:
        return (self.start_time, self.staff_id or "")
