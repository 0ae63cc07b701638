import logging

from fastapi import FastAPI

from appointment_engine.api.v1.appointments import router as appointments_router
from appointment_engine.core.config import settings

class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in (
            "appointment_id",
            "business_id",
            "staff_id",
            "kind",
            "event_type",
            "recipient_id",
            "rule",
            "error",
            "reason",
        ):
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


handler = logging.StreamHandler()
handler.setFormatter(ContextFormatter("%(levelname)s:%(name)s:%(message)s"))

root = logging.getLogger()
root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
root.handlers.clear()
root.addHandler(handler)

app = FastAPI(title="Appointment Scheduling Engine", version="1.0.0")

app.include_router(appointments_router, prefix="/api/v1", tags=["appointments"])


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
