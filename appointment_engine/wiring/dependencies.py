from functools import lru_cache
import logging

from appointment_engine.application.ports.appointment_store import AppointmentStorePort
from appointment_engine.application.ports.directory import DirectoryPort
from appointment_engine.application.ports.notifier import NotificationTransportPort
from appointment_engine.application.use_cases.reminders import ReminderUseCase
from appointment_engine.application.use_cases.scheduling_engine import SchedulingEngine
from appointment_engine.core.config import settings
from appointment_engine.infrastructure.directory.memory_directory import InMemoryDirectory, load_directory
from appointment_engine.infrastructure.notify.logging_transport import LoggingTransport
from appointment_engine.infrastructure.notify.outbox import OutboxNotifier
from appointment_engine.infrastructure.notify.webhook_transport import WebhookTransport
from appointment_engine.infrastructure.store.json_store import JsonAppointmentStore
from appointment_engine.infrastructure.store.memory_store import MemoryAppointmentStore


logger = logging.getLogger(__name__)


@lru_cache
def get_store() -> AppointmentStorePort:
    if settings.ENV.lower() in {"dev", "local"}:
        return JsonAppointmentStore(data_dir=settings.DATA_DIR, timeout_seconds=settings.STORE_TIMEOUT_SECONDS)
    return MemoryAppointmentStore(timeout_seconds=settings.STORE_TIMEOUT_SECONDS)


@lru_cache
def get_directory() -> DirectoryPort:
    if settings.DIRECTORY_SEED_FILE:
        return load_directory(settings.DIRECTORY_SEED_FILE)
    logger.warning("DIRECTORY_SEED_FILE not set, starting with an empty directory")
    return InMemoryDirectory()


def get_transport() -> NotificationTransportPort:
    if settings.NOTIFY_WEBHOOK_URL:
        logger.info("Using webhook notification transport")
        return WebhookTransport()
    logger.info("NOTIFY_WEBHOOK_URL missing, notifications are only logged")
    return LoggingTransport()


@lru_cache
def get_outbox() -> OutboxNotifier:
    return OutboxNotifier(transport=get_transport())


@lru_cache
def get_engine() -> SchedulingEngine:
    return SchedulingEngine(
        directory=get_directory(),
        store=get_store(),
        notifier=get_outbox(),
        step_minutes=settings.SLOT_STEP_MINUTES,
        default_timezone=settings.DEFAULT_TIMEZONE,
    )


def get_reminder_use_case() -> ReminderUseCase:
    return ReminderUseCase(
        store=get_store(),
        directory=get_directory(),
        notifier=get_outbox(),
        lead_hours=settings.REMINDER_LEAD_HOURS,
        default_timezone=settings.DEFAULT_TIMEZONE,
    )
