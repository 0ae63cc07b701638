from abc import ABC, abstractmethod

from appointment_engine.domain.entities.notification import NotificationEvent


class NotifierPort(ABC):
    @abstractmethod
    def publish(self, event: NotificationEvent) -> None:
        raise NotImplementedError


class NotificationTransportPort(ABC):
    @abstractmethod
    def deliver(self, event: NotificationEvent) -> None:
        raise NotImplementedError
