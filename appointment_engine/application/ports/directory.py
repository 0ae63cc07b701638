from __future__ import annotations

from abc import ABC, abstractmethod

from appointment_engine.domain.entities.business import Business, ServiceSpec, StaffMember


class DirectoryPort(ABC):
    """Read-only lookup of business, service and staff records."""

    @abstractmethod
    def get_business(self, business_id: str) -> Business | None:
        raise NotImplementedError

    @abstractmethod
    def get_service(self, business_id: str, service_id: str) -> ServiceSpec | None:
        raise NotImplementedError

    @abstractmethod
    def get_staff(self, business_id: str, staff_id: str) -> StaffMember | None:
        raise NotImplementedError
