"""
In-memory repositories for testers, devices and builds.

Process-wide singletons; state starts empty on boot and is never persisted.
"""

from datetime import UTC, datetime
from typing import Any

from app.models.domain.distribution_domain import Build, Device, Tester
from app.repositories.base import InMemoryRepository


class TesterRepository(InMemoryRepository[Tester]):
    entity_name = "Tester"

    def _touch(self, changes: dict[str, Any]) -> dict[str, Any]:
        return {**changes, "updated_at": datetime.now(UTC)}

    def find_by_email(self, email: str) -> Tester | None:
        # Case-sensitive, as entered.
        return self.find_first(lambda tester: tester.email == email)

    def create(self, email: str) -> tuple[Tester, bool]:
        """Create a tester, or return the existing one for this email."""
        return self.get_or_create(
            lambda tester: tester.email == email,
            lambda: Tester(email=email),
        )


class DeviceRepository(InMemoryRepository[Device]):
    entity_name = "Device"

    def find_by_udid(self, udid: str) -> Device | None:
        return self.find_first(lambda device: device.udid == udid)

    def create(
        self, udid: str, product: str | None = None, ios_version: str | None = None
    ) -> tuple[Device, bool]:
        """Create a device, or return the existing one for this UDID."""
        return self.get_or_create(
            lambda device: device.udid == udid,
            lambda: Device(udid=udid, product=product, ios_version=ios_version),
        )


class BuildRepository(InMemoryRepository[Build]):
    entity_name = "Build"

    def find_by_tester_id(self, tester_id: str) -> list[Build]:
        return [build for build in self._records.values() if build.tester_id == tester_id]

    def create(self, tester_id: str, devices_included: list[str]) -> Build:
        if not devices_included:
            raise ValueError("A build must include at least one device")
        return self._insert(Build(tester_id=tester_id, devices_included=list(devices_included)))


tester_repository = TesterRepository()
device_repository = DeviceRepository()
build_repository = BuildRepository()


def clear_all() -> None:
    """Reset every collection. Test-only."""
    tester_repository.clear()
    device_repository.clear()
    build_repository.clear()
