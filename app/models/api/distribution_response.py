from datetime import datetime
from typing import Any

from app.models.api.distribution_request import CamelModel
from app.models.domain.distribution_domain import (
    Build,
    BuildStatus,
    Device,
    Tester,
    TesterStatus,
)


class TesterResponse(CamelModel):
    id: str
    email: str
    udid: str | None
    status: TesterStatus
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, tester: Tester) -> "TesterResponse":
        return cls(**tester.model_dump())


class DeviceResponse(CamelModel):
    id: str
    udid: str
    product: str | None
    ios_version: str | None
    created_at: datetime

    @classmethod
    def from_domain(cls, device: Device) -> "DeviceResponse":
        return cls(**device.model_dump())


class BuildResponse(CamelModel):
    id: str
    tester_id: str
    status: BuildStatus
    devices_included: list[str]
    download_url: str | None
    created_at: datetime
    completed_at: datetime | None

    @classmethod
    def from_domain(cls, build: Build) -> "BuildResponse":
        return cls(**build.model_dump())


class RegisterResponse(CamelModel):
    """Response for POST /register"""

    tester_id: str
    next_url: str
    message: str


class ManualUdidResponse(CamelModel):
    """Response for POST /udid/manual"""

    success: bool
    tester_id: str
    udid: str


class BuildCompletedResponse(CamelModel):
    """Response for POST /build-completed"""

    success: bool
    message: str
    build: BuildResponse
    notification_sent: bool


class TesterListResponse(CamelModel):
    testers: list[TesterResponse]


class TesterDetailResponse(CamelModel):
    tester: TesterResponse
    builds: list[BuildResponse]


class BuildListResponse(CamelModel):
    builds: list[BuildResponse]


class BuildDetailResponse(CamelModel):
    build: BuildResponse


class DeviceListResponse(CamelModel):
    devices: list[DeviceResponse]


class VendorDeviceListResponse(CamelModel):
    devices: list[dict[str, Any]]
