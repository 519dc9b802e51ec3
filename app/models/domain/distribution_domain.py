"""
Domain models for the tester / device / build lifecycle.

Records are treated as immutable snapshots: repositories hand out copies and
store merged copies on update.
"""

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class TesterStatus(StrEnum):
    """Tester progression. Order is expected, not enforced."""

    EMAIL_COLLECTED = "EMAIL_COLLECTED"
    DEVICE_REGISTERED = "DEVICE_REGISTERED"
    BUILD_PENDING = "BUILD_PENDING"
    BUILD_FAILED = "BUILD_FAILED"
    BUILD_COMPLETED = "BUILD_COMPLETED"
    EMAIL_SENT = "EMAIL_SENT"


class BuildStatus(StrEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Tester(BaseModel):
    """A person who registered an email to receive a build."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    email: str
    udid: str | None = None
    status: TesterStatus = TesterStatus.EMAIL_COLLECTED
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class Device(BaseModel):
    """A physical iOS device, keyed by its UDID."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    udid: str
    product: str | None = None  # e.g. "iPhone14,2"
    ios_version: str | None = None  # e.g. "17.1"
    created_at: datetime = Field(default_factory=_now)


class Build(BaseModel):
    """One pipeline run producing an IPA for a set of devices."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    tester_id: str
    status: BuildStatus = BuildStatus.PENDING
    devices_included: list[str]
    download_url: str | None = None
    created_at: datetime = Field(default_factory=_now)
    completed_at: datetime | None = None
