"""
Request bodies for the public endpoints.

Fields are optional on purpose: missing values are rejected by the lifecycle
service with a stable error code (400) instead of a generic 422.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterRequest(CamelModel):
    email: str | None = None


class ManualUdidRequest(CamelModel):
    udid: str | None = None


class BuildCompletedRequest(CamelModel):
    build_id: str | None = None
    download_url: str | None = None
    tester_id: str | None = None
