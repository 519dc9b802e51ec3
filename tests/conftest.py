from unittest.mock import AsyncMock, MagicMock

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from app.auth.verify import StaticCredentialChecker, get_credential_checker
from app.jobs.background_tasks import BackgroundTaskRunner
from app.repositories.distribution_repositories import (
    BuildRepository,
    DeviceRepository,
    TesterRepository,
    clear_all,
)
from app.services.app_store_connect import DeviceRegistrationResult, RegistrationOutcome
from app.services.lifecycle_service import TesterLifecycleService, get_lifecycle_service

ADMIN_AUTH = ("admin", "test-pass")


@pytest.fixture(autouse=True)
def reset_repositories():
    clear_all()
    yield
    clear_all()


@pytest.fixture
def ec_private_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def ec_private_key_pem(ec_private_key) -> str:
    return ec_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


class RecordingRunner:
    """Stands in for BackgroundTaskRunner when a test drives the follow-up work itself."""

    def __init__(self):
        self.submitted: list[tuple[str, tuple]] = []

    @property
    def pending_count(self) -> int:
        return 0

    def submit(self, name, func, *args, **kwargs):
        self.submitted.append((name, args))
        return None

    async def wait_idle(self, timeout=None):
        return None

    async def shutdown(self, timeout=10.0):
        return None


@pytest.fixture
def recording_runner():
    return RecordingRunner()


@pytest.fixture
def fake_asc_client():
    client = MagicMock()
    client.register_device = AsyncMock(
        side_effect=lambda udid, name=None: DeviceRegistrationResult(RegistrationOutcome.REGISTERED, udid)
    )
    client.list_devices = AsyncMock(return_value=[])
    client.close = AsyncMock()
    return client


@pytest.fixture
def fake_ci_client():
    client = MagicMock()
    client.trigger_build = AsyncMock(return_value=None)
    client.get_workflow_run_status = AsyncMock(return_value={})
    client.close = AsyncMock()
    return client


@pytest.fixture
def fake_email_service():
    service = MagicMock()
    service.send_download_link = AsyncMock(return_value="<message-id@example.com>")
    return service


@pytest.fixture
def make_service(fake_asc_client, fake_ci_client, fake_email_service, recording_runner):
    def _make(runner=None) -> TesterLifecycleService:
        return TesterLifecycleService(
            testers=TesterRepository(),
            devices=DeviceRepository(),
            builds=BuildRepository(),
            asc_client=fake_asc_client,
            ci_client=fake_ci_client,
            email_service=fake_email_service,
            runner=runner or recording_runner,
            public_base_url="https://dist.example.com",
            app_name="Beta App",
        )

    return _make


@pytest.fixture
def service(make_service):
    return make_service()


@pytest.fixture
def apply_service_override():
    applied = []

    def _apply(app, service):
        app.dependency_overrides[get_lifecycle_service] = lambda: service
        app.dependency_overrides[get_credential_checker] = lambda: StaticCredentialChecker(*ADMIN_AUTH)
        applied.append(app)

    yield _apply

    for app in applied:
        app.dependency_overrides.clear()
