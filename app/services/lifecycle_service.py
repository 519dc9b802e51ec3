"""
Tester lifecycle orchestration.

Ties the external callbacks together:

    register (email)        -> Tester EMAIL_COLLECTED
    device identified (UDID) -> Device upsert, Tester DEVICE_REGISTERED,
                                then in the background:
                                vendor registration (best effort),
                                Build PENDING, Tester BUILD_PENDING,
                                pipeline dispatch (Build IN_PROGRESS, or
                                Build FAILED + Tester BUILD_FAILED)
    build completed          -> Build COMPLETED, download email,
                                Tester EMAIL_SENT (or BUILD_COMPLETED when
                                no email went out)

The service never keeps entity copies between steps: every mutation re-reads
through the repositories first. Vendor, pipeline and email failures are
isolated per step and never reach the HTTP caller once the primary transition
has been committed.
"""

import re
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import lru_cache
from urllib.parse import quote

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.jobs.background_tasks import BackgroundTaskRunner, background_runner
from app.models.domain.distribution_domain import (
    Build,
    BuildStatus,
    Device,
    Tester,
    TesterStatus,
)
from app.repositories.distribution_repositories import (
    BuildRepository,
    DeviceRepository,
    TesterRepository,
    build_repository,
    device_repository,
    tester_repository,
)
from app.services.app_store_connect import AppStoreConnectClient, AppStoreConnectTokenIssuer
from app.services.ci_service import BuildTriggerError, GitHubActionsClient
from app.services.email_service import EmailService

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MANUAL_UDID_MIN_LENGTH = 20
DEVICE_REGISTRATION_TASK = "process_device_registration"


class LifecycleError(Exception):
    """Base error for lifecycle operations, carrying a stable code."""

    status_code = 400

    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.message = message
        self.code = code


class ValidationError(LifecycleError):
    status_code = 400


class TesterNotFoundError(LifecycleError):
    status_code = 404

    def __init__(self, tester_id: str):
        super().__init__("Tester not found", "TESTER_NOT_FOUND")
        self.tester_id = tester_id


class BuildNotFoundError(LifecycleError):
    status_code = 404

    def __init__(self, build_id: str):
        super().__init__("Build not found", "BUILD_NOT_FOUND")
        self.build_id = build_id


@dataclass(slots=True)
class RegistrationResult:
    tester: Tester
    created: bool
    next_url: str


@dataclass(slots=True)
class DeviceIdentifiedResult:
    tester: Tester
    device: Device
    device_created: bool


@dataclass(slots=True)
class BuildCompletionResult:
    build: Build
    notification_sent: bool
    notification_error: str | None = None


def validate_email(email: str | None) -> str:
    if not email or not isinstance(email, str):
        raise ValidationError("Email is required", "MISSING_EMAIL")
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format", "INVALID_EMAIL")
    return email


def validate_tester_id(tester_id: str | None) -> str:
    if not tester_id:
        raise ValidationError("testerId is required", "MISSING_TESTER_ID")
    return tester_id


def validate_manual_udid(udid: str | None) -> str:
    udid = (udid or "").strip()
    if not udid:
        raise ValidationError("UDID is required", "MISSING_UDID")
    if len(udid) < MANUAL_UDID_MIN_LENGTH:
        raise ValidationError(
            f"UDID must be at least {MANUAL_UDID_MIN_LENGTH} characters", "INVALID_UDID"
        )
    return udid


class TesterLifecycleService:
    """State machine driving a tester from email to download link."""

    def __init__(
        self,
        testers: TesterRepository,
        devices: DeviceRepository,
        builds: BuildRepository,
        asc_client: AppStoreConnectClient,
        ci_client: GitHubActionsClient,
        email_service: EmailService,
        runner: BackgroundTaskRunner,
        public_base_url: str | None = None,
        app_name: str | None = None,
    ):
        self._testers = testers
        self._devices = devices
        self._builds = builds
        self._asc_client = asc_client
        self._ci_client = ci_client
        self._email_service = email_service
        self._runner = runner
        self._public_base_url = (public_base_url or settings.PUBLIC_BASE_URL).rstrip("/")
        self._app_name = app_name or settings.APP_DISPLAY_NAME

    async def close(self) -> None:
        await self._asc_client.close()
        await self._ci_client.close()

    def next_step_url(self, tester_id: str) -> str:
        return f"{self._public_base_url}/get-udid?testerId={quote(tester_id)}"

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_tester(self, tester_id: str | None) -> Tester:
        tester_id = validate_tester_id(tester_id)
        tester = self._testers.find_by_id(tester_id)
        if tester is None:
            raise TesterNotFoundError(tester_id)
        return tester

    def get_build(self, build_id: str) -> Build:
        build = self._builds.find_by_id(build_id)
        if build is None:
            raise BuildNotFoundError(build_id)
        return build

    def list_testers(self) -> list[Tester]:
        return self._testers.find_all()

    def list_builds(self) -> list[Build]:
        return self._builds.find_all()

    def list_devices(self) -> list[Device]:
        return self._devices.find_all()

    def builds_for_tester(self, tester_id: str) -> list[Build]:
        return self._builds.find_by_tester_id(tester_id)

    # ------------------------------------------------------------------
    # Event 1: registration
    # ------------------------------------------------------------------

    def register_tester(self, email: str | None) -> RegistrationResult:
        """
        Register a tester by email.

        Idempotent: an existing email returns the same tester and no state
        changes.

        Raises:
            ValidationError: Missing or malformed email
        """
        email = validate_email(email)
        tester, created = self._testers.create(email)

        if created:
            logger.info("Tester registered", tester_id=tester.id)
        else:
            logger.info("Existing tester re-registered", tester_id=tester.id)

        return RegistrationResult(tester=tester, created=created, next_url=self.next_step_url(tester.id))

    # ------------------------------------------------------------------
    # Event 2: device identified
    # ------------------------------------------------------------------

    async def device_identified(
        self,
        tester_id: str | None,
        udid: str | None,
        product: str | None = None,
        ios_version: str | None = None,
    ) -> DeviceIdentifiedResult:
        """
        Commit the primary device transition and schedule the follow-up work.

        Both the signed-profile callback and manual entry end up here. The
        vendor registration / build dispatch sequence runs as a background
        task (see process_device_registration) after this returns.

        Raises:
            ValidationError: Missing tester id or UDID
            TesterNotFoundError: Unknown tester id
        """
        tester = self.get_tester(tester_id)
        udid = (udid or "").strip()
        if not udid:
            raise ValidationError("UDID is required", "MISSING_UDID")

        device, device_created = self._devices.create(udid, product=product, ios_version=ios_version)
        tester = self._testers.update(tester.id, udid=udid, status=TesterStatus.DEVICE_REGISTERED)

        logger.info(
            "Device identified",
            tester_id=tester.id,
            udid=udid,
            product=product,
            ios_version=ios_version,
            device_created=device_created,
        )

        self._runner.submit(
            DEVICE_REGISTRATION_TASK, self.process_device_registration, tester.id, udid
        )

        return DeviceIdentifiedResult(tester=tester, device=device, device_created=device_created)

    async def process_device_registration(self, tester_id: str, udid: str) -> Build | None:
        """
        Post-acknowledgement sequence for a newly identified device.

        Order: vendor registration (best effort) -> Build creation ->
        Tester BUILD_PENDING -> pipeline dispatch -> Build status update.
        A vendor failure never prevents the build; a dispatch failure only
        marks the build (and tester) failed.

        Returns:
            The created Build, or None if the tester disappeared meanwhile
        """
        logger.info("Device registration started", tester_id=tester_id, udid=udid)

        try:
            result = await self._asc_client.register_device(udid)
            if result.succeeded:
                logger.info("Vendor device registration done", udid=udid, outcome=result.outcome)
            else:
                logger.warning(
                    "Vendor device registration failed, continuing",
                    udid=udid,
                    detail=result.detail,
                )
        except Exception as e:
            logger.warning(
                "Vendor device registration errored, continuing",
                udid=udid,
                error=f"{type(e).__name__}: {e}",
            )

        if self._testers.find_by_id(tester_id) is None:
            logger.warning("Tester removed before build creation", tester_id=tester_id)
            return None

        build = self._builds.create(tester_id, [udid])
        self._testers.update(tester_id, status=TesterStatus.BUILD_PENDING)
        logger.info("Build created", build_id=build.id, tester_id=tester_id)

        try:
            await self._ci_client.trigger_build(build.id, tester_id)
        except BuildTriggerError as e:
            logger.error(
                "Build dispatch failed",
                build_id=build.id,
                tester_id=tester_id,
                reason=e.reason,
                status_code=e.status_code,
                response_body=(e.response_body or "")[:500],
            )
            return self._mark_build_failed(build.id, tester_id)
        except Exception as e:
            logger.error(
                "Build dispatch errored",
                build_id=build.id,
                tester_id=tester_id,
                error=f"{type(e).__name__}: {e}",
            )
            return self._mark_build_failed(build.id, tester_id)

        return self._builds.update(build.id, status=BuildStatus.IN_PROGRESS)

    def _mark_build_failed(self, build_id: str, tester_id: str) -> Build:
        build = self._builds.update(build_id, status=BuildStatus.FAILED)
        if self._testers.find_by_id(tester_id) is not None:
            self._testers.update(tester_id, status=TesterStatus.BUILD_FAILED)
        return build

    # ------------------------------------------------------------------
    # Event 3: build completed
    # ------------------------------------------------------------------

    async def complete_build(
        self, build_id: str | None, download_url: str | None, tester_id: str | None = None
    ) -> BuildCompletionResult:
        """
        Record a finished build and email the download link.

        The build is authoritatively completed before any notification is
        attempted; a failed email is reported in the result, not raised.

        Raises:
            ValidationError: Missing build id or download URL
            BuildNotFoundError: Unknown build id
        """
        if not build_id:
            raise ValidationError("buildId is required", "MISSING_BUILD_ID")
        if not download_url:
            raise ValidationError("downloadUrl is required", "MISSING_DOWNLOAD_URL")

        build = self.get_build(build_id)
        if build.status is BuildStatus.FAILED:
            logger.warning("Completing a build previously marked failed", build_id=build_id)

        build = self._builds.update(
            build_id,
            status=BuildStatus.COMPLETED,
            download_url=download_url,
            completed_at=datetime.now(UTC),
        )
        logger.info("Build completed", build_id=build_id, download_url=download_url)

        tester = self._testers.find_by_id(tester_id) if tester_id else None
        if tester_id and tester is None:
            logger.warning("Tester for completed build not found", tester_id=tester_id, build_id=build_id)
        elif not tester_id:
            logger.info("Build completed without testerId, skipping email", build_id=build_id)

        if tester is not None:
            try:
                await self._email_service.send_download_link(tester.email, self._app_name, download_url)
            except Exception as e:
                error = f"{type(e).__name__}: {e}"
                logger.error(
                    "Download email failed",
                    build_id=build_id,
                    tester_id=tester.id,
                    error=error,
                )
                self._mark_tester_build_completed(tester.id)
                return BuildCompletionResult(build=build, notification_sent=False, notification_error=error)

            if self._testers.find_by_id(tester.id) is not None:
                self._testers.update(tester.id, status=TesterStatus.EMAIL_SENT)
            logger.info("Download email sent", build_id=build_id, tester_id=tester.id)
            return BuildCompletionResult(build=build, notification_sent=True)

        self._mark_tester_build_completed(build.tester_id)
        return BuildCompletionResult(build=build, notification_sent=False)

    def _mark_tester_build_completed(self, tester_id: str) -> None:
        if self._testers.find_by_id(tester_id) is not None:
            self._testers.update(tester_id, status=TesterStatus.BUILD_COMPLETED)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def purge_tester(self, tester_id: str) -> None:
        """Remove a tester. Builds and devices are kept for history."""
        if not self._testers.delete(tester_id):
            raise TesterNotFoundError(tester_id)
        logger.info("Tester purged", tester_id=tester_id)

    async def list_vendor_devices(self) -> list[dict]:
        return await self._asc_client.list_devices()

    async def get_pipeline_run(self, run_id: str) -> dict:
        return await self._ci_client.get_workflow_run_status(run_id)


@lru_cache
def get_lifecycle_service() -> TesterLifecycleService:
    """Process-wide service wired to the configured integrations."""
    return TesterLifecycleService(
        testers=tester_repository,
        devices=device_repository,
        builds=build_repository,
        asc_client=AppStoreConnectClient(AppStoreConnectTokenIssuer.from_settings()),
        ci_client=GitHubActionsClient(),
        email_service=EmailService(),
        runner=background_runner,
    )
