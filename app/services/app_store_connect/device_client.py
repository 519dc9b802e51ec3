"""
App Store Connect device registration client.

Registers tester devices so they can install ad-hoc builds. Apple reports an
already-registered UDID inconsistently (sometimes HTTP 409, sometimes a 4xx
with a duplicate-attribute error entry), so responses go through
`classify_registration_response` which maps both shapes to one outcome.

See: https://developer.apple.com/documentation/appstoreconnectapi/register_a_new_device
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger
from app.services.app_store_connect.token_issuer import AppStoreConnectTokenIssuer

logger = get_logger(__name__)

REQUEST_TIMEOUT = 30  # seconds
DEVICE_PLATFORM = "IOS"
DEVICE_NAME_PREFIX = "Tester-"
DUPLICATE_ERROR_CODE = "ENTITY_ERROR.ATTRIBUTE.INVALID.DUPLICATE"
DUPLICATE_DETAIL_MARKERS = ("already exists", "has already been taken")


class AppStoreConnectError(Exception):
    """Custom exception for App Store Connect API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data or {}


class RegistrationOutcome(StrEnum):
    REGISTERED = "registered"
    ALREADY_REGISTERED = "already_registered"
    FAILED = "failed"


@dataclass(slots=True)
class DeviceRegistrationResult:
    outcome: RegistrationOutcome
    udid: str
    detail: str | None = None
    response_data: dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.outcome is not RegistrationOutcome.FAILED


def default_device_name(udid: str) -> str:
    """Vendor-side label, e.g. Tester-A1B2 from the last four UDID characters."""
    return f"{DEVICE_NAME_PREFIX}{udid[-4:]}"


def _is_duplicate_error(error: dict[str, Any]) -> bool:
    if error.get("code") == DUPLICATE_ERROR_CODE:
        return True
    detail = str(error.get("detail") or "").lower()
    return any(marker in detail for marker in DUPLICATE_DETAIL_MARKERS)


def classify_registration_response(
    status_code: int, payload: dict[str, Any] | None
) -> RegistrationOutcome:
    """
    Map a register-device response to its outcome.

    A 409 and a duplicate-attribute error entry both mean the device is
    already known to Apple; both count as success.
    """
    if 200 <= status_code < 300:
        return RegistrationOutcome.REGISTERED

    if status_code == 409:
        return RegistrationOutcome.ALREADY_REGISTERED

    errors = (payload or {}).get("errors") or []
    if isinstance(errors, list) and any(
        isinstance(error, dict) and _is_duplicate_error(error) for error in errors
    ):
        return RegistrationOutcome.ALREADY_REGISTERED

    return RegistrationOutcome.FAILED


class AppStoreConnectClient:
    """Device endpoints of the App Store Connect API."""

    def __init__(
        self,
        token_issuer: AppStoreConnectTokenIssuer,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._token_issuer = token_issuer
        self._base_url = (base_url or settings.ASC_API_BASE).rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(REQUEST_TIMEOUT),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    def _get_auth_headers(self) -> dict:
        # TokenIssuerError propagates: a bad key is fatal for the caller.
        token = self._token_issuer.issue_token()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    async def register_device(self, udid: str, name: str | None = None) -> DeviceRegistrationResult:
        """
        Register a device UDID with Apple.

        Args:
            udid: Device identifier reported by iOS
            name: Optional device label (default: Tester-<last 4 of UDID>)

        Returns:
            DeviceRegistrationResult: registered, already registered, or failed
        """
        body = {
            "data": {
                "type": "devices",
                "attributes": {
                    "name": name or default_device_name(udid),
                    "udid": udid,
                    "platform": DEVICE_PLATFORM,
                },
            }
        }
        headers = self._get_auth_headers()

        logger.info("Registering device with App Store Connect", udid=udid)

        try:
            response = await self._client.post(f"{self._base_url}/v1/devices", json=body, headers=headers)
        except httpx.HTTPError as e:
            logger.error("App Store Connect request failed", udid=udid, error=str(e))
            return DeviceRegistrationResult(RegistrationOutcome.FAILED, udid, detail=str(e))

        payload = _safe_json(response)
        outcome = classify_registration_response(response.status_code, payload)

        if outcome is RegistrationOutcome.REGISTERED:
            logger.info("Device registered", udid=udid)
            return DeviceRegistrationResult(outcome, udid, response_data=payload)

        if outcome is RegistrationOutcome.ALREADY_REGISTERED:
            logger.info("Device already registered", udid=udid, status_code=response.status_code)
            return DeviceRegistrationResult(outcome, udid, response_data=payload)

        detail = f"HTTP {response.status_code}: {response.text[:500]}"
        logger.error(
            "Device registration rejected",
            udid=udid,
            status_code=response.status_code,
            errors=payload.get("errors"),
        )
        return DeviceRegistrationResult(outcome, udid, detail=detail, response_data=payload)

    async def list_devices(self) -> list[dict[str, Any]]:
        """
        List devices registered on the developer account.

        Raises:
            AppStoreConnectError: If the API call fails
        """
        headers = self._get_auth_headers()
        try:
            response = await self._client.get(f"{self._base_url}/v1/devices", headers=headers)
        except httpx.HTTPError as e:
            raise AppStoreConnectError(f"App Store Connect request failed: {e}") from e

        payload = _safe_json(response)
        if not response.is_success:
            logger.error("Listing devices failed", status_code=response.status_code)
            raise AppStoreConnectError(
                f"App Store Connect error (HTTP {response.status_code})",
                status_code=response.status_code,
                response_data=payload,
            )

        return payload.get("data", [])


def _safe_json(response: httpx.Response) -> dict[str, Any]:
    if not response.content:
        return {}
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
