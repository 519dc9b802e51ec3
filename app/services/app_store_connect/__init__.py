"""App Store Connect API integration: token issuance and device registration."""

from app.services.app_store_connect.device_client import (
    AppStoreConnectClient,
    AppStoreConnectError,
    DeviceRegistrationResult,
    RegistrationOutcome,
    classify_registration_response,
)
from app.services.app_store_connect.token_issuer import (
    AppStoreConnectTokenIssuer,
    TokenIssuerError,
)

__all__ = [
    "AppStoreConnectClient",
    "AppStoreConnectError",
    "AppStoreConnectTokenIssuer",
    "DeviceRegistrationResult",
    "RegistrationOutcome",
    "TokenIssuerError",
    "classify_registration_response",
]
