"""
App Store Connect API token issuance.

Tokens are ES256 JWTs signed with the team's .p8 key. Apple rejects tokens
whose lifetime exceeds 20 minutes, so a fresh token is minted for every
outbound call instead of being cached.

See: https://developer.apple.com/documentation/appstoreconnectapi/generating_tokens_for_api_requests
"""

import time
from collections.abc import Callable

import jwt

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ASC_AUDIENCE = "appstoreconnect-v1"
ASC_ALGORITHM = "ES256"
TOKEN_TTL_SECONDS = 20 * 60  # Apple's documented maximum


class TokenIssuerError(Exception):
    """Raised when a vendor token cannot be produced (missing or malformed key)."""

    pass


class AppStoreConnectTokenIssuer:
    """Builds signed, time-boxed credentials for the App Store Connect API."""

    def __init__(
        self,
        issuer_id: str,
        key_id: str,
        private_key: str,
        clock: Callable[[], float] = time.time,
    ):
        self.issuer_id = issuer_id
        self.key_id = key_id
        self._private_key = private_key
        self._clock = clock

    @classmethod
    def from_settings(cls) -> "AppStoreConnectTokenIssuer":
        return cls(
            issuer_id=settings.ASC_ISSUER_ID,
            key_id=settings.ASC_KEY_ID,
            private_key=settings.asc_private_key_pem(),
        )

    def issue_token(self) -> str:
        """
        Mint a new bearer token.

        Returns:
            str: Encoded JWT valid for TOKEN_TTL_SECONDS

        Raises:
            TokenIssuerError: If identifiers are missing or the key cannot sign
        """
        if not self.issuer_id or not self.key_id or not self._private_key:
            raise TokenIssuerError("App Store Connect credentials are not configured")

        issued_at = int(self._clock())
        payload = {
            "iss": self.issuer_id,
            "iat": issued_at,
            "exp": issued_at + TOKEN_TTL_SECONDS,
            "aud": ASC_AUDIENCE,
        }
        headers = {"kid": self.key_id, "typ": "JWT"}

        try:
            token = jwt.encode(payload, self._private_key, algorithm=ASC_ALGORITHM, headers=headers)
        except (ValueError, TypeError, AttributeError, jwt.PyJWTError) as e:
            logger.error("Failed to sign App Store Connect token", key_id=self.key_id, error=str(e))
            raise TokenIssuerError(f"Invalid App Store Connect private key: {e}") from e

        logger.debug("App Store Connect token issued", key_id=self.key_id, expires_at=payload["exp"])
        return token
