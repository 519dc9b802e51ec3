"""
Mobileconfig signing.

Produces a DER-encoded S/MIME (PKCS#7 signed-data, content attached) blob so
iOS shows the profile as verified. Without SSL_CERT/SSL_KEY the profile is
served unsigned, which iOS still accepts with an "Unverified" badge.
"""

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs7

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ProfileSigningError(Exception):
    """Raised when configured signing material cannot be used."""

    pass


def _pem(value: str) -> bytes:
    return value.replace("\\n", "\n").encode("utf-8")


def is_signing_available() -> bool:
    return settings.signing_configured()


def sign_profile(data: bytes, cert_pem: str | None = None, key_pem: str | None = None) -> bytes:
    """
    Sign a profile, or return it unchanged when no signing material is set.

    Args:
        data: Unsigned profile bytes
        cert_pem: Signer certificate, optionally followed by its chain
        key_pem: Signer private key

    Returns:
        bytes: DER signed-data, or `data` itself when signing is not configured

    Raises:
        ProfileSigningError: If the certificate or key cannot be loaded or used
    """
    cert_pem = cert_pem if cert_pem is not None else settings.SSL_CERT
    key_pem = key_pem if key_pem is not None else settings.SSL_KEY

    if not cert_pem or not key_pem:
        logger.warning("SSL_CERT or SSL_KEY not configured, serving unsigned profile")
        return data

    try:
        certificates = x509.load_pem_x509_certificates(_pem(cert_pem))
        private_key = serialization.load_pem_private_key(_pem(key_pem), password=None)

        builder = (
            pkcs7.PKCS7SignatureBuilder()
            .set_data(data)
            .add_signer(certificates[0], private_key, hashes.SHA256())
        )
        for intermediate in certificates[1:]:
            builder = builder.add_certificate(intermediate)

        # Binary keeps the plist bytes as-is (no CRLF canonicalization).
        signed = builder.sign(serialization.Encoding.DER, [pkcs7.PKCS7Options.Binary])
    except (ValueError, TypeError) as e:
        logger.error("Profile signing failed", error=str(e))
        raise ProfileSigningError(f"Unable to sign profile: {e}") from e

    logger.info("Profile signed", unsigned_bytes=len(data), signed_bytes=len(signed))
    return signed
