"""
Enrollment profile documents.

The UDID dance:
    1. GET /get-udid serves a "Profile Service" payload pointing at our callback
    2. iOS installs it and POSTs the requested DeviceAttributes to the callback,
       as a plist wrapped in a PKCS#7 envelope signed by the device
    3. The callback answers with an empty "Configuration" profile so the
       installer finishes cleanly
"""

import plistlib
import re
import uuid
from dataclasses import dataclass
from urllib.parse import quote
from xml.parsers.expat import ExpatError

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MOBILECONFIG_CONTENT_TYPE = "application/x-apple-aspen-config"
MOBILECONFIG_FILENAME = "register-device.mobileconfig"
PAYLOAD_IDENTIFIER_PREFIX = "dev.adhoc"
DEVICE_ATTRIBUTES = ["UDID", "IMEI", "ICCID", "VERSION", "PRODUCT", "SERIAL"]

# The plist sits in clear text inside the signed envelope.
_EMBEDDED_PLIST = re.compile(rb"(?:<\?xml.*?)?<plist.*?</plist>", re.DOTALL)


class ProfileParseError(Exception):
    """Raised when a device callback body cannot be read."""

    pass


@dataclass(slots=True)
class DeviceAttributes:
    udid: str
    product: str | None = None
    version: str | None = None


def _payload_uuid() -> str:
    return str(uuid.uuid4()).upper()


def callback_url(tester_id: str) -> str:
    base = settings.PUBLIC_BASE_URL.rstrip("/")
    return f"{base}/udid/callback?testerId={quote(tester_id)}"


def build_enrollment_profile(tester_id: str) -> bytes:
    """Profile Service payload asking iOS to report its device attributes."""
    profile = {
        "PayloadContent": {
            "URL": callback_url(tester_id),
            "DeviceAttributes": DEVICE_ATTRIBUTES,
        },
        "PayloadDescription": "This profile registers your device so you can install the app.",
        "PayloadDisplayName": "Device Registration",
        "PayloadIdentifier": f"{PAYLOAD_IDENTIFIER_PREFIX}.device-registration.{tester_id}",
        "PayloadOrganization": settings.ORG_NAME,
        "PayloadRemovalDisallowed": False,
        "PayloadType": "Profile Service",
        "PayloadUUID": _payload_uuid(),
        "PayloadVersion": 1,
    }
    return plistlib.dumps(profile)


def build_acknowledgement_profile(tester_id: str) -> bytes:
    """Empty Configuration profile returned to the installer after the callback."""
    profile = {
        "PayloadContent": [],
        "PayloadDescription": "Your device was registered successfully. You can remove this profile.",
        "PayloadDisplayName": "Registration Complete",
        "PayloadIdentifier": f"{PAYLOAD_IDENTIFIER_PREFIX}.registration-complete.{tester_id}",
        "PayloadOrganization": settings.ORG_NAME,
        "PayloadRemovalDisallowed": False,
        "PayloadType": "Configuration",
        "PayloadUUID": _payload_uuid(),
        "PayloadVersion": 1,
    }
    return plistlib.dumps(profile)


def _first(info: dict, *keys: str) -> str | None:
    for key in keys:
        value = info.get(key)
        if value:
            return str(value)
    return None


def parse_device_attributes(body: bytes) -> DeviceAttributes:
    """
    Extract device attributes from a callback body.

    Args:
        body: Raw request body, signed envelope or bare plist

    Returns:
        DeviceAttributes with at least a UDID

    Raises:
        ProfileParseError: If no plist can be read or it carries no UDID
    """
    if not body:
        raise ProfileParseError("Empty device payload")

    match = _EMBEDDED_PLIST.search(body)
    document = match.group(0) if match else body

    try:
        info = plistlib.loads(document)
    except (ExpatError, ValueError, AttributeError, TypeError, KeyError) as e:
        logger.warning(
            "Unparseable device payload",
            error=str(e),
            preview=body[:200].decode("utf-8", errors="replace"),
        )
        raise ProfileParseError(f"Invalid device payload: {e}") from e

    if not isinstance(info, dict):
        raise ProfileParseError("Device payload is not a dictionary")

    udid = _first(info, "UDID", "udid")
    if not udid:
        logger.warning("Device payload without UDID", keys=sorted(info.keys()))
        raise ProfileParseError("UDID missing from device payload")

    return DeviceAttributes(
        udid=udid,
        product=_first(info, "PRODUCT", "product"),
        version=_first(info, "VERSION", "version"),
    )
