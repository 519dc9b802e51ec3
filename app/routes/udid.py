"""
udid.py
-------
Purpose:
    Device enrollment: serve the .mobileconfig, receive the UDID callback from
    iOS, and accept manually entered UDIDs.

Architecture:
    - API layer: Reads raw bodies / query params, picks the response format
    - Service layer: TesterLifecycleService commits the device transition and
      schedules vendor registration + build dispatch in the background

Usage:
    1. GET  /get-udid?testerId=...        - Download the enrollment profile
    2. POST /udid/callback?testerId=...   - iOS posts the signed device plist
    3. POST /udid/manual?testerId=...     - JSON {"udid": "..."} fallback
"""

from html import escape

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import HTMLResponse

from app.infrastructure.observability.logging import get_logger
from app.models.api.distribution_request import ManualUdidRequest
from app.models.api.distribution_response import ManualUdidResponse
from app.services.lifecycle_service import (
    LifecycleError,
    TesterLifecycleService,
    get_lifecycle_service,
    validate_manual_udid,
)
from app.services.mobileconfig_service import (
    MOBILECONFIG_CONTENT_TYPE,
    MOBILECONFIG_FILENAME,
    ProfileParseError,
    build_acknowledgement_profile,
    build_enrollment_profile,
    parse_device_attributes,
)
from app.services.signing_service import ProfileSigningError, sign_profile
from app.utils.http_errors import internal_http_error, lifecycle_http_error

router = APIRouter(tags=["udid"])
logger = get_logger(__name__)


def _error_page(title: str, message: str, status_code: int) -> HTMLResponse:
    body = f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{escape(title)}</title>
</head>
<body style="font-family: -apple-system, sans-serif; text-align: center; padding: 40px;">
  <h1>{escape(title)}</h1>
  <p>{escape(message)}</p>
</body>
</html>"""
    return HTMLResponse(content=body, status_code=status_code)


@router.get("/get-udid")
async def get_udid(
    tester_id: str | None = Query(default=None, alias="testerId"),
    service: TesterLifecycleService = Depends(get_lifecycle_service),
):
    """
    Download the enrollment profile for a tester.

    The profile's callback URL carries the tester id so the UDID can be
    matched when iOS posts it back.

    Raises:
        400: Missing testerId
        404: Unknown tester
    """
    try:
        tester = service.get_tester(tester_id)
    except LifecycleError as e:
        raise lifecycle_http_error(e) from e

    profile = build_enrollment_profile(tester.id)
    try:
        profile = sign_profile(profile)
    except ProfileSigningError as e:
        logger.error("Serving unsigned profile after signing failure", tester_id=tester.id, error=str(e))

    logger.info("Enrollment profile served", tester_id=tester.id)
    return Response(
        content=profile,
        media_type=MOBILECONFIG_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{MOBILECONFIG_FILENAME}"'},
    )


@router.post("/udid/callback")
async def udid_callback(
    request: Request,
    tester_id: str | None = Query(default=None, alias="testerId"),
    service: TesterLifecycleService = Depends(get_lifecycle_service),
):
    """
    Profile Service callback from iOS.

    Body is a PKCS#7-signed (or bare) plist with UDID, PRODUCT and VERSION.
    Answers with an empty Configuration profile; vendor registration and the
    build dispatch continue in the background.
    """
    if not tester_id:
        return _error_page("Error", "Missing testerId", status.HTTP_400_BAD_REQUEST)

    body = await request.body()
    try:
        attributes = parse_device_attributes(body)
    except ProfileParseError as e:
        logger.warning(
            "Device callback rejected", tester_id=tester_id, code="INVALID_DEVICE_PAYLOAD", error=str(e)
        )
        return _error_page("Error", "Unable to read the device information", status.HTTP_400_BAD_REQUEST)

    try:
        await service.device_identified(
            tester_id,
            attributes.udid,
            product=attributes.product,
            ios_version=attributes.version,
        )
    except LifecycleError as e:
        return _error_page("Error", e.message, e.status_code)
    except Exception as e:
        logger.error("Device callback failed", tester_id=tester_id, error=str(e), exc_info=True)
        return _error_page("Error", "An internal error occurred", status.HTTP_500_INTERNAL_SERVER_ERROR)

    return Response(
        content=build_acknowledgement_profile(tester_id),
        media_type=MOBILECONFIG_CONTENT_TYPE,
    )


@router.post("/udid/manual", response_model=ManualUdidResponse)
async def udid_manual(
    request: ManualUdidRequest,
    tester_id: str | None = Query(default=None, alias="testerId"),
    service: TesterLifecycleService = Depends(get_lifecycle_service),
):
    """
    Manual UDID entry, for testers who cannot install profiles.

    Raises:
        400: Missing testerId, missing or too short UDID
        404: Unknown tester
    """
    try:
        udid = validate_manual_udid(request.udid)
        result = await service.device_identified(tester_id, udid)
    except LifecycleError as e:
        logger.info("Manual UDID rejected", tester_id=tester_id, code=e.code)
        raise lifecycle_http_error(e) from e
    except Exception as e:
        logger.error("Manual UDID failed", tester_id=tester_id, error=str(e), exc_info=True)
        raise internal_http_error() from e

    return ManualUdidResponse(success=True, tester_id=result.tester.id, udid=result.device.udid)
