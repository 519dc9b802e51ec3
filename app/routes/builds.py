"""
builds.py
---------
Purpose:
    Build completion callback from the pipeline, plus admin views of builds,
    devices and pipeline runs.

Usage:
    1. POST /build-completed   - Pipeline reports the IPA download URL
    2. GET  /builds            - List builds (admin)
    3. GET  /builds/{id}       - Build detail (admin)
    4. GET  /devices           - Locally known devices (admin)
    5. GET  /devices/vendor    - Devices registered with App Store Connect (admin)
    6. GET  /ci/runs/{run_id}  - Pipeline run status passthrough (admin)
"""

from fastapi import APIRouter, Depends, HTTPException, status

from app.auth.verify import admin_dependency
from app.infrastructure.observability.logging import get_logger
from app.models.api.distribution_request import BuildCompletedRequest
from app.models.api.distribution_response import (
    BuildCompletedResponse,
    BuildDetailResponse,
    BuildListResponse,
    BuildResponse,
    DeviceListResponse,
    DeviceResponse,
    VendorDeviceListResponse,
)
from app.services.app_store_connect import AppStoreConnectError, TokenIssuerError
from app.services.ci_service import BuildTriggerError
from app.services.lifecycle_service import (
    LifecycleError,
    TesterLifecycleService,
    get_lifecycle_service,
)
from app.utils.http_errors import error_body, internal_http_error, lifecycle_http_error

router = APIRouter(tags=["builds"])
logger = get_logger(__name__)


@router.post("/build-completed", response_model=BuildCompletedResponse)
async def build_completed(
    request: BuildCompletedRequest,
    service: TesterLifecycleService = Depends(get_lifecycle_service),
):
    """
    Pipeline completion callback.

    The build is marked completed regardless of whether the download email
    goes out; `notificationSent` reports the email outcome.

    Raises:
        400: Missing buildId or downloadUrl
        404: Unknown build
    """
    try:
        result = await service.complete_build(request.build_id, request.download_url, request.tester_id)
    except LifecycleError as e:
        logger.info("Build completion rejected", build_id=request.build_id, code=e.code)
        raise lifecycle_http_error(e) from e
    except Exception as e:
        logger.error("Build completion failed", build_id=request.build_id, error=str(e), exc_info=True)
        raise internal_http_error() from e

    if result.notification_sent:
        message = "Build completed and notification sent"
    elif result.notification_error:
        message = "Build completed, notification failed"
    else:
        message = "Build completed"

    return BuildCompletedResponse(
        success=True,
        message=message,
        build=BuildResponse.from_domain(result.build),
        notification_sent=result.notification_sent,
    )


@router.get("/builds", response_model=BuildListResponse)
async def list_builds(
    _admin: str = Depends(admin_dependency),
    service: TesterLifecycleService = Depends(get_lifecycle_service),
):
    return BuildListResponse(builds=[BuildResponse.from_domain(b) for b in service.list_builds()])


@router.get("/builds/{build_id}", response_model=BuildDetailResponse)
async def get_build(
    build_id: str,
    _admin: str = Depends(admin_dependency),
    service: TesterLifecycleService = Depends(get_lifecycle_service),
):
    try:
        build = service.get_build(build_id)
    except LifecycleError as e:
        raise lifecycle_http_error(e) from e
    return BuildDetailResponse(build=BuildResponse.from_domain(build))


@router.get("/devices", response_model=DeviceListResponse)
async def list_devices(
    _admin: str = Depends(admin_dependency),
    service: TesterLifecycleService = Depends(get_lifecycle_service),
):
    return DeviceListResponse(devices=[DeviceResponse.from_domain(d) for d in service.list_devices()])


@router.get("/devices/vendor", response_model=VendorDeviceListResponse)
async def list_vendor_devices(
    _admin: str = Depends(admin_dependency),
    service: TesterLifecycleService = Depends(get_lifecycle_service),
):
    try:
        devices = await service.list_vendor_devices()
    except (AppStoreConnectError, TokenIssuerError) as e:
        logger.error("Vendor device listing failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=error_body("App Store Connect request failed", "VENDOR_ERROR"),
        ) from e
    return VendorDeviceListResponse(devices=devices)


@router.get("/ci/runs/{run_id}")
async def get_pipeline_run(
    run_id: str,
    _admin: str = Depends(admin_dependency),
    service: TesterLifecycleService = Depends(get_lifecycle_service),
):
    try:
        run = await service.get_pipeline_run(run_id)
    except BuildTriggerError as e:
        logger.error("Pipeline run lookup failed", run_id=run_id, reason=e.reason, status_code=e.status_code)
        if e.reason == "not_found":
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=error_body("Pipeline run not found", "RUN_NOT_FOUND"),
            ) from e
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=error_body("Pipeline request failed", "PIPELINE_ERROR"),
        ) from e

    return {
        "id": run.get("id"),
        "status": run.get("status"),
        "conclusion": run.get("conclusion"),
        "htmlUrl": run.get("html_url"),
    }
