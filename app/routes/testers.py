"""
testers.py
----------
Purpose:
    Tester registration (public) and tester administration (admin only).

Usage:
    1. POST /register            - Register an email, get the profile download URL
    2. GET  /testers             - List testers (admin)
    3. GET  /testers/{id}        - Tester detail with its builds (admin)
    4. DELETE /testers/{id}      - Administrative purge (admin)
"""

from fastapi import APIRouter, Depends, Response, status

from app.auth.verify import admin_dependency
from app.infrastructure.observability.logging import get_logger
from app.models.api.distribution_request import RegisterRequest
from app.models.api.distribution_response import (
    BuildResponse,
    RegisterResponse,
    TesterDetailResponse,
    TesterListResponse,
    TesterResponse,
)
from app.services.lifecycle_service import (
    LifecycleError,
    TesterLifecycleService,
    get_lifecycle_service,
)
from app.utils.http_errors import internal_http_error, lifecycle_http_error

router = APIRouter(tags=["testers"])
logger = get_logger(__name__)


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    request: RegisterRequest,
    response: Response,
    service: TesterLifecycleService = Depends(get_lifecycle_service),
):
    """
    Register a tester by email.

    Returns:
        201 for a new tester, 200 when the email was already registered;
        both carry the tester id and the next-step URL.

    Raises:
        400: Missing or malformed email
    """
    try:
        result = service.register_tester(request.email)
    except LifecycleError as e:
        logger.info("Registration rejected", code=e.code)
        raise lifecycle_http_error(e) from e
    except Exception as e:
        logger.error("Registration failed", error=str(e), exc_info=True)
        raise internal_http_error() from e

    if not result.created:
        response.status_code = status.HTTP_200_OK
        message = "Tester already registered. Continue to the next step."
    else:
        message = "Registration complete. Continue to the next step to register your device."

    return RegisterResponse(tester_id=result.tester.id, next_url=result.next_url, message=message)


@router.get("/testers", response_model=TesterListResponse)
async def list_testers(
    _admin: str = Depends(admin_dependency),
    service: TesterLifecycleService = Depends(get_lifecycle_service),
):
    testers = service.list_testers()
    return TesterListResponse(testers=[TesterResponse.from_domain(t) for t in testers])


@router.get("/testers/{tester_id}", response_model=TesterDetailResponse)
async def get_tester(
    tester_id: str,
    _admin: str = Depends(admin_dependency),
    service: TesterLifecycleService = Depends(get_lifecycle_service),
):
    try:
        tester = service.get_tester(tester_id)
    except LifecycleError as e:
        raise lifecycle_http_error(e) from e

    builds = service.builds_for_tester(tester.id)
    return TesterDetailResponse(
        tester=TesterResponse.from_domain(tester),
        builds=[BuildResponse.from_domain(b) for b in builds],
    )


@router.delete("/testers/{tester_id}", status_code=status.HTTP_204_NO_CONTENT)
async def purge_tester(
    tester_id: str,
    admin: str = Depends(admin_dependency),
    service: TesterLifecycleService = Depends(get_lifecycle_service),
):
    try:
        service.purge_tester(tester_id)
    except LifecycleError as e:
        raise lifecycle_http_error(e) from e

    logger.info("Tester purged by admin", tester_id=tester_id, admin=admin)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
