"""Translation of service errors into structured HTTP errors."""

from fastapi import HTTPException, status

from app.services.lifecycle_service import LifecycleError

INTERNAL_ERROR_CODE = "INTERNAL_ERROR"


def error_body(message: str, code: str) -> dict[str, str]:
    return {"error": message, "code": code}


def lifecycle_http_error(error: LifecycleError) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error_body(error.message, error.code))


def internal_http_error() -> HTTPException:
    # Never leak internals to the caller; details are in the logs.
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=error_body("Internal server error", INTERNAL_ERROR_CODE),
    )
