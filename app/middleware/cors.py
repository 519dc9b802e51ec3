"""
CORS Middleware - Cross-Origin Resource Sharing configuration.

The registration page is usually served from a different origin than this
API, so browsers need CORS headers on /register and /udid/manual. The iOS
profile callback is not a browser request and is unaffected.

Configuration:
- CORS_ALLOWED_ORIGINS="*" allows any origin (default, no credentials)
- CORS_ALLOWED_ORIGINS="https://a.example,https://b.example" locks it down

Usage:
    from app.middleware.cors import CORSMiddleware

    app.add_middleware(
        CORSMiddleware,
        allowed_origins=settings.cors_origins(),
    )
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

WILDCARD = "*"


class CORSMiddleware(BaseHTTPMiddleware):
    """
    CORS (Cross-Origin Resource Sharing) middleware.

    Handles preflight OPTIONS requests and adds CORS headers to responses.
    """

    def __init__(
        self,
        app,
        allowed_origins: list[str] | None = None,
        allow_credentials: bool = False,
        allow_methods: list[str] | None = None,
        allow_headers: list[str] | None = None,
        max_age: int = 600,
    ):
        """
        Initialize CORS middleware.

        Args:
            app: FastAPI application
            allowed_origins: Allowed origins, or ["*"] for any origin
            allow_credentials: Whether to allow credentials (ignored for "*")
            allow_methods: Allowed HTTP methods (default: common methods)
            allow_headers: Allowed request headers (default: common headers)
            max_age: How long (seconds) to cache preflight responses
        """
        super().__init__(app)
        self.allowed_origins = allowed_origins or []
        self.allow_any_origin = WILDCARD in self.allowed_origins
        # Browsers reject credentialed responses with a wildcard origin.
        self.allow_credentials = allow_credentials and not self.allow_any_origin
        self.allow_methods = allow_methods or ["GET", "POST", "DELETE", "OPTIONS", "HEAD"]
        self.allow_headers = allow_headers or [
            "Accept",
            "Content-Type",
            "Authorization",
            "X-Request-ID",
        ]
        self.max_age = max_age

        logger.info(
            "CORS middleware initialized",
            allowed_origins=self.allowed_origins,
            allow_credentials=self.allow_credentials,
        )

    def _is_allowed(self, origin: str | None) -> bool:
        if not origin:
            return False
        return self.allow_any_origin or origin in self.allowed_origins

    def _allow_origin_value(self, origin: str) -> str:
        return WILDCARD if self.allow_any_origin else origin

    async def dispatch(self, request, call_next):
        """
        Process request and add CORS headers.

        Handles:
        1. Preflight OPTIONS requests (return immediately)
        2. Regular requests (add CORS headers to response)
        """
        origin = request.headers.get("origin")
        is_allowed_origin = self._is_allowed(origin)

        is_preflight = (
            request.method == "OPTIONS" and "access-control-request-method" in request.headers
        )
        if is_preflight:
            if is_allowed_origin:
                return self._preflight_response(origin)
            logger.warning(
                "CORS preflight rejected - origin not allowed",
                origin=origin,
                allowed_origins=self.allowed_origins,
            )
            return Response(status_code=403, content="Origin not allowed")

        response = await call_next(request)

        if is_allowed_origin:
            response.headers["Access-Control-Allow-Origin"] = self._allow_origin_value(origin)
            if self.allow_credentials:
                response.headers["Access-Control-Allow-Credentials"] = "true"
            if not self.allow_any_origin:
                response.headers["Vary"] = "Origin"
        elif origin:
            logger.warning(
                "CORS request from disallowed origin",
                origin=origin,
                path=request.url.path,
            )

        return response

    def _preflight_response(self, origin: str) -> Response:
        headers = {
            "Access-Control-Allow-Origin": self._allow_origin_value(origin),
            "Access-Control-Allow-Methods": ", ".join(self.allow_methods),
            "Access-Control-Allow-Headers": ", ".join(self.allow_headers),
            "Access-Control-Max-Age": str(self.max_age),
        }

        if self.allow_credentials:
            headers["Access-Control-Allow-Credentials"] = "true"

        logger.debug("CORS preflight request handled", origin=origin)
        return Response(status_code=204, headers=headers)
