"""
Middleware components for request processing.

This package contains middleware for:
- Request context (request ID bound into the log context)
- CORS for the browser-facing registration page
"""

from app.middleware.cors import CORSMiddleware
from app.middleware.request_context import RequestContextMiddleware

__all__ = [
    "RequestContextMiddleware",
    "CORSMiddleware",
]
