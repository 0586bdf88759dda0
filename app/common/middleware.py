"""
Middleware for handling multi-tenancy
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import logging

from app.core.config import settings
from app.modules.tenants.registry import tenant_registry

logger = logging.getLogger(__name__)


class TenantMiddleware(BaseHTTPMiddleware):
    """
    Middleware that reads the tenant schema from the x-schema-name header,
    rejects unregistered schemas and sets it on request.state
    """

    # Paths that don't require tenant context
    EXEMPT_PATHS = [
        "/docs",
        "/redoc",
        "/openapi.json",
        "/health",
    ]

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/" or any(request.url.path.startswith(path) for path in self.EXEMPT_PATHS):
            return await call_next(request)

        # Skip for OPTIONS requests (CORS preflight)
        if request.method == "OPTIONS":
            return await call_next(request)

        schema_header = (request.headers.get(settings.SCHEMA_HEADER) or "").strip() or None

        if schema_header is not None and not tenant_registry.is_known(schema_header):
            logger.warning(f"Rejected request to {request.url.path} for unknown schema {schema_header!r}")
            return JSONResponse(
                content={"detail": f"Empresa desconocida: {schema_header}"},
                status_code=status.HTTP_400_BAD_REQUEST
            )

        schema_name = schema_header or tenant_registry.default
        request.state.schema_name = schema_name
        logger.debug(f"Request to {request.url.path} with schema: {schema_name}")

        response = await call_next(request)

        response.headers["X-Schema-Name"] = schema_name

        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers for production
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        # Add security headers
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-XSS-Protection"] = "1; mode=block"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        return response
