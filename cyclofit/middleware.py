import time
import logging
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .config import settings
from .exceptions import create_error_response

logger = logging.getLogger(__name__)

# Multipart boundaries and metadata fields on top of the video itself
MULTIPART_OVERHEAD = 1024 * 1024


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-IP request cap, backed by the app's RateLimiter."""

    async def dispatch(self, request: Request, call_next):
        services = getattr(request.app.state, "services", None)
        if services is not None:
            client_ip = request.client.host if request.client else "unknown"
            if not services.rate_limiter.allow(f"ip:{client_ip}", settings.RATE_LIMIT_PER_MINUTE, 60):
                logger.warning(f"Rate limit exceeded for IP: {client_ip}")
                return JSONResponse(
                    status_code=429,
                    content=create_error_response("Rate limit exceeded. Please try again later.")
                )
        return await call_next(request)


class SecurityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        client_host = request.client.host if request.client else "unknown"
        logger.info(f"Request: {request.method} {request.url.path} from {client_host}")

        response = await call_next(request)

        duration = time.time() - start_time
        logger.info(f"Response: {response.status_code} in {duration:.3f}s")

        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled error: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content=create_error_response("Internal server error", str(e) if settings.DEBUG else type(e).__name__)
            )


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        # Hard cap using Content-Length when the client sends one
        content_length = request.headers.get("content-length")
        if content_length is not None:
            try:
                size = int(content_length)
            except ValueError:
                size = None
            if size is not None and size > settings.MAX_VIDEO_SIZE + MULTIPART_OVERHEAD:
                return JSONResponse(
                    status_code=413,
                    content=create_error_response("Request entity too large")
                )
        return await call_next(request)
