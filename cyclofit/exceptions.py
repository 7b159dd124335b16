import logging
from typing import Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class CyclofitError(Exception):
    """Base class for errors raised by the ingestion pipeline."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(CyclofitError):
    """Malformed or incomplete submission. Nothing is stored."""

    status_code = 400


class UnsupportedMediaError(ValidationError):
    status_code = 415


class PayloadTooLargeError(ValidationError):
    status_code = 413


class NotFoundError(CyclofitError):
    status_code = 404


class InvalidTransitionError(CyclofitError):
    status_code = 409

    def __init__(self, analysis_id: str, current: str, requested: str):
        super().__init__(f"Cannot transition analysis {analysis_id} from {current} to {requested}")
        self.analysis_id = analysis_id
        self.current = current
        self.requested = requested


class StorageFault(CyclofitError):
    """Object persistence, retrieval or URL signing failed."""


class LedgerFault(CyclofitError):
    """Record creation or transition failed in the backing store."""


class DispatchFault(CyclofitError):
    """The processing task could not be scheduled."""


class ProcessingFault(CyclofitError):
    """The compute step failed. Recorded on the analysis, never sent to a client."""


def create_error_response(message: str, error: Optional[str] = None) -> dict:
    """Create a standardized error body"""
    body = {"message": message}
    if error is not None:
        body["error"] = error
    return body


SUBMIT_ROUTE_NAME = "create_analysis"


async def cyclofit_exception_handler(request: Request, exc: CyclofitError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
        route = request.scope.get("route")
        if getattr(route, "name", None) == SUBMIT_ROUTE_NAME:
            content = create_error_response("Failed to create analysis", exc.message)
        else:
            content = create_error_response("Internal server error", exc.message)
    else:
        content = create_error_response(exc.message)
    return JSONResponse(status_code=exc.status_code, content=content)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTPException with the same body shape as pipeline errors"""
    # HTTPBearer answers 403 when the header is missing
    if exc.status_code == 403 and "Not authenticated" in str(exc.detail):
        return JSONResponse(status_code=401, content=create_error_response("Authentication required"))
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )
