import logging
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from sitespeed.platform.response import api_response

logger = logging.getLogger(__name__)


class SiteSpeedError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ScanInputError(SiteSpeedError):
    """Rejected before a run starts: empty URL list, missing credential, bad input."""

    status_code = status.HTTP_400_BAD_REQUEST


class ScanAlreadyRunningError(SiteSpeedError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "A scan is already running"):
        super().__init__(message)


class ScanItemNotFoundError(SiteSpeedError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, url: str):
        super().__init__(f"URL is not part of the current scan: {url}")
        self.url = url


class SitemapResolutionError(SiteSpeedError):
    """Sitemap could not be fetched or parsed. Carries a diagnostic payload."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        debug: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, status_code)
        self.debug = debug or {}


class ScanBackendError(SiteSpeedError):
    """
    A single PageSpeed call failed.

    These never escape a scan run; the executor records the message on the
    failing item. kind classifies the failure for API callers:
    client_input, transient or upstream.
    """

    TRANSIENT_STATUSES = {408, 429, 503, 504}

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        super().__init__(message, status_code)

    @property
    def kind(self) -> str:
        if self.status_code in self.TRANSIENT_STATUSES:
            return "transient"
        if 400 <= self.status_code < 500:
            return "client_input"
        return "upstream"


def add_exception_handlers(app):
    @app.exception_handler(SitemapResolutionError)
    async def sitemap_exception_handler(request: Request, exc: SitemapResolutionError):
        return api_response(
            message=exc.message,
            status_code=exc.status_code,
            data={"debug": exc.debug} if exc.debug else None,
        )

    @app.exception_handler(ScanBackendError)
    async def backend_exception_handler(request: Request, exc: ScanBackendError):
        return api_response(
            message=exc.message,
            status_code=exc.status_code,
            data={"kind": exc.kind},
        )

    @app.exception_handler(SiteSpeedError)
    async def domain_exception_handler(request: Request, exc: SiteSpeedError):
        return api_response(message=exc.message, status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return api_response(message=str(exc.detail) or "Error", status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return api_response(
            message="Validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            data={"errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return api_response(
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
