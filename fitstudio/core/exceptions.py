"""
Service-level error taxonomy.

Services raise these instead of bare HTTPException so every failure carries a
stable `kind` alongside its HTTP status. They still subclass HTTPException, so
anything FastAPI does with HTTP errors keeps working; `service_error_handler`
adds the kind to the response body.
"""

from typing import Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from fitstudio.core.logging import get_logger

logger = get_logger(__name__)


class ServiceError(HTTPException):
    kind = "Internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str, headers: Optional[dict] = None):
        super().__init__(status_code=self.status_code, detail=detail, headers=headers)


class InvalidInputError(ServiceError):
    kind = "InvalidInput"
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(ServiceError):
    kind = "Unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(ServiceError):
    kind = "Forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ServiceError):
    kind = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ServiceError):
    kind = "Conflict"
    status_code = status.HTTP_409_CONFLICT


class InternalError(ServiceError):
    pass


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "kind": exc.kind},
        headers=exc.headers,
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything that escaped the services is logged and reported as Internal."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return await service_error_handler(request, InternalError("Internal server error"))
