"""
common.exceptions
~~~~~~~~~~~~~~~~~
Service-layer error types and the DRF exception handler that renders them.

Every :class:`AppError` becomes ``{"code": ..., "detail": ...}`` with the
class's HTTP status.  Errors that carry a list of problems (parse and
validation failures) are answered by the views themselves as
``{"errors": [...]}``.
"""
import structlog
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = structlog.get_logger(__name__)


class AppError(Exception):
    """Base service-layer error.  Subclasses pick the HTTP status and code."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_code: str = "error"
    default_detail: str = "An error occurred."

    def __init__(self, detail: str | None = None, code: str | None = None) -> None:
        self.detail = detail or self.default_detail
        self.code = code or self.default_code
        super().__init__(self.detail)

    def __str__(self) -> str:
        return self.detail


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"
    default_detail = "The requested resource was not found."


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_code = "conflict"
    default_detail = "A resource conflict occurred."


class ValidationError(AppError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_code = "validation_error"
    default_detail = "Validation failed."


class PermissionDeniedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "permission_denied"
    default_detail = "You do not have permission to perform this action."


class PayloadTooLargeError(AppError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    default_code = "payload_too_large"
    default_detail = "The submitted gitlab.rb source is too large."


def custom_exception_handler(exc: Exception, context: dict) -> Response | None:
    """
    Global DRF exception handler.

    :class:`AppError` subclasses are rendered here; anything else goes to the
    stock DRF handler so framework errors (bad JSON, 405, ...) keep their
    usual shape.
    """
    view = context.get("view")
    view_name = type(view).__name__ if view is not None else None

    if isinstance(exc, AppError):
        logger.warning(
            "app_error",
            view=view_name,
            code=exc.code,
            detail=exc.detail,
            status_code=exc.status_code,
        )
        return Response(
            {"code": exc.code, "detail": exc.detail},
            status=exc.status_code,
        )

    response = drf_exception_handler(exc, context)
    if response is not None:
        logger.warning(
            "drf_error",
            view=view_name,
            detail=response.data,
            status_code=response.status_code,
        )
    else:
        logger.exception("unhandled_exception", view=view_name, exc_info=exc)

    return response
