"""
Error handling for the postings API.

Every failure leaves the service as the same JSON envelope:
{"error": {"code", "message", "path", "method", "details"?, "request_id"?}}.
Domain errors carry their own code and status; infrastructure errors are
mapped here and their messages sanitized before they reach a client.
"""

import logging
import re
import traceback
from typing import Any, Callable, Optional

from fastapi import Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.services.errors import PostingError

logger = logging.getLogger(__name__)

# Patterns for values that must never end up in a response or a log line
SENSITIVE_PATTERNS = [
    re.compile(r'password["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'token["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'api[_-]?key["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'secret["\s:=]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'authorization["\s:]+[^"\s,}]+', re.IGNORECASE),
    re.compile(r'(postgres(?:ql)?(?:\+\w+)?://[^:/\s]+:)[^@\s]+@', re.IGNORECASE),
]


def sanitize_error_message(message: Any) -> str:
    """
    Remove credentials from an error message.

    Args:
        message: Original error message (non-strings are converted)

    Returns:
        Sanitized error message
    """
    sanitized = str(message)
    for pattern in SENSITIVE_PATTERNS:
        if pattern.groups:
            sanitized = pattern.sub(r"\1[REDACTED]@", sanitized)
        else:
            sanitized = pattern.sub("[REDACTED]", sanitized)
    return sanitized


def get_safe_error_details(exc: Exception, include_traceback: bool = False) -> dict[str, Any]:
    """Type and sanitized message of an exception, plus traceback in debug."""
    details = {
        "type": type(exc).__name__,
        "message": sanitize_error_message(exc),
    }
    if include_traceback:
        details["traceback"] = traceback.format_exc()
    return details


def format_validation_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    """Flatten FastAPI validation errors into field/message/type entries."""
    return [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": sanitize_error_message(error["msg"]),
            "type": error["type"],
        }
        for error in exc.errors()
    ]


def build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    path: str,
    method: str,
    details: Optional[Any] = None,
    request_id: Optional[str] = None,
) -> JSONResponse:
    """Build the error envelope shared by the middleware and the handlers."""
    body: dict[str, Any] = {
        "code": error_code,
        "message": message,
        "path": path,
        "method": method,
    }
    if details is not None:
        body["details"] = details
    if request_id:
        body["request_id"] = request_id
    return JSONResponse(status_code=status_code, content={"error": body})


def resolve_exception(
    exc: Exception, path: str, method: str, debug: bool = False
) -> tuple[int, str, str, Optional[Any]]:
    """
    Map an exception to (status_code, error_code, message, details).

    Logs with a severity matching the outcome: client errors as warnings,
    server and database failures as errors.
    """
    if isinstance(exc, PostingError):
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(f"{exc.code}: {method} {path} - {exc.message}")
        return exc.status_code, exc.code, exc.message, exc.details

    if isinstance(exc, StarletteHTTPException):
        message = sanitize_error_message(exc.detail)
        logger.warning(f"HTTP exception: {method} {path} - Status: {exc.status_code}, Message: {message}")
        return exc.status_code, "HTTP_EXCEPTION", message, None

    if isinstance(exc, RequestValidationError):
        errors = format_validation_errors(exc)
        logger.warning(f"Validation error: {method} {path} - Errors: {errors}")
        return status.HTTP_422_UNPROCESSABLE_ENTITY, "VALIDATION_ERROR", "Request validation failed", errors

    if isinstance(exc, IntegrityError):
        # Unique posting code collisions surface here; the client may retry
        logger.error(f"Database integrity error: {method} {path}", exc_info=not debug)
        details = get_safe_error_details(exc, include_traceback=True) if debug else None
        return status.HTTP_409_CONFLICT, "INTEGRITY_ERROR", "Database integrity constraint violated", details

    if isinstance(exc, OperationalError):
        logger.error(f"Database operational error: {method} {path}", exc_info=True)
        return (
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "DATABASE_ERROR",
            "Database service temporarily unavailable",
            None,
        )

    if isinstance(exc, SQLAlchemyError):
        logger.error(f"SQLAlchemy error: {method} {path}", exc_info=not debug)
        details = get_safe_error_details(exc, include_traceback=True) if debug else None
        return status.HTTP_500_INTERNAL_SERVER_ERROR, "DATABASE_ERROR", "A database error occurred", details

    if isinstance(exc, TimeoutError):
        logger.error(f"Timeout error: {method} {path}")
        return status.HTTP_504_GATEWAY_TIMEOUT, "TIMEOUT", "The request timed out", None

    logger.error(
        f"Unhandled exception: {method} {path} - "
        f"{type(exc).__name__}: {sanitize_error_message(exc)}",
        exc_info=True,
    )
    details = get_safe_error_details(exc, include_traceback=True) if debug else None
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_SERVER_ERROR", "An unexpected error occurred", details


class ErrorHandlingMiddleware:
    """
    ASGI middleware turning escaped exceptions into the error envelope.

    Args:
        app: The ASGI application
        debug: Whether to include tracebacks in error details
    """

    def __init__(self, app: Callable, debug: bool = False):
        self.app = app
        self.debug = debug

    async def __call__(self, scope: dict, receive: Callable, send: Callable) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        try:
            await self.app(scope, receive, send)
        except Exception as exc:
            response = self._handle_exception(exc, scope)
            await response(scope, receive, send)

    def _handle_exception(self, exc: Exception, scope: dict) -> Response:
        path = scope.get("path", "unknown")
        method = scope.get("method", "unknown")
        status_code, error_code, message, details = resolve_exception(
            exc, path, method, debug=self.debug
        )

        request_id = None
        for key, value in scope.get("headers", []):
            if key == b"x-request-id":
                request_id = value.decode()
                break

        return build_error_response(
            status_code, error_code, message, path, method, details, request_id
        )


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None) or request.headers.get("x-request-id")


def setup_error_handlers(app, debug: bool = False):
    """
    Register exception handlers on a FastAPI application.

    Args:
        app: FastAPI application instance
        debug: Whether to include tracebacks in error details
    """

    async def handle(request: Request, exc: Exception) -> JSONResponse:
        path = str(request.url.path)
        status_code, error_code, message, details = resolve_exception(
            exc, path, request.method, debug=debug
        )
        return build_error_response(
            status_code, error_code, message, path, request.method, details, _request_id(request)
        )

    app.add_exception_handler(PostingError, handle)
    app.add_exception_handler(StarletteHTTPException, handle)
    app.add_exception_handler(RequestValidationError, handle)
    app.add_exception_handler(SQLAlchemyError, handle)
    app.add_exception_handler(Exception, handle)
