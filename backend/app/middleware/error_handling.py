"""
Error Handling Middleware

Provides consistent, informative error responses across the API.

Features:
- Standardized error response format
- Correlation IDs for log tracking
- Sanitized responses (hides internal details in production)
- Service exception taxonomy shared by the planner and leaderboard services

Usage:
    from app.middleware.error_handling import ErrorHandlingMiddleware, ServiceError

    # Add middleware to app
    app.add_middleware(ErrorHandlingMiddleware)

    # Raise custom exceptions
    raise InvalidStateTransition("Entry already completed", details={"entry_id": entry_id})

Exception handling hierarchy:
    - HTTPException: Re-raised for FastAPI's built-in handler
    - ServiceError: Custom exceptions → structured JSON response
    - Exception: Catch-all for unexpected errors → sanitized response
"""

import functools
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Error Response Schema
# =============================================================================


class ErrorResponse(BaseModel):
    """Standardized error response."""

    error: str  # Error code (e.g., "invalid_state_transition")
    message: str  # Human-readable message
    error_id: str  # For log correlation
    details: Optional[dict] = None  # Additional context (sanitized)
    timestamp: datetime


# =============================================================================
# Custom Exceptions
# =============================================================================


class ServiceError(Exception):
    """
    Base exception for service errors.

    Provides consistent error handling with:
    - HTTP status code
    - Error code for categorization
    - Optional details for debugging

    Example:
        raise ServiceError("Database connection failed", status_code=503)
    """

    status_code: int = 500
    error_code: str = "service_error"

    def __init__(
        self,
        message: str,
        status_code: int = None,
        error_code: str = None,
        details: dict = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code:
            self.status_code = status_code
        if error_code:
            self.error_code = error_code
        self.details = details


class ValidationError(ServiceError):
    """
    Data validation error.

    Raised for out-of-range snooze days, non-increasing frequency offsets,
    unknown scope/window values and similar input problems.
    """

    status_code = 422
    error_code = "validation_error"


class NotFoundError(ServiceError):
    """
    Resource not found error.

    Raised when a requested topic, schedule entry or session doesn't exist.
    """

    status_code = 404
    error_code = "not_found"


class InvalidStateTransition(ServiceError):
    """
    Operation on an entry or session already in a terminal state.

    details["entry_id"] (or details["session_id"]) names the record that
    blocked the operation.
    """

    status_code = 409
    error_code = "invalid_state_transition"


class SessionAlreadyActive(ServiceError):
    """
    A running session already exists for the topic.
    """

    status_code = 409
    error_code = "session_already_active"


class SessionAlreadyFinished(ServiceError):
    """
    The session was already finished or aborted.
    """

    status_code = 409
    error_code = "session_already_finished"


class EmptyCohort(ServiceError):
    """
    Aggregate requested over zero users or topics.

    Never escapes the leaderboard services: callers convert it into a
    zeroed result.
    """

    status_code = 200
    error_code = "empty_cohort"


class PersistenceFailure(ServiceError):
    """
    Persistence collaborator I/O error.

    The unit of work that raised it has been rolled back.
    """

    status_code = 503
    error_code = "persistence_failure"


# =============================================================================
# Error Handling Middleware
# =============================================================================


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.

    - Catches unhandled exceptions
    - Logs with correlation ID
    - Returns consistent error format
    - Hides internal details in production
    """

    def __init__(self, app, debug: bool = False):
        """
        Initialize middleware.

        Args:
            app: FastAPI/Starlette application
            debug: Whether to include stack traces in responses
        """
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        """Process request and handle any errors."""
        error_id = str(uuid4())[:8]

        try:
            response = await call_next(request)
            return response

        except HTTPException:
            # Let FastAPI handle HTTP exceptions
            raise

        except ServiceError as e:
            logger.error(
                f"[{error_id}] {e.error_code}: {e.message}",
                extra={
                    "error_id": error_id,
                    "error_code": e.error_code,
                    "path": request.url.path,
                    "method": request.method,
                    "details": e.details,
                },
            )
            return service_error_response(e, error_id=error_id, debug=self.debug)

        except Exception as e:
            # Log full traceback for unexpected errors
            logger.error(
                f"[{error_id}] Unhandled error: {type(e).__name__}: {e}",
                extra={
                    "error_id": error_id,
                    "path": request.url.path,
                    "method": request.method,
                    "traceback": traceback.format_exc(),
                },
            )

            content = {
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
                "error_id": error_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }

            if self.debug:
                content["details"] = {
                    "exception": type(e).__name__,
                    "message": str(e),
                    "traceback": traceback.format_exc(),
                }

            return JSONResponse(status_code=500, content=content)


# =============================================================================
# Setup Function
# =============================================================================


def setup_error_handling(app: FastAPI, debug: bool = False) -> None:
    """
    Configure error handling on the FastAPI app.

    Registers the middleware for unexpected errors and an exception handler
    so ServiceError raised inside routes renders the standard error body.

    Args:
        app: FastAPI application instance
        debug: Whether to include stack traces in responses
    """

    async def _service_error_handler(request: Request, exc: ServiceError):
        error_id = str(uuid4())[:8]
        logger.warning(
            f"[{error_id}] {exc.error_code}: {exc.message}",
            extra={"error_id": error_id, "path": request.url.path},
        )
        return service_error_response(exc, error_id=error_id, debug=debug)

    app.add_exception_handler(ServiceError, _service_error_handler)
    app.add_middleware(ErrorHandlingMiddleware, debug=debug)
    logger.info(f"Error handling middleware enabled (debug={debug})")


# =============================================================================
# Helper Functions
# =============================================================================


def service_error_response(
    error: ServiceError,
    error_id: Optional[str] = None,
    debug: bool = False,
) -> JSONResponse:
    """
    Render a ServiceError as the standard JSON error body.

    Details are always included for client-facing errors (4xx) because they
    name the blocking record; server errors only expose them in debug mode.
    """
    show_details = debug or error.status_code < 500
    return create_error_response(
        error_code=error.error_code,
        message=error.message,
        status_code=error.status_code,
        details=error.details if show_details else None,
        error_id=error_id,
    )


def create_error_response(
    error_code: str,
    message: str,
    status_code: int = 500,
    details: dict = None,
    error_id: Optional[str] = None,
) -> JSONResponse:
    """
    Create a standardized error response.

    Args:
        error_code: Error code for categorization
        message: Human-readable error message
        status_code: HTTP status code
        details: Optional additional details
        error_id: Correlation id (generated when omitted)

    Returns:
        JSONResponse with standardized error format
    """
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error_code,
            "message": message,
            "error_id": error_id or str(uuid4())[:8],
            "details": details,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


def handle_endpoint_errors(
    operation: str,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator for route handlers.

    ServiceError and HTTPException propagate unchanged; anything else is
    logged with the operation name and converted into a 500 HTTPException.

    Usage:
        @router.get("/due")
        @handle_endpoint_errors("Get due entries")
        async def get_due(...):
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await func(*args, **kwargs)
            except (HTTPException, ServiceError):
                raise
            except Exception as e:
                logger.error(f"{operation} failed: {type(e).__name__}: {e}")
                raise HTTPException(status_code=500, detail=f"{operation} failed")

        return wrapper

    return decorator
