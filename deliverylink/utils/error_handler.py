"""
Error taxonomy and handling utilities for the order lifecycle
"""

import uuid
import logging
from typing import Optional, Dict, Any
from datetime import datetime
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class ErrorContext:
    """Context object for tracking error information across the request lifecycle"""

    def __init__(self, request: Request):
        self.request_id = getattr(request.state, "request_id", None) or str(uuid.uuid4())
        self.request = request
        self.endpoint = str(request.url.path)
        self.method = request.method
        self.client_ip = self._get_client_ip()
        self.timestamp = datetime.utcnow()

    def _get_client_ip(self) -> Optional[str]:
        """Extract client IP from request headers"""
        if "x-forwarded-for" in self.request.headers:
            return self.request.headers["x-forwarded-for"].split(",")[0].strip()
        elif "x-real-ip" in self.request.headers:
            return self.request.headers["x-real-ip"]
        elif self.request.client:
            return self.request.client.host
        return None


class LifecycleError(Exception):
    """Base class for errors surfaced to the caller with a stable code"""

    error_code = "INTERNAL_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(LifecycleError):
    """Order or resource absent, soft-deleted, or not visible to the caller"""
    error_code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidStateError(LifecycleError):
    """Transition not legal from the order's current status"""
    error_code = "INVALID_STATE"
    status_code = status.HTTP_409_CONFLICT


class ExclusivityViolationError(LifecycleError):
    """Driver already holds an active delivery"""
    error_code = "EXCLUSIVITY_VIOLATION"
    status_code = status.HTTP_409_CONFLICT


class InvalidCodeError(LifecycleError):
    error_code = "INVALID_CODE"
    status_code = status.HTTP_400_BAD_REQUEST


class CodeExpiredError(LifecycleError):
    error_code = "CODE_EXPIRED"
    status_code = status.HTTP_400_BAD_REQUEST


class ValidationError(LifecycleError):
    """Malformed input that passed schema validation"""
    error_code = "VALIDATION_ERROR"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str, field: str = None, details: Optional[Dict[str, Any]] = None):
        if field:
            details = details or {}
            details["field"] = field
        super().__init__(message, details)


class InternalError(LifecycleError):
    """Unexpected persistence failure; the whole transaction was rolled back"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(message)


class ErrorHandler:
    """Centralized rendering of lifecycle errors"""

    @staticmethod
    def create_error_response(error_context: ErrorContext, error: LifecycleError) -> JSONResponse:
        """Create a standardized error response"""
        error_data = {
            "error": {
                "code": error.error_code,
                "message": ErrorHandler._get_user_friendly_message(error),
                "request_id": error_context.request_id,
                "timestamp": error_context.timestamp.isoformat(),
                "endpoint": error_context.endpoint,
                "method": error_context.method,
            }
        }
        if error.details:
            error_data["error"]["details"] = error.details

        ErrorHandler._log_error(error_context, error)

        return JSONResponse(status_code=error.status_code, content=error_data)

    @staticmethod
    def _get_user_friendly_message(error: LifecycleError) -> str:
        if isinstance(error, InternalError):
            return "A database error occurred. Please try again later."
        return error.message

    @staticmethod
    def _log_error(error_context: ErrorContext, error: LifecycleError):
        """Client errors are logged at WARNING, internal ones at ERROR"""
        log = logger.error if error.status_code >= 500 else logger.warning
        log(
            f"Error {error_context.request_id}: {error.error_code} in "
            f"{error_context.method} {error_context.endpoint} - {error.message}",
            extra={
                "request_id": error_context.request_id,
                "endpoint": error_context.endpoint,
                "method": error_context.method,
                "status_code": error.status_code,
                "client_ip": error_context.client_ip,
                "error_type": type(error).__name__,
            },
        )


async def lifecycle_exception_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    """FastAPI exception handler for the lifecycle error taxonomy"""
    return ErrorHandler.create_error_response(ErrorContext(request), exc)


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render schema validation failures in the same error envelope"""
    error = ValidationError(
        "Request validation failed",
        details={"errors": [{"loc": list(e["loc"]), "message": e["msg"]} for e in exc.errors()]},
    )
    return ErrorHandler.create_error_response(ErrorContext(request), error)


class UnitOfWork:
    """Context manager wrapping one lifecycle transition in a single transaction"""

    def __init__(self, db: Session):
        self.db = db

    def __enter__(self) -> Session:
        return self.db

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            try:
                self.db.commit()
            except SQLAlchemyError as e:
                logger.error(f"Database transaction error: {e}")
                self.db.rollback()
                raise InternalError(f"Database transaction failed: {str(e)}", e) from e
            return False

        self.db.rollback()
        if isinstance(exc_val, SQLAlchemyError):
            logger.error(f"Database operation failed, transaction rolled back: {exc_val}")
            raise InternalError(f"Database operation failed: {str(exc_val)}", exc_val) from exc_val
        return False
