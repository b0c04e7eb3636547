from typing import Dict, Any, Optional
from datetime import datetime, timezone
from fastapi import status
import logging

logger = logging.getLogger(__name__)


class BaseCustomException(Exception):
    """Base class for domain exceptions"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.error_code = error_code
        super().__init__(self.message)


class ValidationError(BaseCustomException):
    """Malformed or missing input"""

    def __init__(
        self,
        message: str = "Validation failed",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
            error_code=error_code or "VALIDATION_ERROR"
        )


class AuthenticationError(BaseCustomException):
    """Exception for authentication errors"""

    def __init__(
        self,
        message: str = "Authentication required",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
            error_code=error_code or "AUTHENTICATION_ERROR"
        )


class AuthorizationError(BaseCustomException):
    """Actor is not a permitted party"""

    def __init__(
        self,
        message: str = "Access denied",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
            error_code=error_code or "AUTHORIZATION_ERROR"
        )


class NotFoundError(BaseCustomException):
    """Exception for resource not found errors"""

    def __init__(
        self,
        message: str = "Resource not found",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details=details,
            error_code=error_code or "NOT_FOUND_ERROR"
        )


class ConflictError(BaseCustomException):
    """Double-booking or duplicate active request"""

    def __init__(
        self,
        message: str = "Resource conflict",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
            error_code=error_code or "CONFLICT_ERROR"
        )


class StateError(BaseCustomException):
    """Operation is not valid for the current lifecycle state"""

    def __init__(
        self,
        message: str = "Operation not allowed in the current state",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=details,
            error_code=error_code or "STATE_ERROR"
        )


class SubscriptionInactiveError(BaseCustomException):
    """Provider has no active subscription"""

    def __init__(
        self,
        message: str = "Doctor does not have an active subscription",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
            error_code=error_code or "SUBSCRIPTION_INACTIVE"
        )


class QuotaExceededError(BaseCustomException):
    """A plan limit has been reached for the current subscription window"""

    def __init__(
        self,
        message: str = "Plan limit reached",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
            error_code=error_code or "QUOTA_EXCEEDED"
        )


class DatabaseError(BaseCustomException):
    """Exception for database errors"""

    def __init__(
        self,
        message: str = "Database operation failed",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details,
            error_code=error_code or "DATABASE_ERROR"
        )


class ExternalServiceError(BaseCustomException):
    """Payment or notification collaborator failure"""

    def __init__(
        self,
        message: str = "External service error",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details=details,
            error_code=error_code or "EXTERNAL_SERVICE_ERROR"
        )


def create_error_response(
    exception: BaseCustomException,
    request_id: Optional[str] = None
) -> Dict[str, Any]:
    """Create standardized error envelope"""
    response = {
        "success": False,
        "message": exception.message,
        "error_code": exception.error_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request_id
    }

    if exception.details:
        response["details"] = exception.details

    return response


def create_unexpected_error_response(request_id: Optional[str] = None) -> Dict[str, Any]:
    """Envelope for failures that must not leak internals"""
    return {
        "success": False,
        "message": "An unexpected error occurred",
        "error_code": "UNEXPECTED_ERROR",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": request_id
    }


def handle_database_error(error: Exception, operation: str = "database operation") -> DatabaseError:
    """Handle database errors and convert to DatabaseError"""
    logger.error(f"Database error during {operation}: {error}")

    error_message = "Database operation failed"
    if "connection" in str(error).lower():
        error_message = "Database connection failed"
    elif "timeout" in str(error).lower():
        error_message = "Database operation timed out"

    return DatabaseError(
        message=error_message,
        details={"operation": operation},
        error_code="DATABASE_OPERATION_ERROR"
    )


def handle_external_service_error(
    error: Exception,
    service_name: str,
    operation: str = "request"
) -> ExternalServiceError:
    """Handle external service errors"""
    logger.error(f"External service error for {service_name}: {error}")

    return ExternalServiceError(
        message=f"External service {service_name} unavailable",
        details={
            "service_name": service_name,
            "operation": operation
        },
        error_code="EXTERNAL_SERVICE_ERROR"
    )
