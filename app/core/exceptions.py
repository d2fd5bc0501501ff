"""
Custom Exception Classes for the Application
Provides a unified error handling system with proper HTTP status codes and machine-readable codes.
The collaboration core never formats user-facing text; `message` is for logs and API clients.
"""

from typing import Any, Dict, Optional
from fastapi import HTTPException, status


class AppException(HTTPException):
    """
    Base exception class for all application exceptions.
    Provides consistent error response format.
    """

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(
            status_code=status_code,
            detail={
                "error_code": error_code,
                "message": message,
                "details": self.details,
            },
            headers=headers,
        )

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"


# ==================== Authentication Exceptions ====================


class AuthenticationException(AppException):
    """Base class for authentication-related exceptions."""

    def __init__(
        self,
        error_code: str = "authentication_failed",
        message: str = "Authentication failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code=error_code,
            message=message,
            details=details,
            headers={"WWW-Authenticate": "Bearer"},
        )


class InvalidTokenException(AuthenticationException):
    """Raised when the identity token is invalid or expired."""

    def __init__(self):
        super().__init__(
            error_code="invalid_token",
            message="Invalid authentication token",
        )


# ==================== Authorization Exceptions ====================


class PermissionDeniedException(AppException):
    """Raised when user doesn't have permission to perform an action."""

    def __init__(
        self, message: str = "You don't have permission to perform this action"
    ):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="permission_denied",
            message=message,
        )


class OwnershipRequiredException(PermissionDeniedException):
    """Raised when action requires resource ownership."""

    def __init__(self, resource: str):
        super().__init__(
            message=f"You must be the owner of this {resource} to perform this action"
        )


# ==================== Resource Exceptions ====================


class ResourceNotFoundException(AppException):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: Optional[Any] = None):
        details = {}
        if identifier is not None:
            details["identifier"] = str(identifier)

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="resource_not_found",
            message=f"{resource} not found",
            details=details,
        )


class ResourceConflictException(AppException):
    """Raised when there's a conflict with the resource state."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: str = "resource_conflict",
    ):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error_code=error_code,
            message=message,
            details=details,
        )


# ==================== Validation Exceptions ====================


class ValidationException(AppException):
    """Raised when input validation fails before any store call."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {}
        if field:
            details["field"] = field

        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="validation_error",
            message=message,
            details=details,
        )


# ==================== Workflow Exceptions ====================


class InvalidTransitionException(ResourceConflictException):
    """Raised when a state machine rule would be violated."""

    def __init__(self, resource: str, current: str, target: Optional[str] = None):
        details = {"resource": resource, "current": current}
        if target is not None:
            details["target"] = target
            message = f"Cannot move {resource} from {current} to {target}"
        else:
            message = f"{resource} is {current} and cannot be changed"
        super().__init__(
            message=message,
            details=details,
            error_code="invalid_transition",
        )


class DuplicateApplicationException(ResourceConflictException):
    """Raised when the applicant already has a pending application for the collaboration."""

    def __init__(self, collaboration_id: str, applicant_id: str):
        super().__init__(
            message="A pending application already exists for this collaboration",
            details={
                "collaboration_id": collaboration_id,
                "applicant_id": applicant_id,
            },
            error_code="duplicate_application",
        )


class DuplicatePendingInvitationException(ResourceConflictException):
    """Raised when the invitee already has a pending invitation for the collaboration."""

    def __init__(self, collaboration_id: str, to_user_id: str):
        super().__init__(
            message="A pending invitation already exists for this musician",
            details={"collaboration_id": collaboration_id, "to_user_id": to_user_id},
            error_code="duplicate_pending_invitation",
        )


class AlreadyMemberException(ResourceConflictException):
    """Raised when the user is already part of the collaboration."""

    def __init__(self, collaboration_id: str, user_id: str):
        super().__init__(
            message="User is already a member of this collaboration",
            details={"collaboration_id": collaboration_id, "user_id": user_id},
            error_code="already_member",
        )


class RosterFullException(ResourceConflictException):
    """Raised when adding a participant would exceed maxParticipants."""

    def __init__(self, collaboration_id: str, max_participants: int):
        super().__init__(
            message="Collaboration roster is full",
            details={
                "collaboration_id": collaboration_id,
                "max_participants": max_participants,
            },
            error_code="roster_full",
        )


class ConcurrencyConflictException(ResourceConflictException):
    """Raised when a conditional write lost a race; callers may retry."""

    def __init__(self, message: str = "Document changed during the write"):
        super().__init__(
            message=message,
            error_code="concurrency_conflict",
        )


# ==================== External Service Exceptions ====================


class ExternalServiceException(AppException):
    """Raised when an external service fails."""

    def __init__(
        self,
        service_name: str,
        message: Optional[str] = None,
        error_code: str = "external_service_error",
    ):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code=error_code,
            message=message or f"{service_name} service is currently unavailable",
            details={"service": service_name},
        )


class StoreUnavailableException(ExternalServiceException):
    """Raised on transient document store failures (timeouts, outages)."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            service_name="document_store",
            message=message,
            error_code="store_unavailable",
        )


# Failures worth retrying inside the store layer.
RETRYABLE_EXCEPTIONS = (ConcurrencyConflictException, StoreUnavailableException)


# ==================== Helper Functions ====================


def raise_not_found(resource: str, identifier: Optional[Any] = None):
    """Helper function to raise ResourceNotFoundException."""
    raise ResourceNotFoundException(resource, identifier)


def raise_permission_denied(message: Optional[str] = None):
    """Helper function to raise PermissionDeniedException."""
    raise PermissionDeniedException(
        message or "You don't have permission to perform this action"
    )


def raise_validation_error(message: str, field: Optional[str] = None):
    """Helper function to raise ValidationException."""
    raise ValidationException(message, field)
