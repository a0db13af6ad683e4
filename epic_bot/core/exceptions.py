"""
Custom exception hierarchy for Epic Bot.
Provides structured error handling with proper HTTP status codes.
"""

from typing import Any, Optional


class EpicBotError(Exception):
    """Base exception for all Epic Bot errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(EpicBotError):
    """Error in application configuration."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            details=details,
            status_code=500,
        )


# =============================================================================
# Validation Errors (400)
# =============================================================================


class ValidationError(EpicBotError):
    """Request validation failed."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            details=details,
            status_code=400,
        )


class InvalidCommandError(ValidationError):
    """Slash command argument missing or malformed."""

    def __init__(self, message: str, command: Optional[str] = None) -> None:
        details = {"command": command} if command else {}
        super().__init__(message=message, details=details)
        self.code = "INVALID_COMMAND"


class SignatureVerificationError(EpicBotError):
    """Inbound request signature is missing, stale or wrong."""

    def __init__(self, message: str = "Invalid request signature") -> None:
        super().__init__(
            message=message,
            code="INVALID_SIGNATURE",
            status_code=401,
        )


# =============================================================================
# Not Found / Conflict Errors (404, 409)
# =============================================================================


class NotFoundError(EpicBotError):
    """Requested resource not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
    ) -> None:
        msg = message or f"{resource_type} not found"
        if resource_id:
            msg = f"{resource_type} with ID '{resource_id}' not found"

        super().__init__(
            message=msg,
            code="NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id},
            status_code=404,
        )


class SessionNotFoundError(NotFoundError):
    """Session not found."""

    def __init__(self, session_id: str) -> None:
        super().__init__(resource_type="Session", resource_id=session_id)
        self.code = "SESSION_NOT_FOUND"


class EpicNotFoundError(NotFoundError):
    """Epic document not found."""

    def __init__(self, epic_id: str) -> None:
        super().__init__(resource_type="Epic", resource_id=epic_id)
        self.code = "EPIC_NOT_FOUND"


class SessionConflictError(EpicBotError):
    """A session is already registered under this id."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            message=f"Session '{session_id}' already exists",
            code="SESSION_CONFLICT",
            details={"session_id": session_id},
            status_code=409,
        )


# =============================================================================
# External Service Errors (502)
# =============================================================================


class ExternalServiceError(EpicBotError):
    """Error communicating with external service."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message=f"{service_name} error: {message}",
            code="EXTERNAL_SERVICE_ERROR",
            details={"service": service_name, **(details or {})},
            status_code=502,
        )


class GenerationError(ExternalServiceError):
    """Error communicating with the text generation backend."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(service_name="Anthropic", message=message, details=details)
        self.code = "GENERATION_ERROR"


class TrackerError(ExternalServiceError):
    """Error communicating with the issue tracker."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(service_name="GitHub", message=message, details=details)
        self.code = "TRACKER_ERROR"


class ChatError(ExternalServiceError):
    """Error communicating with the chat platform."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(service_name="Slack", message=message, details=details)
        self.code = "CHAT_ERROR"


# =============================================================================
# Business Logic Errors (422)
# =============================================================================


class BusinessLogicError(EpicBotError):
    """Business logic validation failed."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            code="BUSINESS_LOGIC_ERROR",
            details=details,
            status_code=422,
        )


class TrackerLinkError(BusinessLogicError):
    """An update was requested for something never published."""

    def __init__(self, message: str, item_id: Optional[str] = None) -> None:
        details = {"item_id": item_id} if item_id else {}
        super().__init__(message=message, details=details)
        self.code = "TRACKER_LINK_MISSING"
