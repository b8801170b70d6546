"""Centralized exception definitions and error taxonomy."""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Describes severity for surfaced errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categorization used for error routing and logging."""
    VALIDATION = "validation"
    BUSINESS_LOGIC = "business_logic"
    DATABASE = "database"
    STORAGE = "storage"
    NETWORK = "network"
    SYSTEM = "system"


class UploadException(Exception):
    """Base exception type for the application."""

    def __init__(
        self,
        message: str,
        error_code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        self.message = message
        self.error_code = error_code
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.original_error = original_error
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception metadata into a dict."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "category": self.category.value,
            "severity": self.severity.value,
            "details": self.details,
            "type": self.__class__.__name__
        }


# Validation exceptions
class ValidationException(UploadException):
    """Raised when request or model validation fails."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        validation_details = details or {}
        if field:
            validation_details["field"] = field
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.MEDIUM,
            details=validation_details
        )


# Ledger exceptions
class PersistenceError(UploadException):
    """Raised when the session ledger cannot read or write."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        error_code: str = "PERSISTENCE_ERROR",
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        db_details = details or {}
        if operation:
            db_details["operation"] = operation
        super().__init__(
            message=message,
            error_code=error_code,
            category=ErrorCategory.DATABASE,
            severity=ErrorSeverity.HIGH,
            details=db_details,
            original_error=original_error
        )


class SessionIdCollisionError(PersistenceError):
    """Raised when a freshly generated session id already exists."""

    def __init__(self, session_id: str):
        super().__init__(
            message=f"Session id collision: {session_id}",
            operation="create_session",
            error_code="SESSION_ID_COLLISION",
            details={"session_id": session_id}
        )


class SessionNotFoundError(UploadException):
    """Raised when an upload session identifier cannot be located."""

    def __init__(self, session_id: str):
        super().__init__(
            message=f"Session not found: {session_id}",
            error_code="SESSION_NOT_FOUND",
            category=ErrorCategory.BUSINESS_LOGIC,
            severity=ErrorSeverity.LOW,
            details={"session_id": session_id}
        )


# Storage exceptions
class AuthorizationFailure(UploadException):
    """Raised when an upload grant cannot be issued."""

    def __init__(self, message: str, object_key: Optional[str] = None, details: Optional[Dict[str, Any]] = None,
                 original_error: Optional[Exception] = None):
        grant_details = details or {}
        if object_key:
            grant_details["object_key"] = object_key
        super().__init__(
            message=message,
            error_code="AUTHORIZATION_FAILURE",
            category=ErrorCategory.STORAGE,
            severity=ErrorSeverity.HIGH,
            details=grant_details,
            original_error=original_error
        )


class TransferFailure(UploadException):
    """Raised when a chunk PUT or a broker call fails on the client."""

    def __init__(self, message: str, chunk_index: Optional[int] = None, status: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None, original_error: Optional[Exception] = None):
        transfer_details = details or {}
        if chunk_index is not None:
            transfer_details["chunk_index"] = chunk_index
        if status is not None:
            transfer_details["status"] = status
        super().__init__(
            message=message,
            error_code="TRANSFER_FAILURE",
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.MEDIUM,
            details=transfer_details,
            original_error=original_error
        )


class VerificationMismatch(UploadException):
    """Raised on the client when the ledger still reports missing chunks after the last chunk was sent."""

    def __init__(self, session_id: str, progress: Optional[float] = None):
        super().__init__(
            message=f"Session {session_id} is not complete",
            error_code="VERIFICATION_MISMATCH",
            category=ErrorCategory.BUSINESS_LOGIC,
            severity=ErrorSeverity.LOW,
            details={"session_id": session_id, "progress": progress}
        )


class UploadCancelled(UploadException):
    """Raised inside a chunk pipeline once its file has been paused."""

    def __init__(self, file_id: str):
        super().__init__(
            message=f"Upload paused: {file_id}",
            error_code="UPLOAD_CANCELLED",
            category=ErrorCategory.BUSINESS_LOGIC,
            severity=ErrorSeverity.LOW,
            details={"file_id": file_id}
        )


# System exceptions
class ConfigurationException(UploadException):
    """Raised for configuration/initialization failures."""

    def __init__(self, message: str, config_key: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        config_details = details or {}
        if config_key:
            config_details["config_key"] = config_key
        super().__init__(
            message=message,
            error_code="CONFIG_ERROR",
            category=ErrorCategory.SYSTEM,
            severity=ErrorSeverity.CRITICAL,
            details=config_details
        )
