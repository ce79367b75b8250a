"""Custom exception classes for the Knowledge Ingestion service."""

from enum import Enum
from typing import Any, Dict, Optional


class IngestionException(Exception):
    """Base exception for all Knowledge Ingestion errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "status_code": self.status_code,
                "details": self.details,
            }
        }


class PermissionDeniedError(IngestionException):
    """Raised when a tenant touches a knowledge base it does not own."""

    def __init__(
        self,
        message: str = "Permission denied",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=403,
            code="PERMISSION_DENIED",
            details=details,
        )


class NotFoundError(IngestionException):
    """Exception raised when a resource is not found."""

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        message = f"{resource} not found"
        if resource_id:
            message += f" with id: {resource_id}"
        error_details = details or {}
        error_details["resource"] = resource
        if resource_id:
            error_details["resource_id"] = resource_id
        super().__init__(
            message=message,
            status_code=404,
            code="NOT_FOUND",
            details=error_details,
        )


class ValidationError(IngestionException):
    """Exception raised for validation errors."""

    def __init__(
        self,
        message: str = "Validation failed",
        errors: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if errors:
            error_details["validation_errors"] = errors
        super().__init__(
            message=message,
            status_code=422,
            code="VALIDATION_ERROR",
            details=error_details,
        )


class ChunkingError(IngestionException):
    """Exception raised for text chunking errors."""

    def __init__(
        self,
        message: str = "Text chunking failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=500,
            code="CHUNKING_ERROR",
            details=details,
        )


class ExtractionFailureReason(str, Enum):
    """Why the content extractor could not produce text."""

    UNSUPPORTED_TYPE = "unsupported_type"
    UPSTREAM_TIMEOUT = "upstream_timeout"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    EMPTY_CONTENT = "empty_content"
    UPSTREAM_ERROR = "upstream_error"


class ExtractionFailedError(IngestionException):
    """Exception raised when text could not be extracted from a document."""

    def __init__(
        self,
        message: str = "Content extraction failed",
        reason: ExtractionFailureReason = ExtractionFailureReason.UPSTREAM_ERROR,
        mime_type: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        error_details["reason"] = reason.value
        if mime_type:
            error_details["mime_type"] = mime_type
        self.reason = reason
        super().__init__(
            message=message,
            status_code=422,
            code="EXTRACTION_FAILED",
            details=error_details,
        )


class IndexWriteFailedError(IngestionException):
    """Exception raised when one or more chunk writes did not reach the index."""

    def __init__(
        self,
        message: str = "Failed to write chunks to the document index",
        failed: int = 0,
        total: int = 0,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        error_details["failed_chunks"] = failed
        error_details["total_chunks"] = total
        super().__init__(
            message=message,
            status_code=502,
            code="INDEX_WRITE_FAILED",
            details=error_details,
        )


class DocumentIndexError(IngestionException):
    """Exception raised for document index (Qdrant) operation errors."""

    def __init__(
        self,
        message: str = "Document index operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=502,
            code="DOCUMENT_INDEX_ERROR",
            details=details,
        )


class EmbeddingError(IngestionException):
    """Exception raised for embedding generation errors."""

    def __init__(
        self,
        message: str = "Embedding generation failed",
        model: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        if model:
            error_details["model"] = model
        super().__init__(
            message=message,
            status_code=502,
            code="EMBEDDING_ERROR",
            details=error_details,
        )


class StorageError(IngestionException):
    """Exception raised for storage operation errors."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=502,
            code="STORAGE_ERROR",
            details=details,
        )


class StorageCleanupFailedError(IngestionException):
    """Raised when a blob could not be removed after its entries were deleted.

    Never surfaced to users; callers log it and move on.
    """

    def __init__(
        self,
        storage_handle: str,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        error_details["storage_handle"] = storage_handle
        super().__init__(
            message=message or f"Failed to clean up storage: {storage_handle}",
            status_code=502,
            code="STORAGE_CLEANUP_FAILED",
            details=error_details,
        )


class QueueError(IngestionException):
    """Exception raised for message queue errors."""

    def __init__(
        self,
        message: str = "Message queue operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=502,
            code="QUEUE_ERROR",
            details=details,
        )


class DatabaseError(IngestionException):
    """Exception raised for database errors."""

    def __init__(
        self,
        message: str = "Database operation failed",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=500,
            code="DATABASE_ERROR",
            details=details,
        )


class ExternalServiceError(IngestionException):
    """Exception raised when external service calls fail."""

    def __init__(
        self,
        service: str,
        message: Optional[str] = None,
        status_code: int = 502,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_message = message or f"External service '{service}' unavailable"
        error_details = details or {}
        error_details["service"] = service
        super().__init__(
            message=error_message,
            status_code=status_code,
            code="EXTERNAL_SERVICE_ERROR",
            details=error_details,
        )
