"""
Custom exception classes for the application.

Every failure surfaced to API callers is an AppError with a stable code.
"""

from enum import Enum
from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.
    
    All custom exceptions inherit from this.
    
    Attributes:
        code: Error code (e.g., "IMPORT_SESSION_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """
    
    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)
    
    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""
    
    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""
    
    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""
    
    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""
    
    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


# ===================
# REMOTE STORE ERRORS
# ===================

class ErrorKind(str, Enum):
    """Whether a remote failure is worth retrying."""
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class RemoteStoreError(ExternalServiceError):
    """
    Normalized failure from the remote document store.

    Every exception raised by the Supabase client is mapped to this shape
    once, at the call boundary, so retry decisions never probe raw errors.

    Attributes:
        kind: TRANSIENT or PERMANENT
        status: HTTP-like status code, if one could be determined
        error_type: Upstream error class or code
        operation: Store operation that failed (e.g. "create_product")
    """

    def __init__(
        self,
        operation: str,
        message: str,
        kind: ErrorKind = ErrorKind.PERMANENT,
        status: Optional[int] = None,
        error_type: Optional[str] = None
    ):
        super().__init__(
            service="catalog_store",
            message=message,
            details={
                "operation": operation,
                "kind": kind.value,
                "status": status,
                "error_type": error_type,
            }
        )
        self.operation = operation
        self.kind = kind
        self.status = status
        self.error_type = error_type

    @property
    def is_transient(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT


# ===================
# CSV ERRORS
# ===================

class CSVFileTypeError(ValidationError):
    """Uploaded file is not a CSV."""

    def __init__(self, filename: Optional[str], content_type: Optional[str]):
        super().__init__(
            code="CSV_INVALID_FILE_TYPE",
            message="Please upload a CSV file",
            details={"filename": filename, "content_type": content_type}
        )


# ===================
# IMPORT SESSION ERRORS
# ===================

class ImportSessionNotFoundError(NotFoundError):
    """Import session expired or never existed."""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Import session",
            identifier=session_id,
            code="IMPORT_SESSION_NOT_FOUND"
        )


class ProductDraftNotFoundError(NotFoundError):
    """No parsed product at the given position."""

    def __init__(self, index: int):
        super().__init__(
            resource="Product draft",
            identifier=str(index),
            code="PRODUCT_DRAFT_NOT_FOUND"
        )


class ProposedCategoryNotFoundError(NotFoundError):
    """No proposed category with the given key."""

    def __init__(self, key: str):
        super().__init__(
            resource="Proposed category",
            identifier=key,
            code="PROPOSED_CATEGORY_NOT_FOUND"
        )


class ImportInProgressError(ConflictError):
    """Import already running for this session."""

    def __init__(self, session_id: str):
        super().__init__(
            code="IMPORT_IN_PROGRESS",
            message="An import is already running for this session",
            details={"session_id": session_id}
        )


class ReadOnlyModeError(AppError):
    """Writes are disabled (demo mode)."""

    def __init__(self):
        super().__init__(
            code="READ_ONLY_MODE",
            message="Demo mode is read-only. Data will not be written.",
            status_code=403
        )


# ===================
# IMPORT VALIDATION ERRORS
# ===================

class ImportValidationError(ValidationError):
    """Import blocked before any write."""
    pass


class NoProductsSelectedError(ImportValidationError):
    """Every product is marked skip."""

    def __init__(self):
        super().__init__(
            code="IMPORT_NO_PRODUCTS_SELECTED",
            message="No products selected for import"
        )


class UnresolvedCategoriesError(ImportValidationError):
    """Products reference categories that neither exist nor will be created."""

    def __init__(self, products: list[dict], message: Optional[str] = None):
        super().__init__(
            code="IMPORT_UNRESOLVED_CATEGORIES",
            message=message or (
                "Some products reference categories that are not selected for creation. "
                "Please create or map those categories before importing."
            ),
            details={"count": len(products), "products": products}
        )
        self.products = products
