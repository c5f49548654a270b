"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,

    # Remote store
    ErrorKind,
    RemoteStoreError,

    # CSV
    CSVFileTypeError,

    # Import sessions
    ImportSessionNotFoundError,
    ProductDraftNotFoundError,
    ProposedCategoryNotFoundError,
    ImportInProgressError,
    ReadOnlyModeError,

    # Import validation
    ImportValidationError,
    NoProductsSelectedError,
    UnresolvedCategoriesError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",

    # Remote store
    "ErrorKind",
    "RemoteStoreError",

    # CSV
    "CSVFileTypeError",

    # Import sessions
    "ImportSessionNotFoundError",
    "ProductDraftNotFoundError",
    "ProposedCategoryNotFoundError",
    "ImportInProgressError",
    "ReadOnlyModeError",

    # Import validation
    "ImportValidationError",
    "NoProductsSelectedError",
    "UnresolvedCategoriesError",
]
