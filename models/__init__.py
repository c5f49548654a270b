"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema
from models.catalog import Category, ExistingProductMeta, CategoryMeta
from models.imports import (
    ImportAction,
    MatchType,
    CategoryMatchType,
    ImportStatus,
    VariantDraft,
    ResolvedCategory,
    ParsedProduct,
    ProposedCategory,
    ProductDraftResponse,
    ProposedCategoryResponse,
    ImportSummaryResponse,
    ImportSessionResponse,
    ActionUpdateRequest,
    CategoryChoiceRequest,
    ImportFailureResponse,
    ImportResultResponse,
    ImportProgressResponse,
)

__all__ = [
    # Base
    "BaseSchema",
    # Catalog
    "Category",
    "ExistingProductMeta",
    "CategoryMeta",
    # Imports
    "ImportAction",
    "MatchType",
    "CategoryMatchType",
    "ImportStatus",
    "VariantDraft",
    "ResolvedCategory",
    "ParsedProduct",
    "ProposedCategory",
    "ProductDraftResponse",
    "ProposedCategoryResponse",
    "ImportSummaryResponse",
    "ImportSessionResponse",
    "ActionUpdateRequest",
    "CategoryChoiceRequest",
    "ImportFailureResponse",
    "ImportResultResponse",
    "ImportProgressResponse",
]
