"""
CSV import models.

Draft structures (dataclasses) live only for the duration of an import
session; the pydantic schemas are the API surface over them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from models.base import BaseSchema


class ImportAction(str, Enum):
    """How an import write treats a parsed product."""
    CREATE = "create"
    UPDATE = "update"
    SKIP = "skip"


class MatchType(str, Enum):
    """How a parsed product matched a stored product."""
    CODE = "code"
    NAME = "name"


class CategoryMatchType(str, Enum):
    """How a raw category string matched a stored category."""
    SLUG = "slug"
    NAME = "name"


class ImportStatus(str, Enum):
    """Terminal state of an import run."""
    COMPLETED = "completed"
    ABORTED_VALIDATION = "aborted-validation"
    ABORTED_ERROR = "aborted-error"


# ===================
# DRAFTS
# ===================

@dataclass
class VariantDraft:
    """One priced, SKU'd row of a parsed product."""
    size: str
    finish: str
    price: float
    sku: str


@dataclass
class ResolvedCategory:
    """A raw category string matched to a stored category."""
    id: str
    slug: Optional[str]
    path: list[str]
    label: str
    ancestry: list[str]
    match_type: CategoryMatchType


@dataclass
class ParsedProduct:
    """
    One logical product folded from CSV rows sharing a product code.

    Enriched in place by category resolution and duplicate detection,
    then edited by the operator through its action.
    """
    product_code: str
    name: str
    category: str
    short_description: str = ""
    full_description: str = ""
    image_url: str = ""
    variants: list[VariantDraft] = field(default_factory=list)
    source_rows: list[dict] = field(default_factory=list)
    action: ImportAction = ImportAction.CREATE

    # Category resolution
    category_id: Optional[str] = None
    category_slug: Optional[str] = None
    category_path: Optional[list[str]] = None
    category_path_label: Optional[str] = None
    category_ancestors: Optional[list[str]] = None
    category_match_type: Optional[CategoryMatchType] = None

    # Duplicate detection
    existing_product_id: Optional[str] = None
    existing_product_name: Optional[str] = None
    existing_updated_at: Optional[str] = None
    existing_match_type: Optional[MatchType] = None

    @property
    def label(self) -> str:
        """Name for messages: name, else code, else a placeholder."""
        return self.name or self.product_code or "Unnamed product"

    @property
    def is_duplicate(self) -> bool:
        return self.existing_product_id is not None

    def apply_resolved_category(self, resolved: ResolvedCategory) -> None:
        self.category_id = resolved.id
        self.category_slug = resolved.slug
        self.category_path = list(resolved.path)
        self.category_path_label = resolved.label
        self.category_ancestors = list(resolved.ancestry)
        self.category_match_type = resolved.match_type

    def clear_resolved_category(self) -> None:
        self.category_id = None
        self.category_slug = None
        self.category_path = None
        self.category_path_label = None
        self.category_ancestors = None
        self.category_match_type = None


@dataclass
class ProposedCategory:
    """
    A category implied by import data that does not exist yet.

    Keyed by the slugified full path from the root. The parent is either a
    stored category (parent_existing_id) or another proposal (parent_key).
    """
    key: str
    path: list[str]
    label: str
    name: str
    slug: str
    parent_existing_id: Optional[str]
    parent_key: Optional[str]
    parent_path: list[str]
    depth: int


# ===================
# API SCHEMAS
# ===================

class VariantResponse(BaseModel):
    size: str
    finish: str
    price: float
    sku: str


class ProductDraftResponse(BaseModel):
    """Parsed product as shown in the review table."""

    index: int = Field(..., description="Position in the session's product list")
    product_code: str
    name: str
    category: str
    category_id: Optional[str] = None
    category_path_label: Optional[str] = None
    category_match_type: Optional[CategoryMatchType] = None
    short_description: str = ""
    full_description: str = ""
    image_url: str = ""
    variants: list[VariantResponse] = Field(default_factory=list)
    action: ImportAction
    existing_product_id: Optional[str] = None
    existing_product_name: Optional[str] = None
    existing_updated_at: Optional[str] = None
    existing_match_type: Optional[MatchType] = None

    @classmethod
    def from_draft(cls, index: int, product: ParsedProduct) -> "ProductDraftResponse":
        return cls(
            index=index,
            product_code=product.product_code,
            name=product.name,
            category=product.category,
            category_id=product.category_id,
            category_path_label=product.category_path_label,
            category_match_type=product.category_match_type,
            short_description=product.short_description,
            full_description=product.full_description,
            image_url=product.image_url,
            variants=[
                VariantResponse(size=v.size, finish=v.finish, price=v.price, sku=v.sku)
                for v in product.variants
            ],
            action=product.action,
            existing_product_id=product.existing_product_id,
            existing_product_name=product.existing_product_name,
            existing_updated_at=product.existing_updated_at,
            existing_match_type=product.existing_match_type,
        )


class ProposedCategoryResponse(BaseModel):
    key: str
    label: str
    name: str
    slug: str
    path: list[str]
    parent_existing_id: Optional[str] = None
    parent_key: Optional[str] = None
    depth: int
    create: bool = Field(..., description="Whether the operator chose to create it")


class ImportSummaryResponse(BaseModel):
    """Counts shown above the review tables."""

    total_products: int
    total_variants: int
    duplicates: int
    create_count: int
    update_count: int
    skip_count: int
    selected_count: int
    proposed_categories: int
    categories_selected_for_creation: int
    unresolved_count: int
    can_import: bool


class ImportSessionResponse(BaseModel):
    session_id: str
    business_id: str
    preview: list[dict] = Field(default_factory=list, description="First raw CSV rows")
    products: list[ProductDraftResponse]
    proposed_categories: list[ProposedCategoryResponse]
    summary: ImportSummaryResponse


class ActionUpdateRequest(BaseSchema):
    action: ImportAction = Field(..., description="create, update or skip")


class CategoryChoiceRequest(BaseSchema):
    create: bool = Field(..., description="Create this category during import")


class ImportFailureResponse(BaseModel):
    label: str
    status_code: Optional[int] = None
    message: str


class ImportResultResponse(BaseModel):
    status: ImportStatus
    message: str
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    failures: list[ImportFailureResponse] = Field(default_factory=list)
    categories_created: int = 0
    categories_reused: int = 0
    unresolved_products: list[dict] = Field(default_factory=list)
    failed_indexes: list[int] = Field(default_factory=list, description="Positions of products that failed to write")


class ImportProgressResponse(BaseModel):
    session_id: str
    running: bool
    completed: int
    total: int
    phase: Optional[str] = None
