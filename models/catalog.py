"""
Stored catalog documents as seen by the import pipeline.
"""

import json
from typing import Optional, Any

from pydantic import BaseModel, Field, field_validator

from models.base import BaseSchema


class Category(BaseSchema):
    """
    Category document.

    Categories form a tree through parent_id. The tree comes from an
    external store and is not guaranteed to be cycle-free.
    """

    id: str = Field(..., description="Category UUID")
    name: str = Field(..., description="Display name")
    slug: Optional[str] = Field(None, description="URL slug")
    parent_id: Optional[str] = Field(None, description="Parent category UUID")
    sort_order: Optional[int] = Field(None, description="Sort position among siblings")
    description: Optional[str] = None
    image: Optional[str] = None

    @field_validator("slug", "parent_id", mode="before")
    @classmethod
    def empty_to_none(cls, v: Any) -> Any:
        """Stored empty strings mean 'not set'."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


class ExistingProductMeta(BaseSchema):
    """Minimal view of a stored product used for duplicate detection."""

    id: str = Field(..., description="Product UUID")
    name: str = Field("", description="Stored product name")
    updated_at: Optional[str] = Field(None, description="Last update timestamp")
    product_code: Optional[str] = Field(None, description="Merchant product code")

    @classmethod
    def from_document(cls, doc: dict) -> "ExistingProductMeta":
        name = doc.get("name")
        code = doc.get("product_code")
        updated_at = doc.get("updated_at")
        return cls(
            id=str(doc["id"]),
            name=name if isinstance(name, str) else "",
            updated_at=str(updated_at) if updated_at is not None else None,
            product_code=code if isinstance(code, str) else None,
        )


class CategoryMeta(BaseModel):
    """
    Category reference stored on a product document.

    Serialized as a JSON string in the product's `category` column so the
    storefront can render breadcrumbs without walking the tree.
    """

    id: str
    slug: Optional[str] = None
    label: str
    path: list[str] = Field(default_factory=list)
    ancestors: list[str] = Field(default_factory=list)

    def serialize(self) -> str:
        return json.dumps({
            "id": self.id,
            "slug": self.slug,
            "label": self.label,
            "path": list(self.path),
            "ancestors": list(self.ancestors),
        })

    @classmethod
    def parse(cls, value: Any) -> Optional["CategoryMeta"]:
        """
        Parse a stored category value leniently.

        Returns None for anything that is not a JSON object with an id.
        """
        if not isinstance(value, str):
            return None
        try:
            raw = json.loads(value)
        except ValueError:
            return None
        if not isinstance(raw, dict):
            return None

        category_id = raw.get("id")
        if not isinstance(category_id, str) or not category_id:
            return None

        path = [s for s in raw.get("path") or [] if isinstance(s, str) and s]
        ancestors = [s for s in raw.get("ancestors") or [] if isinstance(s, str) and s]
        label = raw.get("label")
        if not isinstance(label, str) or not label:
            label = " > ".join(path) if path else category_id
        slug = raw.get("slug")

        return cls(
            id=category_id,
            slug=slug if isinstance(slug, str) and slug else None,
            label=label,
            path=path,
            ancestors=ancestors,
        )
