"""
Reconciliation plan for a CSV import.

The plan is the operator-editable overlay on top of the parsed products:
one action per product and one "create this" choice per proposed
category. Everything else (proposals, unresolved count, summary) is
derived from current state on demand, so any edit can be followed by a
read without a separate recompute step.
"""

from typing import Iterable, Optional
import structlog

from models.catalog import Category
from models.imports import (
    ImportAction,
    ImportSummaryResponse,
    ParsedProduct,
    ProposedCategory,
)
from services.category_resolver import (
    CategoryIndex,
    apply_category_resolution,
    missing_path_keys,
    propose_missing_categories,
)
from services.duplicate_detector import (
    ExistingProductIndex,
    apply_duplicate_detection,
)
from exceptions import ProductDraftNotFoundError, ProposedCategoryNotFoundError

logger = structlog.get_logger(__name__)


# ===================
# UNRESOLVED CATEGORY GATING
# ===================

def can_resolve_category(
    product: ParsedProduct,
    index: CategoryIndex,
    selected_keys: set[str],
) -> bool:
    """
    Whether a product's category will exist once the plan is applied.

    True if the product already has a resolved category, has no category,
    or every segment of its path is either stored or selected for creation.
    """
    if product.category_id:
        return True
    if not product.category or not product.category.strip():
        return True
    return all(key in selected_keys for key in missing_path_keys(product.category, index))


def _selected_keys(
    proposals: Iterable[ProposedCategory],
    choices: dict[str, bool],
) -> set[str]:
    return {p.key for p in proposals if choices.get(p.key)}


def find_unresolved_products(
    selected_products: list[ParsedProduct],
    index: CategoryIndex,
    proposals: Iterable[ProposedCategory],
    choices: dict[str, bool],
) -> list[ParsedProduct]:
    """Products whose category path has a missing, unselected segment."""
    selected_keys = _selected_keys(proposals, choices)
    return [p for p in selected_products if not can_resolve_category(p, index, selected_keys)]


def compute_unresolved_count(
    selected_products: list[ParsedProduct],
    index: CategoryIndex,
    proposals: Iterable[ProposedCategory],
    choices: dict[str, bool],
) -> int:
    """Number of products blocking the import; import is allowed only at 0."""
    return len(find_unresolved_products(selected_products, index, proposals, choices))


def describe_products(products: Iterable[ParsedProduct]) -> list[dict]:
    """Compact listing for validation messages."""
    return [
        {
            "label": p.label,
            "product_code": p.product_code,
            "category": p.category or "No category",
        }
        for p in products
    ]


# ===================
# PLAN
# ===================

class ReconciliationPlan:
    """
    Parsed products plus the operator's decisions about them.

    Holds explicit snapshots of the tenant's categories and stored
    products; refresh() swaps snapshots and re-runs the enrichment passes,
    which converge when repeated.
    """

    def __init__(
        self,
        products: list[ParsedProduct],
        categories: Iterable[Category] = (),
        existing_products: Optional[ExistingProductIndex] = None,
    ):
        self.products = products
        self.category_index = CategoryIndex(categories)
        self.product_index = existing_products or ExistingProductIndex()
        self.proposals: list[ProposedCategory] = []
        self.choices: dict[str, bool] = {}
        self.refresh()

    # ===================
    # RECOMPUTATION
    # ===================

    def refresh(
        self,
        categories: Optional[Iterable[Category]] = None,
        existing_products: Optional[ExistingProductIndex] = None,
    ) -> None:
        """
        Re-run category resolution, duplicate detection and proposals.

        Args:
            categories: New category snapshot (keeps the current one if None)
            existing_products: New stored-product snapshot (same)
        """
        if categories is not None:
            self.category_index = CategoryIndex(categories)
        if existing_products is not None:
            self.product_index = existing_products

        categories_changed = apply_category_resolution(self.products, self.category_index)
        duplicates_changed = apply_duplicate_detection(self.products, self.product_index)
        self._recompute_proposals()

        logger.debug(
            "plan_refreshed",
            products=len(self.products),
            categories_changed=categories_changed,
            duplicates_changed=duplicates_changed,
            proposals=len(self.proposals)
        )

    def _recompute_proposals(self) -> None:
        self.proposals = propose_missing_categories(self.products, self.category_index)
        # Choices survive recomputation by key; new proposals default to create
        self.choices = {
            p.key: self.choices.get(p.key, True)
            for p in self.proposals
        }

    def merge_categories(self, categories: Iterable[Category]) -> None:
        """Add newly stored categories to the snapshot and refresh."""
        self.category_index = self.category_index.extended(categories)
        self.refresh()

    # ===================
    # OPERATOR EDITS
    # ===================

    def set_action(self, index: int, action: ImportAction) -> ParsedProduct:
        if index < 0 or index >= len(self.products):
            raise ProductDraftNotFoundError(index)
        product = self.products[index]
        product.action = action
        return product

    def apply_action_to_duplicates(self, action: ImportAction) -> int:
        """Set one action on every product with a stored match; returns how many."""
        changed = 0
        for product in self.products:
            if product.is_duplicate:
                product.action = action
                changed += 1
        return changed

    def set_category_choice(self, key: str, create: bool) -> None:
        if key not in self.choices:
            raise ProposedCategoryNotFoundError(key)
        self.choices[key] = create

    def set_all_category_choices(self, create: bool) -> None:
        for key in self.choices:
            self.choices[key] = create

    # ===================
    # DERIVED STATE
    # ===================

    @property
    def selected_products(self) -> list[ParsedProduct]:
        return [p for p in self.products if p.action != ImportAction.SKIP]

    @property
    def duplicates(self) -> list[tuple[int, ParsedProduct]]:
        return [(i, p) for i, p in enumerate(self.products) if p.is_duplicate]

    @property
    def categories_selected_for_creation(self) -> list[ProposedCategory]:
        return [p for p in self.proposals if self.choices.get(p.key)]

    def unresolved_products(self) -> list[ParsedProduct]:
        return find_unresolved_products(
            self.selected_products,
            self.category_index,
            self.proposals,
            self.choices,
        )

    @property
    def unresolved_count(self) -> int:
        return compute_unresolved_count(
            self.selected_products,
            self.category_index,
            self.proposals,
            self.choices,
        )

    @property
    def can_import(self) -> bool:
        return len(self.selected_products) > 0 and self.unresolved_count == 0

    def summary(self) -> ImportSummaryResponse:
        selected = self.selected_products
        unresolved = self.unresolved_count
        return ImportSummaryResponse(
            total_products=len(self.products),
            total_variants=sum(len(p.variants) for p in self.products),
            duplicates=len(self.duplicates),
            create_count=sum(1 for p in selected if p.action == ImportAction.CREATE),
            update_count=sum(1 for p in selected if p.action == ImportAction.UPDATE),
            skip_count=sum(1 for p in self.products if p.action == ImportAction.SKIP),
            selected_count=len(selected),
            proposed_categories=len(self.proposals),
            categories_selected_for_creation=len(self.categories_selected_for_creation),
            unresolved_count=unresolved,
            can_import=len(selected) > 0 and unresolved == 0,
        )
