"""
Import orchestrator: turns a reviewed reconciliation plan into writes.

A run goes through five steps:
1. validate the plan (something selected, every category resolvable)
2. create the selected proposed categories, parents before children
3. re-resolve every selected product against the updated tree
4. write products and their variants
5. aggregate failures into one result

Category creation and product writes both go through the BatchExecutor,
so one bad row never stops the run. Validation problems end the run with
an ABORTED_VALIDATION result instead of raising.
"""

import asyncio
import dataclasses
import uuid
from typing import Any, Awaitable, Callable, Optional
import structlog

from config import settings
from exceptions import (
    ErrorKind,
    ImportValidationError,
    NoProductsSelectedError,
    ReadOnlyModeError,
    RemoteStoreError,
    UnresolvedCategoriesError,
)
from models.catalog import Category, CategoryMeta
from models.imports import (
    ImportAction,
    ImportFailureResponse,
    ImportResultResponse,
    ImportStatus,
    ParsedProduct,
    ProposedCategory,
)
from services.batch_executor import BatchExecutor, ProcessFailure, RateLimitConfig
from services.catalog_store import CatalogStore, get_catalog_store
from services.duplicate_detector import ExistingProductIndex
from services.grouping_service import group_rows
from services.category_resolver import (
    CategoryIndex,
    resolve_category,
    resolve_category_by_id,
    resolve_category_path,
)
from services.reconciliation_service import ReconciliationPlan, describe_products
from utils.text_utils import slugify

logger = structlog.get_logger(__name__)

# (phase, completed, total)
PhaseProgress = Callable[[str, int, int], None]

PHASE_CATEGORIES = "categories"
PHASE_PRODUCTS = "products"

UNRESOLVED_SAMPLE_SIZE = 3


@dataclasses.dataclass
class _CategoryPhase:
    created: list[Category] = dataclasses.field(default_factory=list)
    reused: list[Category] = dataclasses.field(default_factory=list)
    ids_by_key: dict[str, str] = dataclasses.field(default_factory=dict)
    failures: list[ProcessFailure] = dataclasses.field(default_factory=list)


def format_failure_lines(failures: list[ImportFailureResponse], limit: int) -> str:
    """Bullet list of the first failures: "• label: code X - message"."""
    lines = []
    for failure in failures[:limit]:
        code = failure.status_code if failure.status_code is not None else "n/a"
        lines.append(f"• {failure.label}: code {code} - {failure.message}")
    remaining = len(failures) - limit
    if remaining > 0:
        lines.append(f"… and {remaining} more")
    return "\n".join(lines)


def build_variant_payload(product_id: str, business_id: str, variant, user_id: Optional[str] = None) -> dict:
    parts = [p for p in (variant.size, variant.finish) if p]
    return {
        "product_id": product_id,
        "business_id": business_id,
        "user_id": user_id,
        "variant_name": " - ".join(parts) if parts else (variant.sku or "Default"),
        "attributes": {"Size": variant.size, "Finish": variant.finish},
        "price": variant.price,
        "sku": variant.sku or None,
        "enabled": True,
        "images": [],
    }


def build_product_payload(product: ParsedProduct, business_id: str) -> dict:
    """Fields shared by create and update."""
    category_value = None
    if product.category_id:
        category_value = CategoryMeta(
            id=product.category_id,
            slug=product.category_slug,
            label=product.category_path_label or product.category,
            path=product.category_path or [],
            ancestors=product.category_ancestors or [],
        ).serialize()

    return {
        "name": product.name,
        "description": product.full_description or product.short_description or None,
        "category": category_value,
        "base_price": 0,
        "has_variants": len(product.variants) > 0,
        "business_id": business_id,
        "product_code": product.product_code or None,
    }


class ImportService:
    """
    Executes reviewed imports against the catalog store.

    Usage:
        service = ImportService(store)
        result = await service.run(plan, business_id, user_id)
    """

    def __init__(
        self,
        store: CatalogStore,
        product_limits: Optional[RateLimitConfig] = None,
        category_limits: Optional[RateLimitConfig] = None,
        failure_detail_limit: Optional[int] = None,
        read_only: Optional[bool] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.product_limits = product_limits or RateLimitConfig.from_settings()
        # Categories are created one at a time so parents exist before children
        self.category_limits = dataclasses.replace(
            category_limits or RateLimitConfig.from_settings(),
            parallel=1,
        )
        self.failure_detail_limit = failure_detail_limit or settings.import_failure_detail_limit
        self.read_only = settings.read_only_mode if read_only is None else read_only
        self._sleep = sleep

    # ===================
    # RUN
    # ===================

    async def run(
        self,
        plan: ReconciliationPlan,
        business_id: str,
        user_id: Optional[str] = None,
        on_progress: Optional[PhaseProgress] = None,
    ) -> ImportResultResponse:
        """
        Execute the plan.

        Args:
            plan: Reviewed reconciliation plan (mutated: created categories
                are merged and selected products re-resolved)
            business_id: Tenant to write into
            user_id: Owner recorded on created categories, products and variants
            on_progress: Called with (phase, completed, total)

        Returns:
            ImportResultResponse with a terminal status

        Raises:
            ReadOnlyModeError: If writes are disabled
        """
        if self.read_only:
            raise ReadOnlyModeError()

        logger.info(
            "import_started",
            business_id=business_id,
            products=len(plan.products),
            selected=len(plan.selected_products)
        )

        categories = _CategoryPhase()

        try:
            selected = self._validate(plan)

            categories = await self._create_categories(plan, business_id, user_id, on_progress)
            plan.merge_categories(categories.created + categories.reused)

            self._reresolve(selected, plan.category_index, categories)

            return await self._write_products(plan, selected, business_id, user_id, categories, on_progress)

        except ImportValidationError as e:
            logger.warning("import_aborted_validation", business_id=business_id, code=e.code, error=e.message)
            return ImportResultResponse(
                status=ImportStatus.ABORTED_VALIDATION,
                message=e.message,
                total=len(plan.selected_products),
                categories_created=len(categories.created),
                categories_reused=len(categories.reused),
                unresolved_products=getattr(e, "products", []),
            )
        except Exception as e:
            logger.error("import_failed", business_id=business_id, error=str(e), error_type=type(e).__name__)
            return ImportResultResponse(
                status=ImportStatus.ABORTED_ERROR,
                message=f"Import failed: {e}",
                total=len(plan.selected_products),
                categories_created=len(categories.created),
                categories_reused=len(categories.reused),
            )

    # ===================
    # STEP 1: VALIDATE
    # ===================

    def _validate(self, plan: ReconciliationPlan) -> list[ParsedProduct]:
        selected = plan.selected_products
        if not selected:
            raise NoProductsSelectedError()

        unresolved = plan.unresolved_products()
        if unresolved:
            sample = ", ".join(
                f"{p.label} ({p.category})" for p in unresolved[:UNRESOLVED_SAMPLE_SIZE]
            )
            raise UnresolvedCategoriesError(
                describe_products(unresolved),
                message=(
                    f"{len(unresolved)} product(s) use categories that are not selected for creation: "
                    f"{sample}. Select those categories or skip the products."
                ),
            )
        return selected

    # ===================
    # STEP 2: CATEGORIES
    # ===================

    async def _create_categories(
        self,
        plan: ReconciliationPlan,
        business_id: str,
        user_id: Optional[str],
        on_progress: Optional[PhaseProgress],
    ) -> _CategoryPhase:
        phase = _CategoryPhase()
        proposals = sorted(plan.categories_selected_for_creation, key=lambda p: (p.depth, p.label))
        if not proposals:
            return phase

        working = plan.category_index

        async def create_one(proposal: ProposedCategory, index: int) -> None:
            nonlocal working

            parent_id = proposal.parent_existing_id
            if proposal.parent_key:
                parent_id = phase.ids_by_key.get(proposal.parent_key)
                if parent_id is None:
                    raise RemoteStoreError(
                        "create_category",
                        f"Parent category '{' > '.join(proposal.parent_path)}' was not created",
                        ErrorKind.PERMANENT,
                        424,
                        "ParentCategoryMissing",
                    )

            existing = working.find_child(parent_id, proposal.name)
            if existing is None:
                existing = await self.store.find_category(business_id, parent_id, proposal.name, proposal.slug)
            if existing is not None:
                phase.ids_by_key[proposal.key] = existing.id
                phase.reused.append(existing)
                working = working.extended([existing])
                logger.info("category_reused", key=proposal.key, category_id=existing.id)
                return

            category = await self.store.create_category({
                "name": proposal.name,
                "slug": proposal.slug or slugify(proposal.name) or f"category-{uuid.uuid4().hex[:8]}",
                "parent_id": parent_id,
                "sort_order": proposal.depth * 100,
                "business_id": business_id,
                "user_id": user_id,
            })
            phase.ids_by_key[proposal.key] = category.id
            phase.created.append(category)
            working = working.extended([category])

        def report(completed: int, total: int) -> None:
            if on_progress is not None:
                on_progress(PHASE_CATEGORIES, completed, total)

        executor = BatchExecutor(self.category_limits, sleep=self._sleep)
        result = await executor.run(proposals, create_one, on_progress=report)
        phase.failures = result.failures

        logger.info(
            "categories_phase_finished",
            business_id=business_id,
            created=len(phase.created),
            reused=len(phase.reused),
            failed=len(phase.failures)
        )
        return phase

    # ===================
    # STEP 3: RE-RESOLVE
    # ===================

    def _reresolve(
        self,
        selected: list[ParsedProduct],
        index: CategoryIndex,
        categories: _CategoryPhase,
    ) -> None:
        """Bind every selected product to a stored category, or abort."""
        unresolved: list[ParsedProduct] = []

        for product in selected:
            resolved = resolve_category_by_id(product.category_id, index, product.category_match_type)
            if resolved is None:
                resolved = resolve_category(product.category, index)
            if resolved is None:
                resolved = resolve_category_path(product.category, index)

            if resolved is not None:
                product.apply_resolved_category(resolved)
            elif product.category and product.category.strip():
                unresolved.append(product)

        if not unresolved:
            return

        message = f"{len(unresolved)} product(s) could not be matched to a category after category creation."
        if categories.failures:
            failures = [
                ImportFailureResponse(
                    label=f.item.label,
                    status_code=f.code,
                    message=f.message or "Unknown error",
                )
                for f in categories.failures
            ]
            message += "\nCategory failures:\n" + format_failure_lines(failures, self.failure_detail_limit)
        raise UnresolvedCategoriesError(describe_products(unresolved), message=message)

    # ===================
    # STEP 4-5: WRITE + AGGREGATE
    # ===================

    async def _write_products(
        self,
        plan: ReconciliationPlan,
        selected: list[ParsedProduct],
        business_id: str,
        user_id: Optional[str],
        categories: _CategoryPhase,
        on_progress: Optional[PhaseProgress],
    ) -> ImportResultResponse:
        # Product ids written by an earlier attempt; a retry rewrites them in place
        written: dict[int, str] = {}

        async def write_one(product: ParsedProduct, index: int) -> None:
            payload = build_product_payload(product, business_id)

            product_id = written.get(index)
            if product_id is None and product.action == ImportAction.UPDATE:
                product_id = product.existing_product_id

            if product_id is None:
                payload["user_id"] = user_id
                payload["archived"] = False
                payload["images"] = [product.image_url] if product.image_url else []
                doc = await self.store.create_product(payload)
                product_id = str(doc["id"])
                written[index] = product_id
            else:
                if product.image_url:
                    payload["images"] = [product.image_url]
                await self.store.update_product(product_id, payload)
                for variant_doc in await self.store.list_variants(product_id, business_id):
                    await self.store.delete_variant(variant_doc["id"])

            for variant in product.variants:
                await self.store.create_variant(build_variant_payload(product_id, business_id, variant, user_id))

        def report(completed: int, total: int) -> None:
            if on_progress is not None:
                on_progress(PHASE_PRODUCTS, completed, total)

        executor = BatchExecutor(self.product_limits, sleep=self._sleep)
        result = await executor.run(selected, write_one, on_progress=report)

        failures = [
            ImportFailureResponse(
                label=f.item.label,
                status_code=f.code,
                message=f.message or "Unknown error",
            )
            for f in result.failures
        ]
        positions = {id(p): i for i, p in enumerate(plan.products)}
        failed_indexes = [positions[id(f.item)] for f in result.failures if id(f.item) in positions]

        if failures:
            message = (
                f"Imported {result.succeeded} of {result.total} products. "
                f"{len(failures)} failed:\n" + format_failure_lines(failures, self.failure_detail_limit)
            )
        else:
            message = f"Imported {result.succeeded} products successfully."

        logger.info(
            "import_completed",
            business_id=business_id,
            total=result.total,
            succeeded=result.succeeded,
            failed=len(failures),
            categories_created=len(categories.created),
            categories_reused=len(categories.reused)
        )

        return ImportResultResponse(
            status=ImportStatus.COMPLETED,
            message=message,
            total=result.total,
            succeeded=result.succeeded,
            failed=len(failures),
            failures=failures[:self.failure_detail_limit],
            categories_created=len(categories.created),
            categories_reused=len(categories.reused),
            failed_indexes=failed_indexes,
        )


async def get_import_service() -> ImportService:
    """Create an ImportService over the shared catalog store."""
    return ImportService(await get_catalog_store())


# ===================
# PLAN LOADING
# ===================

async def load_snapshots(
    store: CatalogStore,
    business_id: str,
    user_id: Optional[str] = None,
) -> tuple[list[Category], ExistingProductIndex]:
    """Current tenant categories and stored products."""
    categories = await store.list_categories(business_id)
    documents = await store.list_existing_products(business_id, user_id)
    return categories, ExistingProductIndex.from_documents(documents)


async def build_plan(
    store: CatalogStore,
    rows: list[dict[str, str]],
    business_id: str,
    user_id: Optional[str] = None,
) -> ReconciliationPlan:
    """Group tokenized rows and reconcile them with the stored catalog."""
    products = group_rows(rows)
    categories, existing = await load_snapshots(store, business_id, user_id)
    plan = ReconciliationPlan(products, categories, existing)

    logger.info(
        "import_plan_built",
        business_id=business_id,
        products=len(products),
        duplicates=len(plan.duplicates),
        proposals=len(plan.proposals)
    )
    return plan


async def refresh_plan(
    store: CatalogStore,
    plan: ReconciliationPlan,
    business_id: str,
    user_id: Optional[str] = None,
) -> ReconciliationPlan:
    """Reload store snapshots into an existing plan, keeping operator edits."""
    categories, existing = await load_snapshots(store, business_id, user_id)
    plan.refresh(categories=categories, existing_products=existing)
    return plan
