"""
Business logic services.

Each service handles one step of the CSV import pipeline.
"""

from services.grouping_service import group_rows, parse_price, build_variant_sku
from services.category_resolver import (
    CategoryIndex,
    resolve_category,
    resolve_category_path,
    propose_missing_categories,
)
from services.duplicate_detector import ExistingProductIndex, detect_existing_product
from services.reconciliation_service import ReconciliationPlan
from services.batch_executor import BatchExecutor, RateLimitConfig, ProcessResult
from services.catalog_store import CatalogStore, get_catalog_store, normalize_store_error
from services.import_service import ImportService, get_import_service, build_plan, refresh_plan

__all__ = [
    "group_rows",
    "parse_price",
    "build_variant_sku",
    "CategoryIndex",
    "resolve_category",
    "resolve_category_path",
    "propose_missing_categories",
    "ExistingProductIndex",
    "detect_existing_product",
    "ReconciliationPlan",
    "BatchExecutor",
    "RateLimitConfig",
    "ProcessResult",
    "CatalogStore",
    "get_catalog_store",
    "normalize_store_error",
    "ImportService",
    "get_import_service",
    "build_plan",
    "refresh_plan",
]
