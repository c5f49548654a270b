"""
Catalog store: async access to the tenant's products, variants and categories.

This is the only module that talks to Supabase. Every failure raised by
the client is normalized here into a RemoteStoreError (transient or
permanent, with a status code), so callers and the batch executor never
inspect raw client exceptions.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional
import structlog

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient

from config import settings, get_supabase_client
from exceptions import ErrorKind, RemoteStoreError
from models.catalog import Category
from services.batch_executor import RETRYABLE_STATUS_CODES

logger = structlog.get_logger(__name__)

# Postgres / PostgREST codes worth retrying, with the status they stand for
TRANSIENT_PG_CODES: dict[str, int] = {
    "40001": 409,  # serialization_failure
    "40P01": 409,  # deadlock_detected
    "53300": 503,  # too_many_connections
    "57014": 408,  # query_canceled (statement timeout)
    "08000": 503,  # connection_exception
    "08003": 503,
    "08006": 503,
}

PERMANENT_PG_CODES: dict[str, int] = {
    "23505": 409,  # unique_violation
    "23503": 409,  # foreign_key_violation
    "23502": 422,  # not_null_violation
    "22P02": 422,  # invalid_text_representation
    "42501": 403,  # insufficient_privilege
    "PGRST301": 401,
    "PGRST116": 404,
}


def _status_kind(status: Optional[int]) -> ErrorKind:
    if status is not None and status in RETRYABLE_STATUS_CODES:
        return ErrorKind.TRANSIENT
    return ErrorKind.PERMANENT


def normalize_store_error(error: BaseException, operation: str) -> RemoteStoreError:
    """
    Map any Supabase client failure to a RemoteStoreError.

    Args:
        error: Exception raised by the client
        operation: Store operation name, for logs and reports

    Returns:
        RemoteStoreError with kind, status and message filled in
    """
    if isinstance(error, RemoteStoreError):
        return error

    if isinstance(error, APIError):
        code = str(error.code) if error.code is not None else ""
        message = error.message or str(error)
        if code.isdigit() and len(code) == 3:
            # PostgREST falls back to the HTTP status when the body is not JSON
            status = int(code)
            return RemoteStoreError(operation, message, _status_kind(status), status, f"http_{code}")
        if code in TRANSIENT_PG_CODES:
            return RemoteStoreError(operation, message, ErrorKind.TRANSIENT, TRANSIENT_PG_CODES[code], code)
        return RemoteStoreError(
            operation,
            message,
            ErrorKind.PERMANENT,
            PERMANENT_PG_CODES.get(code, 400),
            code or type(error).__name__,
        )

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return RemoteStoreError(operation, str(error), _status_kind(status), status, type(error).__name__)

    if isinstance(error, httpx.TimeoutException):
        return RemoteStoreError(operation, f"timeout: {error}", ErrorKind.TRANSIENT, 408, type(error).__name__)

    if isinstance(error, httpx.TransportError):
        return RemoteStoreError(operation, f"network error: {error}", ErrorKind.TRANSIENT, None, type(error).__name__)

    return RemoteStoreError(operation, str(error) or type(error).__name__, ErrorKind.PERMANENT, None, type(error).__name__)


class CatalogStore:
    """
    Tenant-scoped catalog operations over the Supabase async client.

    Every request is followed by a short pause; a request that failed with
    a retryable status waits longer, so bursts of writes stay under the
    remote rate limit even before the executor's own backoff kicks in.
    """

    def __init__(
        self,
        client: AsyncClient,
        request_pause: Optional[float] = None,
        retry_pause: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.db = client
        self.products_table = settings.products_table
        self.variants_table = settings.variants_table
        self.categories_table = settings.categories_table
        self.request_pause = (
            settings.import_request_pause_seconds if request_pause is None else request_pause
        )
        self.retry_pause = (
            settings.import_retry_initial_delay_seconds * settings.import_retry_backoff_multiplier
            if retry_pause is None else retry_pause
        )
        self._sleep = sleep

    async def _pause(self, seconds: float) -> None:
        if seconds > 0:
            await self._sleep(seconds)

    async def _execute(self, operation: str, query) -> Any:
        try:
            return await query.execute()
        except Exception as e:
            error = normalize_store_error(e, operation)
            logger.debug(
                "store_request_failed",
                operation=operation,
                status=error.status,
                kind=error.kind.value,
                error=error.message
            )
            if error.status in RETRYABLE_STATUS_CODES:
                await self._pause(self.retry_pause)
            raise error from e
        finally:
            await self._pause(self.request_pause)

    @staticmethod
    def _first(result, operation: str) -> dict:
        data = result.data or []
        if isinstance(data, dict):
            return data
        if not data:
            raise RemoteStoreError(operation, "No document returned", ErrorKind.PERMANENT)
        return data[0]

    # ===================
    # CATEGORIES
    # ===================

    async def list_categories(self, business_id: str) -> list[Category]:
        """Tenant categories ordered by sort_order, then name."""
        result = await self._execute(
            "list_categories",
            self.db.table(self.categories_table)
            .select("*")
            .eq("business_id", business_id)
            .order("sort_order")
            .limit(settings.categories_limit)
        )
        categories = [Category.model_validate(row) for row in result.data or []]
        categories.sort(key=lambda c: (c.sort_order or 0, c.name))

        logger.info("categories_loaded", business_id=business_id, count=len(categories))
        return categories

    async def find_category(
        self,
        business_id: str,
        parent_id: Optional[str],
        name: str,
        slug: Optional[str] = None,
    ) -> Optional[Category]:
        """Stored child of parent_id matching name (case-insensitive) or slug."""
        query = (
            self.db.table(self.categories_table)
            .select("*")
            .eq("business_id", business_id)
        )
        if parent_id:
            query = query.eq("parent_id", parent_id)
        else:
            query = query.is_("parent_id", "null")

        result = await self._execute("find_category", query.limit(settings.categories_limit))

        wanted_name = name.strip().lower()
        wanted_slug = (slug or "").strip().lower()
        for row in result.data or []:
            category = Category.model_validate(row)
            if category.name.strip().lower() == wanted_name:
                return category
            if wanted_slug and (category.slug or "").lower() == wanted_slug:
                return category
        return None

    async def create_category(self, payload: dict) -> Category:
        """
        Insert a category document.

        Fields the store leaves empty in its response fall back to the
        values that were sent.
        """
        result = await self._execute(
            "create_category",
            self.db.table(self.categories_table).insert(payload)
        )
        doc = self._first(result, "create_category")

        merged = dict(payload)
        merged.update({k: v for k, v in doc.items() if v not in (None, "")})
        category = Category.model_validate(merged)

        logger.info(
            "category_created",
            category_id=category.id,
            name=category.name,
            parent_id=category.parent_id
        )
        return category

    # ===================
    # PRODUCTS
    # ===================

    async def list_existing_products(self, business_id: str, user_id: Optional[str] = None) -> list[dict]:
        """
        Stored products for duplicate detection.

        Falls back to the user's products when the tenant has none (data
        created before products carried a business id).
        """
        columns = "id,name,product_code,updated_at"
        result = await self._execute(
            "list_products",
            self.db.table(self.products_table)
            .select(columns)
            .eq("business_id", business_id)
            .limit(settings.existing_products_limit)
        )
        documents = result.data or []

        if not documents and user_id:
            result = await self._execute(
                "list_products",
                self.db.table(self.products_table)
                .select(columns)
                .eq("user_id", user_id)
                .limit(settings.existing_products_limit)
            )
            documents = result.data or []

        logger.info("existing_products_loaded", business_id=business_id, count=len(documents))
        return documents

    async def create_product(self, payload: dict) -> dict:
        result = await self._execute(
            "create_product",
            self.db.table(self.products_table).insert(payload)
        )
        return self._first(result, "create_product")

    async def update_product(self, product_id: str, payload: dict) -> None:
        await self._execute(
            "update_product",
            self.db.table(self.products_table).update(payload).eq("id", product_id)
        )

    # ===================
    # VARIANTS
    # ===================

    async def list_variants(self, product_id: str, business_id: Optional[str] = None) -> list[dict]:
        """Stored variants of a product; retries without the tenant filter if none match."""
        query = (
            self.db.table(self.variants_table)
            .select("id")
            .eq("product_id", product_id)
        )
        if business_id:
            query = query.eq("business_id", business_id)
        result = await self._execute("list_variants", query.limit(settings.variants_limit))
        documents = result.data or []

        if not documents and business_id:
            result = await self._execute(
                "list_variants",
                self.db.table(self.variants_table)
                .select("id")
                .eq("product_id", product_id)
                .limit(settings.variants_limit)
            )
            documents = result.data or []

        return documents

    async def delete_variant(self, variant_id: str) -> None:
        await self._execute(
            "delete_variant",
            self.db.table(self.variants_table).delete().eq("id", variant_id)
        )

    async def create_variant(self, payload: dict) -> dict:
        result = await self._execute(
            "create_variant",
            self.db.table(self.variants_table).insert(payload)
        )
        return self._first(result, "create_variant")


# Singleton instance
_catalog_store: Optional[CatalogStore] = None


async def get_catalog_store() -> CatalogStore:
    """Get or create CatalogStore instance."""
    global _catalog_store
    if _catalog_store is None:
        _catalog_store = CatalogStore(await get_supabase_client())
    return _catalog_store
