"""
Duplicate detection against already-stored products.

Parsed products are matched by normalized product code, then by normalized
name. A first-time match defaults the product to SKIP so nothing stored is
overwritten without the operator choosing UPDATE.
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional
import structlog

from models.catalog import ExistingProductMeta
from models.imports import ImportAction, MatchType, ParsedProduct
from utils.text_utils import normalize_key

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ExistingProductIndex:
    """Stored products of one tenant keyed by normalized code and name."""
    by_code: dict[str, ExistingProductMeta] = field(default_factory=dict)
    by_name: dict[str, ExistingProductMeta] = field(default_factory=dict)

    @classmethod
    def from_documents(cls, documents: Iterable[dict]) -> "ExistingProductIndex":
        by_code: dict[str, ExistingProductMeta] = {}
        by_name: dict[str, ExistingProductMeta] = {}

        for doc in documents:
            meta = ExistingProductMeta.from_document(doc)

            code_key = normalize_key(meta.product_code)
            if code_key:
                by_code[code_key] = meta

            name_key = normalize_key(meta.name)
            if name_key:
                by_name[name_key] = meta

        return cls(by_code=by_code, by_name=by_name)

    def __len__(self) -> int:
        return len({m.id for m in self.by_code.values()} | {m.id for m in self.by_name.values()})


@dataclass(frozen=True)
class DuplicateMatch:
    meta: ExistingProductMeta
    match_type: MatchType


def detect_existing_product(
    product_code: Optional[str],
    name: Optional[str],
    index: ExistingProductIndex,
) -> Optional[DuplicateMatch]:
    """
    Find a stored product matching a parsed one.

    Code wins over name; empty keys never match.

    Returns:
        DuplicateMatch, or None
    """
    code_key = normalize_key(product_code)
    if code_key:
        match = index.by_code.get(code_key)
        if match:
            return DuplicateMatch(meta=match, match_type=MatchType.CODE)

    name_key = normalize_key(name)
    if name_key:
        match = index.by_name.get(name_key)
        if match:
            return DuplicateMatch(meta=match, match_type=MatchType.NAME)

    return None


def apply_duplicate_detection(products: list[ParsedProduct], index: ExistingProductIndex) -> bool:
    """
    Annotate products with their stored duplicate, if any.

    Converges when re-run:
    - same match as before: untouched (operator's action kept)
    - new match on a product that had none: SKIP
    - new match on a product that already had one: action kept
    - match lost: meta cleared, action back to CREATE unless SKIP

    Returns:
        True if any product changed
    """
    mutated = False
    detected = 0

    for product in products:
        match = detect_existing_product(product.product_code, product.name, index)

        if match:
            detected += 1
            already_matched = (
                product.existing_product_id == match.meta.id
                and product.existing_match_type == match.match_type
            )
            if already_matched:
                continue

            if not product.existing_product_id:
                product.action = ImportAction.SKIP
            product.existing_product_id = match.meta.id
            product.existing_product_name = match.meta.name
            product.existing_updated_at = match.meta.updated_at
            product.existing_match_type = match.match_type
            mutated = True
            continue

        if product.existing_product_id:
            product.existing_product_id = None
            product.existing_product_name = None
            product.existing_updated_at = None
            product.existing_match_type = None
            if product.action != ImportAction.SKIP:
                product.action = ImportAction.CREATE
            mutated = True

    logger.debug(
        "duplicates_detected",
        products=len(products),
        duplicates=detected,
        mutated=mutated
    )

    return mutated
