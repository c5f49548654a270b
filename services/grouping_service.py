"""
Folds flat CSV rows into one draft product per product code.
"""

import re
from typing import Iterable, Optional
import structlog

from models.imports import ParsedProduct, VariantDraft, ImportAction

logger = structlog.get_logger(__name__)

_NON_PRICE_CHARS = re.compile(r"[^0-9.]")
_LEADING_NUMBER = re.compile(r"\d+(?:\.\d*)?|\.\d+")


def parse_price(value: Optional[str]) -> float:
    """
    Parse a currency-formatted price leniently.

    - "₹1,320.00" → 1320.0
    - "N/A" → 0.0

    Everything except digits and dots is stripped, then the leading
    number is read. Anything unparseable is 0.
    """
    if not value:
        return 0.0

    cleaned = _NON_PRICE_CHARS.sub("", value)
    match = _LEADING_NUMBER.match(cleaned)
    if not match:
        return 0.0
    try:
        return float(match.group())
    except ValueError:
        return 0.0


def build_variant_sku(
    product_code: str,
    size: str,
    finish: str,
    variant_code: Optional[str] = None
) -> str:
    """Explicit variant code, else "<code>-<size>-<finish>"."""
    if variant_code:
        return variant_code
    return f"{product_code}-{size}-{finish}"


def group_rows(rows: Iterable[dict[str, str]]) -> list[ParsedProduct]:
    """
    Group CSV rows into draft products.

    The first row for a product code supplies the product fields; every
    row (including the first) adds one variant. Products come back in
    order of first appearance. An empty product code is a group of its
    own, so all code-less rows collapse into one product.

    Args:
        rows: Tokenized rows keyed by CSV header

    Returns:
        Draft products with action CREATE
    """
    products: dict[str, ParsedProduct] = {}
    row_count = 0

    for row in rows:
        row_count += 1
        product_code = row.get("Product Code", "")

        product = products.get(product_code)
        if product is None:
            product = ParsedProduct(
                product_code=product_code,
                name=row.get("Product Name", ""),
                category=row.get("Category", ""),
                short_description=row.get("Short Description", ""),
                full_description=row.get("Full Description", ""),
                image_url=row.get("Product Image URL", ""),
                action=ImportAction.CREATE,
            )
            products[product_code] = product

        size = row.get("Size (MM / Inch)", "")
        finish = row.get("Colour / Finish", "")
        product.variants.append(VariantDraft(
            size=size,
            finish=finish,
            price=parse_price(row.get("MRP (INR)", "")),
            sku=build_variant_sku(product_code, size, finish, row.get("Variant Code")),
        ))
        product.source_rows.append(dict(row))

    logger.info(
        "rows_grouped",
        rows=row_count,
        products=len(products)
    )

    return list(products.values())
