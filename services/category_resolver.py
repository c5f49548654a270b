"""
Category resolution against a tenant's stored category tree.

Merchants paste ad hoc category text, either a flat name ("Handles") or a
">"-delimited path ("Hardware > Handles > Cabinet"). Paths are resolved
greedily against the existing tree; the unmatched tail becomes a chain of
proposed categories the operator can create in one pass.

All functions here are pure over a CategoryIndex snapshot.
"""

from typing import Iterable, Optional
import structlog

from models.catalog import Category
from models.imports import (
    CategoryMatchType,
    ParsedProduct,
    ProposedCategory,
    ResolvedCategory,
)
from utils.text_utils import slugify

logger = structlog.get_logger(__name__)

ROOT_KEY = "root"
PATH_SEPARATOR = " > "


# ===================
# PATH HELPERS
# ===================

def parse_category_segments(raw_value: Optional[str]) -> list[str]:
    """Split a ">"-delimited path into trimmed, non-empty segments."""
    if not raw_value:
        return []
    return [segment.strip() for segment in raw_value.split(">") if segment.strip()]


def build_category_path_key(segments: Iterable[str]) -> str:
    """Normalized identity of a path from the root: slugified segments joined by ">"."""
    return ">".join(slugify(segment) for segment in segments)


def format_category_path(path: Iterable[str]) -> str:
    return PATH_SEPARATOR.join(path)


# ===================
# INDEX
# ===================

class CategoryIndex:
    """
    Lookup snapshot over a flat list of categories.

    Categories are stored by id; ancestry is computed by following
    parent_id with a visited-set guard, so a malformed (cyclic) tree ends
    the walk instead of looping. Build a new index (extended()) rather
    than mutating one that other code may be reading.
    """

    def __init__(self, categories: Iterable[Category] = ()):
        self._categories: list[Category] = list(categories)
        self._by_id: dict[str, Category] = {}
        self._by_slug: dict[str, Category] = {}
        self._by_name: dict[str, Category] = {}
        self._by_parent: dict[str, dict[str, Category]] = {}

        for category in self._categories:
            self._by_id[category.id] = category
            if category.slug:
                self._by_slug[category.slug.strip().lower()] = category
            self._by_name[category.name.strip().lower()] = category

            bucket = self._by_parent.setdefault(category.parent_id or ROOT_KEY, {})
            bucket[f"name:{category.name.strip().lower()}"] = category
            if category.slug:
                bucket[f"slug:{category.slug.strip().lower()}"] = category

    def __len__(self) -> int:
        return len(self._categories)

    def __contains__(self, category_id: object) -> bool:
        return category_id in self._by_id

    @property
    def categories(self) -> list[Category]:
        return list(self._categories)

    def get(self, category_id: Optional[str]) -> Optional[Category]:
        if not category_id:
            return None
        return self._by_id.get(category_id)

    def extended(self, categories: Iterable[Category]) -> "CategoryIndex":
        """New index with extra categories; ids already present are skipped."""
        extra = [c for c in categories if c.id not in self._by_id]
        return CategoryIndex(self._categories + extra)

    def find_by_slug(self, slug: str) -> Optional[Category]:
        return self._by_slug.get(slug.strip().lower()) if slug else None

    def find_by_name(self, name: str) -> Optional[Category]:
        return self._by_name.get(name.strip().lower()) if name else None

    def find_child(self, parent_id: Optional[str], segment: str) -> Optional[Category]:
        """Match a segment among the children of parent_id: name first, then slug."""
        bucket = self._by_parent.get(parent_id or ROOT_KEY)
        if not bucket:
            return None

        name_match = bucket.get(f"name:{segment.strip().lower()}")
        if name_match:
            return name_match

        slug_candidate = slugify(segment)
        if slug_candidate:
            return bucket.get(f"slug:{slug_candidate}")
        return None

    def _walk_up(self, category_id: str) -> list[Category]:
        chain: list[Category] = []
        visited: set[str] = set()
        current: Optional[str] = category_id

        while current:
            if current in visited:
                break
            visited.add(current)
            category = self._by_id.get(current)
            if category is None:
                break
            chain.append(category)
            current = category.parent_id

        chain.reverse()
        return chain

    def path_of(self, category_id: str) -> list[str]:
        """Names from the root down to the category."""
        return [c.name for c in self._walk_up(category_id)]

    def ancestry_of(self, category_id: str) -> list[str]:
        """Ids from the root down to the category (inclusive)."""
        return [c.id for c in self._walk_up(category_id)]

    def walk(self, segments: list[str]) -> tuple[Optional[str], list[str], int]:
        """
        Descend the tree greedily along segments.

        Returns:
            (deepest matched id or None, matched names, matched segment count)
        """
        parent_id: Optional[str] = None
        matched_path: list[str] = []

        for position, segment in enumerate(segments):
            existing = self.find_child(parent_id, segment)
            if existing is None:
                return parent_id, matched_path, position
            parent_id = existing.id
            matched_path.append(existing.name)

        return parent_id, matched_path, len(segments)


# ===================
# RESOLUTION
# ===================

def _resolved(category: Category, index: CategoryIndex, match_type: CategoryMatchType) -> ResolvedCategory:
    path = index.path_of(category.id)
    return ResolvedCategory(
        id=category.id,
        slug=category.slug,
        path=path,
        label=format_category_path(path) if path else category.name,
        ancestry=index.ancestry_of(category.id),
        match_type=match_type,
    )


def resolve_category(raw_value: Optional[str], index: CategoryIndex) -> Optional[ResolvedCategory]:
    """
    Match a whole category string against stored categories.

    Flat match: the slug of the entire trimmed string against stored
    slugs, then the lowercased string against stored names.

    Returns:
        ResolvedCategory, or None when nothing matches
    """
    if not raw_value or not raw_value.strip():
        return None

    trimmed = raw_value.strip()

    slug_value = slugify(trimmed)
    if slug_value:
        slug_match = index.find_by_slug(slug_value)
        if slug_match:
            return _resolved(slug_match, index, CategoryMatchType.SLUG)

    name_match = index.find_by_name(trimmed)
    if name_match:
        return _resolved(name_match, index, CategoryMatchType.NAME)

    return None


def resolve_category_path(raw_value: Optional[str], index: CategoryIndex) -> Optional[ResolvedCategory]:
    """
    Match a ">"-delimited path segment by segment from the root.

    Resolves only when every segment matches a stored node.
    """
    segments = parse_category_segments(raw_value)
    if not segments:
        return None

    leaf_id, _, matched = index.walk(segments)
    if matched < len(segments) or leaf_id is None:
        return None

    return _resolved(index.get(leaf_id), index, CategoryMatchType.NAME)


def resolve_category_by_id(
    category_id: Optional[str],
    index: CategoryIndex,
    match_type: Optional[CategoryMatchType] = None,
) -> Optional[ResolvedCategory]:
    category = index.get(category_id)
    if category is None:
        return None
    return _resolved(category, index, match_type or CategoryMatchType.NAME)


def apply_category_resolution(products: list[ParsedProduct], index: CategoryIndex) -> bool:
    """
    Annotate products with their flat category match.

    Idempotent: a product already carrying the same match is untouched and
    a product whose match disappeared is cleared.

    Returns:
        True if any product changed
    """
    mutated = False

    for product in products:
        resolved = resolve_category(product.category, index)

        if resolved:
            already_matched = (
                product.category_id == resolved.id
                and product.category_path_label == resolved.label
                and product.category_match_type == resolved.match_type
            )
            if not already_matched:
                product.apply_resolved_category(resolved)
                mutated = True
            continue

        if (
            product.category_id
            or product.category_path
            or product.category_path_label
            or product.category_ancestors
            or product.category_match_type
        ):
            product.clear_resolved_category()
            mutated = True

    return mutated


# ===================
# PROPOSALS
# ===================

def propose_missing_categories(
    products: list[ParsedProduct],
    index: CategoryIndex,
) -> list[ProposedCategory]:
    """
    Propose the categories a set of products needs but the tree lacks.

    Each product path is walked from the root; on the first miss, the
    missed segment and every segment after it become a chain of proposals.
    Proposals are shared across products by path key and sorted by depth,
    then label, so parents always precede their children.

    Args:
        products: Draft products (resolved ones are skipped)
        index: Snapshot of stored categories

    Returns:
        Proposed categories in creation order
    """
    proposals: dict[str, ProposedCategory] = {}

    for product in products:
        if not product.category or product.category_id:
            continue

        segments = parse_category_segments(product.category)
        if not segments:
            continue

        parent_id: Optional[str] = None
        parent_path: list[str] = []
        missed = False

        for segment in segments:
            if not missed:
                existing = index.find_child(parent_id, segment)
                if existing:
                    parent_id = existing.id
                    parent_path = parent_path + [existing.name]
                    continue
                # First miss hangs off the last stored match (or the root)
                missed = True
                parent_key = None
            else:
                parent_key = build_category_path_key(parent_path)

            next_path = parent_path + [segment]
            key = build_category_path_key(next_path)

            if key not in proposals:
                proposals[key] = ProposedCategory(
                    key=key,
                    path=next_path,
                    label=format_category_path(next_path),
                    name=segment.strip(),
                    slug=slugify(segment),
                    parent_existing_id=parent_id,
                    parent_key=parent_key,
                    parent_path=list(parent_path),
                    depth=len(next_path),
                )

            parent_id = None
            parent_path = next_path

    ordered = sorted(proposals.values(), key=lambda p: (p.depth, p.label))

    logger.debug(
        "categories_proposed",
        products=len(products),
        proposals=len(ordered)
    )

    return ordered


def missing_path_keys(raw_value: Optional[str], index: CategoryIndex) -> list[str]:
    """
    Keys of the proposals a category path would need.

    Empty when the path is blank or fully matches stored categories.
    """
    segments = parse_category_segments(raw_value)
    if not segments:
        return []

    _, matched_path, matched = index.walk(segments)
    keys: list[str] = []
    path = list(matched_path)
    for segment in segments[matched:]:
        path.append(segment)
        keys.append(build_category_path_key(path))
    return keys
