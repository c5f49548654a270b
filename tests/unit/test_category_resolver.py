"""
Unit tests for category resolution and proposals.

Run: pytest tests/unit/test_category_resolver.py -v
"""

from models.imports import CategoryMatchType
from services.category_resolver import (
    CategoryIndex,
    apply_category_resolution,
    build_category_path_key,
    missing_path_keys,
    parse_category_segments,
    propose_missing_categories,
    resolve_category,
    resolve_category_by_id,
    resolve_category_path,
)
from tests.factories import CategoryFactory, ParsedProductFactory


def hardware_tree() -> CategoryIndex:
    hardware = CategoryFactory.create("Hardware", id="cat-hardware")
    handles = CategoryFactory.create("Handles", id="cat-handles", parent_id="cat-hardware")
    knobs = CategoryFactory.create("Knobs", id="cat-knobs")
    return CategoryIndex([hardware, handles, knobs])


class TestPathHelpers:
    """Tests for segment parsing and path keys"""

    def test_segments_trimmed_and_empty_dropped(self):
        assert parse_category_segments(" Hardware >  > Handles ") == ["Hardware", "Handles"]

    def test_segments_of_blank(self):
        assert parse_category_segments("") == []
        assert parse_category_segments(None) == []

    def test_path_key_slugifies_segments(self):
        assert build_category_path_key(["Hardware", "Cabinet Handles"]) == "hardware>cabinet-handles"


class TestCategoryIndex:
    """Tests for CategoryIndex lookups and ancestry"""

    def test_path_and_ancestry(self):
        index = hardware_tree()

        assert index.path_of("cat-handles") == ["Hardware", "Handles"]
        assert index.ancestry_of("cat-handles") == ["cat-hardware", "cat-handles"]

    def test_cycle_ends_walk(self):
        a = CategoryFactory.create("A", id="a", parent_id="b")
        b = CategoryFactory.create("B", id="b", parent_id="a")
        index = CategoryIndex([a, b])

        assert index.path_of("a") == ["B", "A"]

    def test_self_parent_ends_walk(self):
        index = CategoryIndex([CategoryFactory.create("Loop", id="x", parent_id="x")])

        assert index.ancestry_of("x") == ["x"]

    def test_find_child_by_name_then_slug(self):
        index = CategoryIndex([
            CategoryFactory.create("Cabinet Handles", id="c1", slug="cab-handles"),
        ])

        assert index.find_child(None, "cabinet handles").id == "c1"
        assert index.find_child(None, "Cab Handles").id == "c1"
        assert index.find_child("other-parent", "Cabinet Handles") is None

    def test_extended_skips_known_ids(self):
        index = hardware_tree()

        extended = index.extended([
            CategoryFactory.create("Hardware copy", id="cat-hardware"),
            CategoryFactory.create("Hinges", id="cat-hinges"),
        ])

        assert len(index) == 3
        assert len(extended) == 4
        assert extended.get("cat-hardware").name == "Hardware"


class TestResolveCategory:
    """Tests for flat and hierarchical resolution"""

    def test_slug_match(self):
        resolved = resolve_category("  KNOBS ", hardware_tree())

        assert resolved.id == "cat-knobs"
        assert resolved.match_type == CategoryMatchType.SLUG

    def test_name_match_when_slug_differs(self):
        index = CategoryIndex([CategoryFactory.create("Pulls & Knobs", id="pk", slug="pulls")])

        resolved = resolve_category("pulls & knobs", index)

        assert resolved.id == "pk"
        assert resolved.match_type == CategoryMatchType.NAME

    def test_child_label_is_full_path(self):
        resolved = resolve_category("Handles", hardware_tree())

        assert resolved.label == "Hardware > Handles"
        assert resolved.ancestry == ["cat-hardware", "cat-handles"]

    def test_blank_or_unknown(self):
        index = hardware_tree()

        assert resolve_category("", index) is None
        assert resolve_category("Hinges", index) is None

    def test_path_resolution_requires_every_segment(self):
        index = hardware_tree()

        assert resolve_category_path("Hardware > Handles", index).id == "cat-handles"
        assert resolve_category_path("Hardware > Hinges", index) is None

    def test_by_id(self):
        index = hardware_tree()

        assert resolve_category_by_id("cat-handles", index).path == ["Hardware", "Handles"]
        assert resolve_category_by_id("missing", index) is None


class TestApplyCategoryResolution:
    """Tests for apply_category_resolution()"""

    def test_annotates_and_converges(self):
        product = ParsedProductFactory.create(category="Knobs")
        index = hardware_tree()

        assert apply_category_resolution([product], index) is True
        assert product.category_id == "cat-knobs"
        assert apply_category_resolution([product], index) is False

    def test_lost_match_is_cleared(self):
        product = ParsedProductFactory.create(category="Knobs")
        apply_category_resolution([product], hardware_tree())

        changed = apply_category_resolution([product], CategoryIndex())

        assert changed is True
        assert product.category_id is None
        assert product.category_path_label is None


class TestProposeMissingCategories:
    """Tests for propose_missing_categories()"""

    def test_missing_child_under_existing_root(self):
        index = CategoryIndex([CategoryFactory.create("Hardware", id="cat-hardware")])
        product = ParsedProductFactory.create(category="Hardware > Handles")

        proposals = propose_missing_categories([product], index)

        assert len(proposals) == 1
        proposal = proposals[0]
        assert proposal.key == "hardware>handles"
        assert proposal.parent_existing_id == "cat-hardware"
        assert proposal.parent_key is None
        assert proposal.depth == 2
        assert proposal.label == "Hardware > Handles"

    def test_chain_of_new_categories(self):
        product = ParsedProductFactory.create(category="Bath > Taps > Mixers")

        proposals = propose_missing_categories([product], CategoryIndex())

        assert [p.key for p in proposals] == ["bath", "bath>taps", "bath>taps>mixers"]
        assert proposals[0].parent_existing_id is None
        assert proposals[0].parent_key is None
        assert proposals[1].parent_key == "bath"
        assert proposals[2].parent_key == "bath>taps"

    def test_shared_paths_collapse(self):
        products = [
            ParsedProductFactory.create(category="Bath > Taps"),
            ParsedProductFactory.create(category="bath > taps"),
            ParsedProductFactory.create(category="Bath > Showers"),
        ]

        proposals = propose_missing_categories(products, CategoryIndex())

        assert [p.key for p in proposals] == ["bath", "bath>showers", "bath>taps"]

    def test_fully_matching_path_proposes_nothing(self):
        product = ParsedProductFactory.create(category="Hardware > Handles")

        assert propose_missing_categories([product], hardware_tree()) == []

    def test_idempotent(self):
        products = [
            ParsedProductFactory.create(category="Hardware > Hinges"),
            ParsedProductFactory.create(category="Lighting"),
        ]
        index = hardware_tree()

        first = propose_missing_categories(products, index)
        second = propose_missing_categories(products, index)

        assert [(p.key, p.label) for p in first] == [(p.key, p.label) for p in second]

    def test_resolved_and_blank_products_skipped(self):
        resolved = ParsedProductFactory.create(category="Knobs")
        resolved.category_id = "cat-knobs"
        blank = ParsedProductFactory.create(category="  ")

        assert propose_missing_categories([resolved, blank], hardware_tree()) == []


class TestMissingPathKeys:
    """Tests for missing_path_keys()"""

    def test_keys_for_unmatched_tail(self):
        assert missing_path_keys("Hardware > Hinges > Brass", hardware_tree()) == [
            "hardware>hinges",
            "hardware>hinges>brass",
        ]

    def test_fully_matched_or_blank(self):
        index = hardware_tree()

        assert missing_path_keys("Hardware > Handles", index) == []
        assert missing_path_keys("", index) == []
