"""Mapping of upstream payloads into records and rows."""

import pytest

from conftest import make_record, raw_detail, raw_view
from takealot_export.extract import (
    clean_label,
    map_categories,
    map_detail_row,
    map_listing_page,
    map_listing_record,
    row_from_listing,
)
from takealot_export.types import Category


class TestMapListingRecord:
    def test_fields(self):
        record = map_listing_record(raw_view("PLID42", title="Garden Hose", price=199), "Garden")

        assert record.id == "PLID42"
        assert record.title == "Garden Hose"
        assert record.url == "https://www.takealot.com/garden-hose/PLID42"
        assert record.price == 199.0
        assert record.rating == 4.5
        assert record.review_count == 12
        assert record.image_url == "https://media.takealot.com/covers/zoom/1.jpg"
        assert record.category_label == "Garden"
        assert record.brand is None

    def test_missing_gallery_gives_empty_image(self):
        raw = raw_view("PLID1")
        raw["product_views"]["gallery"]["images"] = []
        assert map_listing_record(raw).image_url == ""

    def test_malformed_raises(self):
        with pytest.raises(KeyError):
            map_listing_record({"product_views": {}})

    def test_page_cursor(self):
        payload = {
            "sections": {
                "products": {
                    "results": [raw_view("A"), raw_view("B")],
                    "paging": {"next_is_after": "cursor-2", "previous_is_before": ""},
                }
            }
        }
        records, cursor = map_listing_page(payload, "Garden")
        assert [r.id for r in records] == ["A", "B"]
        assert cursor == "cursor-2"


class TestMapDetailRow:
    def test_sku_prefers_sku_over_productline(self):
        row = map_detail_row(raw_detail(sku=555, productline_sku=777))
        assert row.sku == "555"

    def test_sku_falls_back_to_productline(self):
        row = map_detail_row(raw_detail(sku=None, productline_sku=777))
        assert row.sku == "777"

    def test_sku_empty_when_missing(self):
        row = map_detail_row(raw_detail(sku=None, productline_sku=None))
        assert row.sku == ""

    def test_fields_and_cleanup(self):
        row = map_detail_row(raw_detail(category_text="- Garden (123) Tools"))

        assert row.title == "Garden Hose 20m"
        assert row.brand == "Hozelock"
        assert row.price == 499
        assert row.rating == 4.2
        assert row.review_count == 31
        assert row.image_url == "https://media.takealot.com/covers/zoom/hose.jpg"
        assert row.category_label == "Garden  Tools"
        assert row.url == "https://www.takealot.com/garden-hose/PLID1"


class TestCleanLabel:
    def test_strips_annotations(self):
        assert clean_label("Pool (45)") == "Pool"

    def test_strips_leading_separator(self):
        assert clean_label("- Garden") == "Garden"

    def test_empty(self):
        assert clean_label(None) == ""


class TestMapCategories:
    def test_tree_facet_entries(self):
        parent = Category(department_slug="garden", slug="diy-1", name="DIY")
        payload = {
            "sections": {
                "facets": {
                    "results": [
                        {"type": "facet", "facet": {"type": "range_facet"}},
                        {
                            "type": "facet",
                            "facet": {
                                "type": "tree_facet",
                                "tree_facet": {
                                    "entries": [
                                        {
                                            "display_value": "Power Tools",
                                            "department_slug": "garden",
                                            "category_slug": "power-2",
                                        }
                                    ]
                                },
                            },
                        },
                    ]
                }
            }
        }
        categories = map_categories(payload, parent)
        assert categories == [
            Category(department_slug="garden", slug="power-2", name="Power Tools", parent_slug="diy-1")
        ]

    def test_no_tree_facet(self):
        assert map_categories({"sections": {"facets": {"results": []}}}) is None


class TestRowFromListing:
    def test_mirrors_record(self):
        record = make_record("PLID9", brand=None, price=None)
        row = row_from_listing(record)

        assert row.sku == "PLID9"
        assert row.title == record.title
        assert row.brand == ""
        assert row.price == 0
        assert row.url == record.url
