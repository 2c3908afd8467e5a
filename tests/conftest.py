"""Shared fixtures: sample payloads and an in-memory stand-in for the API."""

from __future__ import annotations

import io
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from PIL import Image

from takealot_export.cancel import check
from takealot_export.errors import UpstreamFetchError
from takealot_export.types import Category, Department, ListingRecord, Page


def raw_view(product_id: str, title: str = "Item", price: float = 100.0, brand=None) -> dict:
    return {
        "type": "product_views",
        "product_views": {
            "core": {
                "title": title,
                "slug": title.lower().replace(" ", "-"),
                "brand": brand,
                "star_rating": 4.5,
                "reviews": 12,
            },
            "gallery": {"images": ["https://media.takealot.com/covers/{size}/1.jpg"]},
            "enhanced_ecommerce_impression": {
                "ecommerce": {"impressions": [{"id": product_id, "price": price}]}
            },
        },
    }


def raw_detail(sku=1234, productline_sku=None, category_text="Garden (12)") -> dict:
    return {
        "title": " Garden Hose 20m ",
        "desktop_href": "https://www.takealot.com/garden-hose/PLID1",
        "core": {"brand": "Hozelock", "star_rating": 4.2, "reviews": 31},
        "data_layer": {"sku": sku, "productlineSku": productline_sku, "totalPrice": 499},
        "gallery": {"images": ["https://media.takealot.com/covers/{size}/hose.jpg"]},
        "product_information": {"categories": {"displayable_text": category_text}},
    }


def make_record(product_id: str, **overrides) -> ListingRecord:
    values = dict(
        id=product_id,
        title=f"Product {product_id}",
        url=f"https://www.takealot.com/product/{product_id}",
        price=100.0,
        rating=4.0,
        review_count=10,
        image_url=f"https://media.takealot.com/covers/zoom/{product_id}.jpg",
        category_label="Garden",
        brand="Acme",
    )
    values.update(overrides)
    return ListingRecord(**values)


def png_bytes(color=(255, 0, 0)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), color).save(buffer, format="PNG")
    return buffer.getvalue()


def mock_response(status_code: int = 200, json_data=None, content: bytes = b"", url: str = ""):
    response = MagicMock()
    response.status_code = status_code
    response.reason = "OK" if status_code == 200 else "Error"
    response.url = url
    response.content = content
    response.json.return_value = json_data
    return response


class FakeApi:
    """Serves pre-built pages per category slug and detail payloads per id."""

    def __init__(
        self,
        pages: Optional[Dict[str, List[List[ListingRecord]]]] = None,
        details: Optional[Dict[str, dict]] = None,
    ) -> None:
        self.pages = pages or {}
        self.details = details or {}
        self.page_calls: List[tuple] = []
        self.product_calls: List[str] = []
        self.before_page = None

    def fetch_page(self, department, category, sort_token, cursor=None, token=None) -> Page:
        check(token)
        self.page_calls.append((category.slug, sort_token, cursor))
        if self.before_page is not None:
            self.before_page(len(self.page_calls))
        chain = self.pages[category.slug]
        index = int(cursor) if cursor else 0
        next_cursor = str(index + 1) if index + 1 < len(chain) else ""
        return Page(records=list(chain[index]), next_cursor=next_cursor)

    def get_product(self, product_id, token=None):
        check(token)
        self.product_calls.append(product_id)
        if product_id not in self.details:
            raise UpstreamFetchError(f"HTTP 404 for {product_id}", status_code=404)
        return self.details[product_id]


@pytest.fixture
def department() -> Department:
    return Department(slug="garden-pool-and-patio", name="Garden, Pool & Patio")


@pytest.fixture
def category() -> Category:
    return Category(department_slug="garden-pool-and-patio", slug="garden-15", name="Garden")


@pytest.fixture
def other_category() -> Category:
    return Category(department_slug="garden-pool-and-patio", slug="pool-20", name="Pool")


def records(prefix: str, count: int) -> List[ListingRecord]:
    return [make_record(f"{prefix}{i}") for i in range(count)]
