from __future__ import annotations

import re
from typing import Any, List, Mapping, Optional

from .config import PRODUCT_URL_TEMPLATE
from .types import Category, DetailRow, Department, ListingRecord


# "(123)" style annotations anywhere, or a leading "- " separator
LABEL_CLEANUP_RE = re.compile(r"\([^()]+?\)|^-\s*")


def clean_label(text: Optional[str]) -> str:
    if not text:
        return ""
    return LABEL_CLEANUP_RE.sub("", text).strip()


def _image_url(images: Any) -> str:
    if not isinstance(images, list) or not images:
        return ""
    first = images[0]
    return str(first).replace("{size}", "zoom") if first else ""


def _number(value: Any, cast=float, default=None):
    if value is None or value == "":
        return default
    try:
        return cast(value)
    except (TypeError, ValueError):
        return default


def map_departments(payload: Mapping[str, Any]) -> List[Department]:
    return [
        Department(slug=d["slug"], name=d["name"])
        for d in payload.get("merchandised_departments", [])
        if d.get("slug") and d.get("name")
    ]


def map_categories(
    payload: Mapping[str, Any], parent: Optional[Category] = None
) -> Optional[List[Category]]:
    """Return the entries of the first ``tree_facet``, or None if there is none."""
    results = (((payload.get("sections") or {}).get("facets") or {}).get("results")) or []
    for result in results:
        facet = result.get("facet") or {}
        if facet.get("type") != "tree_facet":
            continue
        entries = (facet.get("tree_facet") or {}).get("entries") or []
        return [
            Category(
                department_slug=entry["department_slug"],
                slug=entry["category_slug"],
                name=entry["display_value"],
                parent_slug=parent.slug if parent else None,
            )
            for entry in entries
        ]
    return None


def map_listing_record(raw: Mapping[str, Any], category_label: str = "") -> ListingRecord:
    """Map one ``product_views`` search result. Raises KeyError/IndexError on malformed input."""
    view = raw["product_views"]
    core = view["core"]
    impression = view["enhanced_ecommerce_impression"]["ecommerce"]["impressions"][0]
    product_id = str(impression["id"])
    return ListingRecord(
        id=product_id,
        title=core.get("title") or "",
        brand=core.get("brand"),
        url=PRODUCT_URL_TEMPLATE.format(slug=core.get("slug", ""), id=product_id),
        price=_number(impression.get("price")),
        rating=_number(core.get("star_rating")),
        review_count=_number(core.get("reviews"), int),
        image_url=_image_url((view.get("gallery") or {}).get("images")),
        category_label=category_label,
    )


def map_listing_page(payload: Mapping[str, Any], category_label: str = "") -> tuple[List[ListingRecord], str]:
    products = payload["sections"]["products"]
    records = [map_listing_record(r, category_label) for r in products.get("results", [])]
    next_cursor = (products.get("paging") or {}).get("next_is_after") or ""
    return records, next_cursor


def map_detail_row(raw: Mapping[str, Any]) -> DetailRow:
    """Map a ``product-details`` payload. Raises KeyError/TypeError on malformed input."""
    core = raw.get("core") or {}
    data_layer = raw["data_layer"]

    sku = ""
    if data_layer.get("productlineSku"):
        sku = str(data_layer["productlineSku"])
    if data_layer.get("sku"):
        sku = str(data_layer["sku"])

    categories = (raw.get("product_information") or {}).get("categories") or {}
    return DetailRow(
        title=(raw.get("title") or "").strip(),
        brand=core.get("brand") or "",
        sku=sku,
        price=_number(data_layer.get("totalPrice"), default=0),
        rating=_number(core.get("star_rating"), default=0),
        review_count=_number(core.get("reviews"), int, default=0),
        image_url=_image_url((raw.get("gallery") or {}).get("images")),
        category_label=clean_label(categories.get("displayable_text")),
        url=raw.get("desktop_href") or "",
    )


def row_from_listing(record: ListingRecord) -> DetailRow:
    return DetailRow(
        title=record.title,
        brand=record.brand or "",
        sku=record.id,
        price=record.price if record.price is not None else 0,
        rating=record.rating if record.rating is not None else 0,
        review_count=record.review_count if record.review_count is not None else 0,
        image_url=record.image_url,
        category_label=record.category_label,
        url=record.url,
    )
