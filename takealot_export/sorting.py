"""Sort classification and client-side sorting of listing records.

Sorts the listing endpoint understands natively are passed through as the
page ``sort`` token. ``Field:<name>+<order>`` sorts need the whole category
in hand, so those are paged with ``Relevance`` and sorted locally.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from .config import RELEVANCE_SORT
from .errors import ParseError
from .types import ListingRecord

DELEGATED = "delegated"
LOCAL = "local"

ASCENDING = "Ascending"
DESCENDING = "Descending"

SERVER_SORTS: Dict[str, str] = {
    "ReleaseDate+Descending": DESCENDING,
    "Rating+Descending": DESCENDING,
    "Price+Descending": DESCENDING,
    "Price+Ascending": ASCENDING,
    RELEVANCE_SORT: DESCENDING,
}

FIELD_PREFIX = "Field:"

FieldAccessor = Callable[[ListingRecord], Any]

FIELD_ACCESSORS: Dict[str, FieldAccessor] = {
    "id": lambda r: r.id,
    "title": lambda r: r.title,
    "brand": lambda r: r.brand,
    "price": lambda r: r.price,
    "rating": lambda r: r.rating,
    "reviews": lambda r: r.review_count,
    "category": lambda r: r.category_label,
}

FIELD_ALIASES: Dict[str, str] = {
    "reviewcount": "reviews",
    "review_count": "reviews",
    "name": "title",
}


@dataclass(frozen=True)
class SortSpec:
    mode: str
    token: str
    direction: str
    field: Optional[str] = None

    @property
    def is_local(self) -> bool:
        return self.mode == LOCAL


def normalize_field(name: str) -> str:
    key = name.strip().lower()
    key = FIELD_ALIASES.get(key, key)
    if key not in FIELD_ACCESSORS:
        known = ", ".join(sorted(FIELD_ACCESSORS))
        raise ParseError(f"Unknown sort field {name!r}; valid fields are {known}")
    return key


def classify(sort_string: str) -> SortSpec:
    value = (sort_string or "").strip()
    if value in SERVER_SORTS:
        return SortSpec(mode=DELEGATED, token=value, direction=SERVER_SORTS[value])

    if value.startswith(FIELD_PREFIX):
        field_part, sep, order = value[len(FIELD_PREFIX):].partition("+")
        if not sep or order not in (ASCENDING, DESCENDING):
            raise ParseError(
                f"Failed to parse sorting order from {sort_string!r}; "
                f"valid values are {ASCENDING} or {DESCENDING}"
            )
        if not field_part:
            raise ParseError(f"Missing sort field in {sort_string!r}")
        return SortSpec(
            mode=LOCAL,
            token=RELEVANCE_SORT,
            direction=order,
            field=normalize_field(field_part),
        )

    raise ParseError(f"Failed to parse sort type from {sort_string!r}")


def sort_local(
    records: Sequence[ListingRecord], field: str, direction: str = ASCENDING
) -> List[ListingRecord]:
    """Return ``records`` ordered by ``field``; None compares lowest."""
    accessor = FIELD_ACCESSORS[normalize_field(field)]

    def key(record: ListingRecord):
        value = accessor(record)
        return (value is not None, value if value is not None else 0)

    return sorted(records, key=key, reverse=direction == DESCENDING)
