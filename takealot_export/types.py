from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class Department:
    slug: str
    name: str


@dataclass(frozen=True)
class Category:
    department_slug: str
    slug: str
    name: str
    parent_slug: Optional[str] = None


@dataclass
class ListingRecord:
    """Lightweight product view returned by the listing endpoint."""

    id: str
    title: str
    url: str
    price: Optional[float]
    rating: Optional[float]
    review_count: Optional[int]
    image_url: str = ""
    category_label: str = ""
    brand: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ListingRecord":
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            url=data.get("url") or "",
            price=data.get("price"),
            rating=data.get("rating"),
            review_count=data.get("review_count"),
            image_url=data.get("image_url") or "",
            category_label=data.get("category_label") or "",
            brand=data.get("brand"),
        )


@dataclass
class DetailRow:
    """Exportable product row. Every field is always populated."""

    title: str = ""
    brand: str = ""
    sku: str = ""
    price: float = 0
    rating: float = 0
    review_count: int = 0
    image_url: str = ""
    category_label: str = ""
    url: str = ""


@dataclass
class CacheEntry:
    key: str
    records: List[ListingRecord]
    created_at: float  # epoch milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "created_at": self.created_at,
            "records": [r.to_dict() for r in self.records],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        return cls(
            key=data["key"],
            created_at=float(data["created_at"]),
            records=[ListingRecord.from_dict(r) for r in data.get("records", [])],
        )


@dataclass
class Page:
    records: List[ListingRecord]
    next_cursor: str


@dataclass
class CategoryQuery:
    """Resolved ``Dept:Cat[:SubCat]`` path."""

    department: Department
    chain: List[Category]
    categories: List[Category]
    excluded: List[Category] = field(default_factory=list)
