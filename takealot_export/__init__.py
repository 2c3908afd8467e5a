"""
Takealot product exporter package.

Exports:
- RequestCoordinator: runs one query at a time (page, cache, sort, enrich, export)
- TakealotApi / resolve_path: upstream client and "Dept:Cat:SubCat" resolution
- classify / sort_local: sort handling
- export_to_excel: high-level function to run the whole flow and save to Excel
"""

from .api import TakealotApi, resolve_path
from .cli import export_to_excel
from .coordinator import QueryResult, QueryState, RequestCoordinator
from .sorting import SortSpec, classify, sort_local
from .types import Category, DetailRow, Department, ListingRecord

__all__ = [
    "Category",
    "Department",
    "DetailRow",
    "ListingRecord",
    "QueryResult",
    "QueryState",
    "RequestCoordinator",
    "SortSpec",
    "TakealotApi",
    "classify",
    "export_to_excel",
    "resolve_path",
    "sort_local",
]
