"""Client for the Takealot REST API.

Only the four endpoints the exporter needs are wrapped: departments, the
category facet tree, the paginated product listing and product details.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import requests

from .cancel import CancellationToken
from .config import API_ENDPOINT, API_PATHS, REQUEST_TIMEOUT
from .errors import ParseError, UpstreamFetchError
from .extract import map_categories, map_departments, map_listing_page
from .fetch import create_session, fetch_json
from .types import Category, CategoryQuery, Department, Page

logger = logging.getLogger(__name__)


class TakealotApi:
    def __init__(
        self,
        version: str,
        session: Optional[requests.Session] = None,
        endpoint: str = API_ENDPOINT,
        timeout_seconds: float = REQUEST_TIMEOUT,
    ) -> None:
        self.version = version
        self.session = session or create_session()
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        self._departments: Optional[List[Department]] = None

    def _url(self, name: str, suffix: str = "") -> str:
        return f"{self.endpoint}{self.version}{API_PATHS[name]}{suffix}"

    def _get(self, url: str, params=None, token: Optional[CancellationToken] = None) -> Any:
        return fetch_json(
            url,
            session=self.session,
            params=params,
            token=token,
            timeout_seconds=self.timeout_seconds,
        )

    def list_departments(self, token: Optional[CancellationToken] = None) -> List[Department]:
        """Departments are fetched once per client and memoized."""
        if self._departments is None:
            payload = self._get(
                self._url("departments"), params={"display_only": "True"}, token=token
            )
            self._departments = map_departments(payload)
            logger.info("Loaded %d departments", len(self._departments))
        return list(self._departments)

    def list_categories(
        self,
        department: Department,
        parent: Optional[Category] = None,
        token: Optional[CancellationToken] = None,
    ) -> List[Category]:
        params = {"department_slug": department.slug}
        if parent is not None:
            params["category_slug"] = parent.slug
        payload = self._get(self._url("categories"), params=params, token=token)
        categories = map_categories(payload, parent=parent)
        if categories is None:
            raise UpstreamFetchError(
                f"No category tree in facets for {department.slug}"
                + (f"/{parent.slug}" if parent else "")
            )
        return categories

    def get_department_by_name(
        self, name: str, token: Optional[CancellationToken] = None
    ) -> Department:
        needle = name.strip().lower()
        for department in self.list_departments(token=token):
            if needle in department.name.lower():
                return department
        raise ParseError(f"Can't find department by name: {name}")

    def get_category_by_name(
        self,
        department: Department,
        name: str,
        parent: Optional[Category] = None,
        token: Optional[CancellationToken] = None,
    ) -> Category:
        needle = name.strip().lower()
        for category in self.list_categories(department, parent, token=token):
            if needle in category.name.lower():
                return category
        raise ParseError(f"Can't find category by name: {name}")

    def fetch_page(
        self,
        department: Department,
        category: Category,
        sort_token: str,
        cursor: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> Page:
        params = {
            "department_slug": department.slug,
            "category_slug": category.slug,
            "sort": sort_token.replace("+", " "),
        }
        if cursor:
            params["after"] = cursor
        payload = self._get(self._url("views"), params=params, token=token)
        try:
            records, next_cursor = map_listing_page(payload, category_label=category.name)
        except (KeyError, IndexError, TypeError) as error:
            raise UpstreamFetchError(
                f"Malformed product listing for {category.slug}: {error!r}"
            ) from error
        return Page(records=records, next_cursor=next_cursor)

    def get_product(self, product_id: str, token: Optional[CancellationToken] = None) -> Any:
        """Raw product-details payload; mapping is left to the enricher."""
        return self._get(self._url("product", product_id), token=token)


def resolve_path(
    api: TakealotApi,
    path: str,
    exclude: Optional[List[str]] = None,
    token: Optional[CancellationToken] = None,
) -> CategoryQuery:
    """Resolve ``"Department:Category[:SubCategory]"`` into a query.

    When the leaf category has children and exclusions are given, the
    children are split into included and excluded categories; otherwise
    the leaf itself is queried.
    """
    parts = [part.strip() for part in path.split(":")]
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise ParseError(f"Failed to parse category path: {path!r}")
    if len(parts) > 3:
        raise ParseError(f"Category path is nested too deep: {path!r}")

    department = api.get_department_by_name(parts[0], token=token)
    chain: List[Category] = []
    parent: Optional[Category] = None
    for name in parts[1:]:
        if not name:
            raise ParseError(f"Empty category name in path: {path!r}")
        parent = api.get_category_by_name(department, name, parent, token=token)
        chain.append(parent)

    leaf = chain[-1]
    exclusions = [e.lower() for e in (exclude or []) if e.strip()]
    if not exclusions:
        return CategoryQuery(department=department, chain=chain, categories=[leaf])

    children = api.list_categories(department, leaf, token=token)
    if not children:
        return CategoryQuery(department=department, chain=chain, categories=[leaf])

    included: List[Category] = []
    excluded: List[Category] = []
    for child in children:
        child_name = child.name.lower()
        if any(child_name in exclusion for exclusion in exclusions):
            excluded.append(child)
        else:
            included.append(child)
    logger.info(
        "Resolved %s: %d categories, %d excluded", path, len(included), len(excluded)
    )
    return CategoryQuery(
        department=department, chain=chain, categories=included, excluded=excluded
    )
