"""Cursor-based walk over the product listing endpoint."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence, Union

from .api import TakealotApi
from .cancel import CancellationToken, check
from .types import Category, Department, ListingRecord, Page

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class CursorPager:
    def __init__(self, api: TakealotApi) -> None:
        self.api = api

    def fetch_page(
        self,
        department: Department,
        category: Category,
        sort_token: str,
        cursor: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> Page:
        check(token)
        return self.api.fetch_page(department, category, sort_token, cursor, token=token)

    def fetch_all(
        self,
        department: Department,
        categories: Union[Category, Sequence[Category]],
        sort_token: str,
        limit: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        token: Optional[CancellationToken] = None,
    ) -> List[ListingRecord]:
        """Accumulate records across pages (and categories, in order).

        Each category's cursor chain is exhausted before the next category
        starts. Once ``limit`` records are collected the walk stops and the
        last page is truncated to the limit.
        """
        if isinstance(categories, Category):
            categories = [categories]

        records: List[ListingRecord] = []
        for category in categories:
            cursor: Optional[str] = None
            pages = 0
            while True:
                page = self.fetch_page(department, category, sort_token, cursor, token=token)
                pages += 1
                records.extend(page.records)
                if limit is not None and len(records) >= limit:
                    del records[limit:]
                if on_progress is not None:
                    on_progress(len(records))

                if limit is not None and len(records) >= limit:
                    logger.info(
                        "Reached desired amount %d in %s after %d pages",
                        limit, category.slug, pages,
                    )
                    return records
                if not page.next_cursor:
                    logger.info(
                        "Fetched %d products for %s in %d pages",
                        len(records), category.slug, pages,
                    )
                    break
                cursor = page.next_cursor
        return records
