"""Per-query orchestration: page, cache, sort, enrich, export.

The coordinator owns exactly one active cancellation token. Starting a new
query cancels the previous one; a cancelled query ends quietly and its
partial results are never published.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional

from .api import TakealotApi, resolve_path
from .cache import CategoryCache, cache_key
from .cancel import CancellationToken
from .config import DEFAULT_AMOUNT, DEFAULT_SORT, Settings
from .enrich import DetailEnricher
from .errors import ParseError, QueryCancelled, UpstreamFetchError
from .excel_writer import write
from .fetch import create_session
from .images import ExportImageLoader, ImageCache, ImageFetcher, PreviewLoader
from .pager import CursorPager
from .sorting import SortSpec, classify, sort_local
from .storage import BlobStore
from .types import CacheEntry, CategoryQuery, DetailRow, ListingRecord

logger = logging.getLogger(__name__)

IDLE = "idle"
RUNNING = "running"
DONE = "done"
FAILED = "failed"
CANCELLED = "cancelled"

PHASE_LISTING = "listing"
PHASE_DETAILS = "details"


@dataclass
class QueryState:
    """Snapshot of the coordinator's progress, safe to poll from a UI."""

    status: str = IDLE
    phase: str = ""
    loaded: int = 0
    total: int = 0
    rows: List[DetailRow] = field(default_factory=list)
    error: str = ""
    query_id: int = 0


@dataclass
class QueryResult:
    status: str
    rows: List[DetailRow] = field(default_factory=list)
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.status == DONE


class RequestCoordinator:
    def __init__(
        self,
        api: TakealotApi,
        cache: CategoryCache,
        image_cache: Optional[ImageCache] = None,
        preview_loader: Optional[PreviewLoader] = None,
        export_loader: Optional[ExportImageLoader] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.api = api
        self.cache = cache
        self.pager = CursorPager(api)
        self.enricher = DetailEnricher(api)
        self.image_cache = image_cache
        self.preview_loader = preview_loader
        self.export_loader = export_loader
        self.clock = clock or cache.clock
        self._lock = threading.Lock()
        self._token: Optional[CancellationToken] = None
        self._ids = itertools.count(1)
        self._state = QueryState()

    @classmethod
    def from_settings(
        cls, settings: Settings, store: Optional[BlobStore] = None
    ) -> "RequestCoordinator":
        api = TakealotApi(
            settings.api_version, session=create_session(proxy_url=settings.proxy_url)
        )
        cache = CategoryCache(store, settings.cache_dir_path, settings.cache_ttl_ms)
        fetcher = ImageFetcher(proxy_url=settings.proxy_url)
        image_cache = ImageCache()
        preview_loader = PreviewLoader(fetcher, image_cache)
        preview_loader.start()
        return cls(
            api,
            cache,
            image_cache=image_cache,
            preview_loader=preview_loader,
            export_loader=ExportImageLoader(fetcher),
        )

    def close(self) -> None:
        self.cancel()
        if self.preview_loader is not None:
            self.preview_loader.stop(timeout=5)
        self.cache.flush()
        self.cache.close()

    @property
    def state(self) -> QueryState:
        with self._lock:
            return replace(self._state, rows=list(self._state.rows))

    def resolve(self, path: str, exclude: Optional[List[str]] = None) -> CategoryQuery:
        return resolve_path(self.api, path, exclude)

    def cancel(self) -> None:
        with self._lock:
            if self._token is not None:
                self._token.cancel()
                self._token = None
                self._state.status = CANCELLED

    def _begin(self) -> tuple[int, CancellationToken]:
        with self._lock:
            if self._token is not None:
                logger.info("Superseding query %s", self._token.label)
                self._token.cancel()
            query_id = next(self._ids)
            token = CancellationToken(label=str(query_id))
            self._token = token
            self._state = QueryState(status=RUNNING, phase=PHASE_LISTING, query_id=query_id)
            return query_id, token

    def _is_current(self, token: CancellationToken) -> bool:
        return self._token is token and not token.cancelled

    def _update(self, token: CancellationToken, **changes) -> None:
        with self._lock:
            if self._is_current(token):
                for name, value in changes.items():
                    setattr(self._state, name, value)

    def _finish(self, token: CancellationToken, **changes) -> None:
        with self._lock:
            if self._is_current(token):
                for name, value in changes.items():
                    setattr(self._state, name, value)
                self._token = None

    def run_query(
        self,
        query: CategoryQuery,
        amount: int = DEFAULT_AMOUNT,
        sort: str = DEFAULT_SORT,
    ) -> QueryResult:
        """Fetch, sort and enrich ``amount`` products for ``query``.

        Parse errors are raised before any network call. Upstream failures
        are reported in the result (and the polled state) with the rows
        cleared; a superseded query returns a ``cancelled`` result.
        """
        if amount <= 0:
            raise ParseError(f"Amount must be positive, got {amount}")
        if not query.categories:
            raise ParseError("Every category of the query is excluded")
        spec = classify(sort)

        query_id, token = self._begin()
        logger.info(
            "Query %d: %s amount=%d sort=%s",
            query_id, cache_key(query.categories), amount, sort,
        )
        try:
            records = self._collect(query, spec, amount, token)
            self._update(token, phase=PHASE_DETAILS, loaded=0, total=len(records))
            rows = self.enricher.enrich_all(
                records,
                token=token,
                on_progress=lambda loaded, total: self._update(token, loaded=loaded, total=total),
            )
            token.raise_if_cancelled()
        except QueryCancelled:
            logger.info("Query %d abandoned", query_id)
            return QueryResult(status=CANCELLED)
        except UpstreamFetchError as error:
            message = f"Failed to load products: {error}"
            logger.error("Query %d failed: %s", query_id, error)
            self._finish(token, status=FAILED, rows=[], error=message)
            return QueryResult(status=FAILED, error=message)
        except Exception as error:
            logger.exception("Query %d failed unexpectedly", query_id)
            self._finish(token, status=FAILED, rows=[], error=f"Failed to load products: {error}")
            raise

        with self._lock:
            if not self._is_current(token):
                logger.info("Query %d finished after being superseded; discarding", query_id)
                return QueryResult(status=CANCELLED)
        self._finish(token, status=DONE, rows=rows, loaded=len(rows), total=len(rows))
        if self.preview_loader is not None:
            self.preview_loader.request(r.image_url for r in rows)
        logger.info("Query %d done: %d rows", query_id, len(rows))
        return QueryResult(status=DONE, rows=rows)

    def _collect(
        self,
        query: CategoryQuery,
        spec: SortSpec,
        amount: int,
        token: CancellationToken,
    ) -> List[ListingRecord]:
        def progress(loaded: int) -> None:
            self._update(token, loaded=loaded)

        if not spec.is_local:
            return self.pager.fetch_all(
                query.department,
                query.categories,
                spec.token,
                limit=amount,
                on_progress=progress,
                token=token,
            )

        key = cache_key(query.categories)
        entry = self.cache.get_valid(key)
        if entry is not None:
            logger.info("Using cached listing for %s (%d records)", key, len(entry.records))
            records = entry.records
        else:
            records = self.pager.fetch_all(
                query.department,
                query.categories,
                spec.token,
                on_progress=progress,
                token=token,
            )
            token.raise_if_cancelled()
            self.cache.put(key, CacheEntry(key=key, records=records, created_at=self.clock()))
        return sort_local(records, spec.field, spec.direction)[:amount]

    def resolve_image(
        self, url: str, token: Optional[CancellationToken] = None
    ) -> Optional[bytes]:
        if self.image_cache is not None:
            cached = self.image_cache.get(url)
            if cached:
                return cached
        if self.export_loader is None:
            return None
        return self.export_loader.load(url, token=token)

    def export(
        self,
        rows: List[DetailRow],
        token: Optional[CancellationToken] = None,
        template_path: Optional[str] = None,
    ) -> bytes:
        """Build the xlsx payload; preview loading is paused meanwhile."""
        if self.preview_loader is not None:
            self.preview_loader.pause()
        try:
            return write(
                rows,
                lambda url: self.resolve_image(url, token),
                template_path=template_path,
            )
        finally:
            if self.preview_loader is not None:
                self.preview_loader.resume()
