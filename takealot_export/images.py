"""Image downloading for table previews and workbook export.

Two consumers share one fetcher:

* ``PreviewLoader`` fills a bounded ``ImageCache`` in the background, a small
  batch at a time, and silently drops failures.
* ``ExportImageLoader`` retries rate-limited and transient failures with
  exponential backoff before giving up on a single image.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict, deque
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Deque, Iterable, List, Optional
from urllib.parse import urlparse

import requests

from .cancel import CancellationToken, check
from .config import (
    EXPORT_IMAGE_ATTEMPTS,
    EXPORT_IMAGE_BACKOFF,
    IMAGE_TIMEOUT,
    PREVIEW_BATCH_DELAY,
    PREVIEW_BATCH_SIZE,
    PREVIEW_CACHE_MAX_ENTRIES,
)
from .errors import ImageFetchError
from .fetch import create_session, format_http_error

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS = 429


def validate_image_url(url: str) -> str:
    parsed = urlparse(url or "")
    if parsed.scheme != "https" or not parsed.netloc:
        raise ImageFetchError(f"Only https image URLs are allowed: {url!r}")
    return url


class ImageFetcher:
    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout_seconds: float = IMAGE_TIMEOUT,
        proxy_url: str = "",
    ) -> None:
        self.session = session or create_session(
            accept="image/avif,image/webp,image/*,*/*;q=0.8",
            proxy_url=proxy_url,
        )
        self.timeout_seconds = timeout_seconds

    def fetch(self, url: str) -> bytes:
        """Download image bytes.

        Raises ImageFetchError; ``retryable`` is set for HTTP 429 and for
        connection errors or timeouts.
        """
        url = validate_image_url(url)
        try:
            response = self.session.get(url, timeout=self.timeout_seconds)
        except (requests.ConnectionError, requests.Timeout) as error:
            raise ImageFetchError(f"Connection failed for {url}: {error}", retryable=True) from error
        except requests.RequestException as error:
            raise ImageFetchError(f"Request failed for {url}: {error}") from error

        if response.status_code == RATE_LIMIT_STATUS:
            raise ImageFetchError(format_http_error(response), retryable=True)
        if response.status_code != 200:
            raise ImageFetchError(format_http_error(response))
        if not response.content:
            raise ImageFetchError(f"Empty image body for {url}")
        return response.content


class ImageCache:
    """Bounded URL -> bytes mapping; the oldest insertion is evicted first."""

    def __init__(self, capacity: int = PREVIEW_CACHE_MAX_ENTRIES) -> None:
        self.capacity = capacity
        self._items: "OrderedDict[str, bytes]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, url: str) -> bool:
        with self._lock:
            return url in self._items

    def get(self, url: str) -> Optional[bytes]:
        with self._lock:
            return self._items.get(url)

    def put(self, url: str, data: bytes) -> None:
        with self._lock:
            self._items.pop(url, None)
            self._items[url] = data
            while len(self._items) > self.capacity:
                self._items.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


class ExportImageLoader:
    def __init__(
        self,
        fetcher: ImageFetcher,
        attempts: int = EXPORT_IMAGE_ATTEMPTS,
        backoff_seconds: float = EXPORT_IMAGE_BACKOFF,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.fetcher = fetcher
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds
        self.sleep = sleep

    def load(self, url: str, token: Optional[CancellationToken] = None) -> Optional[bytes]:
        """Return image bytes, or None once retries are exhausted or the error is final.

        With a token, the backoff waits on it so a cancel ends the wait early.
        """
        delay = self.backoff_seconds
        for attempt in range(1, self.attempts + 1):
            check(token)
            try:
                return self.fetcher.fetch(url)
            except ImageFetchError as error:
                if not error.retryable:
                    logger.warning("Giving up on image %s: %s", url, error)
                    return None
                if attempt >= self.attempts:
                    logger.warning(
                        "Giving up on image %s after %d attempts: %s", url, attempt, error
                    )
                    return None
                logger.info(
                    "Image %s failed (%s), backing off %.1fs (attempt %d/%d)",
                    url, error, delay, attempt, self.attempts,
                )
                if token is not None:
                    token.wait(delay)
                    check(token)
                else:
                    self.sleep(delay)
                delay *= 2
        return None


class PreviewLoader:
    """Best-effort background loader for table thumbnails.

    ``pause()`` stops new batches from starting (a batch already in flight
    finishes); ``resume()`` re-queues every requested image that is still
    missing from the cache.
    """

    def __init__(
        self,
        fetcher: ImageFetcher,
        cache: ImageCache,
        batch_size: int = PREVIEW_BATCH_SIZE,
        batch_delay: float = PREVIEW_BATCH_DELAY,
    ) -> None:
        self.fetcher = fetcher
        self.cache = cache
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._requested: List[str] = []
        self._queue: Deque[str] = deque()
        self._paused = False
        self._stopped = False
        self._condition = threading.Condition()
        self._thread: Optional[threading.Thread] = None
        self._pool = ThreadPoolExecutor(max_workers=batch_size, thread_name_prefix="preview-image")

    @property
    def paused(self) -> bool:
        with self._condition:
            return self._paused

    @property
    def pending(self) -> int:
        with self._condition:
            return len(self._queue)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="preview-loader", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        with self._condition:
            self._stopped = True
            self._condition.notify_all()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self._pool.shutdown(wait=False)

    def request(self, urls: Iterable[str]) -> None:
        """Replace the set of images the loader should work through."""
        unique = list(OrderedDict.fromkeys(u for u in urls if u))
        with self._condition:
            self._requested = unique
            self._queue = deque(u for u in unique if u not in self.cache)
            self._condition.notify_all()

    def pause(self) -> None:
        with self._condition:
            self._paused = True
        logger.debug("Preview loading paused")

    def resume(self) -> None:
        with self._condition:
            self._paused = False
            self._queue = deque(u for u in self._requested if u not in self.cache)
            self._condition.notify_all()
        logger.debug("Preview loading resumed")

    def _next_batch(self) -> List[str]:
        batch: List[str] = []
        with self._condition:
            if self._paused:
                return batch
            while self._queue and len(batch) < self.batch_size:
                url = self._queue.popleft()
                if url not in self.cache and url not in batch:
                    batch.append(url)
        return batch

    def _load_one(self, url: str) -> None:
        try:
            self.cache.put(url, self.fetcher.fetch(url))
        except ImageFetchError as error:
            logger.debug("Preview image %s dropped: %s", url, error)

    def load_next_batch(self) -> int:
        """Fetch up to ``batch_size`` images concurrently; returns how many were tried."""
        batch = self._next_batch()
        if batch:
            done, _ = wait([self._pool.submit(self._load_one, url) for url in batch])
            for future in done:
                error = future.exception()
                if error is not None:
                    logger.warning("Preview loader failed unexpectedly: %r", error)
        return len(batch)

    def _run(self) -> None:
        while True:
            with self._condition:
                while not self._stopped and (self._paused or not self._queue):
                    self._condition.wait()
                if self._stopped:
                    return
            if self.load_next_batch():
                with self._condition:
                    self._condition.wait_for(lambda: self._stopped, timeout=self.batch_delay)
