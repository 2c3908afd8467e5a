from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .cancel import CancellationToken, check
from .config import DEFAULT_USER_AGENT, REQUEST_TIMEOUT
from .errors import UpstreamFetchError

logger = logging.getLogger(__name__)


def create_session(
    user_agent: Optional[str] = None,
    total_retries: int = 0,
    proxy_url: str = "",
    accept: str = "application/json",
    pool_size: int = 10,
) -> requests.Session:
    """Build a pooled session.

    ``total_retries`` defaults to 0: the listing and detail calls must fail
    fast and leave retrying to the caller.
    """
    session = requests.Session()
    session.headers.update(
        {
            "User-Agent": user_agent or DEFAULT_USER_AGENT,
            "Accept": accept,
            "Accept-Language": "en-ZA,en;q=0.9",
            "Connection": "keep-alive",
        }
    )

    retry: Any = 0
    if total_retries > 0:
        retry = Retry(
            total=total_retries,
            backoff_factor=0.7,
            status_forcelist=(500, 502, 503, 504),
            allowed_methods=("GET", "HEAD"),
            raise_on_status=False,
            respect_retry_after_header=True,
        )
    adapter = HTTPAdapter(max_retries=retry, pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    if proxy_url:
        session.proxies.update({"http": proxy_url, "https": proxy_url})
    return session


def format_http_error(response: requests.Response) -> str:
    status = f"HTTP {response.status_code}"
    if response.reason:
        status = f"{status} {response.reason}"
    if response.url:
        status = f"{status} for url: {response.url}"
    return status


def fetch_json(
    url: str,
    session: requests.Session,
    params: Optional[Mapping[str, Any]] = None,
    token: Optional[CancellationToken] = None,
    timeout_seconds: float = REQUEST_TIMEOUT,
) -> Any:
    """GET a JSON document.

    Raises UpstreamFetchError for non-200 responses, network failures and
    undecodable bodies; QueryCancelled if ``token`` is already cancelled.
    """
    check(token)
    logger.debug("GET %s params=%s", url, params)
    try:
        response = session.get(url, params=params or {}, timeout=timeout_seconds)
    except requests.RequestException as error:
        raise UpstreamFetchError(f"Request to {url} failed: {error}") from error

    if response.status_code != 200:
        raise UpstreamFetchError(format_http_error(response), status_code=response.status_code)
    try:
        return response.json()
    except ValueError as error:
        raise UpstreamFetchError(f"Invalid JSON from {response.url}: {error}") from error
