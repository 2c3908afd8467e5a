"""Configuration constants, ``.env`` bootstrap and persisted settings."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .errors import CacheIOError
from .storage import BlobStore

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_ROOT.parent
ENV_PATH = PROJECT_ROOT / ".env"
DEFAULT_DATA_DIR = Path.home() / ".takealot-export"

API_ENDPOINT = "https://api.takealot.com/rest/"
API_PATHS = {
    "departments": "/cms/merchandised-departments",
    "categories": "/searches/facets",
    "views": "/searches/products",
    "product": "/product-details/",
}
PRODUCT_URL_TEMPLATE = "https://www.takealot.com/{slug}/{id}"
REQUEST_TIMEOUT = 30  # seconds
IMAGE_TIMEOUT = 30  # seconds

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

RELEVANCE_SORT = "Relevance"
DEFAULT_SORT = RELEVANCE_SORT
DEFAULT_AMOUNT = 100

CACHE_MAX_ENTRIES = 10

PREVIEW_CACHE_MAX_ENTRIES = 200
PREVIEW_BATCH_SIZE = 2
PREVIEW_BATCH_DELAY = 1.0  # seconds
EXPORT_IMAGE_ATTEMPTS = 3
EXPORT_IMAGE_BACKOFF = 3.0  # seconds, doubled per attempt

THUMBNAIL_SIZE = 100  # pixels
THUMBNAIL_ROW_HEIGHT = 80  # points

SETTINGS_NAMESPACE = "settings"
SETTINGS_KEY = "settings"


@dataclass
class Settings:
    api_version: str = "v-1-16-0"
    cache_dir_path: str = "views.cache"
    cache_ttl_ms: int = 86400000
    log_level: str = "info"
    proxy_url: str = ""


def load_environment() -> None:
    """Load variables from the optional project-level ``.env`` file."""
    if ENV_PATH.exists():
        load_dotenv(dotenv_path=ENV_PATH)
    else:
        logger.debug("No .env file at %s", ENV_PATH)


def data_dir() -> Path:
    return Path(os.getenv("TAKEALOT_DATA_DIR") or DEFAULT_DATA_DIR)


def _apply_env_overrides(settings: Settings) -> Settings:
    api_version = os.getenv("TAKEALOT_API_VERSION")
    if api_version:
        settings.api_version = api_version
    proxy_url = os.getenv("TAKEALOT_PROXY_URL")
    if proxy_url is not None:
        settings.proxy_url = proxy_url
    log_level = os.getenv("LOG_LEVEL")
    if log_level:
        settings.log_level = log_level
    ttl = os.getenv("TAKEALOT_CACHE_TTL_MS")
    if ttl:
        try:
            settings.cache_ttl_ms = int(ttl)
        except ValueError:
            logger.warning("Ignoring invalid TAKEALOT_CACHE_TTL_MS=%r", ttl)
    return settings


def load_settings(store: Optional[BlobStore] = None) -> Settings:
    """Read persisted settings, fill missing fields with defaults, apply env."""
    settings = Settings()
    if store is not None:
        try:
            raw = store.load(SETTINGS_NAMESPACE, SETTINGS_KEY)
        except CacheIOError as error:
            logger.warning("Unable to read settings (%s); using defaults", error)
            raw = None
        if raw:
            try:
                data = json.loads(raw.decode("utf-8"))
            except ValueError as error:
                logger.warning("Ignoring malformed settings file (%s)", error)
                data = {}
            known = {f.name for f in fields(Settings)}
            for name, value in data.items():
                if name in known and value is not None:
                    setattr(settings, name, value)
    return _apply_env_overrides(settings)


def save_settings(store: BlobStore, settings: Settings) -> None:
    payload = json.dumps(asdict(settings), indent=2).encode("utf-8")
    store.save(SETTINGS_NAMESPACE, SETTINGS_KEY, payload)
