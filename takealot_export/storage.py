"""Key-value blob stores used for settings and persisted cache entries."""

from __future__ import annotations

import logging
import os
import re
import threading
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from .errors import CacheIOError

logger = logging.getLogger(__name__)

_UNSAFE_KEY_RE = re.compile(r"[^A-Za-z0-9._+\-]")


def _safe_name(value: str) -> str:
    cleaned = _UNSAFE_KEY_RE.sub("_", value).strip(".")
    return cleaned or "_"


class BlobStore:
    """Interface: ``load`` returns None for absent keys, ``save`` overwrites."""

    def load(self, namespace: str, key: str) -> Optional[bytes]:
        raise NotImplementedError

    def save(self, namespace: str, key: str, data: bytes) -> None:
        raise NotImplementedError


class FileBlobStore(BlobStore):
    """Stores each blob as ``<root>/<namespace>/<key>.json``."""

    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)

    def _path(self, namespace: str, key: str) -> Path:
        return self.root / _safe_name(namespace) / f"{_safe_name(key)}.json"

    def load(self, namespace: str, key: str) -> Optional[bytes]:
        path = self._path(namespace, key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as error:
            raise CacheIOError(f"Unable to read {path}: {error}") from error

    def save(self, namespace: str, key: str, data: bytes) -> None:
        path = self._path(namespace, key)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(data)
            os.replace(tmp_path, path)
        except OSError as error:
            raise CacheIOError(f"Unable to write {path}: {error}") from error
        logger.debug("Saved %d bytes to %s", len(data), path)


class MemoryBlobStore(BlobStore):
    def __init__(self) -> None:
        self._blobs: Dict[Tuple[str, str], bytes] = {}
        self._lock = threading.Lock()

    def load(self, namespace: str, key: str) -> Optional[bytes]:
        with self._lock:
            return self._blobs.get((namespace, key))

    def save(self, namespace: str, key: str, data: bytes) -> None:
        with self._lock:
            self._blobs[(namespace, key)] = bytes(data)
