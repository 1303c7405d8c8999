"""Summary cache keyed by document URL and validated by content fingerprint."""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict

from policy_tldr.services.policy.models import CacheEntry, SummaryRecord

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "summaries"


class CacheStore(ABC):
    """Durable key-value storage; each namespace holds one JSON-compatible dict."""

    @abstractmethod
    def get(self, namespace: str) -> Dict[str, Any] | None:
        """Return the stored value for a namespace, or None."""

    @abstractmethod
    def set(self, namespace: str, value: Dict[str, Any]) -> None:
        """Replace the stored value for a namespace."""

    @abstractmethod
    def remove(self, namespace: str) -> None:
        """Drop a namespace entirely."""


class MemoryCacheStore(CacheStore):
    """In-process store for tests and short-lived sessions."""

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}

    def get(self, namespace: str) -> Dict[str, Any] | None:
        value = self._data.get(namespace)
        return json.loads(json.dumps(value)) if value is not None else None

    def set(self, namespace: str, value: Dict[str, Any]) -> None:
        self._data[namespace] = json.loads(json.dumps(value))

    def remove(self, namespace: str) -> None:
        self._data.pop(namespace, None)


class JsonFileCacheStore(CacheStore):
    """Single JSON file holding every namespace; writes are atomic."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable cache file %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(self._path.name + ".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp, self._path)

    def get(self, namespace: str) -> Dict[str, Any] | None:
        value = self._load().get(namespace)
        return value if isinstance(value, dict) else None

    def set(self, namespace: str, value: Dict[str, Any]) -> None:
        data = self._load()
        data[namespace] = value
        self._save(data)

    def remove(self, namespace: str) -> None:
        data = self._load()
        if namespace in data:
            del data[namespace]
            self._save(data)


def _now_ms() -> int:
    return int(time.time() * 1000)


class ResultCache:
    """Maps a document URL to its last summary and the fingerprint it was built from.

    Entries never expire; a fingerprint mismatch is the only invalidation signal.
    """

    def __init__(self, store: CacheStore, namespace: str = DEFAULT_NAMESPACE) -> None:
        self._store = store
        self._namespace = namespace
        self._lock = threading.Lock()

    def _entries(self) -> Dict[str, Any]:
        return self._store.get(self._namespace) or {}

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            raw = self._entries().get(key)
        if raw is None:
            return None
        try:
            return CacheEntry.from_stored(key, raw)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Discarding malformed cache entry for %s: %s", key, exc)
            return None

    def put(self, key: str, result: SummaryRecord, fingerprint: str) -> CacheEntry:
        entry = CacheEntry(
            document_key=key, result=result, fingerprint=fingerprint, created_at=_now_ms()
        )
        with self._lock:
            entries = self._entries()
            entries[key] = entry.to_stored()
            self._store.set(self._namespace, entries)
        return entry

    def remove(self, key: str) -> bool:
        with self._lock:
            entries = self._entries()
            if key not in entries:
                return False
            del entries[key]
            self._store.set(self._namespace, entries)
        return True

    def clear(self) -> None:
        with self._lock:
            self._store.remove(self._namespace)

    @staticmethod
    def is_valid(entry: CacheEntry | None, fingerprint: str) -> bool:
        """A cached summary is reusable only for byte-identical distilled text."""
        return entry is not None and entry.fingerprint == fingerprint
