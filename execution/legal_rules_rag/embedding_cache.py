"""
Embedding caches for Legal Rules RAG

Two independent caches avoid regenerating rule embeddings on every request:

- DurableEmbeddingCache: persisted snapshot keyed by a fixed storage key,
  valid while the corpus version and embedding model match and the entry
  is at most 7 days old. Survives process restarts.
- ProcessLocalCache: single in-memory slot valid for 1 hour. Lost on restart.

Both are write-through snapshots, never the source of truth. Expiry is
checked lazily on access; nothing runs in the background.
A cache entry is fresh while age <= TTL.
"""

import json
import time
import logging
import threading
from pathlib import Path
from typing import Callable, Optional, Union
from dataclasses import dataclass, field

from .errors import CacheCorruptionError
from .rule_models import EmbeddedRule

logger = logging.getLogger(__name__)

CACHE_KEY = "legal-rules-embeddings"
DURABLE_TTL_SECONDS = 7 * 24 * 60 * 60  # 7 days
PROCESS_TTL_SECONDS = 60 * 60  # 1 hour


def _now_ms(clock: Callable[[], float]) -> int:
    return int(clock() * 1000)


def is_fresh(timestamp_ms: int, ttl_seconds: float, now_ms: int) -> bool:
    """True while the entry age is within the TTL (boundary inclusive)."""
    return now_ms - timestamp_ms <= ttl_seconds * 1000


# ---------------------------------------------------------------------------
# Storage backends
# ---------------------------------------------------------------------------

class MemoryStorage:
    """Dict-backed key/value storage (tests, single-process use)."""

    def __init__(self):
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JSONFileStorage:
    """Key/value storage writing one JSON file per key into a directory."""

    def __init__(self, directory: Union[str, Path]):
        self._path = Path(directory)

    def _file(self, key: str) -> Path:
        return self._path / f"{key}.json"

    def get_item(self, key: str) -> Optional[str]:
        cache_file = self._file(key)
        if not cache_file.exists():
            return None
        return cache_file.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        self._path.mkdir(parents=True, exist_ok=True)
        self._file(key).write_text(value, encoding="utf-8")

    def remove_item(self, key: str) -> None:
        self._file(key).unlink(missing_ok=True)


# ---------------------------------------------------------------------------
# Durable cache
# ---------------------------------------------------------------------------

@dataclass
class CacheEntry:
    """Persisted snapshot of an embedded corpus."""
    version: str
    timestamp: int  # epoch milliseconds
    rules: list[EmbeddedRule] = field(default_factory=list)
    model: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps({
            "version": self.version,
            "timestamp": self.timestamp,
            "model": self.model,
            "rules": [r.to_dict() for r in self.rules],
        })

    @classmethod
    def from_json(cls, raw: str) -> "CacheEntry":
        """
        Decode a stored entry.

        Raises:
            CacheCorruptionError: On invalid JSON or a malformed structure
        """
        try:
            data = json.loads(raw)
            rules = [EmbeddedRule.from_dict(r) for r in data["rules"]]
            entry = cls(
                version=str(data["version"]),
                timestamp=int(data["timestamp"]),
                rules=rules,
                model=data.get("model"),
            )
        except (ValueError, KeyError, TypeError, AttributeError, OverflowError, RecursionError) as e:
            raise CacheCorruptionError(f"Invalid embeddings cache entry: {e}") from e

        if len({len(r.embedding) for r in rules}) > 1:
            raise CacheCorruptionError("Cached embeddings have mixed dimensions")
        return entry


class DurableEmbeddingCache:
    """
    Persistent embedding snapshot invalidated by corpus version, model and age.

    load() never raises: any problem with the stored entry is a cache miss.
    store() is best-effort: storage failures are logged and swallowed.
    """

    def __init__(
        self,
        storage=None,
        ttl_seconds: float = DURABLE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        key: str = CACHE_KEY,
    ):
        self._storage = storage if storage is not None else MemoryStorage()
        self._ttl = ttl_seconds
        self._clock = clock
        self._key = key

    def load(
        self,
        expected_version: Optional[str],
        expected_model: Optional[str] = None,
        expected_count: Optional[int] = None,
    ) -> Optional[list[EmbeddedRule]]:
        """
        Return cached rules if a valid entry exists, else None.

        Args:
            expected_version: Corpus version the entry must match
            expected_model: Embedding model id the entry must match (if given)
            expected_count: Corpus size the entry must match (if given)
        """
        try:
            raw = self._storage.get_item(self._key)
            if raw is None:
                return None
            entry = CacheEntry.from_json(raw)
        except (CacheCorruptionError, OSError, ValueError) as e:
            logger.warning(f"Failed to load cached embeddings: {e}")
            return None

        version = str(expected_version) if expected_version is not None else ""
        if entry.version != version:
            logger.info(f"Cache version mismatch: {entry.version} vs {version}")
            return None

        if expected_model and entry.model != expected_model:
            logger.info(f"Cache model mismatch: {entry.model} vs {expected_model}")
            return None

        if not is_fresh(entry.timestamp, self._ttl, _now_ms(self._clock)):
            logger.info("Cache expired")
            return None

        if expected_count is not None and len(entry.rules) != expected_count:
            logger.info(f"Cache size mismatch: {len(entry.rules)} vs {expected_count} rules")
            return None

        logger.info(f"Loaded {len(entry.rules)} cached embeddings (v{version})")
        return entry.rules

    def store(
        self,
        rules: list[EmbeddedRule],
        version: Optional[str],
        model: Optional[str] = None,
    ) -> bool:
        """Persist a snapshot. Returns False (and logs) on storage failure."""
        entry = CacheEntry(
            version=str(version) if version is not None else "",
            timestamp=_now_ms(self._clock),
            rules=list(rules),
            model=model,
        )
        try:
            self._storage.set_item(self._key, entry.to_json())
        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to cache embeddings: {e}")
            return False

        logger.info(f"Cached {len(rules)} rule embeddings (v{entry.version})")
        return True

    def clear(self) -> None:
        try:
            self._storage.remove_item(self._key)
        except OSError as e:
            logger.warning(f"Failed to clear embeddings cache: {e}")


# ---------------------------------------------------------------------------
# Process-local cache
# ---------------------------------------------------------------------------

class ProcessLocalCache:
    """
    Single-slot in-memory embedding cache with a fixed TTL.

    Persists only while the process is warm. On expiry the next caller
    regenerates the whole embedded corpus.
    """

    def __init__(
        self,
        ttl_seconds: float = PROCESS_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._ttl = ttl_seconds
        self._clock = clock
        self._rules: Optional[list[EmbeddedRule]] = None
        self._timestamp: Optional[int] = None
        self._lock = threading.Lock()

    def get(self) -> Optional[list[EmbeddedRule]]:
        with self._lock:
            if self._rules is None or self._timestamp is None:
                return None
            if not is_fresh(self._timestamp, self._ttl, _now_ms(self._clock)):
                return None
            return self._rules

    def set(self, rules: list[EmbeddedRule]) -> None:
        with self._lock:
            self._rules = list(rules)
            self._timestamp = _now_ms(self._clock)

    def clear(self) -> None:
        with self._lock:
            self._rules = None
            self._timestamp = None

    @property
    def timestamp(self) -> Optional[int]:
        return self._timestamp
