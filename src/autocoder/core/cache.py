"""Summary cache.

Summaries are keyed by a hash of the file path, its content and the user
prompt, so a change to any of them is a miss. Entries older than the TTL are
treated as absent. A cache is always optional: misses, stale entries and
storage errors never surface to the caller.
"""

import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from .models import SummaryRecord

logger = logging.getLogger(__name__)

DEFAULT_TTL = 24 * 60 * 60


def make_cache_key(file_path: str, content: str, user_prompt: str) -> str:
    """Content hash identifying a summary."""
    digest = hashlib.sha256()
    for part in (file_path, content, user_prompt or ""):
        digest.update(part.encode('utf-8', errors='replace'))
        digest.update(b'\x00')
    return digest.hexdigest()


class SummaryCache(ABC):
    """Get/set store for SummaryRecord by content hash."""

    @abstractmethod
    def get(self, key: str) -> Optional[SummaryRecord]:
        """Return the record for key, or None on a miss."""
        pass

    @abstractmethod
    def set(self, key: str, record: SummaryRecord) -> None:
        """Store a record under key."""
        pass


class InMemorySummaryCache(SummaryCache):
    """Process-local cache, mostly useful for tests and single runs."""

    def __init__(self, ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[float, SummaryRecord]] = {}
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[SummaryRecord]:
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        stored_at, record = entry
        if self._clock() - stored_at > self.ttl:
            del self._entries[key]
            self._misses += 1
            return None
        self._hits += 1
        return record

    def set(self, key: str, record: SummaryRecord) -> None:
        self._entries[key] = (self._clock(), record)

    def clear(self) -> None:
        self._entries.clear()

    def get_stats(self) -> Dict[str, int]:
        return {
            'cache_size': len(self._entries),
            'hits': self._hits,
            'misses': self._misses,
        }


class FileSummaryCache(SummaryCache):
    """
    Filesystem-backed cache storing one JSON document per key.

    Freshness is judged by the file modification time.
    """

    def __init__(self, cache_dir: str, ttl: float = DEFAULT_TTL):
        self.cache_dir = Path(cache_dir)
        self.ttl = ttl

    def _path_for(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def get(self, key: str) -> Optional[SummaryRecord]:
        path = self._path_for(key)
        try:
            if not path.exists():
                return None
            if time.time() - path.stat().st_mtime > self.ttl:
                logger.debug(f"Summary cache entry expired: {key[:12]}")
                return None
            return SummaryRecord.from_dict(json.loads(path.read_text(encoding='utf-8')))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.debug(f"Ignoring unreadable summary cache entry {key[:12]}: {e}")
            return None

    def set(self, key: str, record: SummaryRecord) -> None:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            self._path_for(key).write_text(json.dumps(record.to_dict()), encoding='utf-8')
        except OSError as e:
            logger.warning(f"Failed to write summary cache entry for {record.file_path}: {e}")
