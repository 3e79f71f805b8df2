"""
Suite snapshot cache - one full suite list per project, reused for a fixed time-to-live.
"""
import logging
import threading
import time
from collections import namedtuple
from typing import Any, Callable, Dict, List, Optional

from collection.paginator import Page, collect_all_pages
from collection.utils import CollectionStats, normalize_suite

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60
MAX_PAGE_SIZE = 100

Snapshot = namedtuple('Snapshot', ['project_key', 'suites', 'created_at'])


class _PendingFetch:
    """A snapshot fetch in progress, shared by every caller that missed the cache."""

    def __init__(self, generation: int):
        self.generation = generation
        self.done = threading.Event()
        self.snapshot = None
        self.error = None


class SuiteSnapshotCache:
    """
    Caches the complete suite list of each project.
    
    ``fetch_suite_page(project_key, page_token, page_size)`` must return a Page.
    Concurrent misses for the same project share one fetch; a failed fetch is
    re-raised to every caller waiting on it and nothing is cached.
    """

    def __init__(self, fetch_suite_page: Callable[[str, Optional[str], int], Page],
                 ttl: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic,
                 page_size: int = MAX_PAGE_SIZE, max_pages: Optional[int] = None,
                 stats: Optional[CollectionStats] = None):
        self.fetch_suite_page = fetch_suite_page
        self.ttl = ttl
        self.clock = clock
        self.page_size = page_size
        self.max_pages = max_pages
        self.stats = stats
        self._snapshots: Dict[str, Snapshot] = {}
        self._pending: Dict[str, _PendingFetch] = {}
        self._generations: Dict[str, int] = {}
        self._lock = threading.Lock()

    def get_snapshot(self, project_key: str) -> List[Dict[str, Any]]:
        """Return copies of the project's suites, fetching them when no valid snapshot exists."""
        return [dict(suite) for suite in self.get_snapshot_record(project_key).suites]

    def get_snapshot_record(self, project_key: str) -> Snapshot:
        """Like get_snapshot but returns the cached Snapshot itself; its suites must be treated as read-only."""
        with self._lock:
            snapshot = self._snapshots.get(project_key)
            if snapshot is not None and self._is_fresh(snapshot):
                logger.debug(f"Suite snapshot cache hit for {project_key}")
                return snapshot
            pending = self._pending.get(project_key)
            leader = pending is None
            if leader:
                pending = _PendingFetch(self._generations.get(project_key, 0))
                self._pending[project_key] = pending

        if not leader:
            logger.debug(f"Waiting for in-flight suite fetch of {project_key}")
            pending.done.wait()
            if pending.error is not None:
                raise pending.error
            return pending.snapshot

        try:
            snapshot = self._fetch(project_key)
            pending.snapshot = snapshot
            with self._lock:
                if self._generations.get(project_key, 0) == pending.generation:
                    self._snapshots[project_key] = snapshot
                else:
                    logger.info(f"Suite snapshot for {project_key} was invalidated while fetching; not cached")
            return snapshot
        except Exception as e:
            pending.error = e
            logger.error(f"Failed to fetch suites for project {project_key}: {e}")
            raise
        finally:
            with self._lock:
                self._pending.pop(project_key, None)
            pending.done.set()

    def invalidate(self, project_key: str):
        """Force the next get_snapshot for this project to refetch."""
        with self._lock:
            self._snapshots.pop(project_key, None)
            self._generations[project_key] = self._generations.get(project_key, 0) + 1
        logger.info(f"Invalidated suite snapshot for {project_key}")

    def clear(self):
        """Drop every cached snapshot."""
        with self._lock:
            for project_key in set(self._snapshots) | set(self._pending):
                self._generations[project_key] = self._generations.get(project_key, 0) + 1
            self._snapshots.clear()

    def _is_fresh(self, snapshot: Snapshot) -> bool:
        return self.clock() - snapshot.created_at < self.ttl

    def _fetch(self, project_key: str) -> Snapshot:
        logger.info(f"Fetching all suites for project {project_key}...")
        raw_suites = collect_all_pages(
            lambda token: self.fetch_suite_page(project_key, token, self.page_size),
            max_pages=self.max_pages,
            entity_type='suites',
            stats=self.stats
        )

        suites = []
        seen = set()
        duplicates = 0
        for raw in raw_suites:
            suite = normalize_suite(raw)
            if suite.get('id') in seen:
                duplicates += 1
                continue
            seen.add(suite.get('id'))
            suites.append(suite)
        if duplicates:
            logger.warning(f"Dropped {duplicates} duplicate suite record(s) for project {project_key}")

        return Snapshot(project_key, tuple(suites), self.clock())
