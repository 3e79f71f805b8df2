"""
Suite-aware test case aggregation - combines the paginated test case collection
with the cached suite snapshot to answer "which test cases live under suite X".
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional

import requests

from collection import hierarchy
from collection.paginator import collect_all_pages
from collection.snapshot import SuiteSnapshotCache, MAX_PAGE_SIZE
from collection.utils import CollectionStats, TcmApiError, normalize_suite, normalize_test_case

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 5


def _validate(project_key: str, suite_id: Optional[int] = None):
    if not project_key or not str(project_key).strip():
        raise ValueError("Project key is required")
    if suite_id is not None and (not isinstance(suite_id, int) or suite_id <= 0):
        raise ValueError("Valid suite ID is required")


class CaseAggregator:
    """
    Answers suite-scoped test case queries for a source.
    
    The source must provide ``fetch_suite_page``, ``fetch_test_case_page`` and
    ``fetch_test_case_by_key`` (see ``collection.sources``).
    """

    def __init__(self, source, snapshot_cache: Optional[SuiteSnapshotCache] = None,
                 max_workers: int = DEFAULT_MAX_WORKERS, page_size: int = MAX_PAGE_SIZE,
                 max_pages: Optional[int] = None, separator: str = hierarchy.DEFAULT_SEPARATOR,
                 stats: Optional[CollectionStats] = None, cancel_event: Optional[threading.Event] = None):
        self.source = source
        self.stats = stats or CollectionStats()
        self.snapshot_cache = snapshot_cache or SuiteSnapshotCache(
            source.fetch_suite_page, page_size=page_size, max_pages=max_pages, stats=self.stats
        )
        self.max_workers = max(1, max_workers)
        self.page_size = page_size
        self.max_pages = max_pages
        self.separator = separator
        self.cancel_event = cancel_event
        self._resolved = {}

    # Suites

    def get_snapshot(self, project_key: str) -> List[Dict[str, Any]]:
        """Cached suite list of the project."""
        _validate(project_key)
        return self.snapshot_cache.get_snapshot(project_key)

    def invalidate(self, project_key: str):
        """Drop the cached suites of the project."""
        self.snapshot_cache.invalidate(project_key)
        self._resolved.pop(project_key, None)

    def get_all_suites(self, project_key: str, max_results: int = 10000,
                       on_progress: Optional[Callable[[int, int], None]] = None) -> List[Dict[str, Any]]:
        """Fetch suites without the cache, stopping after ``max_results``."""
        _validate(project_key)
        raw_suites = collect_all_pages(
            lambda token: self.source.fetch_suite_page(project_key, token, self.page_size),
            max_items=max_results,
            max_pages=self.max_pages,
            on_progress=on_progress,
            cancel_event=self.cancel_event,
            entity_type='suites',
            stats=self.stats
        )
        return [normalize_suite(raw) for raw in raw_suites]

    def get_enriched_suites(self, project_key: str) -> List[Dict[str, Any]]:
        """Cached suites annotated with level, root and path."""
        return hierarchy.enrich(self.get_snapshot(project_key), self.separator)

    def get_suite_tree(self, project_key: str) -> List[Dict[str, Any]]:
        """Cached suites as a forest of enriched nodes."""
        return hierarchy.build_tree(self.get_enriched_suites(project_key))

    def get_suite_hierarchy_path(self, project_key: str, suite_id: int) -> List[Dict[str, Any]]:
        """
        Path from the root suite down to ``suite_id`` as ``[{'id', 'name'}]``.
        
        Unknown suites, and failures to load the suite list, yield a single
        ``Suite {id}`` entry so callers always have something to render.
        """
        _validate(project_key)
        fallback = [{'id': suite_id, 'name': f"Suite {suite_id}"}]
        try:
            index = self._index(project_key)[0]
        except (TcmApiError, requests.RequestException) as e:
            logger.error(f"Error getting suite hierarchy path for suite {suite_id}: {e}")
            return fallback

        chain = hierarchy.lineage(suite_id, index)
        if not chain:
            return fallback
        return [{'id': suite['id'], 'name': hierarchy.suite_name(suite)} for suite in reversed(chain)]

    def resolve_root_suite_ids(self, project_key: str, suite_ids: Iterable[int]) -> Dict[int, Optional[int]]:
        """Root suite id for each suite id; ``None`` for suites missing from the snapshot."""
        _validate(project_key)
        root_map = self._index(project_key)[1]
        return {suite_id: root_map.get(suite_id) for suite_id in suite_ids}

    # Test cases

    def get_all_test_cases(self, project_key: str, filter: Optional[str] = None,
                           max_items: Optional[int] = None,
                           on_progress: Optional[Callable[[int, int], None]] = None) -> List[Dict[str, Any]]:
        """Every test case of the project (optionally filtered server-side)."""
        _validate(project_key)
        raw_cases = collect_all_pages(
            lambda token: self.source.fetch_test_case_page(project_key, filter, token, self.page_size),
            max_items=max_items,
            max_pages=self.max_pages,
            on_progress=on_progress,
            cancel_event=self.cancel_event,
            entity_type='test cases',
            stats=self.stats
        )
        return [normalize_test_case(raw) for raw in raw_cases]

    def all_test_cases_under_suite(self, project_key: str, suite_id: int,
                                   by_root: bool = False, filter: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Test cases whose immediate suite (or, with ``by_root``, whose root suite) is ``suite_id``.
        
        Test cases pointing at a suite missing from the snapshot are orphaned:
        they are logged and recorded in stats, never matched by root, and
        matched directly only by their declared suite id. ``filter`` narrows the
        test case collection server-side before matching.
        """
        _validate(project_key, suite_id)
        logger.info(f"Getting all test cases for suite {suite_id} (by_root: {by_root})...")
        start = time.monotonic()

        test_cases = self.get_all_test_cases(project_key, filter=filter)
        logger.info(f"Found {len(test_cases)} total test cases in project {project_key}")
        index, root_map = self._index(project_key)
        logger.info(f"Found {len(index)} total suites in project {project_key}")

        matched = []
        orphaned = 0
        for test_case in test_cases:
            case_suite_id = test_case.get('suite_id')
            if case_suite_id is None:
                continue
            root_id = root_map.get(case_suite_id)
            if root_id is None:
                orphaned += 1
                self._report_orphan(project_key, test_case)
            candidate = root_id if by_root else case_suite_id
            if candidate is not None and candidate == suite_id:
                matched.append(self._with_hierarchy(test_case, index, root_id))

        elapsed = time.monotonic() - start
        if orphaned:
            logger.warning(f"{orphaned} test case(s) in {project_key} reference suites missing from the snapshot")
        logger.info(f"Added {len(matched)} test cases ({elapsed:.2f}s)")
        return matched

    def get_test_case_by_key(self, project_key: str, key: str,
                             include_hierarchy: bool = False) -> Dict[str, Any]:
        """Single test case; with ``include_hierarchy`` adds its feature and root suite ids."""
        _validate(project_key)
        test_case = normalize_test_case(self.source.fetch_test_case_by_key(project_key, key))
        if include_hierarchy:
            return self.enrich_test_case(project_key, test_case)
        return test_case

    def enrich_test_case(self, project_key: str, test_case: Dict[str, Any]) -> Dict[str, Any]:
        """
        Copy of the test case with ``feature_suite_id`` and ``root_suite_id``.
        
        Both are ``None`` when the test case's suite is missing from the snapshot.
        """
        test_case = normalize_test_case(test_case)
        if test_case.get('suite_id') is None:
            return dict(test_case, feature_suite_id=None, root_suite_id=None)

        index, root_map = self._index(project_key)
        root_id = root_map.get(test_case['suite_id'])
        if root_id is None:
            self._report_orphan(project_key, test_case)
        return self._with_hierarchy(test_case, index, root_id)

    def enrich_test_cases(self, project_key: str, test_cases: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Enrich many test cases through a bounded worker pool, preserving order."""
        _validate(project_key)
        if not test_cases:
            return []
        # Load the snapshot once before fanning out.
        self._index(project_key)
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            return list(executor.map(lambda tc: self.enrich_test_case(project_key, tc), test_cases))

    # Internals

    def _index(self, project_key: str):
        record = self.snapshot_cache.get_snapshot_record(project_key)
        resolved = self._resolved.get(project_key)
        if resolved is None or resolved[0] is not record:
            suites = list(record.suites)
            resolved = (record, hierarchy.index_suites(suites), hierarchy.root_id_map(suites))
            self._resolved[project_key] = resolved
        return resolved[1], resolved[2]

    def _with_hierarchy(self, test_case: Dict[str, Any], index: Dict[int, Dict[str, Any]],
                        root_id: Optional[int]) -> Dict[str, Any]:
        # An orphan keeps its declared suite_id but has no feature suite.
        root = index.get(root_id) if root_id is not None else None
        return dict(
            test_case,
            feature_suite_id=test_case.get('suite_id') if root is not None else None,
            root_suite_id=root_id,
            root_suite_name=hierarchy.suite_name(root) if root else None
        )

    def _report_orphan(self, project_key: str, test_case: Dict[str, Any]):
        key = test_case.get('key') or test_case.get('id')
        logger.warning(f"Orphaned test case: {key} references suite {test_case.get('suite_id')} "
                       f"which is not in project {project_key}")
        self.stats.add_orphan(key, test_case.get('suite_id'))
