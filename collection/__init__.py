"""
Collection engine - paginated retrieval, cached suite snapshots and suite hierarchy resolution.
"""
from collection.paginator import Page, collect_all_pages
from collection.snapshot import SuiteSnapshotCache, Snapshot
from collection.aggregator import CaseAggregator
from collection.utils import (
    CollectionCancelled,
    CollectionStats,
    TcmApiError,
    TcmAuthError,
    TcmNotFoundError,
    TcmRateLimitError,
)

__all__ = [
    'Page',
    'collect_all_pages',
    'SuiteSnapshotCache',
    'Snapshot',
    'CaseAggregator',
    'CollectionCancelled',
    'CollectionStats',
    'TcmApiError',
    'TcmAuthError',
    'TcmNotFoundError',
    'TcmRateLimitError',
]
