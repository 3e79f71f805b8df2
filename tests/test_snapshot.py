"""Tests for the suite snapshot cache."""
import threading
import time

import pytest

from collection.paginator import Page
from collection.snapshot import SuiteSnapshotCache
from collection.utils import TcmApiError
from tests.conftest import FakeSource, make_suite


def _source():
    return FakeSource(suites=[make_suite(1, None, 'Root'), make_suite(2, 1, 'Child'), make_suite(3, 1, 'Leaf')])


def _pagination_runs(source):
    return sum(1 for call in source.suite_calls if call[1] is None)


class TestSuiteSnapshotCache:
    def test_first_call_fetches_all_pages(self, clock):
        source = _source()
        cache = SuiteSnapshotCache(source.fetch_suite_page, clock=clock)
        suites = cache.get_snapshot('P')
        assert [s['id'] for s in suites] == [1, 2, 3]
        assert len(source.suite_calls) == 2
        assert all(call[2] == 100 for call in source.suite_calls)

    def test_hit_within_ttl(self, clock):
        source = _source()
        cache = SuiteSnapshotCache(source.fetch_suite_page, clock=clock)
        cache.get_snapshot('P')
        clock.advance(299)
        cache.get_snapshot('P')
        assert _pagination_runs(source) == 1

    def test_refetch_after_ttl(self, clock):
        source = _source()
        cache = SuiteSnapshotCache(source.fetch_suite_page, clock=clock)
        cache.get_snapshot('P')
        clock.advance(300)
        cache.get_snapshot('P')
        assert _pagination_runs(source) == 2

    def test_projects_are_cached_separately(self, clock):
        source = _source()
        cache = SuiteSnapshotCache(source.fetch_suite_page, clock=clock)
        cache.get_snapshot('P')
        cache.get_snapshot('Q')
        assert _pagination_runs(source) == 2

    def test_invalidate_forces_refetch(self, clock):
        source = _source()
        cache = SuiteSnapshotCache(source.fetch_suite_page, clock=clock)
        cache.get_snapshot('P')
        cache.invalidate('P')
        cache.get_snapshot('P')
        assert _pagination_runs(source) == 2

    def test_clear_forces_refetch(self, clock):
        source = _source()
        cache = SuiteSnapshotCache(source.fetch_suite_page, clock=clock)
        cache.get_snapshot('P')
        cache.clear()
        cache.get_snapshot('P')
        assert _pagination_runs(source) == 2

    def test_snapshot_is_not_mutated_by_callers(self, clock):
        cache = SuiteSnapshotCache(_source().fetch_suite_page, clock=clock)
        first = cache.get_snapshot('P')
        first.clear()
        assert len(cache.get_snapshot('P')) == 3

    def test_suite_records_are_not_mutated_by_callers(self, clock):
        cache = SuiteSnapshotCache(_source().fetch_suite_page, clock=clock)
        cache.get_snapshot('P')[0]['title'] = 'Changed'
        assert cache.get_snapshot('P')[0]['title'] == 'Root'
        assert cache.get_snapshot_record('P').suites[0]['title'] == 'Root'

    def test_record_timestamp(self, clock):
        cache = SuiteSnapshotCache(_source().fetch_suite_page, clock=clock)
        record = cache.get_snapshot_record('P')
        assert record.project_key == 'P'
        assert record.created_at == clock.now

    def test_normalizes_raw_records_and_drops_duplicates(self, clock):
        pages = {
            None: Page([{'id': 1, 'name': 'Root'}, {'id': 2, 'parentSuiteId': 1, 'title': 'Child'}], 't'),
            't': Page([{'id': 2, 'parentSuiteId': 1, 'title': 'Again'}], None),
        }
        cache = SuiteSnapshotCache(lambda key, token, size: pages[token], clock=clock)
        suites = cache.get_snapshot('P')
        assert [s['id'] for s in suites] == [1, 2]
        assert suites[0]['title'] == 'Root'
        assert suites[0]['parent_suite_id'] is None
        assert suites[1]['parent_suite_id'] == 1
        assert suites[1]['title'] == 'Child'

    def test_failure_propagates_and_is_not_cached(self, clock):
        calls = []

        def fetch(key, token, size):
            calls.append(token)
            if len(calls) == 1:
                raise TcmApiError('unavailable', status=503)
            return Page([make_suite(1)], None)

        cache = SuiteSnapshotCache(fetch, clock=clock)
        with pytest.raises(TcmApiError):
            cache.get_snapshot('P')
        assert [s['id'] for s in cache.get_snapshot('P')] == [1]

    def test_concurrent_misses_share_one_fetch(self, clock):
        started = threading.Event()
        release = threading.Event()
        calls = []

        def fetch(key, token, size):
            calls.append(token)
            started.set()
            release.wait(5)
            return Page([make_suite(1), make_suite(2, 1)], None)

        cache = SuiteSnapshotCache(fetch, clock=clock)
        results = []
        threads = [threading.Thread(target=lambda: results.append(cache.get_snapshot('P'))) for _ in range(5)]
        threads[0].start()
        started.wait(5)
        for thread in threads[1:]:
            thread.start()
        time.sleep(0.05)
        release.set()
        for thread in threads:
            thread.join(5)

        assert calls == [None]
        assert len(results) == 5
        assert all([s['id'] for s in r] == [1, 2] for r in results)

    def test_waiters_receive_leader_error(self, clock):
        started = threading.Event()
        release = threading.Event()

        def fetch(key, token, size):
            started.set()
            release.wait(5)
            raise TcmApiError('down', status=502)

        cache = SuiteSnapshotCache(fetch, clock=clock)
        errors = []

        def call():
            try:
                cache.get_snapshot('P')
            except TcmApiError as e:
                errors.append(e)

        threads = [threading.Thread(target=call) for _ in range(3)]
        threads[0].start()
        started.wait(5)
        for thread in threads[1:]:
            thread.start()
        time.sleep(0.05)
        release.set()
        for thread in threads:
            thread.join(5)
        assert len(errors) == 3

    def test_invalidate_during_fetch_discards_result(self, clock):
        cache = None
        calls = []

        def fetch(key, token, size):
            calls.append(token)
            if len(calls) == 1:
                cache.invalidate('P')
            return Page([make_suite(len(calls))], None)

        cache = SuiteSnapshotCache(fetch, clock=clock)
        assert [s['id'] for s in cache.get_snapshot('P')] == [1]
        assert [s['id'] for s in cache.get_snapshot('P')] == [2]
