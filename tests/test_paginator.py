"""Tests for cursor pagination."""
import threading
from unittest.mock import Mock

import pytest

from collection.paginator import PAGE_SAFETY_LIMIT, Page, collect_all_pages
from collection.utils import CollectionCancelled, CollectionStats, TcmApiError


def _scripted(pages):
    """Fetch function serving ``pages`` keyed by the token that requests them."""
    calls = []

    def fetch(token):
        calls.append(token)
        return pages[token]

    return fetch, calls


class TestCollectAllPages:
    def test_three_pages_in_order(self):
        fetch, calls = _scripted({
            None: Page(['a1', 'a2'], 'B'),
            'B': Page(['b1'], 'C'),
            'C': Page(['c1', 'c2'], None),
        })
        items = collect_all_pages(fetch, sleep=lambda s: None)
        assert items == ['a1', 'a2', 'b1', 'c1', 'c2']
        assert calls == [None, 'B', 'C']

    def test_empty_page_with_token_is_followed(self):
        fetch, calls = _scripted({
            None: Page([], 'next'),
            'next': Page(['x'], ''),
        })
        assert collect_all_pages(fetch, sleep=lambda s: None) == ['x']
        assert len(calls) == 2

    def test_full_page_without_token_stops(self):
        fetch, calls = _scripted({None: Page(list(range(100)), None)})
        assert len(collect_all_pages(fetch)) == 100
        assert calls == [None]

    def test_max_items_truncates_without_reordering(self):
        fetch, calls = _scripted({
            None: Page([1, 2, 3], 'B'),
            'B': Page([4, 5, 6], 'C'),
            'C': Page([7], None),
        })
        assert collect_all_pages(fetch, max_items=4, sleep=lambda s: None) == [1, 2, 3, 4]
        assert calls == [None, 'B']

    def test_max_items_zero_fetches_nothing(self):
        fetch = Mock()
        assert collect_all_pages(fetch, max_items=0) == []
        fetch.assert_not_called()

    def test_progress_called_once_per_page(self):
        fetch, _ = _scripted({
            None: Page([1, 2], 'B'),
            'B': Page([3], None),
        })
        progress = Mock()
        collect_all_pages(fetch, on_progress=progress, sleep=lambda s: None)
        assert [c.args for c in progress.call_args_list] == [(2, 1), (3, 2)]

    def test_safety_limit_stops_endless_source(self):
        fetch = Mock(side_effect=lambda token: Page(['x'], 'again'))
        stats = CollectionStats()
        items = collect_all_pages(fetch, stats=stats, entity_type='suites', sleep=lambda s: None)
        assert fetch.call_count == PAGE_SAFETY_LIMIT
        assert len(items) == PAGE_SAFETY_LIMIT
        assert stats.truncated == [{'entity_type': 'suites', 'pages': PAGE_SAFETY_LIMIT}]

    def test_max_pages_caps_below_safety_limit(self):
        fetch = Mock(side_effect=lambda token: Page(['x'], 'again'))
        items = collect_all_pages(fetch, max_pages=3, sleep=lambda s: None)
        assert fetch.call_count == 3
        assert items == ['x', 'x', 'x']

    def test_pauses_after_every_tenth_page(self):
        pages = {None: Page([0], '1')}
        for i in range(1, 25):
            pages[str(i)] = Page([i], str(i + 1) if i < 24 else None)
        fetch, _ = _scripted(pages)
        sleep = Mock()
        items = collect_all_pages(fetch, sleep=sleep)
        assert items == list(range(25))
        assert sleep.call_count == 2
        sleep.assert_called_with(0.1)

    def test_fetch_error_propagates(self):
        def fetch(token):
            if token is None:
                return Page([1], 'B')
            raise TcmApiError('boom', status=500)

        with pytest.raises(TcmApiError):
            collect_all_pages(fetch)

    def test_cancel_event_checked_between_pages(self):
        cancel = threading.Event()

        def fetch(token):
            cancel.set()
            return Page([1], 'more')

        with pytest.raises(CollectionCancelled):
            collect_all_pages(fetch, cancel_event=cancel)

    def test_records_stats(self):
        fetch, _ = _scripted({None: Page([1, 2], 'B'), 'B': Page([3], None)})
        stats = CollectionStats()
        collect_all_pages(fetch, stats=stats, entity_type='test cases')
        assert stats.entities_collected == {'test cases': 3}
        assert stats.pages_fetched == {'test cases': 2}
        assert stats.truncated == []
