"""Shared fixtures and builders for collection tests."""
import pytest

from collection.paginator import Page


def make_suite(suite_id, parent_id=None, title=None, **extra):
    suite = {'id': suite_id, 'title': title, 'parent_suite_id': parent_id}
    suite.update(extra)
    return suite


def make_case(case_id, suite_id, key=None):
    return {'id': case_id, 'key': key or f"TC-{case_id}", 'testSuite': {'id': suite_id}}


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeSource:
    """In-memory source serving fixed pages; records every call."""

    def __init__(self, suites=None, cases=None, page_size=2):
        self.suites = suites or []
        self.cases = cases or []
        self.page_size = page_size
        self.suite_calls = []
        self.case_calls = []

    def _page(self, items, token):
        offset = int(token or 0)
        chunk = items[offset:offset + self.page_size]
        next_offset = offset + self.page_size
        return Page(chunk, str(next_offset) if next_offset < len(items) else None)

    def fetch_suite_page(self, project_key, page_token=None, page_size=100):
        self.suite_calls.append((project_key, page_token, page_size))
        return self._page(self.suites, page_token)

    def fetch_test_case_page(self, project_key, filter=None, page_token=None, page_size=100):
        self.case_calls.append((project_key, filter, page_token, page_size))
        return self._page(self.cases, page_token)

    def fetch_test_case_by_key(self, project_key, key):
        for case in self.cases:
            if case['key'] == key:
                return dict(case)
        raise KeyError(key)


@pytest.fixture
def sample_suites():
    return [
        make_suite(1, None, 'Root'),
        make_suite(2, 1, 'Child'),
        make_suite(5, 2, 'Grandchild'),
        make_suite(3, 1, 'Second Child'),
        make_suite(10, None, 'Other Root'),
    ]


@pytest.fixture
def clock():
    return FakeClock()
