"""
Sources - page fetchers for the supported test-management services.

Every source exposes ``fetch_suite_page(project_key, page_token, page_size)``,
``fetch_test_case_page(project_key, filter, page_token, page_size)`` and
``fetch_test_case_by_key(project_key, key)``; page methods return a
``collection.paginator.Page``.
"""
from collection.sources.zebrunner import ZebrunnerSource
from collection.sources.qase import QaseSource

__all__ = [
    'ZebrunnerSource',
    'QaseSource',
]
