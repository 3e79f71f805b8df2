"""
Zebrunner TCM source - cursor-paginated suites and test cases from the public API.
"""
import logging
from typing import Any, Dict, Optional

from zebrunner_service import ZebrunnerService
from collection.paginator import Page
from collection.utils import extract_items_and_token, TcmApiError

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class ZebrunnerSource:
    """Reads suites and test cases through a ZebrunnerService."""

    def __init__(self, service: ZebrunnerService):
        self.service = service

    def fetch_suite_page(self, project_key: str, page_token: Optional[str] = None,
                         page_size: int = MAX_PAGE_SIZE) -> Page:
        """Fetch one page of the project's suites."""
        if not project_key:
            raise ValueError("Project key is required")
        data = self.service.get('/test-suites', {
            'projectKey': project_key,
            'maxPageSize': min(page_size, MAX_PAGE_SIZE),
            'pageToken': page_token
        })
        items, next_token = extract_items_and_token(data)
        return Page(items, next_token)

    def fetch_test_case_page(self, project_key: str, filter: Optional[str] = None,
                             page_token: Optional[str] = None, page_size: int = MAX_PAGE_SIZE) -> Page:
        """Fetch one page of the project's test cases, optionally narrowed by a filter expression."""
        if not project_key:
            raise ValueError("Project key is required")
        if filter:
            logger.debug(f"Using test case filter: {filter}")
        data = self.service.get('/test-cases', {
            'projectKey': project_key,
            'maxPageSize': min(page_size, MAX_PAGE_SIZE),
            'pageToken': page_token,
            'filter': filter or None
        })
        items, next_token = extract_items_and_token(data)
        return Page(items, next_token)

    def fetch_test_case_by_key(self, project_key: str, key: str) -> Dict[str, Any]:
        """Fetch a single test case by its key (e.g. ``PROJ-42``)."""
        if not project_key:
            raise ValueError("Project key is required")
        if not key:
            raise ValueError("Test case key is required")
        data = self.service.get(f'/test-cases/key:{key}', {'projectKey': project_key})
        if isinstance(data, dict) and isinstance(data.get('data'), dict):
            data = data['data']
        if not isinstance(data, dict):
            raise TcmApiError(f"Unexpected response format for test case {key}", body=data)
        return data
