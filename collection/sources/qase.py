"""
Qase source - suites and test cases from a Qase project.

Qase pages by offset; the offset of the next page is handed out as the
opaque page token so the same cursor paginator drives both services.
"""
import logging
import re
from typing import Any, Dict, Optional

from qase.api_client_v1.api.cases_api import CasesApi
from qase.api_client_v1.api.suites_api import SuitesApi
from qase.api_client_v1.exceptions import ApiException
from qase_service import QaseService
from collection.paginator import Page
from collection.utils import (
    error_from_status,
    extract_entities_from_response,
    retry_with_backoff,
    to_dict,
    TcmNotFoundError,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _call(api_method, **kwargs):
    try:
        return api_method(**kwargs)
    except ApiException as e:
        raise error_from_status(e.status or 500, body=e.body,
                                endpoint=getattr(api_method, '__name__', None)) from e


def _next_offset_token(response: Any, offset: int, received: int, limit: int) -> Optional[str]:
    if not received:
        return None
    next_offset = offset + received
    total = getattr(getattr(response, 'result', None), 'total', None)
    if total is not None:
        return str(next_offset) if next_offset < total else None
    return str(next_offset) if received >= limit else None


class QaseSource:
    """Reads suites and test cases through a QaseService."""

    def __init__(self, service: QaseService):
        self.service = service
        self.suites_api = SuitesApi(service.client)
        self.cases_api = CasesApi(service.client)

    def fetch_suite_page(self, project_key: str, page_token: Optional[str] = None,
                         page_size: int = MAX_PAGE_SIZE) -> Page:
        """Fetch one page of the project's suites."""
        if not project_key:
            raise ValueError("Project key is required")
        offset = int(page_token or 0)
        limit = min(page_size, MAX_PAGE_SIZE)
        api_response = retry_with_backoff(
            _call,
            3,
            1.0,
            self.suites_api.get_suites,
            code=project_key,
            limit=limit,
            offset=offset
        )
        entities = [to_dict(suite) for suite in extract_entities_from_response(api_response)]
        return Page(entities, _next_offset_token(api_response, offset, len(entities), limit))

    def fetch_test_case_page(self, project_key: str, filter: Optional[str] = None,
                             page_token: Optional[str] = None, page_size: int = MAX_PAGE_SIZE) -> Page:
        """Fetch one page of the project's test cases; ``filter`` is passed as Qase's search string."""
        if not project_key:
            raise ValueError("Project key is required")
        offset = int(page_token or 0)
        limit = min(page_size, MAX_PAGE_SIZE)
        kwargs = {'code': project_key, 'limit': limit, 'offset': offset}
        if filter:
            kwargs['search'] = filter
        api_response = retry_with_backoff(_call, 3, 1.0, self.cases_api.get_cases, **kwargs)
        entities = []
        for case in extract_entities_from_response(api_response):
            case_dict = to_dict(case)
            if not case_dict.get('key') and case_dict.get('id') is not None:
                case_dict['key'] = f"{project_key}-{case_dict['id']}"
            entities.append(case_dict)
        return Page(entities, _next_offset_token(api_response, offset, len(entities), limit))

    def fetch_test_case_by_key(self, project_key: str, key: str) -> Dict[str, Any]:
        """Fetch a single test case by key (``PROJ-42``) or bare numeric id."""
        if not project_key:
            raise ValueError("Project key is required")
        match = re.search(r'(\d+)$', str(key or ''))
        if not match:
            raise ValueError(f"Invalid test case key: {key}")
        case_response = retry_with_backoff(
            _call,
            3,
            1.0,
            self.cases_api.get_case,
            code=project_key,
            id=int(match.group(1))
        )
        if not case_response or not getattr(case_response, 'result', None):
            raise TcmNotFoundError(f"Test case {key} not found in project {project_key}")
        case_dict = to_dict(case_response.result)
        case_dict.setdefault('key', key)
        return case_dict
