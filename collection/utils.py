"""
Collection utilities - Error types, retry handling, response helpers and run statistics.
"""
import logging
import time
from typing import Dict, Any, Optional, List
from datetime import datetime

import requests


logger = logging.getLogger(__name__)


class TcmApiError(Exception):
    """Raised when the test-management service rejects or fails a request."""

    def __init__(self, message: str, status: Optional[int] = None, body: Any = None,
                 endpoint: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.body = body
        self.endpoint = endpoint

    def __str__(self):
        parts = [super().__str__()]
        if self.status:
            parts.append(f"status {self.status}")
        if self.endpoint:
            parts.append(f"endpoint {self.endpoint}")
        return ' - '.join(parts)


class TcmAuthError(TcmApiError):
    """Credentials were rejected. Never retried."""


class TcmNotFoundError(TcmApiError):
    """Endpoint or resource does not exist."""


class TcmRateLimitError(TcmApiError):
    """The service asked us to slow down."""

    def __init__(self, message: str = 'Rate limit exceeded', retry_after: Optional[int] = None, **kwargs):
        super().__init__(message, status=429, **kwargs)
        self.retry_after = retry_after


class CollectionCancelled(Exception):
    """Raised when a paginated collection is cancelled between pages."""


def error_from_status(status: int, body: Any = None, endpoint: Optional[str] = None,
                      retry_after: Optional[str] = None) -> TcmApiError:
    """
    Map an HTTP status to the matching error type.
    
    Args:
        status: HTTP status code
        body: Response body (parsed JSON or text)
        endpoint: Requested endpoint
        retry_after: Value of the Retry-After header, if any
    
    Returns:
        TcmApiError (or subclass) instance
    """
    if status in (401, 403):
        return TcmAuthError('Authentication failed. Check your credentials and token.',
                            status=status, body=body, endpoint=endpoint)
    if status == 404:
        return TcmNotFoundError(f"Endpoint or resource not found: {endpoint or 'unknown'}",
                                status=status, body=body, endpoint=endpoint)
    if status == 429:
        try:
            wait = int(retry_after) if retry_after else None
        except ValueError:
            wait = None
        return TcmRateLimitError(retry_after=wait, body=body, endpoint=endpoint)
    if status == 400:
        message = 'Bad request'
        if isinstance(body, dict) and body.get('message'):
            message = f"Bad request: {body['message']}"
        elif isinstance(body, str) and body:
            message = f"Bad request: {body}"
        return TcmApiError(message, status=status, body=body, endpoint=endpoint)
    return TcmApiError('API request failed', status=status, body=body, endpoint=endpoint)


def _is_retryable(error: Exception) -> bool:
    if isinstance(error, TcmAuthError):
        return False
    if isinstance(error, TcmRateLimitError):
        return True
    if isinstance(error, TcmApiError):
        return error.status is None or error.status >= 500
    return isinstance(error, (requests.ConnectionError, requests.Timeout))


def retry_with_backoff(func, max_retries: int = 3, base_delay: float = 1.0, *args, **kwargs):
    """
    Retry function with exponential backoff.
    
    Rate limiting, server errors and connection failures are retried; any
    other failure (including authentication errors) is raised immediately.
    
    Args:
        func: Function to retry
        max_retries: Maximum number of attempts
        base_delay: Base delay in seconds
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func
    
    Returns:
        Function result
    """
    for attempt in range(max_retries):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if not _is_retryable(e) or attempt == max_retries - 1:
                if isinstance(e, TcmApiError):
                    logger.error(f"API exception: {e}")
                    if e.body:
                        logger.error(f"Error details: {e.body}")
                raise
            delay = base_delay * (2 ** attempt)
            if isinstance(e, TcmRateLimitError) and e.retry_after:
                delay = max(delay, e.retry_after)
            logger.warning(f"Request failed ({e}), retrying in {delay}s "
                           f"(attempt {attempt + 1}/{max_retries})")
            time.sleep(delay)


def to_dict(obj: Any) -> Dict[str, Any]:
    """
    Convert object to dictionary.
    
    Args:
        obj: Object to convert
    
    Returns:
        Dictionary representation
    """
    if hasattr(obj, 'to_dict'):
        return obj.to_dict()
    elif isinstance(obj, dict):
        return obj
    elif hasattr(obj, '__dict__'):
        return obj.__dict__
    else:
        return {}


def extract_entities_from_response(response: Any) -> List:
    """
    Extract entities list from Qase API response.
    Handles different response structures: response.result.entities or response.entities
    
    Args:
        response: API response object
    
    Returns:
        List of entities (empty when the response carries none)
    """
    if not response:
        return []
    
    if hasattr(response, 'status') and hasattr(response, 'result'):
        if not response.status or not response.result:
            return []
        entities = getattr(response.result, 'entities', None)
    else:
        entities = getattr(response, 'entities', None)
    
    return list(entities) if entities else []


def extract_items_and_token(data: Any):
    """
    Split a cursor-paginated payload into (items, next_page_token).
    
    Accepts either a bare list or an object with ``items`` and an optional
    ``_meta.nextPageToken``.
    """
    if isinstance(data, list):
        return data, None
    if isinstance(data, dict) and 'items' in data:
        meta = data.get('_meta') or data.get('meta') or {}
        return data.get('items') or [], meta.get('nextPageToken') or None
    raise TcmApiError('Unexpected response format from paginated endpoint', body=data)


def normalize_suite(raw: Any) -> Dict[str, Any]:
    """Copy a raw suite record and add the ``title``/``parent_suite_id`` keys the resolver reads."""
    suite = dict(to_dict(raw))
    parent_id = suite.get('parent_suite_id', suite.get('parentSuiteId', suite.get('parent_id')))
    suite['parent_suite_id'] = parent_id or None
    if not suite.get('title'):
        suite['title'] = suite.get('name') or None
    return suite


def normalize_test_case(raw: Any) -> Dict[str, Any]:
    """Copy a raw test case record and add the ``suite_id`` key pointing at its immediate suite."""
    test_case = dict(to_dict(raw))
    suite_ref = test_case.get('testSuite') or test_case.get('test_suite') or {}
    suite_id = suite_ref.get('id') if isinstance(suite_ref, dict) else None
    if suite_id is None:
        suite_id = test_case.get('suite_id')
    test_case['suite_id'] = suite_id
    return test_case


class CollectionStats:
    """Tracks collection statistics."""
    
    def __init__(self):
        self.entities_collected = {}
        self.pages_fetched = {}
        self.orphaned_test_cases = {}
        self.truncated = []
        self.errors = []
    
    def add_entity(self, entity_type: str, count: int, pages: int = 0):
        """Record collected entities. Accumulates counts across multiple calls."""
        self.entities_collected[entity_type] = self.entities_collected.get(entity_type, 0) + count
        self.pages_fetched[entity_type] = self.pages_fetched.get(entity_type, 0) + pages
    
    def add_orphan(self, test_case_key: str, suite_id: int):
        """Record a test case whose suite is missing from the snapshot. Repeats are recorded once."""
        self.orphaned_test_cases[test_case_key] = suite_id
    
    def add_truncation(self, entity_type: str, pages: int):
        """Record a collection stopped by the page safety limit."""
        self.truncated.append({'entity_type': entity_type, 'pages': pages})
    
    def add_error(self, entity_type: str, error: str):
        """Record an error."""
        self.errors.append({
            'entity_type': entity_type,
            'error': error,
            'timestamp': datetime.now().isoformat()
        })
    
    def print_summary(self):
        """Print collection summary."""
        print("\n" + "="*60)
        print("COLLECTION SUMMARY")
        print("="*60)
        for entity_type, count in self.entities_collected.items():
            pages = self.pages_fetched.get(entity_type, 0)
            print(f"{entity_type:30s}: {count} ({pages} pages)")
        print(f"\nOrphaned test cases: {len(self.orphaned_test_cases)}")
        for key, suite_id in list(self.orphaned_test_cases.items())[:10]:
            print(f"  - {key} -> missing suite {suite_id}")
        if self.truncated:
            print("\nTruncated collections:")
            for item in self.truncated:
                print(f"  - {item['entity_type']}: stopped after {item['pages']} pages")
        print(f"\nTotal Errors: {len(self.errors)}")
        if self.errors:
            print("\nErrors:")
            for error in self.errors[:10]:
                print(f"  - {error['entity_type']}: {error['error']}")
        print("="*60 + "\n")
