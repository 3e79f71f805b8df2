"""
Zebrunner API Service - Handles configuration of the Zebrunner TCM public API client.
"""
import base64
import logging
from typing import Any, Dict, Optional

import certifi
import requests

from collection.utils import error_from_status, retry_with_backoff

logger = logging.getLogger(__name__)


class ZebrunnerService:
    """Service class for interacting with the Zebrunner TCM API."""
    
    def __init__(self, base_url: str, login: str, token: str, timeout: float = 30.0,
                 retry_attempts: int = 3, retry_delay: float = 1.0, debug: bool = False):
        """
        Initialize Zebrunner API client settings.
        
        Args:
            base_url: Public API base URL (e.g. https://workspace.zebrunner.com/api/public/v1)
            login: Zebrunner username
            token: Zebrunner API token
            timeout: Request timeout in seconds (default: 30)
            retry_attempts: Attempts per request for retryable failures (default: 3)
            retry_delay: Base backoff delay in seconds (default: 1)
            debug: Log every request and response (default: False)
        """
        if not base_url:
            raise ValueError("Zebrunner base URL is required")
        if not login or not token:
            raise ValueError("Zebrunner login and token are required")
        
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self.debug = debug
        
        basic = base64.b64encode(f'{login}:{token}'.encode('utf-8')).decode('ascii')
        self.headers = {
            'Authorization': f'Basic {basic}',
            'Content-Type': 'application/json',
            'Accept': 'application/json'
        }
    
    def _request(self, method: str, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f'{self.base_url}/{endpoint.lstrip("/")}'
        if self.debug:
            logger.debug(f"[API] {method} {url} params={params}")
        
        response = requests.request(
            method=method,
            url=url,
            headers=self.headers,
            params=params,
            timeout=self.timeout,
            verify=certifi.where()
        )
        
        if self.debug:
            logger.debug(f"[API] {response.status_code} - {url}")
        
        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            raise error_from_status(
                response.status_code,
                body=body,
                endpoint=endpoint,
                retry_after=response.headers.get('Retry-After')
            )
        
        try:
            return response.json()
        except ValueError:
            return None
    
    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET an endpoint with retry on rate limiting, server and connection errors.
        
        Args:
            endpoint: API endpoint (relative to base_url)
            params: Query parameters; None values are dropped
        
        Returns:
            Parsed JSON body
        """
        clean_params = {k: v for k, v in (params or {}).items() if v is not None}
        return retry_with_backoff(
            self._request,
            self.retry_attempts,
            self.retry_delay,
            'GET',
            endpoint,
            clean_params
        )
