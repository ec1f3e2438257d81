"""
Microsoft Graph API Client

Provides authenticated access to Microsoft Graph API using MSAL (Microsoft Authentication Library).
Used for Outlook calendar access and outbound mail.
"""

import logging
import time
from typing import Any, Dict, Optional, List
from datetime import datetime, timedelta
import requests
from msal import ConfidentialClientApplication

from ..core.config import GraphAPIConfig
from ..core.exceptions import GraphAPIError, GraphAPIAuthenticationError, GraphAPIRateLimitError


logger = logging.getLogger(__name__)


class GraphAPIClient:
    """
    Microsoft Graph API client with MSAL authentication.

    Supports:
    - Client credentials flow (application permissions)
    - Token refresh on 401 responses
    - Rate limit handling (429 responses with Retry-After)
    - Exponential backoff on 5xx responses

    Usage:
        config = GraphAPIConfig(client_id='...', client_secret='...', tenant_id='...', authority='')
        client = GraphAPIClient(config)
        events = client.get_paged('/users/rep@example.com/calendarView', params={...})
    """

    BASE_URL = "https://graph.microsoft.com/v1.0"

    # Upper bound on any single Retry-After / backoff sleep
    MAX_WAIT_SECONDS = 60

    def __init__(self, config: GraphAPIConfig, timeout_seconds: int = 30, max_retries: int = 3):
        """
        Initialize Graph API client.

        Args:
            config: GraphAPIConfig with client credentials
            timeout_seconds: Per-request timeout
            max_retries: Retries for 401/429/5xx responses
        """
        self.config = config
        self.base_url = self.BASE_URL
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self._access_token: Optional[str] = None
        self._token_expires_at: Optional[datetime] = None
        self.session = requests.Session()

        self._msal_client = ConfidentialClientApplication(
            client_id=config.client_id,
            client_credential=config.client_secret,
            authority=config.authority or f"https://login.microsoftonline.com/{config.tenant_id}",
        )

        logger.info(f"GraphAPIClient initialized (tenant: {config.tenant_id[:8]}...)")

    def _authenticate(self) -> str:
        """
        Acquire access token using client credentials flow.

        Raises:
            GraphAPIAuthenticationError: If authentication fails
        """
        if self._access_token and self._token_expires_at:
            if datetime.now() < self._token_expires_at - timedelta(minutes=5):
                return self._access_token

        logger.info("Acquiring new access token from Microsoft Identity Platform")
        try:
            result = self._msal_client.acquire_token_for_client(scopes=self.config.scopes)
        except Exception as e:
            logger.error(f"Authentication failed: {e}", exc_info=True)
            raise GraphAPIAuthenticationError(f"Graph API authentication failed: {e}")

        if "access_token" not in result:
            error_desc = result.get("error_description", result.get("error", "Unknown error"))
            raise GraphAPIAuthenticationError(f"Failed to acquire token: {error_desc}")

        self._access_token = result["access_token"]
        expires_in = result.get("expires_in", 3600)
        self._token_expires_at = datetime.now() + timedelta(seconds=expires_in)

        logger.info(f"Access token acquired successfully (expires in {expires_in}s)")
        return self._access_token

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        try:
            return response.json().get("error", {}).get("message", response.text)
        except ValueError:
            return response.text

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            # @odata.nextLink values are absolute
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        """
        Make authenticated request to Graph API.

        401 drops the cached token and retries; 429 waits for Retry-After;
        5xx backs off exponentially. Other 4xx responses fail at once.

        Raises:
            GraphAPIError: If the request fails
            GraphAPIRateLimitError: If still rate limited after max_retries
            GraphAPIAuthenticationError: If a token cannot be acquired or keeps being rejected
        """
        url = self._url(endpoint)

        for attempt in range(self.max_retries + 1):
            request_headers = {"Authorization": f"Bearer {self._authenticate()}", "Accept": "application/json"}
            if headers:
                request_headers.update(headers)

            logger.debug(f"{method} {url} (attempt {attempt + 1}/{self.max_retries + 1})")
            try:
                response = self.session.request(
                    method, url, params=params, json=json, headers=request_headers, timeout=self.timeout_seconds
                )
            except requests.RequestException as e:
                raise GraphAPIError(f"{method} {url} failed: {e}")

            status = response.status_code
            last_try = attempt == self.max_retries

            if status == 401:
                detail = self._error_detail(response)
                if last_try:
                    raise GraphAPIAuthenticationError(f"Graph API rejected token: {detail}")
                logger.warning(f"401 from Graph API ({detail}), refreshing token")
                self._access_token = None
                self._token_expires_at = None
                continue

            if status == 429:
                if last_try:
                    raise GraphAPIRateLimitError(f"Rate limit exceeded after {self.max_retries} retries")
                wait = min(int(response.headers.get("Retry-After", 10)), self.MAX_WAIT_SECONDS)
                logger.warning(f"Rate limited (429), waiting {wait}s")
                time.sleep(wait)
                continue

            if status >= 500:
                if last_try:
                    raise GraphAPIError(f"Server error after {self.max_retries} retries: {status}")
                wait = min(2**attempt, self.MAX_WAIT_SECONDS)
                logger.warning(f"Server error ({status}), waiting {wait}s")
                time.sleep(wait)
                continue

            if status >= 400:
                raise GraphAPIError(f"{method} {url} failed: {status} - {self._error_detail(response)}")

            return response

        raise GraphAPIError(f"{method} {url} failed after {self.max_retries} retries")

    def get(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        return self._request("GET", endpoint, params=params, headers=headers).json()

    def post(self, endpoint: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """POST; sendMail and event cancel answer 202 with no body."""
        response = self._request("POST", endpoint, json=json)
        return response.json() if response.content else {}

    def patch(self, endpoint: str, json: Dict[str, Any]) -> Dict[str, Any]:
        response = self._request("PATCH", endpoint, json=json)
        return response.json() if response.content else {}

    def get_paged(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        max_pages: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> List[Dict[str, Any]]:
        """
        GET following @odata.nextLink.

        Args:
            endpoint: API endpoint
            params: Query parameters for the first page (nextLink already carries them)
            max_pages: Stop after this many pages (None = all)
            headers: Extra headers sent with every page
        """
        items: List[Dict[str, Any]] = []
        pages = 0
        next_link: Optional[str] = endpoint

        while next_link and not (max_pages and pages >= max_pages):
            page = self.get(next_link, params=params if pages == 0 else None, headers=headers)
            items.extend(page.get("value", []))
            pages += 1
            next_link = page.get("@odata.nextLink")

        logger.debug(f"Fetched {len(items)} items in {pages} page(s) from {endpoint}")
        return items
