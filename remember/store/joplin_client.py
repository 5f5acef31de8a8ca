"""
Joplin Data API client.

HTTP wrapper around the REST API served by Joplin's Web Clipper service:
- ``GET /ping`` for connection checks
- ``GET|POST|PUT|DELETE /folders`` and ``/notes``
- ``GET /search?query=...``

Every request carries the authorization token as a query parameter. List
endpoints paginate with ``page``/``limit`` and answer ``{"items", "has_more"}``.

Hardening:
- Connection check with graceful degradation
- Configurable timeout with retry logic on server errors
- 404 responses mapped to NotFoundError, other failures to StoreError
"""

from __future__ import annotations

import time
from typing import Any

import requests
from loguru import logger
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config import get_settings
from remember.core.errors import NotFoundError, StoreError
from remember.store.base import DocumentStore, Path

DEFAULT_BACKOFF_FACTOR = 0.5  # 0.5, 1.0, 2.0 seconds between retries
RETRY_STATUS_CODES = [500, 502, 503, 504]
PING_RESPONSE = "JoplinClipperServer"


class JoplinClient(DocumentStore):
    """
    Best-effort wrapper around the Joplin Data API.

    The Web Clipper service must be enabled in Joplin (default port 41184).
    See: https://joplinapp.org/help/api/references/rest_api/
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: int | None = None,
        retries: int | None = None,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        page_size: int | None = None,
    ) -> None:
        """
        Initialize the client with retry logic.

        Args:
            base_url: Data API URL (default from config)
            token: Web Clipper authorization token (default from config)
            timeout: Request timeout in seconds
            retries: Number of retry attempts for failed requests
            backoff_factor: Exponential backoff factor between retries
            page_size: Items per page for list endpoints
        """
        settings = get_settings()
        self.base_url = (base_url or settings.joplin_api_url).rstrip("/")
        self.token = token if token is not None else settings.joplin_token
        self.timeout = timeout or settings.request_timeout
        self.page_size = page_size or settings.page_size
        self._last_connection_check = 0.0
        self._connection_available = False

        self.session = requests.Session()
        retry_strategy = Retry(
            total=retries if retries is not None else settings.request_retries,
            backoff_factor=backoff_factor,
            status_forcelist=RETRY_STATUS_CODES,
            allowed_methods=["GET", "PUT", "DELETE"],  # POST is not idempotent
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

        if not self.token:
            logger.warning("Joplin token missing. Set JOPLIN_TOKEN to enable the Data API.")

        logger.debug("Initialized Joplin client: url={}, timeout={}s", self.base_url, self.timeout)

    # ========================================
    # Core API Methods
    # ========================================

    def _url(self, path: Path) -> str:
        return self.base_url + "/" + "/".join(path)

    def _request(
        self,
        method: str,
        path: Path,
        query: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> Any:
        """
        Send one request to the Data API.

        Raises:
            NotFoundError: If the resource does not exist
            StoreError: If the request fails or Joplin reports an error
        """
        params = {k: v for k, v in (query or {}).items() if v is not None}
        if isinstance(params.get("fields"), (list, tuple)):
            params["fields"] = ",".join(params["fields"])
        params["token"] = self.token

        logger.debug(
            "Joplin request: {} /{} params={}",
            method,
            "/".join(path),
            {k: v for k, v in params.items() if k != "token"},
        )

        try:
            response = self.session.request(
                method,
                self._url(path),
                params=params,
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise StoreError(f"Joplin request {method} /{'/'.join(path)} failed: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(f"Joplin resource not found: /{'/'.join(path)}")
        if response.status_code >= 400:
            raise StoreError(
                f"Joplin error {response.status_code} on /{'/'.join(path)}: {response.text[:200]}"
            )

        if not response.content:
            return None
        data = response.json()
        if isinstance(data, dict) and data.get("error"):
            raise StoreError(f"Joplin error: {data['error']}")
        return data

    def get(self, path: Path, query: dict[str, Any] | None = None) -> dict[str, Any]:
        query = dict(query or {})
        if path and path[-1] in ("folders", "notes", "search"):
            query.setdefault("limit", self.page_size)
        data = self._request("GET", path, query=query)
        if isinstance(data, list):
            # Some endpoints (e.g. /folders on older versions) are not paginated
            return {"items": data, "has_more": False}
        return data

    def post(self, path: Path, body: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", path, body=body)

    def put(self, path: Path, body: dict[str, Any]) -> dict[str, Any]:
        return self._request("PUT", path, body=body)

    def delete(self, path: Path) -> None:
        self._request("DELETE", path)

    # ========================================
    # Health
    # ========================================

    def check_connection(self, cache_seconds: float = 30.0) -> bool:
        """
        Check if the Data API is reachable.

        Args:
            cache_seconds: Seconds to cache the connection status

        Returns:
            True if connection successful, False otherwise
        """
        now = time.monotonic()
        if self._last_connection_check and (now - self._last_connection_check) < cache_seconds:
            return self._connection_available

        self._last_connection_check = now
        try:
            response = self.session.get(self._url(["ping"]), timeout=min(self.timeout, 5))
            self._connection_available = response.ok and response.text.strip() == PING_RESPONSE
            if not self._connection_available:
                logger.warning("Unexpected /ping response from {}: {}", self.base_url, response.text[:100])
            return self._connection_available

        except requests.exceptions.ConnectionError:
            self._connection_available = False
            logger.warning(
                "Joplin not running or Web Clipper service disabled. "
                "Enable it under Options > Web Clipper."
            )
            return False

        except requests.exceptions.Timeout:
            self._connection_available = False
            logger.warning("Joplin /ping timed out")
            return False
