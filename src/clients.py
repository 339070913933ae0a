"""
REST API client for the Rancher v1 API.
"""

import logging
import re
import time
from typing import Dict, List, Optional

import requests
from requests.auth import HTTPBasicAuth

from config import DEFAULT_SERVER_URL
from errors import RancherApiError
from models import ServiceRef

logger = logging.getLogger(__name__)

API_VERSION = "v1"
_VERSION_SUFFIX = re.compile(r"/v\d[\w-]*$")

# Services in these states are gone and must not shadow live ones
REMOVED_STATES = {"removed", "purged"}


class RancherRestClient:
    """REST client for Rancher services and their actions."""

    RETRYABLE_STATUS_CODES = {429, 502, 503, 504}
    # Actions are not idempotent; retry only responses that prove the server
    # did not act on the request
    ACTION_RETRYABLE_STATUS_CODES = {429, 503}

    def __init__(
        self,
        server_url: str = DEFAULT_SERVER_URL,
        access_key: str = "",
        secret_key: str = "",
        timeout_s: int = 60,
        max_retries: int = 5,
        base_delay: float = 2.0,
    ):
        """
        Initialize the Rancher REST client.

        Args:
            server_url: Rancher server URL, optionally including the API version
            access_key: API access key
            secret_key: API secret key
            timeout_s: Request timeout in seconds
            max_retries: Maximum number of retries for transient errors
            base_delay: Base delay for exponential backoff
        """
        self.base_url = self._api_base(server_url)
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.base_delay = base_delay

        self.session = requests.Session()
        if access_key or secret_key:
            self.session.auth = HTTPBasicAuth(access_key, secret_key)
        self.session.headers.update({"Accept": "application/json"})

    @staticmethod
    def _api_base(server_url: str) -> str:
        base = (server_url or DEFAULT_SERVER_URL).rstrip("/")
        if not _VERSION_SUFFIX.search(base):
            base = f"{base}/{API_VERSION}"
        return base

    def _url(self, path: str) -> str:
        """Construct full API URL from path."""
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request_with_retry(
        self, method: str, url: str, idempotent: bool = True, **kwargs
    ) -> requests.Response:
        """
        Execute HTTP request with exponential backoff retry for transient errors.

        Args:
            method: HTTP method (GET, POST)
            url: Request URL
            idempotent: Whether the request may be resent after it could have
                reached the server
            **kwargs: Additional request parameters

        Returns:
            The final response

        Raises:
            RancherApiError: If max retries exceeded, or a non-idempotent
                request failed in a way that is unsafe to retry
        """
        last_error = None

        for attempt in range(self.max_retries + 1):
            try:
                if method.upper() == "GET":
                    resp = self.session.get(url, timeout=self.timeout_s, **kwargs)
                elif method.upper() == "POST":
                    resp = self.session.post(url, timeout=self.timeout_s, **kwargs)
                else:
                    raise ValueError(f"Unsupported method: {method}")
            except requests.RequestException as e:
                if not idempotent and not isinstance(e, requests.ConnectTimeout):
                    raise RancherApiError(
                        f"{method.upper()} {url} failed and was not retried: {e}"
                    ) from e
                delay = self._calculate_delay(attempt)
                logger.warning(
                    f"Request error: {e}, attempt {attempt + 1}/{self.max_retries + 1}, waiting {delay:.1f}s..."
                )
                last_error = str(e)
                time.sleep(delay)
                continue

            if self._should_retry(resp, idempotent):
                delay = self._calculate_delay(attempt, resp)
                error_info = self._error_message(resp)
                logger.warning(
                    f"Retryable error {resp.status_code} ({error_info}), attempt {attempt + 1}/{self.max_retries + 1}, waiting {delay:.1f}s..."
                )
                last_error = f"HTTP {resp.status_code}: {error_info}"
                time.sleep(delay)
                continue

            return resp

        raise RancherApiError(f"Max retries exceeded. Last error: {last_error}")

    def _should_retry(self, resp, idempotent: bool) -> bool:
        if idempotent:
            return resp.status_code in self.RETRYABLE_STATUS_CODES
        if resp.status_code not in self.ACTION_RETRYABLE_STATUS_CODES:
            return False
        return resp.status_code == 429 or "Retry-After" in resp.headers

    @staticmethod
    def _error_message(resp) -> str:
        """Extract Rancher's error message from a response body."""
        try:
            data = resp.json()
        except ValueError:
            return resp.text[:200]
        if isinstance(data, dict):
            return str(data.get("message") or data.get("code") or "")[:200]
        return resp.text[:200]

    def _calculate_delay(self, attempt: int, resp=None) -> float:
        """
        Calculate delay with exponential backoff and jitter.

        Args:
            attempt: Current attempt number
            resp: Optional response object (to check Retry-After header)

        Returns:
            Delay in seconds
        """
        if resp is not None and "Retry-After" in resp.headers:
            try:
                return float(resp.headers["Retry-After"])
            except ValueError:
                pass

        delay = self.base_delay * (2**attempt)
        jitter = delay * 0.2 * (0.5 - time.time() % 1)
        return min(delay + jitter, 60.0)

    def _json(self, resp: requests.Response, what: str) -> Dict:
        try:
            data = resp.json()
        except ValueError as e:
            raise RancherApiError(
                f"{what} returned a non-JSON body", resp.status_code
            ) from e
        if not isinstance(data, dict):
            raise RancherApiError(
                f"{what} returned unexpected response: {data!r}", resp.status_code
            )
        return data

    def list_services(self) -> List[ServiceRef]:
        """
        List all services visible to the API key.

        Returns:
            List of ServiceRef objects, removed services excluded

        Raises:
            RancherApiError: If API call fails
        """
        url: Optional[str] = self._url("services")
        services: List[ServiceRef] = []

        while url:
            resp = self._request_with_retry("GET", url)
            if resp.status_code != 200:
                raise RancherApiError(
                    f"List services failed ({resp.status_code}): {self._error_message(resp)}",
                    resp.status_code,
                )

            data = self._json(resp, "List services")
            for item in data.get("data", []):
                if str(item.get("state", "")).lower() in REMOVED_STATES:
                    continue
                services.append(ServiceRef(name=item["name"], identifier=item["id"]))

            url = (data.get("pagination") or {}).get("next")

        return services

    def get_service(self, identifier: str) -> Dict:
        """
        Get the current representation of a service.

        Args:
            identifier: Rancher service id

        Returns:
            Service resource as dictionary, including its ``actions`` map

        Raises:
            RancherApiError: If API call fails
        """
        resp = self._request_with_retry("GET", self._url(f"services/{identifier}"))
        if resp.status_code != 200:
            raise RancherApiError(
                f"Get service {identifier} failed ({resp.status_code}): {self._error_message(resp)}",
                resp.status_code,
            )
        return self._json(resp, f"Get service {identifier}")

    def invoke_action(
        self, identifier: str, action: str, payload: Optional[Dict] = None
    ) -> Dict:
        """
        Invoke an action on a service.

        Args:
            identifier: Rancher service id
            action: Action name, e.g. ``upgrade`` or ``finishupgrade``
            payload: JSON body for the action input

        Returns:
            Updated service resource

        Raises:
            RancherApiError: If API call fails or the action is rejected
        """
        url = self._url(f"services/{identifier}/")
        resp = self._request_with_retry(
            "POST",
            url,
            idempotent=False,
            params={"action": action},
            json=payload or {},
        )
        if resp.status_code not in (200, 201, 202):
            raise RancherApiError(
                f"{action} on service {identifier} failed ({resp.status_code}): {self._error_message(resp)}",
                resp.status_code,
            )
        return self._json(resp, f"{action} on service {identifier}")
