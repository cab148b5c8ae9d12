"""Base API client with common functionality."""

import logging
from typing import Any, Optional

import requests

from .constants import DEFAULT_TIMEOUT_SECONDS, HTTP_FORBIDDEN, HTTP_UNAUTHORIZED
from .errors import RemoteError, Unauthenticated, Unreachable

logger = logging.getLogger(__name__)


class BaseAPIClient:
    """Base class for API clients with common request handling.

    Requests are made exactly once: retries are the caller's business.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        headers: Optional[dict] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """Initialize API client with project key."""
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()

        default_headers = {
            "apikey": api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if headers:
            default_headers.update(headers)

        self.session.headers.update(default_headers)

    def _handle_auth_error(self, response: requests.Response, service_name: str) -> None:
        """Handle authentication errors consistently."""
        if response.status_code in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
            logger.error(f"{service_name} authentication failed (HTTP {response.status_code})")
            logger.error(f"{service_name} access token is invalid or expired")
            raise Unauthenticated(f"{service_name} rejected the session (HTTP {response.status_code})")

    def _request(
        self,
        method: str,
        path: str,
        access_token: str,
        service_name: str,
        **kwargs,
    ) -> Any:
        """Send one request and map failures onto the error taxonomy."""
        url = f"{self.base_url}{path}"
        headers = {"Authorization": f"Bearer {access_token}", **kwargs.pop("headers", {})}

        try:
            response = self.session.request(
                method, url, headers=headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.warning(f"{service_name} unreachable: {e}")
            raise Unreachable(f"{service_name} unreachable", cause=e) from e

        self._handle_auth_error(response, service_name)

        if not response.ok:
            raise self._remote_error(response, service_name)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{service_name} returned a non-JSON body (HTTP {response.status_code})")
            raise RemoteError(
                code=str(response.status_code), message=f"Invalid JSON body: {e}", status=response.status_code
            ) from e

    @staticmethod
    def _remote_error(response: requests.Response, service_name: str) -> RemoteError:
        """Build a RemoteError from a backend error body."""
        code = str(response.status_code)
        message = response.text
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict):
            code = str(body.get("code") or code)
            message = body.get("message") or body.get("error") or message

        logger.error(f"{service_name} API error: {response.status_code} [{code}] {message}")
        return RemoteError(code=code, message=message, status=response.status_code)
