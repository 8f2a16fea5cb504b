"""
Minimal HTTP client used by the suite to talk to management APIs.

Requests carry basic auth and custom headers, and responses are returned as
body strings. Connection problems and error statuses raise TransportError so
callers, and the poller, can treat them uniformly.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import parse_qsl, urlencode

import requests

from .errors import TransportError

logger = logging.getLogger(__name__)


@dataclass
class HTTPRequest:
    """Description of a single HTTP request."""

    url: str
    basic_auth_user: Optional[str] = None
    basic_auth_password: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    payload: Optional[bytes] = None
    query_string: str = ""
    # Kibana refuses some encoded query strings, so allow sending them verbatim
    encode_url: bool = True
    timeout: float = 30.0

    def get_url(self) -> str:
        """Full URL including the query string."""
        if not self.query_string:
            return self.url

        query = self.query_string
        if self.encode_url:
            query = urlencode(parse_qsl(self.query_string, keep_blank_values=True))

        separator = "&" if "?" in self.url else "?"
        return f"{self.url}{separator}{query}"


def _send(method: str, request: HTTPRequest) -> str:
    url = request.get_url()
    auth = None
    if request.basic_auth_user is not None:
        auth = (request.basic_auth_user, request.basic_auth_password or "")

    logger.debug(f"{method} {url}")

    try:
        response = requests.request(
            method,
            url,
            auth=auth,
            headers=request.headers,
            data=request.payload,
            timeout=request.timeout,
        )
    except requests.exceptions.RequestException as e:
        raise TransportError(f"{method} {url} failed: {e}", url=url) from e

    body = response.text
    if response.status_code >= 400:
        raise TransportError(
            f"{method} {url} returned HTTP {response.status_code}",
            url=url,
            status_code=response.status_code,
            body=body,
        )

    return body


def get(request: HTTPRequest) -> str:
    """Send a GET request and return the response body."""
    return _send("GET", request)


def post(request: HTTPRequest) -> str:
    """Send a POST request and return the response body."""
    return _send("POST", request)


def delete(request: HTTPRequest) -> str:
    """Send a DELETE request and return the response body."""
    return _send("DELETE", request)
