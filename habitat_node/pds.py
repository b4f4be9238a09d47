"""Client for the personal data server's XRPC endpoints."""

from __future__ import annotations

import base64
import ipaddress
import json
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

DEFAULT_PDS_HOST = "host.docker.internal"
DEFAULT_PDS_PORT = "5001"
DEFAULT_PDS_URL = f"http://{DEFAULT_PDS_HOST}:{DEFAULT_PDS_PORT}/xrpc"

_ACCEPTED_STATUSES = (200, 201)


class PDSError(Exception):
    """Raised when a PDS request fails or returns an unexpected answer."""


def basic_auth_header(username: str, password: str) -> str:
    """An HTTP Basic Authorization header value."""
    credentials = f"{username}:{password}".encode("utf-8")
    return "Basic " + base64.b64encode(credentials).decode("ascii")


def _is_loopback(host: str | None) -> bool:
    if not host:
        return False
    if host == "localhost":
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


class PDSClient:
    """Creates accounts and sessions on the PDS."""

    def __init__(
        self,
        username: str,
        password: str,
        base_url: str = DEFAULT_PDS_URL,
        timeout: float | None = None,
    ) -> None:
        self.username = username
        self._password = password
        self.base_url = base_url
        self.timeout = timeout

    def create_account(self, email: str, handle: str, password: str) -> dict[str, Any]:
        body = {"email": email, "handle": handle, "password": password}
        return self._call("com.atproto.server.createAccount", body)

    def create_session(self, identifier: str, password: str) -> dict[str, Any]:
        body = {"identifier": identifier, "password": password}
        return self._call("com.atproto.server.createSession", body)

    def _call(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        payload = json.dumps(body).encode("utf-8")
        response = self._request(endpoint, "POST", payload)
        try:
            decoded = json.loads(response)
        except (json.JSONDecodeError, UnicodeDecodeError) as err:
            raise PDSError(f"invalid PDS response: {err}") from err
        if decoded is None:
            return {}
        if not isinstance(decoded, dict):
            raise PDSError("invalid PDS response: expected a JSON object")
        return decoded

    def _request(self, endpoint: str, method: str, body: bytes, admin: bool = False) -> bytes:
        url = f"{self.base_url.rstrip('/')}/{endpoint}"
        headers = {"Content-Type": "application/json"}
        if admin:
            headers["Authorization"] = basic_auth_header(self.username, self._password)
        request = urllib.request.Request(url, data=body, headers=headers, method=method)

        if _is_loopback(urllib.parse.urlsplit(url).hostname):
            opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))
        else:
            opener = urllib.request.build_opener()
        kwargs = {} if self.timeout is None else {"timeout": self.timeout}

        try:
            with opener.open(request, **kwargs) as response:
                status, content = response.status, response.read()
        except urllib.error.HTTPError as err:
            status, content = err.code, err.read()
        except (urllib.error.URLError, OSError) as err:
            reason = getattr(err, "reason", err)
            raise PDSError(f"PDS request failed: {reason}") from err

        if status not in _ACCEPTED_STATUSES:
            text = content.decode("utf-8", errors="replace")
            raise PDSError(f"PDS returned status code {status}: {text}")
        return content