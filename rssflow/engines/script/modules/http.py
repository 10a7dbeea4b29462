"""
``http`` binding for feed scripts: get(url, headers, timeout), post(url, data, headers, timeout).

Every request goes through HttpTransport, which the webhook binding shares.
A HostPolicy decides which URLs a script may reach: the host must match
SCRIPT_HTTP_ALLOWED_HOSTS and, while SCRIPT_HTTP_BLOCK_PRIVATE is on, every
address it resolves to must be public.

Calls never raise into the script. The result is always a dict:

    {"success": True, "status": 200, "data": <parsed JSON or text>}
    {"success": False, "error": "...", "status": 404 | None[, "data": ...]}
"""

import ipaddress
import logging
import socket
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import httpx

DEFAULT_HTTP_TIMEOUT = 10.0

_log = logging.getLogger(__name__)


def _is_public(addr: ipaddress.IPv4Address | ipaddress.IPv6Address) -> bool:
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped
    return not (
        addr.is_private
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_reserved
        or addr.is_unspecified
        or addr.is_multicast
    )


def _resolve(hostname: str) -> list[ipaddress.IPv4Address | ipaddress.IPv6Address]:
    try:
        return [ipaddress.ip_address(hostname)]
    except ValueError:
        pass
    try:
        infos = socket.getaddrinfo(hostname, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
    except (socket.gaierror, OSError):
        return []
    # scope ids ("fe80::1%eth0") are not part of the address
    return [ipaddress.ip_address(str(info[4][0]).split("%", 1)[0]) for info in infos]


@dataclass(frozen=True)
class HostPolicy:
    """
    Outbound URL policy for one script invocation.

    allowed_hosts patterns: "*" (any host), "api.example.com" (exact),
    "*.example.com" (subdomains only). An empty set allows nothing.
    """

    allowed_hosts: frozenset[str] = frozenset({"*"})
    block_private: bool = True

    def host_allowed(self, hostname: str) -> bool:
        for pattern in self.allowed_hosts:
            if pattern == "*" or pattern == hostname:
                return True
            if pattern.startswith("*.") and hostname.endswith(pattern[1:]):
                return True
        return False

    def check(self, url: str) -> None:
        """Raise PermissionError when url may not be requested."""
        parsed = urlparse(str(url))
        if parsed.scheme not in ("http", "https"):
            raise PermissionError(f"URL scheme '{parsed.scheme}' is not allowed; only http/https.")
        hostname = (parsed.hostname or "").lower()
        if not hostname:
            raise PermissionError("URL has no hostname.")
        if not self.host_allowed(hostname):
            allowed = ", ".join(sorted(self.allowed_hosts)) or "(none)"
            raise PermissionError(
                f"Host '{hostname}' is not in SCRIPT_HTTP_ALLOWED_HOSTS. Allowed: {allowed}."
            )
        if not self.block_private:
            return
        addresses = _resolve(hostname)
        if not addresses:
            raise PermissionError(f"Host '{hostname}' could not be resolved.")
        if not all(_is_public(a) for a in addresses):
            raise PermissionError(f"Requests to private or internal addresses are blocked: {hostname}")


def check_url_allowed(
    url: str, allowed_hosts: frozenset[str], *, block_private: bool = True
) -> None:
    HostPolicy(allowed_hosts=allowed_hosts, block_private=block_private).check(url)


def _response_data(resp: httpx.Response) -> Any:
    if "application/json" in resp.headers.get("content-type", ""):
        try:
            return resp.json()
        except ValueError:
            pass
    return resp.text


def failure(error: str, status: int | None = None) -> dict[str, Any]:
    return {"success": False, "error": error, "status": status}


class HttpTransport:
    """
    Request path shared by the http and webhook bindings.

    Holds one lazily created httpx.Client; it lives and dies with the sandbox
    process. transport is only for tests (httpx.MockTransport).
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        allowed_hosts: frozenset[str] | None = None,
        block_private: bool = True,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self.policy = HostPolicy(
            allowed_hosts=allowed_hosts if allowed_hosts is not None else frozenset(),
            block_private=block_private,
        )
        self._transport = transport
        self._client: httpx.Client | None = None

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, transport=self._transport)
        return self._client

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Any = None,
        data: Any = None,
        timeout: Any = None,
    ) -> dict[str, Any]:
        """
        Send one request on behalf of a script. Arguments come straight from
        script code, so they are normalized inside the guarded block too.
        """
        try:
            self.policy.check(url)
            resp = self._get_client().request(
                str(method).upper(),
                url,
                headers=dict(headers or {}),
                timeout=self.timeout if timeout is None else float(timeout),
                **body_kwargs(data),
            )
        except PermissionError as e:
            _log.info("script %s %s refused: %s", method, url, e)
            return failure(str(e))
        except Exception as e:
            _log.info("script %s %s failed: %s", method, url, e)
            return failure(str(e) or type(e).__name__)

        if resp.is_success:
            return {"success": True, "status": resp.status_code, "data": _response_data(resp)}
        out = failure(f"Request failed with status code {resp.status_code}", resp.status_code)
        out["data"] = _response_data(resp)
        return out

    def close(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        try:
            client.close()
        except Exception as e:
            _log.debug("closing script http client failed: %s", e)


def body_kwargs(data: Any) -> dict[str, Any]:
    """httpx kwargs for a request body: str/bytes as-is, anything else as JSON."""
    if data is None:
        return {}
    if isinstance(data, (str, bytes)):
        return {"content": data}
    return {"json": data}


class _HttpModule:
    __slots__ = ("_transport",)

    def __init__(self, transport: HttpTransport) -> None:
        self._transport = transport

    def get(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        return self._transport.request("GET", url, headers=headers, timeout=timeout)

    def post(
        self,
        url: str,
        data: Any = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        return self._transport.request("POST", url, headers=headers, data=data, timeout=timeout)


def make_http_module(transport: HttpTransport) -> _HttpModule:
    """Build the ``http`` object: get, post."""
    return _HttpModule(transport)
