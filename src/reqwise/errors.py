"""Error taxonomy for reqwise calls."""

from __future__ import annotations

import asyncio
import socket
from enum import Enum
from typing import TYPE_CHECKING, Optional

import aiohttp

if TYPE_CHECKING:
    from .http.response import Response


class ErrorKind(str, Enum):
    """Tag identifying what went wrong during a call."""

    URI_PARSE = "uri_parse"
    ENCODING = "encoding"
    DECODING = "decoding"
    UNSUPPORTED_TYPE = "unsupported_type"
    CONNECT_TIMEOUT = "connect_timeout"
    REQUEST_TIMEOUT = "request_timeout"
    DNS = "dns"
    CONNECTION = "connection"
    PROXY = "proxy"
    REDIRECT_LIMIT = "redirect_limit"
    BODY_CLOSED = "body_closed"
    CANCELLED = "cancelled"


class ReqwiseError(Exception):
    """
    Base class for every error raised by reqwise.

    Attributes:
        kind: ErrorKind tag for programmatic dispatch
        url: URL of the hop that failed, when known
    """

    kind: ErrorKind = ErrorKind.CONNECTION

    def __init__(self, message: str, *, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url

    @property
    def is_timeout(self) -> bool:
        """True when the error was caused by a connect or whole-call timeout."""
        return self.kind in (ErrorKind.CONNECT_TIMEOUT, ErrorKind.REQUEST_TIMEOUT)


class UriParseError(ReqwiseError, ValueError):
    """Target URI could not be parsed; raised before any network attempt."""

    kind = ErrorKind.URI_PARSE


class EncodingError(ReqwiseError, ValueError):
    """Request body could not be encoded as JSON."""

    kind = ErrorKind.ENCODING


class DecodingError(ReqwiseError, ValueError):
    """Response payload could not be decompressed or parsed."""

    kind = ErrorKind.DECODING


class UnsupportedTypeError(ReqwiseError, TypeError):
    """Query source is neither a record nor a key/value container."""

    kind = ErrorKind.UNSUPPORTED_TYPE


class ReqwiseTimeoutError(ReqwiseError, TimeoutError):
    """Common base of both timeout kinds."""

    kind = ErrorKind.REQUEST_TIMEOUT


class ConnectTimeoutError(ReqwiseTimeoutError):
    """Connection or TLS establishment exceeded the connect timeout."""

    kind = ErrorKind.CONNECT_TIMEOUT


class RequestTimeoutError(ReqwiseTimeoutError):
    """The whole call, redirects and body included, exceeded its timeout."""

    kind = ErrorKind.REQUEST_TIMEOUT


class ConnectionFailedError(ReqwiseError, ConnectionError):
    """Network failure reported by the transport."""

    kind = ErrorKind.CONNECTION


class DNSError(ConnectionFailedError):
    """Host name could not be resolved."""

    kind = ErrorKind.DNS


class ProxyError(ConnectionFailedError):
    """Proxy refused or failed the CONNECT handshake."""

    kind = ErrorKind.PROXY


class BodyClosedError(ReqwiseError):
    """Read attempted on a response stream that was already closed."""

    kind = ErrorKind.BODY_CLOSED


class RequestCancelledError(ReqwiseError):
    """Read attempted on a response whose request was cancelled."""

    kind = ErrorKind.CANCELLED


class RedirectLimitExceededError(ReqwiseError):
    """
    Redirect chain was still redirecting when max_redirects ran out.

    This is the only error that comes with a response: ``response`` holds the
    last redirect response received and must be closed by the caller.
    """

    kind = ErrorKind.REDIRECT_LIMIT

    def __init__(self, message: str, *, response: Response, url: Optional[str] = None) -> None:
        super().__init__(message, url=url)
        self.response = response


def _is_dns_failure(exc: aiohttp.ClientConnectorError) -> bool:
    return isinstance(exc.os_error, socket.gaierror)


def translate_transport_error(exc: BaseException, url: str) -> ReqwiseError:
    """
    Map an aiohttp or asyncio exception onto the reqwise taxonomy.

    Args:
        exc: Exception raised by the transport
        url: URL of the hop being processed

    Returns:
        The ReqwiseError to raise (caller chains ``exc`` with ``from``)
    """
    if isinstance(exc, ReqwiseError):
        return exc

    if isinstance(exc, aiohttp.ConnectionTimeoutError):
        return ConnectTimeoutError(f"Connect timeout for {url}", url=url)

    # Any other timeout is the whole-call deadline expiring
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return RequestTimeoutError(f"Request timeout for {url}", url=url)

    if isinstance(exc, aiohttp.ClientHttpProxyError):
        return ProxyError(f"Proxy error for {url}: {exc.status} {exc.message}", url=url)

    if isinstance(exc, aiohttp.ClientProxyConnectionError):
        return ProxyError(f"Cannot connect to proxy for {url}: {exc}", url=url)

    if isinstance(exc, aiohttp.ClientConnectorError) and _is_dns_failure(exc):
        return DNSError(f"Cannot resolve host for {url}: {exc}", url=url)

    if isinstance(exc, aiohttp.InvalidURL):
        return UriParseError(f"Invalid URL {url}: {exc}", url=url)

    if isinstance(exc, aiohttp.ClientPayloadError):
        return ConnectionFailedError(f"Response payload error for {url}: {exc}", url=url)

    return ConnectionFailedError(f"Connection error for {url}: {exc}", url=url)
