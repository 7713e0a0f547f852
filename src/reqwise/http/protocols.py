"""Protocol and data definitions shared between the executor and its collaborators."""

from __future__ import annotations

from ssl import SSLContext
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from http.cookies import BaseCookie, Morsel
from typing import Any, Optional, Protocol, Union

from multidict import CIMultiDict
from yarl import URL


class CookieStore(Protocol):
    """
    Keyed cookie store consulted and updated around every hop.

    aiohttp.CookieJar satisfies this protocol; the store is owned by the
    caller and mutated in place.
    """

    def filter_cookies(self, request_url: URL) -> BaseCookie[str]:
        """Return the cookies that should be sent to ``request_url``."""
        ...

    def update_cookies(
        self,
        cookies: Union[Iterable[tuple[str, Union[str, Morsel[str]]]], Mapping[str, Any], BaseCookie[str]],
        response_url: URL = ...,
    ) -> None:
        """Store cookies received from ``response_url``."""
        ...


@dataclass
class OutgoingRequest:
    """
    Mutable, transport-level description of one hop.

    The executor builds one per hop and hands the first to the caller's
    ``on_before_request`` hook before sending, so headers, URL or payload
    can be altered in place.

    Attributes:
        method: HTTP method sent on the wire
        url: Absolute, already-encoded target URL
        headers: Outgoing headers (case-insensitive multimap)
        data: bytes, file-like or async iterable payload; None for no body
        proxy: Proxy URL stripped of credentials
        proxy_headers: Headers sent on the proxy CONNECT handshake only,
            including Proxy-Authorization for TLS targets
        ssl: False to skip certificate verification, True for defaults,
            or a custom SSLContext
    """

    method: str
    url: URL
    headers: CIMultiDict[str] = field(default_factory=CIMultiDict)
    data: Any = None
    proxy: Optional[URL] = None
    proxy_headers: Optional[dict[str, str]] = None
    ssl: Union[bool, SSLContext] = True

    @property
    def host(self) -> Optional[str]:
        """Host header override if set, else the URL host."""
        return self.headers.get("Host", self.url.host)
