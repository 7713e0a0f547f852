"""Declarative request description consumed by the Executor."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional

from multidict import CIMultiDict

from ..encoding.compression import Compression

if TYPE_CHECKING:
    from ..http.protocols import CookieStore, OutgoingRequest
    from ..http.executor import Executor
    from ..http.response import Response

BeforeRequestHook = Callable[["Request", "OutgoingRequest"], None]


@dataclass
class Request:
    """
    Everything needed to perform one logical call.

    Fields left as None fall back to the executor's ClientConfig.

    Attributes:
        uri: Absolute http(s) target
        method: HTTP method; empty means GET
        query: Record (dataclass / pydantic model) or key/value container
            serialized into the query string
        body: None, str, bytes, an unconsumed stream or any JSON value
        timeout: Whole-call timeout in seconds, redirects and body included
        content_type: Content-Type override
        accept: Accept header
        user_agent: User-Agent override
        host: Host header override
        insecure: Skip TLS certificate verification
        proxy: Proxy URI, optionally carrying user:password credentials
        proxy_connect_headers: Headers sent on the CONNECT handshake only
        cookie_jar: Caller-owned store read and updated on every hop
        cookies: Explicitly attached (name, value) cookies
        max_redirects: Redirects to follow; 0 never follows
        redirect_headers: Re-attach the original headers on every hop
        compression: Codec for the request body and matching responses
        basic_auth_username: Basic auth user; no header when empty
        basic_auth_password: Basic auth password (may be empty)
        headers: Additional request headers
        on_before_request: Hook given the first outgoing hop before it is sent

    Example:
        request = Request(
            uri="https://api.example.com/items",
            method="POST",
            body={"name": "widget"},
            max_redirects=3,
        ).with_header("X-Trace", "abc")
        async with await request.do() as response:
            items = await response.body.json()
    """

    uri: str = ""
    method: str = ""
    query: Any = None
    body: Any = None
    timeout: Optional[float] = None
    content_type: Optional[str] = None
    accept: Optional[str] = None
    user_agent: Optional[str] = None
    host: Optional[str] = None
    insecure: bool = False
    proxy: Optional[str] = None
    proxy_connect_headers: dict[str, str] = field(default_factory=dict)
    cookie_jar: Optional[CookieStore] = None
    cookies: list[tuple[str, str]] = field(default_factory=list)
    max_redirects: Optional[int] = None
    redirect_headers: Optional[bool] = None
    compression: Optional[Compression] = None
    basic_auth_username: Optional[str] = None
    basic_auth_password: Optional[str] = None
    headers: CIMultiDict[str] = field(default_factory=CIMultiDict)
    on_before_request: Optional[BeforeRequestHook] = None

    def __post_init__(self) -> None:
        if not isinstance(self.headers, CIMultiDict):
            self.headers = CIMultiDict(self.headers)

    def copy(self) -> Request:
        """Return a copy whose header, cookie and CONNECT-header collections are independent."""
        return dataclasses.replace(
            self,
            headers=CIMultiDict(self.headers),
            cookies=list(self.cookies),
            proxy_connect_headers=dict(self.proxy_connect_headers),
        )

    def add_header(self, name: str, value: str) -> None:
        self.headers.add(name, value)

    def add_cookie(self, name: str, value: str) -> None:
        self.cookies.append((name, value))

    def with_header(self, name: str, value: str) -> Request:
        """Return a new Request with an extra header; this one is unchanged."""
        request = self.copy()
        request.add_header(name, value)
        return request

    def with_cookie(self, name: str, value: str) -> Request:
        """Return a new Request with an extra cookie; this one is unchanged."""
        request = self.copy()
        request.add_cookie(name, value)
        return request

    def with_proxy_connect_header(self, name: str, value: str) -> Request:
        """Return a new Request with an extra CONNECT-only proxy header."""
        request = self.copy()
        request.proxy_connect_headers[name] = value
        return request

    async def do(self, executor: Optional[Executor] = None) -> Response:
        """
        Execute this request.

        Without an explicit executor, a one-shot Executor built from the
        process-wide default configuration is used.
        """
        from ..http.executor import Executor

        return await (executor or Executor()).execute(self)
