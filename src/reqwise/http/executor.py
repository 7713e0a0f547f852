"""Request executor: redirects, timeouts, compression, proxy and cookie orchestration."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any, Optional

import aiohttp
from multidict import CIMultiDict
from yarl import URL

from ..encoding.body import EncodedBody, encode_body, iter_stream
from ..encoding.compression import Compression
from ..encoding.query import serialize_query
from ..errors import (
    RedirectLimitExceededError,
    ReqwiseError,
    RequestTimeoutError,
    UriParseError,
    translate_transport_error,
)
from ..models.config import ClientConfig, get_default_config
from ..models.request import Request
from .auth import basic_auth_header, parse_proxy
from .cookies import cookie_header, store_response_cookies
from .protocols import OutgoingRequest
from .redirects import RedirectPolicy
from .response import CloseCallback, Response, wrap_response

logger = logging.getLogger(__name__)

DEFAULT_METHOD = "GET"

# Headers that describe the payload and travel with it when it is replayed
PAYLOAD_HEADERS = ("Content-Type", "Content-Encoding", "Content-Length")


def parse_uri(uri: str) -> URL:
    """
    Parse an absolute http(s) URI.

    Raises:
        UriParseError: If the URI is malformed or not absolute http(s)
    """
    try:
        url = URL(uri)
        host = url.host
    except (ValueError, TypeError, UnicodeError) as err:
        raise UriParseError(f"Invalid URI {uri!r}: {err}", url=uri) from err

    if url.scheme not in ("http", "https") or not host:
        raise UriParseError(f"Invalid URI {uri!r}: expected an absolute http(s) URL", url=uri)
    return url


def with_query(url: URL, query: str) -> URL:
    """Append an already-encoded query string to ``url``, keeping any existing query."""
    if not query:
        return url
    combined = "&".join(part for part in (url.raw_query_string, query) if part)
    return URL.build(
        scheme=url.scheme,
        authority=url.raw_authority,
        path=url.raw_path,
        query_string=combined,
        fragment=url.raw_fragment,
        encoded=True,
    )


@dataclass
class _Call:
    """Per-call state resolved once before the first hop."""

    request: Request
    method: str
    url: URL
    headers: CIMultiDict[str]
    encoded: EncodedBody
    payload: Any
    payload_headers: CIMultiDict[str]
    policy: RedirectPolicy
    compression: Optional[Compression]
    timeout: Optional[float]
    proxy: Optional[URL] = None
    proxy_authorization: Optional[str] = None
    skip_auto_headers: tuple[str, ...] = field(default_factory=tuple)


class Executor:
    """
    Executes Requests over an aiohttp session.

    Each call runs a strictly sequential redirect loop. The connect timeout
    bounds connection setup on every hop; a Request's timeout bounds the
    whole call, from first send until the body is fully read.

    Use it as an async context manager to share one pooled session between
    calls. Outside a context, every call opens its own session, closed
    together with the returned Response.

    Example:
        async with Executor(ClientConfig(connect_timeout=0.5)) as executor:
            async with await executor.execute(Request(uri=url, max_redirects=3)) as response:
                print(response.status_code, response.uri)
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """
        Initialize the executor.

        Args:
            config: Executor configuration; the process-wide default when None
            session: Existing aiohttp session to send through. It should be
                created with ``auto_decompress=False`` and a DummyCookieJar;
                the caller keeps ownership.
        """
        self.config = config or get_default_config()
        self._session = session
        self._owns_session = False

    def _create_session(self) -> aiohttp.ClientSession:
        connector = aiohttp.TCPConnector(
            limit=self.config.connection_limit,
            limit_per_host=self.config.connection_limit_per_host,
            ttl_dns_cache=self.config.dns_cache_ttl,
        )
        # Cookies are handled per hop against the caller's jar, and
        # decompression only when the response matches the chosen codec
        return aiohttp.ClientSession(
            connector=connector,
            cookie_jar=aiohttp.DummyCookieJar(),
            auto_decompress=False,
        )

    async def __aenter__(self) -> Executor:
        if self._session is None:
            self._session = self._create_session()
            self._owns_session = True
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
            self._owns_session = False

    def _prepare(self, request: Request) -> _Call:
        """Resolve everything that can fail before touching the network."""
        method = (request.method or DEFAULT_METHOD).upper()
        url = parse_uri(request.uri)
        if request.query is not None:
            url = with_query(url, serialize_query(request.query))

        encoded = encode_body(request.body)
        compression = request.compression if request.compression and request.compression.enabled else None

        headers: CIMultiDict[str] = CIMultiDict(request.headers)
        payload_headers: CIMultiDict[str] = CIMultiDict()

        content_type = request.content_type or encoded.content_type
        if content_type:
            headers["Content-Type"] = content_type
            payload_headers["Content-Type"] = content_type
        if request.accept:
            headers["Accept"] = request.accept
        user_agent = request.user_agent or self.config.user_agent
        if user_agent:
            headers["User-Agent"] = user_agent
        if request.host:
            headers["Host"] = request.host

        authorization = basic_auth_header(request.basic_auth_username, request.basic_auth_password)
        if authorization:
            headers["Authorization"] = authorization

        payload = encoded.payload
        skip_auto_headers: tuple[str, ...] = ()
        if compression is not None:
            headers["Content-Encoding"] = compression.token
            headers["Accept-Encoding"] = compression.token
            if payload is not None:
                payload_headers["Content-Encoding"] = compression.token
                if encoded.is_stream:
                    payload = compression.compress_stream(iter_stream(payload))
                else:
                    payload = compression.compress(payload)
        else:
            skip_auto_headers = ("Accept-Encoding",)
            if encoded.is_stream:
                if encoded.length is not None:
                    headers["Content-Length"] = str(encoded.length)
                    payload_headers["Content-Length"] = str(encoded.length)
                payload = iter_stream(payload)

        proxy = proxy_authorization = None
        if request.proxy:
            proxy, proxy_authorization = parse_proxy(request.proxy)

        max_redirects = request.max_redirects if request.max_redirects is not None else self.config.max_redirects
        redirect_headers = (
            request.redirect_headers if request.redirect_headers is not None else self.config.redirect_headers
        )

        return _Call(
            request=request,
            method=method,
            url=url,
            headers=headers,
            encoded=encoded,
            payload=payload,
            payload_headers=payload_headers,
            policy=RedirectPolicy(max_redirects=max_redirects, propagate_headers=redirect_headers),
            compression=compression,
            timeout=request.timeout if request.timeout is not None else self.config.timeout,
            proxy=proxy,
            proxy_authorization=proxy_authorization,
            skip_auto_headers=skip_auto_headers,
        )

    def _hop(self, call: _Call, url: URL, index: int) -> OutgoingRequest:
        """Build the outgoing request for hop ``index`` (0 is the original request)."""
        request = call.request
        if index == 0:
            headers = CIMultiDict(call.headers)
            data = call.payload
        else:
            if call.policy.propagate_headers:
                headers = CIMultiDict(call.headers)
                headers.popall("Host", None)
            else:
                headers = CIMultiDict()
            # Only buffered payloads can be sent again
            data = call.payload if isinstance(call.payload, bytes) else None
            for name in PAYLOAD_HEADERS:
                headers.popall(name, None)
                if data is not None and name in call.payload_headers:
                    headers[name] = call.payload_headers[name]
            if call.compression is not None:
                headers["Accept-Encoding"] = call.compression.token

        cookies = cookie_header(url, request.cookies, request.cookie_jar)
        if cookies:
            headers["Cookie"] = cookies

        proxy_headers = dict(request.proxy_connect_headers)
        if call.proxy is not None and call.proxy_authorization:
            # TLS targets authenticate on the CONNECT, plaintext ones on each request
            if url.scheme == "https":
                proxy_headers["Proxy-Authorization"] = call.proxy_authorization
            else:
                headers["Proxy-Authorization"] = call.proxy_authorization

        return OutgoingRequest(
            method=call.method,
            url=url,
            headers=headers,
            data=data,
            proxy=call.proxy,
            proxy_headers=proxy_headers or None,
            ssl=False if request.insecure else True,
        )

    def build_request(self, request: Request) -> OutgoingRequest:
        """
        Materialize the first outgoing hop without sending it.

        Raises:
            UriParseError: Malformed target or proxy URI
            EncodingError: Body cannot be JSON encoded
            UnsupportedTypeError: Query source is not a record or container
        """
        call = self._prepare(request)
        return self._hop(call, call.url, 0)

    def _hop_timeout(self, deadline: Optional[float], url: URL) -> aiohttp.ClientTimeout:
        total = None
        if deadline is not None:
            total = deadline - asyncio.get_running_loop().time()
            if total <= 0:
                raise RequestTimeoutError(f"Request timeout before reaching {url}", url=str(url))
        return aiohttp.ClientTimeout(total=total, connect=self.config.connect_timeout)

    async def _send(
        self,
        session: aiohttp.ClientSession,
        hop: OutgoingRequest,
        call: _Call,
        timeout: aiohttp.ClientTimeout,
    ) -> aiohttp.ClientResponse:
        try:
            return await session.request(
                hop.method,
                hop.url,
                headers=hop.headers,
                data=hop.data,
                proxy=hop.proxy,
                proxy_headers=hop.proxy_headers,
                ssl=hop.ssl,
                timeout=timeout,
                allow_redirects=False,
                skip_auto_headers=call.skip_auto_headers,
            )
        except ReqwiseError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise translate_transport_error(exc, str(hop.url)) from exc

    async def _run(self, session: aiohttp.ClientSession, call: _Call, on_close: Optional[CloseCallback]) -> Response:
        request = call.request
        deadline = None
        if call.timeout is not None:
            deadline = asyncio.get_running_loop().time() + call.timeout

        hop = self._hop(call, call.url, 0)
        if request.on_before_request is not None:
            request.on_before_request(request, hop)

        hops = 0
        while True:
            logger.debug(f"{hop.method} {hop.url} (hop {hops})")
            response = await self._send(session, hop, call, self._hop_timeout(deadline, hop.url))

            next_url: Optional[URL] = None
            try:
                store_response_cookies(request.cookie_jar, response)
                if call.policy.should_follow(hops, response.status, response.headers):
                    next_url = call.policy.resolve_location(response.url, response.headers["Location"])
            except BaseException:
                response.close()
                raise

            if next_url is not None:
                logger.debug(f"Redirect {response.status} {response.url} -> {next_url}")
                response.close()
                hops += 1
                hop = self._hop(call, next_url, hops)
                continue

            wrapped = wrap_response(response, call.compression, on_close)
            if call.policy.limit_exceeded(hops, response.status, response.headers):
                logger.warning(f"Stopped after {hops} redirect(s) at {response.url} ({response.status})")
                raise RedirectLimitExceededError(
                    f"Exceeded {call.policy.max_redirects} redirect(s); last response was "
                    f"{response.status} from {response.url}",
                    response=wrapped,
                    url=str(response.url),
                )
            return wrapped

    async def execute(self, request: Request) -> Response:
        """
        Perform one logical call, following redirects as configured.

        Args:
            request: Declarative request; not modified

        Returns:
            Response for the last hop reached; the caller must close it

        Raises:
            RedirectLimitExceededError: Still redirecting when max_redirects ran
                out; carries that last response in ``.response``
            ReqwiseError: Any other failure, with no response
        """
        call = self._prepare(request)

        session = self._session
        on_close: Optional[CloseCallback] = None
        if session is None:
            session = self._create_session()
            on_close = session.close

        try:
            return await self._run(session, call, on_close)
        except RedirectLimitExceededError:
            # The carried response now owns the session
            raise
        except BaseException:
            if on_close is not None:
                await on_close()
            raise


async def execute(request: Request, config: Optional[ClientConfig] = None) -> Response:
    """Execute ``request`` with a one-shot Executor."""
    return await Executor(config).execute(request)
