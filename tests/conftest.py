"""Shared fixtures: a local aiohttp test app and a raw TCP HTTP responder."""

from __future__ import annotations

import asyncio
import gzip
import zlib
from collections.abc import AsyncIterator
from dataclasses import dataclass

import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from multidict import CIMultiDict

PLAINTEXT = b'{"foo":"bar","fuu":"baz"}'

REDIRECT_CHAIN = {
    "301": ("/redirect_test/302", 301),
    "302": ("/redirect_test/303", 302),
    "303": ("/redirect_test/307", 303),
    "307": ("/getquery", 307),
}


@dataclass
class CapturedRequest:
    """One request as seen by a test server."""

    method: str
    target: str
    headers: CIMultiDict
    body: bytes = b""


def inflate(data: bytes) -> bytes:
    """Undo gzip or zlib framing; data the server already decoded is returned as is."""
    if data[:2] == b"\x1f\x8b":
        return gzip.decompress(data)
    if len(data) >= 2 and data[0] & 0x0F == 8 and ((data[0] << 8) | data[1]) % 31 == 0:
        return zlib.decompress(data)
    return data


class EchoServer:
    """aiohttp application exercising every client feature."""

    def __init__(self) -> None:
        self.requests: list[CapturedRequest] = []
        self._server: TestServer | None = None

    def url(self, path: str = "/") -> str:
        assert self._server is not None
        return str(self._server.make_url(path))

    @property
    def last(self) -> CapturedRequest:
        return self.requests[-1]

    @web.middleware
    async def _capture(self, request: web.Request, handler):
        body = await request.read()
        self.requests.append(
            CapturedRequest(request.method, request.path_qs, CIMultiDict(request.headers), body)
        )
        return await handler(request)

    async def foo(self, request: web.Request) -> web.Response:
        return web.Response(text="bar")

    async def getquery(self, request: web.Request) -> web.Response:
        return web.Response(text=request.path_qs)

    async def getbody(self, request: web.Request) -> web.Response:
        return web.Response(body=await request.read())

    async def root(self, request: web.Request) -> web.Response:
        if request.method != "POST":
            return web.Response(status=404)
        return web.Response(
            status=201,
            body=await request.read(),
            headers={"Location": self.url("/123")},
        )

    async def redirect(self, request: web.Request) -> web.Response:
        location, status = REDIRECT_CHAIN[request.match_info["code"]]
        return web.Response(status=status, headers={"Location": location})

    async def redirect_destination(self, request: web.Request) -> web.Response:
        return web.Response(status=301, headers={"Location": self.url("/destination")})

    async def destination(self, request: web.Request) -> web.Response:
        return web.Response(text="arrived")

    async def redirect_cookie(self, request: web.Request) -> web.Response:
        return web.Response(
            status=302,
            headers={"Location": "/getcookies", "Set-Cookie": "hop=1; Path=/"},
        )

    async def sleepy_redirect(self, request: web.Request) -> web.Response:
        step = int(request.match_info["step"])
        await asyncio.sleep(0.3)
        return web.Response(status=302, headers={"Location": f"/sleepy_redirect/{step + 1}"})

    async def getcookies(self, request: web.Request) -> web.Response:
        return web.Response(text=request.headers.get("Cookie", ""))

    async def setcookies(self, request: web.Request) -> web.Response:
        return web.Response(headers={"Set-Cookie": "foobar=42; Path=/"})

    async def compressed(self, request: web.Request) -> web.Response:
        """
        GET returns compressed plaintext, tagged only if the request carried a
        matching Content-Encoding. POST inflates the body and echoes it.
        """
        kind = request.match_info["kind"]
        token = "gzip" if kind == "compressed" else "deflate"
        if request.method == "POST":
            return web.Response(status=201, body=inflate(await request.read()))

        payload = gzip.compress(PLAINTEXT) if token == "gzip" else zlib.compress(PLAINTEXT)
        headers = {}
        if token in request.headers.get("Content-Encoding", ""):
            headers["Content-Encoding"] = token
        return web.Response(body=payload, headers=headers)

    async def return_compressed(self, request: web.Request) -> web.Response:
        """Echo the (inflated) body recompressed, with or without Content-Encoding."""
        kind = request.match_info["kind"]
        token = "gzip" if kind == "compressed" else "deflate"
        plain = inflate(await request.read())
        payload = gzip.compress(plain) if token == "gzip" else zlib.compress(plain)
        headers = {} if request.path.endswith("_without_header") else {"Content-Encoding": token}
        return web.Response(status=201, body=payload, headers=headers)

    async def basic_auth(self, request: web.Request) -> web.Response:
        auth = request.headers.get("Authorization")
        if auth:
            return web.Response(text=auth.strip())
        return web.Response(status=401, text="private")

    async def slow(self, request: web.Request) -> web.Response:
        await asyncio.sleep(1.5)
        return web.Response(text="late")

    async def stream(self, request: web.Request) -> web.StreamResponse:
        response = web.StreamResponse()
        await response.prepare(request)
        await response.write(b"Hello")
        try:
            await asyncio.sleep(1.0)
            await response.write(b" world")
            await response.write_eof()
        except (ConnectionError, RuntimeError):
            pass
        return response

    def make_app(self) -> web.Application:
        app = web.Application(middlewares=[self._capture])
        app.router.add_route("*", "/", self.root)
        app.router.add_route("*", "/foo", self.foo)
        app.router.add_route("*", "/getquery", self.getquery)
        app.router.add_route("*", "/getbody", self.getbody)
        app.router.add_route("*", "/redirect_test/destination", self.redirect_destination)
        app.router.add_route("*", "/redirect_test/{code}", self.redirect)
        app.router.add_route("*", "/destination", self.destination)
        app.router.add_route("*", "/redirect_cookie", self.redirect_cookie)
        app.router.add_route("*", "/sleepy_redirect/{step}", self.sleepy_redirect)
        app.router.add_get("/getcookies", self.getcookies)
        app.router.add_get("/setcookies", self.setcookies)
        app.router.add_route("*", "/{kind:compressed|compressed_deflate}", self.compressed)
        app.router.add_post(
            "/{kind:compressed|compressed_deflate}_and_return_compressed",
            self.return_compressed,
        )
        app.router.add_post(
            "/{kind:compressed|compressed_deflate}_and_return_compressed_without_header",
            self.return_compressed,
        )
        app.router.add_route("*", "/basic_auth", self.basic_auth)
        app.router.add_get("/slow", self.slow)
        app.router.add_get("/stream", self.stream)
        return app

    async def start(self) -> None:
        self._server = TestServer(self.make_app())
        await self._server.start_server()

    async def close(self) -> None:
        if self._server is not None:
            await self._server.close()


class RawHTTPServer:
    """
    Minimal TCP responder that records requests byte-exactly.

    Stands in for HTTP proxies (absolute-form and CONNECT requests) and lets
    tests inspect request bodies before any server-side decoding.
    """

    OK_RESPONSE = (
        b"HTTP/1.1 200 OK\r\n"
        b"x-forwarded-for: test\r\n"
        b"Set-Cookie: foo=bar\r\n"
        b"Content-Length: 0\r\n"
        b"Connection: close\r\n\r\n"
    )
    FORBIDDEN_RESPONSE = b"HTTP/1.1 403 Forbidden\r\nContent-Length: 0\r\nConnection: close\r\n\r\n"

    def __init__(self) -> None:
        self.requests: list[CapturedRequest] = []
        self._server: asyncio.AbstractServer | None = None
        self.port = 0

    def url(self, path: str = "/", userinfo: str = "") -> str:
        prefix = f"{userinfo}@" if userinfo else ""
        return f"http://{prefix}127.0.0.1:{self.port}{path}"

    @property
    def last(self) -> CapturedRequest:
        return self.requests[-1]

    async def _read_chunked(self, reader: asyncio.StreamReader) -> bytes:
        body = b""
        while True:
            size_line = await reader.readuntil(b"\r\n")
            size = int(size_line.split(b";")[0].strip(), 16)
            if size == 0:
                await reader.readuntil(b"\r\n")
                return body
            body += await reader.readexactly(size)
            await reader.readexactly(2)

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            head = await reader.readuntil(b"\r\n\r\n")
            request_line, *header_lines = head.decode("latin-1").rstrip("\r\n").split("\r\n")
            method, target, _ = request_line.split(" ", 2)
            headers: CIMultiDict = CIMultiDict()
            for line in header_lines:
                name, _, value = line.partition(":")
                headers.add(name.strip(), value.strip())

            body = b""
            if "Content-Length" in headers:
                body = await reader.readexactly(int(headers["Content-Length"]))
            elif headers.get("Transfer-Encoding", "").lower() == "chunked":
                body = await self._read_chunked(reader)

            self.requests.append(CapturedRequest(method, target, headers, body))
            writer.write(self.FORBIDDEN_RESPONSE if method == "CONNECT" else self.OK_RESPONSE)
            await writer.drain()
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            writer.close()

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def close(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()


@pytest_asyncio.fixture
async def server() -> AsyncIterator[EchoServer]:
    """Running EchoServer."""
    echo = EchoServer()
    await echo.start()
    yield echo
    await echo.close()


@pytest_asyncio.fixture
async def raw_server() -> AsyncIterator[RawHTTPServer]:
    """Running RawHTTPServer."""
    raw = RawHTTPServer()
    await raw.start()
    yield raw
    await raw.close()
