"""Tests for the request executor against a local aiohttp server."""

from __future__ import annotations

import io
from dataclasses import dataclass
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest
from multidict import MultiDict
from pydantic import BaseModel

from reqwise import (
    ClientConfig,
    DecodingError,
    EncodingError,
    Executor,
    OutgoingRequest,
    Request,
    UnsupportedTypeError,
    UriParseError,
    execute,
)


@dataclass
class Paging:
    limit: int = 0
    skip: int = 0


class Payload(BaseModel):
    foo: str


class TestMethods:
    """Tests for HTTP methods."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"])
    async def test_method_sent(self, server, method):
        """Test each method reaches the server verbatim."""
        async with Executor() as executor:
            async with await executor.execute(Request(uri=server.url("/foo"), method=method)) as response:
                assert response.status_code == 200
                if method != "OPTIONS":
                    assert await response.body.text() == "bar"
        assert server.last.method == method

    @pytest.mark.asyncio
    async def test_empty_method_is_get(self, server):
        """Test an empty method defaults to GET."""
        async with Executor() as executor:
            async with await executor.execute(Request(uri=server.url("/foo"))):
                pass
        assert server.last.method == "GET"

    def test_custom_method_passes_through(self):
        """Test unknown methods are not rejected or rewritten."""
        hop = Executor().build_request(Request(uri="http://example.com/", method="foobar"))
        assert hop.method == "FOOBAR"


class TestQuery:
    """Tests for query serialization on the wire."""

    @pytest.mark.asyncio
    async def test_record_query(self, server):
        """Test a record is serialized into the URL."""
        async with Executor() as executor:
            request = Request(uri=server.url("/getquery"), query=Paging(limit=3, skip=5))
            async with await executor.execute(request) as response:
                assert await response.body.text() == "/getquery?limit=3&skip=5"

    @pytest.mark.asyncio
    async def test_container_query(self, server):
        """Test a multimap keeps order and repeated keys."""
        query = MultiDict([("name", "marcos"), ("friend", "jonas"), ("friend", "peter")])
        async with Executor() as executor:
            async with await executor.execute(Request(uri=server.url("/getquery"), query=query)) as response:
                assert await response.body.text() == "/getquery?name=marcos&friend=jonas&friend=peter"

    def test_query_appended_to_existing(self):
        """Test the serialized query is appended to one already in the URI."""
        hop = Executor().build_request(Request(uri="http://example.com/p?x=1", query={"y": "2"}))
        assert str(hop.url) == "http://example.com/p?x=1&y=2"

    @pytest.mark.asyncio
    async def test_unsupported_query_no_network(self, server):
        """Test an unsupported query source fails before sending."""
        with pytest.raises(UnsupportedTypeError):
            await execute(Request(uri=server.url("/getquery"), query=12))
        assert server.requests == []


class TestBodies:
    """Tests for request bodies."""

    @pytest.mark.asyncio
    async def test_no_body(self, server):
        """Test requests carry no body by default."""
        async with await execute(Request(uri=server.url("/getbody"))) as response:
            assert await response.body.read() == b""
        assert "Content-Type" not in server.last.headers

    @pytest.mark.asyncio
    async def test_text_body(self, server):
        """Test text bodies are sent verbatim."""
        request = Request(uri=server.url("/getbody"), method="POST", body="foo")
        async with await execute(request) as response:
            assert await response.body.text() == "foo"

    @pytest.mark.asyncio
    async def test_stream_body(self, server):
        """Test streams are sent unmodified."""
        request = Request(uri=server.url("/getbody"), method="POST", body=io.BytesIO(b"foo"))
        async with await execute(request) as response:
            assert await response.body.read() == b"foo"
        assert server.last.headers["Content-Length"] == "3"

    @pytest.mark.asyncio
    async def test_async_stream_body(self, server):
        """Test async iterables are streamed."""

        async def chunks():
            yield b"foo"
            yield b"bar"

        request = Request(uri=server.url("/getbody"), method="PUT", body=chunks())
        async with await execute(request) as response:
            assert await response.body.read() == b"foobar"

    @pytest.mark.asyncio
    async def test_json_body(self, server):
        """Test structured bodies are JSON encoded with a content type."""
        request = Request(uri=server.url("/"), method="POST", body={"foo": "bar"})
        async with await execute(request) as response:
            assert response.status_code == 201
            assert response.headers["Location"] == server.url("/123")
            assert await response.body.json() == {"foo": "bar"}
        assert server.last.headers["Content-Type"] == "application/json"
        assert server.last.body == b'{"foo":"bar"}'

    @pytest.mark.asyncio
    async def test_explicit_content_type_wins(self, server):
        """Test a caller content type replaces the JSON hint."""
        request = Request(
            uri=server.url("/getbody"),
            method="POST",
            body={"foo": "bar"},
            content_type="application/vnd.test+json",
        )
        async with await execute(request):
            pass
        assert server.last.headers["Content-Type"] == "application/vnd.test+json"

    @pytest.mark.asyncio
    async def test_unencodable_body_no_network(self, server):
        """Test an unencodable body fails before sending."""
        with pytest.raises(EncodingError):
            await execute(Request(uri=server.url("/"), method="POST", body=float("nan")))
        assert server.requests == []


class TestResponseBody:
    """Tests for response parsing helpers."""

    @pytest.mark.asyncio
    async def test_from_json(self, server):
        """Test typed JSON parsing."""
        request = Request(uri=server.url("/"), method="POST", body='{"foo": "bar"}')
        async with await execute(request) as response:
            assert await response.body.from_json(Payload) == Payload(foo="bar")

    @pytest.mark.asyncio
    async def test_from_json_dict(self, server):
        """Test parsing into a generic mapping."""
        request = Request(uri=server.url("/"), method="POST", body='{"foo": "bar"}')
        async with await execute(request) as response:
            assert await response.body.from_json(dict[str, str]) == {"foo": "bar"}

    @pytest.mark.asyncio
    async def test_invalid_json(self, server):
        """Test malformed JSON raises DecodingError."""
        request = Request(uri=server.url("/"), method="POST", body='{"foo" "bar"}')
        async with await execute(request) as response:
            with pytest.raises(DecodingError):
                await response.body.json()

    @pytest.mark.asyncio
    async def test_content_length(self, server):
        """Test declared content length is exposed."""
        async with await execute(Request(uri=server.url("/foo"))) as response:
            assert response.content_length == 3

    @pytest.mark.asyncio
    async def test_iterate_chunks(self, server):
        """Test async iteration yields the body."""
        request = Request(uri=server.url("/getbody"), method="POST", body=b"x" * 1000)
        async with await execute(request) as response:
            chunks = [chunk async for chunk in response.body]
        assert b"".join(chunks) == b"x" * 1000


class TestHeaders:
    """Tests for header handling."""

    @pytest.mark.asyncio
    async def test_accept_and_user_agent(self, server):
        """Test Accept and User-Agent are applied."""
        request = Request(uri=server.url("/foo"), accept="application/json", user_agent="reqwise-test")
        async with await execute(request):
            pass
        assert server.last.headers["Accept"] == "application/json"
        assert server.last.headers["User-Agent"] == "reqwise-test"

    @pytest.mark.asyncio
    async def test_config_user_agent(self, server):
        """Test the executor default User-Agent applies when the request has none."""
        async with Executor(ClientConfig(user_agent="configured/1.0")) as executor:
            async with await executor.execute(Request(uri=server.url("/foo"))):
                pass
        assert server.last.headers["User-Agent"] == "configured/1.0"

    @pytest.mark.asyncio
    async def test_host_override(self, server):
        """Test the Host header can be overridden."""
        async with await execute(Request(uri=server.url("/foo"), host="foobar.com")):
            pass
        assert server.last.headers["Host"] == "foobar.com"

    @pytest.mark.asyncio
    async def test_custom_headers(self, server):
        """Test extra headers including repeated names."""
        request = Request(uri=server.url("/foo")).with_header("X-One", "1")
        request.add_header("X-Multi", "a")
        request.add_header("X-Multi", "b")
        async with await execute(request):
            pass
        assert server.last.headers["X-One"] == "1"
        assert server.last.headers.getall("X-Multi") == ["a", "b"]

    @pytest.mark.asyncio
    async def test_no_accept_encoding_without_codec(self, server):
        """Test Accept-Encoding is not advertised unless a codec is configured."""
        async with await execute(Request(uri=server.url("/foo"))):
            pass
        assert "Accept-Encoding" not in server.last.headers

    @pytest.mark.asyncio
    async def test_hook_mutates_first_hop(self, server):
        """Test on_before_request can alter the outgoing request."""
        seen = []

        def hook(request: Request, outgoing: OutgoingRequest) -> None:
            seen.append(outgoing.url)
            outgoing.headers["X-Hooked"] = "yes"

        async with await execute(Request(uri=server.url("/foo"), on_before_request=hook)):
            pass
        assert len(seen) == 1
        assert server.last.headers["X-Hooked"] == "yes"

    def test_with_header_does_not_mutate(self):
        """Test with_* helpers return independent copies."""
        original = Request(uri="http://example.com/")
        derived = original.with_header("X-A", "1").with_cookie("c", "v").with_proxy_connect_header("X-P", "p")
        assert "X-A" not in original.headers
        assert original.cookies == []
        assert original.proxy_connect_headers == {}
        assert derived.headers["X-A"] == "1"
        assert derived.cookies == [("c", "v")]
        assert derived.proxy_connect_headers == {"X-P": "p"}

    def test_build_request(self):
        """Test the first hop can be inspected without sending."""
        request = Request(
            uri="http://example.com/path",
            method="post",
            body="foo",
            basic_auth_username="username",
            basic_auth_password="password",
        ).with_cookie("a", "b")
        hop = Executor().build_request(request)
        assert hop.method == "POST"
        assert hop.data == b"foo"
        assert hop.headers["Authorization"] == "Basic dXNlcm5hbWU6cGFzc3dvcmQ="
        assert hop.headers["Cookie"] == "a=b"
        assert hop.host == "example.com"


class TestBasicAuth:
    """Tests for Basic authentication."""

    @pytest.mark.asyncio
    async def test_credentials_sent(self, server):
        """Test username and password produce an Authorization header."""
        request = Request(
            uri=server.url("/basic_auth"),
            basic_auth_username="username",
            basic_auth_password="password",
        )
        async with await execute(request) as response:
            assert response.status_code == 200
            assert await response.body.text() == "Basic dXNlcm5hbWU6cGFzc3dvcmQ="

    @pytest.mark.asyncio
    async def test_empty_password_allowed(self, server):
        """Test a username without password still authenticates."""
        request = Request(uri=server.url("/basic_auth"), basic_auth_username="username")
        async with await execute(request) as response:
            assert await response.body.text() == "Basic dXNlcm5hbWU6"

    @pytest.mark.asyncio
    async def test_no_credentials(self, server):
        """Test no header is sent without a username."""
        request = Request(uri=server.url("/basic_auth"), basic_auth_password="password")
        async with await execute(request) as response:
            assert response.status_code == 401
            assert await response.body.text() == "private"


class TestUriErrors:
    """Tests for target URI validation."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("uri", ["", "not a url", "/relative/path", "ftp://example.com/", "http://"])
    async def test_invalid_uri(self, uri):
        """Test invalid URIs raise before any network attempt."""
        with patch.object(aiohttp.ClientSession, "request", new=AsyncMock()) as mock_request:
            with pytest.raises(UriParseError) as exc_info:
                await execute(Request(uri=uri))
        mock_request.assert_not_called()
        assert not exc_info.value.is_timeout

    def test_invalid_proxy(self):
        """Test a proxy without host is rejected."""
        with pytest.raises(UriParseError):
            Executor().build_request(Request(uri="http://example.com/", proxy="not-a-proxy"))


class TestOneShotSession:
    """Tests for calls made without an executor context."""

    @pytest.mark.asyncio
    async def test_request_do(self, server):
        """Test Request.do with a private session."""
        response = await Request(uri=server.url("/foo")).do()
        try:
            assert await response.body.text() == "bar"
        finally:
            await response.close()

    @pytest.mark.asyncio
    async def test_shared_session(self, server):
        """Test one executor can serve several calls."""
        async with Executor() as executor:
            for _ in range(3):
                async with await Request(uri=server.url("/foo")).do(executor) as response:
                    assert response.status_code == 200
        assert len(server.requests) == 3
