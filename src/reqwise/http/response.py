"""Response wrapper with a lazily-decompressing, scoped body."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import AsyncIterator, Awaitable
from types import TracebackType
from typing import Any, Callable, Optional, TypeVar

import aiohttp
from multidict import CIMultiDictProxy
from pydantic import TypeAdapter, ValidationError
from yarl import URL

from ..encoding.compression import Compression, DecompressingStream
from ..errors import (
    BodyClosedError,
    DecodingError,
    ReqwiseError,
    RequestCancelledError,
    translate_transport_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

CloseCallback = Callable[[], Awaitable[None]]


async def _release(response: aiohttp.ClientResponse) -> None:
    # release() returns an awaitable on some aiohttp versions and None on others
    result = response.release()
    if inspect.isawaitable(result):
        await result


def _charset(content_type: str) -> Optional[str]:
    for part in content_type.split(";"):
        part = part.strip()
        if part.lower().startswith("charset="):
            return part.split("=", 1)[1].strip().strip("\"'")
    return None


class RawStream:
    """
    Undecoded response bytes as received from the transport.

    Reading after close raises BodyClosedError; reading after cancel raises
    RequestCancelledError, even if bytes were already buffered.
    """

    def __init__(self, response: aiohttp.ClientResponse, on_close: Optional[CloseCallback] = None) -> None:
        self._response = response
        self._on_close = on_close
        self._closed = False
        self._cancelled = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _check_open(self) -> None:
        if self._cancelled:
            raise RequestCancelledError("Request was cancelled", url=str(self._response.url))
        if self._closed:
            raise BodyClosedError("Response body is closed", url=str(self._response.url))

    async def read(self, n: int = -1) -> bytes:
        """Read up to ``n`` raw bytes (all remaining if n < 0); b"" at end of stream."""
        self._check_open()
        try:
            data = await self._response.content.read(n)
        except ReqwiseError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            # Closing the connection on cancel surfaces as a transport error
            self._check_open()
            raise translate_transport_error(exc, str(self._response.url)) from exc
        # cancel() may have run while the read was suspended
        self._check_open()
        return data

    def cancel(self) -> None:
        """Abort the open stream; no effect once the stream is closed."""
        if self._closed or self._cancelled:
            return
        self._cancelled = True
        logger.debug(f"Cancelling request to {self._response.url}")
        self._response.content.set_exception(
            RequestCancelledError("Request was cancelled", url=str(self._response.url))
        )
        self._response.close()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._cancelled:
                self._response.close()
            else:
                await _release(self._response)
        finally:
            if self._on_close is not None:
                await self._on_close()


class ResponseBody:
    """
    Scoped view over the response stream.

    ``raw`` always exposes the bytes as received; ``decompressed`` is only
    present when the response Content-Encoding matched the configured codec,
    and reading through the body prefers it. Closing the body releases both.

    Example:
        async with await executor.execute(request) as response:
            text = await response.body.text()
    """

    def __init__(
        self,
        raw: RawStream,
        decompressed: Optional[DecompressingStream] = None,
        content_type: str = "",
    ) -> None:
        self._raw = raw
        self._decompressed = decompressed
        self._content_type = content_type

    @property
    def raw(self) -> RawStream:
        return self._raw

    @property
    def decompressed(self) -> Optional[DecompressingStream]:
        return self._decompressed

    @property
    def is_decompressed(self) -> bool:
        return self._decompressed is not None

    async def read(self, n: int = -1) -> bytes:
        """Read up to ``n`` bytes, decompressed when applicable."""
        if self._decompressed is not None:
            return await self._decompressed.read(n)
        return await self._raw.read(n)

    async def iter_chunked(self, size: int = 64 * 1024) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.read(size)
            if not chunk:
                return
            yield chunk

    async def text(self, encoding: Optional[str] = None) -> str:
        """
        Read the remaining body as text.

        Uses ``encoding`` if given, else the Content-Type charset, else UTF-8
        with replacement characters.
        """
        content = await self.read()
        encoding = encoding or _charset(self._content_type)
        if encoding:
            try:
                return content.decode(encoding)
            except (UnicodeDecodeError, LookupError):
                logger.debug(f"Failed to decode with declared encoding: {encoding}")
        return content.decode("utf-8", errors="replace")

    async def json(self) -> Any:
        """
        Read and parse the remaining body as JSON.

        Raises:
            DecodingError: If the payload is not valid JSON
        """
        content = await self.read()
        try:
            return json.loads(content)
        except ValueError as err:
            raise DecodingError(f"Invalid JSON body: {err}") from err

    async def from_json(self, target: type[T]) -> T:
        """
        Read the remaining body as JSON validated into ``target``.

        ``target`` may be a pydantic model, a dataclass or any type pydantic
        can validate (``dict[str, str]``, ``list[int]``...).

        Raises:
            DecodingError: If the payload is not valid JSON for ``target``
        """
        content = await self.read()
        try:
            return TypeAdapter(target).validate_json(content)
        except ValidationError as err:
            raise DecodingError(f"Body does not match {target!r}: {err}") from err

    async def close(self) -> None:
        """Release the decompressed and raw streams."""
        if self._decompressed is not None:
            await self._decompressed.close()
        await self._raw.close()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.iter_chunked()


class Response:
    """
    Result of one logical call, possibly after several redirect hops.

    Attributes:
        status_code: HTTP status of the last hop
        headers: Response headers of the last hop
        content_length: Declared Content-Length, None if absent
        url: Effective URL (the last hop actually reached)
        body: ResponseBody; must be closed, directly or via ``async with``
        raw: The underlying aiohttp ClientResponse
    """

    def __init__(self, raw: aiohttp.ClientResponse, body: ResponseBody) -> None:
        self.raw = raw
        self.body = body

    @property
    def status_code(self) -> int:
        return self.raw.status

    @property
    def headers(self) -> CIMultiDictProxy[str]:
        return self.raw.headers

    @property
    def content_length(self) -> Optional[int]:
        return self.raw.content_length

    @property
    def url(self) -> URL:
        return self.raw.url

    @property
    def uri(self) -> str:
        return str(self.raw.url)

    def cancel(self) -> None:
        """Abort the in-flight request; pending and future body reads fail."""
        self.body.raw.cancel()

    async def close(self) -> None:
        await self.body.close()

    async def __aenter__(self) -> Response:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<Response [{self.status_code}] {self.uri}>"


def wrap_response(
    response: aiohttp.ClientResponse,
    compression: Optional[Compression] = None,
    on_close: Optional[CloseCallback] = None,
) -> Response:
    """
    Wrap an aiohttp response, decompressing only when its Content-Encoding
    exactly matches the configured codec's token.
    """
    raw = RawStream(response, on_close=on_close)
    decompressed = None
    content_encoding = response.headers.get("Content-Encoding")
    if compression is not None and compression.matches(content_encoding):
        decompressed = DecompressingStream(raw, compression)
    elif compression is not None and compression.enabled:
        logger.debug(
            f"Response Content-Encoding {content_encoding!r} does not match "
            f"{compression.token!r}; passing raw bytes through"
        )
    return Response(response, ResponseBody(raw, decompressed, response.headers.get("Content-Type", "")))
