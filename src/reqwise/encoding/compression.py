"""Request/response compression codecs (gzip, raw deflate, zlib)."""

from __future__ import annotations

import logging
import zlib
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from ..errors import DecodingError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class AsyncReader(Protocol):
    """Minimal async byte source consumed by DecompressingStream."""

    async def read(self, n: int = -1) -> bytes: ...

    async def close(self) -> None: ...


class CompressionKind(str, Enum):
    """Supported compression schemes."""

    NONE = "none"
    GZIP = "gzip"
    DEFLATE = "deflate"
    ZLIB = "zlib"


# zlib window bits per scheme
_WBITS = {
    CompressionKind.GZIP: 16 + zlib.MAX_WBITS,
    CompressionKind.DEFLATE: -zlib.MAX_WBITS,
    CompressionKind.ZLIB: zlib.MAX_WBITS,
}

# Content-Encoding wire tokens; zlib-wrapped data travels as "deflate"
_TOKENS = {
    CompressionKind.GZIP: "gzip",
    CompressionKind.DEFLATE: "deflate",
    CompressionKind.ZLIB: "deflate",
}


def _looks_like_zlib(head: bytes) -> bool:
    """Check for an RFC 1950 header (CM=8, FCHECK valid)."""
    if len(head) < 2:
        return False
    return head[0] & 0x0F == 8 and ((head[0] << 8) | head[1]) % 31 == 0


@dataclass(frozen=True)
class Compression:
    """
    Compression codec selected for a request.

    Example:
        request = Request(uri=url, body={"a": 1}, compression=Compression.gzip())
    """

    kind: CompressionKind = CompressionKind.NONE
    level: int = zlib.Z_DEFAULT_COMPRESSION

    @classmethod
    def gzip(cls, level: int = zlib.Z_DEFAULT_COMPRESSION) -> Compression:
        return cls(CompressionKind.GZIP, level)

    @classmethod
    def deflate(cls, level: int = zlib.Z_DEFAULT_COMPRESSION) -> Compression:
        return cls(CompressionKind.DEFLATE, level)

    @classmethod
    def zlib(cls, level: int = zlib.Z_DEFAULT_COMPRESSION) -> Compression:
        return cls(CompressionKind.ZLIB, level)

    @classmethod
    def from_name(cls, name: str) -> Compression:
        """Build a codec from its kind name ("gzip", "deflate", "zlib", "none")."""
        try:
            return cls(CompressionKind(name.lower()))
        except ValueError as err:
            raise ValueError(f"Unknown compression: {name}") from err

    @property
    def enabled(self) -> bool:
        return self.kind is not CompressionKind.NONE

    @property
    def token(self) -> Optional[str]:
        """Content-Encoding token, or None for CompressionKind.NONE."""
        return _TOKENS.get(self.kind)

    def compress(self, data: bytes) -> bytes:
        """Compress a complete payload."""
        if not self.enabled:
            return data
        compressor = zlib.compressobj(self.level, zlib.DEFLATED, _WBITS[self.kind])
        return compressor.compress(data) + compressor.flush()

    async def compress_stream(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """Compress a streamed payload chunk by chunk without buffering it."""
        if not self.enabled:
            async for chunk in chunks:
                yield chunk
            return

        compressor = zlib.compressobj(self.level, zlib.DEFLATED, _WBITS[self.kind])
        async for chunk in chunks:
            out = compressor.compress(chunk)
            if out:
                yield out
        yield compressor.flush()

    def matches(self, content_encoding: Optional[str]) -> bool:
        """True if a response's Content-Encoding is exactly this codec's token."""
        return self.enabled and content_encoding == self.token

    def decompressor(self, head: bytes) -> zlib._Decompress:
        """
        Create a decompressor for a payload starting with ``head``.

        The deflate codec accepts raw and zlib-wrapped streams alike,
        since servers send both under the "deflate" token.
        """
        wbits = _WBITS[self.kind]
        if self.kind is CompressionKind.DEFLATE and _looks_like_zlib(head):
            wbits = zlib.MAX_WBITS
        return zlib.decompressobj(wbits)


class DecompressingStream:
    """
    Reader that inflates bytes pulled from a raw response stream.

    Ownership runs one way: closing this stream closes the raw stream,
    never the reverse. After close, reads return whatever is still
    buffered (possibly b"") instead of raising; the raw stream does raise.
    That asymmetry is kept for compatibility, not relied on.
    """

    def __init__(
        self,
        source: AsyncReader,
        compression: Compression,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._source = source
        self._compression = compression
        self._chunk_size = chunk_size
        self._decoder: Optional[zlib._Decompress] = None
        self._pending = b""
        self._buffer = bytearray()
        self._eof = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _feed(self, chunk: bytes) -> None:
        if self._decoder is None:
            self._pending += chunk
            if len(self._pending) < 2:
                return
            self._decoder = self._compression.decompressor(self._pending)
            chunk, self._pending = self._pending, b""
        if self._decoder.eof:
            return
        try:
            self._buffer += self._decoder.decompress(chunk)
        except zlib.error as err:
            raise DecodingError(f"Invalid {self._compression.kind.value} data: {err}") from err

    def _finish(self) -> None:
        if self._decoder is None and self._pending:
            self._decoder = self._compression.decompressor(self._pending)
            chunk, self._pending = self._pending, b""
            self._feed(chunk)
        if self._decoder is not None:
            try:
                self._buffer += self._decoder.flush()
            except zlib.error as err:
                raise DecodingError(f"Invalid {self._compression.kind.value} data: {err}") from err
        self._eof = True

    def _take(self, n: int) -> bytes:
        if n < 0 or n >= len(self._buffer):
            data = bytes(self._buffer)
            self._buffer.clear()
        else:
            data = bytes(self._buffer[:n])
            del self._buffer[:n]
        return data

    async def read(self, n: int = -1) -> bytes:
        """Read up to ``n`` decompressed bytes (all remaining if n < 0)."""
        if self._closed:
            return self._take(n)

        while not self._eof and (n < 0 or len(self._buffer) < n):
            chunk = await self._source.read(self._chunk_size)
            if not chunk:
                self._finish()
                break
            self._feed(chunk)

        return self._take(n)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._source.close()
