"""Request body encoding: text, bytes, streams and JSON values."""

from __future__ import annotations

import asyncio
import dataclasses
import io
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel

from ..errors import EncodingError

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
STREAM_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class EncodedBody:
    """
    Wire-ready request payload.

    Attributes:
        payload: bytes, a file-like object or an async iterable of bytes;
            None when the request has no body
        content_type: Content-Type hint (only applied if the caller set none)
        length: Payload size in bytes, None when unknown
    """

    payload: Any
    content_type: Optional[str] = None
    length: Optional[int] = 0

    @property
    def is_stream(self) -> bool:
        return self.payload is not None and not isinstance(self.payload, bytes)


def is_stream(value: Any) -> bool:
    """True for unconsumed readable streams (sync file-likes or async iterables)."""
    if isinstance(value, (str, bytes, bytearray, memoryview)):
        return False
    return callable(getattr(value, "read", None)) or isinstance(value, AsyncIterable)


def _stream_length(stream: Any) -> Optional[int]:
    """Remaining bytes of a seekable stream, None otherwise."""
    seekable = getattr(stream, "seekable", None)
    if seekable is None or not callable(seekable):
        return None
    try:
        if not seekable():
            return None
        position = stream.tell()
        end = stream.seek(0, io.SEEK_END)
        stream.seek(position)
    except (OSError, ValueError):
        return None
    return max(0, end - position)


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return value


def encode_json(value: Any) -> bytes:
    """
    Encode ``value`` as compact canonical JSON.

    Raises:
        EncodingError: NaN/infinity, cyclic structures or unsupported objects
    """
    try:
        text = json.dumps(
            _to_jsonable(value),
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError, RecursionError) as err:
        raise EncodingError(f"Body is not JSON encodable: {err}") from err
    return text.encode("utf-8")


def encode_body(body: Any) -> EncodedBody:
    """
    Convert a caller-supplied body into a wire payload.

    Args:
        body: None, str, bytes-like, an unconsumed stream or any JSON value

    Returns:
        EncodedBody with payload, content-type hint and known length

    Raises:
        EncodingError: If a structured value cannot be JSON encoded
    """
    if body is None:
        return EncodedBody(payload=None, length=0)

    if isinstance(body, str):
        data = body.encode("utf-8")
        return EncodedBody(payload=data, length=len(data))

    if isinstance(body, (bytes, bytearray, memoryview)):
        data = bytes(body)
        return EncodedBody(payload=data, length=len(data))

    if is_stream(body):
        return EncodedBody(payload=body, length=_stream_length(body))

    data = encode_json(body)
    logger.debug(f"Encoded JSON body ({len(data)} bytes)")
    return EncodedBody(payload=data, content_type=JSON_CONTENT_TYPE, length=len(data))


async def iter_stream(stream: Any, chunk_size: int = STREAM_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """
    Yield the chunks of a sync file-like or async iterable stream.

    Blocking reads on sync streams run in the default executor.
    """
    if isinstance(stream, AsyncIterable):
        async for chunk in stream:
            yield chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)
        return

    loop = asyncio.get_running_loop()
    while True:
        chunk = await loop.run_in_executor(None, stream.read, chunk_size)
        if not chunk:
            break
        yield chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)
