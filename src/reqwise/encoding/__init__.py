"""Body, query-string and compression encoding for reqwise."""

from .body import EncodedBody, encode_body, encode_json
from .compression import Compression, CompressionKind, DecompressingStream
from .query import record_schema, serialize_query

__all__ = [
    "Compression",
    "CompressionKind",
    "DecompressingStream",
    "EncodedBody",
    "encode_body",
    "encode_json",
    "record_schema",
    "serialize_query",
]
