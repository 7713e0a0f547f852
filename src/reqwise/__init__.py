"""
reqwise - declarative HTTP requests with redirects, compression, proxies and cookies.

Usage:
    from reqwise import Compression, Request

    request = Request(
        uri="https://api.example.com/search",
        query=SearchForm(term="widgets", page=2),
        compression=Compression.gzip(),
        max_redirects=3,
        timeout=5.0,
    )

    async with await request.do() as response:
        print(response.status_code, response.uri)
        data = await response.body.json()
"""

__version__ = "1.0.0"

from .encoding import Compression, CompressionKind, encode_body, serialize_query
from .errors import (
    BodyClosedError,
    ConnectionFailedError,
    ConnectTimeoutError,
    DecodingError,
    DNSError,
    EncodingError,
    ErrorKind,
    ProxyError,
    RedirectLimitExceededError,
    ReqwiseError,
    ReqwiseTimeoutError,
    RequestCancelledError,
    RequestTimeoutError,
    UnsupportedTypeError,
    UriParseError,
)
from .http import (
    CookieStore,
    Executor,
    OutgoingRequest,
    RedirectPolicy,
    Response,
    ResponseBody,
    execute,
)
from .models.config import (
    ClientConfig,
    get_default_config,
    set_connect_timeout,
    set_default_config,
)
from .models.request import Request

__all__ = [
    "__version__",
    # Core
    "Executor",
    "Request",
    "Response",
    "ResponseBody",
    "execute",
    "OutgoingRequest",
    "RedirectPolicy",
    "CookieStore",
    # Encoding
    "Compression",
    "CompressionKind",
    "encode_body",
    "serialize_query",
    # Config
    "ClientConfig",
    "get_default_config",
    "set_default_config",
    "set_connect_timeout",
    # Errors
    "ErrorKind",
    "ReqwiseError",
    "UriParseError",
    "EncodingError",
    "DecodingError",
    "UnsupportedTypeError",
    "ReqwiseTimeoutError",
    "ConnectTimeoutError",
    "RequestTimeoutError",
    "ConnectionFailedError",
    "DNSError",
    "ProxyError",
    "RedirectLimitExceededError",
    "BodyClosedError",
    "RequestCancelledError",
]
