"""Basic authentication and proxy credential handling."""

from __future__ import annotations

import base64
from typing import Optional

from yarl import URL

from ..errors import UriParseError


def basic_auth_header(username: Optional[str], password: Optional[str] = None) -> Optional[str]:
    """
    Build an Authorization header value for Basic auth.

    An empty or missing username means no header; an empty password is allowed.

    Example:
        >>> basic_auth_header("username", "password")
        'Basic dXNlcm5hbWU6cGFzc3dvcmQ='
    """
    if not username:
        return None
    credentials = f"{username}:{password or ''}"
    encoded = base64.b64encode(credentials.encode()).decode()
    return f"Basic {encoded}"


def parse_proxy(proxy: str) -> tuple[URL, Optional[str]]:
    """
    Split a proxy URI into a credential-free URL and a Proxy-Authorization value.

    The executor sends the value on the CONNECT handshake for TLS targets
    and on every proxied plaintext request.

    Raises:
        UriParseError: If the proxy URI is malformed
    """
    try:
        url = URL(proxy)
    except (ValueError, TypeError) as err:
        raise UriParseError(f"Invalid proxy URI {proxy!r}: {err}", url=proxy) from err

    if not url.scheme or not url.host:
        raise UriParseError(f"Invalid proxy URI {proxy!r}: missing scheme or host", url=proxy)

    authorization = None
    if url.user is not None:
        authorization = basic_auth_header(url.user, url.password)
        url = url.with_user(None)
    return url, authorization
