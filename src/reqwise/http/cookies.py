"""Cookie attachment around each hop."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Optional

import aiohttp
from yarl import URL

from .protocols import CookieStore

logger = logging.getLogger(__name__)


def cookie_header(
    url: URL,
    explicit: Iterable[tuple[str, str]] = (),
    jar: Optional[CookieStore] = None,
) -> Optional[str]:
    """
    Build the Cookie header for one hop.

    Explicitly attached cookies come first, followed by every cookie the jar
    reports for ``url``.

    Returns:
        Header value, or None when there is nothing to send
    """
    parts = [f"{name}={value}" for name, value in explicit]
    if jar is not None:
        parts.extend(f"{morsel.key}={morsel.value}" for morsel in jar.filter_cookies(url).values())
    return "; ".join(parts) if parts else None


def store_response_cookies(jar: Optional[CookieStore], response: aiohttp.ClientResponse) -> None:
    """Write every Set-Cookie of ``response`` back into the jar (no-op without one)."""
    if jar is None or not response.cookies:
        return
    logger.debug(f"Storing {len(response.cookies)} cookie(s) from {response.url}")
    jar.update_cookies(response.cookies, response.url)
