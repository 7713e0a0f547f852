"""Redirect-following decisions."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from yarl import URL

from ..errors import UriParseError

REDIRECT_STATUS_CODES = frozenset({301, 302, 303, 307, 308})


@dataclass(frozen=True)
class RedirectPolicy:
    """
    Decides whether a response is chased to its Location.

    The method is never rewritten between hops, whatever the status code.

    Attributes:
        max_redirects: Maximum hops to follow; 0 never follows
        propagate_headers: Re-attach every original header on each hop
    """

    max_redirects: int = 0
    propagate_headers: bool = False

    @staticmethod
    def is_redirect(status: int, headers: Mapping[str, str]) -> bool:
        return status in REDIRECT_STATUS_CODES and bool(headers.get("Location"))

    def should_follow(self, hops: int, status: int, headers: Mapping[str, str]) -> bool:
        """True if the response after ``hops`` followed redirects must be chased."""
        return self.max_redirects > 0 and hops < self.max_redirects and self.is_redirect(status, headers)

    def limit_exceeded(self, hops: int, status: int, headers: Mapping[str, str]) -> bool:
        """True if following was enabled but the budget ran out on a redirect."""
        return self.max_redirects > 0 and hops >= self.max_redirects and self.is_redirect(status, headers)

    @staticmethod
    def resolve_location(current: URL, location: str) -> URL:
        """Resolve a relative or absolute Location against the hop just completed."""
        try:
            return current.join(URL(location))
        except (ValueError, TypeError) as err:
            raise UriParseError(f"Invalid redirect location {location!r}: {err}", url=str(current)) from err
