"""Request execution, redirects and response handling for reqwise."""

from .executor import Executor, execute
from .protocols import CookieStore, OutgoingRequest
from .redirects import RedirectPolicy
from .response import RawStream, Response, ResponseBody

__all__ = [
    "CookieStore",
    "Executor",
    "OutgoingRequest",
    "RawStream",
    "RedirectPolicy",
    "Response",
    "ResponseBody",
    "execute",
]
