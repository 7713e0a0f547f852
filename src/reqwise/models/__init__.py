"""Configuration and request models for reqwise."""

from .config import ClientConfig, get_default_config, set_connect_timeout, set_default_config
from .request import Request

__all__ = [
    "ClientConfig",
    "Request",
    "get_default_config",
    "set_connect_timeout",
    "set_default_config",
]
