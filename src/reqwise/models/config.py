"""Pydantic configuration model for the reqwise executor."""

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

DEFAULT_CONNECT_TIMEOUT = 1.0


class ClientConfig(BaseModel):
    """
    Executor-wide configuration.

    Per-call settings on a Request take precedence; the values here fill in
    whatever a Request leaves unset.

    Example:
        config = ClientConfig(connect_timeout=0.25, user_agent="my-agent/1.0")
        async with Executor(config) as executor:
            response = await executor.execute(Request(uri="https://example.com"))

    YAML format:
        connect_timeout: 0.5
        timeout: 10
        max_redirects: 5
    """

    connect_timeout: float = Field(
        DEFAULT_CONNECT_TIMEOUT,
        gt=0,
        description="Seconds allowed for connection and TLS setup on every hop",
    )
    timeout: Optional[float] = Field(
        None,
        gt=0,
        description="Default whole-call timeout in seconds (None = unbounded)",
    )
    user_agent: Optional[str] = Field(None, description="Default User-Agent header")
    max_redirects: int = Field(0, ge=0, description="Default redirect limit (0 = never follow)")
    redirect_headers: bool = Field(
        False,
        description="Re-attach the original request headers on every redirect hop",
    )
    connection_limit: int = Field(100, ge=0, description="Total pooled connections (0 = unlimited)")
    connection_limit_per_host: int = Field(10, ge=0, description="Pooled connections per host")
    dns_cache_ttl: Optional[int] = Field(300, ge=0, description="DNS cache TTL in seconds")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "WARNING",
        description="Logging level applied by the command line",
    )

    model_config = {"extra": "forbid", "frozen": True}

    def with_updates(self, **changes: Any) -> "ClientConfig":
        """Return a validated copy with ``changes`` applied."""
        data = self.model_dump()
        data.update(changes)
        return ClientConfig.model_validate(data)

    def to_yaml(self) -> str:
        """Serialize config to YAML string."""
        import yaml

        return yaml.dump(self.model_dump(mode="json", exclude_none=True), default_flow_style=False)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> "ClientConfig":
        """Load config from YAML string."""
        import yaml

        data = yaml.safe_load(yaml_str) or {}
        return cls.model_validate(data)

    @classmethod
    def from_yaml_file(cls, path: Path) -> "ClientConfig":
        """Load config from YAML file."""
        return cls.from_yaml(path.read_text())


# Process-wide defaults. Last write wins; mutating these while calls are in
# flight is unsafe. Pass an explicit ClientConfig for per-call isolation.
_default_config = ClientConfig()


def get_default_config() -> ClientConfig:
    """Return the process-wide default configuration."""
    return _default_config


def set_default_config(config: ClientConfig) -> None:
    """Replace the process-wide default configuration."""
    global _default_config
    _default_config = config


def set_connect_timeout(seconds: float) -> None:
    """Change the process-wide default connect timeout."""
    set_default_config(_default_config.with_updates(connect_timeout=seconds))
