"""
Sender configuration. Built once at startup from CLI options / env vars
and handed to each component -- nothing downstream reads the environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

DEFAULT_API_BASE_URL = "https://metrics.ggpanel.site"
DEFAULT_PG_USER = "postgres"
DEFAULT_PG_HOST = "/var/run/postgresql"
DEFAULT_PG_PORT = 5432
DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_OMIT = "log"
DEFAULT_SQL_LENGTH = 10000
DEFAULT_STATEMENTS_LIMIT = 10000
DEFAULT_REQUEST_TIMEOUT = 30.0

# Identity used when running the one-shot validation without a server id
TEST_IDENTITY = "test"


class ConfigError(ValueError):
    """Startup configuration is unusable. Always fatal."""


def parse_databases(raw: Optional[str]) -> Tuple[str, ...]:
    """Turn the PG_DATABASES setting into an explicit list.

    "all" (any case) or an empty value means every database and returns ().
    """
    value = (raw or "").strip()
    if not value or value.lower() == "all":
        return ()
    return tuple(name.strip() for name in value.split(",") if name.strip())


@dataclass(frozen=True)
class ConnectionSettings:
    host: str = DEFAULT_PG_HOST
    port: int = DEFAULT_PG_PORT
    user: str = DEFAULT_PG_USER
    password: Optional[str] = None

    @property
    def is_local_socket(self) -> bool:
        return self.host.startswith("/")

    def describe(self) -> str:
        return f"{self.user}@{self.host}:{self.port}"


@dataclass(frozen=True)
class CollectionSettings:
    databases: Tuple[str, ...] = ()   # empty = all databases
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    omit: str = DEFAULT_OMIT
    sql_length: int = DEFAULT_SQL_LENGTH
    statements_limit: int = DEFAULT_STATEMENTS_LIMIT

    @property
    def all_databases(self) -> bool:
        return not self.databases


@dataclass(frozen=True)
class SenderConfig:
    identity: Optional[str] = None
    api_base_url: str = DEFAULT_API_BASE_URL
    connection: ConnectionSettings = field(default_factory=ConnectionSettings)
    collection: CollectionSettings = field(default_factory=CollectionSettings)
    pgmetrics_bin: str = "pgmetrics"
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    test_mode: bool = False

    @property
    def effective_identity(self) -> str:
        """The id sent to the service; a placeholder in test mode."""
        return self.identity or TEST_IDENTITY

    def validate(self) -> "SenderConfig":
        """Raise ConfigError for settings the sender can't run with."""
        if not self.test_mode and not self.identity:
            raise ConfigError(
                "Set SERVER_ID in the environment/.env or pass --server-id"
            )
        if not self.connection.password and not self.connection.is_local_socket:
            raise ConfigError(
                f"Set PG_PASSWORD when using a remote host ({self.connection.host})"
            )
        if self.connection.port <= 0:
            raise ConfigError(f"Invalid PG_PORT: {self.connection.port}")

        collection = self.collection
        for name, value in (
            ("PG_TIMEOUT", collection.timeout_seconds),
            ("PG_SQL_LENGTH", collection.sql_length),
            ("PG_STATEMENTS_LIMIT", collection.statements_limit),
        ):
            if value <= 0:
                raise ConfigError(f"{name} must be positive, got {value}")

        if self.request_timeout <= 0:
            raise ConfigError(f"REQUEST_TIMEOUT must be positive, got {self.request_timeout}")
        return self
